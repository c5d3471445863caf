"""Display-name resolution for leaderboard entries."""
import logging
from typing import Optional
from dailyguess.constants import DISPLAY_NAME_KEY_PREFIX, FALLBACK_NAME_SUFFIX_LENGTH
from dailyguess.errors import StoreError

logger = logging.getLogger(__name__)


def fallback_display_name(user_id: str) -> str:
    """Shortened form of a user id, e.g. "t2_9xk2ab71q" -> "User 2ab71q"."""
    if len(user_id) > FALLBACK_NAME_SUFFIX_LENGTH:
        return f"User {user_id[-FALLBACK_NAME_SUFFIX_LENGTH:]}"
    return user_id


class StoredIdentityProvider:
    """
    Identity provider backed by the key-value store.

    The hosting environment passes a display name alongside the user id on
    each request; `remember` keeps the latest one so leaderboards can show
    names for players who are not making the current request.
    """

    def __init__(self, store):
        self.store = store

    @staticmethod
    def _key(user_id: str) -> str:
        return f"{DISPLAY_NAME_KEY_PREFIX}:{user_id}"

    def remember(self, user_id: str, display_name: Optional[str]) -> None:
        """Store the latest display name. A store failure is logged, not raised."""
        if not display_name or not display_name.strip():
            return
        display_name = display_name.strip()
        try:
            if self.store.get(self._key(user_id)) != display_name:
                self.store.set(self._key(user_id), display_name)
        except StoreError as e:
            logger.warning(f"Could not remember display name for {user_id}: {e}")

    def resolve_display_name(self, user_id: str) -> str:
        """Return the remembered name, or the shortened id on any failure."""
        try:
            name = self.store.get(self._key(user_id))
        except StoreError as e:
            logger.warning(f"Could not resolve display name for {user_id}: {e}")
            name = None
        return name or fallback_display_name(user_id)
