"""Key-value store backed by a SQL table.

Exposes the `get / set / expire` interface the challenge engine is written
against, plus versioned reads and compare-and-set so read-modify-write updates
do not lose concurrent writes.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple
from sqlalchemy import delete, update, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from dailyguess.constants import MAX_CAS_ATTEMPTS
from dailyguess.db.models import KeyValueEntry
from dailyguess.errors import ConcurrentUpdateError, StoreError

logger = logging.getLogger(__name__)


class SqlKeyValueStore:
    """Key-value store persisted through SQLAlchemy sessions.

    Every call opens and closes its own session, so one instance can be
    shared across requests and threads.
    """

    def __init__(self, session_factory, clock: Callable[[], datetime] = datetime.utcnow):
        self._session_factory = session_factory
        self._clock = clock

    @contextmanager
    def _session(self):
        db = self._session_factory()
        try:
            yield db
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Key-value store failure: {e}")
            raise StoreError(f"Key-value store failure: {e}") from e
        finally:
            db.close()

    def _is_live(self, entry: Optional[KeyValueEntry]) -> bool:
        return entry is not None and (entry.expires_at is None or entry.expires_at > self._clock())

    def get(self, key: str) -> Optional[str]:
        """Return the value for `key`, or None if absent or expired."""
        value, _ = self.get_versioned(key)
        return value

    def get_versioned(self, key: str) -> Tuple[Optional[str], Optional[int]]:
        """Return `(value, version)`; `(None, None)` if absent or expired."""
        with self._session() as db:
            entry = db.get(KeyValueEntry, key)
            if not self._is_live(entry):
                return None, None
            return entry.value, entry.version

    def set(self, key: str, value: str) -> None:
        """Write `value` unconditionally. Clears any expiry on the key."""
        with self._session() as db:
            entry = db.get(KeyValueEntry, key)
            if entry is None:
                db.add(KeyValueEntry(key=key, value=value, version=1, expires_at=None))
            else:
                entry.value = value
                entry.version += 1
                entry.expires_at = None
            db.commit()

    def expire(self, key: str, seconds: int) -> bool:
        """Expire `key` after `seconds`. Returns False if the key is absent."""
        now = self._clock()
        with self._session() as db:
            result = db.execute(
                update(KeyValueEntry)
                .where(KeyValueEntry.key == key)
                .where((KeyValueEntry.expires_at.is_(None)) | (KeyValueEntry.expires_at > now))
                .values(expires_at=now + timedelta(seconds=seconds))
            )
            db.commit()
            return result.rowcount == 1

    def compare_and_set(
        self,
        key: str,
        value: str,
        expected_version: Optional[int],
        ttl_seconds: Optional[int] = None
    ) -> bool:
        """
        Write `value` only if the key is still at `expected_version`.

        Args:
            key: Store key
            value: New serialized value
            expected_version: Version returned by get_versioned; None means
                the key must not exist (or must have expired)
            ttl_seconds: Optional expiry applied in the same write

        Returns:
            True if the write happened, False on a version conflict
        """
        now = self._clock()
        expires_at = now + timedelta(seconds=ttl_seconds) if ttl_seconds else None

        with self._session() as db:
            if expected_version is None:
                db.execute(
                    delete(KeyValueEntry)
                    .where(KeyValueEntry.key == key)
                    .where(KeyValueEntry.expires_at.isnot(None))
                    .where(KeyValueEntry.expires_at <= now)
                )
                db.add(KeyValueEntry(key=key, value=value, version=1, expires_at=expires_at))
                try:
                    db.commit()
                except IntegrityError:
                    db.rollback()
                    return False
                return True

            result = db.execute(
                update(KeyValueEntry)
                .where(KeyValueEntry.key == key)
                .where(KeyValueEntry.version == expected_version)
                .values(value=value, version=expected_version + 1, expires_at=expires_at)
            )
            db.commit()
            return result.rowcount == 1

    def purge_expired(self) -> int:
        """Delete expired keys. Returns the number of rows removed."""
        with self._session() as db:
            result = db.execute(
                delete(KeyValueEntry)
                .where(KeyValueEntry.expires_at.isnot(None))
                .where(KeyValueEntry.expires_at <= self._clock())
            )
            db.commit()
            return result.rowcount

    def ping(self) -> None:
        """Raise StoreError if the backing database is unreachable."""
        with self._session() as db:
            db.execute(text("SELECT 1"))


def atomic_update(
    store: SqlKeyValueStore,
    key: str,
    mutate: Callable[[Optional[str]], Optional[str]],
    ttl_seconds: Optional[int] = None,
    attempts: int = MAX_CAS_ATTEMPTS
) -> Optional[str]:
    """
    Apply `mutate` to the current value of `key` with compare-and-set.

    `mutate` receives the current serialized value (None if absent) and
    returns the new value, or None to leave the key untouched. On a version
    conflict the mutation is re-applied to the fresh value.

    Returns:
        The value now stored under `key` (the current one if `mutate`
        declined to write)

    Raises:
        ConcurrentUpdateError: If every attempt lost a version race
        StoreError: On any store I/O failure (never retried)
    """
    for attempt in range(1, attempts + 1):
        current, version = store.get_versioned(key)
        new_value = mutate(current)
        if new_value is None:
            return current
        if store.compare_and_set(key, new_value, version, ttl_seconds=ttl_seconds):
            return new_value
        logger.info(f"Version conflict on {key} (attempt {attempt}/{attempts})")

    raise ConcurrentUpdateError(f"Too many concurrent updates to {key}")
