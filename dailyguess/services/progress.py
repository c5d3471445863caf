"""Per-user, per-day session state machine.

States: Absent -> InProgress -> Completed. A session record is created on the
first round request of the day and never deleted; it doubles as the
completion record and the source of the day's leaderboard score.

The cumulative score is derived from the round results recorded here, never
from a total reported by the client.
"""
import logging
from datetime import datetime
from typing import Callable, Dict, Optional
from pydantic import BaseModel, Field
from dailyguess.constants import ALREADY_COMPLETED_REASON, SESSION_KEY_PREFIX, TOTAL_ROUNDS
from dailyguess.db.kv_store import atomic_update
from dailyguess.errors import (
    RoundNotUnlocked,
    SessionAlreadyCompleted,
    SessionNotStarted,
    StoreError
)
from dailyguess.services.round_selector import validate_round_index
from dailyguess.services.scoring import ScoreResult

logger = logging.getLogger(__name__)

LAST_ROUND_INDEX = TOTAL_ROUNDS - 1


class RoundRecord(ScoreResult):
    """Scored result of one round as held by the server."""
    guess: str = ""


class SessionProgress(BaseModel):
    """Progress of one user through one day's challenge."""
    user_id: str
    day_key: str
    current_round: int = 0  # next round the user may play
    score: int = 0
    streak: int = 0
    completed: bool = False
    completed_at: Optional[datetime] = None
    rounds: Dict[str, RoundRecord] = Field(default_factory=dict)

    def recorded_round(self, round_index: int) -> Optional[RoundRecord]:
        return self.rounds.get(str(round_index))


class PlayStatus(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    progress: Optional[SessionProgress] = None


def session_key(user_id: str, day_key: str) -> str:
    return f"{SESSION_KEY_PREFIX}:{day_key}:{user_id}"


def next_round_available(round_index: int, prior_current_round: int) -> bool:
    """
    Whether a guess unlocked the next round.

    True only when the guessed round was the session's current round before
    the update, so a stale or duplicate guess never reports an unlock.
    """
    return round_index < LAST_ROUND_INDEX and prior_current_round == round_index


class ProgressStateMachine:
    """Enforces sequential play and the once-per-day limit."""

    def __init__(
        self,
        store,
        leaderboard,
        bypass_daily_limit: bool = False,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.store = store
        self.leaderboard = leaderboard
        self.bypass_daily_limit = bypass_daily_limit
        self.clock = clock

    def load(self, user_id: str, day_key: str) -> Optional[SessionProgress]:
        """Return the stored session, or None if the user has not started today."""
        raw = self.store.get(session_key(user_id, day_key))
        return SessionProgress.model_validate_json(raw) if raw else None

    def can_play(self, user_id: str, day_key: str) -> PlayStatus:
        """
        Determine whether the user may play today's challenge.

        A store read failure allows play rather than locking the user out.

        Returns:
            PlayStatus; for a completed session includes the progress so
            callers can show a summary
        """
        try:
            progress = self.load(user_id, day_key)
        except StoreError as e:
            logger.warning(
                f"can_play read failed, allowing play: {e}",
                extra={"user_id": user_id, "day_key": day_key}
            )
            return PlayStatus(allowed=True)

        if progress is None:
            return PlayStatus(allowed=True)

        if progress.completed and not self.bypass_daily_limit:
            return PlayStatus(allowed=False, reason=ALREADY_COMPLETED_REASON, progress=progress)

        return PlayStatus(allowed=True, progress=progress)

    def start(self, user_id: str, day_key: str) -> SessionProgress:
        """
        Create or resume today's session.

        Idempotent: an existing session is returned unchanged. With the
        daily-limit bypass active a completed session is reset to round 0,
        score 0, streak 0.
        """
        def initialize(current: Optional[str]) -> Optional[str]:
            if current is None:
                logger.info(
                    f"Created new daily session for {user_id}",
                    extra={"user_id": user_id, "day_key": day_key}
                )
                return SessionProgress(user_id=user_id, day_key=day_key).model_dump_json()

            existing = SessionProgress.model_validate_json(current)
            if existing.completed and self.bypass_daily_limit:
                logger.warning(
                    f"Bypass mode: resetting completed session for {user_id}",
                    extra={"user_id": user_id, "day_key": day_key}
                )
                return SessionProgress(user_id=user_id, day_key=day_key).model_dump_json()
            return None

        stored = atomic_update(self.store, session_key(user_id, day_key), initialize)
        return SessionProgress.model_validate_json(stored)

    def request_round(self, user_id: str, day_key: str, round_index: int) -> Optional[SessionProgress]:
        """
        Check the user may see `round_index`.

        Rounds up to and including the current one may be fetched (a refresh
        replays an already-seen round); later rounds are locked.

        Raises:
            InvalidRoundIndex: If round_index is out of range
            RoundNotUnlocked: If round_index is ahead of the current round
        """
        validate_round_index(round_index)
        progress = self.load(user_id, day_key)
        current_round = progress.current_round if progress else 0

        if round_index > current_round:
            raise RoundNotUnlocked(f"You must complete round {current_round} first")
        return progress

    def advance(
        self,
        user_id: str,
        day_key: str,
        round_index: int,
        result: ScoreResult,
        guess: str = ""
    ) -> SessionProgress:
        """
        Record a scored round and move the session forward.

        Sets current_round to max(current_round, round_index + 1), stores the
        round result, recomputes the score from all recorded rounds and, for
        the latest round, takes the new streak. Replaying the same arguments
        leaves the session unchanged.

        The final round records the day on the weekly leaderboard before the
        completed session is written. If that fails the session is left at
        the final round, so the same guess can be submitted again; recording
        a day replaces any earlier score for it, so a repeat is harmless.

        Args:
            user_id: Player id
            day_key: Day of the session
            round_index: Round that was scored
            result: ScoreResult from the scoring engine
            guess: Category the player guessed

        Returns:
            Updated SessionProgress

        Raises:
            SessionNotStarted: If no session exists
            SessionAlreadyCompleted: If the session is completed and bypass is off
            StoreError / ConcurrentUpdateError: If the leaderboard could not be
                updated; the session is not completed in that case
        """
        validate_round_index(round_index)

        def apply_round(current: Optional[str]) -> str:
            if current is None:
                raise SessionNotStarted("Daily session not started")

            progress = SessionProgress.model_validate_json(current)
            if progress.completed and not self.bypass_daily_limit:
                raise SessionAlreadyCompleted(
                    f"Daily session {ALREADY_COMPLETED_REASON}",
                    progress=progress.model_dump(mode="json")
                )

            is_latest = round_index + 1 >= progress.current_round
            progress.rounds[str(round_index)] = RoundRecord(guess=guess, **result.model_dump())
            progress.current_round = max(progress.current_round, round_index + 1)
            progress.score = sum(record.final_points for record in progress.rounds.values())
            if is_latest:
                progress.streak = result.new_streak

            if round_index == LAST_ROUND_INDEX and not progress.completed:
                logger.info(
                    f"Marking as completed - final score: {progress.score}",
                    extra={"user_id": user_id, "day_key": day_key}
                )
                # Re-run on a version conflict; the day is replaced, not added
                self.leaderboard.record_day(user_id, day_key, progress.score, progress.streak)
                progress.completed = True
                progress.completed_at = self.clock()

            return progress.model_dump_json()

        stored = atomic_update(self.store, session_key(user_id, day_key), apply_round)
        progress = SessionProgress.model_validate_json(stored)

        logger.info(
            f"Updated progress: round {progress.current_round}, score {progress.score}, streak {progress.streak}",
            extra={"user_id": user_id, "day_key": day_key, "round_index": round_index}
        )
        return progress
