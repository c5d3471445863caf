"""Daily challenge operations exposed to the routing layer.

Each operation validates through the session state machine before touching
round selection or scoring, and never reveals the answer before a guess.
"""
import logging
from typing import List, Optional
from pydantic import BaseModel
from dailyguess.constants import TOTAL_ROUNDS
from dailyguess.errors import (
    CategoryNotWhitelisted,
    InvalidRoundId,
    SessionAlreadyCompleted
)
from dailyguess.services.catalog import ContentCatalog, MediaRef
from dailyguess.services.progress import (
    PlayStatus,
    ProgressStateMachine,
    SessionProgress,
    next_round_available
)
from dailyguess.services.round_selector import (
    Difficulty,
    RoundSelector,
    classify_difficulty,
    validate_round_index
)
from dailyguess.services.scoring import PartialCredit, ScoreResult, score

logger = logging.getLogger(__name__)


class RoundPayload(BaseModel):
    """A round as shown to the player, answer withheld."""
    round_id: str
    title: str
    media: MediaRef
    options: List[str]
    round_index: int
    total_rounds: int = TOTAL_ROUNDS
    difficulty: Difficulty


class GuessOutcome(BaseModel):
    correct: bool
    points: int
    base_points: float
    multiplier: float
    partial: Optional[PartialCredit] = None
    revealed_category: str
    revealed_source: Optional[str] = None
    cumulative_score: int
    new_streak: int
    next_round_available: bool
    already_answered: bool = False


def make_round_id(day_key: str, round_index: int) -> str:
    return f"{day_key}:{round_index}"


def parse_round_id(round_id: str, day_key: str) -> int:
    """
    Extract the round index from a round id for the given day.

    Raises:
        InvalidRoundId: If the id is malformed or belongs to another day
        InvalidRoundIndex: If the index is out of range
    """
    prefix = f"{day_key}:"
    if not round_id.startswith(prefix):
        raise InvalidRoundId(f"Round id {round_id!r} does not belong to {day_key}")

    raw_index = round_id[len(prefix):]
    if not (raw_index.isascii() and raw_index.isdigit()):
        raise InvalidRoundId(f"Round id {round_id!r} has no numeric round index")

    round_index = int(raw_index)
    validate_round_index(round_index)
    return round_index


class DailyChallengeService:
    """GetRound, PostGuess and GetDailyStatus over one catalog snapshot."""

    def __init__(self, catalog: ContentCatalog, progress: ProgressStateMachine):
        self.catalog = catalog
        self.selector = RoundSelector(catalog)
        self.progress = progress

    def get_daily_status(self, user_id: str, day_key: str) -> PlayStatus:
        return self.progress.can_play(user_id, day_key)

    def _ensure_can_play(self, user_id: str, day_key: str) -> PlayStatus:
        status = self.progress.can_play(user_id, day_key)
        if not status.allowed:
            raise SessionAlreadyCompleted(
                f"Daily challenge {status.reason}",
                progress=status.progress.model_dump(mode="json") if status.progress else None
            )
        return status

    def get_round(self, user_id: str, day_key: str, round_index: int) -> RoundPayload:
        """
        Serve a round of today's challenge.

        Starts or resumes the session, enforces sequential play, then builds
        the round from the day's deterministic sequence.
        """
        validate_round_index(round_index)
        self._ensure_can_play(user_id, day_key)
        self.progress.start(user_id, day_key)
        self.progress.request_round(user_id, day_key, round_index)

        item = self.selector.item_for_round(day_key, round_index)
        difficulty = classify_difficulty(round_index)

        logger.debug(
            f"Serving round {round_index} ({difficulty.value}) item {item.id}",
            extra={"user_id": user_id, "day_key": day_key, "round_index": round_index}
        )
        return RoundPayload(
            round_id=make_round_id(day_key, round_index),
            title=item.title,
            media=item.media,
            options=self.selector.build_options(item),
            round_index=round_index,
            difficulty=difficulty
        )

    def post_guess(
        self,
        user_id: str,
        day_key: str,
        round_id: str,
        guessed_category: str,
        client_streak: Optional[int] = None,
        client_score: Optional[int] = None
    ) -> GuessOutcome:
        """
        Score a guess and advance the session.

        The client-reported streak and score are display hints only; scoring
        uses the streak held in the session and the cumulative score is the
        sum of the server's recorded rounds. A repeated guess for a round that
        already has a result returns that result unchanged.

        Raises:
            InvalidRoundId / InvalidRoundIndex: Bad round id
            SessionAlreadyCompleted: The day is finished
            RoundNotUnlocked: Guess for a round ahead of the session
            CategoryNotWhitelisted: Hard-round guess outside the directory
        """
        round_index = parse_round_id(round_id, day_key)
        item = self.selector.item_for_round(day_key, round_index)

        status = self._ensure_can_play(user_id, day_key)
        if status.progress is not None and status.progress.completed:
            # Only reachable in bypass mode; a new run starts from get_round
            recorded = status.progress.recorded_round(round_index)
            if recorded is None:
                raise SessionAlreadyCompleted(
                    "Daily challenge already completed; fetch round 0 to play again",
                    progress=status.progress.model_dump(mode="json")
                )
            return self._outcome(item, recorded, status.progress, next_available=False, already_answered=True)

        if status.progress is None:
            # First guess after a restart
            logger.info(
                f"Auto-initializing daily session for {user_id}",
                extra={"user_id": user_id, "day_key": day_key}
            )
            self.progress.start(user_id, day_key)

        progress = (
            self.progress.request_round(user_id, day_key, round_index)
            or self.progress.start(user_id, day_key)
        )

        recorded = progress.recorded_round(round_index)
        if recorded is not None:
            logger.info(
                f"Duplicate guess for round {round_index}, returning recorded result",
                extra={"user_id": user_id, "day_key": day_key, "round_index": round_index}
            )
            return self._outcome(item, recorded, progress, next_available=False, already_answered=True)

        guess = guessed_category.strip()
        if classify_difficulty(round_index) == Difficulty.HARD and self.catalog.find_category(guess) is None:
            raise CategoryNotWhitelisted(f"{guess!r} is not in the allowed category list")

        if client_streak is not None and client_streak != progress.streak:
            logger.debug(
                f"Client streak {client_streak} differs from server streak {progress.streak}",
                extra={"user_id": user_id, "day_key": day_key, "round_index": round_index}
            )
        if client_score is not None and client_score != progress.score:
            logger.debug(
                f"Client score {client_score} differs from server score {progress.score}",
                extra={"user_id": user_id, "day_key": day_key, "round_index": round_index}
            )

        result = score(item, guess, progress.streak, self.catalog)
        updated = self.progress.advance(user_id, day_key, round_index, result, guess=guess)

        return self._outcome(
            item,
            result,
            updated,
            next_available=next_round_available(round_index, progress.current_round)
        )

    @staticmethod
    def _outcome(item, result: ScoreResult, progress: SessionProgress, next_available: bool,
                 already_answered: bool = False) -> GuessOutcome:
        return GuessOutcome(
            correct=result.correct,
            points=result.final_points,
            base_points=result.base_points,
            multiplier=result.multiplier,
            partial=result.partial,
            revealed_category=item.category,
            revealed_source=item.source_url,
            cumulative_score=progress.score,
            new_streak=result.new_streak,
            next_round_available=next_available,
            already_answered=already_answered
        )
