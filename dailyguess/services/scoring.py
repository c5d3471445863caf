"""Round scoring: exact match, partial credit and streak multiplier."""
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Union
from pydantic import BaseModel, ConfigDict
from dailyguess.constants import (
    BASE_POINTS,
    STREAK_BONUS_PER_CORRECT,
    GROUP_CREDIT_RATIO,
    TAG_CREDIT_RATIO
)
from dailyguess.services.catalog import ContentCatalog, ContentItem, normalize_category


class PartialCredit(BaseModel):
    """Detail of a reduced award for a related guess."""
    model_config = ConfigDict(frozen=True)

    awarded: int
    reason: str


class ScoreResult(BaseModel):
    """Outcome of scoring one guess."""
    model_config = ConfigDict(frozen=True)

    correct: bool
    base_points: float
    final_points: int
    multiplier: float
    new_streak: int
    partial: Optional[PartialCredit] = None


def round_half_up(value: Union[Decimal, float, int]) -> int:
    """Round to the nearest integer, halves away from zero."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def streak_multiplier(current_streak: int) -> Decimal:
    """
    Multiplier for an exact match given the streak before the guess.

    Formula: 1.0 + 0.1 * streak
    """
    return Decimal("1.0") + Decimal(STREAK_BONUS_PER_CORRECT) * current_streak


def shared_tags(first: tuple, second: tuple) -> List[str]:
    """Tags of `first` that also appear in `second`, in `first`'s order."""
    return [tag for tag in first if tag in second]


def score(
    correct_item: ContentItem,
    guessed_category: str,
    current_streak: int,
    catalog: ContentCatalog
) -> ScoreResult:
    """
    Score a guess against the correct item.

    Rules, first match wins:
    1. Exact match: 10 points times the streak multiplier, streak + 1
    2. Same non-empty group: 6 points, streak unchanged
    3. At least one shared tag: 3 points, streak unchanged
    4. Anything else, or either category missing from the directory:
       0 points, streak reset to 0

    Difficulty has no effect on points.

    Args:
        correct_item: Item the round is about
        guessed_category: Category the player picked or typed
        current_streak: Consecutive exact matches before this guess
        catalog: Snapshot holding the category directory

    Returns:
        ScoreResult with points and the new streak
    """
    if current_streak < 0:
        raise ValueError(f"Streak cannot be negative, got {current_streak}")

    if normalize_category(guessed_category) == normalize_category(correct_item.category):
        multiplier = streak_multiplier(current_streak)
        return ScoreResult(
            correct=True,
            base_points=BASE_POINTS,
            final_points=round_half_up(BASE_POINTS * multiplier),
            multiplier=float(multiplier),
            new_streak=current_streak + 1
        )

    correct_entry = catalog.find_category(correct_item.category)
    guessed_entry = catalog.find_category(guessed_category)

    if correct_entry and guessed_entry:
        if correct_entry.group and correct_entry.group == guessed_entry.group:
            return _partial(GROUP_CREDIT_RATIO, current_streak, f"Same group: {correct_entry.group}")

        tags = shared_tags(correct_entry.tags, guessed_entry.tags)
        if tags:
            label = "Shared tags" if len(tags) > 1 else "Shared tag"
            return _partial(TAG_CREDIT_RATIO, current_streak, f"{label}: {', '.join(tags)}")

    return ScoreResult(
        correct=False,
        base_points=0,
        final_points=0,
        multiplier=1.0,
        new_streak=0
    )


def _partial(ratio: str, current_streak: int, reason: str) -> ScoreResult:
    # Streak is frozen, neither advanced nor reset
    base = BASE_POINTS * Decimal(ratio)
    awarded = round_half_up(base)
    return ScoreResult(
        correct=False,
        base_points=float(base),
        final_points=awarded,
        multiplier=1.0,
        new_streak=current_streak,
        partial=PartialCredit(awarded=awarded, reason=reason)
    )
