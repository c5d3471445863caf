"""Deterministic daily round selection and option building."""
import random
from enum import Enum
from typing import List
from dailyguess.constants import (
    TOTAL_ROUNDS,
    EASY_ROUND_COUNT,
    OPTION_COUNT,
    HASH_MULTIPLIER,
    LCG_MULTIPLIER,
    LCG_INCREMENT,
    UINT32_MASK
)
from dailyguess.errors import InsufficientContent, InvalidRoundIndex
from dailyguess.services.catalog import ContentCatalog, ContentItem, normalize_category


class Difficulty(str, Enum):
    """Presentation/validation mode of a round."""
    EASY = "easy"  # Closed multiple choice
    HARD = "hard"  # Free-text guess checked against the category directory


def day_seed(day_key: str) -> int:
    """
    Derive the 32-bit seed for a day key.

    Polynomial rolling hash over the UTF-8 bytes: hash = hash * 31 + byte,
    wrapped to 32 bits.
    """
    seed = 0
    for byte in day_key.encode("utf-8"):
        seed = (seed * HASH_MULTIPLIER + byte) & UINT32_MASK
    return seed


def derive_day_sequence(day_key: str, catalog: ContentCatalog) -> List[str]:
    """
    Derive the ordered ids of the day's ten items.

    The whole active catalog is shuffled with a Fisher-Yates pass driven by a
    linear congruential generator seeded from the day key, then the first ten
    are taken. Same day key and same catalog contents/order always give the
    same list; changing the catalog changes every day's sequence.

    Args:
        day_key: Calendar date string, e.g. "2025-09-16"
        catalog: Catalog snapshot

    Returns:
        List of TOTAL_ROUNDS distinct item ids

    Raises:
        InsufficientContent: If the catalog has fewer than TOTAL_ROUNDS active items
    """
    items = list(catalog.items)
    if len(items) < TOTAL_ROUNDS:
        raise InsufficientContent(
            f"Catalog has {len(items)} active items, need at least {TOTAL_ROUNDS}"
        )

    seed = day_seed(day_key)
    for i in range(len(items) - 1, 0, -1):
        seed = (seed * LCG_MULTIPLIER + LCG_INCREMENT) & UINT32_MASK
        j = seed % (i + 1)
        items[i], items[j] = items[j], items[i]

    return [item.id for item in items[:TOTAL_ROUNDS]]


def classify_difficulty(round_index: int) -> Difficulty:
    """Rounds 0-4 are easy, rounds 5-9 are hard. Carries no scoring weight."""
    validate_round_index(round_index)
    return Difficulty.EASY if round_index < EASY_ROUND_COUNT else Difficulty.HARD


def validate_round_index(round_index: int) -> None:
    if not 0 <= round_index < TOTAL_ROUNDS:
        raise InvalidRoundIndex(f"Round index must be between 0 and {TOTAL_ROUNDS - 1}, got {round_index}")


class RoundSelector:
    """Round selection over one catalog snapshot."""

    def __init__(self, catalog: ContentCatalog):
        self.catalog = catalog

    def day_sequence(self, day_key: str) -> List[ContentItem]:
        """Items for the day, in round order."""
        return [self.catalog.get_item(item_id) for item_id in derive_day_sequence(day_key, self.catalog)]

    def item_for_round(self, day_key: str, round_index: int) -> ContentItem:
        validate_round_index(round_index)
        return self.day_sequence(day_key)[round_index]

    def build_options(self, item: ContentItem, count: int = OPTION_COUNT) -> List[str]:
        """
        Build a shuffled option list containing the correct category once.

        Distractors come from the item's pre-assigned list when it has one,
        otherwise from the category directory. The shuffle is presentation
        only and is not reproducible.

        Args:
            item: Item being asked about
            count: Number of options wanted (default 4)

        Returns:
            Up to `count` category names
        """
        if count < 1:
            raise ValueError("Option count must be at least 1")

        pool = item.distractors or tuple(self.catalog.category_names())

        options = [item.category]
        seen = {normalize_category(item.category)}
        for name in pool:
            if len(options) >= count:
                break
            normalized = normalize_category(name)
            if normalized in seen:
                continue
            seen.add(normalized)
            options.append(name)

        random.shuffle(options)
        return options
