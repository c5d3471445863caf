"""Content catalog snapshot and JSON loader.

A `ContentCatalog` is immutable once built. Refreshing the catalog builds a
new snapshot and swaps it in; nothing mutates items at request time.
"""
import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator
from dailyguess.constants import TOTAL_ROUNDS
from dailyguess.errors import InsufficientContent

logger = logging.getLogger(__name__)


def normalize_category(name: str) -> str:
    """Normalize a category name for comparison (trimmed, case-folded)."""
    return name.strip().casefold()


def _dedupe(values: Iterable[str]) -> Tuple[str, ...]:
    seen = []
    for value in values:
        value = value.strip()
        if value and value not in seen:
            seen.append(value)
    return tuple(seen)


class MediaRef(BaseModel):
    """Reference to the image or video shown for an item."""
    model_config = ConfigDict(frozen=True)

    type: str = Field("image", pattern="^(image|video)$")
    url: str
    thumb_url: Optional[str] = None


class ContentItem(BaseModel):
    """Immutable catalog entry produced by the curation pipeline."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    title: str
    media: MediaRef
    category: str = Field(..., min_length=1)
    category_group: Optional[str] = None
    tags: Tuple[str, ...] = ()
    distractors: Tuple[str, ...] = ()
    source_url: Optional[str] = None
    active: bool = True

    @field_validator("tags", "distractors", mode="before")
    @classmethod
    def dedupe_names(cls, v):
        """Drop blanks and duplicates while keeping the curated order."""
        return _dedupe(v or ())


class CategoryDirectoryEntry(BaseModel):
    """Reference metadata for one guessable category."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    group: Optional[str] = None
    tags: Tuple[str, ...] = ()
    safe: bool = True

    @field_validator("tags", mode="before")
    @classmethod
    def dedupe_tags(cls, v):
        return _dedupe(v or ())


class ContentCatalog:
    """Snapshot of the active content items and the category directory."""

    def __init__(self, items: Iterable[ContentItem], directory: Iterable[CategoryDirectoryEntry]):
        self._items: Tuple[ContentItem, ...] = tuple(item for item in items if item.active)
        self._directory: Tuple[CategoryDirectoryEntry, ...] = tuple(
            entry for entry in directory if entry.safe
        )
        self._by_id: Dict[str, ContentItem] = {item.id: item for item in self._items}
        self._by_name: Dict[str, CategoryDirectoryEntry] = {
            normalize_category(entry.name): entry for entry in self._directory
        }

    @property
    def items(self) -> Tuple[ContentItem, ...]:
        """Active items in catalog order."""
        return self._items

    @property
    def directory(self) -> Tuple[CategoryDirectoryEntry, ...]:
        return self._directory

    def __len__(self) -> int:
        return len(self._items)

    def get_item(self, item_id: str) -> Optional[ContentItem]:
        return self._by_id.get(item_id)

    def find_category(self, name: str) -> Optional[CategoryDirectoryEntry]:
        """Look up a directory entry by name (case-insensitive)."""
        return self._by_name.get(normalize_category(name))

    def category_names(self) -> List[str]:
        return [entry.name for entry in self._directory]

    def ensure_playable(self) -> None:
        """Raise InsufficientContent unless a full day can be served."""
        if len(self._items) < TOTAL_ROUNDS:
            raise InsufficientContent(
                f"Catalog has {len(self._items)} active items, need at least {TOTAL_ROUNDS}"
            )


def load_catalog(catalog_path: str, directory_path: str) -> ContentCatalog:
    """
    Build a catalog snapshot from the two JSON files.

    Inactive items and unsafe categories are filtered out. Malformed entries
    raise a pydantic ValidationError rather than being skipped.

    Args:
        catalog_path: JSON array of content items
        directory_path: JSON array of category directory entries

    Returns:
        New ContentCatalog snapshot
    """
    raw_items = json.loads(Path(catalog_path).read_text(encoding="utf-8"))
    raw_directory = json.loads(Path(directory_path).read_text(encoding="utf-8"))

    items = [ContentItem.model_validate(data) for data in raw_items]
    directory = [CategoryDirectoryEntry.model_validate(data) for data in raw_directory]
    catalog = ContentCatalog(items, directory)

    logger.info(
        f"Loaded {len(catalog)}/{len(items)} active items and "
        f"{len(catalog.directory)}/{len(directory)} safe categories"
    )
    if len(catalog) < TOTAL_ROUNDS:
        logger.warning(f"Only {len(catalog)} active items available, need at least {TOTAL_ROUNDS}")
    return catalog
