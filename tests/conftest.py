"""Pytest fixtures for testing."""
import os

os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["BYPASS_DAILY_LIMIT"] = "false"
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import date, datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from dailyguess.db.database import Base  # noqa: E402
from dailyguess.db import models  # noqa: E402,F401
from dailyguess.db.kv_store import SqlKeyValueStore  # noqa: E402
from dailyguess.services.catalog import (  # noqa: E402
    CategoryDirectoryEntry,
    ContentCatalog,
    ContentItem,
    MediaRef
)
from dailyguess.services.challenge import DailyChallengeService  # noqa: E402
from dailyguess.services.identity import StoredIdentityProvider  # noqa: E402
from dailyguess.services.leaderboard import LeaderboardAggregator  # noqa: E402
from dailyguess.services.progress import ProgressStateMachine  # noqa: E402

DAY_KEY = "2025-09-16"
TODAY = date(2025, 9, 16)
WEEK_KEY = "2025-W38"

DIRECTORY = [
    ("landscapes", "nature", ["outdoors", "scenery"]),
    ("wildlife", "nature", ["animals", "outdoors"]),
    ("cats", "pets", ["animals", "cute"]),
    ("dogs", "pets", ["animals", "cute"]),
    ("city-skylines", "urban", ["scenery", "buildings"]),
    ("architecture", "urban", ["buildings", "design"]),
    ("woodworking", "crafts", ["hobby", "tools"]),
    ("retro-games", "gaming", ["nostalgia", "hobby"]),
    ("baking", "food", ["cooking", "dessert"]),
    ("cooking", "food", ["cooking", "recipes"]),
    ("space", "science", ["astronomy", "scenery"]),
    ("mechanical-keyboards", None, ["tools", "hobby"]),
]


class ContendedStore(SqlKeyValueStore):
    """Store that loses every compare-and-set on keys under `prefix`.

    Set `prefix` to None to let writes through again.
    """

    def __init__(self, session_factory, clock, prefix):
        super().__init__(session_factory, clock=clock)
        self.prefix = prefix

    def compare_and_set(self, key, value, expected_version, ttl_seconds=None):
        if self.prefix and key.startswith(self.prefix):
            return False
        return super().compare_and_set(key, value, expected_version, ttl_seconds=ttl_seconds)


class FakeClock:
    """Controllable replacement for datetime.utcnow."""

    def __init__(self, start=datetime(2025, 9, 16, 12, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


def make_item(index, category, group=None, tags=(), distractors=(), active=True):
    """Build a content item with predictable id, media and source."""
    item_id = f"item-{index:02d}"
    return ContentItem(
        id=item_id,
        title=f"Post number {index}",
        media=MediaRef(type="image", url=f"https://media.example.com/{item_id}.jpg"),
        category=category,
        category_group=group,
        tags=list(tags),
        distractors=list(distractors),
        source_url=f"https://community.example.com/{item_id}",
        active=active
    )


def make_directory():
    entries = [CategoryDirectoryEntry(name=name, group=group, tags=tags) for name, group, tags in DIRECTORY]
    entries.append(CategoryDirectoryEntry(name="gore", group="shock", tags=["mature"], safe=False))
    return entries


def make_items(count=12):
    return [
        make_item(i + 1, name, group, tags)
        for i, (name, group, tags) in enumerate(DIRECTORY[:count])
    ]


@pytest.fixture(scope="function")
def engine():
    """Create an in-memory database shared by every session of a test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(engine)

    yield engine

    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(session_factory, clock):
    """Key-value store on the test database with a controllable clock."""
    return SqlKeyValueStore(session_factory, clock=clock)


@pytest.fixture
def catalog():
    """Twelve active items, one per category, plus an unsafe category."""
    return ContentCatalog(make_items(), make_directory())


@pytest.fixture
def identity(store):
    return StoredIdentityProvider(store)


@pytest.fixture
def leaderboard(store, identity):
    return LeaderboardAggregator(store, identity, today=lambda: TODAY)


@pytest.fixture
def progress(store, leaderboard, clock):
    return ProgressStateMachine(store, leaderboard, clock=clock)


@pytest.fixture
def service(catalog, progress):
    return DailyChallengeService(catalog, progress)
