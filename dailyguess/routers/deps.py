"""FastAPI dependencies wiring the challenge engine together per request."""
from fastapi import Depends, HTTPException, Request
from dailyguess.config import settings
from dailyguess.db.database import SessionLocal
from dailyguess.db.kv_store import SqlKeyValueStore
from dailyguess.errors import InsufficientContent
from dailyguess.services.calendar import day_key_for
from dailyguess.services.catalog import ContentCatalog
from dailyguess.services.challenge import DailyChallengeService
from dailyguess.services.identity import StoredIdentityProvider
from dailyguess.services.leaderboard import LeaderboardAggregator
from dailyguess.services.progress import ProgressStateMachine

_store = SqlKeyValueStore(SessionLocal)


def get_store() -> SqlKeyValueStore:
    return _store


def get_catalog(request: Request) -> ContentCatalog:
    """Current catalog snapshot, loaded at startup or by a refresh."""
    catalog = getattr(request.app.state, "catalog", None)
    if catalog is None:
        raise InsufficientContent("Content catalog not loaded")
    return catalog


def current_day_key() -> str:
    """The server's current day; clients cannot choose another day."""
    return day_key_for()


def get_identity(store: SqlKeyValueStore = Depends(get_store)) -> StoredIdentityProvider:
    return StoredIdentityProvider(store)


def get_user_id(
    request: Request,
    identity: StoredIdentityProvider = Depends(get_identity)
) -> str:
    """
    Extract the user id supplied by the hosting environment.

    Also remembers the display name header, when present, for leaderboards.
    """
    user_id = request.headers.get(settings.USER_ID_HEADER)
    if not user_id or not user_id.strip():
        raise HTTPException(status_code=401, detail="No user identity supplied")
    user_id = user_id.strip()
    identity.remember(user_id, request.headers.get(settings.USER_NAME_HEADER))
    return user_id


def get_leaderboard(
    store: SqlKeyValueStore = Depends(get_store),
    identity: StoredIdentityProvider = Depends(get_identity)
) -> LeaderboardAggregator:
    return LeaderboardAggregator(store, identity)


def get_progress(
    store: SqlKeyValueStore = Depends(get_store),
    leaderboard: LeaderboardAggregator = Depends(get_leaderboard)
) -> ProgressStateMachine:
    return ProgressStateMachine(store, leaderboard, bypass_daily_limit=settings.BYPASS_DAILY_LIMIT)


def get_challenge_service(
    catalog: ContentCatalog = Depends(get_catalog),
    progress: ProgressStateMachine = Depends(get_progress)
) -> DailyChallengeService:
    return DailyChallengeService(catalog, progress)
