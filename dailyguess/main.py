"""Main FastAPI application for the daily category challenge."""
from contextlib import asynccontextmanager
from datetime import datetime
from fastapi import FastAPI, Request, Depends
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from dailyguess import __version__
from dailyguess.routers import challenge, leaderboard, internal
from dailyguess.db.init_db import init_db
from dailyguess.db.kv_store import SqlKeyValueStore
from dailyguess.errors import ChallengeError, StoreError
from dailyguess.logging_config import setup_logging, get_logger
from dailyguess.config import settings
from dailyguess.rate_limit import limiter
from dailyguess.routers.deps import get_store
from dailyguess.services.catalog import load_catalog

# Set up logging on module import
log_level = settings.LOG_LEVEL if settings.LOG_LEVEL else None
setup_logging(log_level)
logger = get_logger(__name__)

SERVER_ERROR_DETAIL = "Service temporarily unavailable, please try again"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize storage and the content catalog on startup.

    This function runs once when the application starts, performing:
    - Key-value table creation and expired-key cleanup
    - Catalog and category directory loading

    A catalog too small for a full day stops startup.
    """
    logger.info("Application startup initiated")
    try:
        init_db()
        catalog = load_catalog(settings.CATALOG_PATH, settings.CATEGORY_DIRECTORY_PATH)
        catalog.ensure_playable()
        app.state.catalog = catalog
        logger.info("Startup completed successfully")
    except Exception as e:
        logger.error(f"Startup failed: {e}", exc_info=True)
        raise

    yield

    logger.info("Application shutdown complete")


app = FastAPI(
    title="Daily Category Challenge API",
    description="""
    Daily guess-the-category challenge with streak bonuses and a weekly leaderboard.

    ## Daily Flow

    1. **Check Status**: GET `/api/daily-status` to see whether today's challenge is open
    2. **Fetch Round**: GET `/api/round?round_index=N` for rounds 0-9, in order
    3. **Submit Guess**: POST `/api/guess` with the round id and a category
    4. **Leaderboard**: GET `/api/leaderboard` for this week's ranking

    ## Scoring

    - Exact match: 10 points x (1.0 + 0.1 x streak), streak + 1
    - Same category group: 6 points, streak kept
    - Shared tag: 3 points, streak kept
    - Anything else: 0 points, streak reset
    - Rounds 0-4 are multiple choice, rounds 5-9 take any category from the directory
    """,
    version=__version__,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_tags=[
        {
            "name": "challenge",
            "description": "Daily status, rounds and guesses"
        },
        {
            "name": "leaderboard",
            "description": "Weekly leaderboard and personal statistics"
        },
        {
            "name": "internal",
            "description": "Operator endpoints"
        },
        {
            "name": "health",
            "description": "Service health and readiness checks"
        }
    ]
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

logger.info(f"Rate limiting {'enabled' if settings.RATE_LIMIT_ENABLED else 'disabled'}")

if settings.BYPASS_DAILY_LIMIT:
    logger.warning("BYPASS_DAILY_LIMIT is on: completed sessions can be replayed")


@app.exception_handler(ChallengeError)
async def challenge_error_handler(request: Request, exc: ChallengeError):
    """Map domain errors to JSON responses."""
    detail = exc.message
    if exc.status_code >= 500:
        # Server-side failures may carry driver or SQL text; keep it in the log
        logger.error(f"{request.method} {request.url.path} failed with {exc.code}: {exc.message}")
        detail = SERVER_ERROR_DETAIL
    else:
        logger.info(f"Rejected {request.method} {request.url.path}: {exc.code}")

    content = {"error": exc.code, "detail": detail}
    if exc.progress is not None:
        content["progress"] = exc.progress
    return JSONResponse(status_code=exc.status_code, content=content)


# Include routers
app.include_router(challenge.router)
app.include_router(leaderboard.router)
app.include_router(internal.router)


@app.get("/health", tags=["health"])
async def health_check(store: SqlKeyValueStore = Depends(get_store)):
    """Health check endpoint with database verification.

    Returns:
        200 OK: Service is healthy and database is accessible
        503 Service Unavailable: Database connection failed

    Example Response (Healthy):
        {
            "status": "healthy",
            "database": "connected",
            "timestamp": "2025-09-16T10:30:00.000000Z",
            "environment": "production"
        }
    """
    timestamp = datetime.utcnow().isoformat() + "Z"

    try:
        store.ping()
        logger.debug("Health check passed")

        return {
            "status": "healthy",
            "database": "connected",
            "timestamp": timestamp,
            "environment": settings.ENVIRONMENT
        }
    except StoreError as e:
        logger.error(f"Health check failed: {e}")

        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "database": "disconnected",
                "timestamp": timestamp
            }
        )


@app.get("/readiness", tags=["health"])
async def readiness_check(request: Request, store: SqlKeyValueStore = Depends(get_store)):
    """Readiness check for container orchestration.

    Ready once the database answers and a playable catalog is loaded.

    Returns:
        200 OK: Service is ready
        503 Service Unavailable: Service is not ready
    """
    try:
        store.ping()
    except StoreError as e:
        logger.error(f"Readiness check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "not ready", "error": "database unavailable"}
        )

    catalog = getattr(request.app.state, "catalog", None)
    if catalog is None:
        return JSONResponse(
            status_code=503,
            content={"status": "not ready", "error": "content catalog not loaded"}
        )

    return {
        "status": "ready",
        "catalog_items": len(catalog),
        "timestamp": datetime.utcnow().isoformat() + "Z"
    }
