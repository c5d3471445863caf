"""Database initialization for the key-value store."""
import logging
from pathlib import Path
from sqlalchemy.engine import make_url
from dailyguess.config import settings
from dailyguess.db.database import engine, SessionLocal, Base
from dailyguess.db.kv_store import SqlKeyValueStore
from dailyguess.db import models  # noqa: F401  (registers tables on Base.metadata)

logger = logging.getLogger(__name__)


def ensure_sqlite_directory(database_url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)


def init_db() -> None:
    """
    Initialize the database: create tables and drop expired keys.

    Safe to call multiple times - all operations are idempotent.
    """
    logger.info("Initializing database...")
    ensure_sqlite_directory(settings.DATABASE_URL)

    logger.info("Creating database tables from models...")
    Base.metadata.create_all(bind=engine)
    logger.info("Tables created/verified successfully.")

    purged = SqlKeyValueStore(SessionLocal).purge_expired()
    if purged:
        logger.info(f"Purged {purged} expired keys.")

    logger.info("Database initialization complete.")


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    init_db()
