"""Operator endpoints for the hosting environment."""
import logging
import secrets
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from dailyguess.config import settings
from dailyguess.services.catalog import load_catalog

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal", tags=["internal"])


def require_operator(x_refresh_token: Optional[str] = Header(default=None)) -> None:
    """
    Allow the call only for the operator.

    With CATALOG_REFRESH_TOKEN set the X-Refresh-Token header must match it.
    Without one, production refuses every call and other environments allow it.
    """
    expected = settings.CATALOG_REFRESH_TOKEN
    if not expected:
        if settings.is_production:
            logger.warning("Catalog refresh refused: no CATALOG_REFRESH_TOKEN configured")
            raise HTTPException(status_code=403, detail="Catalog refresh is disabled")
        return

    if not x_refresh_token or not secrets.compare_digest(x_refresh_token, expected):
        logger.warning("Catalog refresh refused: bad or missing refresh token")
        raise HTTPException(status_code=403, detail="Invalid refresh token")


@router.post("/catalog/refresh", dependencies=[Depends(require_operator)])
async def refresh_catalog(request: Request):
    """
    Reload the content catalog from disk.

    The new snapshot replaces the old one only if it can serve a full day;
    otherwise the current snapshot stays active and an error is returned.
    """
    catalog = load_catalog(settings.CATALOG_PATH, settings.CATEGORY_DIRECTORY_PATH)
    catalog.ensure_playable()
    request.app.state.catalog = catalog
    logger.info(f"Catalog refreshed: {len(catalog)} items, {len(catalog.directory)} categories")
    return {"items": len(catalog), "categories": len(catalog.directory)}
