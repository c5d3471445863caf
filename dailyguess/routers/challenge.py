"""Daily challenge endpoints: status, rounds and guesses."""
from typing import Optional
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field, field_validator
from dailyguess.constants import GUESS_RATE_LIMIT
from dailyguess.rate_limit import limiter
from dailyguess.routers.deps import current_day_key, get_catalog, get_challenge_service, get_user_id
from dailyguess.services.catalog import ContentCatalog
from dailyguess.services.challenge import DailyChallengeService

router = APIRouter(prefix="/api", tags=["challenge"])


class GuessSubmission(BaseModel):
    """Request body for a guess."""
    round_id: str = Field(..., min_length=1, max_length=64, description="Round id as '<day_key>:<round_index>'")
    guessed_category: str = Field(..., min_length=1, max_length=100, description="Guessed category name")
    current_streak: Optional[int] = Field(None, ge=0, description="Client's streak, display hint only")
    current_score: Optional[int] = Field(None, ge=0, description="Client's running score, display hint only")

    @field_validator('guessed_category')
    @classmethod
    def validate_category(cls, v):
        """Validate that guessed_category is not empty or whitespace."""
        if not v or v.strip() == '':
            raise ValueError('guessed_category cannot be empty')
        return v.strip()


@router.get("/daily-status")
async def daily_status(
    user_id: str = Depends(get_user_id),
    day_key: str = Depends(current_day_key),
    service: DailyChallengeService = Depends(get_challenge_service)
):
    """
    Check whether the user can play today.

    Returns:
    - allowed flag
    - reason when not allowed
    - progress when a session exists
    """
    status = service.get_daily_status(user_id, day_key)
    return status.model_dump(mode="json")


@router.get("/categories")
async def list_categories(catalog: ContentCatalog = Depends(get_catalog)):
    """
    List the categories a hard-round guess may use.

    Each entry carries its group and tags; unsafe categories are never listed.
    """
    return [entry.model_dump(mode="json", exclude={"safe"}) for entry in catalog.directory]


@router.get("/round")
async def get_round(
    round_index: int = 0,
    user_id: str = Depends(get_user_id),
    day_key: str = Depends(current_day_key),
    service: DailyChallengeService = Depends(get_challenge_service)
):
    """
    Get a round of today's challenge with the answer withheld.

    Rounds must be played in order; already-seen rounds can be fetched again.
    """
    payload = service.get_round(user_id, day_key, round_index)
    return payload.model_dump(mode="json")


@router.post("/guess")
@limiter.limit(GUESS_RATE_LIMIT)
async def submit_guess(
    request: Request,
    guess: GuessSubmission,
    user_id: str = Depends(get_user_id),
    day_key: str = Depends(current_day_key),
    service: DailyChallengeService = Depends(get_challenge_service)
):
    """
    Submit a guess for a round.

    Returns:
    - points awarded with partial-credit detail
    - the revealed category and source
    - server-side cumulative score and streak
    - whether the next round was unlocked
    """
    outcome = service.post_guess(
        user_id,
        day_key,
        guess.round_id,
        guess.guessed_category,
        client_streak=guess.current_streak,
        client_score=guess.current_score
    )
    return outcome.model_dump(mode="json")
