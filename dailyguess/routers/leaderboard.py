"""Weekly leaderboard and personal statistics endpoints."""
from fastapi import APIRouter, Depends, Query
from dailyguess.constants import DEFAULT_LEADERBOARD_SIZE, MAX_LEADERBOARD_SIZE
from dailyguess.routers.deps import get_leaderboard, get_user_id
from dailyguess.services.leaderboard import LeaderboardAggregator

router = APIRouter(prefix="/api", tags=["leaderboard"])


@router.get("/leaderboard")
async def weekly_leaderboard(
    top_n: int = Query(DEFAULT_LEADERBOARD_SIZE, ge=1, le=MAX_LEADERBOARD_SIZE),
    user_id: str = Depends(get_user_id),
    leaderboard: LeaderboardAggregator = Depends(get_leaderboard)
):
    """
    Get this week's leaderboard.

    Returns the top entries plus the caller's own entry when they rank
    outside the top N.
    """
    return leaderboard.weekly_leaderboard(user_id, top_n).model_dump(mode="json")


@router.get("/stats")
async def daily_stats(
    user_id: str = Depends(get_user_id),
    leaderboard: LeaderboardAggregator = Depends(get_leaderboard)
):
    """Get the caller's per-day results for the current week, most recent first."""
    return [stats.model_dump(mode="json") for stats in leaderboard.user_daily_stats(user_id)]
