"""Weekly leaderboard aggregation over the key-value store."""
import json
import logging
from datetime import date
from typing import Callable, Dict, List, Optional
from pydantic import BaseModel, Field
from dailyguess.constants import (
    DEFAULT_LEADERBOARD_SIZE,
    EASY_ROUND_COUNT,
    TOTAL_ROUNDS,
    USER_WEEKLY_KEY_PREFIX,
    WEEKLY_LEADERBOARD_KEY_PREFIX,
    WEEKLY_RECORD_TTL_SECONDS
)
from dailyguess.db.kv_store import atomic_update
from dailyguess.services.calendar import week_key_for
from dailyguess.services.progress import SessionProgress, session_key
from dailyguess.services.scoring import round_half_up

logger = logging.getLogger(__name__)


class DayScore(BaseModel):
    score: int
    streak: int


class WeeklyUserRecord(BaseModel):
    """One user's scores for one week."""
    user_id: str
    week_key: str
    daily_scores: Dict[str, DayScore] = Field(default_factory=dict)
    weekly_score: int = 0
    games_played: int = 0
    last_played: Optional[str] = None

    def set_day(self, day_key: str, score: int, streak: int) -> None:
        """Replace the day's contribution and recompute the totals."""
        self.daily_scores[day_key] = DayScore(score=score, streak=streak)
        self.weekly_score = sum(day.score for day in self.daily_scores.values())
        self.games_played = len(self.daily_scores)
        self.last_played = max(self.daily_scores)


class LeaderboardRow(BaseModel):
    """Per-user summary kept in the weekly leaderboard index."""
    weekly_score: int
    games_played: int
    last_played: Optional[str] = None


class LeaderboardEntry(BaseModel):
    user_id: str
    display_name: str
    weekly_score: int
    games_played: int
    average_score: int
    last_played: Optional[str]
    rank: int


class WeeklyLeaderboard(BaseModel):
    week_key: str
    entries: List[LeaderboardEntry]
    total_players: int
    user_entry: Optional[LeaderboardEntry] = None


class DifficultyTally(BaseModel):
    correct: int = 0
    total: int = 0


class DailyStats(BaseModel):
    day_key: str
    score: int
    streak: int
    completed: bool
    completed_at: Optional[str] = None
    difficulty: Dict[str, DifficultyTally]


def user_weekly_key(user_id: str, week_key: str) -> str:
    return f"{USER_WEEKLY_KEY_PREFIX}:{user_id}:{week_key}"


def weekly_leaderboard_key(week_key: str) -> str:
    return f"{WEEKLY_LEADERBOARD_KEY_PREFIX}:{week_key}"


def rank_rows(rows: Dict[str, LeaderboardRow]) -> List[tuple]:
    """
    Order leaderboard rows and assign dense ranks.

    Sort: weekly score descending, then most recent last_played first, then
    user id ascending. Equal weekly scores share a rank; the next distinct
    score takes the following rank (1, 1, 2, ...).

    Returns:
        List of (rank, user_id, row) tuples
    """
    ordered = sorted(rows.items(), key=lambda pair: pair[0])
    ordered.sort(key=lambda pair: pair[1].last_played or "", reverse=True)
    ordered.sort(key=lambda pair: pair[1].weekly_score, reverse=True)

    ranked = []
    rank = 0
    previous_score = None
    for user_id, row in ordered:
        if row.weekly_score != previous_score:
            rank += 1
            previous_score = row.weekly_score
        ranked.append((rank, user_id, row))
    return ranked


class LeaderboardAggregator:
    """Weekly totals, ranked leaderboard and personal history."""

    def __init__(self, store, identity, today: Callable[[], date] = date.today):
        self.store = store
        self.identity = identity
        self.today = today

    def current_week_key(self) -> str:
        return week_key_for(self.today())

    def record_day(self, user_id: str, day_key: str, day_score: int, day_streak: int) -> WeeklyUserRecord:
        """
        Record a finished day's score for the current week.

        A second call for the same day replaces the earlier score. Both the
        user record and the week's leaderboard index expire two weeks after
        the write.

        Args:
            user_id: Player id
            day_key: Day the score belongs to
            day_score: Final score of the day
            day_streak: Streak at the end of the day

        Returns:
            Updated WeeklyUserRecord
        """
        week_key = self.current_week_key()

        def apply_day(current: Optional[str]) -> str:
            record = (
                WeeklyUserRecord.model_validate_json(current)
                if current else WeeklyUserRecord(user_id=user_id, week_key=week_key)
            )
            record.set_day(day_key, day_score, day_streak)
            return record.model_dump_json()

        stored = atomic_update(
            self.store,
            user_weekly_key(user_id, week_key),
            apply_day,
            ttl_seconds=WEEKLY_RECORD_TTL_SECONDS
        )
        record = WeeklyUserRecord.model_validate_json(stored)

        def apply_row(current: Optional[str]) -> str:
            index = _load_index(current)
            index[user_id] = LeaderboardRow(
                weekly_score=record.weekly_score,
                games_played=record.games_played,
                last_played=record.last_played
            )
            return _dump_index(index)

        atomic_update(
            self.store,
            weekly_leaderboard_key(week_key),
            apply_row,
            ttl_seconds=WEEKLY_RECORD_TTL_SECONDS
        )

        logger.info(
            f"Updated {user_id} weekly score: {record.weekly_score} ({record.games_played} games)",
            extra={"user_id": user_id, "day_key": day_key, "week_key": week_key}
        )
        return record

    def weekly_leaderboard(
        self,
        requesting_user_id: str,
        top_n: int = DEFAULT_LEADERBOARD_SIZE
    ) -> WeeklyLeaderboard:
        """
        Ranked leaderboard for the current week.

        Args:
            requesting_user_id: Player asking; their entry is returned
                separately when they are outside the top N
            top_n: Number of entries to return

        Returns:
            WeeklyLeaderboard view
        """
        if top_n < 1:
            raise ValueError(f"top_n must be at least 1, got {top_n}")

        week_key = self.current_week_key()
        ranked = rank_rows(_load_index(self.store.get(weekly_leaderboard_key(week_key))))

        entries = [self._entry(rank, user_id, row) for rank, user_id, row in ranked[:top_n]]

        user_entry = None
        if not any(entry.user_id == requesting_user_id for entry in entries):
            for rank, user_id, row in ranked[top_n:]:
                if user_id == requesting_user_id:
                    user_entry = self._entry(rank, user_id, row)
                    break

        logger.debug(
            f"Weekly leaderboard {week_key}: {len(entries)} top entries, {len(ranked)} total players"
        )
        return WeeklyLeaderboard(
            week_key=week_key,
            entries=entries,
            total_players=len(ranked),
            user_entry=user_entry
        )

    def _entry(self, rank: int, user_id: str, row: LeaderboardRow) -> LeaderboardEntry:
        average = round_half_up(row.weekly_score / row.games_played) if row.games_played else 0
        return LeaderboardEntry(
            user_id=user_id,
            display_name=self.identity.resolve_display_name(user_id),
            weekly_score=row.weekly_score,
            games_played=row.games_played,
            average_score=average,
            last_played=row.last_played,
            rank=rank
        )

    def user_daily_stats(self, user_id: str) -> List[DailyStats]:
        """
        Per-day results of the current week, most recent first.

        Per-difficulty tallies come from the round results recorded in each
        day's session.
        """
        stored = self.store.get(user_weekly_key(user_id, self.current_week_key()))
        if not stored:
            return []

        record = WeeklyUserRecord.model_validate_json(stored)
        stats = []
        for day_key, day in record.daily_scores.items():
            raw_session = self.store.get(session_key(user_id, day_key))
            session = SessionProgress.model_validate_json(raw_session) if raw_session else None
            stats.append(DailyStats(
                day_key=day_key,
                score=day.score,
                streak=day.streak,
                completed=bool(session and session.completed),
                completed_at=session.completed_at.isoformat() if session and session.completed_at else None,
                difficulty=_difficulty_tallies(session)
            ))

        stats.sort(key=lambda s: s.day_key, reverse=True)
        return stats


def _difficulty_tallies(session: Optional[SessionProgress]) -> Dict[str, DifficultyTally]:
    easy = DifficultyTally(total=EASY_ROUND_COUNT)
    hard = DifficultyTally(total=TOTAL_ROUNDS - EASY_ROUND_COUNT)
    if session:
        for index, result in session.rounds.items():
            if result.correct:
                tally = easy if int(index) < EASY_ROUND_COUNT else hard
                tally.correct += 1
    return {"easy": easy, "hard": hard}


def _load_index(raw: Optional[str]) -> Dict[str, LeaderboardRow]:
    if not raw:
        return {}
    return {user_id: LeaderboardRow.model_validate(row) for user_id, row in json.loads(raw).items()}


def _dump_index(index: Dict[str, LeaderboardRow]) -> str:
    return json.dumps({user_id: row.model_dump() for user_id, row in index.items()}, sort_keys=True)
