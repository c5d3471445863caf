"""Tests for the daily challenge operations: rounds, guesses and status."""
import pytest

from dailyguess.constants import ALREADY_COMPLETED_REASON
from dailyguess.errors import (
    CategoryNotWhitelisted,
    ConcurrentUpdateError,
    InvalidRoundId,
    InvalidRoundIndex,
    RoundNotUnlocked,
    SessionAlreadyCompleted
)
from dailyguess.services.challenge import DailyChallengeService, make_round_id, parse_round_id
from dailyguess.services.identity import StoredIdentityProvider
from dailyguess.services.leaderboard import LeaderboardAggregator
from dailyguess.services.progress import ProgressStateMachine
from dailyguess.services.round_selector import Difficulty
from conftest import DAY_KEY, TODAY, WEEK_KEY, ContendedStore

USER = "t2_player1"


def answer(service, round_index):
    return service.selector.item_for_round(DAY_KEY, round_index).category


def guess(service, round_index, category, **kwargs):
    return service.post_guess(USER, DAY_KEY, make_round_id(DAY_KEY, round_index), category, **kwargs)


def play_correctly(service, rounds=10):
    outcomes = []
    for index in range(rounds):
        service.get_round(USER, DAY_KEY, index)
        outcomes.append(guess(service, index, answer(service, index)))
    return outcomes


class TestRoundIds:
    def test_round_trip(self):
        assert parse_round_id(make_round_id(DAY_KEY, 7), DAY_KEY) == 7

    @pytest.mark.parametrize("round_id", [
        "garbage",
        "2025-09-15:0",
        f"{DAY_KEY}:",
        f"{DAY_KEY}:abc",
        f"{DAY_KEY}:--1",
        f"{DAY_KEY}: 3",
        f"{DAY_KEY}:3\n",
        f"{DAY_KEY}:+3",
        f"{DAY_KEY}:\u0663",
    ])
    def test_malformed(self, round_id):
        with pytest.raises(InvalidRoundId):
            parse_round_id(round_id, DAY_KEY)

    def test_out_of_range_index(self):
        with pytest.raises(InvalidRoundIndex):
            parse_round_id(f"{DAY_KEY}:10", DAY_KEY)


class TestGetRound:
    """Tests for serving rounds."""

    def test_first_round(self, service):
        payload = service.get_round(USER, DAY_KEY, 0)

        assert payload.round_id == f"{DAY_KEY}:0"
        assert payload.round_index == 0
        assert payload.total_rounds == 10
        assert payload.difficulty == Difficulty.EASY
        assert answer(service, 0) in payload.options
        assert len(payload.options) == 4

    def test_answer_withheld(self, service):
        data = service.get_round(USER, DAY_KEY, 0).model_dump()

        assert "category" not in data
        assert "source_url" not in data

    def test_creates_session(self, service):
        service.get_round(USER, DAY_KEY, 0)

        status = service.get_daily_status(USER, DAY_KEY)
        assert status.allowed is True
        assert status.progress.current_round == 0

    def test_must_play_in_order(self, service):
        with pytest.raises(RoundNotUnlocked):
            service.get_round(USER, DAY_KEY, 1)

    def test_hard_rounds(self, service):
        play_correctly(service, rounds=5)

        payload = service.get_round(USER, DAY_KEY, 5)

        assert payload.difficulty == Difficulty.HARD

    def test_invalid_index(self, service):
        with pytest.raises(InvalidRoundIndex):
            service.get_round(USER, DAY_KEY, -1)


class TestPostGuess:
    """Tests for guess scoring and session updates."""

    def test_full_day(self, service, leaderboard):
        outcomes = play_correctly(service)

        assert [outcome.points for outcome in outcomes] == list(range(10, 20))
        assert outcomes[-1].cumulative_score == 145
        assert outcomes[-1].new_streak == 10
        assert all(outcome.next_round_available for outcome in outcomes[:9])
        assert outcomes[-1].next_round_available is False

        status = service.get_daily_status(USER, DAY_KEY)
        assert status.allowed is False
        assert status.reason == ALREADY_COMPLETED_REASON

        board = leaderboard.weekly_leaderboard(USER)
        assert board.week_key == WEEK_KEY
        assert board.entries[0].user_id == USER
        assert board.entries[0].weekly_score == 145

    def test_completed_day_blocks_rounds_and_guesses(self, service):
        play_correctly(service)

        with pytest.raises(SessionAlreadyCompleted) as exc_info:
            service.get_round(USER, DAY_KEY, 0)
        assert exc_info.value.progress["score"] == 145

        with pytest.raises(SessionAlreadyCompleted):
            guess(service, 9, answer(service, 9))

    def test_reveals_answer(self, service):
        service.get_round(USER, DAY_KEY, 0)
        item = service.selector.item_for_round(DAY_KEY, 0)

        outcome = guess(service, 0, item.category)

        assert outcome.correct is True
        assert outcome.revealed_category == item.category
        assert outcome.revealed_source == item.source_url

    def test_miss_resets_streak(self, service):
        service.get_round(USER, DAY_KEY, 0)
        guess(service, 0, answer(service, 0))
        service.get_round(USER, DAY_KEY, 1)
        missed = guess(service, 1, "not-a-category")
        service.get_round(USER, DAY_KEY, 2)
        recovered = guess(service, 2, answer(service, 2))

        assert missed.points == 0
        assert missed.new_streak == 0
        assert recovered.points == 10
        assert recovered.cumulative_score == 20

    def test_duplicate_guess_returns_recorded_result(self, service):
        service.get_round(USER, DAY_KEY, 0)
        first = guess(service, 0, answer(service, 0))

        second = guess(service, 0, "not-a-category")

        assert second.already_answered is True
        assert second.points == first.points
        assert second.correct is True
        assert second.cumulative_score == 10
        assert second.next_round_available is False

    def test_client_score_and_streak_ignored(self, service):
        service.get_round(USER, DAY_KEY, 0)

        outcome = guess(service, 0, answer(service, 0), client_streak=7, client_score=9999)

        assert outcome.points == 10
        assert outcome.cumulative_score == 10
        assert outcome.new_streak == 1

    def test_guess_without_fetching_round_zero(self, service):
        """The first guess of the day starts the session if needed."""
        outcome = guess(service, 0, answer(service, 0))

        assert outcome.points == 10
        assert outcome.next_round_available is True

    def test_guess_ahead_of_session(self, service):
        with pytest.raises(RoundNotUnlocked):
            guess(service, 3, "cats")

    def test_guess_for_another_day(self, service):
        with pytest.raises(InvalidRoundId):
            service.post_guess(USER, DAY_KEY, "2025-09-15:0", "cats")

    def test_easy_round_accepts_unknown_category(self, service):
        service.get_round(USER, DAY_KEY, 0)

        assert guess(service, 0, "something else").points == 0

    def test_hard_round_rejects_unknown_category(self, service):
        play_correctly(service, rounds=5)
        service.get_round(USER, DAY_KEY, 5)

        with pytest.raises(CategoryNotWhitelisted):
            guess(service, 5, "something else")

        # Nothing was recorded; the round can still be answered
        assert guess(service, 5, answer(service, 5)).points == 15

    def test_hard_round_rejects_unsafe_category(self, service):
        play_correctly(service, rounds=5)
        service.get_round(USER, DAY_KEY, 5)

        with pytest.raises(CategoryNotWhitelisted):
            guess(service, 5, "gore")

    def test_hard_round_whitelist_ignores_case(self, service):
        play_correctly(service, rounds=5)
        service.get_round(USER, DAY_KEY, 5)

        outcome = guess(service, 5, answer(service, 5).upper())

        assert outcome.correct is True

    def test_players_are_independent(self, service):
        play_correctly(service)

        other = service.post_guess("t2_other", DAY_KEY, make_round_id(DAY_KEY, 0), answer(service, 0))

        assert other.cumulative_score == 10


class TestBypassMode:
    """Tests for replays with the daily limit bypassed."""

    @pytest.fixture
    def bypass_service(self, store, leaderboard, clock, catalog):
        machine = ProgressStateMachine(store, leaderboard, bypass_daily_limit=True, clock=clock)
        return DailyChallengeService(catalog, machine)

    def test_repeated_final_guess_keeps_completed_session(self, bypass_service):
        play_correctly(bypass_service)

        repeat = guess(bypass_service, 9, answer(bypass_service, 9))

        assert repeat.already_answered is True
        assert repeat.points == 19
        assert repeat.cumulative_score == 145

        progress = bypass_service.progress.load(USER, DAY_KEY)
        assert progress.completed is True
        assert progress.score == 145
        assert progress.streak == 10

    def test_new_run_starts_from_round_zero(self, bypass_service):
        play_correctly(bypass_service)

        bypass_service.get_round(USER, DAY_KEY, 0)

        progress = bypass_service.progress.load(USER, DAY_KEY)
        assert progress.completed is False
        assert progress.score == 0
        assert guess(bypass_service, 0, answer(bypass_service, 0)).cumulative_score == 10


class TestFinalRoundRecovery:
    """Tests for retrying the last guess after a leaderboard failure."""

    def test_retry_after_leaderboard_conflict(self, session_factory, clock, catalog):
        store = ContendedStore(session_factory, clock, prefix="leaderboard:")
        leaderboard = LeaderboardAggregator(store, StoredIdentityProvider(store), today=lambda: TODAY)
        service = DailyChallengeService(catalog, ProgressStateMachine(store, leaderboard, clock=clock))
        play_correctly(service, rounds=9)
        service.get_round(USER, DAY_KEY, 9)

        with pytest.raises(ConcurrentUpdateError):
            guess(service, 9, answer(service, 9))

        store.prefix = None
        outcome = guess(service, 9, answer(service, 9))

        assert outcome.already_answered is False
        assert outcome.cumulative_score == 145
        assert service.get_daily_status(USER, DAY_KEY).allowed is False

        board = leaderboard.weekly_leaderboard(USER)
        assert board.total_players == 1
        assert board.entries[0].weekly_score == 145
