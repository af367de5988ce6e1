"""
Unit tests for the SM-2 scheduler.
"""

import pytest

from src.delivery.scheduler import SM2Config, SM2Scheduler, round_half_up
from src.delivery.state_store import MILLIS_PER_DAY, SchedulingState

NOW = 1_700_000_000_000


@pytest.fixture
def sm2():
    return SM2Scheduler()


@pytest.fixture
def fresh(sm2):
    return sm2.initial_state("q1", NOW)


class TestInitialState:
    def test_defaults(self, fresh):
        assert fresh.question_id == "q1"
        assert fresh.interval_days == 0
        assert fresh.repetition_count == 0
        assert fresh.ease_factor == 2.5
        assert fresh.next_review_at_ms == NOW
        assert fresh.last_reviewed_at_ms is None

    def test_uses_configured_ease(self):
        sm2 = SM2Scheduler(SM2Config(initial_easiness=2.1))
        assert sm2.initial_state("q1", NOW).ease_factor == 2.1


class TestSuccessfulRecall:
    def test_first_success_schedules_one_day(self, sm2, fresh):
        state = sm2.next_state(5, fresh, NOW)

        assert state.repetition_count == 1
        assert state.interval_days == 1
        assert state.ease_factor == pytest.approx(2.6)
        assert state.next_review_at_ms == NOW + MILLIS_PER_DAY
        assert state.last_reviewed_at_ms == NOW

    def test_second_success_schedules_six_days(self, sm2, fresh):
        state = sm2.next_state(5, sm2.next_state(5, fresh, NOW), NOW)

        assert state.repetition_count == 2
        assert state.interval_days == 6
        assert state.ease_factor == pytest.approx(2.7)

    def test_later_success_multiplies_by_previous_ease(self, sm2, fresh):
        state = fresh
        for _ in range(3):
            state = sm2.next_state(5, state, NOW)

        # round(6 * 2.7) = 16
        assert state.repetition_count == 3
        assert state.interval_days == 16
        assert state.ease_factor == pytest.approx(2.8)

    def test_interval_rounds_half_up(self, sm2):
        previous = SchedulingState("q1", interval_days=5, repetition_count=2, ease_factor=2.5)
        state = sm2.next_state(4, previous, NOW)

        # 5 * 2.5 = 12.5 rounds to 13, not banker's 12
        assert state.interval_days == 13

    def test_grade_three_lowers_ease(self, sm2, fresh):
        state = sm2.next_state(3, fresh, NOW)

        assert state.repetition_count == 1
        assert state.ease_factor == pytest.approx(2.36)

    def test_grade_four_keeps_ease(self, sm2, fresh):
        assert sm2.next_state(4, fresh, NOW).ease_factor == pytest.approx(2.5)


class TestFailedRecall:
    def test_resets_repetitions_and_keeps_ease(self, sm2):
        previous = SchedulingState("q1", interval_days=6, repetition_count=2, ease_factor=2.7)
        state = sm2.next_state(0, previous, NOW)

        assert state.repetition_count == 0
        assert state.interval_days == 1
        assert state.ease_factor == pytest.approx(2.7)
        assert state.next_review_at_ms == NOW + MILLIS_PER_DAY

    @pytest.mark.parametrize("grade", [0, 1, 2])
    def test_grades_below_three_fail(self, sm2, fresh, grade):
        assert sm2.next_state(grade, fresh, NOW).repetition_count == 0


class TestEaseFloor:
    def test_ease_never_drops_below_minimum(self, sm2):
        previous = SchedulingState("q1", interval_days=1, repetition_count=1, ease_factor=1.3)
        state = sm2.next_state(3, previous, NOW)

        assert state.ease_factor == pytest.approx(1.3)

    def test_repeated_hard_recalls_settle_at_floor(self, sm2, fresh):
        state = fresh
        for _ in range(20):
            state = sm2.next_state(3, state, NOW)
            assert state.ease_factor >= 1.3


class TestValidation:
    @pytest.mark.parametrize("grade", [-1, 6, 10])
    def test_out_of_range_grade(self, sm2, fresh, grade):
        with pytest.raises(ValueError):
            sm2.next_state(grade, fresh, NOW)

    @pytest.mark.parametrize("grade", [True, 3.0, "5"])
    def test_non_integer_grade(self, sm2, fresh, grade):
        with pytest.raises(ValueError):
            sm2.next_state(grade, fresh, NOW)

    def test_previous_state_untouched(self, sm2, fresh):
        sm2.next_state(5, fresh, NOW)
        assert fresh.repetition_count == 0


class TestHelpers:
    def test_binary_grade(self):
        assert SM2Scheduler.binary_grade(True) == 5
        assert SM2Scheduler.binary_grade(False) == 0

    @pytest.mark.parametrize(
        "value,expected",
        [(0.5, 1), (1.5, 2), (2.5, 3), (12.49, 12), (16.2, 16)],
    )
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected

    def test_config_from_settings(self):
        from config import Settings

        settings = Settings(sm2_initial_ease=2.2, sm2_minimum_ease=1.5, sm2_recall_threshold=4)
        config = SM2Config.from_settings(settings)

        assert config.initial_easiness == 2.2
        assert config.minimum_easiness == 1.5
        assert config.recall_threshold == 4
