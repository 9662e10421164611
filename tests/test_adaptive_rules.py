# tests/test_adaptive_rules.py
import pytest

from nexon_core.models.enums import Difficulty, StreakType
from nexon_core.services.adaptive_difficulty import (
    DifficultyThresholds,
    calculate_streak,
    decide_adjustment,
    demote,
    difficulty_label,
    promote,
)

# Windows are newest-first: index 0 is the answer that was just recorded.
T, F = True, False


@pytest.mark.adaptive
class TestStreak:
    def test_empty_window_has_no_streak(self):
        streak = calculate_streak([])
        assert streak.count == 0
        assert streak.type is None

    def test_streak_counts_from_newest_until_first_mismatch(self):
        streak = calculate_streak([F, F, F, T, F])
        assert streak.count == 3
        assert streak.type == StreakType.INCORRECT

    def test_streak_runs_to_window_end(self):
        streak = calculate_streak([T, T, T, T, T])
        assert streak.count == 5
        assert streak.type == StreakType.CORRECT


@pytest.mark.adaptive
class TestLevelSteps:
    def test_promote_and_demote_are_clamped(self):
        assert promote(Difficulty.EASY) == Difficulty.MEDIUM
        assert promote(Difficulty.MEDIUM) == Difficulty.HARD
        assert promote(Difficulty.HARD) == Difficulty.HARD
        assert demote(Difficulty.HARD) == Difficulty.MEDIUM
        assert demote(Difficulty.MEDIUM) == Difficulty.EASY
        assert demote(Difficulty.EASY) == Difficulty.EASY

    def test_labels(self):
        assert difficulty_label(Difficulty.EASY) == "קל"
        assert difficulty_label(Difficulty.HARD) == "מאתגר"


@pytest.mark.adaptive
class TestDecisionTable:
    @pytest.mark.parametrize("window", [[], [T], [F, T]])
    def test_cold_start_never_adjusts(self, window):
        decision = decide_adjustment(window, Difficulty.MEDIUM)
        assert decision.should_adjust is False
        assert decision.new_difficulty == Difficulty.MEDIUM
        assert decision.confidence == pytest.approx(len(window) / 3)
        assert decision.reason == f"צריך עוד {3 - len(window)} תשובות"
        assert decision.stats is None

    def test_all_correct_on_medium_promotes_to_hard(self):
        decision = decide_adjustment([T, T, T, T, T], Difficulty.MEDIUM)
        assert decision.should_adjust is True
        assert decision.new_difficulty == Difficulty.HARD
        assert decision.rule == "promote_high_accuracy"
        assert decision.confidence == 1.0
        assert decision.stats.accuracy == 100.0
        assert decision.stats.correct_count == 5
        assert decision.stats.total_count == 5

    def test_all_correct_on_easy_uses_high_accuracy_rule_first(self):
        decision = decide_adjustment([T, T, T, T, T], Difficulty.EASY)
        assert decision.new_difficulty == Difficulty.MEDIUM
        assert decision.rule == "promote_high_accuracy"

    def test_eighty_percent_on_easy_promotes_to_medium(self):
        decision = decide_adjustment([T, T, F, T, T], Difficulty.EASY)
        assert decision.should_adjust is True
        assert decision.new_difficulty == Difficulty.MEDIUM
        assert decision.rule == "promote_easy"

    def test_eighty_percent_on_medium_stays(self):
        decision = decide_adjustment([T, T, F, T, T], Difficulty.MEDIUM)
        assert decision.should_adjust is False
        assert decision.new_difficulty == Difficulty.MEDIUM
        assert decision.reason == "ממשיכים בבינוני"

    def test_hard_never_promotes(self):
        decision = decide_adjustment([T, T, T, T, T], Difficulty.HARD)
        assert decision.should_adjust is False
        assert decision.new_difficulty == Difficulty.HARD

    def test_twenty_percent_on_medium_demotes_via_low_accuracy_rule(self):
        decision = decide_adjustment([F, F, T, F, F], Difficulty.MEDIUM)
        assert decision.should_adjust is True
        assert decision.new_difficulty == Difficulty.EASY
        assert decision.rule == "demote_low_accuracy"

    def test_forty_percent_on_medium_demotes_via_medium_rule(self):
        # Exactly 40% is not below the low-accuracy threshold, so the Medium rule fires
        decision = decide_adjustment([T, F, T, F, F], Difficulty.MEDIUM)
        assert decision.should_adjust is True
        assert decision.new_difficulty == Difficulty.EASY
        assert decision.rule == "demote_medium"
        assert decision.stats.accuracy == 40.0

    def test_low_accuracy_on_hard_steps_down_one_level(self):
        decision = decide_adjustment([F, F, F, F, T], Difficulty.HARD)
        assert decision.new_difficulty == Difficulty.MEDIUM
        assert decision.rule == "demote_low_accuracy"

    def test_incorrect_streak_on_hard_demotes(self):
        # 40% accuracy triggers no accuracy rule on Hard; the streak rule does
        decision = decide_adjustment([F, F, F, T, T], Difficulty.HARD)
        assert decision.should_adjust is True
        assert decision.new_difficulty == Difficulty.MEDIUM
        assert decision.rule == "demote_incorrect_streak"
        assert decision.stats.streak.count == 3
        assert decision.stats.streak.type == StreakType.INCORRECT

    def test_short_incorrect_streak_on_hard_stays(self):
        decision = decide_adjustment([F, F, T, T, T], Difficulty.HARD)
        assert decision.should_adjust is False
        assert decision.rule is None

    def test_easy_never_demotes(self):
        decision = decide_adjustment([F, F, F, F, F], Difficulty.EASY)
        assert decision.should_adjust is False
        assert decision.new_difficulty == Difficulty.EASY

    def test_partial_window_uses_observed_count(self):
        decision = decide_adjustment([T, T, T, T], Difficulty.MEDIUM)
        assert decision.new_difficulty == Difficulty.HARD
        assert decision.confidence == pytest.approx(0.8)
        assert decision.stats.accuracy == 100.0

    def test_custom_thresholds(self):
        strict = DifficultyThresholds(promote_accuracy=100.0, easy_promote_accuracy=100.0)
        decision = decide_adjustment([T, T, T, T, F], Difficulty.EASY, strict)
        assert decision.should_adjust is False
