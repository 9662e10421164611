# nexon_core/services/adaptive_difficulty.py
from dataclasses import dataclass
from typing import Sequence

from pydantic import ValidationError

from nexon_core import performance_store as store
from nexon_core.models.enums import DIFFICULTY_ORDER, Difficulty, StreakType
from nexon_core.models.requests import AnswerInput, RecommendationInput, describe_validation_error
from nexon_core.models.results import (
    DecisionStats,
    DifficultyDecision,
    Recommendation,
    RecommendationDetails,
    Streak,
)
from nexon_core.utils.config import settings
from nexon_core.utils.db import AsyncSessionLocal
from nexon_core.utils.logger import logger

DIFFICULTY_LABELS = {
    Difficulty.EASY: "קל",
    Difficulty.MEDIUM: "בינוני",
    Difficulty.HARD: "מאתגר",
}

SAVE_ERROR_REASON = "שגיאה בשמירה"
GENERIC_ERROR_REASON = "שגיאה"
INVALID_INPUT_REASON = "קלט לא תקין"


@dataclass(frozen=True)
class DifficultyThresholds:
    window_size: int = settings.adaptive_window_size
    min_questions: int = settings.adaptive_min_questions
    promote_accuracy: float = settings.promote_accuracy
    easy_promote_accuracy: float = settings.easy_promote_accuracy
    demote_accuracy: float = settings.demote_accuracy
    medium_demote_accuracy: float = settings.medium_demote_accuracy
    demote_streak: int = settings.demote_streak
    recommendation_window_size: int = settings.recommendation_window_size
    recommend_hard_accuracy: float = settings.recommend_hard_accuracy
    recommend_medium_accuracy: float = settings.recommend_medium_accuracy


def difficulty_label(difficulty: Difficulty) -> str:
    return DIFFICULTY_LABELS.get(difficulty, DIFFICULTY_LABELS[Difficulty.MEDIUM])


def _coerce_difficulty(value) -> Difficulty:
    try:
        return Difficulty(value)
    except ValueError:
        return Difficulty.MEDIUM


def promote(difficulty: Difficulty) -> Difficulty:
    index = DIFFICULTY_ORDER.index(difficulty)
    return DIFFICULTY_ORDER[min(index + 1, len(DIFFICULTY_ORDER) - 1)]


def demote(difficulty: Difficulty) -> Difficulty:
    index = DIFFICULTY_ORDER.index(difficulty)
    return DIFFICULTY_ORDER[max(index - 1, 0)]


def calculate_streak(outcomes: Sequence[bool]) -> Streak:
    """Run length of identical outcomes counting back from the newest (first) entry."""
    if not outcomes:
        return Streak(count=0, type=None)

    newest = outcomes[0]
    count = 0
    for outcome in outcomes:
        if outcome != newest:
            break
        count += 1
    return Streak(count=count, type=StreakType.CORRECT if newest else StreakType.INCORRECT)


def decide_adjustment(
    outcomes: Sequence[bool],
    current: Difficulty,
    thresholds: DifficultyThresholds = DifficultyThresholds(),
) -> DifficultyDecision:
    """
    Applies the ordered decision table to a newest-first window of correctness
    flags. The first rule that matches wins.
    """
    total = len(outcomes)
    if total < thresholds.min_questions:
        missing = thresholds.min_questions - total
        return DifficultyDecision(
            should_adjust=False,
            new_difficulty=current,
            reason=f"צריך עוד {missing} תשובות",
            confidence=total / thresholds.min_questions,
        )

    correct_count = sum(1 for outcome in outcomes if outcome)
    accuracy = correct_count / total * 100
    streak = calculate_streak(outcomes)

    rule = None
    new_difficulty = current
    reason = ""

    if accuracy >= thresholds.promote_accuracy and current != Difficulty.HARD:
        rule = "promote_high_accuracy"
        new_difficulty = promote(current)
        reason = f"מצוין! {correct_count}/{total} נכון. זמן להעלות רמה!"
    elif accuracy >= thresholds.easy_promote_accuracy and current == Difficulty.EASY:
        rule = "promote_easy"
        new_difficulty = Difficulty.MEDIUM
        reason = "יפה מאוד! בואו ננסה רמה בינונית"
    elif accuracy < thresholds.demote_accuracy and current != Difficulty.EASY:
        rule = "demote_low_accuracy"
        new_difficulty = demote(current)
        reason = "בואו נחזק את היסודות"
    elif accuracy < thresholds.medium_demote_accuracy and current == Difficulty.MEDIUM:
        rule = "demote_medium"
        new_difficulty = Difficulty.EASY
        reason = "בואו נתרגל ברמה קלה יותר"
    elif (
        streak.type == StreakType.INCORRECT
        and streak.count >= thresholds.demote_streak
        and current != Difficulty.EASY
    ):
        rule = "demote_incorrect_streak"
        new_difficulty = demote(current)
        reason = f"{streak.count} שגיאות ברצף - בואו נוריד רמה"

    should_adjust = rule is not None
    if not should_adjust:
        reason = f"ממשיכים ב{difficulty_label(current)}"

    return DifficultyDecision(
        should_adjust=should_adjust,
        new_difficulty=new_difficulty,
        reason=reason,
        confidence=min(total / thresholds.window_size, 1.0),
        rule=rule,
        stats=DecisionStats(
            accuracy=round(accuracy, 1),
            correct_count=correct_count,
            total_count=total,
            streak=streak,
        ),
    )


class AdaptiveDifficultyService:
    """
    Records graded answers and turns the recent window into difficulty
    decisions. Holds no per-user state; every call opens its own session.
    """

    def __init__(self, session_factory=AsyncSessionLocal, thresholds: DifficultyThresholds | None = None):
        self.session_factory = session_factory
        self.thresholds = thresholds or DifficultyThresholds()

    async def record_answer(
        self,
        user_key: str,
        topic_id: str | None,
        difficulty: Difficulty | str,
        is_correct: bool,
        subtopic_id: str | None = None,
        time_taken_sec: int = 0,
        hints_used: int = 0,
        attempt_index: int = 1,
    ) -> bool:
        """Appends one answer event. Returns False if the input is invalid or the store fails."""
        try:
            answer = AnswerInput(
                user_key=user_key,
                topic_id=topic_id,
                subtopic_id=subtopic_id,
                difficulty=difficulty,
                is_correct=is_correct,
                time_taken_sec=time_taken_sec,
                hints_used=hints_used,
                attempt_index=attempt_index,
            )
        except ValidationError as e:
            logger.warning(f"Rejected answer event: {describe_validation_error(e)}")
            return False
        return await self._record(answer)

    async def _record(self, answer: AnswerInput) -> bool:
        try:
            async with self.session_factory() as session:
                user_id = await store.get_or_create_user(session, answer.user_key)
                await store.append_answer(session, user_id, answer)
                await session.commit()
        except store.STORE_ERRORS as e:
            logger.error(f"Failed to record answer for '{answer.user_key}': {e}")
            return False
        logger.debug(
            f"Recorded answer: user={answer.user_key}, topic={answer.topic_id}, "
            f"difficulty={answer.difficulty.value}, correct={answer.is_correct}"
        )
        return True

    async def evaluate(
        self,
        user_key: str,
        topic_id: str | None,
        current_difficulty: Difficulty | str,
        is_correct: bool,
        subtopic_id: str | None = None,
        time_taken_sec: int = 0,
        hints_used: int = 0,
        attempt_index: int = 1,
    ) -> DifficultyDecision:
        """
        Records the answer, then decides on the window that now includes it.
        Store failures degrade to "stay at the current difficulty".
        """
        try:
            answer = AnswerInput(
                user_key=user_key,
                topic_id=topic_id,
                subtopic_id=subtopic_id,
                difficulty=current_difficulty,
                is_correct=is_correct,
                time_taken_sec=time_taken_sec,
                hints_used=hints_used,
                attempt_index=attempt_index,
            )
        except ValidationError as e:
            message = describe_validation_error(e)
            logger.warning(f"Rejected difficulty evaluation: {message}")
            return DifficultyDecision(
                should_adjust=False,
                new_difficulty=_coerce_difficulty(current_difficulty),
                reason=INVALID_INPUT_REASON,
                confidence=0.0,
                success=False,
                error=message,
            )

        current = answer.difficulty
        if not await self._record(answer):
            return DifficultyDecision(
                should_adjust=False,
                new_difficulty=current,
                reason=SAVE_ERROR_REASON,
                confidence=0.0,
                success=False,
                error="Failed to record answer",
            )

        try:
            async with self.session_factory() as session:
                window = await store.recent_answers(
                    session, answer.user_key, answer.topic_id, self.thresholds.window_size
                )
        except store.STORE_ERRORS as e:
            logger.error(f"Failed to load answer window for '{answer.user_key}': {e}")
            return DifficultyDecision(
                should_adjust=False,
                new_difficulty=current,
                reason=GENERIC_ERROR_REASON,
                confidence=0.0,
                success=False,
                error="Failed to load recent answers",
            )

        decision = decide_adjustment([event.is_correct for event in window], current, self.thresholds)
        if decision.should_adjust:
            logger.info(
                f"Difficulty adjustment for '{answer.user_key}' (topic={answer.topic_id}): "
                f"{current.value} -> {decision.new_difficulty.value} [{decision.rule}]"
            )
        else:
            logger.debug(f"No adjustment for '{answer.user_key}', staying at {current.value} ({len(window)} answers in window)")
        return decision

    async def recommend(self, user_key: str, topic_id: str | None = None) -> Recommendation:
        """Read-only starting difficulty based on the longer recommendation window."""
        try:
            request = RecommendationInput(user_key=user_key, topic_id=topic_id)
        except ValidationError as e:
            message = describe_validation_error(e)
            logger.warning(f"Rejected recommendation request: {message}")
            return Recommendation(
                difficulty=Difficulty.MEDIUM,
                reason="error",
                confidence=0.0,
                message="התחל מבינוני",
                success=False,
                error=message,
            )

        try:
            async with self.session_factory() as session:
                window = await store.recent_answers(
                    session, request.user_key, request.topic_id, self.thresholds.recommendation_window_size
                )
        except store.STORE_ERRORS as e:
            logger.error(f"Failed to load history for recommendation ('{request.user_key}'): {e}")
            return Recommendation(
                difficulty=Difficulty.MEDIUM,
                reason="error",
                confidence=0.0,
                message="התחל מבינוני",
                success=False,
                error="Failed to load recent answers",
            )

        if not window:
            return Recommendation(
                difficulty=Difficulty.MEDIUM,
                reason="no_data",
                confidence=0.0,
                message="התחל מרמת בינוני",
            )

        total = len(window)
        correct_count = sum(1 for event in window if event.is_correct)
        accuracy = correct_count / total * 100

        if accuracy >= self.thresholds.recommend_hard_accuracy:
            difficulty, message = Difficulty.HARD, "מצוין! מוכן לאתגרים"
        elif accuracy >= self.thresholds.recommend_medium_accuracy:
            difficulty, message = Difficulty.MEDIUM, "טוב מאוד! ממשיכים"
        else:
            difficulty, message = Difficulty.EASY, "בואו נחזק יסודות"

        return Recommendation(
            difficulty=difficulty,
            reason="performance",
            confidence=min(total / self.thresholds.recommendation_window_size, 1.0),
            message=message,
            details=RecommendationDetails(
                accuracy=round(accuracy, 1),
                correct_count=correct_count,
                total_count=total,
            ),
        )


# Default instance bound to the application's session factory
adaptive_difficulty_service = AdaptiveDifficultyService()
