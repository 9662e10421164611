# nexon_core/models/results.py
# Value objects returned across the component boundary. Failures are
# reported through `success`/`error` rather than raised.
from datetime import datetime
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from nexon_core.models.enums import Difficulty, MissionStatus, MissionType, StreakType


class Streak(BaseModel):
    count: int = 0
    type: StreakType | None = None


class DecisionStats(BaseModel):
    accuracy: float
    correct_count: int
    total_count: int
    streak: Streak


class DifficultyDecision(BaseModel):
    should_adjust: bool
    new_difficulty: Difficulty
    reason: str
    confidence: float = Field(ge=0.0, le=1.0)
    stats: DecisionStats | None = None
    rule: str | None = None  # Name of the rule that fired, if any
    success: bool = True
    error: str | None = None


class RecommendationDetails(BaseModel):
    accuracy: float
    correct_count: int
    total_count: int


class Recommendation(BaseModel):
    difficulty: Difficulty
    reason: str  # "no_data", "performance" or "error"
    confidence: float = Field(ge=0.0, le=1.0)
    message: str
    details: RecommendationDetails | None = None
    success: bool = True
    error: str | None = None


class OperationResult(BaseModel):
    success: bool
    error: str | None = None
    message: str | None = None


class AttemptResult(OperationResult):
    counts_for_mission: bool = False
    mission_completed: bool = False
    points_awarded: int = 0


class SectionResult(OperationResult):
    mission_completed: bool = False
    points_awarded: int = 0


class CompletionResult(OperationResult):
    completed: bool = False
    points_awarded: int = 0


class ProgressData(BaseModel):
    unique_questions: int = 0
    total_time_spent: int = 0
    started_at: datetime | None = None


class MissionSummary(BaseModel):
    id: int
    title: str
    description: str | None = None
    mission_type: MissionType
    config: Dict[str, Any] = Field(default_factory=dict)
    points: int = 0
    deadline: datetime | None = None
    status: MissionStatus
    display_status: MissionStatus
    created_at: datetime
    completed_at: datetime | None = None
    current_count: int | None = None
    required_count: int | None = None
    accuracy: float | None = None
    last_activity: datetime | None = None
    progress: ProgressData | None = None
    progress_percentage: float = 0.0
    points_awarded: bool = False


class PracticeAttemptView(BaseModel):
    question_id: str
    question_text: str | None = None
    is_correct: bool
    attempts_count: int
    counts_for_mission: bool
    first_attempt_at: datetime
    last_attempt_at: datetime


class SectionProgressView(BaseModel):
    lecture_id: str
    section_id: str
    is_completed: bool
    time_spent: int
    started_at: datetime
    completed_at: datetime | None = None


class MissionDetail(MissionSummary):
    attempts: List[PracticeAttemptView] = Field(default_factory=list)
    sections: List[SectionProgressView] = Field(default_factory=list)


class MissionListResult(OperationResult):
    missions: List[MissionSummary] = Field(default_factory=list)


class MissionDetailResult(OperationResult):
    mission: MissionDetail | None = None


class MissionResult(OperationResult):
    mission: MissionSummary | None = None


class MissionStats(BaseModel):
    active: int = 0
    completed: int = 0
    expired: int = 0
    users_with_missions: int = 0
    avg_accuracy: float | None = None


class MissionStatsResult(OperationResult):
    stats: MissionStats | None = None


class AdminMissionView(MissionSummary):
    """A mission as seen by the assigner: owner identity instead of progress."""
    user_key: str | None = None
    user_name: str | None = None
    user_email: str | None = None
    progress_entries: int = 0


class AdminMissionListResult(OperationResult):
    missions: List[AdminMissionView] = Field(default_factory=list)
