# nexon_core/models/requests.py
# Input models for the public operations. Every caller-supplied value is
# validated here before a session is opened.
from datetime import datetime, timezone
from typing import Annotated, Any, Dict

from pydantic import (
    BaseModel,
    BeforeValidator,
    Field,
    StringConstraints,
    ValidationError,
    field_validator,
)

from nexon_core.models.enums import Difficulty, MissionType
from nexon_core.utils.config import settings


def _int_to_str(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


UserKey = Annotated[
    str,
    StringConstraints(strip_whitespace=True, min_length=1, max_length=settings.max_user_key_length),
]
Identifier = Annotated[
    str,
    BeforeValidator(_int_to_str),
    StringConstraints(strip_whitespace=True, min_length=1, max_length=128),
]
# Optional scoping ids: a blank value means "not scoped".
OptionalIdentifier = Annotated[Identifier | None, BeforeValidator(_blank_to_none)]
MissionId = Annotated[int, Field(gt=0)]


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Stored timestamps are naive UTC; aware values are converted."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def describe_validation_error(exc: ValidationError) -> str:
    """Flattens a pydantic error into a single readable line."""
    parts = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ())) or "input"
        parts.append(f"{location}: {err.get('msg')}")
    return "Invalid input - " + "; ".join(parts)


class AnswerInput(BaseModel):
    user_key: UserKey
    topic_id: OptionalIdentifier = None
    subtopic_id: OptionalIdentifier = None
    difficulty: Difficulty
    is_correct: bool
    time_taken_sec: int = Field(0, ge=0)
    hints_used: int = Field(0, ge=0)
    attempt_index: int = Field(1, ge=1)


class RecommendationInput(BaseModel):
    user_key: UserKey
    topic_id: OptionalIdentifier = None


class UserKeyInput(BaseModel):
    user_key: UserKey


class MissionKeyInput(BaseModel):
    mission_id: MissionId
    user_key: UserKey


class PracticeAttemptInput(BaseModel):
    mission_id: MissionId
    user_key: UserKey
    question_id: Identifier
    question_text: str | None = None
    is_correct: bool


class LectureSectionInput(BaseModel):
    mission_id: MissionId
    user_key: UserKey
    lecture_id: Identifier
    section_id: Identifier
    time_spent_sec: int = Field(0, ge=0)


class MissionCreateInput(BaseModel):
    user_key: UserKey
    title: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=200)]
    mission_type: MissionType
    config: Dict[str, Any] = Field(default_factory=dict)
    points: int = Field(0, ge=0)
    deadline: datetime | None = None
    description: str | None = None
    created_by: str | None = None

    @field_validator("deadline")
    @classmethod
    def _normalize_deadline(cls, value: datetime | None) -> datetime | None:
        return to_naive_utc(value)

    @field_validator("config")
    @classmethod
    def _check_config(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        required = value.get("requiredQuestions")
        if required is not None and (not isinstance(required, int) or isinstance(required, bool) or required < 0):
            raise ValueError("requiredQuestions must be a non-negative integer")
        sections = value.get("requiredSections")
        if sections is not None and not isinstance(sections, list):
            raise ValueError("requiredSections must be a list")
        return value


class MissionUpdateInput(BaseModel):
    mission_id: MissionId
    title: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=200)] | None = None
    description: str | None = None
    deadline: datetime | None = None
    points: int | None = Field(None, ge=0)

    @field_validator("deadline")
    @classmethod
    def _normalize_deadline(cls, value: datetime | None) -> datetime | None:
        return to_naive_utc(value)


class MissionIdInput(BaseModel):
    mission_id: MissionId
