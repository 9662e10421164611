# nexon_core/models/answer.py
from pydantic import BaseModel, ConfigDict
from datetime import datetime

from nexon_core.models.enums import Difficulty

class AnswerEvent(BaseModel):
    """One graded attempt, as read back from the performance store."""
    model_config = ConfigDict(frozen=True)

    user_key: str
    topic_id: str | None = None
    subtopic_id: str | None = None
    difficulty: Difficulty
    is_correct: bool
    time_taken_sec: int = 0
    hints_used: int = 0
    attempt_index: int = 1
    timestamp: datetime
