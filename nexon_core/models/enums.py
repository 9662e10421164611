# nexon_core/models/enums.py
from enum import Enum

class Difficulty(str, Enum):
    """Question difficulty levels, ordered from easiest to hardest."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

class StreakType(str, Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"

class MissionType(str, Enum):
    """Kinds of missions an assigner can hand out."""
    PRACTICE = "practice"
    LECTURE = "lecture"

class MissionStatus(str, Enum):
    """Mission status. EXPIRED is only ever derived at read time, never stored."""
    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"

DIFFICULTY_ORDER = [Difficulty.EASY, Difficulty.MEDIUM, Difficulty.HARD]
