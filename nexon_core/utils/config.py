# nexon_core/utils/config.py
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load .env file before defining settings
load_dotenv()

class Settings(BaseSettings):
    # --- Store ---
    database_url: str = "sqlite+aiosqlite:///./nexon.db"
    db_connect_timeout_s: float = 5.0
    db_pool_size: int = 5  # Ignored for SQLite URLs
    db_pool_timeout_s: float = 5.0
    db_echo: bool = False  # Set to True to see SQL queries

    log_level: str = "INFO"

    # --- Adaptive difficulty ---
    adaptive_window_size: int = 5
    adaptive_min_questions: int = 3
    recommendation_window_size: int = 10

    promote_accuracy: float = 85.0
    easy_promote_accuracy: float = 70.0
    demote_accuracy: float = 40.0
    medium_demote_accuracy: float = 50.0
    demote_streak: int = 3

    recommend_hard_accuracy: float = 85.0
    recommend_medium_accuracy: float = 60.0

    # --- Missions ---
    default_required_questions: int = 10

    # --- Identity defaults for users created on first contact ---
    default_user_grade: str = "grade8"
    default_display_name: str = "Student"
    user_email_domain: str = "nexon.app"
    max_user_key_length: int = 128

settings = Settings()

# --- Consistency checks ---
if settings.adaptive_window_size < settings.adaptive_min_questions:
    raise ValueError("ADAPTIVE_WINDOW_SIZE must be >= ADAPTIVE_MIN_QUESTIONS")
for _name in (
    "promote_accuracy",
    "easy_promote_accuracy",
    "demote_accuracy",
    "medium_demote_accuracy",
    "recommend_hard_accuracy",
    "recommend_medium_accuracy",
):
    if not 0.0 <= getattr(settings, _name) <= 100.0:
        raise ValueError(f"{_name.upper()} must be between 0 and 100")
