# nexon_core/models/mission.py
from sqlalchemy import (
    Column,
    Integer,
    String,
    Float,
    DateTime,
    ForeignKey,
    JSON,
    Text,
    Boolean,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from datetime import datetime

from nexon_core.models.user import Base
from nexon_core.models.enums import MissionStatus


class Mission(Base):
    __tablename__ = "student_missions"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    mission_type = Column(String, nullable=False)
    config = Column(JSON, default=lambda: {})
    points = Column(Integer, nullable=False, default=0)
    deadline = Column(DateTime, nullable=True)
    status = Column(String, nullable=False, default=MissionStatus.ACTIVE.value)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    progress = relationship("MissionProgress", back_populates="mission")


class MissionProgress(Base):
    """Aggregated progress for one (mission, user) pair."""
    __tablename__ = "student_mission_progress"
    __table_args__ = (UniqueConstraint("mission_id", "user_id", name="uq_mission_progress_mission_user"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    mission_id = Column(Integer, ForeignKey("student_missions.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    current_count = Column(Integer, nullable=False, default=0)
    required_count = Column(Integer, nullable=False, default=0)
    accuracy = Column(Float, nullable=False, default=0.0)
    last_activity = Column(DateTime, nullable=True)
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Typed replacements for the old free-form progress blob
    unique_questions = Column(Integer, nullable=False, default=0)
    total_time_spent = Column(Integer, nullable=False, default=0)  # seconds
    points_awarded_at = Column(DateTime, nullable=True)

    mission = relationship("Mission", back_populates="progress")


class PracticeQuestionAttempt(Base):
    __tablename__ = "practice_question_attempts"
    __table_args__ = (
        UniqueConstraint("mission_id", "user_id", "question_id", name="uq_practice_attempt_question"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    mission_id = Column(Integer, ForeignKey("student_missions.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    question_id = Column(String, nullable=False)
    question_text = Column(Text, nullable=True)
    is_correct = Column(Boolean, nullable=False)
    attempts_count = Column(Integer, nullable=False, default=1)
    # Only the first-seen attempt at a question counts toward the mission
    counts_for_mission = Column(Boolean, nullable=False, default=True)
    first_attempt_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    last_attempt_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class LectureSectionProgress(Base):
    __tablename__ = "lecture_section_progress"
    __table_args__ = (
        UniqueConstraint(
            "mission_id", "user_id", "lecture_id", "section_id", name="uq_lecture_section"
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    mission_id = Column(Integer, ForeignKey("student_missions.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    lecture_id = Column(String, nullable=False)
    section_id = Column(String, nullable=False)
    is_completed = Column(Boolean, nullable=False, default=True)
    time_spent = Column(Integer, nullable=False, default=0)  # seconds
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)
