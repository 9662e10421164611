# nexon_core/models/user.py
from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    ForeignKey,
    Boolean,
    Index,
)
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime


Base = declarative_base()


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, autoincrement=True)
    # Opaque, caller-supplied identifier. Never treated as authenticated.
    user_key = Column(String(128), unique=True, nullable=False, index=True)
    email = Column(String, nullable=True)
    display_name = Column(String, nullable=True)
    grade = Column(String, nullable=True)
    total_points = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    answers = relationship("AdaptiveAnswer", back_populates="user")


class AdaptiveAnswer(Base):
    """One graded attempt. Append-only."""
    __tablename__ = "adaptive_answers"
    __table_args__ = (
        Index("ix_adaptive_answers_user_topic_created", "user_id", "topic_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    topic_id = Column(String, nullable=True)
    subtopic_id = Column(String, nullable=True)
    difficulty = Column(String, nullable=False)
    is_correct = Column(Boolean, nullable=False)
    time_taken = Column(Integer, nullable=False, default=0)  # seconds
    hints_used = Column(Integer, nullable=False, default=0)
    attempts = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationship
    user = relationship("User", back_populates="answers")
