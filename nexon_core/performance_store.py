# nexon_core/performance_store.py
# Store primitives shared by the adaptive difficulty engine and the mission
# tracker. Every function works inside the caller's session; the caller owns
# the transaction and commits it.
import asyncio
from datetime import datetime
from typing import List, Tuple

from sqlalchemy import and_, case, delete, func, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from nexon_core.models.answer import AnswerEvent
from nexon_core.models.enums import Difficulty, MissionStatus
from nexon_core.models.mission import (
    LectureSectionProgress,
    Mission,
    MissionProgress,
    PracticeQuestionAttempt,
)
from nexon_core.models.requests import AnswerInput
from nexon_core.models.user import AdaptiveAnswer, User
from nexon_core.utils.config import settings
from nexon_core.utils.logger import logger

# Failures that are reported to callers as structured results.
STORE_ERRORS = (SQLAlchemyError, OSError, asyncio.TimeoutError)


def _insert_for(session: AsyncSession, model):
    """Returns a dialect insert construct that supports ON CONFLICT."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"Atomic upserts are not supported on dialect '{dialect}'")


# --- Identity ---

async def get_or_create_user(session: AsyncSession, user_key: str) -> int:
    """
    Returns the internal id for user_key, creating the user on first contact.
    The unique constraint on user_key makes concurrent first contacts safe.
    """
    stmt = (
        _insert_for(session, User)
        .values(
            user_key=user_key,
            email=f"student_{user_key[:8]}@{settings.user_email_domain}",
            display_name=settings.default_display_name,
            grade=settings.default_user_grade,
            total_points=0,
        )
        .on_conflict_do_nothing(index_elements=["user_key"])
        .returning(User.id)
    )
    created_id = (await session.execute(stmt)).scalar_one_or_none()
    if created_id is not None:
        logger.info(f"Created user record for '{user_key}' (id={created_id}).")
        return created_id
    return await session.scalar(select(User.id).where(User.user_key == user_key))


async def find_user_id(session: AsyncSession, user_key: str) -> int | None:
    return await session.scalar(select(User.id).where(User.user_key == user_key))


async def get_user_points(session: AsyncSession, user_key: str) -> int:
    points = await session.scalar(select(User.total_points).where(User.user_key == user_key))
    return points or 0


# --- Answer events ---

async def append_answer(session: AsyncSession, user_id: int, answer: AnswerInput) -> None:
    session.add(
        AdaptiveAnswer(
            user_id=user_id,
            topic_id=answer.topic_id,
            subtopic_id=answer.subtopic_id,
            difficulty=answer.difficulty.value,
            is_correct=answer.is_correct,
            time_taken=answer.time_taken_sec,
            hints_used=answer.hints_used,
            attempts=answer.attempt_index,
            created_at=datetime.utcnow(),
        )
    )
    await session.flush()


async def recent_answers(
    session: AsyncSession, user_key: str, topic_id: str | None, limit: int
) -> List[AnswerEvent]:
    """Loads the last `limit` answers for a user, newest first. topic_id=None spans all topics."""
    query = (
        select(AdaptiveAnswer)
        .join(User, User.id == AdaptiveAnswer.user_id)
        .where(User.user_key == user_key)
    )
    if topic_id is not None:
        query = query.where(AdaptiveAnswer.topic_id == topic_id)
    query = query.order_by(AdaptiveAnswer.created_at.desc(), AdaptiveAnswer.id.desc()).limit(limit)

    rows = (await session.execute(query)).scalars().all()
    logger.debug(f"Loaded {len(rows)} recent answers for '{user_key}' (topic={topic_id}, limit={limit}).")
    return [
        AnswerEvent(
            user_key=user_key,
            topic_id=row.topic_id,
            subtopic_id=row.subtopic_id,
            difficulty=Difficulty(row.difficulty),
            is_correct=bool(row.is_correct),
            time_taken_sec=row.time_taken,
            hints_used=row.hints_used,
            attempt_index=row.attempts,
            timestamp=row.created_at,
        )
        for row in rows
    ]


# --- Missions: lookups ---

async def get_mission(session: AsyncSession, mission_id: int) -> Mission | None:
    return await session.get(Mission, mission_id)


async def get_progress(session: AsyncSession, mission_id: int, user_id: int) -> MissionProgress | None:
    result = await session.execute(
        select(MissionProgress).where(
            MissionProgress.mission_id == mission_id,
            MissionProgress.user_id == user_id,
        )
    )
    return result.scalars().first()


async def lock_progress(session: AsyncSession, mission_id: int, user_id: int) -> MissionProgress | None:
    """
    Loads the progress row and holds a row lock on it until the caller commits,
    so tracking calls for the same (mission, user) run one after another.
    SQLite ignores FOR UPDATE; its single writer gives the same ordering.
    """
    result = await session.execute(
        select(MissionProgress)
        .where(
            MissionProgress.mission_id == mission_id,
            MissionProgress.user_id == user_id,
        )
        .with_for_update()
    )
    return result.scalars().first()


async def get_mission_with_progress(
    session: AsyncSession, mission_id: int, user_id: int | None
) -> Tuple[Mission, MissionProgress | None] | None:
    mission = await get_mission(session, mission_id)
    if mission is None:
        return None
    progress = await get_progress(session, mission_id, user_id) if user_id is not None else None
    return mission, progress


async def list_user_missions(
    session: AsyncSession, user_id: int
) -> List[Tuple[Mission, MissionProgress | None]]:
    """Active first, then completed, then anything else; soonest deadline first (no deadline last); newest first."""
    status_rank = case(
        (Mission.status == MissionStatus.ACTIVE.value, 1),
        (Mission.status == MissionStatus.COMPLETED.value, 2),
        else_=3,
    )
    query = (
        select(Mission, MissionProgress)
        .outerjoin(
            MissionProgress,
            and_(MissionProgress.mission_id == Mission.id, MissionProgress.user_id == user_id),
        )
        .where(Mission.user_id == user_id)
        .order_by(
            status_rank,
            Mission.deadline.is_(None),
            Mission.deadline.asc(),
            Mission.created_at.desc(),
            Mission.id.desc(),
        )
    )
    return [(mission, progress) for mission, progress in (await session.execute(query)).all()]


async def list_attempts(session: AsyncSession, mission_id: int, user_id: int) -> List[PracticeQuestionAttempt]:
    result = await session.execute(
        select(PracticeQuestionAttempt)
        .where(
            PracticeQuestionAttempt.mission_id == mission_id,
            PracticeQuestionAttempt.user_id == user_id,
        )
        .order_by(PracticeQuestionAttempt.first_attempt_at.desc(), PracticeQuestionAttempt.id.desc())
    )
    return list(result.scalars().all())


async def list_sections(session: AsyncSession, mission_id: int, user_id: int) -> List[LectureSectionProgress]:
    result = await session.execute(
        select(LectureSectionProgress)
        .where(
            LectureSectionProgress.mission_id == mission_id,
            LectureSectionProgress.user_id == user_id,
        )
        .order_by(LectureSectionProgress.started_at.asc(), LectureSectionProgress.id.asc())
    )
    return list(result.scalars().all())


# --- Missions: practice ---

async def record_attempt(
    session: AsyncSession,
    mission_id: int,
    user_id: int,
    question_id: str,
    question_text: str | None,
    is_correct: bool,
) -> bool:
    """
    Inserts the first attempt at a question or updates the existing row in place.
    Returns True only when this call created the row (the attempt counts for the mission).
    """
    now = datetime.utcnow()
    stmt = (
        _insert_for(session, PracticeQuestionAttempt)
        .values(
            mission_id=mission_id,
            user_id=user_id,
            question_id=question_id,
            question_text=question_text,
            is_correct=is_correct,
            attempts_count=1,
            counts_for_mission=True,
            first_attempt_at=now,
            last_attempt_at=now,
        )
        .on_conflict_do_nothing(index_elements=["mission_id", "user_id", "question_id"])
        .returning(PracticeQuestionAttempt.id)
    )
    if (await session.execute(stmt)).scalar_one_or_none() is not None:
        return True

    await session.execute(
        update(PracticeQuestionAttempt)
        .where(
            PracticeQuestionAttempt.mission_id == mission_id,
            PracticeQuestionAttempt.user_id == user_id,
            PracticeQuestionAttempt.question_id == question_id,
        )
        .values(
            attempts_count=PracticeQuestionAttempt.attempts_count + 1,
            is_correct=is_correct,
            last_attempt_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    return False


async def refresh_practice_progress(session: AsyncSession, mission_id: int, user_id: int) -> int:
    """Re-derives count and accuracy from the counted attempts. Returns the new count."""
    row = (
        await session.execute(
            select(
                func.count(PracticeQuestionAttempt.id),
                func.coalesce(
                    func.sum(case((PracticeQuestionAttempt.is_correct.is_(True), 1), else_=0)), 0
                ),
            ).where(
                PracticeQuestionAttempt.mission_id == mission_id,
                PracticeQuestionAttempt.user_id == user_id,
                PracticeQuestionAttempt.counts_for_mission.is_(True),
            )
        )
    ).one()
    unique_count, correct_count = int(row[0]), int(row[1])
    accuracy = round(correct_count / unique_count * 100, 2) if unique_count else 0.0

    await session.execute(
        update(MissionProgress)
        .where(MissionProgress.mission_id == mission_id, MissionProgress.user_id == user_id)
        .values(
            current_count=unique_count,
            unique_questions=unique_count,
            accuracy=accuracy,
            last_activity=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    logger.debug(f"Practice progress for mission {mission_id}/user {user_id}: {unique_count} questions, {accuracy:.2f}% accuracy")
    return unique_count


# --- Missions: lectures ---

async def upsert_section(
    session: AsyncSession,
    mission_id: int,
    user_id: int,
    lecture_id: str,
    section_id: str,
    time_spent: int,
) -> None:
    """Marks a section completed; repeats accumulate time_spent on the same row."""
    now = datetime.utcnow()
    table = LectureSectionProgress.__table__
    stmt = _insert_for(session, LectureSectionProgress).values(
        mission_id=mission_id,
        user_id=user_id,
        lecture_id=lecture_id,
        section_id=section_id,
        is_completed=True,
        time_spent=time_spent,
        started_at=now,
        completed_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["mission_id", "user_id", "lecture_id", "section_id"],
        set_={
            "is_completed": True,
            "time_spent": table.c.time_spent + stmt.excluded.time_spent,
            "completed_at": now,
        },
    )
    await session.execute(stmt)


async def refresh_lecture_progress(session: AsyncSession, mission_id: int, user_id: int) -> int:
    """Re-derives count and total time from completed sections. Returns the new count."""
    row = (
        await session.execute(
            select(
                func.count(LectureSectionProgress.id),
                func.coalesce(func.sum(LectureSectionProgress.time_spent), 0),
            ).where(
                LectureSectionProgress.mission_id == mission_id,
                LectureSectionProgress.user_id == user_id,
                LectureSectionProgress.is_completed.is_(True),
            )
        )
    ).one()
    completed_count, total_time = int(row[0]), int(row[1])

    await session.execute(
        update(MissionProgress)
        .where(MissionProgress.mission_id == mission_id, MissionProgress.user_id == user_id)
        .values(
            current_count=completed_count,
            total_time_spent=total_time,
            last_activity=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    logger.debug(f"Lecture progress for mission {mission_id}/user {user_id}: {completed_count} sections, {total_time}s")
    return completed_count


# --- Missions: completion and reward ---

async def mission_requirement_met(session: AsyncSession, mission_id: int, user_id: int) -> bool:
    """The single completion predicate for every mission type."""
    result = await session.execute(
        select(MissionProgress.current_count >= MissionProgress.required_count).where(
            MissionProgress.mission_id == mission_id,
            MissionProgress.user_id == user_id,
        )
    )
    return bool(result.scalar_one_or_none())


async def mark_mission_completed(session: AsyncSession, mission_id: int) -> bool:
    """Active -> Completed. Returns True only for the call that made the transition."""
    now = datetime.utcnow()
    result = await session.execute(
        update(Mission)
        .where(Mission.id == mission_id, Mission.status == MissionStatus.ACTIVE.value)
        .values(status=MissionStatus.COMPLETED.value, completed_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def award_points_once(session: AsyncSession, mission_id: int, user_id: int) -> int:
    """
    Grants the mission's points to the user at most once per (mission, user).
    Returns the points granted by this call.
    """
    claimed = await session.execute(
        update(MissionProgress)
        .where(
            MissionProgress.mission_id == mission_id,
            MissionProgress.user_id == user_id,
            MissionProgress.points_awarded_at.is_(None),
        )
        .values(points_awarded_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        return 0

    points = await session.scalar(select(Mission.points).where(Mission.id == mission_id)) or 0
    if points > 0:
        await session.execute(
            update(User)
            .where(User.id == user_id)
            .values(total_points=User.total_points + points)
            .execution_options(synchronize_session=False)
        )
    return points


# --- Missions: assignment ---

async def insert_mission(
    session: AsyncSession,
    user_id: int,
    title: str,
    mission_type: str,
    config: dict,
    points: int,
    deadline: datetime | None,
    description: str | None,
    created_by: str | None,
) -> Mission:
    mission = Mission(
        user_id=user_id,
        title=title,
        description=description,
        mission_type=mission_type,
        config=config,
        points=points,
        deadline=deadline,
        status=MissionStatus.ACTIVE.value,
        created_by=created_by,
        created_at=datetime.utcnow(),
        completed_at=None,
    )
    session.add(mission)
    await session.flush()
    return mission


async def init_progress(session: AsyncSession, mission_id: int, user_id: int, required_count: int) -> None:
    stmt = (
        _insert_for(session, MissionProgress)
        .values(
            mission_id=mission_id,
            user_id=user_id,
            current_count=0,
            required_count=required_count,
            accuracy=0.0,
            started_at=datetime.utcnow(),
            unique_questions=0,
            total_time_spent=0,
        )
        .on_conflict_do_nothing(index_elements=["mission_id", "user_id"])
    )
    await session.execute(stmt)


async def delete_mission_rows(session: AsyncSession, mission_id: int) -> bool:
    for model in (PracticeQuestionAttempt, LectureSectionProgress, MissionProgress):
        await session.execute(delete(model).where(model.mission_id == mission_id))
    result = await session.execute(delete(Mission).where(Mission.id == mission_id))
    return result.rowcount == 1


async def list_all_missions(session: AsyncSession) -> List[Tuple[Mission, User | None, int]]:
    """Every mission with its owner and number of progress rows, newest first."""
    query = (
        select(Mission, User, func.count(func.distinct(MissionProgress.id)))
        .outerjoin(User, User.id == Mission.user_id)
        .outerjoin(MissionProgress, MissionProgress.mission_id == Mission.id)
        .group_by(Mission.id, User.id)
        .order_by(Mission.created_at.desc(), Mission.id.desc())
    )
    rows = (await session.execute(query)).all()
    return [(mission, owner, int(entries)) for mission, owner, entries in rows]


async def mission_counts(session: AsyncSession, now: datetime) -> dict:
    """Aggregate counts across all missions; 'expired' is derived from the deadline."""
    is_expired = and_(
        Mission.status == MissionStatus.ACTIVE.value,
        Mission.deadline.is_not(None),
        Mission.deadline < now,
    )
    is_active = and_(
        Mission.status == MissionStatus.ACTIVE.value,
        or_(Mission.deadline.is_(None), Mission.deadline >= now),
    )
    row = (
        await session.execute(
            select(
                func.count(case((is_active, 1))),
                func.count(case((Mission.status == MissionStatus.COMPLETED.value, 1))),
                func.count(case((is_expired, 1))),
                func.count(func.distinct(Mission.user_id)),
            )
        )
    ).one()
    avg_accuracy = await session.scalar(select(func.avg(MissionProgress.accuracy)))
    return {
        "active": int(row[0]),
        "completed": int(row[1]),
        "expired": int(row[2]),
        "users_with_missions": int(row[3]),
        "avg_accuracy": round(float(avg_accuracy), 2) if avg_accuracy is not None else None,
    }
