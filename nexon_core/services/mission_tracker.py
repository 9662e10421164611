# nexon_core/services/mission_tracker.py
from datetime import datetime
from typing import Tuple

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from nexon_core import performance_store as store
from nexon_core.models.enums import MissionStatus, MissionType
from nexon_core.models.mission import Mission, MissionProgress
from nexon_core.models.requests import (
    LectureSectionInput,
    MissionKeyInput,
    PracticeAttemptInput,
    UserKeyInput,
    describe_validation_error,
)
from nexon_core.models.results import (
    AttemptResult,
    CompletionResult,
    MissionDetail,
    MissionDetailResult,
    MissionListResult,
    MissionSummary,
    PracticeAttemptView,
    ProgressData,
    SectionProgressView,
    SectionResult,
)
from nexon_core.utils.db import AsyncSessionLocal
from nexon_core.utils.logger import logger

MISSION_NOT_FOUND = "Mission not found"
PROGRESS_NOT_FOUND = "Mission progress not found for user"


def display_status(status: str, deadline: datetime | None, now: datetime) -> MissionStatus:
    """Active missions past their deadline are shown as expired. Nothing is written back."""
    stored = MissionStatus(status)
    if stored == MissionStatus.ACTIVE and deadline is not None and deadline < now:
        return MissionStatus.EXPIRED
    return stored


def mission_summary(
    mission: Mission, progress: MissionProgress | None, now: datetime | None = None
) -> MissionSummary:
    now = now or datetime.utcnow()
    summary = MissionSummary(
        id=mission.id,
        title=mission.title,
        description=mission.description,
        mission_type=MissionType(mission.mission_type),
        config=mission.config or {},
        points=mission.points,
        deadline=mission.deadline,
        status=MissionStatus(mission.status),
        display_status=display_status(mission.status, mission.deadline, now),
        created_at=mission.created_at,
        completed_at=mission.completed_at,
    )
    if progress is not None:
        summary.current_count = progress.current_count
        summary.required_count = progress.required_count
        summary.accuracy = progress.accuracy
        summary.last_activity = progress.last_activity
        summary.progress = ProgressData(
            unique_questions=progress.unique_questions,
            total_time_spent=progress.total_time_spent,
            started_at=progress.started_at,
        )
        if progress.required_count > 0:
            summary.progress_percentage = round(progress.current_count / progress.required_count * 100, 2)
        summary.points_awarded = progress.points_awarded_at is not None
    return summary


class MissionTracker:
    """
    Turns practice attempts and lecture section completions into mission
    progress, and completes missions once their requirement is met.
    """

    def __init__(self, session_factory=AsyncSessionLocal):
        self.session_factory = session_factory

    async def _resolve(
        self, session: AsyncSession, mission_id: int, user_key: str
    ) -> Tuple[Mission | None, int | None, str | None]:
        """
        Looks up the mission and locks the user's progress row for the rest of
        the transaction. Returns (mission, user_id, error).
        """
        mission = await store.get_mission(session, mission_id)
        if mission is None:
            return None, None, MISSION_NOT_FOUND
        user_id = await store.find_user_id(session, user_key)
        if user_id is None or await store.lock_progress(session, mission_id, user_id) is None:
            return mission, None, PROGRESS_NOT_FOUND
        return mission, user_id, None

    async def _complete_if_reached(self, session: AsyncSession, mission_id: int, user_id: int) -> Tuple[bool, int]:
        if not await store.mission_requirement_met(session, mission_id, user_id):
            return False, 0
        if await store.mark_mission_completed(session, mission_id):
            logger.info(f"Mission {mission_id} completed by user {user_id}!")
        points = await store.award_points_once(session, mission_id, user_id)
        if points > 0:
            logger.info(f"Awarded {points} points to user {user_id} for mission {mission_id}")
        return True, points

    async def record_practice_attempt(
        self,
        mission_id: int,
        user_key: str,
        question_id: str,
        question_text: str | None,
        is_correct: bool,
    ) -> AttemptResult:
        try:
            attempt = PracticeAttemptInput(
                mission_id=mission_id,
                user_key=user_key,
                question_id=question_id,
                question_text=question_text,
                is_correct=is_correct,
            )
        except ValidationError as e:
            message = describe_validation_error(e)
            logger.warning(f"Rejected practice attempt: {message}")
            return AttemptResult(success=False, error=message)

        try:
            async with self.session_factory() as session:
                mission, user_id, error = await self._resolve(session, attempt.mission_id, attempt.user_key)
                if error:
                    return AttemptResult(success=False, error=error)
                if mission.mission_type != MissionType.PRACTICE.value:
                    return AttemptResult(success=False, error="Mission is not a practice mission")

                counts_for_mission = await store.record_attempt(
                    session,
                    attempt.mission_id,
                    user_id,
                    attempt.question_id,
                    attempt.question_text,
                    attempt.is_correct,
                )
                if counts_for_mission:
                    await store.refresh_practice_progress(session, attempt.mission_id, user_id)

                completed, points = await self._complete_if_reached(session, attempt.mission_id, user_id)
                await session.commit()
        except store.STORE_ERRORS as e:
            logger.error(f"Error tracking practice attempt (mission={mission_id}, user={user_key}): {e}")
            return AttemptResult(success=False, error=str(e))

        logger.debug(
            f"Practice attempt: mission={attempt.mission_id}, user={attempt.user_key}, "
            f"question={attempt.question_id}, counts={counts_for_mission}"
        )
        return AttemptResult(
            success=True,
            counts_for_mission=counts_for_mission,
            mission_completed=completed,
            points_awarded=points,
        )

    async def record_lecture_section(
        self,
        mission_id: int,
        user_key: str,
        lecture_id: str,
        section_id: str,
        time_spent_sec: int = 0,
    ) -> SectionResult:
        try:
            section = LectureSectionInput(
                mission_id=mission_id,
                user_key=user_key,
                lecture_id=lecture_id,
                section_id=section_id,
                time_spent_sec=time_spent_sec,
            )
        except ValidationError as e:
            message = describe_validation_error(e)
            logger.warning(f"Rejected lecture section: {message}")
            return SectionResult(success=False, error=message)

        try:
            async with self.session_factory() as session:
                mission, user_id, error = await self._resolve(session, section.mission_id, section.user_key)
                if error:
                    return SectionResult(success=False, error=error)
                if mission.mission_type != MissionType.LECTURE.value:
                    return SectionResult(success=False, error="Mission is not a lecture mission")

                await store.upsert_section(
                    session,
                    section.mission_id,
                    user_id,
                    section.lecture_id,
                    section.section_id,
                    section.time_spent_sec,
                )
                await store.refresh_lecture_progress(session, section.mission_id, user_id)
                completed, points = await self._complete_if_reached(session, section.mission_id, user_id)
                await session.commit()
        except store.STORE_ERRORS as e:
            logger.error(f"Error tracking lecture section (mission={mission_id}, user={user_key}): {e}")
            return SectionResult(success=False, error=str(e))

        return SectionResult(success=True, mission_completed=completed, points_awarded=points)

    async def check_completion(self, mission_id: int, user_key: str) -> CompletionResult:
        """Safe to call repeatedly; points are granted at most once."""
        try:
            request = MissionKeyInput(mission_id=mission_id, user_key=user_key)
        except ValidationError as e:
            return CompletionResult(success=False, error=describe_validation_error(e))

        try:
            async with self.session_factory() as session:
                _, user_id, error = await self._resolve(session, request.mission_id, request.user_key)
                if error:
                    return CompletionResult(success=False, error=error)
                completed, points = await self._complete_if_reached(session, request.mission_id, user_id)
                await session.commit()
        except store.STORE_ERRORS as e:
            logger.error(f"Error checking completion (mission={mission_id}, user={user_key}): {e}")
            return CompletionResult(success=False, error=str(e))

        return CompletionResult(success=True, completed=completed, points_awarded=points)

    async def list_missions(self, user_key: str) -> MissionListResult:
        """All of a user's missions with their progress, active ones first."""
        try:
            request = UserKeyInput(user_key=user_key)
        except ValidationError as e:
            return MissionListResult(success=False, error=describe_validation_error(e))

        try:
            async with self.session_factory() as session:
                user_id = await store.find_user_id(session, request.user_key)
                if user_id is None:
                    return MissionListResult(success=True, missions=[])
                rows = await store.list_user_missions(session, user_id)
        except store.STORE_ERRORS as e:
            logger.error(f"Error getting missions for '{user_key}': {e}")
            return MissionListResult(success=False, error=str(e))

        now = datetime.utcnow()
        return MissionListResult(
            success=True,
            missions=[mission_summary(mission, progress, now) for mission, progress in rows],
        )

    async def get_mission_details(self, mission_id: int, user_key: str) -> MissionDetailResult:
        try:
            request = MissionKeyInput(mission_id=mission_id, user_key=user_key)
        except ValidationError as e:
            return MissionDetailResult(success=False, error=describe_validation_error(e))

        try:
            async with self.session_factory() as session:
                user_id = await store.find_user_id(session, request.user_key)
                found = await store.get_mission_with_progress(session, request.mission_id, user_id)
                # Other users' missions are reported the same as missing ones
                if found is None or found[0].user_id != user_id:
                    return MissionDetailResult(success=False, error=MISSION_NOT_FOUND)
                mission, progress = found

                attempts, sections = [], []
                if mission.mission_type == MissionType.PRACTICE.value:
                    attempts = [
                        PracticeAttemptView(
                            question_id=row.question_id,
                            question_text=row.question_text,
                            is_correct=row.is_correct,
                            attempts_count=row.attempts_count,
                            counts_for_mission=row.counts_for_mission,
                            first_attempt_at=row.first_attempt_at,
                            last_attempt_at=row.last_attempt_at,
                        )
                        for row in await store.list_attempts(session, request.mission_id, user_id)
                    ]
                if mission.mission_type == MissionType.LECTURE.value:
                    sections = [
                        SectionProgressView(
                            lecture_id=row.lecture_id,
                            section_id=row.section_id,
                            is_completed=row.is_completed,
                            time_spent=row.time_spent,
                            started_at=row.started_at,
                            completed_at=row.completed_at,
                        )
                        for row in await store.list_sections(session, request.mission_id, user_id)
                    ]
                summary = mission_summary(mission, progress)
        except store.STORE_ERRORS as e:
            logger.error(f"Error getting mission details (mission={mission_id}, user={user_key}): {e}")
            return MissionDetailResult(success=False, error=str(e))

        return MissionDetailResult(
            success=True,
            mission=MissionDetail(**summary.model_dump(), attempts=attempts, sections=sections),
        )


# Default instance bound to the application's session factory
mission_tracker = MissionTracker()
