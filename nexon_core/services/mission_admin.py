# nexon_core/services/mission_admin.py
# Assigner-side operations: creating, editing and removing missions.
from datetime import datetime
from typing import Any, Dict

from pydantic import ValidationError

from nexon_core import performance_store as store
from nexon_core.models.enums import MissionType
from nexon_core.models.requests import (
    MissionCreateInput,
    MissionIdInput,
    MissionUpdateInput,
    describe_validation_error,
)
from nexon_core.models.results import (
    AdminMissionListResult,
    AdminMissionView,
    MissionResult,
    MissionStats,
    MissionStatsResult,
    OperationResult,
)
from nexon_core.services.mission_tracker import MISSION_NOT_FOUND, mission_summary
from nexon_core.utils.config import settings
from nexon_core.utils.db import AsyncSessionLocal
from nexon_core.utils.logger import logger


def required_count_for(mission_type: MissionType, config: Dict[str, Any]) -> int:
    """Practice missions count unique questions, lecture missions count sections."""
    if mission_type == MissionType.PRACTICE:
        required = config.get("requiredQuestions")
        return settings.default_required_questions if required is None else required
    return len(config.get("requiredSections") or [])


class MissionAdmin:
    def __init__(self, session_factory=AsyncSessionLocal):
        self.session_factory = session_factory

    async def create_mission(
        self,
        user_key: str,
        title: str,
        mission_type: MissionType | str,
        config: Dict[str, Any] | None = None,
        points: int = 0,
        deadline: datetime | None = None,
        description: str | None = None,
        created_by: str | None = None,
    ) -> MissionResult:
        """Creates an active mission and its zeroed progress row."""
        try:
            request = MissionCreateInput(
                user_key=user_key,
                title=title,
                mission_type=mission_type,
                config=config or {},
                points=points,
                deadline=deadline,
                description=description,
                created_by=created_by,
            )
        except ValidationError as e:
            message = describe_validation_error(e)
            logger.warning(f"Rejected mission creation: {message}")
            return MissionResult(success=False, error=message)

        required_count = required_count_for(request.mission_type, request.config)
        try:
            async with self.session_factory() as session:
                user_id = await store.get_or_create_user(session, request.user_key)
                mission = await store.insert_mission(
                    session,
                    user_id,
                    request.title,
                    request.mission_type.value,
                    request.config,
                    request.points,
                    request.deadline,
                    request.description,
                    request.created_by,
                )
                await store.init_progress(session, mission.id, user_id, required_count)
                await session.commit()
                progress = await store.get_progress(session, mission.id, user_id)
                summary = mission_summary(mission, progress)
        except store.STORE_ERRORS as e:
            logger.error(f"Error creating mission for '{user_key}': {e}")
            return MissionResult(success=False, error=str(e))

        logger.info(f"Mission created: id={summary.id}, user={request.user_key}, type={request.mission_type.value}, required={required_count}")
        return MissionResult(success=True, mission=summary)

    async def update_mission(
        self,
        mission_id: int,
        title: str | None = None,
        description: str | None = None,
        deadline: datetime | None = None,
        points: int | None = None,
    ) -> MissionResult:
        """Partial update of assigner-owned fields. Status is not editable here."""
        try:
            request = MissionUpdateInput(
                mission_id=mission_id,
                title=title,
                description=description,
                deadline=deadline,
                points=points,
            )
        except ValidationError as e:
            return MissionResult(success=False, error=describe_validation_error(e))

        updates = request.model_dump(exclude={"mission_id"}, exclude_none=True)
        if not updates:
            return MissionResult(success=True, message="No updates provided")

        try:
            async with self.session_factory() as session:
                mission = await store.get_mission(session, request.mission_id)
                if mission is None:
                    return MissionResult(success=False, error=MISSION_NOT_FOUND)
                for field, value in updates.items():
                    setattr(mission, field, value)
                await session.commit()
                progress = await store.get_progress(session, mission.id, mission.user_id)
                summary = mission_summary(mission, progress)
        except store.STORE_ERRORS as e:
            logger.error(f"Error updating mission {mission_id}: {e}")
            return MissionResult(success=False, error=str(e))

        logger.info(f"Mission {mission_id} updated: {sorted(updates)}")
        return MissionResult(success=True, mission=summary)

    async def delete_mission(self, mission_id: int) -> OperationResult:
        try:
            request = MissionIdInput(mission_id=mission_id)
        except ValidationError as e:
            return OperationResult(success=False, error=describe_validation_error(e))

        try:
            async with self.session_factory() as session:
                deleted = await store.delete_mission_rows(session, request.mission_id)
                if not deleted:
                    return OperationResult(success=False, error=MISSION_NOT_FOUND)
                await session.commit()
        except store.STORE_ERRORS as e:
            logger.error(f"Error deleting mission {mission_id}: {e}")
            return OperationResult(success=False, error=str(e))

        logger.info(f"Mission {mission_id} deleted")
        return OperationResult(success=True, message="Mission deleted")

    async def mission_stats(self) -> MissionStatsResult:
        try:
            async with self.session_factory() as session:
                counts = await store.mission_counts(session, datetime.utcnow())
        except store.STORE_ERRORS as e:
            logger.error(f"Error getting mission stats: {e}")
            return MissionStatsResult(success=False, error=str(e))
        return MissionStatsResult(success=True, stats=MissionStats(**counts))

    async def list_all_missions(self) -> AdminMissionListResult:
        """Every user's missions, newest first, with owner details and progress entry counts."""
        try:
            async with self.session_factory() as session:
                rows = await store.list_all_missions(session)
        except store.STORE_ERRORS as e:
            logger.error(f"Error getting all missions: {e}")
            return AdminMissionListResult(success=False, error=str(e))

        now = datetime.utcnow()
        missions = []
        for mission, owner, progress_entries in rows:
            summary = mission_summary(mission, None, now)
            missions.append(
                AdminMissionView(
                    **summary.model_dump(),
                    user_key=owner.user_key if owner else None,
                    user_name=owner.display_name if owner else None,
                    user_email=owner.email if owner else None,
                    progress_entries=progress_entries,
                )
            )
        return AdminMissionListResult(success=True, missions=missions)


# Default instance bound to the application's session factory
mission_admin = MissionAdmin()
