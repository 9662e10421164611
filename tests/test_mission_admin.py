# tests/test_mission_admin.py
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch
from sqlalchemy.exc import SQLAlchemyError

from nexon_core.models.enums import MissionStatus, MissionType
from nexon_core.services.mission_admin import required_count_for

USER = "student-9"


def test_required_count_rules():
    assert required_count_for(MissionType.PRACTICE, {}) == 10
    assert required_count_for(MissionType.PRACTICE, {"requiredQuestions": 4}) == 4
    assert required_count_for(MissionType.LECTURE, {"requiredSections": ["a", "b", "c"]}) == 3
    assert required_count_for(MissionType.LECTURE, {}) == 0


@pytest.mark.missions
class TestCreateMission:
    @pytest.mark.asyncio
    async def test_create_practice_mission_with_default_requirement(self, admin):
        result = await admin.create_mission(USER, "Algebra basics", "practice", points=15, created_by="teacher-1")

        assert result.success is True
        mission = result.mission
        assert mission.mission_type == MissionType.PRACTICE
        assert mission.status == MissionStatus.ACTIVE
        assert mission.current_count == 0
        assert mission.required_count == 10
        assert mission.points == 15
        assert mission.progress.unique_questions == 0

    @pytest.mark.asyncio
    async def test_create_lecture_mission(self, admin):
        result = await admin.create_mission(
            USER, "Slopes", MissionType.LECTURE, config={"requiredSections": ["intro", "examples"]}
        )
        assert result.success is True
        assert result.mission.required_count == 2

    @pytest.mark.asyncio
    async def test_aware_deadline_is_stored_as_utc(self, admin):
        deadline = datetime(2030, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        result = await admin.create_mission(USER, "Timed", "practice", deadline=deadline)
        assert result.mission.deadline == datetime(2030, 1, 1, 10, 0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"user_key": USER, "title": "", "mission_type": "practice"},
            {"user_key": USER, "title": "Quiz", "mission_type": "notebook_review"},
            {"user_key": "", "title": "Quiz", "mission_type": "practice"},
            {"user_key": USER, "title": "Quiz", "mission_type": "practice", "points": -5},
            {"user_key": USER, "title": "Quiz", "mission_type": "practice", "config": {"requiredQuestions": "ten"}},
        ],
    )
    async def test_invalid_missions_are_rejected(self, admin, tracker, kwargs):
        result = await admin.create_mission(**kwargs)
        assert result.success is False
        assert result.error.startswith("Invalid input")
        assert (await tracker.list_missions(USER)).missions == []


@pytest.mark.missions
class TestUpdateAndDelete:
    @pytest.mark.asyncio
    async def test_partial_update(self, admin):
        created = await admin.create_mission(USER, "Draft", "practice", points=5)
        deadline = datetime.utcnow() + timedelta(days=3)

        result = await admin.update_mission(created.mission.id, points=25, deadline=deadline)

        assert result.success is True
        assert result.mission.points == 25
        assert result.mission.deadline == deadline
        assert result.mission.title == "Draft"

    @pytest.mark.asyncio
    async def test_update_without_fields(self, admin):
        created = await admin.create_mission(USER, "Draft", "practice")
        result = await admin.update_mission(created.mission.id)
        assert result.success is True
        assert result.message == "No updates provided"

    @pytest.mark.asyncio
    async def test_update_missing_mission(self, admin):
        result = await admin.update_mission(4242, points=1)
        assert result.success is False

    @pytest.mark.asyncio
    async def test_delete_mission(self, admin, tracker):
        created = await admin.create_mission(USER, "Temporary", "practice", config={"requiredQuestions": 2})
        mission_id = created.mission.id
        await tracker.record_practice_attempt(mission_id, USER, "q-1", None, True)

        deleted = await admin.delete_mission(mission_id)
        assert deleted.success is True
        assert (await tracker.get_mission_details(mission_id, USER)).success is False
        assert (await admin.delete_mission(mission_id)).success is False


@pytest.mark.missions
class TestStats:
    @pytest.mark.asyncio
    async def test_stats_project_expired_missions(self, admin, tracker):
        await admin.create_mission(USER, "Open", "practice")
        await admin.create_mission(USER, "Late", "practice", deadline=datetime.utcnow() - timedelta(hours=1))
        done = await admin.create_mission("student-10", "Done", "practice", config={"requiredQuestions": 1})
        await tracker.record_practice_attempt(done.mission.id, "student-10", "q-1", None, True)

        result = await admin.mission_stats()

        assert result.success is True
        assert result.stats.active == 1
        assert result.stats.expired == 1
        assert result.stats.completed == 1
        assert result.stats.users_with_missions == 2
        assert result.stats.avg_accuracy == pytest.approx(100 / 3, abs=0.01)


@pytest.mark.missions
class TestListAllMissions:
    @pytest.mark.asyncio
    async def test_lists_every_mission_newest_first_with_owner(self, admin):
        first = await admin.create_mission(USER, "First", "practice")
        second = await admin.create_mission("student-10", "Second", "lecture", config={"requiredSections": ["a"]})
        late = await admin.create_mission(USER, "Late", "practice", deadline=datetime.utcnow() - timedelta(days=1))

        result = await admin.list_all_missions()

        assert result.success is True
        assert [mission.id for mission in result.missions] == [late.mission.id, second.mission.id, first.mission.id]
        newest = result.missions[0]
        assert newest.user_key == USER
        assert newest.user_name == "Student"
        assert newest.user_email == "student_student-@nexon.app"
        assert newest.progress_entries == 1
        assert newest.status == MissionStatus.ACTIVE
        assert newest.display_status == MissionStatus.EXPIRED
        assert result.missions[1].user_key == "student-10"
        assert result.missions[1].mission_type == MissionType.LECTURE

    @pytest.mark.asyncio
    async def test_empty_when_no_missions(self, admin):
        result = await admin.list_all_missions()
        assert result.success is True
        assert result.missions == []

    @pytest.mark.asyncio
    async def test_store_failure_is_reported(self, admin):
        with patch(
            "nexon_core.performance_store.list_all_missions",
            AsyncMock(side_effect=SQLAlchemyError("relation does not exist")),
        ):
            result = await admin.list_all_missions()
        assert result.success is False
        assert "relation does not exist" in result.error
