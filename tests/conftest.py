# tests/conftest.py
import pytest
import pytest_asyncio
import os
import sys
import logging

# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from nexon_core.utils.db import build_engine, build_session_factory, init_models
from nexon_core.services.adaptive_difficulty import AdaptiveDifficultyService
from nexon_core.services.mission_tracker import MissionTracker
from nexon_core.services.mission_admin import MissionAdmin


# --- Per-test SQLite database ---
@pytest_asyncio.fixture
async def test_engine(tmp_path):
    db_path = tmp_path / "nexon_test.db"
    engine = build_engine(f"sqlite+aiosqlite:///{db_path}")
    await init_models(engine)
    logger.info(f"Created test database at {db_path}")
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return build_session_factory(test_engine)


# --- Services bound to the test database ---
@pytest.fixture
def difficulty_service(session_factory):
    return AdaptiveDifficultyService(session_factory=session_factory)


@pytest.fixture
def tracker(session_factory):
    return MissionTracker(session_factory=session_factory)


@pytest.fixture
def admin(session_factory):
    return MissionAdmin(session_factory=session_factory)
