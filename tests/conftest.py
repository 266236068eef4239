"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from pathlib import Path

import pytest
from loguru import logger

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from coach.activity import Activity  # noqa: E402
from coach.exercises.base import ExerciseContext, SessionState  # noqa: E402
from coach.library import load_library  # noqa: E402
from coach.simulator import RecordingBackend, ScriptedVoiceIO  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Full session runs against scripted participants")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


@pytest.fixture(autouse=True)
def quiet_logs():
    """Keep loguru output out of test reports."""
    logger.remove()
    yield


@pytest.fixture(scope="session")
def library():
    """The packaged content library."""
    return load_library()


@pytest.fixture
def backend():
    """Backend double that records every payload."""
    return RecordingBackend()


@pytest.fixture
def make_ctx():
    """Build an ExerciseContext around a scripted participant."""
    def _make(*responses, responder=None, latency_ms=800, state=None):
        io = ScriptedVoiceIO(responses, responder=responder, latency_ms=latency_ms)
        return io, ExerciseContext(io, state or SessionState())
    return _make


@pytest.fixture
def make_activity():
    """Build an Activity from a partial content-library record."""
    def _make(**record):
        record.setdefault("id", "test_activity")
        record.setdefault("cognitive_domain", "working_memory")
        return Activity.from_dict(record)
    return _make
