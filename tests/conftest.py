# tests/conftest.py
import pytest

from attendance_core.core.config import get_settings
from attendance_core.schemas.policy import PolicyConstants
from attendance_core.services.policy_engine import PolicyEngine


@pytest.fixture(autouse=True)
def _fresh_settings():
    """
    Settings are cached process-wide; clear the cache around each test so
    environment overrides made with monkeypatch are picked up.
    """
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def constants() -> PolicyConstants:
    return PolicyConstants()


@pytest.fixture
def engine(constants) -> PolicyEngine:
    return PolicyEngine(constants)
