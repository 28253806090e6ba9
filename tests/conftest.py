"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from exam_session.config import Settings  # noqa: E402
from exam_session.core.errors import NotFoundError  # noqa: E402
from exam_session.core.models import TestDefinition  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


@pytest.fixture
def sample_test_data():
    """Raw test document as the backend returns it: 10 questions, 2 sections."""
    questions = [
        {"_id": f"q{i}", "text": f"Question {i}", "type": "mcq",
         "options": [{"text": "A"}, {"text": "B"}], "sectionTitle": "Physics"}
        for i in range(1, 6)
    ]
    questions += [
        {"_id": "q6", "text": "Pick all primes", "type": "multiple_select",
         "options": ["2", "3", "4"], "sectionTitle": "Maths"},
        {"_id": "q7", "text": "2 + 2?", "type": "integer", "sectionTitle": "Maths"},
        {"_id": "q8", "text": "Earth is round", "type": "trueFalse", "sectionTitle": "Maths"},
        {"_id": "q9", "text": "Explain", "type": "shortAnswer", "sectionTitle": "Maths"},
        {"_id": "q10", "text": "Match", "type": "matching", "sectionTitle": "Maths"},
    ]
    return {
        "_id": "test-001",
        "title": "Mock Test 1",
        "duration": 60,
        "sections": [{"title": "Physics"}, {"title": "Maths"}],
        "questions": questions,
    }


@pytest.fixture
def sample_test(sample_test_data):
    """Parsed test definition."""
    return TestDefinition.model_validate(sample_test_data)


@pytest.fixture
def settings(tmp_path):
    """Settings with fast retries and timers that never fire on their own."""
    return Settings(
        api_base_url="http://testserver/api",
        tick_interval_seconds=3600,
        autosave_interval_seconds=3600,
        teardown_save_timeout_seconds=0.5,
        cache_dir=tmp_path / "cache",
        fetch_test_base_delay=0,
        fetch_progress_base_delay=0,
        submit_base_delay=0,
    )


@pytest.fixture
def fake_api(sample_test):
    """AsyncMock standing in for AttemptApiClient; no saved progress by default."""
    api = AsyncMock()
    api.fetch_test.return_value = sample_test
    api.fetch_progress.side_effect = NotFoundError("no progress", status_code=404)
    api.save_progress.return_value = {"message": "saved"}
    api.submit_attempt.return_value = {"attempt": {"id": "attempt-123"}}
    return api
