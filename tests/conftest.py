"""Pytest configuration and fixtures."""

import io
import json
import pytest
from unittest.mock import MagicMock, patch

from rich.console import Console

from jira_worklog.config import Config
from jira_worklog.scheduler import ManualScheduler
from jira_worklog.status import ConsoleUI
from jira_worklog.storage import StateStore, WorklogContext


def make_response(status_code=200, body=None, raw=None):
    """Build a fake requests.Response."""
    response = MagicMock()
    response.status_code = status_code
    if raw is not None:
        response.content = raw.encode()
        response.json.side_effect = ValueError("not json")
    elif body is None:
        response.content = b""
    else:
        response.content = json.dumps(body).encode()
        response.json.return_value = body
    return response


@pytest.fixture
def sample_config():
    """Fully configured settings."""
    return Config(
        host="https://jira.example.com",
        login="dev",
        password="secret",
        issue_id_regex=r".*/(.*)",
        worklog_comment="Working on {issueId}",
    )


@pytest.fixture
def context():
    """In-memory session and branch counters."""
    return WorklogContext(StateStore.in_memory())


@pytest.fixture
def scheduler():
    """Manual clock and scheduler."""
    return ManualScheduler()


@pytest.fixture
def ui():
    """Console UI writing to a buffer."""
    return ConsoleUI(Console(file=io.StringIO(), width=200))


@pytest.fixture
def mock_requests_session():
    """Mock requests session for API testing."""
    with patch("requests.Session") as mock_session:
        mock_instance = MagicMock()
        mock_session.return_value = mock_instance
        yield mock_instance


@pytest.fixture
def mock_jira_session_response():
    """Mock Jira login response."""
    return {
        "session": {"name": "JSESSIONID", "value": "fresh-session"},
        "loginInfo": {"loginCount": 3},
    }


@pytest.fixture
def mock_worklogs_response():
    """Mock Jira worklog list response."""
    return {
        "startAt": 0,
        "maxResults": 3,
        "total": 3,
        "worklogs": [
            {"id": "1", "timeSpentSeconds": 3600},
            {"id": "2", "timeSpentSeconds": 1800},
            {"id": "3", "timeSpentSeconds": 61},
        ],
    }
