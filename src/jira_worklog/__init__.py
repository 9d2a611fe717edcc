"""Jira Worklog - 依 git 分支自動計時並上傳 Jira worklog"""

__version__ = "1.0.0"

from .config import Config
from .jira_api import JiraSessionClient
from .storage import StateStore, WorklogContext
from .timer import WorklogTimer, TimerState, TimerStatus
from .tracker import WorklogTracker
from .utils import format_seconds
from .worklog import WorklogEntry, WorklogSubmitter, WorklogLoader

__all__ = [
    "Config",
    "JiraSessionClient",
    "StateStore",
    "WorklogContext",
    "WorklogTimer",
    "TimerState",
    "TimerStatus",
    "WorklogTracker",
    "format_seconds",
    "WorklogEntry",
    "WorklogSubmitter",
    "WorklogLoader",
]
