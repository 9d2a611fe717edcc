"""
Worklog 上傳與遠端 worklog 總和同步
"""

import json
import logging
import math
import re
from dataclasses import dataclass
from concurrent.futures import Future
from typing import Any, Callable, Optional

from .config import Config
from .errors import AuthError, TrackerReportedError
from .jira_api import JiraSessionClient
from .scheduler import Scheduler
from .status import ConsoleUI
from .storage import WorklogContext
from .utils import format_seconds, format_started


logger = logging.getLogger(__name__)

MIN_SPENT_SECONDS = 60


def worklog_path(issue_id: str) -> str:
    return f"/rest/api/2/issue/{issue_id}/worklog"


def render_comment(template: str, issue_id: str, project: str = "") -> str:
    """
    填入 worklog 註解範本

    ``{issueId}`` 為完整 issue id，``{TaskNumber}`` 為其中的數字，
    ``{JiraProject}`` 為設定的專案代號，未設定時取 issue id 的前綴。
    """
    if not template:
        return ""
    task_number = re.sub(r"[^0-9]", "", issue_id)
    if not project and "-" in issue_id:
        project = issue_id.rsplit("-", 1)[0]
    return (
        template
        .replace("{issueId}", issue_id)
        .replace("{TaskNumber}", task_number)
        .replace("{JiraProject}", project)
    )


def spent_seconds(started_at_ms: int, now: int) -> int:
    """自 ``started_at_ms`` 起的秒數 (無條件進位)，至少一分鐘"""
    return max(MIN_SPENT_SECONDS, math.ceil((now - started_at_ms) / 1000))


def raise_for_tracker_errors(data):
    if isinstance(data, dict) and data.get("errorMessages"):
        raise TrackerReportedError(list(data["errorMessages"]))


@dataclass
class WorklogEntry:
    """要上傳的 worklog 項目"""
    issue_id: str
    started: str                # 2025-12-31T09:00:00.000+0000
    time_spent_seconds: int
    comment: str = ""

    def to_payload(self) -> dict:
        payload = {}
        if self.comment:
            payload["comment"] = self.comment
        payload["started"] = self.started
        payload["timeSpentSeconds"] = str(self.time_spent_seconds)
        return payload


class WorklogSubmitter:
    """
    把一段計時上傳為一筆 worklog

    ``submit`` 在 loop 上決定結束時間並組好 payload，POST 交給背景執行；
    結果 (含錯誤) 再回到 loop 通知使用者。
    """

    def __init__(self, client: JiraSessionClient, get_config: Callable[[], Config],
                 ui: ConsoleUI, scheduler: Scheduler):
        self.client = client
        self.get_config = get_config
        self.ui = ui
        self.scheduler = scheduler

    def build_entry(self, issue_id: str, started_at_ms: int,
                    ended_at_ms: Optional[int] = None) -> WorklogEntry:
        config = self.get_config()
        if ended_at_ms is None:
            ended_at_ms = self.scheduler.now_ms()
        return WorklogEntry(
            issue_id=issue_id,
            started=format_started(started_at_ms),
            time_spent_seconds=spent_seconds(started_at_ms, ended_at_ms),
            comment=render_comment(config.worklog_comment, issue_id, config.project),
        )

    def send(self, entry: WorklogEntry) -> Any:
        """POST worklog (背景執行緒)"""
        data = self.client.send(worklog_path(entry.issue_id), "POST", entry.to_payload())

        logger.info("Save Worklog Response:")
        logger.info(json.dumps(data))

        raise_for_tracker_errors(data)
        return data

    def submit(self, issue_id: str, started_at_ms: int,
               ended_at_ms: Optional[int] = None) -> Future:
        entry = self.build_entry(issue_id, started_at_ms, ended_at_ms)
        logger.info(f"Submit {entry.time_spent_seconds}s for {issue_id}")
        return self.scheduler.run_serial(issue_id, self.send, entry, on_done=self.report)

    def report(self, future: Future) -> bool:
        """顯示上傳結果；失敗只通知，不拋出"""
        try:
            future.result()
            return True
        except TrackerReportedError as e:
            self.ui.error(f"An Error occured while saving Worklog in Jira: {e}", e)
        except AuthError as e:
            self.ui.error("Incorrect login or password", e)
        except Exception as e:
            self.ui.error("Something went wrong.", e)
        return False


class WorklogLoader:
    """以 issue 在 Jira 上的 worklog 總和作為分支計數"""

    def __init__(self, client: JiraSessionClient, context: WorklogContext,
                 ui: ConsoleUI, scheduler: Scheduler):
        self.client = client
        self.context = context
        self.ui = ui
        self.scheduler = scheduler

    def fetch(self, issue_id: str) -> int:
        """GET worklog 並加總 (背景執行緒)"""
        data = self.client.send(worklog_path(issue_id), "GET")

        logger.info("Load Worklog Response:")
        logger.info(json.dumps(data))

        raise_for_tracker_errors(data)

        total = sum(int(w.get("timeSpentSeconds") or 0) for w in data.get("worklogs", []))
        logger.info(f"Load Worklog calculated value: {total} ({format_seconds(total)})")
        return total

    def load(self, branch: str, issue_id: str,
             on_loaded: Optional[Callable[[Optional[int]], None]] = None) -> Future:
        """
        非同步載入遠端總和

        排在同一 issue 尚未完成的上傳之後。成功時覆寫本機計數；
        ``on_loaded`` 在 loop 上收到總和，失敗時收到 None。
        """
        def apply(future: Future):
            total = self._apply(branch, future)
            if on_loaded:
                on_loaded(total)

        return self.scheduler.run_serial(issue_id, self.fetch, issue_id, on_done=apply)

    def _apply(self, branch: str, future: Future) -> Optional[int]:
        try:
            total = future.result()
        except TrackerReportedError as e:
            self.ui.error(f"An Error occured while loading Worklog in Jira: {e}", e)
        except AuthError as e:
            self.ui.error("Incorrect login or password", e)
        except Exception as e:
            self.ui.error("Something went wrong.", e)
        else:
            self.context.set_seconds(branch, total)
            return total
        return None
