"""
依分支切換與 toggle 指令驅動的 Idle/Running worklog 計時器
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .branch import BranchChange
from .errors import IssueUnresolvable
from .scheduler import ScheduledTask, Scheduler
from .status import ConsoleUI, TOGGLE_COMMAND
from .storage import WorklogContext
from .worklog import WorklogLoader, WorklogSubmitter


logger = logging.getLogger(__name__)

TICK_INTERVAL = 1.0


class TimerStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass
class TimerState:
    """記憶體中的計時狀態，每次 start 時從分支計數重建"""
    running: bool = False
    started_at_ms: Optional[int] = None
    current_issue_id: Optional[str] = None
    current_branch: Optional[str] = None
    elapsed_seconds: int = 0


class WorklogTimer:
    """
    同一時間只計一個分支

    ``start`` 以分支的累計秒數為起點，每秒 tick 一次。``stop`` 把自 ``start``
    以來的時間上傳到原本計時的 issue，再回到 idle。上傳與載入都在背景進行，
    不會擋住 tick；新一段計時的起點在任何網路請求之前就決定。
    """

    def __init__(self, context: WorklogContext, scheduler: Scheduler,
                 submitter: WorklogSubmitter, loader: WorklogLoader, ui: ConsoleUI):
        self.context = context
        self.scheduler = scheduler
        self.submitter = submitter
        self.loader = loader
        self.ui = ui
        self.state = TimerState()
        self._seed = 0
        self._tick_task: Optional[ScheduledTask] = None

    @property
    def status(self) -> TimerStatus:
        return TimerStatus.RUNNING if self.state.running else TimerStatus.IDLE

    def set_target(self, branch: Optional[str], issue_id: Optional[str]):
        """idle 時指向某個分支並顯示開始按鈕"""
        self.state.current_branch = branch
        self.state.current_issue_id = issue_id
        if branch and issue_id:
            self.show_start()
        else:
            self.ui.indicator.hide()

    def show_start(self):
        branch, issue_id = self.state.current_branch, self.state.current_issue_id
        self.ui.indicator.show()
        self.ui.bind_command(TOGGLE_COMMAND)
        self.ui.set_loading_label(issue_id)
        self.loader.load(
            branch, issue_id,
            on_loaded=lambda total: self._on_loaded(branch, issue_id, total),
        )

    def _on_loaded(self, branch: str, issue_id: str, total: Optional[int]):
        # 回應晚到時分支可能已經換了，只保留 loader 寫入的計數
        if branch != self.state.current_branch or issue_id != self.state.current_issue_id:
            return
        if self.state.running:
            if total is not None:
                self._seed = total
                self.tick()
            return
        if total is None:
            total = self.context.get_seconds(branch)
        self.ui.set_start_label(issue_id, total)

    def toggle(self):
        if self.state.running:
            self.stop()
        else:
            self.start()

    def start(self, started_at_ms: Optional[int] = None):
        if self.state.running:
            return
        branch, issue_id = self.state.current_branch, self.state.current_issue_id
        if not branch or not issue_id:
            raise IssueUnresolvable(f"No issue id found in branch {branch or '(none)'}")

        self.state.running = True
        self.state.started_at_ms = started_at_ms or self.scheduler.now_ms()
        self._seed = self.context.get_seconds(branch)
        self.ui.indicator.show()
        logger.info(f"Start worklog for {issue_id} on {branch} (seed {self._seed}s)")

        self._tick_task = self.scheduler.call_every(TICK_INTERVAL, self.tick)
        self.tick()

    def tick(self):
        if not self.state.running:
            return
        elapsed_ms = self.scheduler.now_ms() - self.state.started_at_ms
        self.state.elapsed_seconds = elapsed_ms // 1000 + self._seed
        self.context.set_seconds(self.state.current_branch, self.state.elapsed_seconds)
        self.ui.set_pause_label(self.state.current_issue_id, self.state.elapsed_seconds)

    def stop(self, show_start: bool = True, stopped_at_ms: Optional[int] = None):
        """上傳進行中的一段並回到 idle"""
        if not self.state.running:
            return
        stopped_at_ms = stopped_at_ms or self.scheduler.now_ms()
        self._cancel_tick()
        issue_id, started_at_ms = self.state.current_issue_id, self.state.started_at_ms
        logger.info(f"Stop worklog for {issue_id} at {self.state.elapsed_seconds}s")

        # 本機計數不因上傳失敗而回復
        self.state.running = False
        self.state.started_at_ms = None
        self.state.elapsed_seconds = 0
        self._seed = 0

        self.submitter.submit(issue_id, started_at_ms, stopped_at_ms)

        if show_start and self.state.current_issue_id:
            self.show_start()

    def on_branch_change(self, change: BranchChange):
        switched_at_ms = self.scheduler.now_ms()
        restart = self.state.running and bool(change.new_issue_id)
        if self.state.running:
            self.stop(show_start=False, stopped_at_ms=switched_at_ms)

        self.state.current_branch = change.new_branch
        self.state.current_issue_id = change.new_issue_id

        if not change.new_issue_id:
            self.ui.indicator.hide()
            return

        self.show_start()
        if restart:
            self.start(started_at_ms=switched_at_ms)

    def dispose(self):
        """不上傳，直接丟掉 tick (離開且不上傳時使用)"""
        self._cancel_tick()
        self.state.running = False
        self.state.started_at_ms = None

    def _cancel_tick(self):
        if self._tick_task:
            self._tick_task.cancel()
            self._tick_task = None
