"""
啟用流程：登入、註冊分支追蹤，以及設定變更時重新登入
"""

import logging
from concurrent.futures import Future
from typing import Callable, Optional

from .branch import POLL_INTERVAL, BranchTracker, read_branch
from .config import Config
from .errors import AuthError, ConfigMissing, IssueUnresolvable, RepoNotFound, TransportError
from .jira_api import JiraSessionClient
from .scheduler import ScheduledTask, Scheduler
from .status import ConsoleUI
from .storage import WorklogContext
from .timer import WorklogTimer
from .worklog import WorklogLoader, WorklogSubmitter


logger = logging.getLogger(__name__)

CONFIG_CHECK_INTERVAL = 5.0
SESSION_LANE = "session"


class WorklogTracker:
    """
    串起 session client、worklog 計時器與分支輪詢

    Args:
        load_config: 回傳目前配置，定期呼叫以偵測變更
        context: session token 與分支計數
        scheduler: 擁有所有計時器的 loop
        ui: 狀態指示器與通知
        branch_reader: 讀取倉庫目前分支名稱
    """

    def __init__(self, load_config: Callable[[], Config], context: WorklogContext,
                 scheduler: Scheduler, ui: ConsoleUI,
                 branch_reader: Callable[[str], str] = read_branch):
        self.load_config = load_config
        self.config = load_config()
        self.context = context
        self.scheduler = scheduler
        self.ui = ui
        self.branch_reader = branch_reader

        self.client = JiraSessionClient(self.get_config, context, relogin=self._relogin)
        self.submitter = WorklogSubmitter(self.client, self.get_config, ui, scheduler)
        self.loader = WorklogLoader(self.client, context, ui, scheduler)
        self.timer = WorklogTimer(context, scheduler, self.submitter, self.loader, ui)

        self.branches: Optional[BranchTracker] = None
        self.registered = False
        self._poll_task: Optional[ScheduledTask] = None
        self._config_task: Optional[ScheduledTask] = None

    def get_config(self) -> Config:
        return self.config

    def activate(self):
        self.ui.indicator.show()
        self.login()
        self._config_task = self.scheduler.call_every(CONFIG_CHECK_INTERVAL, self.check_config)

    # 登入

    def authenticate(self) -> str:
        """
        取得新的 session token (可在背景執行緒執行)

        Raises:
            ConfigMissing: host、login 或 password 未設定
            AuthError: Jira 拒絕登入或無法連線
        """
        missing = self.config.missing_required()
        if missing:
            raise ConfigMissing(missing)
        try:
            return self.client.create_session(self.config.login, self.config.password)
        except TransportError as e:
            raise AuthError(str(e)) from e

    def _relogin(self, suppress_status_updates: bool = True):
        try:
            self.authenticate()
        except ConfigMissing as e:
            raise AuthError(str(e)) from e

    def login(self, suppress_status_updates: bool = False) -> Future:
        """背景登入；成功後除非 suppress，否則重新註冊分支追蹤"""
        self.ui.indicator.show()
        if not suppress_status_updates:
            self.ui.set_busy("Jira Worklog: authorization...")
        return self.scheduler.run_serial(
            SESSION_LANE, self.authenticate,
            on_done=lambda future: self._on_login(future, suppress_status_updates),
        )

    def _on_login(self, future: Future, suppress_status_updates: bool) -> bool:
        try:
            future.result()
        except ConfigMissing as e:
            logger.info(str(e))
            self.ui.info("Set host, login, password, issueRegex in preferences")
            return False
        except AuthError as e:
            self.ui.error("Incorrect login or password", e)
            return False
        except Exception as e:
            self.ui.error("Something went wrong.", e)
            return False

        if not suppress_status_updates:
            self.register_events()
        return True

    def check_config(self):
        """登入相關設定變更時重新登入"""
        new_config = self.load_config()
        changed = new_config.relogin_fingerprint() != self.config.relogin_fingerprint()
        self.config = new_config
        if changed and new_config.is_configured():
            logger.info("Configuration changed, logging in again")
            self.login()

    # 分支追蹤

    def register_events(self) -> bool:
        try:
            self.ui.set_busy("Jira Worklog: register events...")
            self.unregister_events(submit=True)

            self.branches = BranchTracker(
                self.config.get_repo_path(),
                lambda: self.config.issue_id_regex,
                reader=self.branch_reader,
            )
            try:
                branch = self.branches.refresh()
            except RepoNotFound as e:
                logger.warning(str(e))
                self.ui.indicator.hide()
                self.ui.info("You are not in a git repository.")
                return False

            self.registered = True
            self.timer.set_target(branch, self.branches.issue_id(branch))
            self._poll_task = self.scheduler.call_every(POLL_INTERVAL, self.poll)
            return True
        except Exception as e:
            self.ui.error("Something went wrong.", e)
            return False

    def unregister_events(self, submit: bool = True):
        if self._poll_task:
            self._poll_task.cancel()
            self._poll_task = None
        if self.timer.state.running:
            if submit:
                self.timer.stop(show_start=False)
            else:
                self.timer.dispose()
        self.registered = False

    def poll(self):
        if not self.branches:
            return
        change = self.branches.poll()
        if change:
            self.timer.on_branch_change(change)

    def toggle(self):
        """狀態指示器綁定的 toggle 指令"""
        if not self.registered:
            self.ui.info("Tracking is not active. Check login and repository.")
            return
        try:
            self.timer.toggle()
        except IssueUnresolvable as e:
            self.ui.info(str(e))

    def shutdown(self, submit: bool = True):
        """停止所有計時器；上傳仍在背景進行，由 scheduler.close() 等待"""
        if self._config_task:
            self._config_task.cancel()
            self._config_task = None
        self.unregister_events(submit=submit)
