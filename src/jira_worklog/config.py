"""
配置管理模組
"""

import json
import logging
import os
from pathlib import Path
from dataclasses import dataclass, asdict, fields
from typing import Optional


logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".jira-worklog"
CONFIG_FILE = CONFIG_DIR / "config.json"
STATE_FILE = CONFIG_DIR / "state.json"
LOG_FILE = CONFIG_DIR / "jira-worklog.log"

ENV_PREFIX = "JIRA_WORKLOG_"

DEFAULT_ISSUE_ID_REGEX = r".*/(.*)"
DEFAULT_REQUEST_TIMEOUT = 30.0                # 秒；0 表示不限時


@dataclass
class Config:
    """應用程式配置"""
    host: str = ""                        # e.g. https://jira.example.com
    login: str = ""
    password: str = ""
    basic_auth_login: str = ""            # 反向代理的 Basic Auth (可選)
    basic_auth_password: str = ""
    issue_id_regex: str = DEFAULT_ISSUE_ID_REGEX
    worklog_comment: str = ""             # 支援 {issueId} {TaskNumber} {JiraProject}
    project: str = ""                     # 預設專案代號 (舊版設定)
    repo_path: str = ""                   # 追蹤的 git 倉庫，空則使用目前目錄
    request_timeout: Optional[float] = DEFAULT_REQUEST_TIMEOUT

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        """載入配置，環境變數優先"""
        path = path or CONFIG_FILE
        data = {}
        if path.exists():
            try:
                with open(path) as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Failed to read config {path}: {e}")
                data = {}
        config = cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
        config.apply_env()
        return config

    def apply_env(self, environ: Optional[dict] = None):
        """套用 JIRA_WORKLOG_* 環境變數"""
        environ = os.environ if environ is None else environ
        for f in fields(self):
            value = environ.get(ENV_PREFIX + f.name.upper())
            if value is None:
                continue
            if f.name == "request_timeout":
                try:
                    value = float(value) if value else None
                except ValueError:
                    logger.warning(f"Ignoring invalid {ENV_PREFIX}REQUEST_TIMEOUT={value!r}")
                    continue
            setattr(self, f.name, value)

    def save(self, path: Optional[Path] = None):
        """儲存配置"""
        path = path or CONFIG_FILE
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(asdict(self), f, indent=2)
        # 設定檔案權限為僅擁有者可讀寫
        path.chmod(0o600)

    def missing_required(self) -> list[str]:
        """列出尚未設定的必要項目"""
        return [name for name in ("host", "login", "password") if not getattr(self, name)]

    def is_configured(self) -> bool:
        """檢查是否已配置必要項目"""
        return not self.missing_required()

    def has_basic_auth(self) -> bool:
        return bool(self.basic_auth_login and self.basic_auth_password)

    def relogin_fingerprint(self) -> tuple:
        """變更後需要重新登入的設定值"""
        return (
            self.host,
            self.login,
            self.password,
            self.issue_id_regex,
            self.basic_auth_login,
            self.basic_auth_password,
        )

    def get_repo_path(self) -> str:
        return self.repo_path or os.getcwd()
