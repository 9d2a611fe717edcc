"""
持久化的 key-value 狀態，以及在各元件間傳遞的 context
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Optional

from .config import STATE_FILE


logger = logging.getLogger(__name__)

SESSION_KEY = "jira-session"
BRANCH_KEY_PREFIX = "branch:"


class StateStore:
    """
    以 JSON 檔保存的小型 key-value store

    重新啟動後值仍保留。``StateStore.in_memory()`` 只存在記憶體中。
    loop 與背景執行緒 (重新登入時寫入 session) 都會寫入，以鎖保護。
    """

    def __init__(self, path: Optional[Path] = STATE_FILE):
        self.path = path
        self._data: dict[str, Any] = {}
        self._lock = threading.RLock()
        self.load()

    @classmethod
    def in_memory(cls) -> "StateStore":
        return cls(path=None)

    def load(self):
        if self.path is None or not self.path.exists():
            return
        try:
            with open(self.path) as f:
                self._data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to read state {self.path}: {e}")
            self._data = {}

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def update(self, key: str, value: Any):
        """設定 ``key`` 並立即寫回檔案；None 表示刪除"""
        with self._lock:
            if value is None:
                self._data.pop(key, None)
            else:
                self._data[key] = value
            self._flush()

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data)

    def _flush(self):
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        with open(tmp, 'w') as f:
            json.dump(self._data, f, indent=2, ensure_ascii=False)
        tmp.replace(self.path)


class WorklogContext:
    """session token 與各分支累計秒數，存放於 StateStore"""

    def __init__(self, store: StateStore):
        self.store = store

    @property
    def session(self) -> Optional[str]:
        return self.store.get(SESSION_KEY) or None

    @session.setter
    def session(self, token: Optional[str]):
        self.store.update(SESSION_KEY, token or None)

    def clear_session(self):
        self.session = None

    def get_seconds(self, branch: str) -> int:
        return int(self.store.get(BRANCH_KEY_PREFIX + branch) or 0)

    def set_seconds(self, branch: str, seconds: int):
        self.store.update(BRANCH_KEY_PREFIX + branch, max(0, int(seconds)))

    def reset_branch(self, branch: str):
        self.store.update(BRANCH_KEY_PREFIX + branch, None)

    def branches(self) -> dict[str, int]:
        """所有記錄過的分支與累計秒數"""
        return {
            key[len(BRANCH_KEY_PREFIX):]: int(self.store.get(key) or 0)
            for key in self.store.keys()
            if key.startswith(BRANCH_KEY_PREFIX)
        }
