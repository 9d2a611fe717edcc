"""
worklog 追蹤器的錯誤類型

所有錯誤都在操作邊界 (登入、上傳、載入、註冊) 被攔下，
轉成使用者看得到的訊息並寫入日誌。
"""

from typing import Optional


class WorklogError(Exception):
    """所有錯誤的基底類別"""


class ConfigMissing(WorklogError):
    """缺少必要設定"""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Missing settings: {', '.join(missing)}")


class AuthError(WorklogError):
    """Jira 拒絕登入"""


class SessionExpired(WorklogError):
    """保存的 session 已失效"""


class RepoNotFound(WorklogError):
    """讀取分支失敗，通常是路徑不在 git 倉庫中"""


class IssueUnresolvable(WorklogError):
    """分支名稱依設定的 regex 取不到 issue id"""


class TrackerReportedError(WorklogError):
    """Jira 回傳了 ``errorMessages``"""

    def __init__(self, messages: list[str]):
        self.messages = messages
        super().__init__(messages[0] if messages else "Unknown tracker error")


class TransportError(WorklogError):
    """連線失敗，或回應不是合法 JSON"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


# 舊名稱
NetworkError = TransportError
