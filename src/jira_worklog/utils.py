"""
時間格式化與時鐘工具
"""

import time
from datetime import datetime, timezone


def now_ms() -> int:
    """目前時間 (epoch milliseconds)"""
    return int(time.time() * 1000)


def format_seconds(seconds: int) -> str:
    """
    將秒數轉為 HH:MM:SS

    小時欄位不設上限，超過 99 小時時會顯示三位數以上，不會截斷。

    Examples:
        >>> format_seconds(3661)
        '01:01:01'
        >>> format_seconds(360000)
        '100:00:00'
    """
    seconds = int(seconds)
    hours = seconds // 3600
    minutes = (seconds // 60) % 60
    secs = seconds % 60
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_started(epoch_ms: int) -> str:
    """格式化為 Jira worklog 的 started 欄位: 2025-12-31T09:00:00.000+0000"""
    dt = datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}+0000"
