"""
Git 分支輪詢與 issue id 擷取
"""

import logging
import re
import subprocess
from dataclasses import dataclass
from typing import Callable, Optional

from .config import DEFAULT_ISSUE_ID_REGEX
from .errors import RepoNotFound


logger = logging.getLogger(__name__)

POLL_INTERVAL = 1.5


def read_branch(repo_path: str) -> str:
    """``repo_path`` 倉庫目前的分支名稱"""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--abbrev-ref", "HEAD"],
            cwd=repo_path,
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        raise RepoNotFound(f"git failed in {repo_path}: {e}") from e

    if result.returncode != 0:
        raise RepoNotFound(result.stderr.strip() or f"{repo_path} is not a git repository")
    return result.stdout.strip()


def resolve_issue_id(branch: Optional[str], pattern: Optional[str] = None) -> Optional[str]:
    """
    以 ``pattern`` 搜尋 ``branch``，回傳第一個 capture group

    沒有分支、沒有符合或 regex 無效時回傳 None。
    """
    if not branch:
        return None
    pattern = pattern or DEFAULT_ISSUE_ID_REGEX
    try:
        match = re.search(pattern, branch)
    except re.error as e:
        logger.error(f"could not get issue id using regex [{pattern}]: {e}")
        return None
    if not match or not match.groups():
        return None
    return match.group(1) or None


@dataclass
class BranchChange:
    old_branch: Optional[str]
    new_branch: str
    old_issue_id: Optional[str]
    new_issue_id: Optional[str]


class BranchTracker:
    """記住上次看到的分支並回報切換"""

    def __init__(self, repo_path: str, get_pattern: Callable[[], str],
                 reader: Callable[[str], str] = read_branch):
        self.repo_path = repo_path
        self.get_pattern = get_pattern
        self.reader = reader
        self.branch: Optional[str] = None

    def issue_id(self, branch: Optional[str] = None) -> Optional[str]:
        return resolve_issue_id(branch if branch is not None else self.branch, self.get_pattern())

    def refresh(self) -> str:
        """讀取分支但不回報切換；失敗時拋出 RepoNotFound"""
        self.branch = self.reader(self.repo_path)
        return self.branch

    def poll(self) -> Optional[BranchChange]:
        try:
            new_branch = self.reader(self.repo_path)
        except RepoNotFound as e:
            logger.warning(f"Branch poll failed: {e}")
            return None

        if new_branch == self.branch:
            return None

        change = BranchChange(
            old_branch=self.branch,
            new_branch=new_branch,
            old_issue_id=self.issue_id(self.branch),
            new_issue_id=self.issue_id(new_branch),
        )
        logger.info(f"Branch changed: {change.old_branch} -> {change.new_branch}")
        self.branch = new_branch
        return change
