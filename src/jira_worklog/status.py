"""
狀態列與通知

編輯器側欄的狀態指示器在終端機中以 rich 呈現為單行狀態。
"""

import logging
from dataclasses import dataclass
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.text import Text

from .utils import format_seconds


logger = logging.getLogger(__name__)

TOGGLE_COMMAND = "jira-worklog.toggle"


@dataclass
class StatusIndicator:
    """單一狀態指示器：文字、是否顯示、綁定的指令"""
    text: str = ""
    visible: bool = False
    command: Optional[str] = None

    def show(self):
        self.visible = True

    def hide(self):
        self.visible = False


class ConsoleUI:
    """狀態指示器與使用者通知"""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()
        self.indicator = StatusIndicator()

    # 狀態列

    def set_text(self, text: str):
        self.indicator.text = text

    def set_busy(self, text: str):
        self.indicator.text = f"⟳ {text}"

    def set_start_label(self, issue_id: str, seconds: int):
        self.indicator.text = f"⏱ Start Worklog ({format_seconds(seconds or 0)}) for {issue_id}"

    def set_pause_label(self, issue_id: str, seconds: int):
        self.indicator.text = f"⏱ Pause Worklog ({format_seconds(seconds)}) for {issue_id}"

    def set_loading_label(self, issue_id: str):
        self.indicator.text = f"⏱ Load remote Worklog for {issue_id}..."

    def bind_command(self, command: str):
        if not self.indicator.command:
            self.indicator.command = command

    def render(self) -> Text:
        if not self.indicator.visible:
            return Text("")
        label = Text(self.indicator.text, style="bold cyan")
        if self.indicator.command:
            label.append("  [Enter] toggle  [q] quit", style="dim")
        return label

    # 通知

    def info(self, message: str):
        logger.info(message)
        self.console.print(f"[cyan]ℹ Jira Worklog: {escape(message)}[/cyan]")

    def error(self, message: str, exc: Optional[BaseException] = None):
        """顯示錯誤並隱藏狀態指示器"""
        self.indicator.hide()
        logger.error(message, exc_info=exc)
        self.console.print(f"[red]✗ {escape(message)}[/red]")
