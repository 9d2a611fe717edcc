#!/usr/bin/env python3
"""
Jira Worklog CLI

依目前 git 分支自動計時，並將工時上傳為 Jira worklog。
使用 Typer + Rich 提供終端機介面。
"""

import logging
import sys
import threading
from typing import Optional

import typer
from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from .config import Config, CONFIG_FILE, LOG_FILE, STATE_FILE
from .errors import WorklogError
from .jira_api import JiraSessionClient
from .scheduler import LoopScheduler
from .status import ConsoleUI
from .storage import StateStore, WorklogContext
from .tracker import WorklogTracker
from .utils import format_seconds

app = typer.Typer(
    name="jira-worklog",
    help="依 git 分支自動記錄 Jira worklog",
    no_args_is_help=False,
)
console = Console()
logger = logging.getLogger(__name__)

QUIT_COMMANDS = {"q", "quit", "exit"}


def configure_logging(verbose: bool = False):
    """診斷日誌寫入設定目錄；--verbose 時同時輸出到終端機"""
    root = logging.getLogger("jira_worklog")
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.handlers.clear()

    try:
        LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(LOG_FILE, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        root.addHandler(file_handler)
    except OSError as e:
        console.print(f"[yellow]⚠ 無法寫入日誌 {LOG_FILE}: {e}[/yellow]")

    if verbose:
        root.addHandler(RichHandler(console=console, show_path=False))


def read_commands(scheduler: LoopScheduler, tracker: WorklogTracker, stream=None):
    """Enter 切換計時，q 或 EOF 離開；指令交給 loop 執行"""
    stream = stream or sys.stdin
    for line in stream:
        if line.strip().lower() in QUIT_COMMANDS:
            break
        scheduler.post(tracker.toggle)
    scheduler.stop()


@app.command()
def watch(
    no_input: bool = typer.Option(False, "--no-input", help="不讀取鍵盤指令 (stdin 不是終端機時自動啟用)"),
    submit_on_exit: bool = typer.Option(True, "--submit-on-exit/--keep-on-exit",
                                        help="離開時上傳進行中的 worklog"),
):
    """
    監看目前分支並計時

    Enter 開始/暫停計時，q 離開。
    """
    ui = ConsoleUI(console)
    context = WorklogContext(StateStore(STATE_FILE))
    scheduler = LoopScheduler()
    tracker = WorklogTracker(Config.load, context, scheduler, ui)

    # activate 先排入，讀取執行緒的 stop 一定在它之後
    scheduler.post(tracker.activate)

    if not no_input and sys.stdin.isatty():
        threading.Thread(
            target=read_commands, args=(scheduler, tracker), daemon=True
        ).start()
    else:
        logger.info("Keyboard commands disabled, stop with Ctrl+C")

    with Live(console=console, get_renderable=ui.render, refresh_per_second=4, transient=True):
        try:
            scheduler.run()
        except KeyboardInterrupt:
            pass
        finally:
            tracker.shutdown(submit=submit_on_exit)
            scheduler.close()


@app.command()
def setup():
    """配置 Jira 連接資訊"""
    console.print(Panel.fit(
        "[bold]Jira 連接配置[/bold]",
        title="⚙️",
    ))

    config = Config.load()

    config.host = Prompt.ask("Jira URL", default=config.host or "https://")
    config.login = Prompt.ask("Login", default=config.login)
    new_password = Prompt.ask("Password", password=True, default="")
    if new_password:
        config.password = new_password

    if Confirm.ask("\n是否需要反向代理 Basic Auth?", default=config.has_basic_auth()):
        config.basic_auth_login = Prompt.ask("Basic Auth login", default=config.basic_auth_login)
        new_basic = Prompt.ask("Basic Auth password", password=True, default="")
        if new_basic:
            config.basic_auth_password = new_basic
    else:
        config.basic_auth_login = ""
        config.basic_auth_password = ""

    config.issue_id_regex = Prompt.ask("Issue id regex (一個 capture group)", default=config.issue_id_regex)
    config.worklog_comment = Prompt.ask(
        "Worklog comment ({issueId} {TaskNumber} {JiraProject}，可留空)",
        default=config.worklog_comment,
    )

    config.save()
    console.print(f"\n[green]✓ 配置已保存[/green] [dim]({CONFIG_FILE})[/dim]")

    # 測試連接
    console.print("\n測試登入...")
    context = WorklogContext(StateStore(STATE_FILE))
    client = JiraSessionClient(lambda: config, context)
    try:
        client.create_session(config.login, config.password)
        console.print("[green]✓ 登入成功[/green]")
    except WorklogError as e:
        console.print(f"[red]✗ 登入失敗: {e}[/red]")


@app.command()
def status():
    """顯示配置與各分支累計時間"""
    config = Config.load()
    context = WorklogContext(StateStore(STATE_FILE))

    if config.is_configured():
        jira_status = f"[green]✓[/green] {config.host} [dim]({config.login})[/dim]"
    else:
        missing = ", ".join(config.missing_required())
        jira_status = f"[red]✗ 未配置 {missing}[/red] [dim](jira-worklog setup)[/dim]"
    session_status = "[green]✓[/green]" if context.session else "[dim]無[/dim]"

    console.print(f"[bold]Jira:[/bold] {jira_status}")
    console.print(f"[bold]Session:[/bold] {session_status}")
    console.print(f"[bold]Issue regex:[/bold] {config.issue_id_regex}\n")

    branches = context.branches()
    if not branches:
        console.print("[yellow]尚無計時記錄[/yellow]")
        return

    table = Table(title="⏱ 分支累計時間")
    table.add_column("Branch", style="cyan")
    table.add_column("Time", style="magenta", justify="right")

    for branch, seconds in sorted(branches.items()):
        table.add_row(branch, format_seconds(seconds))

    console.print(table)


@app.command()
def reset(branch: str = typer.Argument(..., help="要清除累計時間的分支")):
    """清除分支的本機累計時間"""
    context = WorklogContext(StateStore(STATE_FILE))
    if branch not in context.branches():
        console.print(f"[yellow]找不到分支 {branch} 的記錄[/yellow]")
        raise typer.Exit(code=1)
    context.reset_branch(branch)
    console.print(f"[green]✓ 已清除 {branch}[/green]")


@app.command()
def logout():
    """登出並清除本機 session"""
    config = Config.load()
    context = WorklogContext(StateStore(STATE_FILE))
    client = JiraSessionClient(lambda: config, context)
    if config.host:
        client.delete_session()
    else:
        context.clear_session()
    console.print("[green]✓ 已登出[/green]")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="在終端機輸出診斷日誌"),
):
    """
    Jira Worklog - 依 git 分支自動記錄 Jira worklog

    使用方式:
      jira-worklog              # 監看目前分支
      jira-worklog setup        # 配置 Jira
      jira-worklog status       # 各分支累計時間
      jira-worklog reset BRANCH # 清除分支時間
      jira-worklog logout       # 清除 session
    """
    configure_logging(verbose)
    if ctx.invoked_subcommand is None:
        ctx.invoke(watch, no_input=False, submit_on_exit=True)


if __name__ == "__main__":
    app()
