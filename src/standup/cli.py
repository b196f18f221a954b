#!/usr/bin/env python3
"""
Stand-Up CLI - Daily Stand-Up 命令列介面

使用 Typer + Rich 顯示 Kimai 時間記錄與 Azure DevOps Task 的彙總
"""

import asyncio
import logging
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from .cache import CachingAlgorithm
from .comments import format_work_item
from .config import CONFIG_FILE, Config
from .errors import StandUpError
from .models import Iteration
from .services import Services, create_services
from .standup import StandUpEntry, Summary

app = typer.Typer(
    name="standup",
    help="彙整 Kimai 時間記錄與 Azure DevOps 工作項目",
    no_args_is_help=True,
)
console = Console()


def _parse_date(value: str) -> date:
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except ValueError:
        raise typer.BadParameter(f"日期格式錯誤: {value} (應為 YYYY-MM-DD)")


def get_report_range(
    today: date,
    date_str: Optional[str] = None,
    from_date: Optional[str] = None,
    to_date: Optional[str] = None,
    days: Optional[int] = None,
    week: bool = False,
) -> tuple[date, date]:
    """依命令列選項決定報表範圍，預設為今天"""
    if week:
        return today - timedelta(days=today.weekday()), today
    if days:
        return today - timedelta(days=days - 1), today
    if date_str:
        d = _parse_date(date_str)
        return d, d
    if from_date:
        return _parse_date(from_date), _parse_date(to_date) if to_date else today
    return today, today


@contextmanager
def handle_errors():
    """把服務錯誤轉為紅字訊息與 exit code 1"""
    try:
        yield
    except StandUpError as e:
        console.print(f"[red]✗ {escape(str(e))}[/red]")
        raise typer.Exit(1)


def get_services() -> Services:
    return create_services(Config.load())


def _flags(node) -> str:
    flags = ""
    if node.is_running:
        flags += " [green]⏱[/green]"
    if node.all_exported and node.entries:
        flags += " [dim]✓ 已匯出[/dim]"
    elif node.can_export:
        flags += " [cyan]可匯出[/cyan]"
    return flags


def _format_entry(entry: StandUpEntry, tz) -> str:
    begin = entry.begin.astimezone(tz).strftime('%H:%M')
    end = entry.end.astimezone(tz).strftime('%H:%M') if entry.end else "..."
    hours = entry.total_time.total_seconds() / 3600
    line = f"[dim]#{entry.id}[/dim] {begin}-{end} [magenta]{hours:.2f}h[/magenta]"
    if entry.is_overlapping:
        line += " [red]⚠ 時間重疊[/red]"
    if entry.is_running:
        line += " [green]⏱ 計時中[/green]"
    elif entry.exported:
        line += " [dim]✓[/dim]"
    return line


def _print_narrative(narrative, indent: str):
    if narrative is None:
        return
    for icon, text in (
        ("🏆", narrative.accomplishments),
        ("🧱", narrative.impediments),
        ("🧠", narrative.learnings),
        ("📝", narrative.other_comments),
    ):
        if text:
            for line in text.split("\n"):
                console.print(f"{indent}{icon} [dim]{escape(line)}[/dim]")


def display_summary(summary: Summary, tz):
    """使用 Rich 顯示 stand-up 彙總"""
    console.print(f"[bold]📊 Daily Stand-Up ({summary.label})[/bold]\n")

    for day in summary.children:
        console.print(f"[bold cyan]{day.label}[/bold cyan] [dim]({day.total_hours:.2f}h)[/dim]{_flags(day)}")
        if not day.children:
            console.print("  [dim]沒有時間記錄[/dim]")

        for project in day.children:
            console.print(f"  [white]{escape(project.label)}[/white] [magenta]{project.total_hours:.2f}h[/magenta]")
            for activity in project.children:
                console.print(f"    [blue]{escape(activity.label)}[/blue] [magenta]{activity.total_hours:.2f}h[/magenta]")
                for task in activity.children:
                    label = format_work_item(task.key, task.parent) if task.key else "未指定 Task"
                    extra = ""
                    if task.time_remaining is not None:
                        extra += f" [dim](剩餘 {task.time_remaining:.1f}h)[/dim]"
                    if task.needs_estimate:
                        extra += " [yellow]需要估時[/yellow]"
                    console.print(
                        f"      [yellow]{escape(label)}[/yellow] "
                        f"[magenta]{task.total_hours:.2f}h[/magenta]{extra}{_flags(task)}"
                    )
                    _print_narrative(task.narrative, "         ")
                    for entry in task.entries:
                        console.print(f"         {_format_entry(entry, tz)}")
        console.print()

    console.print(f"[bold]總計:[/bold] {summary.total_hours:.2f} 小時 | "
                  f"{len(summary.entries)} 筆記錄 | "
                  f"{len(summary.children)} 天")


@app.command()
def report(
    date_str: Optional[str] = typer.Option(None, "--date", "-d", help="指定日期 (YYYY-MM-DD)"),
    from_date: Optional[str] = typer.Option(None, "--from", help="開始日期"),
    to_date: Optional[str] = typer.Option(None, "--to", help="結束日期"),
    days: Optional[int] = typer.Option(None, "--days", "-n", help="過去 N 天"),
    week: bool = typer.Option(False, "--week", "-w", help="本週"),
    refresh: bool = typer.Option(False, "--refresh", "-r", help="忽略快取重新讀取"),
):
    """顯示 Daily Stand-Up 彙總"""
    with handle_errors():
        services = get_services()
        begin, end = get_report_range(services.standup.today(), date_str, from_date, to_date, days, week)
        algorithm = CachingAlgorithm.FORCE_REFRESH if refresh else CachingAlgorithm.USE_CACHE
        summary = asyncio.run(services.standup.get_period(begin, end, algorithm))
        display_summary(summary, services.standup.tz)


@app.command()
def export(
    date_str: Optional[str] = typer.Option(None, "--date", "-d", help="指定日期 (YYYY-MM-DD)"),
    from_date: Optional[str] = typer.Option(None, "--from", help="開始日期"),
    to_date: Optional[str] = typer.Option(None, "--to", help="結束日期"),
    yes: bool = typer.Option(False, "--yes", "-y", help="不詢問直接匯出"),
):
    """把已停止的時間記錄匯出並加到 Task 的 Completed Work"""
    with handle_errors():
        services = get_services()
        begin, end = get_report_range(services.standup.today(), date_str, from_date, to_date)
        summary = asyncio.run(services.standup.get_period(begin, end, CachingAlgorithm.FORCE_REFRESH))

        exportable = [e for e in summary.entries if e.can_export]
        if not exportable:
            console.print("[yellow]沒有可匯出的時間記錄[/yellow]")
            return

        hours = sum(e.total_time.total_seconds() for e in exportable) / 3600
        console.print(f"即將匯出 [bold]{len(exportable)}[/bold] 筆記錄，共 [magenta]{hours:.2f}h[/magenta]")
        if not yes and not Confirm.ask("確認匯出?", default=False):
            return

        result = asyncio.run(services.standup.export(exportable))

        table = Table(title="📤 Completed Work 調整")
        table.add_column("Task", style="cyan")
        table.add_column("Completed", justify="right")
        table.add_column("Remaining", justify="right")
        table.add_column("狀態")
        for adjustment in result.adjustments:
            wi = adjustment.work_item
            if adjustment.export_error:
                status = f"[yellow]已更新，匯出失敗: {escape(adjustment.export_error)}[/yellow]"
            elif adjustment.changed:
                status = "[green]✓ 已更新[/green]"
            else:
                status = "[dim]未變更[/dim]"
            table.add_row(
                f"D#{wi.id} {escape(wi.title)}",
                f"{wi.completed_work or 0:.2f}",
                f"{wi.remaining_work:.1f}" if wi.remaining_work is not None else "-",
                status,
            )
        for task_id, error in result.failures.items():
            table.add_row(f"D#{task_id}", "-", "-", f"[red]✗ {escape(error)}[/red]")
        if result.adjustments or result.failures:
            console.print(table)
        console.print(f"[green]✓ 已匯出 {len(result.exported_ids)} 筆記錄[/green]")

        if not result.succeeded:
            console.print(f"[red]✗ {len(result.failures)} 個 Task 調整失敗，其記錄未匯出，請稍後重新匯出[/red]")
            raise typer.Exit(1)


@app.command()
def adjust(
    work_item_id: int = typer.Argument(..., help="Task ID"),
    hours: float = typer.Argument(..., help="要加到 Completed Work 的時數（可為負數）"),
):
    """手動調整 Task 的 Completed Work"""
    with handle_errors():
        services = get_services()
        result = asyncio.run(services.completed_work.adjust(work_item_id, timedelta(hours=hours)))
        wi = result.work_item
        if not result.changed:
            console.print(f"[dim]D#{wi.id} 沒有需要變更的欄位[/dim]")
            return
        console.print(f"[green]✓ D#{wi.id} {escape(wi.title)}[/green]")
        for op in result.operations:
            console.print(f"  {op.path.rsplit('.', 1)[-1]} → {op.value}")
        if result.export_error:
            console.print(f"[yellow]⚠ 匯出調整失敗: {escape(result.export_error)}[/yellow]")


@app.command()
def reorder(
    team: str = typer.Argument(..., help="團隊名稱"),
    iteration_id: str = typer.Argument(..., help="Iteration ID"),
    ids: list[int] = typer.Argument(..., help="要移動的 work item ID（依順序）"),
    after: Optional[int] = typer.Option(None, "--after", help="放在這個 work item 之後"),
    before: Optional[int] = typer.Option(None, "--before", help="放在這個 work item 之前"),
    path: str = typer.Option("", "--path", help="Iteration path"),
):
    """在 sprint backlog 中移動 work item"""
    with handle_errors():
        services = get_services()
        iteration = Iteration(team_name=team, id=iteration_id, path=path)
        results = asyncio.run(services.reorder.reorder(iteration, ids, previous_id=after, next_id=before))

        table = Table(title="↕️ Backlog 排序")
        table.add_column("Work Item", style="cyan")
        table.add_column("Backlog Priority", justify="right")
        for result in results:
            table.add_row(f"D#{result.id}", f"{result.order:.2f}")
        console.print(table)


@app.command()
def stop(entry_id: Optional[int] = typer.Argument(None, help="時間記錄 ID（省略時停止目前計時中的記錄）")):
    """停止計時中的時間記錄"""
    with handle_errors():
        services = get_services()
        stopped = asyncio.run(services.standup.stop_timer(entry_id))
        if stopped is None:
            console.print("[yellow]目前沒有計時中的記錄[/yellow]")
            return
        console.print(f"[green]✓ 已停止 #{stopped}[/green]")


@app.command()
def setup():
    """配置 Kimai 與 Azure DevOps 連接資訊"""
    console.print(Panel.fit(
        "[bold]Kimai / Azure DevOps 連接配置[/bold]",
        title="⚙️",
    ))

    config = Config.load()

    config.kimai_url = Prompt.ask("Kimai URL", default=config.kimai_url)
    new_token = Prompt.ask("Kimai API Token", password=True, default="")
    if new_token:
        config.kimai_token = new_token

    config.azure_devops_url = Prompt.ask("Azure DevOps URL", default=config.azure_devops_url)
    config.azure_devops_project = Prompt.ask("Azure DevOps 專案", default=config.azure_devops_project)
    new_pat = Prompt.ask("Azure DevOps PAT", password=True, default="")
    if new_pat:
        config.azure_devops_pat = new_pat

    config.timezone = Prompt.ask("時區 (例如 Asia/Taipei，Enter 使用系統時區)", default=config.timezone)
    config.outbox_path = Prompt.ask("工時調整匯出檔 (可選，直接 Enter 跳過)", default=config.outbox_path)

    config.save()
    console.print("\n[green]✓ 配置已保存[/green]")

    # 測試連接
    console.print("\n測試連接...")
    try:
        services = create_services(config)
        user = asyncio.run(services.users.get_current_user())
        console.print(f"[green]✓ Kimai 使用者: {escape(user.display_name or user.username)}[/green]")
    except StandUpError as e:
        console.print(f"[red]✗ 連接失敗: {escape(str(e))}[/red]")


@app.command()
def status():
    """顯示目前配置狀態"""
    config = Config.load()

    table = Table(title="⚙️ 配置狀態", show_header=False)
    table.add_column("項目", style="cyan")
    table.add_column("值")
    table.add_row("設定檔", str(CONFIG_FILE))
    table.add_row("Kimai", config.kimai_url or "[red]未設定[/red]")
    table.add_row("Azure DevOps", config.azure_devops_url or "[red]未設定[/red]")
    table.add_row("專案", config.azure_devops_project or "-")
    table.add_row("時區", config.timezone or "系統時區")
    table.add_row("快取", f"{config.cache_max_age_seconds} 秒")
    table.add_row("報表上限", f"{config.max_report_days} 天")
    table.add_row("匯出檔", config.outbox_path or "-")
    console.print(table)

    if not config.is_configured():
        console.print("[yellow]尚未完成配置，請執行 standup setup[/yellow]")
        raise typer.Exit(1)

    with handle_errors():
        services = create_services(config)
        user = asyncio.run(services.users.get_current_user())
        console.print(f"[green]✓ 已連接 Kimai: {escape(user.display_name or user.username)}[/green]")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="顯示除錯訊息")):
    """
    Stand-Up - 彙整 Kimai 時間記錄與 Azure DevOps 工作項目

    使用方式:
      standup report              # 今天的 stand-up
      standup report -w           # 本週
      standup export -d 2024-05-01
      standup adjust 12345 1.5    # Completed Work +1.5h
      standup setup               # 配置連接
    """
    load_dotenv()
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


if __name__ == "__main__":
    app()
