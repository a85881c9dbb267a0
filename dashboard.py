"""Visual terminal dashboard for TruthBounty."""
from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

import config
from adapters import get_all_adapters
from data import db
from data.models import LeaderboardEntry, ResolutionSummary
from engine.leaderboard import LeaderboardCache, sqlite_snapshot
from engine.resolver import resolve_platform

# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------
console = Console()
log = logging.getLogger("dashboard")

TOP_N = 25

TIER_STYLES = {
    "Legendary": "bold magenta",
    "Diamond": "bold cyan",
    "Platinum": "white",
    "Gold": "yellow",
    "Silver": "bright_black",
    "Bronze": "dim",
}


def setup_logging():
    """Route all logging to the log file; rich handles the console."""
    root = logging.getLogger()
    root.setLevel(logging.INFO)
    root.handlers.clear()
    fh = logging.FileHandler(config.LOG_FILE, encoding="utf-8")
    fh.setFormatter(logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    ))
    root.addHandler(fh)


def _progress() -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("  {task.description}"),
        BarColumn(bar_width=30),
        MofNCompleteColumn(),
        TextColumn("[dim]|[/]"),
        TimeElapsedColumn(),
        console=console,
        transient=False,
    )


def print_header(cycle: int):
    now = datetime.now().strftime("%Y-%m-%d %H:%M")
    console.print()
    console.print(Panel(
        f"[bold cyan]TRUTHBOUNTY[/]  [dim]|[/]  "
        f"Cycle [bold]#{cycle}[/]  [dim]|[/]  {now}",
        style="cyan",
        expand=True,
    ))


# ---------------------------------------------------------------------------
# Leaderboard
# ---------------------------------------------------------------------------
def _short(address: str) -> str:
    return address if len(address) <= 16 else f"{address[:8]}...{address[-4:]}"


def leaderboard_table(entries: list[LeaderboardEntry]) -> Table:
    t = Table(box=box.SIMPLE, show_lines=False)
    t.add_column("#", style="dim", justify="right", width=4)
    t.add_column("Trader", style="white", min_width=18)
    t.add_column("Platform", style="cyan")
    t.add_column("Score", justify="right", style="bold yellow")
    t.add_column("Tier", justify="center")
    t.add_column("Win %", justify="right", style="green")
    t.add_column("Bets", justify="right")
    t.add_column("PnL", justify="right")
    t.add_column("Volume", justify="right", style="dim")
    for e in entries:
        pnl_style = "green" if e.pnl >= 0 else "red"
        t.add_row(
            str(e.rank),
            e.username or _short(e.address),
            ", ".join(e.platforms),
            f"{e.truth_score:,}",
            f"[{TIER_STYLES.get(e.tier, 'white')}]{e.tier}[/]",
            f"{e.win_rate:.1f}",
            f"{e.total_bets:,}",
            f"[{pnl_style}]{e.pnl:+,.0f}[/]",
            f"{e.volume:,.0f}",
        )
    return t


def show_leaderboard(cache: LeaderboardCache):
    console.print("\n  [bold yellow]LEADERBOARD[/]\n")
    with console.status("  [green]Fetching all platforms...[/]"):
        cache.refresh()
    page = cache.get(limit=TOP_N)

    st = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
    st.add_column(style="dim")
    st.add_column(style="bold white")
    for pid, status in cache.platform_status.items():
        style = "green" if status.startswith("ok") else "red" if status == "error" else "yellow"
        st.add_row(pid, f"[{style}]{status}[/]")
    console.print(Panel(st, title="[bold]Platforms[/]", border_style="dim", expand=False))

    if not page.data:
        console.print("  [dim]No leaderboard data this cycle.[/]\n")
        return
    console.print(Panel(
        leaderboard_table(page.data),
        title=f"[bold]Top {len(page.data)} of {page.total:,} traders[/]",
        border_style="cyan",
        expand=False,
    ))


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------
def resolve_trades(conn) -> list[ResolutionSummary]:
    console.print("\n  [bold yellow]RESOLUTION[/]\n")
    adapters = get_all_adapters()
    summaries = []
    with _progress() as progress:
        task = progress.add_task("[cyan]Platforms", total=len(adapters))
        for adapter in adapters:
            try:
                summaries.append(resolve_platform(conn, adapter.platform_id))
            except Exception:
                log.exception("Resolve %s failed", adapter.platform_id)
            progress.advance(task)
    return summaries


def resolution_table(summaries: list[ResolutionSummary]) -> Table:
    t = Table(box=box.ROUNDED, show_lines=False)
    t.add_column("Platform", style="cyan")
    t.add_column("Resolved", justify="right", style="bold white")
    t.add_column("Pending", justify="right")
    t.add_column("W / L / R", justify="right")
    t.add_column("Win rate", justify="right", style="green")
    t.add_column("Errors", justify="right", style="red")
    t.add_column("Note", style="dim")
    for s in summaries:
        t.add_row(
            s.platform,
            str(s.resolved),
            str(s.pending),
            f"{s.wins}/{s.losses}/{s.refunds}",
            s.win_rate,
            str(s.errors) if s.errors else "",
            (s.message or "")[:50],
        )
    return t


# ---------------------------------------------------------------------------
# Countdown between cycles
# ---------------------------------------------------------------------------
def countdown(minutes: int):
    end = datetime.now() + timedelta(minutes=minutes)
    try:
        with console.status("") as status:
            while datetime.now() < end:
                left = end - datetime.now()
                m, s = divmod(int(left.total_seconds()), 60)
                status.update(f"  [dim]Next cycle in[/] [bold]{m:02d}:{s:02d}[/]")
                time.sleep(1)
    except KeyboardInterrupt:
        console.print()
        raise


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------
def run():
    setup_logging()

    conn = db.get_connection()
    db.init_db(conn)
    cache = LeaderboardCache(on_refresh=sqlite_snapshot(config.DB_PATH))

    console.print(Panel(
        "[bold cyan]TruthBounty[/] [dim]- Dashboard[/]",
        style="bold cyan",
        expand=True,
    ))

    cycle = 1
    try:
        while True:
            print_header(cycle)
            try:
                show_leaderboard(cache)
                summaries = resolve_trades(conn)
                active = [s for s in summaries if s.resolved or s.pending or s.wins or s.losses]
                if active:
                    console.print(Panel(resolution_table(active), title="[bold]Simulated Trades[/]",
                                        border_style="dim", expand=False))
                else:
                    console.print("  [dim]No simulated trades yet.[/]")
            except KeyboardInterrupt:
                raise
            except Exception as e:
                console.print(f"\n  [bold red]Cycle failed:[/] {e}")
                console.print(f"  [dim]Will retry next interval, see {config.LOG_FILE}[/]")
                log.exception("Cycle %d failed", cycle)

            console.rule("[dim]cycle complete[/]")
            countdown(config.LEADERBOARD_INTERVAL_MINUTES)
            cycle += 1
    except KeyboardInterrupt:
        console.print("\n  [bold yellow]Stopped by user (Ctrl+C)[/]\n")
    finally:
        conn.close()


if __name__ == "__main__":
    run()
