"""
CLI interface for Jevons.

Provides command-line access to syncing, serving and querying usage data.
"""

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import typer
import uvicorn
import yaml
from rich.console import Console
from rich.table import Table
from rich.tree import Tree

from jevons.api.app import create_app
from jevons.config.loader import AppConfig, load_config
from jevons.core.aggregation import DAY
from jevons.core.query import DEFAULT_LIVE_WINDOW, QueryService
from jevons.demo.seed_demo_data import seed_demo_data
from jevons.errors import InvalidRequest, SyncCancelled, SyncSourceUnavailable
from jevons.storage.repository import EVENTS_FILE, SYNC_STATUS_FILE, EventStore
from jevons.sync.heartbeat import read_heartbeat
from jevons.sync.pipeline import DATA_SUBDIRS, ensure_data_dirs, run_sync
from jevons.utils.logger import setup_logging

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

BAR_WIDTH = 60


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML configuration file"
    ),
    data_dir: Optional[str] = typer.Option(
        None,
        "--data-dir",
        help="Directory holding the synced data files"
    ),
    source_dir: Optional[str] = typer.Option(
        None,
        "--source-dir",
        help="Directory holding the session logs to sync from"
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)"
    ),
):
    """Jevons: local token usage monitor."""
    ctx.obj = {
        "config_path": config,
        "overrides": {"data_dir": data_dir, "source_dir": source_dir, "log_level": log_level},
    }
    if ctx.invoked_subcommand is None:
        console.print("Jevons - Use --help to see available commands")


def _load_config(ctx: typer.Context, **extra: Any) -> AppConfig:
    """Resolve configuration from the global options plus command flags."""
    obj = ctx.obj or {}
    overrides = dict(obj.get("overrides", {}))
    overrides.update(extra)
    try:
        return load_config(obj.get("config_path"), **overrides)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Configuration error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


def _query_service(config: AppConfig) -> QueryService:
    if not (Path(config.data_dir) / EVENTS_FILE).exists():
        console.print("[red]No synced events found.[/] Run: jevons sync")
        sys.exit(EXIT_CODE_FAIL)
    return QueryService(
        EventStore(config.data_dir),
        heartbeat_file=config.heartbeat_file,
        live_row_limit=config.live_row_limit,
    )


@app.command()
def sync(ctx: typer.Context):
    """Run one sync cycle and print what was written."""
    config = _load_config(ctx)
    setup_logging(config.log_level)
    try:
        result = run_sync(config)
    except (SyncSourceUnavailable, SyncCancelled) as e:
        console.print(f"[red]Sync failed:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(
        f"[green]✓[/] Synced {result.sessions_synced} sessions: "
        f"{result.events_written} events, {result.live_events_written} live events, "
        f"{result.projects_written} projects in {result.duration_ms}ms"
    )


@app.command()
def web(
    ctx: typer.Context,
    host: Optional[str] = typer.Option(None, "--host", help="Interface to bind"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to listen on"),
    interval: Optional[int] = typer.Option(
        None,
        "--interval",
        "-i",
        help="Seconds between background syncs (0 syncs once at start-up)"
    ),
):
    """Serve the dashboard API with background syncing."""
    config = _load_config(ctx, host=host, port=port, sync_interval=interval)
    setup_logging(config.log_level, log_file=config.log_file)
    console.print(f"[green]✓[/] Serving http://{config.host}:{config.port} (sync every {config.sync_interval}s)")
    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )


@app.command()
def status(ctx: typer.Context):
    """Show background sync liveness and the last sync outcome."""
    config = _load_config(ctx)
    state = read_heartbeat(config.heartbeat_file)

    if state is not None and state.mode == "running":
        console.print(
            f"sync_status=running pid={state.pid} source=heartbeat "
            f"age={state.age}s interval={state.interval}s status={state.status}",
            highlight=False,
            soft_wrap=True,
        )
    else:
        console.print("sync_status=stopped", highlight=False)

    if state is not None:
        console.print(
            f"sync_heartbeat={state.epoch},{state.interval},{state.pid},{state.status}",
            highlight=False,
            soft_wrap=True,
        )
    else:
        console.print("sync_heartbeat=none", highlight=False)

    status_path = Path(config.data_dir) / SYNC_STATUS_FILE
    if status_path.exists():
        raw = status_path.read_text(encoding="utf-8")
        console.print(f"sync_last_status_json={' '.join(raw.split())}", highlight=False, soft_wrap=True)
    else:
        console.print("sync_last_status_json=none", highlight=False)

    console.print(f"events_file={Path(config.data_dir) / EVENTS_FILE}", highlight=False, soft_wrap=True)


@app.command()
def doctor(
    ctx: typer.Context,
    fix: bool = typer.Option(False, "--fix", help="Attempt to fix detected issues"),
):
    """Check the source and data directories."""
    config = _load_config(ctx)
    all_ok = True
    source_dir = Path(config.source_dir)
    data_dir = Path(config.data_dir)

    console.print(f"Source dir: {source_dir}", highlight=False)
    if source_dir.is_dir():
        sessions = list(source_dir.glob("*/*.jsonl"))
        console.print(f"  [green][OK][/] Found {len(sessions)} session files")
    else:
        console.print("  [yellow][WARN][/] Source directory does not exist")
        all_ok = False

    console.print(f"Data dir: {data_dir}", highlight=False)
    missing = [d for d in [data_dir] + [data_dir / sub for sub in DATA_SUBDIRS] if not d.is_dir()]
    if missing:
        console.print(f"  [yellow][WARN][/] Missing directories: {', '.join(str(d) for d in missing)}")
        if fix:
            try:
                ensure_data_dirs(data_dir)
                console.print("  [green][FIXED][/] Created data directories")
            except OSError as e:
                console.print(f"  [red][FAIL][/] Could not create: {str(e)}")
        all_ok = False
    else:
        console.print("  [green][OK][/] Exists")

    events_path = data_dir / EVENTS_FILE
    if events_path.exists():
        console.print(f"  events.tsv: {events_path.stat().st_size} bytes")
    else:
        console.print("  events.tsv: not found (run: jevons sync)")
        all_ok = False

    if all_ok:
        console.print("\n[green]All checks passed.[/]")
    else:
        console.print("\nSome checks failed. Run with --fix to attempt repairs.")


@app.command()
def total(
    ctx: typer.Context,
    range_: str = typer.Option("24h", "--range", "-r", help="Time range (e.g. 1h, 24h, 7d, all)"),
    scope: Optional[str] = typer.Option(None, "--scope", "-s", help="Scope path or project slug"),
):
    """Print summary cards as JSON."""
    query = _query_service(_load_config(ctx))
    try:
        result = query.cards(range_, scope=scope)
    except InvalidRequest as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    console.print_json(json.dumps(result))


def _bucket_label(epoch: int, bucket_seconds: int) -> str:
    moment = datetime.fromtimestamp(epoch, tz=timezone.utc)
    if bucket_seconds >= DAY:
        return moment.strftime("%Y-%m-%d")
    return moment.strftime("%m-%d %H:%M")


def render_graph(series: Dict[str, Any], points: int) -> str:
    """Render a series as horizontal ASCII bars, one line per bucket."""
    buckets = series["buckets"][-points:] if points > 0 else []
    totals = [sum(values) for values in zip(*series["series"].values())][-len(buckets):] if buckets else []
    max_value = max(totals + [1])

    lines = [
        f"metric={series['metric']} mode={series['mode']} range_buckets={len(buckets)} "
        f"bucket_seconds={series['bucket_seconds']} max={max_value}"
    ]
    for epoch, value in zip(buckets, totals):
        bar = "#" * int(value / max_value * BAR_WIDTH)
        lines.append(f"{_bucket_label(epoch, series['bucket_seconds'])} | {bar:<{BAR_WIDTH}} {value}")
    return "\n".join(lines)


@app.command()
def graph(
    ctx: typer.Context,
    metric: str = typer.Option("billable", "--metric", "-m", help="Metric to graph"),
    range_: str = typer.Option("24h", "--range", "-r", help="Time range (e.g. 1h, 24h, 7d, all)"),
    points: int = typer.Option(80, "--points", help="Number of buckets to render"),
    bucket: str = typer.Option("auto", "--bucket", "-b", help="Bucket width: auto, hour or day"),
    mode: str = typer.Option("single", "--mode", help="single, in_out or cache"),
    scope: Optional[str] = typer.Option(None, "--scope", "-s", help="Scope path or project slug"),
):
    """Render an ASCII graph of token usage over time."""
    query = _query_service(_load_config(ctx))
    try:
        result = query.series(range_, scope=scope, metric=metric, mode=mode, bucket=bucket)
    except InvalidRequest as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if result["no_data"]:
        console.print("No data in selected range.")
        return
    console.print(render_graph(result, points), highlight=False, markup=False, soft_wrap=True)


@app.command()
def live(
    ctx: typer.Context,
    window: str = typer.Option(DEFAULT_LIVE_WINDOW, "--window", "-w", help="Lookback window (e.g. 15m, 1h)"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Maximum rows"),
    scope: Optional[str] = typer.Option(None, "--scope", "-s", help="Scope path or project slug"),
):
    """Show the most recent live events."""
    query = _query_service(_load_config(ctx))
    try:
        result = query.live(window, scope=scope, limit=limit)
    except InvalidRequest as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if not result["events"]:
        console.print(f"[dim]No live events in the last {window}.[/]")
        return

    table = Table(title=f"Live events ({window})")
    table.add_column("Time (UTC)")
    table.add_column("Project")
    table.add_column("Prompt")
    table.add_column("Billable", justify="right")
    table.add_column("Cached", justify="right")
    for event in result["events"]:
        table.add_row(
            event["ts_iso"],
            event["project_slug"],
            event["prompt_preview"],
            f"{event['billable']:,}",
            f"{event['cache_read'] + event['cache_create']:,}",
        )
    console.print(table)


def _add_branch(branch: Tree, node: Dict[str, Any]) -> None:
    for child in node["children"]:
        label = child["label"]
        if child["slugs"]:
            label += f" [dim]({', '.join(child['slugs'])})[/]"
        _add_branch(branch.add(label), child)


@app.command()
def scopes(
    ctx: typer.Context,
    search: Optional[str] = typer.Option(None, "--search", help="Case-insensitive filter"),
):
    """Print the project scope tree."""
    query = _query_service(_load_config(ctx))
    result = query.scopes(search)
    root = Tree(f"{result['tree']['label']} [dim]({result['leaf_count']} projects)[/]")
    _add_branch(root, result["tree"])
    console.print(root)


@app.command("seed-demo")
def seed_demo(
    ctx: typer.Context,
    data_dir: Optional[str] = typer.Option(None, "--data-dir", help="Target directory"),
):
    """Write a deterministic demo data set."""
    config = _load_config(ctx, data_dir=data_dir)
    counts = seed_demo_data(config.data_dir)
    console.print(
        f"[green]✓[/] Demo data written to {config.data_dir}: "
        f"{counts['events']} events, {counts['live_events']} live events, {counts['projects']} projects"
    )


if __name__ == "__main__":
    app()
