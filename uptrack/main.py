"""Entry point for uptrack: probe, rollup, archive maintenance, status reads, API."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from uptrack.config import settings
from uptrack.errors import LogIOError
from uptrack.probe.archive import compress_closed_days, prune_archives
from uptrack.probe.engine import Recorder
from uptrack.probe.http import run_http_probe
from uptrack.rollup.engine import run_rollup
from uptrack.services import ServiceCheckDef, ServiceRegistry

console = Console()
logger = logging.getLogger("uptrack")

STATE_STYLE = {
    "up": "green", "operational": "green",
    "degraded": "yellow",
    "down": "red", "outage": "red",
    "no-data": "dim", "maintenance": "blue",
}


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )


# ── Commands ─────────────────────────────────────────────────────────────────


def run_probe(args: argparse.Namespace) -> int:
    if args.config:
        checks = ServiceRegistry(Path(args.config)).load()
    elif args.service and args.url:
        checks = [ServiceCheckDef(
            name=args.service,
            url=args.url,
            method=args.method.upper(),
            timeout_ms=args.timeout,
            expected_codes=args.expected_codes,
            max_response_time_ms=args.max_response_time,
        )]
    elif settings.services_file.exists():
        checks = ServiceRegistry(settings.services_file).load()
    else:
        console.print("[red]Error:[/red] provide either --config or both --service and --url")
        return 1

    if not checks:
        console.print("[red]Error:[/red] no services to monitor")
        return 1

    for check in checks:
        recorder = Recorder(
            args.output_dir,
            expected_codes=check.expected_codes,
            max_response_time_ms=check.max_response_time_ms,
            hot_window_days=settings.hot_window_days,
        )
        try:
            reading = recorder.check(
                check.name, lambda c=check: run_http_probe(c.url, c.method, c.timeout_ms),
            )
        except LogIOError as e:
            logger.error("Could not record %s: %s", check.name, e)
            return 1
        style = STATE_STYLE.get(reading.state.value, "")
        console.print(
            f"[{style}]{reading.service}[/{style}]: {reading.state.value} "
            f"({reading.response_code} in {reading.latency_ms}ms)"
        )
    return 0


def run_rollup_cmd(args: argparse.Namespace) -> int:
    try:
        report = run_rollup(args.output_dir, args.window, max_workers=settings.rollup_workers)
    except LogIOError as e:
        console.print(f"[red]Error:[/red] {e}")
        console.print("[dim]Make sure --output-dir points to the status data directory.[/dim]")
        return 1
    except Exception as e:
        logger.exception("Rollup failed: %s", e)
        return 1

    console.print(f"Generated [bold]{report.path}[/bold]")
    console.print(f"  Services: {report.service_count}")
    console.print(f"  Days with data: {report.days_with_data}")
    console.print(f"  Window: {args.window} days")
    if report.skipped:
        console.print(f"  [yellow]Skipped {len(report.skipped)} unreadable day logs[/yellow]")
    if report.service_count == 0:
        console.print("[yellow]Warning: no data found in archives.[/yellow]")
    return 0


def run_compress(args: argparse.Namespace) -> int:
    try:
        written = compress_closed_days(args.output_dir)
    except LogIOError as e:
        console.print(f"[red]Error:[/red] {e}")
        return 1
    console.print(f"Compressed {len(written)} day logs")
    return 0


def run_prune(args: argparse.Namespace) -> int:
    try:
        removed = prune_archives(args.output_dir, args.keep_days, min_keep_days=settings.hot_window_days)
    except (ValueError, LogIOError) as e:
        console.print(f"[red]Error:[/red] {e}")
        return 1
    console.print(f"Removed {removed} day logs")
    return 0


def run_status(args: argparse.Namespace) -> int:
    from uptrack.api.server import reader_from_settings

    view = asyncio.run(reader_from_settings(args.output_dir).get_merged(args.service, args.days))

    if view.error:
        console.print(f"[red]{view.service}: {view.error}[/red]")
        return 1

    table = Table(title=f"{view.service}: last {view.window_days} days ({view.source.value})")
    table.add_column("Date")
    table.add_column("Status")
    table.add_column("Uptime", justify="right")
    table.add_column("Avg ms", justify="right")
    table.add_column("p95 ms", justify="right")
    table.add_column("Checks", justify="right")
    table.add_column("Incidents", justify="right")
    for day in view.days:
        e = day.entry
        style = STATE_STYLE.get(day.status.value, "")
        table.add_row(
            e.date.isoformat(),
            f"[{style}]{day.status.value}[/{style}]",
            f"{e.uptimePct * 100:.2f}%",
            "-" if e.avgLatencyMs is None else str(e.avgLatencyMs),
            "-" if e.p95LatencyMs is None else str(e.p95LatencyMs),
            f"{e.checksPassed}/{e.checksTotal}",
            str(e.incidentCount),
        )
    console.print(table)
    for advisory in view.advisories:
        console.print(f"[yellow]{advisory}[/yellow]")
    return 0


def run_server(args: argparse.Namespace) -> int:
    import uvicorn

    settings.data_dir = args.output_dir  # read by the app factory in the server process
    console.print(f"Starting uptrack API on {settings.api_host}:{settings.api_port}")
    uvicorn.run(
        "uptrack.api.server:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )
    return 0


# ── Parser ───────────────────────────────────────────────────────────────────


def _codes(value: str) -> list[int]:
    try:
        return [int(c.strip()) for c in value.split(",") if c.strip()]
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid status code list: {value}") from e


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--output-dir", type=Path, default=settings.data_dir,
                        help="Status data directory (archives/, current.json, daily-summary.json)")
    common.add_argument("--verbose", action="store_true", help="Enable debug logging")

    parser = argparse.ArgumentParser(prog="uptrack", description="Service uptime history")
    sub = parser.add_subparsers(dest="command")

    probe = sub.add_parser("probe", parents=[common], help="Check services and record readings")
    probe.add_argument("--service", help="Service name (e.g. 'api')")
    probe.add_argument("--url", help="URL to check")
    probe.add_argument("--method", default="GET")
    probe.add_argument("--timeout", type=int, default=settings.probe_timeout_ms, help="Timeout in ms")
    probe.add_argument("--expected-codes", type=_codes, default=list(settings.expected_codes))
    probe.add_argument("--max-response-time", type=int, default=settings.max_response_time_ms,
                       help="Slower than this (ms) counts as degraded")
    probe.add_argument("--config", help="services.yaml with check definitions (falls back to SERVICES_FILE if it exists)")
    probe.set_defaults(func=run_probe)

    rollup = sub.add_parser("rollup", parents=[common], help="Regenerate daily-summary.json")
    rollup.add_argument("--window", type=int, default=settings.summary_window_days,
                        help="Number of days to aggregate")
    rollup.set_defaults(func=run_rollup_cmd)

    compress = sub.add_parser("compress", parents=[common], help="Gzip closed day logs")
    compress.set_defaults(func=run_compress)

    prune = sub.add_parser("prune", parents=[common], help="Delete day logs past retention")
    prune.add_argument("--keep-days", type=int, default=settings.summary_window_days)
    prune.set_defaults(func=run_prune)

    status = sub.add_parser("status", parents=[common], help="Show merged daily history")
    status.add_argument("--service", required=True)
    status.add_argument("--days", type=int, default=settings.summary_window_days)
    status.set_defaults(func=run_status)

    serve = sub.add_parser("serve", parents=[common], help="Start the status API server")
    serve.set_defaults(func=run_server)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not getattr(args, "func", None):
        parser.print_help()
        sys.exit(1)

    _configure_logging(args.verbose)
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
