"""Entry point for the system-suite command line tool."""

from __future__ import annotations

import argparse
import json
import platform
import socket
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import psutil
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from . import __version__, actions
from .config import load_config
from .errors import LogSinkUnavailable
from .formatting import human_size, render_sample
from .host import Host
from .logsink import last_record, open_log_sink, read_records
from .runner import Classification, CommandOutcome, GuardedRunner
from .sampling import ResourceSampler, Sample, SampleKind

SCRIPT_NAME = "System Suite"
_LABELS = {SampleKind.CPU: "CPU Usage", SampleKind.MEMORY: "Memory", SampleKind.DISK: "Disk"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="system-suite",
        description="System status and maintenance actions from the terminal.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command")

    info = sub.add_parser("info", help="show the system dashboard (default)")
    info.add_argument("--json", action="store_true", help="print the samples as JSON")

    sub.add_parser("update", help="update installed packages")
    sub.add_parser("outdated", help="list outdated packages")
    sub.add_parser("clean-cache", help="clean the package manager cache")

    kill = sub.add_parser("kill", help="send SIGTERM to a process")
    kill.add_argument("pid", type=int)

    processes = sub.add_parser("processes", help="list the busiest processes")
    processes.add_argument("--top", type=int, default=10, help="number of processes to show")

    service = sub.add_parser("service", help="control a launchctl/systemctl service")
    service.add_argument("action", choices=actions.SERVICE_ACTIONS)
    service.add_argument("name")

    cleanup = sub.add_parser("cleanup", help="empty temporary, cache and log directories")
    cleanup.add_argument("--yes", action="store_true", help="delete instead of only reporting the estimate")

    sub.add_parser("backup", help="archive Documents, Desktop and Pictures")
    sub.add_parser("alerts", help="check disk and CPU thresholds")
    sub.add_parser("battery", help="show battery health")

    logs = sub.add_parser("logs", help="show the suite's own log")
    logs.add_argument("-n", "--lines", type=int, default=50, help="number of records to show")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    console = Console()

    try:
        sink, config = open_log_sink(load_config())
    except LogSinkUnavailable as exc:
        console.print(f"[bold red]{escape(str(exc))}. Check permissions.[/]")
        return 1

    host = Host()
    runner = GuardedRunner(sink)
    sampler = ResourceSampler(config, host)
    command = args.command or "info"

    if command == "info":
        samples = sampler.dashboard()
        if getattr(args, "json", False):
            print(_to_json(samples))
        else:
            _render_dashboard(console, host, samples, config.log_file)
        return 0

    if command in ("update", "outdated", "clean-cache"):
        manager = actions.detect_package_manager(host)
        handler = {
            "update": actions.update_packages,
            "outdated": actions.list_outdated,
            "clean-cache": actions.clean_package_cache,
        }[command]
        outcome = handler(runner, manager)
        if outcome is None:
            console.print("[bold red]Unsupported package manager.[/]")
            return 1
        return _report(console, outcome)

    if command == "kill":
        return _report(console, actions.terminate_process(runner, args.pid), "Process terminated.")

    if command == "processes":
        console.print(_process_table(actions.top_processes(args.top)))
        return 0

    if command == "service":
        try:
            outcome = actions.control_service(runner, args.action, args.name, host.system)
        except ValueError as exc:
            console.print(f"[bold red]{escape(str(exc))}[/]")
            return 1
        return _report(console, outcome)

    if command == "backup":
        with console.status("Creating backup..."):
            outcome, archive = actions.create_backup(runner, config)
        if archive:
            console.print(f"Backup stored at {escape(archive)}")
        return _report(console, outcome, "Backup complete.")

    if command == "cleanup":
        return _cleanup(console, host, runner, config.cleanup_targets, args.yes)

    if command == "alerts":
        alerts = actions.check_alerts(sampler, config)
        for message in alerts:
            console.print(f"[bold red]Alert:[/] {escape(message)}")
        if not alerts:
            console.print("[green]No alerts.[/]")
        return 0

    if command == "battery":
        status = actions.battery_status(host)
        console.print(status or "Battery data unavailable.", markup=False, highlight=False)
        return 0

    if command == "logs":
        records = read_records(config.log_file, limit=args.lines)
        if not records:
            console.print("[dim]Log is empty.[/]")
        for record in records:
            console.print(str(record), markup=False, highlight=False)
        return 0

    return 0


def _report(console: Console, outcome: CommandOutcome, success_text: Optional[str] = None) -> int:
    if outcome.ok:
        console.print(f"[bold green]{escape(success_text or outcome.description + ' succeeded.')}[/]")
        if outcome.combined_output:
            console.print(outcome.combined_output, markup=False, highlight=False)
        return 0
    if outcome.classification is Classification.PERMISSION_DENIED:
        console.print(f"[bold red]{escape(outcome.description)} failed: Permission denied[/]")
        console.print(outcome.remediation, style="red", markup=False, highlight=False)
    else:
        console.print(f"[bold red]{escape(outcome.description)} failed (exit {outcome.exit_code})[/]")
        if outcome.combined_output:
            console.print(outcome.combined_output, style="dim", markup=False, highlight=False)
    return 1


def _cleanup(console: Console, host: Host, runner: GuardedRunner, targets: Sequence[str], confirmed: bool) -> int:
    console.print("[blue]Cleanup Targets:[/]")
    for index, target in enumerate(targets, start=1):
        console.print(f"[{index}] {target}", markup=False, highlight=False)
    estimate = actions.estimate_cleanup_size(host, targets)
    console.print(f"Estimated reclaimable space: {human_size(estimate)}")
    if not confirmed:
        console.print("[dim]Cleanup cancelled. Re-run with --yes to delete.[/]")
        return 0
    failed = [outcome for outcome in actions.clean_targets(runner, targets) if not outcome.ok]
    for outcome in failed:
        _report(console, outcome)
    if failed:
        return 1
    console.print("[bold green]Cleanup completed.[/]")
    return 0


def _to_json(samples: List[Sample]) -> str:
    payload: List[Dict[str, Any]] = []
    for sample in samples:
        entry = asdict(sample)
        entry["kind"] = sample.kind.value
        payload.append(entry)
    return json.dumps({"samples": payload}, indent=2)


def _render_dashboard(console: Console, host: Host, samples: List[Sample], log_file) -> None:
    manager = actions.detect_package_manager(host) or "unknown"
    console.print(
        Panel(f"{SCRIPT_NAME} v{__version__}\n{host.system} :: {manager}", style="bold cyan", box=box.ROUNDED)
    )

    summary = Table(show_header=False, box=box.ROUNDED)
    summary.add_row("Hostname", socket.gethostname())
    summary.add_row("Kernel", f"{platform.system()} {platform.release()}")
    summary.add_row("Uptime", _uptime())
    for sample in samples:
        label = _LABELS[sample.kind]
        if sample.target:
            label = f"{label} ({sample.target})"
        summary.add_row(escape(label), escape(render_sample(sample)))
    record = last_record(log_file)
    summary.add_row("IP Address", actions.primary_ip_address(host) or "N/A")
    summary.add_row("Last Log Entry", escape(str(record)) if record else "None")
    console.print(summary)


def _uptime() -> str:
    try:
        booted = datetime.fromtimestamp(psutil.boot_time())
    except (OSError, psutil.Error):
        return "N/A"
    delta = datetime.now() - booted
    hours, remainder = divmod(int(delta.total_seconds()), 3600)
    days, hours = divmod(hours, 24)
    return f"up {days} days, {hours} hours, {remainder // 60} minutes"


def _process_table(processes: List[actions.ProcessUsage]) -> Table:
    table = Table(title="CPU Top", box=box.SIMPLE_HEAD)
    table.add_column("PID", justify="right")
    table.add_column("Process")
    table.add_column("CPU", justify="right")
    table.add_column("Memory", justify="right")
    table.add_column("RSS", justify="right")

    if not processes:
        table.add_row("-", "No process data", "-", "-", "-")
        return table

    for proc in processes:
        table.add_row(
            str(proc.pid),
            proc.name,
            f"{proc.cpu_percent:.0f}%",
            f"{proc.memory_percent:.0f}%",
            human_size(proc.rss_bytes),
        )
    return table


if __name__ == "__main__":
    raise SystemExit(main())
