"""Maintenance actions. Everything that changes system state goes through GuardedRunner."""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import psutil

from .config import SuiteConfig
from .host import Host
from .runner import CommandOutcome, GuardedRunner
from .sampling import ResourceSampler, SampleKind

logger = logging.getLogger(__name__)

PACKAGE_MANAGERS = ("brew", "apt", "yum", "dnf")
SERVICE_ACTIONS = ("status", "start", "stop", "restart")

Command = Tuple[str, Sequence[str]]

_UPDATE: Dict[str, Tuple[str, Command]] = {
    "brew": ("Brew update/upgrade", ("bash", ("-c", "brew update && brew upgrade"))),
    "apt": ("APT update/upgrade", ("bash", ("-c", "sudo apt update && sudo apt upgrade -y"))),
    "yum": ("YUM update", ("sudo", ("yum", "update", "-y"))),
    "dnf": ("DNF upgrade", ("sudo", ("dnf", "upgrade", "-y"))),
}

_OUTDATED: Dict[str, Tuple[str, Command]] = {
    "brew": ("Listing brew outdated packages", ("brew", ("outdated",))),
    "apt": ("Listing apt upgrades", ("bash", ("-c", "apt list --upgradable"))),
    "yum": ("Running yum check-update", ("sudo", ("yum", "check-update"))),
    "dnf": ("Running dnf check-update", ("sudo", ("dnf", "check-update"))),
}

_CLEAN: Dict[str, Tuple[str, Command]] = {
    "brew": ("Brew cleanup", ("brew", ("cleanup",))),
    "apt": ("APT cleanup", ("bash", ("-c", "sudo apt autoremove -y && sudo apt clean"))),
    "yum": ("yum clean", ("sudo", ("yum", "clean", "all"))),
    "dnf": ("dnf clean", ("sudo", ("dnf", "clean", "all"))),
}


@dataclass
class ProcessUsage:
    pid: int
    name: str
    cpu_percent: float
    memory_percent: float
    rss_bytes: int


def detect_package_manager(host: Host) -> Optional[str]:
    for name in PACKAGE_MANAGERS:
        if host.which(name):
            return name
    return None


def _run_for_manager(
    runner: GuardedRunner, table: Dict[str, Tuple[str, Command]], manager: Optional[str]
) -> Optional[CommandOutcome]:
    if manager not in table:
        runner.logger.warning("Unsupported package manager: %s", manager or "unknown")
        return None
    description, (command, args) = table[manager]
    return runner.run(description, command, *args)


def update_packages(runner: GuardedRunner, manager: Optional[str]) -> Optional[CommandOutcome]:
    return _run_for_manager(runner, _UPDATE, manager)


def list_outdated(runner: GuardedRunner, manager: Optional[str]) -> Optional[CommandOutcome]:
    return _run_for_manager(runner, _OUTDATED, manager)


def clean_package_cache(runner: GuardedRunner, manager: Optional[str]) -> Optional[CommandOutcome]:
    return _run_for_manager(runner, _CLEAN, manager)


def terminate_process(runner: GuardedRunner, pid: int) -> CommandOutcome:
    return runner.run(f"Terminate process {pid}", "kill", str(pid))


def control_service(runner: GuardedRunner, action: str, name: str, system: str) -> CommandOutcome:
    if action not in SERVICE_ACTIONS:
        raise ValueError(f"unknown service action: {action}")
    if system == "Darwin":
        tool = "launchctl"
    elif system == "Linux":
        tool = "systemctl"
    else:
        raise ValueError(f"service control is not supported on {system}")
    return runner.run(f"Service {action} {name}", "sudo", tool, action, name)


def create_backup(
    runner: GuardedRunner, config: SuiteConfig, now: Optional[datetime] = None
) -> Tuple[CommandOutcome, Optional[str]]:
    """Archive the backup sources; returns the outcome and the archive path on success."""
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    archive = config.backup_dir / f"backup_{stamp}.tar.gz"
    description = f"Backup {archive}"
    try:
        config.backup_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        return runner.record(description, 1, f"{config.backup_dir}: {exc.strerror or exc}"), None
    outcome = runner.run(description, "tar", "-czf", str(archive), *config.backup_sources)
    if not outcome.ok:
        archive.unlink(missing_ok=True)
        return outcome, None
    return outcome, str(archive)


def estimate_cleanup_size(host: Host, targets: Iterable[str]) -> int:
    """Bytes currently held by the existing cleanup targets, as reported by ``du -sk``."""
    total = 0
    for path in targets:
        if not os.path.exists(path):
            continue
        # du exits non-zero on unreadable entries but still prints the total
        output = host.capture(["du", "-sk", path], check=False)
        if not output:
            continue
        fields = output.strip().splitlines()[-1].split()
        if fields and fields[0].isdigit():
            total += int(fields[0]) * 1024
    return total


def clean_targets(runner: GuardedRunner, targets: Iterable[str]) -> List[CommandOutcome]:
    """Empty each existing target directory, one guarded command per target."""
    outcomes: List[CommandOutcome] = []
    for path in targets:
        if not os.path.isdir(path):
            continue
        outcomes.append(runner.run(f"Clean {path}", "find", path, "-mindepth", "1", "-delete"))
    return outcomes


def check_alerts(sampler: ResourceSampler, config: SuiteConfig) -> List[str]:
    alerts: List[str] = []
    disk = sampler.sample(SampleKind.DISK, "/")
    if disk.available and disk.percent is not None and disk.percent >= config.disk_alert_percent:
        alerts.append(f"Disk usage high: {disk.percent:.0f}%")
    cpu = sampler.sample(SampleKind.CPU)
    if cpu.available and cpu.percent is not None and cpu.percent >= config.cpu_alert_percent:
        alerts.append(f"CPU usage high: {cpu.percent:.0f}%")
    battery = _sensors_battery()
    if battery is not None and not battery.power_plugged and battery.percent < config.battery_alert_percent:
        alerts.append(f"Battery low: {battery.percent:.0f}%")
    for message in alerts:
        logger.warning(message)
    return alerts


def top_processes(
    limit: int = 10,
    processes: Optional[Iterable[psutil.Process]] = None,
    interval: float = 0.1,
) -> List[ProcessUsage]:
    """List the busiest processes by CPU share, shown when htop is not installed."""
    procs = list(processes if processes is not None else psutil.process_iter())
    _prime_cpu_percent(procs, interval)
    usage: List[ProcessUsage] = []
    for proc in procs:
        try:
            with proc.oneshot():
                usage.append(
                    ProcessUsage(
                        pid=proc.pid,
                        name=proc.name(),
                        cpu_percent=proc.cpu_percent(None),
                        memory_percent=proc.memory_percent(),
                        rss_bytes=proc.memory_info().rss,
                    )
                )
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
    return sorted(usage, key=lambda p: p.cpu_percent, reverse=True)[:limit]


def _prime_cpu_percent(processes: Iterable[psutil.Process], interval: float) -> None:
    for proc in processes:
        try:
            proc.cpu_percent(None)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    if interval > 0:
        time.sleep(interval)


def battery_status(host: Host) -> Optional[str]:
    if host.system == "Darwin":
        output = host.capture(["pmset", "-g", "batt"])
        if output:
            return output.strip()
    elif host.which("upower"):
        output = host.capture(["upower", "-i", "/org/freedesktop/UPower/devices/battery_BAT0"])
        if output:
            keep = ("state", "to empty", "percentage", "capacity")
            lines = [line.strip() for line in output.splitlines() if any(k in line for k in keep)]
            if lines:
                return "\n".join(lines)
    battery = _sensors_battery()
    if battery is None:
        return None
    state = "charging" if battery.power_plugged else "discharging"
    return f"percentage: {battery.percent:.0f}%\nstate: {state}"


def _sensors_battery():
    try:
        return psutil.sensors_battery()
    except (AttributeError, NotImplementedError, OSError):
        return None


def primary_ip_address(host: Host) -> Optional[str]:
    output = host.capture(["hostname", "-I"])
    if output and output.split():
        return output.split()[0]
    output = host.capture(["ipconfig", "getifaddr", "en0"])
    if output and output.strip():
        return output.strip()
    return None
