"""Immutable configuration for the suite, resolved once at startup."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping, Optional, Tuple

DISK_PATH_ENV = "SYSTEM_SUITE_DISK_PATH"


@dataclass(frozen=True)
class SuiteConfig:
    config_dir: Path
    data_dir: Path
    log_file: Path
    backup_dir: Path
    cache_dir: Path
    disk_target: str
    disk_alert_percent: float = 85
    cpu_alert_percent: float = 90
    battery_alert_percent: float = 20
    sample_interval: float = 0.5
    backup_sources: Tuple[str, ...] = field(default_factory=tuple)
    cleanup_targets: Tuple[str, ...] = field(default_factory=tuple)

    def with_fallback_dirs(self, cwd: Path) -> "SuiteConfig":
        """Relocate data and config directories under ``cwd``."""
        data_dir = cwd / ".system_suite_data"
        return replace(
            self,
            config_dir=cwd / ".system_suite_config",
            data_dir=data_dir,
            log_file=data_dir / "system_suite.log",
            backup_dir=data_dir / "backups",
            cache_dir=data_dir / "cache",
        )


def load_config(environ: Optional[Mapping[str, str]] = None) -> SuiteConfig:
    env = os.environ if environ is None else environ
    home = Path(env.get("HOME") or Path.home())
    data_dir = home / ".local" / "share" / "system_suite"
    return SuiteConfig(
        config_dir=home / ".config" / "system_suite",
        data_dir=data_dir,
        log_file=data_dir / "system_suite.log",
        backup_dir=data_dir / "backups",
        cache_dir=data_dir / "cache",
        disk_target=resolve_disk_target(env),
        backup_sources=tuple(str(home / name) for name in ("Documents", "Desktop", "Pictures")),
        cleanup_targets=(
            "/tmp",
            str(home / "Library" / "Caches"),
            str(home / ".cache"),
            str(home / "Library" / "Logs"),
            "/var/log",
        ),
    )


def resolve_disk_target(environ: Mapping[str, str]) -> str:
    """Pick the disk sampling target: env override, then HOME, then ``/``."""
    for candidate in (environ.get(DISK_PATH_ENV), environ.get("HOME")):
        if candidate and os.path.isdir(candidate):
            return candidate
    return "/"
