from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest

from system_suite.config import SuiteConfig
from system_suite.logsink import open_log_sink


class FakeHost:
    """Scripted stand-in for :class:`system_suite.host.Host`."""

    def __init__(
        self,
        system: str = "Linux",
        commands: Optional[Dict[tuple, Optional[str]]] = None,
        files: Optional[Dict[str, List[Optional[str]]]] = None,
        binaries: Sequence[str] = (),
    ) -> None:
        self.system = system
        self.commands = dict(commands or {})
        self.files = {path: list(reads) for path, reads in (files or {}).items()}
        self.binaries = set(binaries)
        self.calls: List[tuple] = []
        self.sleeps: List[float] = []

    def capture(self, argv, check=True):
        self.calls.append(tuple(argv))
        return self.commands.get(tuple(argv))

    def read_text(self, path):
        reads = self.files.get(path)
        if not reads:
            return None
        return reads.pop(0) if len(reads) > 1 else reads[0]

    def sleep(self, seconds):
        self.sleeps.append(seconds)

    def which(self, name):
        return f"/usr/bin/{name}" if name in self.binaries else None


def make_config(root: Path, **overrides) -> SuiteConfig:
    data_dir = root / "data"
    values = dict(
        config_dir=root / "config",
        data_dir=data_dir,
        log_file=data_dir / "system_suite.log",
        backup_dir=data_dir / "backups",
        cache_dir=data_dir / "cache",
        disk_target=str(root),
    )
    values.update(overrides)
    return SuiteConfig(**values)


@pytest.fixture
def config(tmp_path):
    return make_config(tmp_path)


@pytest.fixture
def sink(config, request):
    logger, used = open_log_sink(config, name=f"system_suite.tests.{request.node.name}")
    yield logger, used
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def log_lines(path: Path) -> List[str]:
    return [line for line in path.read_text(encoding="utf-8").splitlines() if line]
