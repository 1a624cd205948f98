"""Thin wrapper over the host capabilities the sampler depends on."""

from __future__ import annotations

import logging
import platform
import shutil
import subprocess
import time
from typing import Optional, Sequence

logger = logging.getLogger(__name__)


class Host:
    """Process spawning, file reads and OS identification for the local machine."""

    def __init__(self, system: Optional[str] = None) -> None:
        self.system = system or platform.system()

    def capture(self, argv: Sequence[str], check: bool = True) -> Optional[str]:
        """Return stdout of ``argv``; with ``check`` a non-zero exit yields ``None``."""
        try:
            proc = subprocess.run(list(argv), capture_output=True, text=True, check=False)
        except OSError as exc:
            logger.debug("Could not run %s: %s", argv[0], exc)
            return None
        if check and proc.returncode != 0:
            logger.debug("%s exited %s", argv[0], proc.returncode)
            return None
        return proc.stdout

    def read_text(self, path: str) -> Optional[str]:
        try:
            with open(path, encoding="utf-8") as handle:
                return handle.read()
        except OSError:
            return None

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)

    def which(self, name: str) -> Optional[str]:
        return shutil.which(name)
