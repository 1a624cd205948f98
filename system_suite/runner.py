"""Run external commands, classify their failures and log every outcome."""

from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .errors import CommandGenericFailure, CommandPermissionDenied
from .logsink import LOGGER_NAME

PERMISSION_TOKENS = ("permission", "denied", "fix your permissions")
GENERIC_PERMISSION_HINT = "Check Homebrew permissions: brew doctor"

_PATH_RE = re.compile(r"(?<!\S)['\"]?(/\S*)")


class Classification(Enum):
    SUCCESS = "success"
    PERMISSION_DENIED = "permission_denied"
    GENERIC_FAILURE = "generic_failure"


def classify(exit_code: int, output: str) -> Classification:
    """Classify a finished command from its exit code and captured text alone.

    Permission tokens are checked first, so they win over the exit code.
    """
    lowered = output.lower()
    if any(token in lowered for token in PERMISSION_TOKENS):
        return Classification.PERMISSION_DENIED
    if exit_code != 0:
        return Classification.GENERIC_FAILURE
    return Classification.SUCCESS


def extract_path_hint(output: str) -> Optional[str]:
    match = _PATH_RE.search(output)
    return match.group(1).rstrip(":,;'\")") if match else None


@dataclass(frozen=True)
class CommandOutcome:
    description: str
    exit_code: int
    combined_output: str
    classification: Classification
    path_hint: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.classification is Classification.SUCCESS

    @property
    def remediation(self) -> Optional[str]:
        if self.classification is not Classification.PERMISSION_DENIED:
            return None
        if self.path_hint:
            return f"Try: sudo chown -R $(whoami) {self.path_hint}"
        return GENERIC_PERMISSION_HINT

    def raise_for_status(self) -> "CommandOutcome":
        if self.classification is Classification.PERMISSION_DENIED:
            raise CommandPermissionDenied(self.description, self.exit_code, self.combined_output, self.path_hint)
        if self.classification is Classification.GENERIC_FAILURE:
            raise CommandGenericFailure(self.description, self.exit_code, self.combined_output)
        return self


class GuardedRunner:
    """Single choke point for state-changing commands.

    A failing child never raises into the caller: the result is returned as a
    :class:`CommandOutcome` and exactly one record is appended to the log sink.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(LOGGER_NAME)

    def run(self, description: str, command: str, *args: str) -> CommandOutcome:
        exit_code, output = self._execute(command, *args)
        return self.record(description, exit_code, output)

    def record(self, description: str, exit_code: int, output: str) -> CommandOutcome:
        """Classify and log a result produced outside :meth:`run`, e.g. a failed setup step."""
        classification = classify(exit_code, output)
        path_hint = None
        if classification is Classification.PERMISSION_DENIED:
            path_hint = extract_path_hint(output)
        outcome = CommandOutcome(
            description=description,
            exit_code=exit_code,
            combined_output=output,
            classification=classification,
            path_hint=path_hint,
        )
        if outcome.ok:
            self.logger.info("%s succeeded", description)
        else:
            self.logger.warning("%s failed (exit %s): %s", description, exit_code, output)
        return outcome

    @staticmethod
    def _execute(command: str, *args: str) -> Tuple[int, str]:
        try:
            proc = subprocess.run(
                [command, *args],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                check=False,
            )
        except FileNotFoundError:
            return 127, f"{command}: command not found"
        except PermissionError:
            return 126, f"{command}: Permission denied"
        except OSError as exc:
            return 126, f"{command}: {exc.strerror or exc}"
        return proc.returncode, proc.stdout.rstrip("\n")
