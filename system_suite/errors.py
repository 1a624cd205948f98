"""Error taxonomy shared by the sampler, runner and log sink."""

from __future__ import annotations

from typing import Optional


class SuiteError(Exception):
    """Base class for system-suite errors."""


class SamplingUnavailable(SuiteError):
    def __init__(self, kind: str, target: Optional[str] = None) -> None:
        self.kind = kind
        self.target = target
        where = f" for {target}" if target else ""
        super().__init__(f"No sampling strategy produced a {kind} reading{where}")


class CommandFailed(SuiteError):
    def __init__(self, description: str, exit_code: int, output: str) -> None:
        self.description = description
        self.exit_code = exit_code
        self.output = output
        super().__init__(f"{description} failed (exit {exit_code})")


class CommandPermissionDenied(CommandFailed):
    def __init__(self, description: str, exit_code: int, output: str, path_hint: Optional[str] = None) -> None:
        super().__init__(description, exit_code, output)
        self.path_hint = path_hint


class CommandGenericFailure(CommandFailed):
    pass


class LogSinkUnavailable(SuiteError):
    pass
