"""Point-in-time CPU, memory and disk readings gathered through ordered fallback strategies."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple

import psutil

from .config import SuiteConfig
from .errors import SamplingUnavailable
from .host import Host

logger = logging.getLogger(__name__)


class SampleKind(Enum):
    CPU = "cpu"
    MEMORY = "memory"
    DISK = "disk"


@dataclass(frozen=True)
class Sample:
    """One reading. CPU carries ``percent``; memory carries ``used``/``total``; disk carries all three."""

    kind: SampleKind
    available: bool
    percent: Optional[float] = None
    used: Optional[int] = None
    total: Optional[int] = None
    target: Optional[str] = None
    source: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.available and (self.percent, self.used, self.total) != (None, None, None):
            raise ValueError("an unavailable sample cannot carry a value")

    @classmethod
    def unavailable(cls, kind: SampleKind, target: Optional[str] = None) -> "Sample":
        return cls(kind=kind, available=False, target=target)

    def require(self) -> "Sample":
        if not self.available:
            raise SamplingUnavailable(self.kind.value, self.target)
        return self


class SamplingStrategy:
    """One platform or tool specific way of producing a sample."""

    name = "strategy"
    kind: SampleKind = SampleKind.CPU
    systems: Optional[Tuple[str, ...]] = None

    def applies_to(self, system: str) -> bool:
        return self.systems is None or system in self.systems

    def try_sample(self, host: Host, target: Optional[str] = None) -> Optional[Sample]:
        raise NotImplementedError

    def _sample(self, **values) -> Sample:
        return Sample(kind=self.kind, available=True, source=self.name, **values)


_DARWIN_TOP_RE = re.compile(r"CPU usage:\s*(\d+(?:[.,]\d+)?)% user,\s*(\d+(?:[.,]\d+)?)% sys")
_LINUX_IDLE_RE = re.compile(r"(?:^|[\s,:])(\d+(?:[.,]\d+)?)\s*%?\s*id\b")


def _number(text: str) -> float:
    return float(text.replace(",", "."))


class DarwinTopCPU(SamplingStrategy):
    name = "top"
    kind = SampleKind.CPU
    systems = ("Darwin",)

    def try_sample(self, host: Host, target: Optional[str] = None) -> Optional[Sample]:
        output = host.capture(["top", "-l", "1", "-n", "0"])
        if output is None:
            return None
        match = _DARWIN_TOP_RE.search(output)
        if not match:
            return None
        return self._sample(percent=_number(match.group(1)) + _number(match.group(2)))


class LinuxTopCPU(SamplingStrategy):
    name = "top"
    kind = SampleKind.CPU
    systems = ("Linux",)

    def try_sample(self, host: Host, target: Optional[str] = None) -> Optional[Sample]:
        output = host.capture(["top", "-bn1"])
        if output is None:
            return None
        for line in output.splitlines():
            if not re.match(r"^%?Cpu", line):
                continue
            match = _LINUX_IDLE_RE.search(line)
            if match:
                return self._sample(percent=100.0 - _number(match.group(1)))
            return None
        return None


class ProcessShareCPU(SamplingStrategy):
    """Sum of per-process CPU shares, normalised by the logical core count."""

    name = "ps"
    kind = SampleKind.CPU

    def try_sample(self, host: Host, target: Optional[str] = None) -> Optional[Sample]:
        output = host.capture(["ps", "-A", "-o", "%cpu="])
        if output is None:
            return None
        shares = []
        for line in output.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                shares.append(_number(line))
            except ValueError:
                return None
        if not shares:
            return None
        cores = psutil.cpu_count() or 1
        return self._sample(percent=sum(shares) / cores)


class ProcStatCPU(SamplingStrategy):
    """Busy share of ``/proc/stat`` ticks across a fixed sampling window."""

    name = "/proc/stat"
    kind = SampleKind.CPU
    systems = ("Linux",)

    def __init__(self, interval: float = 0.5, path: str = "/proc/stat") -> None:
        self.interval = interval
        self.path = path

    def try_sample(self, host: Host, target: Optional[str] = None) -> Optional[Sample]:
        first = self._read_ticks(host)
        if first is None:
            return None
        host.sleep(self.interval)
        second = self._read_ticks(host)
        if second is None:
            return None
        total_delta = second[0] - first[0]
        idle_delta = second[1] - first[1]
        if total_delta <= 0:
            return None
        return self._sample(percent=(total_delta - idle_delta) / total_delta * 100)

    def _read_ticks(self, host: Host) -> Optional[Tuple[int, int]]:
        text = host.read_text(self.path)
        if not text:
            return None
        fields = text.splitlines()[0].split()
        if not fields or fields[0] != "cpu":
            return None
        try:
            ticks = [int(value) for value in fields[1:9]]
        except ValueError:
            return None
        if len(ticks) < 4:
            return None
        # user nice system idle iowait irq softirq steal
        return sum(ticks), ticks[3]


_VM_PAGE_SIZE_RE = re.compile(r"page size of (\d+) bytes")


class DarwinVmStatMemory(SamplingStrategy):
    name = "vm_stat"
    kind = SampleKind.MEMORY
    systems = ("Darwin",)

    def try_sample(self, host: Host, target: Optional[str] = None) -> Optional[Sample]:
        vm_stat = host.capture(["vm_stat"])
        memsize = host.capture(["sysctl", "-n", "hw.memsize"])
        if vm_stat is None or memsize is None:
            return None
        page_size = _VM_PAGE_SIZE_RE.search(vm_stat)
        if not page_size:
            return None
        try:
            total = int(memsize.strip())
        except ValueError:
            return None
        free_pages = sum(self._pages(vm_stat, label) for label in ("free", "inactive", "speculative"))
        free = free_pages * int(page_size.group(1))
        return self._sample(used=total - free, total=total)

    @staticmethod
    def _pages(vm_stat: str, label: str) -> int:
        match = re.search(rf"^Pages {label}:\s*(\d+)", vm_stat, re.MULTILINE)
        return int(match.group(1)) if match else 0


class ProcMeminfoMemory(SamplingStrategy):
    name = "/proc/meminfo"
    kind = SampleKind.MEMORY
    systems = ("Linux",)

    def __init__(self, path: str = "/proc/meminfo") -> None:
        self.path = path

    def try_sample(self, host: Host, target: Optional[str] = None) -> Optional[Sample]:
        text = host.read_text(self.path)
        if not text:
            return None
        counters = {}
        for line in text.splitlines():
            key, _, rest = line.partition(":")
            parts = rest.split()
            if parts and parts[0].isdigit():
                counters[key.strip()] = int(parts[0]) * 1024
        if "MemTotal" not in counters or "MemAvailable" not in counters:
            return None
        total = counters["MemTotal"]
        return self._sample(used=total - counters["MemAvailable"], total=total)


class PsutilMemory(SamplingStrategy):
    name = "psutil"
    kind = SampleKind.MEMORY

    def try_sample(self, host: Host, target: Optional[str] = None) -> Optional[Sample]:
        try:
            memory = psutil.virtual_memory()
        except (OSError, psutil.Error):
            return None
        return self._sample(used=memory.total - memory.available, total=memory.total)


class DfDisk(SamplingStrategy):
    name = "df"
    kind = SampleKind.DISK

    def try_sample(self, host: Host, target: Optional[str] = None) -> Optional[Sample]:
        if not target or not os.path.isdir(target):
            return None
        output = host.capture(["df", "-Pk", target])
        if output is None:
            return None
        lines = output.splitlines()
        if len(lines) < 2:
            return None
        parts = lines[1].split()
        if len(parts) < 5:
            return None
        try:
            total = int(parts[1]) * 1024
            used = int(parts[2]) * 1024
            percent = float(parts[4].rstrip("%"))
        except ValueError:
            return None
        return self._sample(percent=percent, used=used, total=total, target=target)


class PsutilDisk(SamplingStrategy):
    name = "psutil"
    kind = SampleKind.DISK

    def try_sample(self, host: Host, target: Optional[str] = None) -> Optional[Sample]:
        if not target or not os.path.isdir(target):
            return None
        try:
            usage = psutil.disk_usage(target)
        except (OSError, psutil.Error):
            return None
        return self._sample(percent=usage.percent, used=usage.used, total=usage.total, target=target)


def default_strategies(config: SuiteConfig) -> List[SamplingStrategy]:
    return [
        DarwinTopCPU(),
        LinuxTopCPU(),
        ProcessShareCPU(),
        ProcStatCPU(interval=config.sample_interval),
        DarwinVmStatMemory(),
        ProcMeminfoMemory(),
        PsutilMemory(),
        DfDisk(),
        PsutilDisk(),
    ]


class ResourceSampler:
    """Try each applicable strategy in order and return the first reading."""

    def __init__(
        self,
        config: SuiteConfig,
        host: Optional[Host] = None,
        strategies: Optional[Iterable[SamplingStrategy]] = None,
    ) -> None:
        self.config = config
        self.host = host or Host()
        self.strategies: Sequence[SamplingStrategy] = list(
            default_strategies(config) if strategies is None else strategies
        )

    def strategies_for(self, kind: SampleKind) -> List[SamplingStrategy]:
        return [s for s in self.strategies if s.kind is kind and s.applies_to(self.host.system)]

    def sample(self, kind: SampleKind, target: Optional[str] = None) -> Sample:
        if kind is SampleKind.DISK and target is None:
            target = self.config.disk_target
        for strategy in self.strategies_for(kind):
            try:
                result = strategy.try_sample(self.host, target)
            except (ValueError, OSError, psutil.Error) as exc:
                logger.debug("%s strategy %s raised %s", kind.value, strategy.name, exc)
                continue
            if result is not None:
                return result
            logger.debug("%s strategy %s unavailable, trying next", kind.value, strategy.name)
        logger.debug("No %s reading available", kind.value)
        return Sample.unavailable(kind, target if kind is SampleKind.DISK else None)

    def dashboard(self) -> List[Sample]:
        return [self.sample(SampleKind.CPU), self.sample(SampleKind.MEMORY), self.sample(SampleKind.DISK)]
