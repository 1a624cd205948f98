"""Console-friendly formatting utilities."""

from __future__ import annotations

from typing import Optional, Tuple

from .sampling import Sample, SampleKind

UNITS = ["B", "KB", "MB", "GB", "TB"]


def human_size_parts(num: int) -> Tuple[int, str]:
    """Scale ``num`` bytes down by 1024 while it exceeds 1024, truncating."""
    if isinstance(num, bool) or not isinstance(num, int) or num < 0:
        raise ValueError(f"not a byte count: {num!r}")
    value = num
    index = 0
    while value > 1024 and index < len(UNITS) - 1:
        value //= 1024
        index += 1
    return value, UNITS[index]


def human_size(num: Optional[int]) -> str:
    try:
        value, unit = human_size_parts(num)  # type: ignore[arg-type]
    except ValueError:
        return "N/A"
    return f"{value} {unit}"


def render_sample(sample: Sample) -> str:
    if not sample.available:
        return "N/A"
    if sample.kind is SampleKind.CPU:
        return f"{sample.percent:.1f}%"
    usage = f"{human_size(sample.used)} used / {human_size(sample.total)} total"
    if sample.kind is SampleKind.DISK:
        return f"{usage} ({sample.percent:.0f}%) @ {sample.target}"
    return usage

