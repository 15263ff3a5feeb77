"""
Profiling utilities for recordseed.

Each entity step of a load run is timed with `profile_block`, which measures:
- Wall-clock time (perf_counter), reported as elapsed milliseconds
- Peak RSS via a background sampling thread (psutil)

Usage:
    from recordseed.utils.profiler import profile_block

    with profile_block("Account") as stats:
        load_entity()

    print(stats.elapsed_ms, stats.peak_rss_bytes)
"""

from __future__ import annotations

import contextlib
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Generator, Optional

import psutil


@dataclass
class ProfileStats:
    """
    Container for the measurements of one profiled block.
    """

    label: str
    start_ts: float = field(default=0.0)
    end_ts: float = field(default=0.0)
    duration_seconds: float = field(default=0.0)
    peak_rss_bytes: Optional[int] = field(default=None)
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def elapsed_ms(self) -> int:
        """Wall-clock duration rounded to whole milliseconds."""
        return int(round(self.duration_seconds * 1000))


@contextlib.contextmanager
def profile_block(
    label: str, sample_interval_ms: int = 100, sample_memory: bool = True
) -> Generator[ProfileStats, None, None]:
    """
    Context manager that times a block and samples its peak resident memory.

    Parameters
    ----------
    label : str
        Human-friendly label for the profiled block (usually an entity type).
    sample_interval_ms : int
        Interval in milliseconds between RSS samples.
    sample_memory : bool
        Whether to start the RSS sampling thread at all.
    """
    stats = ProfileStats(label=label)
    process = psutil.Process() if sample_memory else None
    peak_rss = process.memory_info().rss if process else 0
    stop_sampling = threading.Event()

    def _sample_memory() -> None:
        nonlocal peak_rss
        while process is not None and not stop_sampling.is_set():
            try:
                peak_rss = max(peak_rss, process.memory_info().rss)
            except psutil.Error:
                return
            stop_sampling.wait(timeout=sample_interval_ms / 1000.0)

    sampler = threading.Thread(target=_sample_memory, daemon=True)
    if process is not None:
        sampler.start()

    stats.start_ts = time.perf_counter()
    try:
        yield stats
    finally:
        stats.end_ts = time.perf_counter()
        stats.duration_seconds = stats.end_ts - stats.start_ts
        stop_sampling.set()
        if process is not None:
            sampler.join(timeout=1.0)
        stats.peak_rss_bytes = peak_rss if peak_rss > 0 else None


__all__ = ["ProfileStats", "profile_block"]
