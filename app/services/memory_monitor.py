from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional

import psutil

from app.core.logging import get_logger
from app.models.domain.memory import MemorySnapshot


MAX_SNAPSHOTS = 100
WARNING_THRESHOLD_PERCENT = 75.0
CRITICAL_THRESHOLD_PERCENT = 90.0

_MB = 1024 * 1024


def _format_mb(value: int) -> str:
    return f"{value / _MB:.2f} MB"


def read_process_memory() -> MemorySnapshot:
    info = psutil.Process().memory_info()
    return MemorySnapshot(
        heap_used=info.rss,
        heap_total=info.vms,
        rss=info.rss,
        external=getattr(info, "shared", 0),
    )


@dataclass
class MemoryPressure:
    critical: bool
    usage_percent: float
    warning_message: Optional[str] = None


class MemoryMonitor:
    """
    Per-session memory sampler.

    Keeps a bounded window of snapshots (oldest dropped first), a baseline per
    agent so the delta over an agent's lifetime can be reported, and an
    optional background task that samples on a fixed interval.
    """

    def __init__(self, reader: Callable[[], MemorySnapshot] = read_process_memory) -> None:
        self._reader = reader
        self._snapshots: Deque[MemorySnapshot] = deque(maxlen=MAX_SNAPSHOTS)
        self._baselines: Dict[str, int] = {}
        self._task: Optional[asyncio.Task] = None
        self._last_pressure: Optional[MemoryPressure] = None
        self.logger = get_logger("MemoryMonitor")

    @property
    def snapshots(self) -> List[MemorySnapshot]:
        return list(self._snapshots)

    @property
    def last_pressure(self) -> Optional[MemoryPressure]:
        return self._last_pressure

    @property
    def is_monitoring(self) -> bool:
        return self._task is not None and not self._task.done()

    def start_monitoring(self, interval_seconds: float) -> None:
        if self.is_monitoring:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.logger.debug("MemoryMonitor.no_running_loop")
            return

        self._task = loop.create_task(self._sample_forever(interval_seconds))
        self.logger.info("MemoryMonitor.started", interval_seconds=interval_seconds)

    def stop_monitoring(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        self._task = None
        self.logger.info("MemoryMonitor.stopped", snapshot_count=len(self._snapshots))

    async def _sample_forever(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            self._last_pressure = self.check_memory_pressure()

    def capture_snapshot(self, agent_id: Optional[str] = None) -> MemorySnapshot:
        snapshot = self._reader()
        if agent_id is not None:
            snapshot = snapshot.model_copy(update={"agent_id": agent_id})
        self._snapshots.append(snapshot)
        return snapshot

    def record_agent_start(self, agent_id: str) -> None:
        snapshot = self.capture_snapshot(agent_id)
        self._baselines[agent_id] = snapshot.heap_used
        self.logger.debug(
            "MemoryMonitor.baseline",
            agent_id=agent_id,
            heap_used=_format_mb(snapshot.heap_used),
        )

    def record_agent_end(self, agent_id: str) -> Optional[int]:
        baseline = self._baselines.get(agent_id)
        if baseline is None:
            return None

        snapshot = self.capture_snapshot(agent_id)
        delta = snapshot.heap_used - baseline
        self.logger.info(
            "MemoryMonitor.agent_delta",
            agent_id=agent_id,
            memory_delta=_format_mb(delta),
            final_heap_used=_format_mb(snapshot.heap_used),
        )
        return delta

    def get_peak_memory(self) -> Optional[MemorySnapshot]:
        if not self._snapshots:
            return None
        return max(self._snapshots, key=lambda s: s.heap_used)

    def check_memory_pressure(self) -> MemoryPressure:
        snapshot = self.capture_snapshot()
        if snapshot.heap_total <= 0:
            return MemoryPressure(critical=False, usage_percent=0.0)

        percent = snapshot.heap_used / snapshot.heap_total * 100
        if percent > CRITICAL_THRESHOLD_PERCENT:
            message = f"Critical memory usage: {percent:.1f}%"
            self.logger.error(
                "MemoryMonitor.pressure_critical",
                usage_percent=round(percent, 1),
                heap_used=snapshot.heap_used,
                heap_total=snapshot.heap_total,
            )
            return MemoryPressure(critical=True, usage_percent=percent, warning_message=message)

        if percent > WARNING_THRESHOLD_PERCENT:
            message = f"High memory usage: {percent:.1f}%"
            self.logger.warning(
                "MemoryMonitor.pressure_high",
                usage_percent=round(percent, 1),
                heap_used=snapshot.heap_used,
                heap_total=snapshot.heap_total,
            )
            return MemoryPressure(critical=False, usage_percent=percent, warning_message=message)

        return MemoryPressure(critical=False, usage_percent=percent)

    def log_memory_report(self, session_id: str) -> None:
        peak = self.get_peak_memory()
        if peak is None:
            return
        self.logger.info(
            "MemoryMonitor.session_report",
            session_id=session_id,
            peak_heap_used=_format_mb(peak.heap_used),
            peak_rss=_format_mb(peak.rss),
            snapshot_count=len(self._snapshots),
        )

    def reset(self) -> None:
        self._snapshots.clear()
        self._baselines.clear()
        self._last_pressure = None

    def format_delta(self, delta: Optional[int]) -> str:
        if delta is None:
            return "N/A"
        return _format_mb(delta)

    def format_peak(self) -> str:
        peak = self.get_peak_memory()
        return _format_mb(peak.heap_used) if peak is not None else "N/A"
