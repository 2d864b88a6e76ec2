from __future__ import annotations

import threading
import time

from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional, Sequence


DEFAULT_MAX_ENTRIES = 1000


@dataclass(frozen=True)
class Metric:
    tool_name: str
    request_duration_ms: float
    success: bool
    error_type: Optional[str]
    retry_count: int
    timestamp: float


def error_rate(entries: Sequence[Metric]) -> float:
    """Share of failed entries; 0 for an empty snapshot."""
    if not entries:
        return 0.0
    return sum(1 for m in entries if not m.success) / len(entries)


def average_request_duration(entries: Sequence[Metric]) -> float:
    if not entries:
        return 0.0
    return sum(m.request_duration_ms for m in entries) / len(entries)


class MetricsCollector:
    """
    Bounded in-memory log of tool call outcomes.

    Keeps the most recent `max_entries` metrics in insertion order; older entries
    fall off the front. Reads return copies so callers never see the live log.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self._metrics: Deque[Metric] = deque(maxlen=max_entries)
        self._lock = threading.Lock()  # sync routes run in a thread pool

    def record(
        self,
        tool_name: str,
        request_duration_ms: float,
        success: bool,
        error_type: Optional[str] = None,
        retry_count: int = 0,
    ) -> Metric:
        metric = Metric(
            tool_name=tool_name,
            request_duration_ms=float(request_duration_ms),
            success=bool(success),
            error_type=error_type,
            retry_count=retry_count,
            timestamp=time.time(),
        )
        with self._lock:
            self._metrics.append(metric)
        return metric

    def get_metrics(self) -> List[Metric]:
        with self._lock:
            return list(self._metrics)

    def get_metrics_for_tool(self, tool_name: str) -> List[Metric]:
        with self._lock:
            return [m for m in self._metrics if m.tool_name == tool_name]

    def _relevant(self, tool_name: Optional[str]) -> List[Metric]:
        return self.get_metrics_for_tool(tool_name) if tool_name is not None else self.get_metrics()

    def get_error_rate(self, tool_name: Optional[str] = None) -> float:
        return error_rate(self._relevant(tool_name))

    def get_average_request_duration(self, tool_name: Optional[str] = None) -> float:
        return average_request_duration(self._relevant(tool_name))

    def reset(self) -> None:
        with self._lock:
            self._metrics.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._metrics)
