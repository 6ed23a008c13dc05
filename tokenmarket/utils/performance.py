"""
Performance monitoring for the token market.

Submission latency and order/trade counters are kept in memory with a
bounded number of samples per metric. Process resource usage comes
from psutil.
"""

import time
import threading
from collections import deque
from contextlib import contextmanager
from typing import Dict, List, Any, Optional, Tuple
import logging

import psutil

logger = logging.getLogger(__name__)

PERCENTILES: Tuple[float, ...] = (0.5, 0.9, 0.95, 0.99)

_MB = 1024 * 1024


class PerformanceMonitor:
    """
    Latency samples, event counters and process stats for one engine.

    Counters are global ("orders_submitted") and, when a token is given,
    also kept per token ("orders_submitted:<token_id>").
    """

    def __init__(self, max_samples: int = 10000):
        """
        Args:
            max_samples: Samples kept per metric; the oldest are dropped first
        """
        self.max_samples = max_samples
        self.metrics: Dict[str, deque] = {}
        self.counters: Dict[str, int] = {}
        self.lock = threading.Lock()

        self.process = psutil.Process()
        self.start_time = time.time()
        self.baseline_rss = self.process.memory_info().rss

        logger.info(f"Performance monitor started (max_samples={max_samples})")

    def record_metric(self, name: str, value: float) -> None:
        with self.lock:
            samples = self.metrics.get(name)
            if samples is None:
                samples = self.metrics[name] = deque(maxlen=self.max_samples)
            samples.append(value)

    def increment_counter(self, name: str, value: int = 1, token_id: Optional[str] = None) -> None:
        with self.lock:
            self.counters[name] = self.counters.get(name, 0) + value
            if token_id is not None:
                key = f"{name}:{token_id}"
                self.counters[key] = self.counters.get(key, 0) + value

    def record_submission(self, token_id: str, matched: bool) -> None:
        """Count one processed submission and, if it matched, its trade."""
        self.increment_counter("orders_submitted", token_id=token_id)
        if matched:
            self.increment_counter("trades_executed", token_id=token_id)

    def get_metric_stats(self, name: str) -> Dict[str, float]:
        """Min, max, avg and count for a metric; zeros when it has no samples."""
        with self.lock:
            return _summarize(list(self.metrics.get(name, ())))

    def get_counter(self, name: str, token_id: Optional[str] = None) -> int:
        key = name if token_id is None else f"{name}:{token_id}"
        with self.lock:
            return self.counters.get(key, 0)

    def get_match_rate(self) -> float:
        """Fraction of submissions that produced a trade."""
        with self.lock:
            submitted = self.counters.get("orders_submitted", 0)
            matched = self.counters.get("trades_executed", 0)
        return matched / submitted if submitted else 0.0

    def get_system_stats(self) -> Dict[str, Any]:
        """Resource usage of this process, or {} if psutil cannot read it."""
        try:
            with self.process.oneshot():
                memory = self.process.memory_info()
                return {
                    "memory_rss_mb": memory.rss / _MB,
                    "memory_growth_mb": (memory.rss - self.baseline_rss) / _MB,
                    "memory_percent": self.process.memory_percent(),
                    "cpu_percent": self.process.cpu_percent(),
                    "thread_count": self.process.num_threads(),
                }
        except psutil.Error as e:
            logger.error(f"Could not read process stats: {e}")
            return {}

    def get_summary(self) -> Dict[str, Any]:
        """Snapshot of counters, metric summaries and process stats."""
        with self.lock:
            counters = dict(self.counters)
            metrics = {
                name: _summarize(list(samples))
                for name, samples in self.metrics.items()
                if samples
            }

        return {
            "uptime_seconds": time.time() - self.start_time,
            "counters": counters,
            "metrics": metrics,
            "match_rate": self.get_match_rate(),
            "process": self.get_system_stats(),
        }

    def reset(self) -> None:
        with self.lock:
            self.metrics.clear()
            self.counters.clear()
            self.start_time = time.time()
            self.baseline_rss = self.process.memory_info().rss


def _summarize(values: List[float]) -> Dict[str, float]:
    if not values:
        return {"min": 0, "max": 0, "avg": 0, "count": 0}
    return {
        "min": min(values),
        "max": max(values),
        "avg": sum(values) / len(values),
        "count": len(values),
    }


def _percentile(sorted_values: List[float], fraction: float) -> float:
    index = min(int(fraction * len(sorted_values)), len(sorted_values) - 1)
    return sorted_values[index]


@contextmanager
def measure_latency(monitor: PerformanceMonitor, operation_name: str):
    """
    Record the wall time of the enclosed block as "<operation_name>_latency_ms".

    The sample is recorded even if the block raises.
    """
    started = time.perf_counter()
    try:
        yield
    finally:
        monitor.record_metric(f"{operation_name}_latency_ms", (time.perf_counter() - started) * 1000)


class LatencyTracker:
    """Latency percentiles for benchmark runs."""

    def __init__(self, max_samples: int = 10000):
        self.samples: deque = deque(maxlen=max_samples)
        self.lock = threading.Lock()

    def record(self, latency_ms: float) -> None:
        with self.lock:
            self.samples.append(latency_ms)

    def get_percentiles(self) -> Dict[str, float]:
        """p50, p90, p95 and p99 of the recorded samples."""
        with self.lock:
            ordered = sorted(self.samples)

        return {
            f"p{round(fraction * 100)}": _percentile(ordered, fraction) if ordered else 0
            for fraction in PERCENTILES
        }

    def get_stats(self) -> Dict[str, float]:
        with self.lock:
            return _summarize(list(self.samples))


_performance_monitor: Optional[PerformanceMonitor] = None
_monitor_lock = threading.Lock()


def get_performance_monitor() -> PerformanceMonitor:
    """Get the process-wide performance monitor, creating it on first use."""
    global _performance_monitor
    with _monitor_lock:
        if _performance_monitor is None:
            _performance_monitor = PerformanceMonitor()
        return _performance_monitor
