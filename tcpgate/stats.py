"""Response-time statistics and report formatting for the load tester."""

import math
import threading
from typing import List, Tuple

HIST_BUCKET_COUNT = 20
HIST_BUCKET_WIDTH_MS = 50
BAR_WIDTH = 40
_RULE = "-" * 50
_DOUBLE_RULE = "=" * 50


class Stats:
    """Thread-safe counters and response times collected during a load test."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.success = 0
        self.failed = 0
        self._times: List[float] = []
        self._buckets = [0] * HIST_BUCKET_COUNT

    @property
    def response_times(self) -> Tuple[float, ...]:
        with self._lock:
            return tuple(self._times)

    @property
    def histogram(self) -> Tuple[int, ...]:
        with self._lock:
            return tuple(self._buckets)

    def add_success(self, n: int) -> None:
        with self._lock:
            self.success += n

    def add_failed(self, n: int) -> None:
        with self._lock:
            self.failed += n

    def add_response_time(self, ms: float) -> None:
        """Record one response time in milliseconds."""
        if ms < 0:
            raise ValueError(f"response time must not be negative: {ms}")
        bucket = min(int(ms / HIST_BUCKET_WIDTH_MS), HIST_BUCKET_COUNT - 1)
        with self._lock:
            self._times.append(ms)
            self._buckets[bucket] += 1

    def percentile(self, p: float) -> float:
        """Nearest-rank percentile for ``p`` in [0, 1]; 0 when empty."""
        with self._lock:
            times = sorted(self._times)
        if not times:
            return 0.0
        index = math.ceil(len(times) * p) - 1
        index = min(max(index, 0), len(times) - 1)
        return times[index]

    def average(self) -> float:
        with self._lock:
            if not self._times:
                return 0.0
            return sum(self._times) / len(self._times)

    def format_histogram(self) -> str:
        """Render the response-time histogram as text."""
        buckets = self.histogram
        total = sum(buckets)
        peak = max(buckets)
        lines = ["", "Response time distribution (ms):", _RULE]
        for index, count in enumerate(buckets):
            low = index * HIST_BUCKET_WIDTH_MS
            high = low + HIST_BUCKET_WIDTH_MS
            share = f"{count / total * 100:5.2f}" if total else "  NaN"
            bar = "█" * (int(count / peak * BAR_WIDTH) if peak else 0)
            lines.append(f"{low:4d}-{high:4d}ms: {count:8d} ({share}%) {bar}")
        lines.append(_RULE)
        return "\n".join(lines)


def format_report(stats: Stats, duration: float, title: str = "Load test report") -> str:
    """Render the summary report, followed by the histogram.

    ``duration`` is the wall-clock length of the run in seconds.
    """
    qps = stats.success / duration if duration > 0 else 0.0
    lines = [
        "",
        _DOUBLE_RULE,
        title,
        f"Total time: {duration:.2f} s",
        f"Successful: {stats.success}",
        f"Failed: {stats.failed}",
        f"Effective QPS: {qps:.2f}",
        _RULE,
        "Response time (ms):",
        f"  avg:  {stats.average():.2f}",
        f"  min:  {stats.percentile(0):.2f}",
        f"  P50:  {stats.percentile(0.50):.2f}",
        f"  P90:  {stats.percentile(0.90):.2f}",
        f"  P95:  {stats.percentile(0.95):.2f}",
        f"  P99:  {stats.percentile(0.99):.2f}",
        f"  max:  {stats.percentile(1.0):.2f}",
        _DOUBLE_RULE,
    ]
    return "\n".join(lines) + "\n" + stats.format_histogram()