"""Size-bucketed pool of reusable byte buffers with usage counters."""

import dataclasses
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Union

BUCKET_SIZES = (128, 512, 1024, 4096, 16384, 65536)


@dataclass
class PoolMetrics:
    get_count: int = 0
    hit_count: int = 0
    make_count: int = 0
    raw_alloc: int = 0


class BytesPool:
    """Hands out ``memoryview`` slices of bucket-sized ``bytearray`` buffers.

    Requests above the largest bucket are allocated directly and never pooled.
    """

    def __init__(self, bucket_sizes: Iterable[int] = BUCKET_SIZES) -> None:
        self._sizes = tuple(sorted(bucket_sizes))
        self._free: Dict[int, List[bytearray]] = {size: [] for size in self._sizes}
        self._lock = threading.Lock()
        self.metrics = PoolMetrics()

    def _bucket_for(self, size: int):
        return next((bucket for bucket in self._sizes if size <= bucket), None)

    def get(self, size: int) -> memoryview:
        """Return a writable view of exactly ``size`` bytes."""
        if size < 0:
            raise ValueError(f"buffer size must not be negative: {size}")
        bucket = self._bucket_for(size)
        with self._lock:
            self.metrics.get_count += 1
            if bucket is None:
                self.metrics.raw_alloc += 1
                return memoryview(bytearray(size))
            free = self._free[bucket]
            if free:
                buf = free.pop()
                self.metrics.hit_count += 1
            else:
                buf = bytearray(bucket)
                self.metrics.make_count += 1
        return memoryview(buf)[:size]

    def put(self, buf: Union[memoryview, bytearray]) -> None:
        """Return a buffer; ones whose capacity matches no bucket are dropped."""
        backing = buf.obj if isinstance(buf, memoryview) else buf
        if not isinstance(backing, bytearray):
            return
        capacity = len(backing)
        if capacity not in self._free:
            return
        with self._lock:
            self._free[capacity].append(backing)

    def _snapshot(self) -> PoolMetrics:
        with self._lock:
            return dataclasses.replace(self.metrics)


_default_pool = BytesPool()


def get_bytes(size: int) -> memoryview:
    """Take a buffer from the shared pool."""
    return _default_pool.get(size)


def put_bytes(buf: Union[memoryview, bytearray]) -> None:
    """Give a buffer back to the shared pool."""
    _default_pool.put(buf)


def metrics() -> PoolMetrics:
    """Return a snapshot of the shared pool's counters."""
    return _default_pool._snapshot()