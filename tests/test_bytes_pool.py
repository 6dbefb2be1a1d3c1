import pytest

from tcpgate.bytes_pool import BytesPool, get_bytes, metrics, put_bytes


@pytest.mark.parametrize(
    "size,capacity",
    [
        (0, 128),
        (128, 128),
        (129, 512),
        (1024, 1024),
        (1025, 4096),
        (16384, 16384),
        (16385, 65536),
        (65536, 65536),
    ],
)
def test_get_uses_smallest_fitting_bucket(size, capacity):
    buf = BytesPool().get(size)
    assert len(buf) == size
    assert len(buf.obj) == capacity


def test_fresh_get_allocates():
    pool = BytesPool()
    pool.get(10)
    assert pool.metrics.hit_count == 0
    assert pool.metrics.make_count == pool.metrics.get_count


def test_returned_buffer_is_reused():
    pool = BytesPool()
    first = pool.get(100)
    pool.put(first)
    second = pool.get(50)
    assert second.obj is first.obj
    assert pool.metrics.hit_count == pool.metrics.make_count
    assert pool.metrics.get_count == pool.metrics.hit_count + pool.metrics.make_count


def test_large_request_is_raw_allocated():
    pool = BytesPool()
    buf = pool.get(65537)
    assert len(buf) == 65537
    assert pool.metrics.raw_alloc == pool.metrics.get_count
    assert pool.metrics.make_count == 0
    pool.put(buf)
    pool.get(65537)
    assert pool.metrics.raw_alloc == pool.metrics.get_count


def test_foreign_capacity_is_discarded():
    pool = BytesPool()
    pool.put(bytearray(100))
    pool.get(100)
    assert pool.metrics.hit_count == 0


def test_bytes_objects_are_ignored():
    pool = BytesPool()
    pool.put(memoryview(b"x" * 128))
    pool.get(1)
    assert pool.metrics.hit_count == 0


def test_buffer_is_writable():
    buf = BytesPool().get(5)
    buf[0:3] = b"abc"
    assert bytes(buf[:3]) == b"abc"


def test_negative_size_rejected():
    with pytest.raises(ValueError):
        BytesPool().get(-1)


def test_shared_pool_counts_requests():
    before = metrics()
    buf = get_bytes(10)
    put_bytes(buf)
    after = metrics()
    assert after.get_count - before.get_count == 1
    assert (after.hit_count + after.make_count) - (before.hit_count + before.make_count) == 1


def test_metrics_snapshot_is_detached():
    snap = metrics()
    get_bytes(10)
    assert metrics().get_count > snap.get_count