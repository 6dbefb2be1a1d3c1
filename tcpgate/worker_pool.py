"""Work tasks and the fixed-size pool of worker threads that runs them."""

import queue
import threading
from dataclasses import dataclass
from typing import Any, List, Optional

from .bytes_pool import put_bytes
from .handlers import Router
from .logger import get_logger

_MAX_FREE_TASKS = 4096


@dataclass
class WorkTask:
    """One request waiting for a worker."""

    conn_id: int = 0
    cmd_id: int = 0
    body: Optional[Any] = None
    data_len: int = 0
    conn: Optional[Any] = None


_free_tasks: List[WorkTask] = []
_free_lock = threading.Lock()


def get_work_task() -> WorkTask:
    """Take a blank task, reusing a returned one when available."""
    with _free_lock:
        if _free_tasks:
            return _free_tasks.pop()
    return WorkTask()


def put_work_task(task: WorkTask) -> None:
    """Return a task; its body goes back to the byte pool and its fields are cleared."""
    if task.body is not None:
        put_bytes(task.body)
    task.conn_id = 0
    task.cmd_id = 0
    task.data_len = 0
    task.body = None
    task.conn = None
    with _free_lock:
        if len(_free_tasks) < _MAX_FREE_TASKS:
            _free_tasks.append(task)


class WorkerPool:
    """Worker threads, each with its own bounded queue.

    Tasks of one connection always go to the same worker, so they run in order.
    """

    def __init__(self, size: int, queue_size: int, router: Router) -> None:
        if size <= 0:
            raise ValueError(f"worker pool size must be positive: {size}")
        if queue_size <= 0:
            raise ValueError(f"task queue size must be positive: {queue_size}")
        self.size = size
        self._router = router
        self._queues: List["queue.Queue[Optional[WorkTask]]"] = [
            queue.Queue(maxsize=queue_size) for _ in range(size)
        ]
        self._threads: List[threading.Thread] = []

    def start(self) -> None:
        """Start the worker threads; does nothing if they already run."""
        if self._threads:
            return
        for worker_id, tasks in enumerate(self._queues):
            thread = threading.Thread(
                target=self._work_loop,
                args=(worker_id, tasks),
                name=f"tcpgate-worker-{worker_id}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)

    def _work_loop(self, worker_id: int, tasks: "queue.Queue[Optional[WorkTask]]") -> None:
        while True:
            task = tasks.get()
            if task is None:
                break
            try:
                self._router.execute(task.conn, task.cmd_id, task.body)
            except Exception:
                get_logger().exception(
                    "task failed",
                    extra={"fields": {"worker_id": worker_id, "cmd_id": task.cmd_id}},
                )
            finally:
                put_work_task(task)

    def submit(self, task: WorkTask) -> bool:
        """Queue a task on its connection's worker without blocking.

        If that worker's queue is full the connection is closed and False is returned.
        """
        worker_id = task.conn_id % self.size
        conn = task.conn
        conn.add_pending_task()
        try:
            self._queues[worker_id].put_nowait(task)
        except queue.Full:
            get_logger().warning(
                "worker queue full, closing connection",
                extra={"fields": {"worker_id": worker_id, "conn_id": task.conn_id}},
            )
            conn.close()
            put_work_task(task)
            return False
        return True

    def stop(self) -> None:
        """Let every worker finish its queued tasks, then wait for the threads to end."""
        if not self._threads:
            return
        for tasks in self._queues:
            tasks.put(None)
        for thread in self._threads:
            thread.join()
        self._threads = []