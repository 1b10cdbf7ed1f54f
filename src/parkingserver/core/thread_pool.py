"""
=============================================================================
WORKER POOL
=============================================================================

A fixed number of threads pulling connection tasks from one FIFO queue.

=============================================================================
WHY A FIXED POOL?
=============================================================================

Thread-per-connection lets a burst of clients create a burst of threads.
Here the thread count is decided once, at startup:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                     │
    │   Listener ──submit()──► ┌───────────────────────┐                  │
    │                          │  FIFO queue            │                  │
    │                          │  [task][task][task]    │                  │
    │                          └───────────┬───────────┘                  │
    │                                      │ get()                        │
    │                    ┌─────────────────┼─────────────────┐            │
    │                    ▼                 ▼                 ▼            │
    │               Worker-0          Worker-1    ...   Worker-N-1        │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

How many connections may be queued at once is limited separately, by
ConnectionLimiter, before a task is ever submitted.

=============================================================================
SHUTDOWN
=============================================================================

    1. Mark the pool closed; submit() now returns False.
    2. Drain the queue. Tasks that never started are discarded, and each
       one's on_discard callback runs so it can free what it holds.
    3. Put one poison pill (None) per worker.
    4. Join the workers. A task that is already running finishes.

=============================================================================
"""

import os
import threading
import queue
import time
import logging
from typing import Callable, Optional, Any
from dataclasses import dataclass, field
from enum import Enum


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    """Worker thread states, reported by WorkerPool.stats."""
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """
    A deferred call: run func(*args, **kwargs) on some worker later.

    Attributes:
        func: The function to execute.
        args: Positional arguments.
        kwargs: Keyword arguments.
        on_discard: Called instead of func if the pool shuts down before
            the task starts.
        submitted_at: Time the task was queued.
    """
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    on_discard: Optional[Callable[[], Any]] = None
    submitted_at: float = field(default_factory=time.time)

    def discard(self) -> None:
        if self.on_discard is None:
            return
        try:
            self.on_discard()
        except Exception as e:
            logger.exception(f"Discard callback failed: {e}")


class Worker(threading.Thread):
    """
    Worker thread.

    Loop: block on the queue, exit on None, otherwise run the task and
    log anything it raises. One bad task never kills the worker.
    """

    def __init__(self, task_queue: queue.Queue, worker_id: int):
        super().__init__(name=f"Worker-{worker_id}", daemon=True)

        self.task_queue = task_queue
        self.worker_id = worker_id

        self.state = WorkerState.IDLE
        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while True:
            task = self.task_queue.get()
            try:
                if task is None:
                    break
                self._execute_task(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute_task(self, task: Task):
        self.state = WorkerState.BUSY
        start_time = time.time()

        try:
            task.func(*task.args, **task.kwargs)

            elapsed = time.time() - start_time
            logger.debug(f"Worker {self.worker_id} completed task in {elapsed:.3f}s")
            self.tasks_completed += 1

        except Exception as e:
            elapsed = time.time() - start_time
            logger.exception(
                f"Worker {self.worker_id} task failed after {elapsed:.3f}s: {e}"
            )
            self.tasks_failed += 1

        finally:
            self.state = WorkerState.IDLE


class WorkerPool:
    """
    Fixed-size pool of worker threads.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      WorkerPool Usage                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   pool = WorkerPool(num_workers=8)                                  │
    │   pool.start()                                                      │
    │                                                                     │
    │   if not pool.submit(handle, args=(conn,), on_discard=conn.close):  │
    │       ...   # pool is shutting down, task was dropped               │
    │                                                                     │
    │   pool.shutdown()                                                   │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘
    """

    def __init__(self, num_workers: Optional[int] = None):
        """
        Args:
            num_workers: Number of worker threads. Defaults to the number
                of CPUs on the host.
        """
        if num_workers is None:
            num_workers = os.cpu_count() or 1
        if num_workers < 1:
            raise ValueError(f"num_workers must be >= 1, got {num_workers}")

        self.num_workers = num_workers

        # Unbounded: backpressure comes from the connection ceiling.
        self._task_queue: queue.Queue[Optional[Task]] = queue.Queue()

        self._workers: list[Worker] = []
        # Guards _closed together with the put() in submit().
        self._lock = threading.Lock()
        self._started = False
        self._closed = False
        self._discarded = 0
        self._submitted = 0

    def start(self):
        """Spawn the worker threads. Calling it twice is a no-op."""
        with self._lock:
            if self._started:
                return
            if self._closed:
                raise RuntimeError("Worker pool has been shut down")

            logger.info(f"Starting worker pool with {self.num_workers} workers")
            for worker_id in range(self.num_workers):
                worker = Worker(self._task_queue, worker_id)
                self._workers.append(worker)
                worker.start()

            self._started = True

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[dict] = None,
        on_discard: Optional[Callable[[], Any]] = None,
    ) -> bool:
        """
        Queue a task and return immediately.

        Args:
            func: Function to run on a worker.
            args: Positional arguments for func.
            kwargs: Keyword arguments for func.
            on_discard: Run instead of func if the pool shuts down while
                the task is still queued.

        Returns:
            True if the task was queued, False if the pool is closed. A
            refused task is dropped; on_discard is not called for it.
        """
        task = Task(func=func, args=args, kwargs=kwargs or {}, on_discard=on_discard)

        with self._lock:
            if self._closed:
                return False
            self._task_queue.put(task)
            self._submitted += 1
        return True

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop the pool.

        Args:
            wait: Join the worker threads before returning.
            timeout: Per-worker join timeout; None waits for the running
                task to finish however long it takes.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True

        logger.info("Shutting down worker pool...")

        # ─────────────────────────────────────────────────────────────────
        # DISCARD QUEUED TASKS
        # ─────────────────────────────────────────────────────────────────
        discarded = 0
        while True:
            try:
                task = self._task_queue.get_nowait()
            except queue.Empty:
                break
            try:
                if task is not None:
                    task.discard()
                    discarded += 1
            finally:
                self._task_queue.task_done()

        self._discarded += discarded
        if discarded:
            logger.info(f"Discarded {discarded} queued task(s)")

        # ─────────────────────────────────────────────────────────────────
        # POISON PILLS
        # ─────────────────────────────────────────────────────────────────
        for _ in self._workers:
            self._task_queue.put(None)

        if wait:
            for worker in self._workers:
                worker.join(timeout=timeout)
                if worker.is_alive():
                    logger.warning(f"{worker.name} did not stop within {timeout}s")

        logger.info("Worker pool shutdown complete")

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def idle_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.IDLE)

    @property
    def queue_size(self) -> int:
        return self._task_queue.qsize()

    @property
    def stats(self) -> dict:
        """Worker and task counts, for the health endpoint."""
        return {
            "workers": {
                "total": len(self._workers),
                "busy": self.busy_workers,
                "idle": self.idle_workers,
            },
            "tasks": {
                "submitted": self._submitted,
                "queued": self.queue_size,
                "completed": sum(w.tasks_completed for w in self._workers),
                "failed": sum(w.tasks_failed for w in self._workers),
                "discarded": self._discarded,
            },
            "closed": self._closed,
        }
