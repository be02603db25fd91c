"""
=============================================================================
THREAD POOL IMPLEMENTATION
=============================================================================

A fixed group of worker threads that run chat sessions pulled from a
shared queue.

=============================================================================
WHY A BOUNDED POOL?
=============================================================================

A chat session lives as long as the user stays connected, so each one pins
a worker thread for minutes or hours. Spawning a thread per connection puts
no cap on how many the process holds. The pool caps active sessions at
`workers`; any further connection waits in the queue until a session ends
and its worker frees up.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Thread Pool                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   submit(session.run)                                                │
    │          │                                                           │
    │          ▼                                                           │
    │   ┌─────────────────────────────────────────────────────────────┐   │
    │   │                     TASK QUEUE (unbounded FIFO)              │   │
    │   │  [session 11] [session 12] ...   ← wait for a free worker    │   │
    │   └──────────────────────┬──────────────────────────────────────┘   │
    │                          │ get()                                     │
    │                          ▼                                           │
    │   ┌──────────┐ ┌──────────┐ ┌──────────┐       ┌──────────┐         │
    │   │ Worker 0 │ │ Worker 1 │ │ Worker 2 │  ...  │ Worker 9 │         │
    │   │ (busy)   │ │ (busy)   │ │ (idle)   │       │ (busy)   │         │
    │   └──────────┘ └──────────┘ └──────────┘       └──────────┘         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The queue has no size limit, so submit() never turns a connection away
while the pool is running. The OS listen backlog bounds what piles up
before accept() anyway.

=============================================================================
WORKER LIFECYCLE
=============================================================================

    def run(self):
        while not shutdown:
            task = queue.get()      ← BLOCKS until task available
            if task is None:        ← "Poison pill" signals shutdown
                break
            execute(task)           ← Run the task
            queue.task_done()       ← Mark task complete

=============================================================================
"""

import threading
import queue
import time
import logging
from typing import Callable, Optional, Any
from dataclasses import dataclass, field
from enum import Enum


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    """
    Worker thread states.

    Used for monitoring and debugging the thread pool.
    """
    IDLE = "idle"      # Waiting for task
    BUSY = "busy"      # Executing task
    STOPPED = "stopped"  # Thread exited


@dataclass
class Task:
    """
    A deferred function call: "call this function with these arguments later".

    Attributes:
        func: The function to execute.
        args: Positional arguments for the function.
        kwargs: Keyword arguments for the function.
        submitted_at: Time the task was submitted (for queue wait logging).
    """
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """
    Worker thread that processes tasks from the queue.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Worker Loop                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. Wait for task from queue (blocking, idle_timeout at a time)    │
    │   2. None ("poison pill") → exit loop, thread terminates            │
    │   3. Execute task, log any exception (worker survives)              │
    │   4. task_done(), back to step 1                                    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘
    """

    def __init__(
        self,
        task_queue: queue.Queue,
        worker_id: int,
        idle_timeout: float = 1.0
    ):
        """
        Initialize the worker.

        Args:
            task_queue: Queue to pull tasks from.
            worker_id: Unique identifier for this worker (for logging).
            idle_timeout: Seconds to wait for task before checking shutdown.
        """
        # daemon=True: a session stuck in a read never keeps the process alive
        super().__init__(name=f"Worker-{worker_id}", daemon=True)

        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout

        self.state = WorkerState.IDLE
        self._shutdown = threading.Event()

        # Metrics
        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        """
        Main worker loop.

        Runs until shutdown is signaled or a poison pill is received.
        """
        logger.debug(f"Worker {self.worker_id} started")

        while not self._shutdown.is_set():
            try:
                task = self.task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                continue

            if task is None:
                self.task_queue.task_done()
                break

            try:
                self._execute_task(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute_task(self, task: Task):
        """
        Execute a single task.

        Wraps the call with state tracking, timing and exception logging.
        A failing task never takes its worker down.

        Args:
            task: The task to execute.
        """
        self.state = WorkerState.BUSY
        start_time = time.time()

        waited = start_time - task.submitted_at
        if waited > 1.0:
            logger.debug(f"Worker {self.worker_id} picked up task after {waited:.2f}s in queue")

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
            # Always reset state, even if task failed
            self.state = WorkerState.IDLE

    def shutdown(self):
        """Signal the worker to stop."""
        self._shutdown.set()


class ThreadPool:
    """
    Fixed-size thread pool.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      ThreadPool Usage                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   pool = ThreadPool(workers=10)                                      │
    │   pool.start()                                                       │
    │                                                                      │
    │   pool.submit(session.run)                                           │
    │                                                                      │
    │   print(pool.stats)  # {"workers": {"busy": 3, ...}, ...}           │
    │                                                                      │
    │   pool.shutdown(wait=True, timeout=5.0)                              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘
    """

    def __init__(self, workers: int = 10, idle_timeout: float = 1.0):
        """
        Initialize the thread pool.

        Args:
            workers: Number of worker threads, i.e. tasks running at once.
            idle_timeout: Seconds before idle workers re-check for shutdown.
        """
        if workers < 1:
            raise ValueError("workers must be >= 1")

        self.workers = workers
        self.idle_timeout = idle_timeout

        # Unbounded: excess tasks wait, they are never rejected.
        self._task_queue: "queue.Queue[Optional[Task]]" = queue.Queue()

        self._workers: list = []
        self._lock = threading.Lock()  # Protects _workers list and flags
        self._started = False
        self._shutdown = False

    @property
    def is_running(self) -> bool:
        return self._started and not self._shutdown

    def start(self):
        """
        Start every worker thread.

        Calling start() on a running pool does nothing.
        """
        with self._lock:
            if self._started:
                return

            logger.info(f"Starting thread pool with {self.workers} workers")

            for worker_id in range(self.workers):
                worker = Worker(
                    task_queue=self._task_queue,
                    worker_id=worker_id,
                    idle_timeout=self.idle_timeout
                )
                self._workers.append(worker)
                worker.start()

            self._shutdown = False
            self._started = True

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[dict] = None,
    ) -> bool:
        """
        Submit a task for execution.

        The task runs as soon as a worker is free; until then it waits in
        FIFO order behind earlier submissions.

        Args:
            func: The function to execute.
            args: Positional arguments for the function.
            kwargs: Keyword arguments for the function.

        Returns:
            True once the task is queued.

        Raises:
            RuntimeError: If pool is not started or is shutting down.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")

        if self._shutdown:
            raise RuntimeError("Thread pool is shutting down")

        self._task_queue.put(Task(func=func, args=args, kwargs=kwargs or {}))
        return True

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Shutdown the thread pool.

        ┌─────────────────────────────────────────────────────────────────┐
        │                    shutdown() Flow                               │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   1. Mark as shutting down (reject new tasks)                   │
        │   2. If wait=True: wait for queued tasks to be picked up        │
        │   3. Send one poison pill per worker                            │
        │   4. Join workers (a worker still inside a task may outlive     │
        │      the join timeout; it is a daemon thread)                   │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘

        Args:
            wait: Whether to wait for pending tasks to be picked up.
            timeout: Maximum time to wait for the queue to drain.
        """
        with self._lock:
            if not self._started or self._shutdown:
                return
            self._shutdown = True

        logger.info("Shutting down thread pool...")

        if wait:
            deadline = time.time() + timeout if timeout else None
            while not self._task_queue.empty():
                if deadline and time.time() > deadline:
                    logger.warning("Shutdown timeout, forcing stop")
                    break
                time.sleep(0.05)

        for _ in self._workers:
            self._task_queue.put(None)

        join_timeout = timeout if timeout else 2.0
        for worker in self._workers:
            worker.shutdown()
            worker.join(timeout=join_timeout)

        with self._lock:
            self._workers.clear()
            self._started = False

        logger.info("Thread pool shutdown complete")

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def active_workers(self) -> int:
        """Get count of active (non-stopped) workers."""
        return sum(1 for w in self._workers if w.state != WorkerState.STOPPED)

    @property
    def busy_workers(self) -> int:
        """Get count of busy workers."""
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def idle_workers(self) -> int:
        """Get count of idle workers."""
        return sum(1 for w in self._workers if w.state == WorkerState.IDLE)

    @property
    def queue_size(self) -> int:
        """Get current task queue size."""
        return self._task_queue.qsize()

    @property
    def stats(self) -> dict:
        """
        Get thread pool statistics.

        Returns a dict with worker and task counts.
        """
        total_completed = sum(w.tasks_completed for w in self._workers)
        total_failed = sum(w.tasks_failed for w in self._workers)

        return {
            "workers": {
                "total": len(self._workers),
                "active": self.active_workers,
                "busy": self.busy_workers,
                "idle": self.idle_workers,
            },
            "tasks": {
                "queued": self._task_queue.qsize(),
                "completed": total_completed,
                "failed": total_failed,
            },
        }
