"""
Fork/join scheduler that runs recursive crawl tasks on a bounded thread pool.
"""

import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, Optional

# Tasks a single thread may run inline on its own stack before handing
# further joins to a spare thread
MAX_INLINE_DEPTH = 64

_inline = threading.local()


class RecursiveAction(ABC):
    """
    A unit of work that may fork subtasks and join them.

    A task runs at most once. Whoever claims it first (a pool worker that
    dequeues it, or a thread joining it before any worker got to it) executes
    it; everybody else waits for completion.
    """

    def __init__(self):
        self._claim_lock = threading.Lock()
        self._claimed = False
        self._done = threading.Event()
        self._error: Optional[BaseException] = None

    @abstractmethod
    def compute(self) -> None:
        """Do the work of this task."""

    def _try_claim(self) -> bool:
        with self._claim_lock:
            if self._claimed:
                return False
            self._claimed = True
            return True

    def _execute(self):
        try:
            self.compute()
        except Exception as e:
            self._error = e
        finally:
            self._done.set()

    def _run_if_unclaimed(self):
        if self._try_claim():
            self._execute()

    def _execute_inline(self):
        depth = getattr(_inline, 'depth', 0)
        if depth >= MAX_INLINE_DEPTH:
            # Continue on a fresh stack while this thread blocks on the spare
            name = threading.current_thread().name.partition('-spare')[0]
            spare = threading.Thread(target=self._execute, name=f"{name}-spare")
            spare.start()
            spare.join()
            return

        _inline.depth = depth + 1
        try:
            self._execute()
        finally:
            _inline.depth = depth

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the task has finished, without helping to run it."""
        return self._done.wait(timeout)

    def join(self):
        """
        Wait for the task, running it on this thread if nobody started it yet.

        Raises:
            Any exception raised by compute()
        """
        if self._try_claim():
            self._execute_inline()
        else:
            self._done.wait()
        if self._error is not None:
            raise self._error


class ForkJoinScheduler:
    """
    Bounded worker pool with fork/join semantics.

    Workers take forked tasks in FIFO order while a parent joining its
    children runs the unstarted ones itself, newest first. A parent therefore
    only ever blocks on a child that is already running on another worker,
    which keeps recursion from starving the pool.
    """

    def __init__(self, parallelism: int, thread_name_prefix: str = "crawl-worker"):
        if parallelism < 1:
            raise ValueError("parallelism must be at least 1")
        self.parallelism = parallelism
        self.logger = logging.getLogger(__name__)
        self._executor = ThreadPoolExecutor(
            max_workers=parallelism,
            thread_name_prefix=thread_name_prefix
        )
        self._closed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()

    def fork(self, task: RecursiveAction) -> RecursiveAction:
        """Queue a task for execution by a pool worker."""
        if self._closed:
            raise RuntimeError("Scheduler has been shut down")
        self._executor.submit(task._run_if_unclaimed)
        return task

    def invoke_all(self, tasks: Iterable[RecursiveAction]):
        """
        Fork every task and join them in reverse order.

        Meant to be called from inside a running task.
        """
        forked: List[RecursiveAction] = [self.fork(task) for task in tasks]
        first_error: Optional[BaseException] = None
        for task in reversed(forked):
            try:
                task.join()
            except Exception as e:
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error

    def run(self, tasks: Iterable[RecursiveAction]):
        """
        Run top-level tasks on the pool and block until all have completed.

        The calling thread only waits; all work happens on pool workers.
        """
        forked = [self.fork(task) for task in tasks]
        self.logger.debug(f"Submitted {len(forked)} root tasks to {self.parallelism} workers")
        for task in forked:
            task.wait()
        for task in forked:
            if task._error is not None:
                raise task._error

    def shutdown(self):
        if not self._closed:
            self._closed = True
            self._executor.shutdown(wait=True)
            self.logger.debug("Scheduler shut down")
