"""
=============================================================================
CONNECTION WORKERS
=============================================================================

Every accepted connection, from every listener, is served start to finish
by one worker thread of a single shared pool.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   accept thread (:8080) ──┐                                          │
    │                           ├──► bounded queue ──► worker-0            │
    │   accept thread (:8443) ──┘    of (conn,        worker-1            │
    │                                handler)         ...                  │
    │                                   │             worker-N (≤ max)     │
    │                         full? ────┘                                  │
    │                         submit() returns False → caller answers 503  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The pool starts min_workers threads and adds one whenever a connection is
queued while every worker is busy, up to max_workers. Workers are not
retired once started.

A connection that sat in the queue longer than max_wait is closed without
being served: its client has most likely given up already.

Stopping pushes one None per worker. A worker finishes the connection it
is serving before it takes the None.

=============================================================================
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from ..http.writer import Handler
from .connection import Connection


logger = logging.getLogger(__name__)

# serve(conn, handler): runs the whole keep-alive loop of one connection
ServeFunc = Callable[[Connection, Handler], None]


@dataclass
class QueuedConnection:
    """A connection waiting for a free worker."""
    conn: Connection
    handler: Handler
    queued_at: float = field(default_factory=time.monotonic)

    @property
    def waited(self) -> float:
        return time.monotonic() - self.queued_at


class Worker(threading.Thread):
    """Serves queued connections until it receives None."""

    def __init__(self, pool: "ConnectionPool", worker_id: int):
        super().__init__(name=f"worker-{worker_id}", daemon=True)
        self.pool = pool
        self.busy = False
        self.served = 0
        self.failed = 0

    def run(self):
        logger.debug(f"{self.name} started")
        while True:
            item = self.pool.queue.get()
            try:
                if item is None:
                    break
                self._serve(item)
            finally:
                self.pool.queue.task_done()
        logger.debug(f"{self.name} stopped after {self.served} connections")

    def _serve(self, item: QueuedConnection):
        max_wait = self.pool.max_wait
        if max_wait and item.waited > max_wait:
            logger.warning(
                f"[{item.conn.id}] dropped after {item.waited:.2f}s in the queue "
                f"(limit {max_wait}s)"
            )
            item.conn.close()
            self.failed += 1
            return

        self.busy = True
        try:
            self.pool.serve(item.conn, item.handler)
            self.served += 1
        except Exception as e:
            # One broken connection must not take the worker with it
            logger.exception(f"[{item.conn.id}] connection failed: {e}")
            item.conn.close()
            self.failed += 1
        finally:
            self.busy = False


class ConnectionPool:
    """
    Bounded, growing pool of connection workers.

        pool = ConnectionPool(serve, min_workers=4, max_workers=16)
        pool.start()
        if not pool.submit(conn, handler):
            ...  # saturated: answer 503 and close
        pool.stop(timeout=10)

    Args:
        serve: Called on a worker thread with each connection and the
               handler chain of the listener it arrived on.
        queue_size: Connections allowed to wait for a worker.
        max_wait: Seconds a connection may wait before it is dropped
                  (None: no limit).
    """

    def __init__(
        self,
        serve: ServeFunc,
        min_workers: int = 4,
        max_workers: int = 16,
        queue_size: int = 100,
        max_wait: Optional[float] = None,
    ):
        self.serve = serve
        self.min_workers = min_workers
        self.max_workers = max_workers
        self.max_wait = max_wait
        self.queue: "queue.Queue[Optional[QueuedConnection]]" = queue.Queue(maxsize=queue_size)

        self._workers: List[Worker] = []
        self._lock = threading.Lock()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def size(self) -> int:
        return len(self._workers)

    @property
    def busy(self) -> int:
        return sum(1 for worker in self._workers if worker.busy)

    def start(self):
        with self._lock:
            if self._running:
                return
            for _ in range(self.min_workers):
                self._spawn_locked()
            self._running = True
        logger.info(f"Started {self.min_workers} workers (max {self.max_workers})")

    def submit(self, conn: Connection, handler: Handler) -> bool:
        """
        Queue a connection without blocking the accept loop.

        Returns:
            False if the pool is stopped or the queue is full; the caller
            still owns the connection then.
        """
        if not self._running:
            return False
        try:
            self.queue.put_nowait(QueuedConnection(conn, handler))
        except queue.Full:
            return False

        with self._lock:
            if len(self._workers) < self.max_workers and self.busy == len(self._workers):
                logger.debug(f"All {len(self._workers)} workers busy, adding one")
                self._spawn_locked()
        return True

    def stop(self, timeout: Optional[float] = None):
        """
        Let queued connections be served, then stop every worker.

        Args:
            timeout: Upper bound in seconds on waiting for the queue to
                     drain; connections still queued after it are closed.
        """
        with self._lock:
            if not self._running:
                return
            self._running = False
            workers = list(self._workers)
            self._workers.clear()

        deadline = time.monotonic() + timeout if timeout else None
        while self.queue.unfinished_tasks:
            if deadline is not None and time.monotonic() > deadline:
                logger.warning("Shutdown timeout, closing queued connections")
                self._close_queued()
                break
            time.sleep(0.05)

        for _ in workers:
            try:
                self.queue.put_nowait(None)
            except queue.Full:
                break  # leftover workers are daemon threads
        for worker in workers:
            worker.join(timeout=2.0)
        logger.info("Workers stopped")

    def _spawn_locked(self):
        worker = Worker(self, len(self._workers))
        self._workers.append(worker)
        worker.start()

    def _close_queued(self):
        while True:
            try:
                item = self.queue.get_nowait()
            except queue.Empty:
                return
            if item is not None:
                item.conn.close()
            self.queue.task_done()


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# QueuedConnection - connection + listener handler + time it was queued
# Worker           - serves queued connections until it gets None
# ConnectionPool   - start(), submit() (non-blocking), stop(timeout)
# =============================================================================
