# Overview: Background workers with explicit start/stop lifecycle.

"""
Background Workers

Two shapes of background work exist in this service:

- PeriodicWorker: runs a task every `interval` seconds (token sweep,
  rate-limiter pruning).
- NotificationDispatcher: fire-and-forget jobs submitted by request handlers
  (low-stock alerts, customer order notifications).

Both are owned by the Flask app, started in create_app() and stopped by
shutdown_workers(). When a dispatcher is not running (tests, CLI), submitted
jobs run inline so behaviour stays deterministic.

Failures inside a job are logged and swallowed: a background task must never
fail the request that scheduled it.
"""

from __future__ import annotations

import queue
import threading

from ..extensions import db


class PeriodicWorker:
    def __init__(self, name: str, interval: float, task, app):
        self.name = name
        self.interval = float(interval)
        self._task = task
        self._app = app
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def run_once(self):
        """Run the task a single time; used by the loop, the CLI and tests."""
        with self._app.app_context():
            try:
                return self._task()
            except Exception:
                self._app.logger.exception("Worker %s task failed", self.name)
                return None

    def _loop(self) -> None:
        while not self._stop_event.wait(self.interval):
            self.run_once()


class NotificationDispatcher:
    _STOP = object()

    def __init__(self, app, max_queue: int = 1000):
        self._app = app
        self._queue: queue.Queue = queue.Queue(maxsize=max_queue)
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._thread = threading.Thread(target=self._loop, name="notification-dispatcher", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        if self._thread is None:
            return
        self._queue.put(self._STOP)
        self._thread.join(timeout)
        self._thread = None

    def submit(self, func, *args, **kwargs) -> None:
        """Schedule func(*args, **kwargs); never raises."""
        job = (func, args, kwargs)
        if not self.running:
            self._run_job(job)
            return
        try:
            self._queue.put_nowait(job)
        except queue.Full:
            self._app.logger.warning(
                "Notification queue full; dropping %s", getattr(func, "__name__", func)
            )

    def drain(self, timeout: float | None = None) -> None:
        """Block until every queued job has run."""
        if not self.running:
            return
        done = threading.Event()
        self._queue.put((lambda: done.set(), (), {}))
        done.wait(timeout)

    def _loop(self) -> None:
        while True:
            job = self._queue.get()
            if job is self._STOP:
                break
            self._run_job(job)

    def _run_job(self, job) -> None:
        func, args, kwargs = job
        with self._app.app_context():
            try:
                func(*args, **kwargs)
            except Exception:
                db.session.rollback()
                self._app.logger.exception(
                    "Background job %s failed", getattr(func, "__name__", func)
                )
