"""
api_operator/control_plane/cron.py
──────────────────────────────────
Minimal periodic driver for operator background tasks.

Guarantees
───────────
  • One daemon thread per task name. The next run is scheduled only after
    the previous one returned, so runs of the same task never overlap.
  • A failing run calls the task's error handler and the schedule carries
    on. An error handler that raises is logged and otherwise ignored, so a
    broken telemetry sink cannot stop reconciliation.
  • Registering a second task under a name that is still running raises.

Usage:
    scheduler = CronScheduler()
    scheduler.run("operator", reconciler.tick, 5.0, cron_error_handler("operator", sink))
    ...
    scheduler.cancel_all()
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Optional

from api_operator.cluster.interfaces import TelemetrySink
from api_operator.shared.errors import ErrorKind, wrap_error

logger = logging.getLogger(__name__)

ErrorHandler = Callable[[BaseException], None]


class Cron:
    """A single periodic task running on its own thread."""

    def __init__(
        self,
        name: str,
        fn: Callable[[], None],
        interval_seconds: float,
        error_handler: Optional[ErrorHandler] = None,
    ) -> None:
        self.name = name
        self._fn = fn
        self._interval = interval_seconds
        self._error_handler = error_handler
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._loop, name=f"cron-{name}", daemon=True)
        self._runs = 0

    def start(self) -> None:
        self._thread.start()

    def cancel(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout)

    @property
    def is_running(self) -> bool:
        return self._thread.is_alive() and not self._stop.is_set()

    @property
    def runs(self) -> int:
        """Number of completed runs, successful or not."""
        return self._runs

    def run_once(self) -> None:
        """Execute the task once, routing any failure to the error handler."""
        try:
            self._fn()
        except Exception as e:
            if self._error_handler is None:
                logger.exception("cron %s failed", self.name)
            else:
                try:
                    self._error_handler(e)
                except Exception:
                    logger.exception("error handler for cron %s failed", self.name)
        finally:
            self._runs += 1

    def _loop(self) -> None:
        while not self._stop.is_set():
            self.run_once()
            self._stop.wait(self._interval)


class CronScheduler:
    """Registry of named crons; at most one live cron per name."""

    def __init__(self) -> None:
        self._crons: Dict[str, Cron] = {}
        self._lock = threading.Lock()

    def run(
        self,
        name: str,
        fn: Callable[[], None],
        interval_seconds: float,
        error_handler: Optional[ErrorHandler] = None,
    ) -> Cron:
        with self._lock:
            existing = self._crons.get(name)
            if existing is not None and existing.is_running:
                raise ValueError(f"cron {name!r} is already running")
            cron = Cron(name, fn, interval_seconds, error_handler)
            self._crons[name] = cron
        cron.start()
        logger.info("Started cron %s (every %.1fs)", name, interval_seconds)
        return cron

    def cancel(self, name: str, timeout: Optional[float] = None) -> None:
        with self._lock:
            cron = self._crons.pop(name, None)
        if cron is not None:
            cron.cancel(timeout)

    def cancel_all(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            crons = list(self._crons.values())
            self._crons.clear()
        for cron in crons:
            cron.cancel(timeout)

    def get(self, name: str) -> Optional[Cron]:
        return self._crons.get(name)


def cron_error_handler(cron_name: str, telemetry: TelemetrySink) -> ErrorHandler:
    """Build a handler that logs a failed run and forwards it to telemetry."""

    def handle(err: BaseException) -> None:
        wrapped = wrap_error(err, f"{cron_name} cron failed", kind=ErrorKind.CRON_FAILED)
        logger.error("%s", wrapped, exc_info=err)
        telemetry.error(wrapped)

    return handle
