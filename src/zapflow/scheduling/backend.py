"""Threading-based periodic driver.

Runs a callback on a fixed interval in a daemon thread. Used by ``serve``
to drive the schedule service, the outbox worker and the poll sweep without
an external cron.

::

    start(callback, interval)
      └─ daemon thread:
             while not stop_event.wait(interval):
                 tick_count += 1
                 callback()            (exceptions logged, loop continues)

    stop()
      └─ stop_event.set(); thread.join(timeout=5.0)
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime
from typing import Any

from zapflow.core.logging import get_logger
from zapflow.core.timestamps import to_iso8601, utc_now

logger = get_logger(__name__)


class ThreadTickBackend:
    """Calls ``callback`` every ``interval_seconds`` until stopped.

    Example:
        >>> backend = ThreadTickBackend("schedules")
        >>> backend.start(service.tick, interval_seconds=60.0)
        >>> backend.stop()
    """

    def __init__(self, name: str = "zapflow-ticker") -> None:
        self.name = name
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._tick_count = 0
        self._last_tick: datetime | None = None
        self._interval: float = 60.0
        self._started = False
        self._lock = threading.Lock()

    def start(self, callback: Callable[[], Any], interval_seconds: float = 60.0) -> None:
        if self._started:
            logger.warning("ticker_already_started", ticker=self.name)
            return

        self._interval = interval_seconds
        self._stop_event.clear()

        def _loop() -> None:
            logger.info("ticker_started", ticker=self.name, interval_seconds=interval_seconds)
            while not self._stop_event.wait(interval_seconds):
                with self._lock:
                    self._tick_count += 1
                    self._last_tick = utc_now()
                try:
                    callback()
                except Exception:
                    logger.exception("ticker_tick_failed", ticker=self.name)
            logger.info("ticker_stopped", ticker=self.name)

        self._thread = threading.Thread(target=_loop, daemon=True, name=self.name)
        self._thread.start()
        self._started = True

    def stop(self) -> None:
        """Stop the loop, waiting up to 5 seconds for the current tick."""
        if not self._started:
            return
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5.0)
            if self._thread.is_alive():
                logger.warning("ticker_did_not_stop_cleanly", ticker=self.name)
        self._started = False

    @property
    def is_running(self) -> bool:
        return self._started and self._thread is not None and self._thread.is_alive()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    def health(self) -> dict[str, Any]:
        return {
            "healthy": self.is_running,
            "ticker": self.name,
            "tick_count": self._tick_count,
            "last_tick": to_iso8601(self._last_tick),
            "interval_seconds": self._interval,
        }


__all__ = ["ThreadTickBackend"]
