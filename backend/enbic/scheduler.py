# Overview: Background thread that regenerates reminders at a fixed interval.

"""
Reminder scheduler.

Runs reminder generation once at start and then every
REMINDER_INTERVAL_SECONDS in a daemon thread. Each tick gets its own app
context and commits its own transaction; a failing tick is logged and the
loop keeps going.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime

from flask import Flask

from .extensions import db
from .time_utils import utcnow, to_utc_z


logger = logging.getLogger(__name__)


class ReminderScheduler:
    name = "reminders"

    def __init__(self, app: Flask, interval_seconds: float | None = None) -> None:
        self.app = app
        self.interval = float(interval_seconds or app.config["REMINDER_INTERVAL_SECONDS"])
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._tick_count = 0
        self._last_tick: datetime | None = None

    def tick(self) -> dict | None:
        """Run one generation pass. Returns the created/resolved counts, None on failure."""
        from .services.reminder_service import generate_reminders

        with self._lock:
            self._tick_count += 1
            self._last_tick = utcnow()

        with self.app.app_context():
            try:
                result = generate_reminders()
                db.session.commit()
                return result
            except Exception:
                db.session.rollback()
                logger.exception("Scheduled reminder generation failed")
                return None

    def start(self) -> None:
        if self.is_running:
            logger.warning("ReminderScheduler already started")
            return

        self._stop_event.clear()

        def _loop() -> None:
            logger.info("ReminderScheduler started (interval=%ss)", self.interval)
            self.tick()
            while not self._stop_event.wait(self.interval):
                self.tick()
            logger.info("ReminderScheduler stopped")

        self._thread = threading.Thread(target=_loop, daemon=True, name="enbic-reminders")
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            logger.warning("Reminder scheduler thread did not stop cleanly")
        self._thread = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def health(self) -> dict:
        return {
            "running": self.is_running,
            "tick_count": self._tick_count,
            "last_tick": to_utc_z(self._last_tick),
            "interval_seconds": self.interval,
        }
