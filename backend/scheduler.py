"""
TrailSafe - backend/scheduler.py
Background worker that runs the overdue sweep on a fixed period.

The HTTP trigger remains available; overlapping runs are safe because the
per-hike latch is a conditional write.
"""

import logging
import threading

logger = logging.getLogger(__name__)


class SweepScheduler:
    def __init__(self, app, run_sweep, interval_seconds: float = 300):
        self.app = app
        self.run_sweep = run_sweep
        self.interval = interval_seconds
        self._stop = threading.Event()
        self._thread = None

    def _loop(self):
        while not self._stop.is_set():
            try:
                with self.app.app_context():
                    self.run_sweep()
            except Exception as e:
                logger.exception("Scheduled sweep failed: %s", e)
            self._stop.wait(self.interval)

    def start(self):
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="overdue-sweep", daemon=True)
        self._thread.start()
        logger.info("Overdue sweep scheduled every %.0fs", self.interval)

    def stop(self, timeout: float = 2.0):
        self._stop.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)
