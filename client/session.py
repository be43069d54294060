"""
Hike Session Manager: binds the local breadcrumb trail to a server hike and
keeps the server's last known position fresh.

The first breadcrumb after a hike starts is uploaded at once; after that at
most one upload per interval, and only when the newest point differs from
the last one the server accepted. Upload failures are logged and retried on
a later tick; they never interrupt the hike.
"""

import logging
import threading
from typing import Optional

from client.clock import SystemClock
from client.errors import HikeAlreadyActive, HikeApiError, NoActiveCheckIn, NoActiveHike
from client.storage import StorageKeys

logger = logging.getLogger(__name__)


def sign_in(api, store, email: str, password: str) -> str:
    token = api.login(email, password)
    store.set_item(StorageKeys.IS_LOGGED_IN, True)
    return token


def sign_out(api, store):
    api.token = None
    store.remove_item(StorageKeys.IS_LOGGED_IN)


def is_logged_in(store) -> bool:
    return bool(store.get_item(StorageKeys.IS_LOGGED_IN))


class HikeSession:
    def __init__(self, tracker, checkins, api, clock=None, upload_interval_s: float = 60):
        self.tracker = tracker
        self.checkins = checkins
        self.api = api
        self.clock = clock or SystemClock()
        self.upload_interval_ms = int(upload_interval_s * 1000)

        self.hike_id: Optional[str] = None
        self.started_at_ms: Optional[int] = None
        self._lock = threading.Lock()
        self._uploading = False
        self._last_uploaded_ts: Optional[int] = None
        self._last_attempt_ms: Optional[int] = None
        self._ticker = None
        self._stop_ticker = threading.Event()

        tracker.add_listener(self._on_point)

    @property
    def is_hiking(self) -> bool:
        return self.hike_id is not None

    def elapsed_seconds(self) -> int:
        if self.started_at_ms is None:
            return 0
        return max(0, (self.clock.now_ms() - self.started_at_ms) // 1000)

    # ------------------------------
    # Lifecycle
    # ------------------------------
    def start_hike(self, trail_id: str, contact: Optional[str] = None,
                   expected_return_at: Optional[int] = None) -> str:
        """Start tracking and create the server hike; returns its id.

        Contact and deadline default to the stored check-in, which must
        exist for this trail. If the server hike cannot be created, tracking
        is stopped again and the HikeApiError is re-raised.
        """
        if self.hike_id is not None:
            raise HikeAlreadyActive(f"Hike {self.hike_id} is still in progress")
        checkin = self.checkins.load()
        if checkin is None or checkin.trail_id != trail_id:
            raise NoActiveCheckIn(f"Set a check-in for trail {trail_id} before starting")
        contact = contact or checkin.contact_info
        expected_return_at = expected_return_at or checkin.expected_return_time

        self.tracker.start()
        now = self.clock.now_ms()
        try:
            hike_id = self.api.start_hike(trail_id, contact, expected_return_at, started_at=now)
        except HikeApiError as e:
            logger.error("Could not create hike on server, stopping tracking: %s", e)
            self.tracker.stop()
            raise

        with self._lock:
            self.hike_id = hike_id
            self.started_at_ms = now
            self._last_uploaded_ts = None
            self._last_attempt_ms = None
        logger.info("Hike %s started on trail %s", hike_id, trail_id)
        self.maybe_upload()
        return hike_id

    def pause(self):
        if self.hike_id is None:
            raise NoActiveHike("No hike in progress")
        self.tracker.stop()

    def resume(self):
        if self.hike_id is None:
            raise NoActiveHike("No hike in progress")
        self.tracker.start()

    def end_hike(self) -> Optional[str]:
        """End the hike locally and on the server.

        Returns the server's final status, or None when the server could not
        be reached; the local hike ends either way.
        """
        with self._lock:
            hike_id = self.hike_id
            if hike_id is None:
                raise NoActiveHike("No hike in progress")
            self.hike_id = None
            self.started_at_ms = None
        self.tracker.stop()
        try:
            status = self.api.end_hike(hike_id).get("status")
        except HikeApiError as e:
            logger.warning("Hike %s ended locally but the server was not updated: %s", hike_id, e)
            return None
        if status == "overdue":
            logger.warning("Hike %s was already reported overdue to the emergency contact", hike_id)
        return status

    # ------------------------------
    # Breadcrumb upload
    # ------------------------------
    def _on_point(self, point):
        self.maybe_upload()

    def maybe_upload(self) -> bool:
        """Upload the newest breadcrumb if the throttle allows; True on success."""
        now = self.clock.now_ms()
        point = self.tracker.last_point
        with self._lock:
            hike_id = self.hike_id
            if hike_id is None or point is None or self._uploading:
                return False
            if point.ts == self._last_uploaded_ts:
                return False
            if self._last_attempt_ms is not None and now - self._last_attempt_ms < self.upload_interval_ms:
                return False
            self._uploading = True
            self._last_attempt_ms = now

        try:
            self.api.record_point(hike_id, point)
        except HikeApiError as e:
            logger.warning("Breadcrumb upload for hike %s failed, will retry: %s", hike_id, e)
            return False
        else:
            with self._lock:
                if self.hike_id == hike_id:
                    self._last_uploaded_ts = point.ts
            return True
        finally:
            with self._lock:
                self._uploading = False

    def start_uploader(self, tick_seconds: float = 5.0):
        """Retry and throttle uploads from a background thread."""
        if self._ticker and self._ticker.is_alive():
            return
        self._stop_ticker.clear()

        def run():
            while not self._stop_ticker.wait(tick_seconds):
                try:
                    self.maybe_upload()
                except Exception as e:
                    logger.exception("Upload tick failed: %s", e)

        self._ticker = threading.Thread(target=run, name="breadcrumb-upload", daemon=True)
        self._ticker.start()

    def stop_uploader(self, timeout: float = 2.0):
        self._stop_ticker.set()
        if self._ticker and self._ticker.is_alive():
            self._ticker.join(timeout=timeout)
