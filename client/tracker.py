"""
Breadcrumb Tracker: records the hiker's position as an ordered, durably
persisted trail while tracking is on.

Appends run in one critical section covering the in-memory list and the
storage write, so points arriving together are never lost and a crash
loses at most the point being written.
"""

import logging
import threading
from math import atan2, cos, radians, sin, sqrt
from typing import Callable, List, Optional

from client.clock import SystemClock
from client.errors import LocationPermissionDenied, TrackingUnavailable
from client.location import SIMULATED_PATH_OFFSETS
from client.models import BreadcrumbPoint
from client.storage import StorageKeys

logger = logging.getLogger(__name__)


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance in kilometers."""
    R = 6371
    lat1_rad, lon1_rad, lat2_rad, lon2_rad = map(radians, [lat1, lon1, lat2, lon2])
    dlon = lon2_rad - lon1_rad
    dlat = lat2_rad - lat1_rad
    a = sin(dlat/2)**2 + cos(lat1_rad) * cos(lat2_rad) * sin(dlon/2)**2
    c = 2 * atan2(sqrt(a), sqrt(1-a))
    return R * c


class BreadcrumbTracker:
    def __init__(self, store, location, clock=None, interval_ms: int = 2000):
        self.store = store
        self.location = location
        self.clock = clock or SystemClock()
        self.interval_ms = interval_ms
        self.has_permission: Optional[bool] = None
        self._points: List[BreadcrumbPoint] = []
        self._lock = threading.Lock()
        self._subscription = None
        self._listeners: List[Callable[[BreadcrumbPoint], None]] = []

    # ------------------------------
    # State
    # ------------------------------
    @property
    def points(self) -> List[BreadcrumbPoint]:
        with self._lock:
            return list(self._points)

    @property
    def last_point(self) -> Optional[BreadcrumbPoint]:
        with self._lock:
            return self._points[-1] if self._points else None

    @property
    def is_tracking(self) -> bool:
        return self._subscription is not None

    def add_listener(self, listener: Callable[[BreadcrumbPoint], None]):
        """Call `listener(point)` after every append."""
        self._listeners.append(listener)

    def distance_km(self) -> float:
        points = self.points
        return sum(calculate_distance(a.lat, a.lng, b.lat, b.lng) for a, b in zip(points, points[1:]))

    # ------------------------------
    # Persistence
    # ------------------------------
    def _persist(self, points: List[BreadcrumbPoint]) -> bool:
        return self.store.set_item(StorageKeys.BREADCRUMBS, [p.to_dict() for p in points])

    def load_saved_points(self) -> List[BreadcrumbPoint]:
        raw = self.store.get_item(StorageKeys.BREADCRUMBS) or []
        try:
            points = [BreadcrumbPoint.from_dict(p) for p in raw]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding unreadable breadcrumb log: %s", e)
            points = []
        with self._lock:
            self._points = points
        return list(points)

    def set_points(self, points: List[BreadcrumbPoint]):
        with self._lock:
            self._persist(points)
            self._points = list(points)

    def _append(self, point: BreadcrumbPoint, skip_if_same_place: bool = False) -> bool:
        with self._lock:
            if skip_if_same_place and self._points and self._points[-1].same_place(point):
                return False
            updated = self._points + [point]
            if not self._persist(updated):
                logger.warning("Breadcrumb at %s,%s kept in memory only", point.lat, point.lng)
            self._points = updated
        for listener in list(self._listeners):
            try:
                listener(point)
            except Exception as e:
                logger.exception("Breadcrumb listener failed: %s", e)
        return True

    def _on_position(self, lat: float, lng: float):
        self._append(BreadcrumbPoint(lat=lat, lng=lng, ts=self.clock.now_ms()))

    # ------------------------------
    # Lifecycle
    # ------------------------------
    def request_permission(self) -> bool:
        try:
            granted = bool(self.location.request_permission())
        except Exception as e:
            logger.error("Failed to request location permission: %s", e)
            granted = False
        self.has_permission = granted
        return granted

    def start(self):
        """Seed the log with a fresh fix and subscribe to position updates.

        Raises LocationPermissionDenied when permission is refused, or its
        TrackingUnavailable subclass when continuous updates cannot start.
        """
        if self.is_tracking:
            return
        if not self.has_permission and not self.request_permission():
            raise LocationPermissionDenied("Location permission not granted")

        self.load_saved_points()
        try:
            lat, lng = self.location.current_position()
            self._append(BreadcrumbPoint(lat=lat, lng=lng, ts=self.clock.now_ms()), skip_if_same_place=True)
        except Exception as e:
            logger.warning("Seeding location failed: %s", e)

        try:
            self._subscription = self.location.watch_position(self._on_position, self.interval_ms)
        except Exception as e:
            logger.error("Failed to start location tracking: %s", e)
            raise TrackingUnavailable("Failed to start location tracking") from e

    def stop(self):
        if self._subscription is not None:
            self._subscription.remove()
            self._subscription = None

    def clear(self):
        with self._lock:
            if not self._persist([]):
                logger.error("Failed to clear stored breadcrumbs")
            self._points = []

    def add_simulated_points(self, trail_lat: float, trail_lng: float) -> List[BreadcrumbPoint]:
        """Demo mode: append a short walk from the trailhead, one minute apart, ending now."""
        now = self.clock.now_ms()
        count = len(SIMULATED_PATH_OFFSETS)
        simulated = [
            BreadcrumbPoint(lat=trail_lat + dlat, lng=trail_lng + dlng, ts=now - (count - i) * 60000)
            for i, (dlat, dlng) in enumerate(SIMULATED_PATH_OFFSETS)
        ]
        with self._lock:
            updated = self._points + simulated
            self._persist(updated)
            self._points = updated
        return list(updated)
