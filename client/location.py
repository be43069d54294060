"""
Location providers.

A provider grants permission, returns a one-off high-accuracy fix, and
delivers continuous fixes to a callback at a fixed interval. Platform
integrations implement LocationProvider; SimulatedLocationProvider walks a
fixed path for demo mode and tests.
"""

import threading
from typing import Callable, List, Optional, Tuple


Fix = Tuple[float, float]

# Demo-mode walk relative to the trailhead
SIMULATED_PATH_OFFSETS = [
    (0.0, 0.0),
    (0.0005, 0.0003),
    (0.0010, 0.0008),
    (0.0015, 0.0010),
    (0.0018, 0.0015),
    (0.0020, 0.0020),
    (0.0022, 0.0028),
    (0.0018, 0.0035),
    (0.0012, 0.0040),
    (0.0008, 0.0045),
]


class Subscription:
    def __init__(self, on_remove: Callable[[], None]):
        self._on_remove = on_remove
        self.active = True

    def remove(self):
        if self.active:
            self.active = False
            self._on_remove()


class LocationProvider:
    def request_permission(self) -> bool:
        raise NotImplementedError

    def current_position(self) -> Fix:
        raise NotImplementedError

    def watch_position(self, callback: Callable[[float, float], None], interval_ms: int) -> Subscription:
        raise NotImplementedError


class SimulatedLocationProvider(LocationProvider):
    """Replays a path of fixes.

    step() emits the next fix to every watcher; with autoplay the provider
    steps itself every interval on a background thread.
    """

    def __init__(self, path: List[Fix], granted: bool = True, autoplay: bool = False):
        if not path:
            raise ValueError("path must contain at least one fix")
        self.path = list(path)
        self.granted = granted
        self.autoplay = autoplay
        self.index = 0
        self._watchers = []
        self._lock = threading.Lock()

    @classmethod
    def around(cls, lat: float, lng: float, **kwargs) -> "SimulatedLocationProvider":
        return cls([(lat + dlat, lng + dlng) for dlat, dlng in SIMULATED_PATH_OFFSETS], **kwargs)

    def request_permission(self) -> bool:
        return self.granted

    def current_position(self) -> Fix:
        return self.path[self.index]

    def step(self) -> Optional[Fix]:
        with self._lock:
            if self.index < len(self.path) - 1:
                self.index += 1
            fix = self.path[self.index]
            watchers = list(self._watchers)
        for callback in watchers:
            callback(*fix)
        return fix

    def watch_position(self, callback, interval_ms):
        stop = threading.Event()

        def remove():
            stop.set()
            with self._lock:
                if callback in self._watchers:
                    self._watchers.remove(callback)

        with self._lock:
            self._watchers.append(callback)
        if self.autoplay:
            def run():
                while not stop.wait(interval_ms / 1000.0):
                    self.step()
            threading.Thread(target=run, name="simulated-location", daemon=True).start()
        return Subscription(remove)
