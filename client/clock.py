import time


class SystemClock:
    def now_ms(self) -> int:
        return int(time.time() * 1000)


class DemoClock:
    """Wall clock that demo mode can fast-forward to preview an overdue check-in."""

    def __init__(self, base=None):
        self.base = base or SystemClock()
        self.offset_minutes = 0

    def fast_forward(self, minutes: float):
        self.offset_minutes += minutes

    def reset(self):
        self.offset_minutes = 0

    def now_ms(self) -> int:
        return self.base.now_ms() + int(self.offset_minutes * 60 * 1000)
