"""
Check-In Store: the single active check-in for this device.

Saving replaces whatever was there, whatever its trail; one adventure at a
time.
"""

import logging
from dataclasses import dataclass, replace
from typing import Optional

from client.models import CheckInData
from client.storage import StorageKeys

logger = logging.getLogger(__name__)


@dataclass
class CheckInStatus:
    data: Optional[CheckInData]
    is_active: bool
    is_overdue: bool
    remaining_ms: int
    remaining_formatted: str


def format_remaining(remaining_ms: int) -> str:
    overdue = remaining_ms <= 0
    total_mins = abs(remaining_ms) // 60000
    hours, mins = divmod(total_mins, 60)
    text = f"{hours}h {mins}m" if hours > 0 else f"{mins}m"
    return f"{text} overdue" if overdue else f"{text} remaining"


class CheckInStore:
    def __init__(self, store):
        self.store = store

    def save(self, data: CheckInData):
        self.store.set_item(StorageKeys.CHECK_IN, data.to_dict())

    def load(self) -> Optional[CheckInData]:
        raw = self.store.get_item(StorageKeys.CHECK_IN)
        if raw is None:
            return None
        try:
            return CheckInData.from_dict(raw)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring unreadable check-in: %s", e)
            return None

    def clear(self):
        self.store.remove_item(StorageKeys.CHECK_IN)

    def status(self, now_ms: int) -> CheckInStatus:
        data = self.load()
        if data is None:
            return CheckInStatus(None, False, False, 0, "")
        remaining = data.expected_return_time - now_ms
        return CheckInStatus(data, True, remaining <= 0, remaining, format_remaining(remaining))

    def simulate_overdue(self, now_ms: int) -> Optional[CheckInData]:
        """Demo mode: move the deadline to one minute ago."""
        data = self.load()
        if data is None:
            return None
        overdue = replace(data, expected_return_time=now_ms - 60000)
        self.save(overdue)
        return overdue
