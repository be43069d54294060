"""
TrailSafe - backend/sweep.py
Overdue Sweep Job: find hikers past their expected return (plus grace) who
have not been alerted yet, notify their emergency contact, and latch the
alert.

Each hike is handled on its own; one hike's failure never blocks or rolls
back another's alert. A failed send leaves the hike eligible for the next
pass. A send followed by a failed write may lead to a repeat alert on the
next pass, which is preferred over losing the alert.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from backend.errors import SweepQueryError
from backend.models import Hike, isoformat, utcnow

logger = logging.getLogger(__name__)

# Per-hike outcome tags
EMAILED = "emailed"
EMAIL_FAILED = "email_failed"
UPDATE_FAILED = "update_failed"
SKIPPED_MISSING_LOCATION = "skipped_missing_location"
ALREADY_RESOLVED = "already_resolved"

ALERT_SUBJECT = "TrailSafe alert: hiker overdue"


@dataclass
class SweepResult:
    processed: int = 0
    results: List[Dict[str, str]] = field(default_factory=list)

    def add(self, hike_id: str, status: str):
        self.results.append({"id": hike_id, "status": status})
        self.processed = len(self.results)

    def to_dict(self) -> dict:
        return {"processed": self.processed, "results": list(self.results)}


def map_link(lat: float, lng: float) -> str:
    return f"https://maps.google.com/?q={lat},{lng}"


def compose_alert(hike: Hike):
    """Return (subject, body) for an overdue hike that has a location."""
    body = "\n".join([
        "TrailSafe Alert:",
        "",
        "Your friend has not checked back by their expected return time.",
        f"Trail ID: {hike.trail_id}",
        f"Last known coordinates: {hike.last_lat}, {hike.last_lng}",
        f"Last location time: {isoformat(hike.last_location_at) or 'Unknown'}",
        f"Map: {map_link(hike.last_lat, hike.last_lng)}",
    ])
    return ALERT_SUBJECT, body


class OverdueSweep:
    def __init__(self, store, sender, grace_minutes: float = 10):
        self.store = store
        self.sender = sender
        self.grace = timedelta(minutes=grace_minutes)

    def run(self, now: Optional[datetime] = None) -> SweepResult:
        now = now or utcnow()
        threshold = now - self.grace
        try:
            hikes = self.store.find_overdue(threshold)
        except SQLAlchemyError as e:
            self.store.session.rollback()
            raise SweepQueryError(str(e)) from e

        result = SweepResult()
        # ids are read before any per-hike commit expires the loaded rows
        for hike_id, hike in [(hike.id, hike) for hike in hikes]:
            try:
                outcome = self._process(hike_id, hike)
            except Exception as e:
                logger.exception("Unexpected error sweeping hike %s: %s", hike_id, e)
                self.store.session.rollback()
                outcome = EMAIL_FAILED
            result.add(hike_id, outcome)
        if result.processed:
            logger.info("Overdue sweep processed %d hike(s) (threshold %s)", result.processed, threshold)
        return result

    def _process(self, hike_id: str, hike: Hike) -> str:
        if not hike.has_location():
            logger.warning("Hike %s overdue but has no location yet; skipping", hike_id)
            return SKIPPED_MISSING_LOCATION

        subject, body = compose_alert(hike)
        try:
            delivered = self.sender.send(hike.emergency_contact, subject, body)
        except Exception as e:
            logger.exception("Sending alert for hike %s raised: %s", hike_id, e)
            delivered = False
        if not delivered:
            logger.warning("Alert for hike %s could not be delivered; will retry next sweep", hike_id)
            return EMAIL_FAILED

        try:
            transitioned = self.store.mark_alerted(hike_id)
        except SQLAlchemyError as e:
            logger.error("Alert sent for hike %s but marking it failed: %s", hike_id, e)
            return UPDATE_FAILED
        if not transitioned:
            logger.info("Hike %s was resolved by another writer before it could be marked", hike_id)
            return ALREADY_RESOLVED

        logger.info("Hike %s marked overdue; emergency contact alerted", hike_id)
        return EMAILED
