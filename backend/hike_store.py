"""
TrailSafe - backend/hike_store.py
Data access for hikes and breadcrumbs.

Every state transition here is a single conditional UPDATE on the expected
prior state, never a read followed by a write, so device writes and
concurrent sweeps cannot clobber each other.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from backend.models import (
    Breadcrumb, Hike, STATUS_ACTIVE, STATUS_COMPLETED, STATUS_OVERDUE, utcnow,
)

logger = logging.getLogger(__name__)


class HikeStore:
    def __init__(self, session):
        self.session = session

    def _commit(self):
        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

    # ------------------------------
    # Device-side writes
    # ------------------------------
    def create_hike(self, user_id: str, trail_id: str, emergency_contact: str,
                    expected_return_at: datetime, started_at: Optional[datetime] = None) -> Hike:
        hike = Hike(
            user_id=user_id,
            trail_id=trail_id,
            emergency_contact=emergency_contact,
            expected_return_at=expected_return_at,
            started_at=started_at or utcnow(),
            status=STATUS_ACTIVE,
            alert_sent=False,
        )
        self.session.add(hike)
        self._commit()
        logger.info("Hike %s started on trail %s (expected back %s)", hike.id, trail_id, expected_return_at)
        return hike

    def get_hike(self, hike_id: str, user_id: Optional[str] = None) -> Optional[Hike]:
        hike = self.session.get(Hike, hike_id)
        if hike is None or (user_id is not None and hike.user_id != user_id):
            return None
        return hike

    def record_point(self, hike_id: str, lat: float, lng: float, recorded_at: datetime) -> bool:
        """Append a breadcrumb and advance the last known location.

        The location fields only move forward in time; a point older than
        the current last_location_at is logged but does not overwrite it.
        Returns True when the last known location changed.
        """
        self.session.add(Breadcrumb(hike_id=hike_id, lat=lat, lng=lng, recorded_at=recorded_at))
        updated = self.session.query(Hike).filter(
            Hike.id == hike_id,
            or_(Hike.last_location_at.is_(None), Hike.last_location_at < recorded_at),
        ).update(
            {"last_lat": lat, "last_lng": lng, "last_location_at": recorded_at},
            synchronize_session=False,
        )
        self._commit()
        return updated == 1

    def end_hike(self, hike_id: str, ended_at: Optional[datetime] = None) -> Optional[Hike]:
        """Complete an active hike.

        An overdue hike stays overdue; only its ended_at is recorded so the
        return is on file. Ending a completed hike changes nothing.
        """
        ended_at = ended_at or utcnow()
        completed = self.session.query(Hike).filter(
            Hike.id == hike_id, Hike.status == STATUS_ACTIVE,
        ).update({"status": STATUS_COMPLETED, "ended_at": ended_at}, synchronize_session=False)
        if not completed:
            self.session.query(Hike).filter(
                Hike.id == hike_id, Hike.status == STATUS_OVERDUE, Hike.ended_at.is_(None),
            ).update({"ended_at": ended_at}, synchronize_session=False)
        self._commit()
        hike = self.session.get(Hike, hike_id)
        if hike is not None:
            logger.info("Hike %s ended with status %s", hike_id, hike.status)
        return hike

    def list_breadcrumbs(self, hike_id: str) -> List[Breadcrumb]:
        return (self.session.query(Breadcrumb)
                .filter(Breadcrumb.hike_id == hike_id)
                .order_by(Breadcrumb.id)
                .all())

    # ------------------------------
    # Sweep-side reads and writes
    # ------------------------------
    def find_overdue(self, threshold: datetime) -> List[Hike]:
        return (self.session.query(Hike)
                .filter(Hike.status == STATUS_ACTIVE,
                        Hike.alert_sent.is_(False),
                        Hike.expected_return_at < threshold)
                .order_by(Hike.expected_return_at)
                .all())

    def mark_alerted(self, hike_id: str) -> bool:
        """Latch alert_sent and flag the hike overdue, if it is still eligible.

        Returns False when the row no longer matches status=active and
        alert_sent=false (another sweep won, or the hiker completed).
        """
        try:
            updated = self.session.query(Hike).filter(
                Hike.id == hike_id,
                Hike.status == STATUS_ACTIVE,
                Hike.alert_sent.is_(False),
            ).update({"alert_sent": True, "status": STATUS_OVERDUE}, synchronize_session=False)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        return updated == 1
