"""
TrailSafe - backend/models.py
SQLAlchemy models for the Hike Store: users, hikes, and the append-only
breadcrumb log.
"""

import uuid
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Hike status values
STATUS_ACTIVE = "active"
STATUS_COMPLETED = "completed"
STATUS_OVERDUE = "overdue"
HIKE_STATUSES = (STATUS_ACTIVE, STATUS_COMPLETED, STATUS_OVERDUE)


def utcnow() -> datetime:
    """Naive UTC now; every timestamp column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_timestamp(value) -> datetime:
    """Accept an ISO 8601 string or epoch milliseconds and return naive UTC.

    Raises ValueError for anything else.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, timezone.utc).replace(tzinfo=None)
        except (OverflowError, OSError) as e:
            raise ValueError(f"Timestamp out of range: {value!r}") from e
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed
    raise ValueError(f"Invalid timestamp: {value!r}")


def isoformat(value):
    return value.isoformat() + "Z" if value else None


# ------------------------------
# Models
# ------------------------------
class User(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    hikes = db.relationship("Hike", backref="user", lazy=True)


class Hike(db.Model):
    __tablename__ = "hikes"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(db.String(36), db.ForeignKey("user.id"), nullable=False)
    trail_id = db.Column(db.String(200), nullable=False)
    emergency_contact = db.Column(db.String(200), nullable=False)  # email or phone
    expected_return_at = db.Column(db.DateTime, nullable=False)
    started_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    ended_at = db.Column(db.DateTime)
    last_lat = db.Column(db.Float)
    last_lng = db.Column(db.Float)
    last_location_at = db.Column(db.DateTime)
    status = db.Column(db.String(20), nullable=False, default=STATUS_ACTIVE)  # active, completed, overdue
    alert_sent = db.Column(db.Boolean, nullable=False, default=False)

    breadcrumbs = db.relationship("Breadcrumb", backref="hike", lazy=True,
                                  order_by="Breadcrumb.id")

    __table_args__ = (
        db.Index("idx_hikes_sweep", "status", "alert_sent", "expected_return_at"),
    )

    def has_location(self) -> bool:
        return self.last_lat is not None and self.last_lng is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "trail_id": self.trail_id,
            "emergency_contact": self.emergency_contact,
            "expected_return_at": isoformat(self.expected_return_at),
            "started_at": isoformat(self.started_at),
            "ended_at": isoformat(self.ended_at),
            "last_lat": self.last_lat,
            "last_lng": self.last_lng,
            "last_location_at": isoformat(self.last_location_at),
            "status": self.status,
            "alert_sent": self.alert_sent,
        }


class Breadcrumb(db.Model):
    __tablename__ = "breadcrumbs"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    hike_id = db.Column(db.String(36), db.ForeignKey("hikes.id"), nullable=False, index=True)
    lat = db.Column(db.Float, nullable=False)
    lng = db.Column(db.Float, nullable=False)
    recorded_at = db.Column(db.DateTime, nullable=False)

    def to_dict(self) -> dict:
        return {"lat": self.lat, "lng": self.lng, "recorded_at": isoformat(self.recorded_at)}
