"""
TrailSafe - backend/main.py
Flask backend for the hike-safety service.
Features:
 - User auth (register/login) with JWT
 - Hike lifecycle: start, breadcrumb upload, end
 - Append-only breadcrumb log per hike
 - Overdue sweep: HTTP trigger plus optional background scheduler
 - SendGrid/Twilio notifications to the emergency contact
 - Simple in-memory rate-limiter on auth endpoints
"""

import atexit
import logging
import time
from collections import defaultdict, deque
from functools import wraps

from flask import Blueprint, Flask, current_app, jsonify, request
from flask_bcrypt import Bcrypt
from flask_cors import CORS
from flask_jwt_extended import (
    JWTManager, create_access_token, get_jwt_identity, jwt_required
)
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from backend.config import load_config
from backend.errors import ConfigurationError, SweepQueryError
from backend.hike_store import HikeStore
from backend.models import User, db, parse_timestamp, utcnow
from backend.notifications import build_sender
from backend.scheduler import SweepScheduler
from backend.sweep import OverdueSweep

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

bcrypt = Bcrypt()
jwt = JWTManager()
api = Blueprint("api", __name__)

SENDER_KEY = "trailsafe.sender"
SCHEDULER_KEY = "trailsafe.scheduler"

# ------------------------------
# Simple in-memory rate limiter
# (process-local; for prod use Redis + a real limiter)
# ------------------------------
_rate_limit_store = defaultdict(lambda: deque())


def rate_limited(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        limit = current_app.config.get("RATE_LIMIT_PER_MIN", 60)
        ip = request.headers.get("X-Forwarded-For", request.remote_addr)
        now = time.time()
        dq = _rate_limit_store[ip]
        while dq and now - dq[0] > 60:
            dq.popleft()
        if len(dq) >= limit:
            return jsonify({"error": "Too many requests"}), 429
        dq.append(now)
        return func(*args, **kwargs)
    return wrapper


# ------------------------------
# Helpers
# ------------------------------
def _store() -> HikeStore:
    return HikeStore(db.session)


def _sender():
    """The injected sender, or one built from config on first use."""
    sender = current_app.extensions.get(SENDER_KEY)
    if sender is None:
        sender = build_sender(current_app.config)
        current_app.extensions[SENDER_KEY] = sender
    return sender


def run_sweep():
    """Run one overdue sweep in the current app context."""
    sweep = OverdueSweep(_store(), _sender(), grace_minutes=current_app.config["ALERT_GRACE_MINUTES"])
    return sweep.run()


def _coordinate(data, key, bound):
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    if not -bound <= value <= bound:
        raise ValueError(f"{key} out of range")
    return float(value)


# ------------------------------
# Routes - Auth
# ------------------------------
@api.route("/auth/register", methods=["POST"])
@rate_limited
def register():
    data = request.get_json(silent=True) or {}
    for r in ("email", "password", "name"):
        if not data.get(r):
            return jsonify({"error": f"Missing required field: {r}"}), 400
    if User.query.filter_by(email=data["email"]).first():
        return jsonify({"error": "User already exists"}), 409
    pw_hash = bcrypt.generate_password_hash(data["password"]).decode("utf-8")
    user = User(email=data["email"], password_hash=pw_hash, name=data["name"])
    try:
        db.session.add(user)
        db.session.commit()
    except SQLAlchemyError as e:
        logger.exception("User create error: %s", e)
        db.session.rollback()
        return jsonify({"error": "Failed to create user"}), 500
    token = create_access_token(identity=user.id)
    return jsonify({"message": "User created", "user": {"id": user.id, "email": user.email, "name": user.name}, "access_token": token}), 201


@api.route("/auth/login", methods=["POST"])
@rate_limited
def login():
    data = request.get_json(silent=True) or {}
    if "email" not in data or "password" not in data:
        return jsonify({"error": "Email and password required"}), 400
    user = User.query.filter_by(email=data["email"]).first()
    if not user or not bcrypt.check_password_hash(user.password_hash, data["password"]):
        return jsonify({"error": "Invalid credentials"}), 401
    token = create_access_token(identity=user.id)
    return jsonify({"message": "Login successful", "user": {"id": user.id, "email": user.email, "name": user.name}, "access_token": token}), 200


# ------------------------------
# Routes - Hikes
# ------------------------------
@api.route("/hikes", methods=["POST"])
@jwt_required()
def start_hike():
    uid = get_jwt_identity()
    data = request.get_json(silent=True) or {}
    for r in ("trail_id", "emergency_contact", "expected_return_at"):
        if not data.get(r):
            return jsonify({"error": f"Missing required field: {r}"}), 400
    try:
        expected = parse_timestamp(data["expected_return_at"])
        started = parse_timestamp(data["started_at"]) if data.get("started_at") else utcnow()
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    if expected <= started:
        return jsonify({"error": "expected_return_at must be after the hike start"}), 400
    try:
        hike = _store().create_hike(uid, str(data["trail_id"]), str(data["emergency_contact"]).strip(), expected, started)
    except SQLAlchemyError as e:
        logger.exception("Hike create error: %s", e)
        db.session.rollback()
        return jsonify({"error": "Failed to start hike"}), 500
    return jsonify({"message": "Hike started", "hike": hike.to_dict()}), 201


@api.route("/hikes/<hike_id>", methods=["GET"])
@jwt_required()
def get_hike(hike_id):
    hike = _store().get_hike(hike_id, user_id=get_jwt_identity())
    if not hike:
        return jsonify({"error": "Hike not found"}), 404
    return jsonify({"hike": hike.to_dict()}), 200


@api.route("/hikes/<hike_id>/location", methods=["POST"])
@jwt_required()
def record_location(hike_id):
    store = _store()
    if not store.get_hike(hike_id, user_id=get_jwt_identity()):
        return jsonify({"error": "Hike not found"}), 404
    data = request.get_json(silent=True) or {}
    try:
        lat = _coordinate(data, "lat", 90)
        lng = _coordinate(data, "lng", 180)
        stamp = data.get("recorded_at", data.get("ts"))
        recorded_at = parse_timestamp(stamp) if stamp is not None else utcnow()
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    try:
        updated = store.record_point(hike_id, lat, lng, recorded_at)
    except SQLAlchemyError as e:
        logger.exception("Breadcrumb save error for hike %s: %s", hike_id, e)
        db.session.rollback()
        return jsonify({"error": "Unable to save location"}), 500
    return jsonify({"message": "Location saved", "updated": updated}), 200


@api.route("/hikes/<hike_id>/breadcrumbs", methods=["GET"])
@jwt_required()
def list_breadcrumbs(hike_id):
    store = _store()
    if not store.get_hike(hike_id, user_id=get_jwt_identity()):
        return jsonify({"error": "Hike not found"}), 404
    return jsonify({"breadcrumbs": [b.to_dict() for b in store.list_breadcrumbs(hike_id)]}), 200


@api.route("/hikes/<hike_id>/end", methods=["POST"])
@jwt_required()
def end_hike(hike_id):
    store = _store()
    if not store.get_hike(hike_id, user_id=get_jwt_identity()):
        return jsonify({"error": "Hike not found"}), 404
    try:
        hike = store.end_hike(hike_id)
    except SQLAlchemyError as e:
        logger.exception("Hike end error for %s: %s", hike_id, e)
        db.session.rollback()
        return jsonify({"error": "Unable to end hike"}), 500
    return jsonify({"message": "Hike ended", "hike": hike.to_dict()}), 200


# ------------------------------
# Routes - Overdue sweep trigger
# ------------------------------
@api.route("/alerts/sweep", methods=["POST"])
def sweep_overdue():
    token = current_app.config.get("SWEEP_TOKEN")
    if token and request.headers.get("X-Sweep-Token") != token:
        return jsonify({"error": "Invalid sweep token"}), 401
    try:
        result = run_sweep()
    except (ConfigurationError, SweepQueryError) as e:
        logger.error("Overdue sweep aborted: %s", e)
        return jsonify({"error": str(e)}), 500
    return jsonify(result.to_dict()), 200


# --- Health check ---
@api.route("/health")
def health_check():
    try:
        db.session.execute(text("SELECT 1"))
        return jsonify({"status": "healthy", "timestamp": utcnow().isoformat(), "database": "connected"}), 200
    except SQLAlchemyError as e:
        logger.exception("DB health check failed: %s", e)
        return jsonify({"status": "unhealthy", "timestamp": utcnow().isoformat(), "database": "disconnected"}), 500


# ------------------------------
# Error handlers
# ------------------------------
@jwt.unauthorized_loader
def unauthorized_callback(err):
    return jsonify({"error": "Missing or invalid token"}), 401


@jwt.invalid_token_loader
def invalid_token_callback(err):
    return jsonify({"error": "Invalid token"}), 401


@jwt.expired_token_loader
def expired_token_callback(header, payload):
    return jsonify({"error": "Token expired"}), 401


def method_not_allowed(err):
    return jsonify({"error": "Method not allowed"}), 405


def not_found(err):
    return jsonify({"error": "Not found"}), 404


# ------------------------------
# App factory
# ------------------------------
def init_db(app):
    with app.app_context():
        db.create_all()


def create_app(config_overrides=None, sender=None):
    """Build the Flask app.

    `sender` replaces the SendGrid/Twilio notifier built from config; tests
    pass a fake here.
    """
    app = Flask(__name__)
    app.config.update(load_config())
    if config_overrides:
        app.config.update(config_overrides)

    db.init_app(app)
    bcrypt.init_app(app)
    jwt.init_app(app)
    CORS(app)
    app.register_blueprint(api)
    app.register_error_handler(405, method_not_allowed)
    app.register_error_handler(404, not_found)

    if sender is not None:
        app.extensions[SENDER_KEY] = sender

    init_db(app)

    if app.config.get("SWEEP_SCHEDULER_ENABLED"):
        scheduler = SweepScheduler(app, run_sweep, app.config["SWEEP_INTERVAL_SECONDS"])
        app.extensions[SCHEDULER_KEY] = scheduler
        scheduler.start()
        atexit.register(scheduler.stop)

    return app
