"""
TrailSafe - backend/config.py
Environment-driven settings, loaded once into Flask's app.config.
"""

import os
from datetime import timedelta

from backend.errors import ConfigurationError

# Settings the overdue sweep cannot run without
NOTIFICATION_REQUIRED = ("SENDGRID_API_KEY", "NOTIFY_FROM_EMAIL")


def _flag(value) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def load_config(environ=None) -> dict:
    env = os.environ if environ is None else environ
    return {
        "SECRET_KEY": env.get("SECRET_KEY", "trailsafe-secret-key"),
        "SQLALCHEMY_DATABASE_URI": env.get("DATABASE_URL", "sqlite:///trailsafe.db"),
        "SQLALCHEMY_TRACK_MODIFICATIONS": False,
        "JWT_SECRET_KEY": env.get("JWT_SECRET_KEY", "trailsafe-jwt-secret-key"),
        "JWT_ACCESS_TOKEN_EXPIRES": timedelta(hours=24),
        # Notification providers
        "SENDGRID_API_KEY": env.get("SENDGRID_API_KEY"),
        "NOTIFY_FROM_EMAIL": env.get("NOTIFY_FROM_EMAIL"),
        "TWILIO_SID": env.get("TWILIO_SID"),
        "TWILIO_TOKEN": env.get("TWILIO_TOKEN"),
        "TWILIO_FROM": env.get("TWILIO_FROM"),
        "NOTIFY_TIMEOUT_SECONDS": float(env.get("NOTIFY_TIMEOUT_SECONDS", "10")),
        # Overdue sweep
        "ALERT_GRACE_MINUTES": float(env.get("ALERT_GRACE_MINUTES", "10")),
        "SWEEP_TOKEN": env.get("SWEEP_TOKEN"),
        "SWEEP_SCHEDULER_ENABLED": _flag(env.get("SWEEP_SCHEDULER_ENABLED", "false")),
        "SWEEP_INTERVAL_SECONDS": float(env.get("SWEEP_INTERVAL_SECONDS", "300")),
        "RATE_LIMIT_PER_MIN": int(env.get("RATE_LIMIT_PER_MIN", "60")),
    }


def require(config, keys=NOTIFICATION_REQUIRED):
    """Raise ConfigurationError naming every key in `keys` that is unset."""
    missing = [k for k in keys if not config.get(k)]
    if missing:
        raise ConfigurationError("Missing environment configuration: " + ", ".join(missing))
