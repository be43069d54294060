class ConfigurationError(Exception):
    """Raised when required settings (credentials, from-address) are missing."""


class SweepQueryError(Exception):
    """Raised when the overdue-hike query itself fails."""
