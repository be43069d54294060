"""
Durable key/value storage for device state.

Values are JSON documents kept in a single file. Writes go to a temporary
file that replaces the original, so a crash leaves either the old or the new
contents. Read and write errors are logged and never raised.
"""

import json
import logging
import os
import tempfile
import threading

logger = logging.getLogger(__name__)


class StorageKeys:
    IS_LOGGED_IN = "isLoggedIn"
    BREADCRUMBS = "breadcrumbs"
    CHECK_IN = "checkIn"


class LocalStore:
    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def _read_all(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write_all(self, data: dict):
        directory = os.path.dirname(os.path.abspath(self.path))
        fd, tmp = tempfile.mkstemp(dir=directory, prefix=".trailsafe-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def set_item(self, key: str, value) -> bool:
        try:
            with self._lock:
                data = self._read_all()
                data[key] = value
                self._write_all(data)
            return True
        except (OSError, ValueError, TypeError) as e:
            logger.error("Error saving %s: %s", key, e)
            return False

    def get_item(self, key: str):
        try:
            with self._lock:
                return self._read_all().get(key)
        except (OSError, ValueError) as e:
            logger.error("Error reading %s: %s", key, e)
            return None

    def remove_item(self, key: str) -> bool:
        try:
            with self._lock:
                data = self._read_all()
                if key in data:
                    del data[key]
                    self._write_all(data)
            return True
        except (OSError, ValueError) as e:
            logger.error("Error removing %s: %s", key, e)
            return False

    def clear_all(self) -> bool:
        try:
            with self._lock:
                self._write_all({})
            return True
        except OSError as e:
            logger.error("Error clearing storage: %s", e)
            return False
