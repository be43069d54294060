"""
HTTP client for the TrailSafe backend hike API.
"""

from datetime import datetime, timezone
from typing import Optional

import requests

from client.errors import HikeApiError
from client.models import BreadcrumbPoint


def iso_from_ms(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000.0, timezone.utc).isoformat().replace("+00:00", "Z")


class HikeApi:
    def __init__(self, base_url: str, token: Optional[str] = None, session=None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.http = session or requests.Session()
        self.http.headers.update({"User-Agent": "TrailSafe/1.0"})

    def _request(self, method: str, path: str, payload=None) -> dict:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            response = self.http.request(method, f"{self.base_url}{path}", json=payload,
                                         headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise HikeApiError(f"{method} {path} failed: {e}") from e
        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.status_code >= 400:
            message = body.get("error") if isinstance(body, dict) else None
            raise HikeApiError(message or f"{method} {path} returned HTTP {response.status_code}",
                               status_code=response.status_code)
        return body

    def login(self, email: str, password: str) -> str:
        body = self._request("POST", "/auth/login", {"email": email, "password": password})
        self.token = body["access_token"]
        return self.token

    def start_hike(self, trail_id: str, emergency_contact: str, expected_return_at: int,
                   started_at: Optional[int] = None) -> str:
        payload = {
            "trail_id": trail_id,
            "emergency_contact": emergency_contact,
            "expected_return_at": iso_from_ms(expected_return_at),
        }
        if started_at is not None:
            payload["started_at"] = iso_from_ms(started_at)
        body = self._request("POST", "/hikes", payload)
        try:
            return body["hike"]["id"]
        except (KeyError, TypeError):
            raise HikeApiError("Failed to start hike: malformed response")

    def record_point(self, hike_id: str, point: BreadcrumbPoint) -> bool:
        body = self._request("POST", f"/hikes/{hike_id}/location",
                             {"lat": point.lat, "lng": point.lng, "recorded_at": iso_from_ms(point.ts)})
        return bool(body.get("updated"))

    def end_hike(self, hike_id: str) -> dict:
        return self._request("POST", f"/hikes/{hike_id}/end").get("hike", {})
