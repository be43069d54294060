import pytest
import requests

from client.api import HikeApi, iso_from_ms
from client.errors import HikeApiError
from client.models import BreadcrumbPoint


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = body

    def json(self):
        if self._body is None:
            raise ValueError("no JSON body")
        return self._body


class FakeHttp:
    def __init__(self, responses=(), error=None):
        self.headers = {}
        self.responses = list(responses)
        self.error = error
        self.calls = []

    def request(self, method, url, json=None, headers=None, timeout=None):
        self.calls.append({"method": method, "url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error:
            raise self.error
        return self.responses.pop(0)


def test_iso_from_ms():
    assert iso_from_ms(0) == "1970-01-01T00:00:00Z"
    assert iso_from_ms(1_500) == "1970-01-01T00:00:01.500000Z"


def test_start_hike_sends_iso_deadline_and_token():
    http = FakeHttp([FakeResponse(201, {"hike": {"id": "abc"}})])
    api = HikeApi("https://api.trailsafe.test/", token="tok", session=http, timeout=3)

    assert api.start_hike("trail-1", "friend@example.com", 3_600_000, started_at=0) == "abc"
    call = http.calls[0]
    assert call["method"] == "POST"
    assert call["url"] == "https://api.trailsafe.test/hikes"
    assert call["headers"] == {"Authorization": "Bearer tok"}
    assert call["timeout"] == 3
    assert call["json"] == {
        "trail_id": "trail-1",
        "emergency_contact": "friend@example.com",
        "expected_return_at": "1970-01-01T01:00:00Z",
        "started_at": "1970-01-01T00:00:00Z",
    }


def test_record_point_and_end_hike():
    http = FakeHttp([FakeResponse(200, {"updated": True}), FakeResponse(200, {"hike": {"status": "completed"}})])
    api = HikeApi("http://localhost:5000", token="tok", session=http)

    assert api.record_point("abc", BreadcrumbPoint(1.0, 2.0, 0)) is True
    assert http.calls[0]["url"] == "http://localhost:5000/hikes/abc/location"
    assert http.calls[0]["json"] == {"lat": 1.0, "lng": 2.0, "recorded_at": "1970-01-01T00:00:00Z"}
    assert api.end_hike("abc") == {"status": "completed"}


def test_login_stores_token():
    http = FakeHttp([FakeResponse(200, {"access_token": "new-token"})])
    api = HikeApi("http://localhost:5000", session=http)
    assert api.login("hiker@example.com", "pw") == "new-token"
    assert api.token == "new-token"
    assert http.calls[0]["headers"] == {}


def test_http_error_carries_server_message():
    http = FakeHttp([FakeResponse(404, {"error": "Hike not found"})])
    api = HikeApi("http://localhost:5000", session=http)
    with pytest.raises(HikeApiError) as excinfo:
        api.end_hike("missing")
    assert str(excinfo.value) == "Hike not found"
    assert excinfo.value.status_code == 404


def test_non_json_error_and_network_failure():
    api = HikeApi("http://localhost:5000", session=FakeHttp([FakeResponse(502)]))
    with pytest.raises(HikeApiError) as excinfo:
        api.record_point("abc", BreadcrumbPoint(1.0, 2.0, 0))
    assert excinfo.value.status_code == 502

    api = HikeApi("http://localhost:5000", session=FakeHttp(error=requests.ConnectionError("offline")))
    with pytest.raises(HikeApiError):
        api.record_point("abc", BreadcrumbPoint(1.0, 2.0, 0))


def test_malformed_start_response():
    api = HikeApi("http://localhost:5000", session=FakeHttp([FakeResponse(201, {"ok": True})]))
    with pytest.raises(HikeApiError):
        api.start_hike("trail-1", "friend@example.com", 1000)
