from datetime import timedelta
from urllib.parse import urlsplit

from backend.sweep import EMAILED, OverdueSweep
from backend.models import utcnow
from client.api import HikeApi
from client.checkin import CheckInStore
from client.clock import SystemClock
from client.location import SimulatedLocationProvider
from client.models import CheckInData
from client.session import HikeSession
from client.storage import LocalStore
from client.tracker import BreadcrumbTracker
from tests.conftest import register


class FlaskHttp:
    """Routes HikeApi requests into the Flask test client."""

    class Response:
        def __init__(self, resp):
            self.status_code = resp.status_code
            self._resp = resp

        def json(self):
            body = self._resp.get_json(silent=True)
            if body is None:
                raise ValueError("no JSON body")
            return body

    def __init__(self, client):
        self.client = client
        self.headers = {}

    def request(self, method, url, json=None, headers=None, timeout=None):
        path = urlsplit(url).path
        return self.Response(self.client.open(path, method=method, json=json, headers=headers))


def test_device_hike_is_alerted_then_ended(client, store, sender, tmp_path):
    token = register(client)
    api = HikeApi("http://trailsafe.test", token=token, session=FlaskHttp(client))
    device = LocalStore(str(tmp_path / "device.json"))
    clock = SystemClock()

    checkins = CheckInStore(device)
    checkins.save(CheckInData.create("Sam", "sam@example.com", "rainier-1", start_time=clock.now_ms(), expected_hours=1))
    tracker = BreadcrumbTracker(device, SimulatedLocationProvider.around(46.85, -121.76), clock=clock)
    session = HikeSession(tracker, checkins, api, clock=clock)

    hike_id = session.start_hike("rainier-1")
    hike = store.get_hike(hike_id)
    assert (hike.last_lat, hike.last_lng) == (46.85, -121.76)

    sweep = OverdueSweep(store, sender, grace_minutes=10)
    assert sweep.run(now=utcnow()).processed == 0
    result = sweep.run(now=utcnow() + timedelta(hours=2))
    assert result.results == [{"id": hike_id, "status": EMAILED}]
    assert sender.sent[0][0] == "sam@example.com"

    assert session.end_hike() == "overdue"
