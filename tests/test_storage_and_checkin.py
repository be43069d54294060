import pytest

from client.checkin import CheckInStore, format_remaining
from client.clock import DemoClock
from client.errors import InvalidCheckIn
from client.models import CheckInData
from client.storage import LocalStore, StorageKeys
from tests.conftest import ManualClock

HOUR = 60 * 60 * 1000


@pytest.fixture
def local_store(tmp_path):
    return LocalStore(str(tmp_path / "device.json"))


def test_local_store_roundtrip_survives_restart(tmp_path):
    path = str(tmp_path / "device.json")
    store = LocalStore(path)
    assert store.get_item(StorageKeys.CHECK_IN) is None
    store.set_item(StorageKeys.IS_LOGGED_IN, True)
    store.set_item(StorageKeys.BREADCRUMBS, [{"lat": 1.0, "lng": 2.0, "ts": 3}])

    reopened = LocalStore(path)
    assert reopened.get_item(StorageKeys.IS_LOGGED_IN) is True
    assert reopened.get_item(StorageKeys.BREADCRUMBS) == [{"lat": 1.0, "lng": 2.0, "ts": 3}]

    reopened.remove_item(StorageKeys.IS_LOGGED_IN)
    assert reopened.get_item(StorageKeys.IS_LOGGED_IN) is None
    reopened.clear_all()
    assert reopened.get_item(StorageKeys.BREADCRUMBS) is None


def test_local_store_swallows_corrupt_file(tmp_path):
    path = tmp_path / "device.json"
    path.write_text("{not json")
    assert LocalStore(str(path)).get_item(StorageKeys.CHECK_IN) is None


def test_checkin_create_validates():
    with pytest.raises(InvalidCheckIn):
        CheckInData.create("", "friend@example.com", "trail-1", start_time=0)
    with pytest.raises(InvalidCheckIn):
        CheckInData.create("Sam", "friend@example.com", "trail-1", start_time=0, expected_hours=0)
    data = CheckInData.create(" Sam ", " friend@example.com ", "trail-1", start_time=1000, expected_hours=2)
    assert data.contact_name == "Sam"
    assert data.contact_info == "friend@example.com"
    assert data.expected_return_time == 1000 + 2 * HOUR


def test_checkin_store_is_single_slot(local_store):
    checkins = CheckInStore(local_store)
    assert checkins.load() is None

    first = CheckInData.create("Sam", "sam@example.com", "trail-1", start_time=0)
    second = CheckInData.create("Alex", "+15551234567", "trail-2", start_time=0)
    checkins.save(first)
    checkins.save(second)
    assert checkins.load() == second

    checkins.clear()
    assert checkins.load() is None


def test_checkin_status(local_store):
    checkins = CheckInStore(local_store)
    assert checkins.status(0).is_active is False

    checkins.save(CheckInData.create("Sam", "sam@example.com", "trail-1", start_time=0, expected_hours=2))
    status = checkins.status(HOUR - 5 * 60 * 1000)
    assert status.is_active and not status.is_overdue
    assert status.remaining_formatted == "1h 5m remaining"

    status = checkins.status(2 * HOUR + 12 * 60 * 1000)
    assert status.is_overdue
    assert status.remaining_formatted == "12m overdue"


def test_simulate_overdue(local_store):
    checkins = CheckInStore(local_store)
    assert checkins.simulate_overdue(now_ms=HOUR) is None
    checkins.save(CheckInData.create("Sam", "sam@example.com", "trail-1", start_time=0, expected_hours=5))
    checkins.simulate_overdue(now_ms=HOUR)
    assert checkins.status(HOUR).is_overdue


def test_format_remaining():
    assert format_remaining(0) == "0m overdue"
    assert format_remaining(3 * HOUR) == "3h 0m remaining"


def test_demo_clock_fast_forward_makes_checkin_overdue(local_store):
    clock = DemoClock(ManualClock(now_ms=0))
    checkins = CheckInStore(local_store)
    checkins.save(CheckInData.create("Sam", "sam@example.com", "trail-1", start_time=0, expected_hours=2))
    assert not checkins.status(clock.now_ms()).is_overdue

    clock.fast_forward(150)
    status = checkins.status(clock.now_ms())
    assert status.is_overdue
    assert status.remaining_formatted == "30m overdue"

    clock.reset()
    assert clock.now_ms() == 0
