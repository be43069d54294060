from dataclasses import asdict, dataclass

from client.errors import InvalidCheckIn


@dataclass(frozen=True)
class BreadcrumbPoint:
    lat: float
    lng: float
    ts: int  # epoch millis

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "BreadcrumbPoint":
        return cls(lat=float(data["lat"]), lng=float(data["lng"]), ts=int(data["ts"]))

    def same_place(self, other: "BreadcrumbPoint") -> bool:
        return self.lat == other.lat and self.lng == other.lng


@dataclass(frozen=True)
class CheckInData:
    contact_name: str
    contact_info: str  # phone or email
    expected_return_time: int  # epoch millis
    trail_id: str
    start_time: int  # epoch millis

    @classmethod
    def create(cls, contact_name: str, contact_info: str, trail_id: str,
               start_time: int, expected_hours: float = 2) -> "CheckInData":
        """Build a check-in from the form inputs.

        Raises InvalidCheckIn for blank contact fields or a deadline that is
        not after the start time.
        """
        contact_name = (contact_name or "").strip()
        contact_info = (contact_info or "").strip()
        if not contact_name or not contact_info:
            raise InvalidCheckIn("Please fill in all fields")
        expected = start_time + int(expected_hours * 60 * 60 * 1000)
        if expected <= start_time:
            raise InvalidCheckIn("Expected return time must be after the start time")
        return cls(contact_name, contact_info, expected, trail_id, start_time)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "CheckInData":
        return cls(
            contact_name=data["contact_name"],
            contact_info=data["contact_info"],
            expected_return_time=int(data["expected_return_time"]),
            trail_id=data["trail_id"],
            start_time=int(data["start_time"]),
        )
