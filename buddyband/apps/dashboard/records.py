# buddyband/apps/dashboard/records.py
# Read-only views over the raw records pushed by the remote store.
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional
import logging

logger = logging.getLogger(__name__)

# Raw field names as written by the BuddyBand wearables.
STUDENT_FIELDS = ('id', 'teacherID', 'name', 'grade', 'location', 'SosOn', 'BuzzerON', 'Battery')


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float

    def as_pair(self):
        return (self.latitude, self.longitude)


@dataclass(frozen=True)
class Student:
    id: str
    name: str = ''
    grade: str = ''
    teacher_id: Optional[str] = None
    location: Optional[Location] = None
    sos_active: bool = False
    buzzer_on: bool = False
    battery: Optional[int] = None
    extra: Mapping[str, Any] = field(default_factory=dict, hash=False)

    @property
    def has_location(self):
        return self.location is not None

    @classmethod
    def from_record(cls, record):
        """
        Build a Student from a scoped record ({'id': key, **fields}).
        Malformed telemetry is coerced rather than rejected so one bad device
        never blanks the whole table.
        """
        student_id = str(record.get('id'))
        return cls(
            id=student_id,
            name=str(record.get('name') or ''),
            grade=str(record.get('grade') or ''),
            teacher_id=record.get('teacherID'),
            location=parse_location(record.get('location'), student_id),
            sos_active=bool(record.get('SosOn', False)),
            buzzer_on=bool(record.get('BuzzerON', False)),
            battery=parse_battery(record.get('Battery'), student_id),
            extra={k: v for k, v in record.items() if k not in STUDENT_FIELDS},
        )


@dataclass(frozen=True)
class Alert:
    id: str
    student_id: Optional[str] = None
    teacher_id: Optional[str] = None
    type: str = ''
    timestamp: Any = None

    @classmethod
    def from_record(cls, record):
        student_id = record.get('studentID')
        return cls(
            id=str(record.get('id')),
            student_id=str(student_id) if student_id is not None else None,
            teacher_id=record.get('teacherID'),
            type=str(record.get('type') or ''),
            timestamp=record.get('timestamp'),
        )


def parse_location(raw, student_id=None):
    if raw is None:
        return None
    if not isinstance(raw, Mapping):
        logger.warning(f"Ignoring malformed location for student {student_id}: {raw!r}")
        return None
    try:
        latitude = float(raw['latitude'])
        longitude = float(raw['longitude'])
    except (KeyError, TypeError, ValueError):
        logger.warning(f"Ignoring incomplete location for student {student_id}: {raw!r}")
        return None
    if not (-90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0):
        logger.warning(f"Ignoring out-of-bounds location for student {student_id}: ({latitude}, {longitude})")
        return None
    return Location(latitude, longitude)


def parse_battery(raw, student_id=None):
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = int(float(raw))
    except (TypeError, ValueError, OverflowError):
        logger.warning(f"Ignoring unusable battery level for student {student_id}: {raw!r}")
        return None
    return max(0, min(100, value))


def parse_students(records):
    return [Student.from_record(record) for record in records]


def parse_alerts(records):
    return [Alert.from_record(record) for record in records]
