# buddyband/apps/dashboard/derived.py
# Secondary, read-only views computed from the scoped snapshots.
from collections.abc import Sequence
from dataclasses import dataclass
from numbers import Real
from typing import Optional, Tuple

from .records import Alert, Student


class StudentIndex(Sequence):
    """
    The students of one snapshot in snapshot order, plus an id lookup.
    Build it once per snapshot; lookups are then O(1).
    """

    def __init__(self, students=()):
        self._students = tuple(students)
        self._by_id = {}
        for student in self._students:
            # First occurrence wins so lookups agree with snapshot order.
            self._by_id.setdefault(student.id, student)

    def __getitem__(self, position):
        return self._students[position]

    def __len__(self):
        return len(self._students)

    def __eq__(self, other):
        if isinstance(other, StudentIndex):
            return self._students == other._students
        return NotImplemented

    def __repr__(self):
        return f"StudentIndex({list(self._students)!r})"

    def get(self, student_id):
        if student_id is None:
            return None
        return self._by_id.get(str(student_id))


def student_by_id(students, student_id):
    if not isinstance(students, StudentIndex):
        students = StudentIndex(students)
    return students.get(student_id)


def attention_required(students, out_of_range=None):
    """
    Students needing the teacher's attention: SOS raised, or flagged by the
    injected out_of_range predicate. Input order is kept.
    """
    flagged = []
    for student in students:
        if student.sos_active or (out_of_range is not None and out_of_range(student)):
            flagged.append(student)
    return flagged


def _timestamp_rank(timestamp):
    # Numbers and strings are never compared with each other; anything else sorts last.
    if isinstance(timestamp, Real) and not isinstance(timestamp, bool):
        return (2, timestamp)
    if isinstance(timestamp, str):
        return (1, timestamp)
    return (0, 0)


def alert_feed(alerts):
    """Newest first by timestamp; equal timestamps fall back to alert id, ascending."""
    by_id = sorted(alerts, key=lambda alert: alert.id)
    return sorted(by_id, key=lambda alert: _timestamp_rank(alert.timestamp), reverse=True)


@dataclass(frozen=True)
class FeedEntry:
    alert: Alert
    student: Optional[Student] = None

    @property
    def student_name(self):
        return self.student.name if self.student is not None else None


def enrich_feed(feed, index):
    return [FeedEntry(alert=alert, student=index.get(alert.student_id)) for alert in feed]


@dataclass(frozen=True)
class MapMarker:
    student_id: str
    name: str
    grade: str
    position: Tuple[float, float]
    kind: str
    battery: Optional[int] = None


def map_markers(students):
    """Markers for students with a fix; unlocated students are left off the map."""
    markers = []
    for student in students:
        if not student.has_location:
            continue
        markers.append(MapMarker(
            student_id=student.id,
            name=student.name,
            grade=student.grade,
            position=student.location.as_pair(),
            kind='SOS' if student.sos_active else 'OK',
            battery=student.battery,
        ))
    return markers


@dataclass(frozen=True)
class DerivedViews:
    students: StudentIndex
    attention: Tuple[Student, ...]
    feed: Tuple[FeedEntry, ...]
    markers: Tuple[MapMarker, ...]

    @classmethod
    def build(cls, students, alerts, out_of_range=None):
        index = students if isinstance(students, StudentIndex) else StudentIndex(students)
        return cls(
            students=index,
            attention=tuple(attention_required(index, out_of_range)),
            feed=tuple(enrich_feed(alert_feed(alerts), index)),
            markers=tuple(map_markers(index)),
        )

    @classmethod
    def empty(cls):
        return cls(students=StudentIndex(), attention=(), feed=(), markers=())
