# buddyband/apps/dashboard/session.py
from dataclasses import dataclass
import json
import logging

from .serializers import TeacherSessionSerializer

logger = logging.getLogger(__name__)

# Key under which the login flow stores the teacher identity in the Django session.
SESSION_TEACHER_KEY = 'teacher'


@dataclass(frozen=True)
class TeacherSession:
    teacher_id: str
    name: str = ''


class SessionContext:
    """
    Resolves the supervising teacher for a dashboard connection.

    The identity is read once, when the dashboard is entered, and never
    changes afterwards. A missing or malformed identity resolves to None,
    which callers treat as "subscribe to nothing".
    """

    @staticmethod
    def from_mapping(data):
        if not data:
            return None
        serializer = TeacherSessionSerializer(data=data)
        if not serializer.is_valid():
            logger.warning(f"Discarding malformed teacher session: {serializer.errors}")
            return None
        return TeacherSession(
            teacher_id=serializer.validated_data['teacherID'],
            name=serializer.validated_data.get('name', ''),
        )

    @classmethod
    def from_json(cls, raw):
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Discarding teacher session that is not valid JSON.")
            return None
        return cls.from_mapping(data)

    @classmethod
    def from_scope(cls, scope):
        session = scope.get('session')
        if session is None:
            return None
        data = session.get(SESSION_TEACHER_KEY)
        if isinstance(data, str):
            return cls.from_json(data)
        return cls.from_mapping(data)
