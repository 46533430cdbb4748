# buddyband/apps/dashboard/actuation.py
import asyncio
from dataclasses import dataclass
from typing import Optional
import logging

from .conf import dashboard_setting
from .exceptions import WriteFailure

logger = logging.getLogger(__name__)

BUZZER_FIELD = 'BuzzerON'
# Characters Firebase does not allow in a key, plus the path separator.
FORBIDDEN_KEY_CHARS = set('.$#[]/')


@dataclass(frozen=True)
class ActuationResult:
    student_id: str
    requested: bool
    error: Optional[WriteFailure] = None

    @property
    def accepted(self):
        return self.error is None


class ActuationGateway:
    """
    Sends buzzer commands to the wearables.

    The buzzer column on the dashboard is never flipped here; it changes
    when the store pushes the updated student record back.
    """

    def __init__(self, sync, students_path=None):
        self._sync = sync
        self.students_path = students_path or dashboard_setting('STUDENTS_PATH')

    def record_path(self, student_id):
        if not student_id or not isinstance(student_id, str) or FORBIDDEN_KEY_CHARS & set(student_id):
            raise ValueError(f"Invalid student id: {student_id!r}")
        return f"{self.students_path}/{student_id}"

    def toggle_buzzer(self, student_id, current_value):
        """
        Request the opposite of current_value for the student's buzzer.
        Returns immediately with a task resolving to an ActuationResult.
        """
        path = self.record_path(student_id)
        requested = not bool(current_value)
        return asyncio.ensure_future(self._send(student_id, path, requested))

    async def _send(self, student_id, path, requested):
        try:
            await self._sync.write(path, {BUZZER_FIELD: requested})
        except WriteFailure as failure:
            logger.error(f"Buzzer command for student {student_id} rejected: {failure}")
            return ActuationResult(student_id=student_id, requested=requested, error=failure)
        logger.info(f"Buzzer command for student {student_id} accepted (BuzzerON={requested})")
        return ActuationResult(student_id=student_id, requested=requested)
