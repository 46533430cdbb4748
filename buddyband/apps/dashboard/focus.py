# buddyband/apps/dashboard/focus.py
from dataclasses import dataclass
from typing import Optional, Tuple
import logging

from .conf import dashboard_setting
from .derived import student_by_id

logger = logging.getLogger(__name__)

# Where the map sits before any student has reported a fix.
FALLBACK_CENTER = (0.0, 0.0)


@dataclass(frozen=True)
class FocusPoint:
    center: Optional[Tuple[float, float]]
    zoom: int

    @property
    def is_unset(self):
        return self.center is None

    @property
    def render_center(self):
        return self.center if self.center is not None else FALLBACK_CENTER


class FocusController:
    """
    Owns the map's center and zoom.

    Two transitions only: the first located student of a snapshot claims the
    unset center, and selecting an alert flies to that alert's student.
    Both return True when the focal point actually moved.
    """

    def __init__(self, default_zoom=None, focus_zoom=None):
        self.default_zoom = default_zoom if default_zoom is not None else dashboard_setting('DEFAULT_ZOOM')
        self.focus_zoom = focus_zoom if focus_zoom is not None else dashboard_setting('FOCUS_ZOOM')
        self._state = FocusPoint(center=None, zoom=self.default_zoom)

    @property
    def state(self):
        return self._state

    def on_snapshot_arrived(self, students):
        if not self._state.is_unset:
            return False
        for student in students:
            if student.has_location:
                return self._move_to(student.location.as_pair(), self.default_zoom)
        return False

    def on_alert_selected(self, student_id, students):
        student = student_by_id(students, student_id)
        if student is None:
            logger.debug(f"Alert selected for unknown student {student_id}; focus unchanged.")
            return False
        if not student.has_location:
            logger.debug(f"Alert selected for student {student_id} with no fix; focus unchanged.")
            return False
        return self._move_to(student.location.as_pair(), self.focus_zoom)

    def _move_to(self, center, zoom):
        target = FocusPoint(center=center, zoom=zoom)
        if target == self._state:
            return False
        self._state = target
        return True
