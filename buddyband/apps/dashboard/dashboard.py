# buddyband/apps/dashboard/dashboard.py
import asyncio
from dataclasses import dataclass, field
from typing import Mapping, Optional
import logging

from .actuation import ActuationGateway
from .conf import dashboard_setting
from .derived import DerivedViews, StudentIndex
from .focus import FocusController, FocusPoint
from .records import parse_alerts, parse_students
from .scope import scope_filter
from .session import TeacherSession
from .sync import ErrorEvent, SnapshotEvent

logger = logging.getLogger(__name__)

STUDENTS = 'students'
ALERTS = 'alerts'
CLOSE_TIMEOUT_SECONDS = 5


@dataclass(frozen=True)
class DashboardState:
    teacher: Optional[TeacherSession]
    views: DerivedViews
    focus: FocusPoint
    errors: Mapping[str, str] = field(default_factory=dict)

    @property
    def students(self):
        return self.views.students

    @property
    def attention(self):
        return self.views.attention

    @property
    def feed(self):
        return self.views.feed

    @property
    def markers(self):
        return self.views.markers


class DashboardSession:
    """
    Live dashboard for one supervisor.

    Owns the students and alerts subscriptions, rebuilds the derived views on
    every snapshot, and calls ``on_update(state)`` (a coroutine function)
    whenever the published state changes. Without a teacher nothing is
    subscribed and the state stays empty.
    """

    def __init__(self, teacher, sync, out_of_range=None, on_update=None, focus=None):
        self.teacher = teacher
        self.out_of_range = out_of_range
        self.on_update = on_update
        self.focus = focus or FocusController()
        self.gateway = ActuationGateway(sync)
        self._sync = sync
        self._paths = {
            STUDENTS: dashboard_setting('STUDENTS_PATH'),
            ALERTS: dashboard_setting('ALERTS_PATH'),
        }
        self._subscriptions = {}
        self._tasks = []
        self._snapshots = {STUDENTS: None, ALERTS: None}
        self._errors = {}
        self._views = DerivedViews.empty()
        self._closed = False

    @property
    def active(self):
        return bool(self._tasks) and not self._closed

    def state(self):
        return DashboardState(
            teacher=self.teacher,
            views=self._views,
            focus=self.focus.state,
            errors=dict(self._errors),
        )

    async def start(self):
        if self.teacher is None:
            logger.info("Dashboard opened without a teacher session; nothing to subscribe to.")
            return
        if self._tasks or self._closed:
            return
        for kind, path in self._paths.items():
            subscription = self._sync.subscribe(path)
            self._subscriptions[kind] = subscription
            self._tasks.append(asyncio.ensure_future(self._pump(kind, subscription)))
        logger.info(f"Dashboard started for teacher {self.teacher.teacher_id}")

    async def resubscribe(self):
        """Ask every failed subscription to listen again. Returns the kinds retried."""
        retried = []
        for kind, subscription in self._subscriptions.items():
            if subscription.error is not None:
                await subscription.reopen()
                retried.append(kind)
        return retried

    async def close(self):
        if self._closed:
            return
        self._closed = True
        for subscription in self._subscriptions.values():
            subscription.close()
        tasks, self._tasks = self._tasks, []
        if tasks:
            # Closed subscriptions end their pumps; anything still stuck is cancelled.
            _, pending = await asyncio.wait(tasks, timeout=CLOSE_TIMEOUT_SECONDS)
            for task in pending:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Dashboard session closed")

    def select_alert(self, student_id):
        return self.focus.on_alert_selected(student_id, self._views.students)

    def toggle_buzzer(self, student_id, current_value=None):
        """
        Forward a buzzer toggle. When the caller does not say what it saw,
        the buzzer state of the latest snapshot is used.
        """
        if current_value is None:
            student = self._views.students.get(student_id)
            current_value = student.buzzer_on if student is not None else False
        return self.gateway.toggle_buzzer(student_id, current_value)

    async def _pump(self, kind, subscription):
        async for event in subscription:
            if isinstance(event, SnapshotEvent):
                previous = self._snapshots[kind]
                self._snapshots[kind] = event.records
                try:
                    self._recompute(kind)
                except Exception as e:
                    # The last good views stay published; the next snapshot gets a fresh try.
                    self._snapshots[kind] = previous
                    logger.error(f"Could not process {kind} snapshot for teacher {self.teacher.teacher_id}: {e}", exc_info=True)
                    self._errors[kind] = f"Could not process snapshot: {e}"
                else:
                    self._errors.pop(kind, None)
            elif isinstance(event, ErrorEvent):
                # Stale-but-available: keep the last good snapshot on screen.
                logger.warning(f"Subscription error on {kind} for teacher {self.teacher.teacher_id}: {event.error}")
                self._errors[kind] = str(event.error)
            await self._publish()

    def _recompute(self, kind):
        teacher_id = self.teacher.teacher_id
        if kind == STUDENTS:
            students = StudentIndex(parse_students(scope_filter(self._snapshots[STUDENTS], teacher_id)))
        else:
            students = self._views.students
        alerts = parse_alerts(scope_filter(self._snapshots[ALERTS], teacher_id))
        self._views = DerivedViews.build(students, alerts, self.out_of_range)
        if kind == STUDENTS:
            self.focus.on_snapshot_arrived(students)

    async def _publish(self):
        if self.on_update is None or self._closed:
            return
        try:
            await self.on_update(self.state())
        except Exception as e:
            logger.error(f"Failed to publish dashboard state: {e}", exc_info=True)
