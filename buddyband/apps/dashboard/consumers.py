import asyncio
import json
import logging

from channels.generic.websocket import AsyncWebsocketConsumer

from .dashboard import DashboardSession
from .firebase_service import default_push_source
from .geolocation_utils import configured_out_of_range
from .serializers import DashboardStateSerializer
from .session import SessionContext
from .sync import collection_sync_for

logger = logging.getLogger(__name__)


class DashboardConsumer(AsyncWebsocketConsumer):
    """
    Streams one teacher's live dashboard to the browser.

    Client messages are JSON objects with an 'action':
      toggle_buzzer  {student_id, current?}
      select_alert   {student_id}
      resubscribe    {}
    """

    async def connect(self):
        self.teacher = SessionContext.from_scope(self.scope)
        sync = collection_sync_for(self.teacher, default_push_source())
        self.dashboard = DashboardSession(
            self.teacher,
            sync,
            out_of_range=configured_out_of_range(),
            on_update=self.send_state,
        )
        self.pending_commands = set()
        await self.accept()
        await self.send_state(self.dashboard.state())
        await self.dashboard.start()

    async def disconnect(self, close_code):
        if hasattr(self, 'dashboard'):
            await self.dashboard.close()
        for task in getattr(self, 'pending_commands', ()):
            task.cancel()

    async def receive(self, text_data=None, bytes_data=None):
        try:
            message = json.loads(text_data or '')
        except ValueError:
            await self.send_error("Messages must be JSON objects.")
            return
        if not isinstance(message, dict):
            await self.send_error("Messages must be JSON objects.")
            return

        action = message.get('action')
        if action == 'toggle_buzzer':
            await self.handle_toggle_buzzer(message)
        elif action == 'select_alert':
            await self.handle_select_alert(message)
        elif action == 'resubscribe':
            retried = await self.dashboard.resubscribe()
            logger.info(f"Resubscribed {retried} for teacher {getattr(self.teacher, 'teacher_id', None)}")
        else:
            await self.send_error(f"Unknown action: {action!r}")

    async def handle_toggle_buzzer(self, message):
        if self.teacher is None:
            await self.send_error("No teacher session.")
            return
        student_id = message.get('student_id')
        current = message.get('current')
        if current is not None and not isinstance(current, bool):
            await self.send_error(f"'current' must be true or false, got {current!r}")
            return
        try:
            command = self.dashboard.toggle_buzzer(student_id, current)
        except ValueError as e:
            await self.send_error(str(e))
            return
        task = asyncio.ensure_future(self.report_actuation(command))
        self.pending_commands.add(task)
        task.add_done_callback(self.pending_commands.discard)

    async def handle_select_alert(self, message):
        if self.dashboard.select_alert(message.get('student_id')):
            await self.send_state(self.dashboard.state())

    async def report_actuation(self, command):
        result = await command
        await self.send(text_data=json.dumps({
            'type': 'buzzer_result',
            'payload': {
                'student_id': result.student_id,
                'requested': result.requested,
                'ok': result.accepted,
                'error': str(result.error) if result.error is not None else None,
            },
        }))

    async def send_state(self, state):
        await self.send(text_data=json.dumps({
            'type': 'dashboard_state',
            'payload': DashboardStateSerializer(state).data,
        }))

    async def send_error(self, message):
        await self.send(text_data=json.dumps({'type': 'error', 'message': message}))
