# buddyband/apps/dashboard/tests/test_consumers.py
import asyncio
from unittest.mock import patch

from channels.testing import WebsocketCommunicator
from django.test import SimpleTestCase, override_settings

from apps.dashboard.consumers import DashboardConsumer

from .fakes import FakePushSource, wait_for

TEACHER = {'teacherID': 't1', 'name': 'Ms. Pierre'}
STUDENTS = {
    'a': {'teacherID': 't1', 'name': 'A', 'grade': '3', 'SosOn': True, 'BuzzerON': False,
          'location': {'latitude': 18.54, 'longitude': -72.34}, 'Battery': 12},
    'b': {'teacherID': 't2', 'name': 'B', 'grade': '3'},
}


def with_session(application, teacher):
    async def app(scope, receive, send):
        session = {'teacher': teacher} if teacher is not None else {}
        return await application({**scope, 'session': session}, receive, send)
    return app


async def receive_until(communicator, message_type, timeout=2):
    while True:
        message = await communicator.receive_json_from(timeout=timeout)
        if message['type'] == message_type:
            return message


@override_settings(BUDDYBAND_DASHBOARD={'OUT_OF_RANGE': 'flag'})
class DashboardConsumerTests(SimpleTestCase):
    async def connect(self, teacher=TEACHER):
        self.source = FakePushSource()
        patcher = patch('apps.dashboard.consumers.default_push_source', return_value=self.source)
        patcher.start()
        self.addCleanup(patcher.stop)
        communicator = WebsocketCommunicator(with_session(DashboardConsumer.as_asgi(), teacher), '/ws/dashboard/')
        connected, _ = await communicator.connect()
        self.assertTrue(connected)
        return communicator

    async def test_streams_scoped_state(self):
        communicator = await self.connect()
        initial = await communicator.receive_json_from()
        self.assertEqual(initial['type'], 'dashboard_state')
        self.assertEqual(initial['payload']['teacher']['teacher_id'], 't1')
        self.assertEqual(initial['payload']['students'], [])
        self.assertFalse(initial['payload']['focus']['initialized'])

        await wait_for(lambda: self.source.is_listening('students'))
        self.source.push('students', STUDENTS)
        message = await receive_until(communicator, 'dashboard_state')
        payload = message['payload']

        self.assertEqual([s['id'] for s in payload['students']], ['a'])
        self.assertEqual(payload['students'][0]['battery'], 12)
        self.assertEqual([s['id'] for s in payload['attention']], ['a'])
        self.assertEqual(payload['markers'][0]['kind'], 'SOS')
        self.assertEqual(payload['focus']['center'], [18.54, -72.34])
        self.assertEqual(payload['focus']['zoom'], 13)
        await communicator.disconnect()
        self.assertFalse(self.source.is_listening('students'))

    async def test_toggle_buzzer_reports_outcome(self):
        communicator = await self.connect()
        await communicator.receive_json_from()
        await wait_for(lambda: self.source.is_listening('students'))
        self.source.push('students', STUDENTS)
        await receive_until(communicator, 'dashboard_state')

        await communicator.send_json_to({'action': 'toggle_buzzer', 'student_id': 'a'})
        result = await receive_until(communicator, 'buzzer_result')
        self.assertEqual(result['payload'], {'student_id': 'a', 'requested': True, 'ok': True, 'error': None})
        self.assertEqual(self.source.updates, [('students/a', {'BuzzerON': True})])
        await communicator.disconnect()

    async def test_rejected_toggle_is_reported(self):
        communicator = await self.connect()
        await communicator.receive_json_from()
        self.source.update_error = PermissionError('permission denied')

        with self.assertLogs('apps.dashboard.actuation', level='ERROR'):
            await communicator.send_json_to({'action': 'toggle_buzzer', 'student_id': 'a', 'current': True})
            result = await receive_until(communicator, 'buzzer_result')
        self.assertFalse(result['payload']['ok'])
        self.assertFalse(result['payload']['requested'])
        self.assertIn('permission denied', result['payload']['error'])
        await communicator.disconnect()

    async def test_select_alert_moves_focus(self):
        communicator = await self.connect()
        await communicator.receive_json_from()
        await wait_for(lambda: self.source.is_listening('students'))
        self.source.push('students', STUDENTS)
        await receive_until(communicator, 'dashboard_state')

        await communicator.send_json_to({'action': 'select_alert', 'student_id': 'a'})
        message = await receive_until(communicator, 'dashboard_state')
        self.assertEqual(message['payload']['focus']['zoom'], 16)

        await communicator.send_json_to({'action': 'select_alert', 'student_id': 'missing'})
        self.assertTrue(await communicator.receive_nothing(timeout=0.1))
        await communicator.disconnect()

    async def test_bad_messages_get_errors(self):
        communicator = await self.connect()
        await communicator.receive_json_from()

        await communicator.send_to(text_data='not json')
        self.assertEqual((await communicator.receive_json_from())['type'], 'error')
        await communicator.send_json_to({'action': 'dance'})
        self.assertEqual((await communicator.receive_json_from())['type'], 'error')
        await communicator.send_json_to({'action': 'toggle_buzzer', 'student_id': 'a/b'})
        self.assertEqual((await communicator.receive_json_from())['type'], 'error')
        await communicator.disconnect()

    async def test_non_boolean_current_is_rejected(self):
        communicator = await self.connect()
        await communicator.receive_json_from()

        for current in ('false', 0, 'true'):
            await communicator.send_json_to({'action': 'toggle_buzzer', 'student_id': 'a', 'current': current})
            message = await communicator.receive_json_from()
            self.assertEqual(message['type'], 'error')
            self.assertIn("'current'", message['message'])
        self.assertEqual(self.source.updates, [])
        await communicator.disconnect()

    async def test_without_session_nothing_is_subscribed(self):
        communicator = await self.connect(teacher=None)
        initial = await communicator.receive_json_from()
        self.assertIsNone(initial['payload']['teacher'])

        await communicator.send_json_to({'action': 'toggle_buzzer', 'student_id': 'a'})
        self.assertEqual((await communicator.receive_json_from())['type'], 'error')
        await asyncio.sleep(0.05)
        self.assertEqual(self.source.listeners, {})
        self.assertEqual(self.source.updates, [])
        await communicator.disconnect()
