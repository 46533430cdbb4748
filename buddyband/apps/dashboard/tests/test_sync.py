# buddyband/apps/dashboard/tests/test_sync.py
import asyncio

from django.test import SimpleTestCase

from apps.dashboard.exceptions import SubscriptionError, WriteFailure
from apps.dashboard.session import TeacherSession
from apps.dashboard.sync import (
    ErrorEvent, NoOpCollectionSync, RemoteCollectionSync, SnapshotEvent, collection_sync_for,
)

from .fakes import FakePushSource, wait_for

V1 = {'s1': {'teacherID': 't1', 'name': 'A'}, 's2': {'teacherID': 't1', 'name': 'B'}}
V2 = {'s1': {'teacherID': 't1', 'name': 'A'}}


class SubscriptionTests(SimpleTestCase):
    async def start(self, path='students'):
        self.source = FakePushSource()
        self.subscription = RemoteCollectionSync(self.source).subscribe(path)
        self.events = []

        async def consume():
            async for event in self.subscription:
                self.events.append(event)

        self.consumer = asyncio.ensure_future(consume())
        await wait_for(lambda: self.source.is_listening(path))

    async def finish(self):
        self.subscription.close()
        await asyncio.wait_for(self.consumer, 2)

    async def test_initial_snapshot_then_full_replacements(self):
        await self.start()
        self.source.push('students', V1)
        await wait_for(lambda: len(self.events) == 1)
        self.source.push('students', {'s1': dict(V2['s1'])})
        await wait_for(lambda: len(self.events) == 2)
        await self.finish()

        first, second = self.events
        self.assertIsInstance(first, SnapshotEvent)
        self.assertEqual(dict(first.records), V1)
        self.assertEqual(dict(second.records), V2)
        self.assertNotIn('s2', second.records)
        # Unchanged records keep their identity across snapshots.
        self.assertIs(second.records['s1'], first.records['s1'])

    async def test_null_collection_is_empty_snapshot(self):
        await self.start()
        self.source.push('students', None)
        await wait_for(lambda: len(self.events) == 1)
        await self.finish()
        self.assertEqual(dict(self.events[0].records), {})

    async def test_error_keeps_last_snapshot_until_next_one(self):
        await self.start()
        self.source.push('students', V1)
        await wait_for(lambda: len(self.events) == 1)
        self.source.fail('students', RuntimeError('permission denied'))
        await wait_for(lambda: len(self.events) == 2)

        self.assertIsInstance(self.events[1], ErrorEvent)
        self.assertIsInstance(self.subscription.error, SubscriptionError)
        self.assertEqual(dict(self.subscription.current), V1)

        self.source.push('students', V2)
        await wait_for(lambda: len(self.events) == 3)
        self.assertIsNone(self.subscription.error)
        self.assertEqual(dict(self.subscription.current), V2)
        await self.finish()

    async def test_open_failure_is_an_event_and_reopen_recovers(self):
        source = FakePushSource()
        source.listen_errors['students'] = RuntimeError('network unreachable')
        subscription = RemoteCollectionSync(source).subscribe('students')

        event = await asyncio.wait_for(subscription.__anext__(), 2)
        self.assertIsInstance(event, ErrorEvent)
        self.assertEqual(event.error.path, 'students')
        self.assertIn('network unreachable', str(event.error))

        await subscription.reopen()
        self.assertTrue(source.is_listening('students'))
        source.push('students', V1)
        event = await asyncio.wait_for(subscription.__anext__(), 2)
        self.assertIsInstance(event, SnapshotEvent)
        subscription.close()

    async def test_reopen_ignores_events_from_old_handle(self):
        await self.start()
        old_handle = self.source.handles('students')[0]
        await self.subscription.reopen()
        await wait_for(lambda: old_handle.closed)
        self.assertEqual(len(self.source.handles('students')), 2)

        self.source.push('students', V2, include_closed=True)
        await wait_for(lambda: len(self.events) == 1)
        await asyncio.sleep(0.05)
        # Delivered once through the new handle; the old handle's copy is dropped.
        self.assertEqual(len(self.events), 1)
        await self.finish()

    async def test_close_is_idempotent_and_drops_late_events(self):
        await self.start()
        self.source.push('students', V1)
        await wait_for(lambda: len(self.events) == 1)

        handle = self.source.handles('students')[0]
        await self.finish()
        self.subscription.close()
        self.assertEqual(handle.close_calls, 1)
        self.assertTrue(self.subscription.closed)

        self.source.push('students', V2, include_closed=True)
        await asyncio.sleep(0.05)
        self.assertEqual(len(self.events), 1)
        self.assertEqual(dict(self.subscription.current), V1)

    async def test_close_before_first_event_ends_iteration(self):
        await self.start()
        await self.finish()
        self.assertEqual(self.events, [])


class WriteTests(SimpleTestCase):
    async def test_write_is_a_partial_update(self):
        source = FakePushSource()
        await RemoteCollectionSync(source).write('students/s1', {'BuzzerON': True})
        self.assertEqual(source.updates, [('students/s1', {'BuzzerON': True})])

    async def test_rejected_write_raises(self):
        source = FakePushSource()
        source.update_error = PermissionError('denied')
        with self.assertRaises(WriteFailure) as ctx:
            await RemoteCollectionSync(source).write('students/s1', {'BuzzerON': True})
        self.assertEqual(ctx.exception.record_path, 'students/s1')
        self.assertIsInstance(ctx.exception.cause, PermissionError)


class NoOpSyncTests(SimpleTestCase):
    async def test_subscriptions_end_immediately(self):
        subscription = NoOpCollectionSync().subscribe('students')
        events = [event async for event in subscription]
        self.assertEqual(events, [])

    async def test_writes_are_rejected(self):
        with self.assertRaises(WriteFailure):
            await NoOpCollectionSync().write('students/s1', {'BuzzerON': True})

    def test_factory(self):
        source = FakePushSource()
        self.assertIsInstance(collection_sync_for(None, source), NoOpCollectionSync)
        self.assertIsInstance(collection_sync_for(TeacherSession('t1'), None), NoOpCollectionSync)
        self.assertIsInstance(collection_sync_for(TeacherSession('t1'), source), RemoteCollectionSync)
