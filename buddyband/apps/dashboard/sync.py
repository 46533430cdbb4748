# buddyband/apps/dashboard/sync.py
import asyncio
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
import logging

from asgiref.sync import sync_to_async

from .exceptions import SubscriptionError, WriteFailure

logger = logging.getLogger(__name__)


class PushSource:
    """
    Transport behind RemoteCollectionSync.

    listen() must hand on_value the full current value of the collection
    (a mapping, {} when empty) every time it changes, and report transport
    or permission problems through on_error. Both callbacks may be invoked
    from any thread. listen() returns a handle whose close() stops delivery.
    update() performs a blocking partial update of one record.
    """

    def listen(self, path, on_value, on_error):
        raise NotImplementedError

    def update(self, path, fields):
        raise NotImplementedError


@dataclass(frozen=True)
class SnapshotEvent:
    path: str
    records: Mapping


@dataclass(frozen=True)
class ErrorEvent:
    path: str
    error: SubscriptionError


_CLOSED = object()


def _reuse_unchanged(previous, incoming):
    # Records equal to the previous snapshot keep their identity; everything
    # else, including removals, comes from the incoming value.
    if not previous:
        return dict(incoming)
    merged = {}
    for key, value in incoming.items():
        old = previous.get(key)
        merged[key] = old if old is not None and old == value else value
    return merged


class Subscription:
    """
    Live view of one remote collection, consumed with ``async for``.

    The first SnapshotEvent is the initial value; every later one replaces
    the whole collection. Failures arrive as ErrorEvents on the same
    sequence and leave ``current`` untouched. Iteration ends only after
    close(). Meant for a single consumer.
    """

    def __init__(self, source, path):
        self.path = path
        self.current = None
        self.error = None
        self._source = source
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._handle = None
        self._opened = False
        self._closed = False
        self._generation = 0

    @property
    def closed(self):
        return self._closed

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._opened and not self._closed:
            await self._open()
        if self._closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED or self._closed:
            raise StopAsyncIteration
        return item

    async def reopen(self):
        """Drop the current push handle and listen again on the same sequence."""
        if self._closed:
            return
        logger.info(f"Reopening subscription to '{self.path}'")
        self._release()
        await self._open()

    def close(self):
        if self._closed:
            return
        self._closed = True
        self._release()
        self._queue.put_nowait(_CLOSED)
        logger.debug(f"Closed subscription to '{self.path}'")

    async def _open(self):
        self._opened = True
        self._generation += 1
        generation = self._generation

        def on_value(records):
            self._call_on_loop(self._deliver, generation, records)

        def on_error(exc):
            self._call_on_loop(self._fail, generation, exc)

        listening = asyncio.ensure_future(
            sync_to_async(self._source.listen, thread_sensitive=False)(self.path, on_value, on_error)
        )
        try:
            handle = await asyncio.shield(listening)
        except asyncio.CancelledError:
            # The listener thread still finishes; release whatever it opens.
            listening.add_done_callback(self._close_abandoned)
            raise
        except Exception as exc:
            logger.warning(f"Could not subscribe to '{self.path}': {exc}")
            self._fail(generation, exc)
            return

        if self._closed or generation != self._generation:
            # Closed or reopened while the listener was being set up.
            self._close_handle(handle)
            return
        self._handle = handle
        logger.info(f"Subscribed to '{self.path}'")

    def _call_on_loop(self, callback, *args):
        try:
            self._loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            logger.debug(f"Event loop gone; dropping late event for '{self.path}'")

    def _is_stale(self, generation):
        return self._closed or generation != self._generation

    def _deliver(self, generation, records):
        if self._is_stale(generation):
            logger.debug(f"Discarding late snapshot for '{self.path}'")
            return
        if records is None:
            records = {}
        if not isinstance(records, Mapping):
            self._fail(generation, TypeError(f"expected a keyed collection, got {type(records).__name__}"))
            return
        self.current = MappingProxyType(_reuse_unchanged(self.current, records))
        self.error = None
        self._queue.put_nowait(SnapshotEvent(self.path, self.current))

    def _fail(self, generation, exc):
        if self._is_stale(generation):
            logger.debug(f"Discarding late error for '{self.path}': {exc}")
            return
        error = exc if isinstance(exc, SubscriptionError) else SubscriptionError(self.path, exc)
        self.error = error
        self._queue.put_nowait(ErrorEvent(self.path, error))

    def _release(self):
        handle, self._handle = self._handle, None
        if handle is not None:
            self._close_handle(handle)

    def _close_abandoned(self, listening):
        if listening.cancelled() or listening.exception() is not None:
            return
        self._close_handle(listening.result())

    def _close_handle(self, handle):
        try:
            handle.close()
        except Exception as e:
            logger.warning(f"Error releasing push handle for '{self.path}': {e}", exc_info=True)


class RemoteCollectionSync:
    """Subscriptions and writes against one PushSource."""

    def __init__(self, source):
        self._source = source

    def subscribe(self, path):
        return Subscription(self._source, path)

    async def write(self, record_path, fields):
        """
        Partially update one record. Resolves once the store accepted the
        write; the local snapshot only reflects it when the next push arrives.
        Raises WriteFailure when the store rejects it.
        """
        fields = dict(fields)
        try:
            await sync_to_async(self._source.update, thread_sensitive=False)(record_path, fields)
        except Exception as exc:
            raise WriteFailure(record_path, fields, exc) from exc
        logger.info(f"Wrote {fields} to '{record_path}'")


class NoOpCollectionSync:
    """Stand-in used when there is no supervisor: subscribes to nothing, writes nothing."""

    def subscribe(self, path):
        subscription = Subscription(None, path)
        subscription.close()
        return subscription

    async def write(self, record_path, fields):
        raise WriteFailure(record_path, fields, 'no supervisor session')


def collection_sync_for(session, source):
    if session is None:
        logger.info("No teacher session; dashboard will not subscribe to any collection.")
        return NoOpCollectionSync()
    if source is None:
        logger.warning("No push source available; dashboard data will stay empty.")
        return NoOpCollectionSync()
    return RemoteCollectionSync(source)
