# buddyband/apps/dashboard/firebase_service.py
import copy
import json
import logging
import os

import firebase_admin
from firebase_admin import credentials, db
from django.conf import settings

from .sync import PushSource

logger = logging.getLogger(__name__)


def initialize_firebase():
    """
    Initialise the Realtime Database app from the service-account JSON in
    FIREBASE_SERVICE_ACCOUNT_KEY. Returns None when it is not configured or
    initialisation fails.
    """
    key_json = os.environ.get('FIREBASE_SERVICE_ACCOUNT_KEY')
    database_url = getattr(settings, 'FIREBASE_DATABASE_URL', None)
    if not key_json or not database_url:
        logger.warning("FIREBASE_SERVICE_ACCOUNT_KEY or FIREBASE_DATABASE_URL not set. Firebase not initialized.")
        return None
    try:
        cred = credentials.Certificate(json.loads(key_json))
        app = firebase_admin.initialize_app(cred, {'databaseURL': database_url})
    except Exception as e:
        logger.error(f"Error initializing Firebase: {e}", exc_info=True)
        return None
    logger.info("Firebase initialized successfully")
    return app


firebase_app = initialize_firebase()


def _split(path):
    return [segment for segment in (path or '').split('/') if segment]


class CollectionMirror:
    """
    Local copy of one collection, rebuilt from the listener's put/patch
    events so that every change can be handed on as a full value.
    """

    def __init__(self):
        self.value = {}

    def apply(self, event_type, path, data):
        segments = _split(path)
        if event_type == 'put':
            self._set(segments, data)
        elif event_type == 'patch':
            if not isinstance(data, dict):
                raise ValueError(f"patch event at '{path}' carried {type(data).__name__}, expected an object")
            for key, child in data.items():
                self._set(segments + _split(key), child)
        else:
            raise ValueError(f"Unsupported listener event type: {event_type!r}")

    def snapshot(self):
        return copy.deepcopy(self.value)

    def _set(self, segments, data):
        if not segments:
            self.value = copy.deepcopy(data) if isinstance(data, dict) else {}
            return
        node = self.value
        for segment in segments[:-1]:
            child = node.get(segment)
            if not isinstance(child, dict):
                if data is None:
                    return
                child = {}
                node[segment] = child
            node = child
        if data is None:
            node.pop(segments[-1], None)
        else:
            node[segments[-1]] = copy.deepcopy(data)
        self._prune(segments)

    def _prune(self, segments):
        # The database drops objects that lose their last child.
        for depth in range(len(segments) - 1, 0, -1):
            parent = self.value
            for segment in segments[:depth - 1]:
                parent = parent.get(segment, {})
            key = segments[depth - 1]
            if isinstance(parent.get(key), dict) and not parent[key]:
                parent.pop(key)
            else:
                break


class FirebasePushSource(PushSource):
    def __init__(self, app=None):
        self._app = app

    def listen(self, path, on_value, on_error):
        mirror = CollectionMirror()

        def callback(event):
            try:
                mirror.apply(event.event_type, event.path, event.data)
            except Exception as e:
                logger.error(f"Bad listener event on '{path}': {e}")
                on_error(e)
                return
            on_value(mirror.snapshot())

        return db.reference(path, app=self._app).listen(callback)

    def update(self, path, fields):
        db.reference(path, app=self._app).update(fields)


def default_push_source():
    if firebase_app is None:
        return None
    return FirebasePushSource(firebase_app)
