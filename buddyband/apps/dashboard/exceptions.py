# buddyband/apps/dashboard/exceptions.py


class DashboardError(Exception):
    """Base class for errors raised by the dashboard sync engine."""


class SubscriptionError(DashboardError):
    """A collection subscription could not be opened or broke while streaming."""

    def __init__(self, path, cause=None):
        self.path = path
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Subscription to '{path}' failed{detail}")


class WriteFailure(DashboardError):
    """A partial update was rejected by the backing store."""

    def __init__(self, record_path, fields, cause=None):
        self.record_path = record_path
        self.fields = dict(fields)
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Write to '{record_path}' rejected{detail}")
