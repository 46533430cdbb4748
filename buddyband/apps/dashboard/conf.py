# buddyband/apps/dashboard/conf.py
from django.conf import settings

DEFAULTS = {
    'STUDENTS_PATH': 'students',
    'ALERTS_PATH': 'alerts',
    'DEFAULT_ZOOM': 13,
    'FOCUS_ZOOM': 16,
    # 'flag' reads the raw outOfRange field, 'geofence' measures distance from GEOFENCE.
    'OUT_OF_RANGE': 'flag',
    'GEOFENCE': None,  # {'latitude': ..., 'longitude': ..., 'radius_m': ...}
}


def dashboard_setting(name):
    """Look up a BUDDYBAND_DASHBOARD entry, falling back to the built-in default."""
    overrides = getattr(settings, 'BUDDYBAND_DASHBOARD', None) or {}
    if name in overrides:
        return overrides[name]
    return DEFAULTS[name]
