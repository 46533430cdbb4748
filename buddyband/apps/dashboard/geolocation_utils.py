# buddyband/apps/dashboard/geolocation_utils.py
import math

from .conf import dashboard_setting

OUT_OF_RANGE_FIELD = 'outOfRange'


def haversine_distance(lat1, lon1, lat2, lon2, earth_radius_km=6371.0):
    """Great-circle distance in kilometers between two (lat, lon) points given in degrees."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    half_dphi = math.radians(lat2 - lat1) / 2
    half_dlambda = math.radians(lon2 - lon1) / 2

    h = math.sin(half_dphi) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(half_dlambda) ** 2
    return 2 * earth_radius_km * math.asin(min(1.0, math.sqrt(h)))


def distance_in_meters(lat1, lon1, lat2, lon2):
    # Telemetry may hand us strings or Decimals.
    return haversine_distance(float(lat1), float(lon1), float(lat2), float(lon2)) * 1000.0


def flagged_out_of_range(student):
    """Out of range only when the device itself reported it through the outOfRange field."""
    return student.extra.get(OUT_OF_RANGE_FIELD) is True


def geofence_predicate(latitude, longitude, radius_m):
    """
    Build a predicate that flags located students further than radius_m
    from the given center. Students with no fix are never flagged.
    """
    center_lat = float(latitude)
    center_lon = float(longitude)
    radius_m = float(radius_m)

    def out_of_range(student):
        if not student.has_location:
            return False
        distance = distance_in_meters(
            student.location.latitude, student.location.longitude, center_lat, center_lon
        )
        return distance > radius_m

    return out_of_range


def configured_out_of_range():
    """Predicate selected by BUDDYBAND_DASHBOARD['OUT_OF_RANGE']."""
    mode = dashboard_setting('OUT_OF_RANGE')
    if mode == 'geofence':
        fence = dashboard_setting('GEOFENCE')
        if not fence:
            raise ValueError("OUT_OF_RANGE is 'geofence' but no GEOFENCE is configured.")
        return geofence_predicate(fence['latitude'], fence['longitude'], fence['radius_m'])
    if mode == 'flag':
        return flagged_out_of_range
    raise ValueError(f"Unknown OUT_OF_RANGE mode: {mode!r}")
