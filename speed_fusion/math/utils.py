"""
Small numeric and geodesic helpers.
"""

import math

from .constants import EARTH_RADIUS_M


def clamp(value, lower, upper):
    """Clamp value into [lower, upper]."""
    return max(lower, min(value, upper))


def is_finite(value) -> bool:
    """True for real numbers that are neither NaN nor infinite."""
    try:
        return math.isfinite(value)
    except TypeError:
        return False


def haversine_distance(lat1, lon1, lat2, lon2):
    """
    Calculate the great circle distance between two points on Earth.
    
    Args:
        lat1, lon1: Latitude and longitude of first point (degrees)
        lat2, lon2: Latitude and longitude of second point (degrees)
        
    Returns:
        float: Distance in meters
    """
    lat1, lon1, lat2, lon2 = map(math.radians, [lat1, lon1, lat2, lon2])
    
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = math.sin(dlat/2)**2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon/2)**2
    c = 2 * math.asin(math.sqrt(a))
    
    return EARTH_RADIUS_M * c
