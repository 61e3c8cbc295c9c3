"""Distance helpers for stop search."""

import math

# Earth's radius in meters for haversine calculation
EARTH_RADIUS_METERS = 6_371_000


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate the great-circle distance between two points in meters.

    Args:
        lat1, lon1: First point coordinates in degrees.
        lat2, lon2: Second point coordinates in degrees.

    Returns:
        Distance in meters.
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_METERS * c


def manhattan_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Approximate walking distance on a street grid, in meters.

    Sums the north-south and east-west legs instead of cutting the diagonal.
    The east-west leg is scaled by the cosine of the mean latitude.
    """
    meters_per_degree = EARTH_RADIUS_METERS * math.pi / 180
    mean_lat = math.radians((lat1 + lat2) / 2)
    north_south = abs(lat2 - lat1) * meters_per_degree
    east_west = abs(lon2 - lon1) * meters_per_degree * math.cos(mean_lat)
    return north_south + east_west


def bounding_box_radius(lat: float, radius_meters: float) -> tuple[float, float]:
    """Convert a half-width in meters into (lat_degrees, lon_degrees) at a latitude."""
    lat_deg = radius_meters / EARTH_RADIUS_METERS * (180 / math.pi)
    lon_deg = lat_deg / math.cos(math.radians(lat))
    return lat_deg, lon_deg
