import math
from typing import Optional

from ems_routing.core.models import Location

# Stand-in distance for missing or unusable coordinates; scores 0 on the distance curve
UNKNOWN_DISTANCE_KM = 999.0

# Average urban ambulance speed used for ETA estimates
AVERAGE_AMBULANCE_SPEED_KMH = 40.0


def calculate_distance(coord1: Location, coord2: Location) -> float:
    """
    Calculate the distance between two geographical coordinates using the Haversine formula.

    Args:
        coord1: The first Location object (latitude, longitude in degrees).
        coord2: The second Location object (latitude, longitude in degrees).

    Returns:
        The distance between the two coordinates in kilometers.
    """
    # Earth radius in kilometers
    R = 6371.0

    lat1_rad = math.radians(coord1.latitude)
    lon1_rad = math.radians(coord1.longitude)
    lat2_rad = math.radians(coord2.latitude)
    lon2_rad = math.radians(coord2.longitude)

    dlon = lon2_rad - lon1_rad
    dlat = lat2_rad - lat1_rad

    # Haversine formula
    a = math.sin(dlat / 2)**2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2)**2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    distance_km = R * c
    return distance_km


def pickup_distance_km(pickup: Optional[Location], destination: Optional[Location]) -> float:
    """
    Distance from a pickup point to a hospital, guarding against missing data.

    A missing location, or one sitting on 0,0, returns UNKNOWN_DISTANCE_KM so that
    absent coordinates are never mistaken for a hospital right next door.

    Args:
        pickup: Case pickup location, may be None.
        destination: Hospital location, may be None.

    Returns:
        Distance in kilometers, or UNKNOWN_DISTANCE_KM.
    """
    if pickup is None or destination is None:
        return UNKNOWN_DISTANCE_KM
    if pickup.is_null_island or destination.is_null_island:
        return UNKNOWN_DISTANCE_KM

    distance_km = calculate_distance(pickup, destination)
    if not math.isfinite(distance_km):
        return UNKNOWN_DISTANCE_KM
    return distance_km


def estimate_eta_minutes(distance_km: float) -> int:
    """Estimate ground ambulance travel time in whole minutes."""
    return round_half_up(distance_km / AVERAGE_AMBULANCE_SPEED_KMH * 60)


def round_half_up(value: float) -> int:
    """Round halves up (2.5 -> 3) rather than to even like round()."""
    return int(math.floor(value + 0.5))


def round_tenth(value: float) -> float:
    """Round to one decimal place, halves up, for display distances."""
    return math.floor(value * 10 + 0.5) / 10
