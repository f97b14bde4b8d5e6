"""GPS distance and geofence service."""
import math
from typing import Dict

class GeoService:
    """Service for GPS and location verification."""

    EARTH_RADIUS_METERS = 6371000

    @staticmethod
    def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        """Calculate great-circle (haversine) distance between two GPS points in meters.

        Callers validate coordinate ranges first; invalid input yields NaN.
        """
        lat1_rad = math.radians(lat1)
        lat2_rad = math.radians(lat2)
        delta_lat = math.radians(lat2 - lat1)
        delta_lon = math.radians(lon2 - lon1)

        a = (math.sin(delta_lat/2) ** 2 +
             math.cos(lat1_rad) * math.cos(lat2_rad) *
             math.sin(delta_lon/2) ** 2)
        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1-a))

        return GeoService.EARTH_RADIUS_METERS * c

    @staticmethod
    def is_within_radius(distance: float, radius: float) -> bool:
        """The boundary itself counts as inside."""
        return distance <= radius

    @staticmethod
    def verify_location(latitude: float, longitude: float, class_group) -> Dict:
        """Verify if a member is within the class geofence."""
        distance = GeoService.calculate_distance(
            latitude, longitude,
            class_group.latitude, class_group.longitude
        )
        allowed_radius = class_group.proximity_radius_meters

        return {
            'is_inside': GeoService.is_within_radius(distance, allowed_radius),
            'distance': distance,
            'allowed_radius': allowed_radius,
            'room': class_group.room
        }
