# ==================== UTILS/DISTANCE_CALCULATOR.PY ====================
import math

from geopy.distance import great_circle

EARTH_RADIUS_KM = 6371
KM_PER_DEGREE_LAT = 111.32


class DistanceCalculator:
    """Great-circle distances for space search"""

    @staticmethod
    def get_distance_km(lat1, lng1, lat2, lng2):
        """Haversine distance in kilometers on a 6371 km sphere"""
        coord1 = (float(lat1), float(lng1))
        coord2 = (float(lat2), float(lng2))
        return great_circle(coord1, coord2, radius=EARTH_RADIUS_KM).km

    @staticmethod
    def bounding_box(latitude, longitude, radius_km):
        """Cheap lat/lng box around a point, used to prefilter before exact distance"""
        delta_lat = radius_km / KM_PER_DEGREE_LAT
        cos_lat = math.cos(math.radians(latitude))
        delta_lng = radius_km / (KM_PER_DEGREE_LAT * max(cos_lat, 1e-6))
        return {
            'latitude__gte': latitude - delta_lat,
            'latitude__lte': latitude + delta_lat,
            'longitude__gte': longitude - delta_lng,
            'longitude__lte': longitude + delta_lng,
        }

    @staticmethod
    def within_radius(spaces, latitude, longitude, radius_km):
        """Annotate each space with `distance` and keep the ones inside the radius, nearest first"""
        nearby = []
        for space in spaces:
            distance = DistanceCalculator.get_distance_km(
                latitude, longitude, space.latitude, space.longitude
            )
            if distance <= radius_km:
                space.distance = round(distance, 2)
                nearby.append(space)
        nearby.sort(key=lambda s: s.distance)
        return nearby
