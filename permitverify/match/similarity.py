"""
Similarity matching for PermitVerify.

Decides whether two permit records describe the same physical project,
using geographic proximity when both records are geocoded and Levenshtein
similarity of normalized addresses otherwise.
"""

import logging
import math
from typing import Dict, Optional, Tuple
from Levenshtein import distance as levenshtein_distance

from ..models import Record
from ..normalize.address_normalizer import AddressNormalizer
from ..utils import round_half_up

logger = logging.getLogger(__name__)

EARTH_RADIUS_METERS = 6371000.0


def haversine_distance(coord1: Tuple[float, float], coord2: Tuple[float, float],
                       radius: float = EARTH_RADIUS_METERS) -> float:
    """
    Great-circle distance between two (latitude, longitude) points.

    Args:
        coord1: First point in decimal degrees
        coord2: Second point in decimal degrees
        radius: Sphere radius in meters

    Returns:
        Distance in meters
    """
    lat1, lon1 = coord1
    lat2, lon2 = coord2

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (math.sin(delta_phi / 2) ** 2 +
         math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2)
    a = min(1.0, a)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return radius * c


def _text(value) -> str:
    return value if isinstance(value, str) else ""


def _valid_coordinates(coordinates) -> bool:
    if coordinates is None:
        return False
    try:
        lat, lon = coordinates
        return not (math.isnan(float(lat)) or math.isnan(float(lon)))
    except (TypeError, ValueError):
        return False


class SimilarityMatcher:
    """
    Pairwise duplicate detector for permit records.

    Combines a geographic proximity test with a text similarity fallback;
    the decision is symmetric and never pairs a record with itself.
    """

    def __init__(self, config: Optional[Dict] = None,
                 normalizer: Optional[AddressNormalizer] = None):
        """
        Initialize similarity matcher with configuration.

        Args:
            config: Matching section of the configuration
            normalizer: Address normalizer (one is built with defaults if omitted)
        """
        self.config = config or {}
        self.normalizer = normalizer or AddressNormalizer()

        self.proximity_meters = self.config.get("proximity_meters", 50.0)
        self.earth_radius = self.config.get("earth_radius_meters", EARTH_RADIUS_METERS)
        self.short_address_length = self.config.get("short_address_length", 20)
        self.short_address_threshold = self.config.get("short_address_threshold", 90)
        self.default_threshold = self.config.get("default_threshold", 85)

        logger.info("Initialized SimilarityMatcher")

    def address_similarity(self, addr1: Optional[str], addr2: Optional[str]) -> int:
        """
        Calculate similarity between two addresses as a 0-100 percentage.

        Args:
            addr1: First raw address
            addr2: Second raw address

        Returns:
            Rounded similarity percentage (100 when both normalize equal)
        """
        norm1 = self.normalizer.normalize(addr1)
        norm2 = self.normalizer.normalize(addr2)

        if norm1 == norm2:
            return 100

        max_len = max(len(norm1), len(norm2))
        dist = levenshtein_distance(norm1, norm2)

        return round_half_up(100 * (max_len - dist) / max_len)

    def location_distance(self, rec1: Record, rec2: Record) -> Optional[float]:
        """Distance in meters between two records, None unless both are geocoded."""
        if not (_valid_coordinates(rec1.coordinates) and _valid_coordinates(rec2.coordinates)):
            return None
        coord1 = (float(rec1.coordinates[0]), float(rec1.coordinates[1]))
        coord2 = (float(rec2.coordinates[0]), float(rec2.coordinates[1]))
        return haversine_distance(coord1, coord2, self.earth_radius)

    def is_same_location(self, rec1: Record, rec2: Record) -> bool:
        """
        Check whether two records sit on the same property.

        Args:
            rec1: First record
            rec2: Second record

        Returns:
            True if both are geocoded and within the proximity radius
        """
        distance = self.location_distance(rec1, rec2)
        return distance is not None and distance <= self.proximity_meters

    def similarity_threshold(self, rec1: Record, rec2: Record) -> int:
        """Similarity bar for a pair; short addresses get the stricter one."""
        shorter = min(len(_text(rec1.address)), len(_text(rec2.address)))
        if shorter < self.short_address_length:
            return self.short_address_threshold
        return self.default_threshold

    def are_duplicates(self, rec1: Record, rec2: Record) -> bool:
        """
        Determine if two permits are duplicates.

        Args:
            rec1: First record
            rec2: Second record

        Returns:
            True if the records describe the same project
        """
        if rec1.id == rec2.id:
            return False

        # Hard prefilter
        if rec1.city != rec2.city:
            return False

        if self.is_same_location(rec1, rec2):
            return True

        similarity = self.address_similarity(rec1.address, rec2.address)
        return similarity >= self.similarity_threshold(rec1, rec2)

    def explain_pair(self, rec1: Record, rec2: Record) -> Dict[str, object]:
        """
        Calculate every matching signal for a pair.

        Args:
            rec1: First record
            rec2: Second record

        Returns:
            Dictionary with the signals behind are_duplicates()
        """
        same_city = rec1.city == rec2.city
        distance = self.location_distance(rec1, rec2)
        same_location = distance is not None and distance <= self.proximity_meters
        similarity = self.address_similarity(rec1.address, rec2.address)
        threshold = self.similarity_threshold(rec1, rec2)

        if rec1.id == rec2.id or not same_city:
            method = "rejected"
        elif same_location:
            method = "geo"
        else:
            method = "text"

        return {
            "record_id_1": rec1.id,
            "record_id_2": rec2.id,
            "same_city": same_city,
            "distance_meters": distance,
            "same_location": same_location,
            "similarity": similarity,
            "threshold": threshold,
            "method": method,
            "is_duplicate": self.are_duplicates(rec1, rec2)
        }
