"""
Distance and place-name helpers shared by the matching engine.

Distances use the Haversine formula on a spherical Earth.
"""

import math
import re
import unicodedata
from typing import Tuple

EARTH_RADIUS_KM = 6371.0

KM_PER_DEGREE = math.pi * EARTH_RADIUS_KM / 180

_ADMINISTRATIVE_WORDS = re.compile(r'محافظة|governorate')
_DISALLOWED_CHARACTERS = re.compile(r'[^a-z0-9ء-ي\s]')
_WHITESPACE = re.compile(r'\s+')

# Arabic letter variants folded to a single base letter
_ARABIC_FOLDS = (
    (re.compile(r'[أإآ]'), 'ا'),
    (re.compile(r'ى'), 'ي'),
    (re.compile(r'ؤ'), 'و'),
    (re.compile(r'ة'), 'ه'),
)


class DistanceService:
    """
    Service for great-circle distance calculations.

    Uses the Haversine formula with a mean Earth radius of 6371 km.
    """

    @staticmethod
    def haversine_km(
        lat1: float, lon1: float,
        lat2: float, lon2: float
    ) -> float:
        """
        Calculate the distance between two points on Earth using Haversine formula.

        Args:
            lat1, lon1: First point coordinates
            lat2, lon2: Second point coordinates

        Returns:
            Distance in kilometers
        """
        lat1_rad = math.radians(lat1)
        lat2_rad = math.radians(lat2)
        delta_lat = math.radians(lat2 - lat1)
        delta_lon = math.radians(lon2 - lon1)

        a = (math.sin(delta_lat / 2) ** 2 +
             math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lon / 2) ** 2)
        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

        return EARTH_RADIUS_KM * c

    @classmethod
    def distance_between(cls, a: Tuple[float, float], b: Tuple[float, float]) -> float:
        """Haversine distance in kilometers between two (lat, lng) tuples."""
        return cls.haversine_km(a[0], a[1], b[0], b[1])


def normalize_place_name(value: str) -> str:
    """
    Normalize a city or suburb name for text search.

    Lower-cases, drops administrative words ("governorate"), strips
    diacritics and punctuation, folds Arabic letter variants and
    collapses whitespace. ``None`` and empty input yield ``''``.
    """
    if not value:
        return ''

    text = _ADMINISTRATIVE_WORDS.sub('', value.lower())
    text = unicodedata.normalize('NFKD', text)
    text = ''.join(ch for ch in text if not unicodedata.combining(ch))
    text = _DISALLOWED_CHARACTERS.sub('', text)
    for pattern, replacement in _ARABIC_FOLDS:
        text = pattern.sub(replacement, text)
    return _WHITESPACE.sub(' ', text).strip()
