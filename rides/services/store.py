"""
Posting store: the read-only query side the matching engine consumes.
"""

import logging
import math
from datetime import timedelta
from typing import List, Optional

from django.db import DatabaseError
from django.db.models import Q

from .exceptions import SpatialQueryError
from .geometry import KM_PER_DEGREE
from .route import Route

logger = logging.getLogger(__name__)


def bounding_box(route: Route, radius_km: float):
    """
    Latitude/longitude box around a route, padded by ``radius_km``.

    Returns:
        Tuple of (min_lat, max_lat, min_lng, max_lng)
    """
    lats = [lat for lat, _ in route.points]
    lngs = [lng for _, lng in route.points]

    lat_pad = radius_km / KM_PER_DEGREE
    widest = min(89.0, max(abs(min(lats)), abs(max(lats))) + lat_pad)
    lng_pad = radius_km / (KM_PER_DEGREE * math.cos(math.radians(widest)))

    return (
        min(lats) - lat_pad,
        max(lats) + lat_pad,
        min(lngs) - lng_pad,
        max(lngs) + lng_pad,
    )


def routes_near_trip(queryset, origin, destination, radius_km: float):
    """
    Narrow ``queryset`` to postings whose route extent reaches the box
    around a trip's origin and destination, padded by ``radius_km``.

    Rows without a cached route extent are kept for the exact check.
    """
    min_lat, max_lat, min_lng, max_lng = bounding_box(Route([origin, destination]), radius_km)

    overlapping = Q(
        route_min_latitude__lte=max_lat,
        route_max_latitude__gte=min_lat,
        route_min_longitude__lte=max_lng,
        route_max_longitude__gte=min_lng,
    )
    return queryset.filter(overlapping | Q(route_min_latitude__isnull=True))


class PostingStore:
    """
    Answers "active opposite-kind postings with a route near this route".

    The ORM query narrows the pool with a bounding box around the route;
    exact proximity and ordering are left to the candidate filter.
    """

    def __init__(self, queryset=None):
        from ..models import Posting
        self.model = Posting
        self.queryset = queryset if queryset is not None else Posting.objects.all()

    def get_posting(self, posting_id):
        return self.queryset.select_related('owner').get(pk=posting_id)

    def find_active_candidates(
        self,
        posting,
        route: Route,
        radius_km: float,
        time_window: Optional[timedelta] = None,
    ) -> List:
        """
        Fetch upcoming postings of the opposite kind whose endpoints fall in
        the padded bounding box of ``route``.

        Raises:
            SpatialQueryError: If the database query fails
        """
        min_lat, max_lat, min_lng, max_lng = bounding_box(route, radius_km)

        queryset = (
            self.queryset
            .filter(
                kind=posting.opposite_kind,
                status=self.model.Status.UPCOMING,
                starting_latitude__range=(min_lat, max_lat),
                starting_longitude__range=(min_lng, max_lng),
                destination_latitude__range=(min_lat, max_lat),
                destination_longitude__range=(min_lng, max_lng),
            )
            .exclude(route_geometry='')
            .exclude(pk=posting.pk)
            .exclude(owner_id=posting.owner_id)
            .select_related('owner')
        )

        if time_window is not None:
            queryset = queryset.filter(
                scheduled_time__gte=posting.scheduled_time - time_window,
                scheduled_time__lte=posting.scheduled_time + time_window,
            )

        try:
            return list(queryset)
        except DatabaseError as e:
            logger.error(f"Candidate query failed for posting {posting.pk}: {e}")
            raise SpatialQueryError(f"Candidate query failed: {e}")
