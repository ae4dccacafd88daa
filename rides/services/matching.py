"""
Candidate filter for pairing rides with ride requests.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, List, Optional, Tuple

from django.conf import settings

from .exceptions import DegeneratePathError, MalformedPolylineError
from .geometry import DistanceService
from .pricing import compute_partial_price
from .route import ProjectedPoint, Route

logger = logging.getLogger(__name__)

UPCOMING = 'UPCOMING'


@dataclass(frozen=True)
class MatchingConfig:
    """Policy parameters for one matching run."""
    radius_km: float = 3.0
    time_window: Optional[timedelta] = timedelta(hours=24)
    rounding_step: float = 5
    minimum_fare: float = 10
    direct_match_radius_km: float = 2.0

    @classmethod
    def from_settings(cls, radius_km: Optional[float] = None) -> 'MatchingConfig':
        window_hours = settings.MATCHING_TIME_WINDOW_HOURS
        return cls(
            radius_km=radius_km if radius_km is not None else settings.MATCHING_RADIUS_KM,
            time_window=timedelta(hours=window_hours) if window_hours is not None else None,
            rounding_step=settings.PRICE_ROUNDING_STEP,
            minimum_fare=settings.MINIMUM_FARE,
            direct_match_radius_km=settings.DIRECT_MATCH_RADIUS_KM,
        )


@dataclass
class MatchCandidate:
    """A ride/request pairing proposed for notification. Never persisted."""
    posting: object
    candidate: object
    pickup: ProjectedPoint
    dropoff: ProjectedPoint
    passenger_distance_km: float
    price: float
    is_partial_match: bool

    @property
    def insertion_interval(self) -> Tuple[float, float]:
        return (self.pickup.fraction, self.dropoff.fraction)

    @property
    def ride(self):
        return self.candidate if self.posting.kind == 'REQUEST' else self.posting

    @property
    def request(self):
        return self.posting if self.posting.kind == 'REQUEST' else self.candidate


def locate_trip_on_route(
    route: Route,
    origin: Tuple[float, float],
    destination: Tuple[float, float],
    radius_km: float,
) -> Optional[Tuple[ProjectedPoint, ProjectedPoint]]:
    """
    Check whether a trip lies along a route in travel order.

    Returns the pickup and dropoff projections when both endpoints are
    within ``radius_km`` of the route and the pickup comes strictly before
    the dropoff; otherwise None.
    """
    pickup = route.closest_point(*origin)
    if pickup.distance_km > radius_km:
        return None

    dropoff = route.closest_point(*destination)
    if dropoff.distance_km > radius_km:
        return None

    if not pickup.fraction < dropoff.fraction:
        return None

    return pickup, dropoff


def route_distance_km(posting, route: Route) -> float:
    """Provider-reported distance when known, otherwise the path length."""
    if posting.route_distance_km and posting.route_distance_km > 0:
        return posting.route_distance_km
    return route.total_length_km


def quote_price(
    posting,
    route: Route,
    origin: Tuple[float, float],
    destination: Tuple[float, float],
    config: MatchingConfig,
) -> Tuple[float, float, bool]:
    """
    Price a trip along ``posting``'s route.

    A trip whose endpoints both sit near the posting's own endpoints is a
    direct match and pays the full price.

    Returns:
        Tuple of (passenger_distance_km, price, is_partial_match)
    """
    passenger_distance = DistanceService.distance_between(origin, destination)

    is_direct = (
        DistanceService.distance_between(posting.origin_coords, origin) < config.direct_match_radius_km
        and DistanceService.distance_between(posting.destination_coords, destination) < config.direct_match_radius_km
    )
    if is_direct:
        return passenger_distance, posting.price, False

    price = compute_partial_price(
        posting.price,
        route_distance_km(posting, route),
        passenger_distance,
        rounding_step=config.rounding_step,
        minimum_fare=config.minimum_fare,
    )
    return passenger_distance, price, True


class CandidateFilter:
    """
    Finds postings of the opposite kind that fit along a new posting's route.

    A candidate qualifies if:
    1. It is not the posting itself and is owned by someone else
    2. It is upcoming, of the opposite kind, and has a route
    3. Its origin and destination are within the radius of the posting's route
    4. Its origin projects strictly before its destination along the route
    5. Its scheduled time is within the time window of the posting's
    """

    def __init__(self, config: Optional[MatchingConfig] = None):
        self.config = config or MatchingConfig()

    def find_candidates(self, posting, pool: Iterable, route: Optional[Route] = None) -> List[MatchCandidate]:
        """
        Filter ``pool`` down to the postings that fit ``posting``'s route.

        Args:
            posting: The newly created ride or request
            pool: Active postings of the opposite kind
            route: Already decoded route of ``posting``, if the caller has it

        Returns:
            All qualifying candidates in pool order. A posting without a
            usable route yields an empty list.
        """
        if not posting.route_geometry:
            return []

        if route is None:
            try:
                route = Route.from_polyline(posting.route_geometry)
            except MalformedPolylineError as e:
                logger.warning(f"Skipping posting {posting.id}: malformed route ({e})")
                return []
            except DegeneratePathError as e:
                logger.warning(f"Skipping posting {posting.id}: degenerate route ({e})")
                return []

        matches = []
        for candidate in pool:
            match = self._evaluate_candidate(posting, route, candidate)
            if match:
                matches.append(match)

        return matches

    def _evaluate_candidate(self, posting, route: Route, candidate) -> Optional[MatchCandidate]:
        if candidate is posting or (candidate.id is not None and candidate.id == posting.id):
            return None

        if candidate.owner_id == posting.owner_id:
            return None

        if candidate.kind == posting.kind:
            return None

        if candidate.status != UPCOMING or not candidate.route_geometry:
            return None

        if not self._within_time_window(posting, candidate):
            return None

        located = locate_trip_on_route(
            route,
            candidate.origin_coords,
            candidate.destination_coords,
            self.config.radius_km,
        )
        if not located:
            return None
        pickup, dropoff = located

        passenger_distance, price, is_partial = quote_price(
            posting,
            route,
            candidate.origin_coords,
            candidate.destination_coords,
            self.config,
        )

        return MatchCandidate(
            posting=posting,
            candidate=candidate,
            pickup=pickup,
            dropoff=dropoff,
            passenger_distance_km=passenger_distance,
            price=price,
            is_partial_match=is_partial,
        )

    def _within_time_window(self, posting, candidate) -> bool:
        window = self.config.time_window
        if window is None:
            return True
        return abs(candidate.scheduled_time - posting.scheduled_time) <= window


def find_candidates(posting, pool: Iterable, config: Optional[MatchingConfig] = None) -> List[MatchCandidate]:
    """Return every posting in ``pool`` that matches ``posting``, unranked."""
    return CandidateFilter(config).find_candidates(posting, pool)


@dataclass
class RouteMatch:
    """A posting whose route carries a searched trip."""
    posting: object
    pickup: ProjectedPoint
    dropoff: ProjectedPoint
    passenger_distance_km: float
    price: float
    is_partial_match: bool


def search_along_routes(
    postings: Iterable,
    origin: Tuple[float, float],
    destination: Tuple[float, float],
    config: Optional[MatchingConfig] = None,
) -> List[RouteMatch]:
    """
    Find postings whose routes pass the trip's origin and then its destination.

    Postings without a route, or with an unusable one, are skipped.
    """
    config = config or MatchingConfig()
    results = []

    for posting in postings:
        if not posting.route_geometry:
            continue

        try:
            route = Route.from_polyline(posting.route_geometry)
        except (MalformedPolylineError, DegeneratePathError) as e:
            logger.warning(f"Skipping posting {posting.id} in search: {e}")
            continue

        located = locate_trip_on_route(route, origin, destination, config.radius_km)
        if not located:
            continue
        pickup, dropoff = located

        passenger_distance, price, is_partial = quote_price(
            posting, route, origin, destination, config
        )
        results.append(RouteMatch(
            posting=posting,
            pickup=pickup,
            dropoff=dropoff,
            passenger_distance_km=passenger_distance,
            price=price,
            is_partial_match=is_partial,
        ))

    return results
