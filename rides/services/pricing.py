"""
Partial-route pricing.

A passenger riding part of a route pays the full price scaled by the
ratio of their direct trip distance to the full route distance, rounded
up to the currency step and never below the minimum fare. This is a
simple proportional model, not a shortest-path cost.
"""

import math

DEFAULT_ROUNDING_STEP = 5
DEFAULT_MINIMUM_FARE = 10


def round_up_to_step(amount: float, step: float = DEFAULT_ROUNDING_STEP) -> float:
    """Round ``amount`` up to the nearest multiple of ``step``."""
    if step <= 0:
        return amount
    return math.ceil(amount / step) * step


def compute_partial_price(
    full_price: float,
    full_route_distance_km: float,
    passenger_distance_km: float,
    rounding_step: float = DEFAULT_ROUNDING_STEP,
    minimum_fare: float = DEFAULT_MINIMUM_FARE,
) -> float:
    """
    Price a sub-segment of a route.

    Args:
        full_price: Price of the whole origin -> destination trip
        full_route_distance_km: Length of the whole route
        passenger_distance_km: Direct distance between the passenger's
            own origin and destination
        rounding_step: Currency rounding granularity
        minimum_fare: Floor applied after rounding

    Returns:
        The partial price. When the route distance is unknown (<= 0) the
        full price is returned unmodified.
    """
    if full_route_distance_km is None or full_route_distance_km <= 0:
        return full_price

    raw_price = full_price * (passenger_distance_km / full_route_distance_km)
    return max(round_up_to_step(raw_price, rounding_step), minimum_fare)
