"""
Match notifier: tells both sides of every match about each other.
"""

import logging
from typing import Iterable

from .exceptions import NotificationDispatchError
from .notifications import SUGGESTED_REQUEST, SUGGESTED_RIDE

logger = logging.getLogger(__name__)


def display_name(user) -> str:
    """Best human-readable name for a user."""
    full_name = user.get_full_name() if hasattr(user, 'get_full_name') else ''
    return full_name or user.get_username()


def build_match_notifications(match):
    """
    Build the pair of notifications for one match.

    The ride owner hears about the request and the request owner hears
    about the ride; each ``relatedId`` points at the other posting.

    Returns:
        List of (user_id, payload) tuples, ride owner first
    """
    ride = match.ride
    request = match.request

    to_driver = {
        'type': SUGGESTED_REQUEST,
        'relatedId': request.id,
        'data': {
            'passengerName': display_name(request.owner),
            'from': request.from_city,
            'to': request.to_city,
        },
    }
    to_passenger = {
        'type': SUGGESTED_RIDE,
        'relatedId': ride.id,
        'data': {
            'driverName': display_name(ride.owner),
            'from': ride.from_city,
            'to': ride.to_city,
        },
    }

    return [(ride.owner_id, to_driver), (request.owner_id, to_passenger)]


class MatchNotifier:
    """
    Sends match proposals through an injected sink.

    The sink only needs an ``async send(user_id, payload)`` method. A
    failure for one recipient is logged and does not stop the others.
    Repeated runs for the same posting send repeated notifications.
    """

    def __init__(self, sink):
        self.sink = sink

    async def notify_matches(self, posting, candidates: Iterable) -> int:
        """
        Notify both parties of every candidate.

        Returns:
            Number of notifications delivered
        """
        delivered = 0

        for match in candidates:
            for user_id, payload in build_match_notifications(match):
                try:
                    await self.sink.send(user_id, payload)
                    delivered += 1
                except NotificationDispatchError as e:
                    logger.error(f"Notification dispatch failed for posting {posting.id}: {e}")
                except Exception as e:
                    logger.error(
                        f"Unexpected error notifying user {user_id} about posting {posting.id}: {e}"
                    )

        if delivered:
            logger.info(f"Sent {delivered} match notifications for posting {posting.id}")
        return delivered
