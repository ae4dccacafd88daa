"""
Notification sink backed by the database and the Channels layer.
"""

import logging

from channels.db import database_sync_to_async
from channels.layers import get_channel_layer

from .exceptions import NotificationDispatchError

logger = logging.getLogger(__name__)

SUGGESTED_RIDE = 'SUGGESTED_RIDE'
SUGGESTED_REQUEST = 'SUGGESTED_REQUEST'

NOTIFICATION_TEMPLATES = {
    SUGGESTED_RIDE: (
        "Suggested ride",
        "{driverName} is driving from {from} to {to}. This ride may suit your request.",
    ),
    SUGGESTED_REQUEST: (
        "Suggested passenger",
        "{passengerName} is looking for a ride from {from} to {to} along your route.",
    ),
}

DEFAULT_TEMPLATE = ("Notification", "You have a new update.")


def render_notification(payload: dict):
    """Fill the title and message templates for a payload's type."""
    title, message = NOTIFICATION_TEMPLATES.get(payload.get('type'), DEFAULT_TEMPLATE)
    for key, value in (payload.get('data') or {}).items():
        placeholder = '{' + key + '}'
        title = title.replace(placeholder, str(value))
        message = message.replace(placeholder, str(value))
    return title, message


def user_group_name(user_id) -> str:
    """Get the channel group name for a user's notifications."""
    return f"user_notifications_{user_id}"


class ChannelLayerNotificationSink:
    """
    Persists a Notification row and pushes it to the user's websocket group.

    Any failure is raised as NotificationDispatchError for the caller to
    log and skip.
    """

    def __init__(self, channel_layer=None):
        self.channel_layer = channel_layer

    async def send(self, user_id, payload: dict):
        try:
            notification = await self._store(user_id, payload)
            channel_layer = self.channel_layer or get_channel_layer()
            if channel_layer is not None:
                await channel_layer.group_send(
                    user_group_name(user_id),
                    {
                        'type': 'notification_message',
                        'data': notification,
                    }
                )
        except Exception as e:
            raise NotificationDispatchError(user_id, f"Failed to notify user {user_id}: {e}") from e

    @database_sync_to_async
    def _store(self, user_id, payload: dict) -> dict:
        from ..models import Notification

        title, message = render_notification(payload)
        notification = Notification.objects.create(
            user_id=user_id,
            type=payload['type'],
            title=title,
            message=message,
            related_id=str(payload.get('relatedId', '')),
            data=payload.get('data') or {},
        )
        logger.debug(f"Stored {notification.type} notification {notification.id} for user {user_id}")

        return {
            'id': notification.id,
            'type': notification.type,
            'title': notification.title,
            'message': notification.message,
            'relatedId': notification.related_id,
            'data': notification.data,
            'date_added': notification.date_added.isoformat(),
        }
