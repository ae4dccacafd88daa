"""
WebSocket consumer for real-time match notifications.
"""

import logging
from channels.generic.websocket import AsyncJsonWebsocketConsumer

from .services.notifications import user_group_name

logger = logging.getLogger(__name__)


class NotificationConsumer(AsyncJsonWebsocketConsumer):
    """
    WebSocket consumer that pushes notifications to the signed-in user.

    Message Types:
    - PING: Keep-alive, answered with PONG

    Broadcast Message:
    - NEW_NOTIFICATION: Sent when a notification is stored for the user
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.group_name = None

    async def connect(self):
        """Handle WebSocket connection."""
        user = self.scope.get('user')
        if user is None or not user.is_authenticated:
            await self.close(code=4401)
            return

        self.group_name = user_group_name(user.pk)
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()
        logger.info(f"WebSocket connected: {self.channel_name} for user {user.pk}")

    async def disconnect(self, close_code):
        """Handle WebSocket disconnection."""
        if self.group_name:
            await self.channel_layer.group_discard(self.group_name, self.channel_name)

        logger.info(f"WebSocket disconnected: {self.channel_name}, code: {close_code}")

    async def receive_json(self, content):
        """Handle incoming JSON messages."""
        message_type = content.get('type')

        if message_type == 'PING':
            await self.send_json({'type': 'PONG', 'data': {}})
        else:
            await self.send_json({
                'type': 'ERROR',
                'data': {'message': f'Unknown message type: {message_type}'}
            })

    async def notification_message(self, event):
        """Handle a notification broadcast from the notification sink."""
        await self.send_json({
            'type': 'NEW_NOTIFICATION',
            'data': event['data']
        })
