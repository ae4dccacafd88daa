"""
Kafka producer and consumer clients for posting-created matching events.
"""

import asyncio
import json
import logging
import threading
from typing import Optional

from channels.db import database_sync_to_async
from django.conf import settings

from .dispatch import MatchingQueue, get_matching_queue, run_matching

logger = logging.getLogger(__name__)

POSTING_CREATED = 'POSTING_CREATED'


class MatchingEventProducer:
    """
    Async Kafka producer for publishing posting-created events.

    Uses aiokafka for asynchronous message production. When Kafka is not
    reachable the event is handed to the in-process matching queue instead.
    """

    def __init__(self):
        self.producer = None
        self.topic = settings.KAFKA_MATCHING_TOPIC
        self.bootstrap_servers = settings.KAFKA_BOOTSTRAP_SERVERS

    async def start(self):
        """Start the Kafka producer."""
        try:
            from aiokafka import AIOKafkaProducer

            self.producer = AIOKafkaProducer(
                bootstrap_servers=self.bootstrap_servers,
                value_serializer=lambda v: json.dumps(v).encode('utf-8'),
            )
            await self.producer.start()
            logger.info("Kafka producer started")
        except Exception as e:
            logger.warning(f"Failed to start Kafka producer: {e}. Running without Kafka.")
            self.producer = None

    async def stop(self):
        """Stop the Kafka producer."""
        if self.producer:
            await self.producer.stop()
            logger.info("Kafka producer stopped")

    async def publish_posting_created(self, posting_id):
        """
        Publish a posting-created event to Kafka.

        Args:
            posting_id: Primary key of the committed posting
        """
        event = {'event': POSTING_CREATED, 'posting_id': posting_id}

        if not self.producer:
            logger.debug("Kafka not available, queueing matching locally")
            get_matching_queue().submit(posting_id)
            return

        try:
            await self.producer.send_and_wait(self.topic, event)
            logger.debug(f"Published matching event for posting {posting_id}")
        except Exception as e:
            logger.error(f"Failed to publish to Kafka: {e}")
            get_matching_queue().submit(posting_id)


class KafkaPublishHandler:
    """
    Queue handler that publishes posting ids through one long-lived producer.

    The producer is started on first use and keeps its own event loop, so
    the handler must run on a single worker thread.
    """

    def __init__(self, producer: Optional[MatchingEventProducer] = None):
        self.producer = producer or MatchingEventProducer()
        self.loop = None
        self.started = False

    def __call__(self, posting_id):
        if self.loop is None:
            self.loop = asyncio.new_event_loop()
        self.loop.run_until_complete(self._publish(posting_id))

    async def _publish(self, posting_id):
        if not self.started:
            # One attempt; without a producer events go to the local queue
            self.started = True
            await self.producer.start()
        await self.producer.publish_posting_created(posting_id)


_publish_queue: Optional[MatchingQueue] = None
_publish_lock = threading.Lock()


def get_publish_queue() -> MatchingQueue:
    """Return the process-wide publish queue, starting its worker on first use."""
    global _publish_queue
    with _publish_lock:
        if _publish_queue is None:
            _publish_queue = MatchingQueue(worker_count=1, handler=KafkaPublishHandler())
        publish_queue = _publish_queue
    publish_queue.start()
    return publish_queue


def publish_posting_created(posting_id):
    """
    Hand a posting id to the Kafka publish worker.

    Safe to call from an on_commit hook: the caller never waits on the
    broker.
    """
    get_publish_queue().submit(posting_id)


class MatchingEventConsumer:
    """
    Async Kafka consumer that runs matching for posting-created events.

    Each event is processed on a worker thread so the blocking store query
    does not stall the event loop.
    """

    def __init__(self, handler=run_matching):
        self.consumer = None
        self.topic = settings.KAFKA_MATCHING_TOPIC
        self.bootstrap_servers = settings.KAFKA_BOOTSTRAP_SERVERS
        self.handler = database_sync_to_async(handler)
        self.running = False

    async def start(self):
        """Start the Kafka consumer."""
        try:
            from aiokafka import AIOKafkaConsumer

            self.consumer = AIOKafkaConsumer(
                self.topic,
                bootstrap_servers=self.bootstrap_servers,
                value_deserializer=lambda m: json.loads(m.decode('utf-8')),
                group_id='posting-matching-workers',
                auto_offset_reset='latest',
            )
            await self.consumer.start()
            self.running = True
            logger.info("Kafka consumer started")
        except Exception as e:
            logger.warning(f"Failed to start Kafka consumer: {e}")
            self.consumer = None
            self.running = False

    async def stop(self):
        """Stop the Kafka consumer."""
        self.running = False
        if self.consumer:
            await self.consumer.stop()
            logger.info("Kafka consumer stopped")

    async def handle_event(self, event: dict):
        """Run matching for one event; failures are logged, never raised."""
        if event.get('event') != POSTING_CREATED or not event.get('posting_id'):
            logger.debug(f"Ignoring event {event}")
            return

        posting_id = event['posting_id']
        try:
            await self.handler(posting_id)
        except Exception:
            logger.exception(f"Background matching failed for posting {posting_id}")

    async def consume(self):
        """
        Consume events until stopped.

        This method runs indefinitely and should be started as a background task.
        """
        if not self.consumer:
            logger.warning("Consumer not initialized, cannot consume messages")
            return

        try:
            async for message in self.consumer:
                if not self.running:
                    break
                await self.handle_event(message.value)
        except Exception as e:
            logger.error(f"Error consuming messages: {e}")


# Global consumer instance for management commands
_consumer_instance: Optional[MatchingEventConsumer] = None


async def start_kafka_consumer():
    """Start the global Kafka consumer."""
    global _consumer_instance
    _consumer_instance = MatchingEventConsumer()
    await _consumer_instance.start()
    await _consumer_instance.consume()


async def stop_kafka_consumer():
    """Stop the global Kafka consumer."""
    global _consumer_instance
    if _consumer_instance:
        await _consumer_instance.stop()
        _consumer_instance = None
