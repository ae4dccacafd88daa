"""
Management command to run the Kafka consumer for posting matching events.
"""

import asyncio
import signal
from django.core.management.base import BaseCommand
from rides.kafka_client import start_kafka_consumer, stop_kafka_consumer


class Command(BaseCommand):
    help = 'Run the Kafka consumer that matches newly created postings'

    def handle(self, *args, **options):
        self.stdout.write(self.style.SUCCESS('Starting matching consumer...'))

        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)

        # Handle shutdown signals
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(
                sig,
                lambda: loop.create_task(self._shutdown())
            )

        try:
            loop.run_until_complete(start_kafka_consumer())
        except KeyboardInterrupt:
            self.stdout.write(self.style.WARNING('Received interrupt signal'))
        finally:
            loop.run_until_complete(stop_kafka_consumer())
            loop.close()
            self.stdout.write(self.style.SUCCESS('Matching consumer stopped'))

    async def _shutdown(self):
        self.stdout.write(self.style.WARNING('Shutting down...'))
        await stop_kafka_consumer()
