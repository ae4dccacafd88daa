"""
Background handoff for matching runs.

Creating a posting enqueues its id once the transaction commits. Worker
threads drain a bounded queue and run the matcher; a full queue drops the
job. Nothing here is allowed to fail the request that created the posting.
"""

import logging
import queue
import threading
from typing import Callable, Optional

from asgiref.sync import async_to_sync
from django.conf import settings
from django.core.exceptions import ObjectDoesNotExist
from django.db import close_old_connections

from .services.exceptions import (
    DegeneratePathError,
    MalformedPolylineError,
    SpatialQueryError,
)
from .services.matching import CandidateFilter, MatchingConfig
from .services.notifications import ChannelLayerNotificationSink
from .services.notifier import MatchNotifier
from .services.route import Route
from .services.store import PostingStore

logger = logging.getLogger(__name__)

_STOP = object()


def run_matching(
    posting_id,
    store: Optional[PostingStore] = None,
    notifier: Optional[MatchNotifier] = None,
    config: Optional[MatchingConfig] = None,
) -> int:
    """
    Find and notify matches for one newly created posting.

    Returns:
        Number of match candidates found
    """
    store = store or PostingStore()

    try:
        posting = store.get_posting(posting_id)
    except ObjectDoesNotExist:
        logger.warning(f"Posting {posting_id} no longer exists, skipping matching")
        return 0

    if not posting.is_matchable:
        logger.debug(f"Posting {posting_id} is not eligible for matching")
        return 0

    config = config or MatchingConfig.from_settings()

    try:
        route = Route.from_polyline(posting.route_geometry)
    except (MalformedPolylineError, DegeneratePathError) as e:
        logger.warning(f"Posting {posting_id} excluded from matching: {e}")
        return 0

    try:
        pool = store.find_active_candidates(posting, route, config.radius_km, config.time_window)
    except SpatialQueryError as e:
        logger.error(f"Matching aborted for posting {posting_id}: {e}")
        return 0

    candidates = CandidateFilter(config).find_candidates(posting, pool, route=route)
    logger.info(f"Found {len(candidates)} potential matches for posting {posting_id}")

    if candidates:
        notifier = notifier or MatchNotifier(ChannelLayerNotificationSink())
        async_to_sync(notifier.notify_matches)(posting, candidates)

    return len(candidates)


class MatchingQueue:
    """
    Bounded work queue drained by background worker threads.

    ``process_pending`` drains the queue on the calling thread, which is
    how tests and one-off commands run jobs deterministically.
    """

    def __init__(
        self,
        maxsize: Optional[int] = None,
        worker_count: Optional[int] = None,
        handler: Callable = run_matching,
    ):
        self.maxsize = maxsize if maxsize is not None else settings.MATCHING_QUEUE_MAXSIZE
        self.worker_count = worker_count if worker_count is not None else settings.MATCHING_WORKER_COUNT
        self.handler = handler
        self.queue = queue.Queue(maxsize=self.maxsize)
        self._threads = []
        self._lock = threading.Lock()

    def submit(self, posting_id) -> bool:
        """Queue a posting for matching. Returns False if the job was dropped."""
        try:
            self.queue.put_nowait(posting_id)
        except queue.Full:
            logger.warning(f"Matching queue full, dropping job for posting {posting_id}")
            return False
        return True

    @property
    def is_running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)

    def start(self):
        with self._lock:
            if self.is_running:
                return
            self._threads = [
                threading.Thread(
                    target=self._work,
                    name=f"matching-worker-{i}",
                    daemon=True,
                )
                for i in range(self.worker_count)
            ]
            for thread in self._threads:
                thread.start()
        logger.info(f"Started {self.worker_count} matching worker(s)")

    def stop(self, timeout: Optional[float] = None):
        with self._lock:
            threads, self._threads = self._threads, []
        for _ in threads:
            self.queue.put(_STOP)
        for thread in threads:
            thread.join(timeout)

    def process_pending(self) -> int:
        """Run every queued job on the current thread."""
        processed = 0
        while True:
            try:
                posting_id = self.queue.get_nowait()
            except queue.Empty:
                return processed
            try:
                if posting_id is not _STOP:
                    self._handle(posting_id)
                    processed += 1
            finally:
                self.queue.task_done()

    def _work(self):
        while True:
            posting_id = self.queue.get()
            try:
                if posting_id is _STOP:
                    return
                self._handle(posting_id)
            finally:
                close_old_connections()
                self.queue.task_done()

    def _handle(self, posting_id):
        try:
            self.handler(posting_id)
        except Exception:
            logger.exception(f"Background matching failed for posting {posting_id}")


_queue: Optional[MatchingQueue] = None
_queue_lock = threading.Lock()


def get_matching_queue() -> MatchingQueue:
    """Return the process-wide queue, starting its workers on first use."""
    global _queue
    with _queue_lock:
        if _queue is None:
            _queue = MatchingQueue()
        matching_queue = _queue
    matching_queue.start()
    return matching_queue


def enqueue_matching(posting_id):
    """Hand a committed posting to the configured matching backend."""
    try:
        if settings.MATCHING_BROKER == 'kafka':
            from .kafka_client import publish_posting_created
            publish_posting_created(posting_id)
        else:
            get_matching_queue().submit(posting_id)
    except Exception:
        logger.exception(f"Could not enqueue matching for posting {posting_id}")
