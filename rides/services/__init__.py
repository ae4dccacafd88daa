"""Services module for ride matching and pricing logic."""

from .directions import GoogleDirectionsService
from .geometry import DistanceService
from .matching import CandidateFilter, MatchingConfig, find_candidates
from .notifications import ChannelLayerNotificationSink
from .notifier import MatchNotifier
from .pricing import compute_partial_price
from .route import Route
from .store import PostingStore

__all__ = [
    'GoogleDirectionsService',
    'DistanceService',
    'CandidateFilter',
    'MatchingConfig',
    'find_candidates',
    'ChannelLayerNotificationSink',
    'MatchNotifier',
    'compute_partial_price',
    'Route',
    'PostingStore',
]
