"""
Tests for the rides application.

Covers:
- Geometry helpers and place-name normalization
- Route decoding and projection
- Partial pricing
- Candidate filtering
- Match notification and background dispatch
- Posting and search API
- Real-time notifications (WebSocket)
"""

import asyncio
import math
import os
import random
import threading
import time
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from channels.testing import WebsocketCommunicator
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from django.db import DatabaseError
from django.test import TestCase, TransactionTestCase, override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from rideshare.settings import env_optional_float

from .consumers import NotificationConsumer
from .dispatch import MatchingQueue, enqueue_matching, run_matching
from .kafka_client import (
    KafkaPublishHandler,
    MatchingEventConsumer,
    MatchingEventProducer,
    POSTING_CREATED,
    publish_posting_created,
)
from .models import Notification, Posting
from .services.directions import DirectionsAPIError, GoogleDirectionsService, RouteGeometry
from .services.exceptions import (
    DegeneratePathError,
    MalformedPolylineError,
    NotificationDispatchError,
    SpatialQueryError,
)
from .services.geometry import EARTH_RADIUS_KM, DistanceService, normalize_place_name
from .services.matching import CandidateFilter, MatchingConfig, find_candidates, search_along_routes
from .services.notifications import ChannelLayerNotificationSink, user_group_name
from .services.notifier import MatchNotifier
from .services.pricing import compute_partial_price, round_up_to_step
from .services.route import Route, closest_point_on_path, decode, encode
from .services.store import PostingStore, routes_near_trip

User = get_user_model()

# Google's reference polyline example
GOOGLE_POLYLINE = "_p~iF~ps|U_ulLnnqC_mqNvxq`@"
GOOGLE_POINTS = [(38.5, -120.2), (40.7, -120.95), (43.252, -126.453)]

# Eastern Cairo to Giza
CAIRO_ROUTE = [(30.05, 31.35), (30.03, 31.20)]
CAIRO_POLYLINE = encode(CAIRO_ROUTE)

# Straight north-south route along the 31.0 meridian
MERIDIAN_ROUTE = [(30.0, 31.0), (30.2, 31.0)]


def offset_east(lat, lng, distance_km):
    """Point ``distance_km`` due east of (lat, lng) by Haversine distance."""
    delta = 2 * math.asin(
        math.sin(distance_km / (2 * EARTH_RADIUS_KM)) / math.cos(math.radians(lat))
    )
    return (lat, lng + math.degrees(delta))


def build_posting(owner, kind, origin, destination, route=None, pk=None, **extra):
    """Build an unsaved posting; ``route`` defaults to a straight origin->destination line."""
    route_points = route if route is not None else [origin, destination]
    fields = {
        'id': pk,
        'kind': kind,
        'owner': owner,
        'starting_latitude': origin[0],
        'starting_longitude': origin[1],
        'destination_latitude': destination[0],
        'destination_longitude': destination[1],
        'route_geometry': encode(route_points) if route_points else '',
        'scheduled_time': timezone.now() + timedelta(days=1),
        'price': 55,
        'from_city': 'Cairo',
        'to_city': 'Giza',
    }
    fields.update(extra)
    return Posting(**fields)


class GeometryTests(TestCase):
    """Tests for distance helpers and name normalization."""

    def test_haversine_distance_same_point(self):
        """Test distance between same point is zero."""
        self.assertEqual(DistanceService.haversine_km(30.05, 31.35, 30.05, 31.35), 0)

    def test_haversine_distance_known_points(self):
        """Test distance calculation with known points."""
        # Lagos to Ibadan is approximately 128km
        distance = DistanceService.haversine_km(6.5244, 3.3792, 7.3775, 3.9470)
        self.assertGreater(distance, 100)
        self.assertLess(distance, 150)

    def test_distance_between_is_symmetric(self):
        there = DistanceService.distance_between((30.05, 31.35), (30.03, 31.20))
        back = DistanceService.distance_between((30.03, 31.20), (30.05, 31.35))
        self.assertAlmostEqual(there, back, places=9)

    def test_one_degree_along_meridian(self):
        distance = DistanceService.distance_between((0.0, 0.0), (1.0, 0.0))
        self.assertAlmostEqual(distance, math.pi * 6371 / 180, places=9)

    def test_normalize_drops_governorate_and_case(self):
        self.assertEqual(normalize_place_name("Cairo Governorate"), "cairo")

    def test_normalize_collapses_whitespace_and_punctuation(self):
        self.assertEqual(normalize_place_name("  Nasr   City! "), "nasr city")

    def test_normalize_strips_latin_diacritics(self):
        self.assertEqual(normalize_place_name("Héliopolis"), "heliopolis")

    def test_normalize_folds_arabic_variants(self):
        self.assertEqual(normalize_place_name("محافظة الجيزة"), "الجيزه")
        self.assertEqual(normalize_place_name("أسيوط"), "اسيوط")
        self.assertEqual(normalize_place_name("المنى"), "المني")

    def test_normalize_empty(self):
        self.assertEqual(normalize_place_name(None), "")
        self.assertEqual(normalize_place_name(""), "")


class RouteTests(TestCase):
    """Tests for polyline decoding and route projection."""

    def test_decode_reference_polyline(self):
        points = decode(GOOGLE_POLYLINE)
        self.assertEqual(len(points), 3)
        for (lat, lng), (exp_lat, exp_lng) in zip(points, GOOGLE_POINTS):
            self.assertAlmostEqual(lat, exp_lat, places=5)
            self.assertAlmostEqual(lng, exp_lng, places=5)

    def test_encode_reference_points(self):
        self.assertEqual(encode(GOOGLE_POINTS), GOOGLE_POLYLINE)

    def test_decode_empty(self):
        self.assertEqual(decode(""), [])

    def test_round_trip_within_precision(self):
        rng = random.Random(7)
        for _ in range(5):
            points = [
                (rng.uniform(-89.9, 89.9), rng.uniform(-179.9, 179.9))
                for _ in range(rng.randint(1, 25))
            ]
            decoded = decode(encode(points))
            self.assertEqual(len(decoded), len(points))
            for (lat, lng), (exp_lat, exp_lng) in zip(decoded, points):
                self.assertLessEqual(abs(lat - exp_lat), 1e-5)
                self.assertLessEqual(abs(lng - exp_lng), 1e-5)

    def test_decode_rejects_invalid_characters(self):
        with self.assertRaises(MalformedPolylineError):
            decode("not a polyline!")

    def test_decode_rejects_truncated_input(self):
        with self.assertRaises(MalformedPolylineError):
            decode("_p~iF~ps|")

    def test_decode_rejects_non_string(self):
        with self.assertRaises(MalformedPolylineError):
            decode(12345)

    def test_decode_rejects_out_of_range_coordinates(self):
        with self.assertRaises(MalformedPolylineError):
            decode(encode([(95.0, 10.0), (10.0, 10.0)]))

    def test_single_point_route_is_degenerate(self):
        with self.assertRaises(DegeneratePathError):
            Route([(30.0, 31.0)])
        with self.assertRaises(DegeneratePathError):
            closest_point_on_path([], (30.0, 31.0))

    def test_total_length(self):
        route = Route(MERIDIAN_ROUTE)
        self.assertAlmostEqual(route.total_length_km, 0.2 * math.pi * 6371 / 180, places=6)

    def test_perpendicular_projection_midpoint(self):
        projected, fraction = closest_point_on_path(MERIDIAN_ROUTE, (30.1, 31.01))
        self.assertAlmostEqual(projected[0], 30.1, places=6)
        self.assertAlmostEqual(projected[1], 31.0, places=6)
        self.assertAlmostEqual(fraction, 0.5, places=6)

    def test_projection_clamped_to_endpoints(self):
        route = Route(MERIDIAN_ROUTE)

        beyond = route.closest_point(30.3, 31.0)
        self.assertAlmostEqual(beyond.fraction, 1.0)
        self.assertAlmostEqual(beyond.latitude, 30.2, places=6)

        before = route.closest_point(29.9, 31.0)
        self.assertEqual(before.fraction, 0.0)
        self.assertEqual(before.coords, (30.0, 31.0))

    def test_projection_picks_nearest_segment(self):
        route = Route([(0.0, 0.0), (0.0, 1.0), (1.0, 1.0)])
        result = route.closest_point(0.5, 1.1)

        self.assertEqual(result.segment_index, 1)
        self.assertAlmostEqual(result.fraction, 0.75, places=6)
        self.assertAlmostEqual(result.longitude, 1.0, places=6)
        self.assertGreater(result.distance_km, 10)
        self.assertLess(result.distance_km, 12)

    def test_zero_length_route_projects_to_start(self):
        route = Route([(30.0, 31.0), (30.0, 31.0)])
        self.assertEqual(route.closest_point(30.1, 31.0).fraction, 0.0)


class PricingTests(TestCase):
    """Tests for the proportional partial price model."""

    def test_price_floor(self):
        """Raw price of 0.2 is lifted to the minimum fare."""
        self.assertEqual(compute_partial_price(20, 100, 1), 10)

    def test_rounds_up_to_five(self):
        self.assertEqual(compute_partial_price(100, 100, 51), 55)

    def test_exact_multiple_is_kept(self):
        self.assertEqual(compute_partial_price(100, 100, 50), 50)

    def test_small_price_rounds_to_five_then_floor(self):
        self.assertEqual(compute_partial_price(10, 100, 1, minimum_fare=0), 5)
        self.assertEqual(compute_partial_price(10, 100, 1), 10)

    def test_unknown_route_distance_returns_full_price(self):
        self.assertEqual(compute_partial_price(37, 0, 5), 37)
        self.assertEqual(compute_partial_price(37, -1, 5), 37)
        self.assertEqual(compute_partial_price(37, None, 5), 37)

    def test_never_below_floor(self):
        for full_price in (0, 1, 12, 55, 300):
            for passenger_km in (0, 0.5, 3, 19.9):
                price = compute_partial_price(full_price, 20, passenger_km, minimum_fare=10)
                self.assertGreaterEqual(price, 10)

    def test_round_up_to_step(self):
        self.assertEqual(round_up_to_step(51, 5), 55)
        self.assertEqual(round_up_to_step(50, 5), 50)
        self.assertEqual(round_up_to_step(0.1, 5), 5)


class CandidateFilterTests(TestCase):
    """Tests for the ride/request candidate filter."""

    def setUp(self):
        self.driver = User.objects.create_user(username='driver', password='pass')
        self.passenger = User.objects.create_user(username='passenger', password='pass')
        self.other_passenger = User.objects.create_user(username='other', password='pass')

        self.ride = build_posting(
            self.driver, Posting.Kind.RIDE,
            CAIRO_ROUTE[0], CAIRO_ROUTE[-1],
            route=CAIRO_ROUTE, pk=1, price=55, route_distance_km=20,
        )
        self.config = MatchingConfig(radius_km=2.0)

    def _request(self, origin, destination, owner=None, pk=2, **extra):
        return build_posting(
            owner or self.passenger, Posting.Kind.REQUEST,
            origin, destination, pk=pk, **extra
        )

    def test_scenario_partial_match_accepted(self):
        """A request along the route in travel order is accepted and pro-rated."""
        request = self._request((30.045, 31.34), (30.035, 31.25))

        matches = find_candidates(self.ride, [request], self.config)

        self.assertEqual(len(matches), 1)
        match = matches[0]
        self.assertIs(match.candidate, request)
        self.assertLess(match.pickup.fraction, match.dropoff.fraction)
        self.assertLessEqual(match.pickup.distance_km, 2.0)
        self.assertLessEqual(match.dropoff.distance_km, 2.0)
        self.assertTrue(match.is_partial_match)

        direct_km = DistanceService.distance_between((30.045, 31.34), (30.035, 31.25))
        self.assertEqual(match.price, compute_partial_price(55, 20, direct_km))
        self.assertEqual(match.price, 25)

    def test_scenario_swapped_direction_rejected(self):
        request = self._request((30.035, 31.25), (30.045, 31.34))
        self.assertEqual(find_candidates(self.ride, [request], self.config), [])

    def test_scenario_far_from_route_rejected(self):
        request = self._request((30.09, 31.32), (30.08, 31.22))
        self.assertEqual(find_candidates(self.ride, [request], MatchingConfig(radius_km=3.0)), [])

    def test_proximity_boundary(self):
        """Origin 1m inside the radius matches; 1m outside does not."""
        ride = build_posting(
            self.driver, Posting.Kind.RIDE,
            MERIDIAN_ROUTE[0], MERIDIAN_ROUTE[-1], route=MERIDIAN_ROUTE, pk=10,
        )
        config = MatchingConfig(radius_km=2.0)
        destination = (30.15, 31.0)

        inside = self._request(offset_east(30.05, 31.0, 2.0 - 0.001), destination)
        outside = self._request(offset_east(30.05, 31.0, 2.0 + 0.001), destination)

        self.assertEqual(len(find_candidates(ride, [inside], config)), 1)
        self.assertEqual(find_candidates(ride, [outside], config), [])

    def test_reversing_pickup_and_dropoff_flips_acceptance(self):
        paths = [
            [(30.0, 31.0), (30.02, 31.0), (30.04, 31.0), (30.06, 31.0), (30.08, 31.0)],
            [(0.0, 0.0), (0.0, 0.02), (0.02, 0.02), (0.04, 0.02), (0.04, 0.05)],
            [(-33.9, 18.4), (-33.88, 18.43), (-33.85, 18.47), (-33.81, 18.5), (-33.8, 18.55)],
        ]
        config = MatchingConfig(radius_km=1.0, time_window=None)

        for path in paths:
            ride = build_posting(self.driver, Posting.Kind.RIDE, path[0], path[-1], route=path, pk=20)
            forward = self._request(path[1], path[3])
            backward = self._request(path[3], path[1])

            self.assertEqual(len(find_candidates(ride, [forward], config)), 1)
            self.assertEqual(find_candidates(ride, [backward], config), [])

    def test_same_projection_rejected(self):
        request = self._request((30.04, 31.275), (30.04, 31.275))
        self.assertEqual(find_candidates(self.ride, [request], self.config), [])

    def test_never_matches_itself_or_same_owner(self):
        own_request = self._request((30.045, 31.34), (30.035, 31.25), owner=self.driver, pk=3)
        same_id = self._request((30.045, 31.34), (30.035, 31.25), pk=1)

        matches = find_candidates(self.ride, [self.ride, own_request, same_id], self.config)

        self.assertEqual(matches, [])

    def test_opposite_kind_only(self):
        other_ride = build_posting(
            self.passenger, Posting.Kind.RIDE, (30.045, 31.34), (30.035, 31.25), pk=4
        )
        self.assertEqual(find_candidates(self.ride, [other_ride], self.config), [])

    def test_inactive_or_routeless_candidates_excluded(self):
        cancelled = self._request(
            (30.045, 31.34), (30.035, 31.25), status=Posting.Status.CANCELLED
        )
        routeless = self._request((30.045, 31.34), (30.035, 31.25), pk=5, route_geometry='')

        self.assertEqual(find_candidates(self.ride, [cancelled, routeless], self.config), [])

    def test_time_window(self):
        soon = self._request(
            (30.045, 31.34), (30.035, 31.25),
            scheduled_time=self.ride.scheduled_time + timedelta(hours=3),
        )
        later = self._request(
            (30.045, 31.34), (30.035, 31.25), pk=6,
            scheduled_time=self.ride.scheduled_time + timedelta(days=2),
        )

        matches = find_candidates(self.ride, [soon, later], self.config)
        self.assertEqual([m.candidate for m in matches], [soon])

        unbounded = MatchingConfig(radius_km=2.0, time_window=None)
        self.assertEqual(len(find_candidates(self.ride, [soon, later], unbounded)), 2)

    def test_all_qualifying_candidates_reported_in_pool_order(self):
        first = self._request((30.045, 31.34), (30.035, 31.25), pk=7)
        second = self._request((30.048, 31.33), (30.033, 31.22), owner=self.other_passenger, pk=8)

        matches = find_candidates(self.ride, [first, second], self.config)

        self.assertEqual([m.candidate for m in matches], [first, second])

    def test_posting_without_route(self):
        self.ride.route_geometry = ''
        request = self._request((30.045, 31.34), (30.035, 31.25))
        self.assertEqual(find_candidates(self.ride, [request], self.config), [])

    def test_empty_pool(self):
        self.assertEqual(find_candidates(self.ride, [], self.config), [])

    def test_malformed_posting_route_is_skipped(self):
        self.ride.route_geometry = "not a polyline!"
        request = self._request((30.045, 31.34), (30.035, 31.25))

        with self.assertLogs('rides.services.matching', level='WARNING'):
            self.assertEqual(find_candidates(self.ride, [request], self.config), [])

    def test_degenerate_posting_route_is_skipped(self):
        self.ride.route_geometry = encode([(30.05, 31.35)])
        request = self._request((30.045, 31.34), (30.035, 31.25))

        with self.assertLogs('rides.services.matching', level='WARNING'):
            self.assertEqual(find_candidates(self.ride, [request], self.config), [])

    def test_direct_match_pays_full_price(self):
        request = self._request((30.049, 31.349), (30.031, 31.201))

        matches = find_candidates(self.ride, [request], self.config)

        self.assertEqual(len(matches), 1)
        self.assertFalse(matches[0].is_partial_match)
        self.assertEqual(matches[0].price, 55)

    def test_request_posting_checks_against_its_own_route(self):
        request = build_posting(
            self.passenger, Posting.Kind.REQUEST,
            CAIRO_ROUTE[0], CAIRO_ROUTE[-1], route=CAIRO_ROUTE, pk=30,
        )
        ride = build_posting(self.driver, Posting.Kind.RIDE, (30.045, 31.34), (30.035, 31.25), pk=31)

        matches = CandidateFilter(self.config).find_candidates(request, [ride])

        self.assertEqual(len(matches), 1)
        self.assertIs(matches[0].ride, ride)
        self.assertIs(matches[0].request, request)

    def test_search_along_routes(self):
        results = search_along_routes(
            [self.ride],
            (30.045, 31.34),
            (30.035, 31.25),
            self.config,
        )

        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].price, 25)
        self.assertEqual(
            search_along_routes([self.ride], (30.035, 31.25), (30.045, 31.34), self.config),
            []
        )


class MatchNotifierTests(TestCase):
    """Tests for match notification fan-out."""

    def setUp(self):
        self.driver = User.objects.create_user(
            username='driver', first_name='Amr', last_name='Hassan'
        )
        self.passenger = User.objects.create_user(username='mona')

        self.ride = build_posting(
            self.driver, Posting.Kind.RIDE, CAIRO_ROUTE[0], CAIRO_ROUTE[-1],
            route=CAIRO_ROUTE, pk=1, route_distance_km=20,
            from_city='Nasr City', to_city='Giza',
        )
        self.request = build_posting(
            self.passenger, Posting.Kind.REQUEST, (30.045, 31.34), (30.035, 31.25),
            pk=2, from_city='Heliopolis', to_city='Zamalek',
        )
        self.sink = MagicMock()
        self.sink.send = AsyncMock()

    def _matches(self, posting, pool):
        return find_candidates(posting, pool, MatchingConfig(radius_km=2.0))

    async def test_both_sides_notified_for_new_ride(self):
        matches = self._matches(self.ride, [self.request])

        delivered = await MatchNotifier(self.sink).notify_matches(self.ride, matches)

        self.assertEqual(delivered, 2)
        self.sink.send.assert_any_await(self.driver.id, {
            'type': 'SUGGESTED_REQUEST',
            'relatedId': 2,
            'data': {'passengerName': 'mona', 'from': 'Heliopolis', 'to': 'Zamalek'},
        })
        self.sink.send.assert_any_await(self.passenger.id, {
            'type': 'SUGGESTED_RIDE',
            'relatedId': 1,
            'data': {'driverName': 'Amr Hassan', 'from': 'Nasr City', 'to': 'Giza'},
        })

    async def test_related_ids_point_at_other_posting_for_new_request(self):
        request = build_posting(
            self.passenger, Posting.Kind.REQUEST, CAIRO_ROUTE[0], CAIRO_ROUTE[-1],
            route=CAIRO_ROUTE, pk=3,
        )
        ride = build_posting(self.driver, Posting.Kind.RIDE, (30.045, 31.34), (30.035, 31.25), pk=4)
        matches = self._matches(request, [ride])

        await MatchNotifier(self.sink).notify_matches(request, matches)

        sent = {call.args[0]: call.args[1] for call in self.sink.send.await_args_list}
        self.assertEqual(sent[self.driver.id]['relatedId'], 3)
        self.assertEqual(sent[self.passenger.id]['relatedId'], 4)

    async def test_failure_for_one_recipient_does_not_stop_the_other(self):
        self.sink.send.side_effect = [
            NotificationDispatchError(self.driver.id, "socket closed"),
            None,
        ]
        matches = self._matches(self.ride, [self.request])

        with self.assertLogs('rides.services.notifier', level='ERROR'):
            delivered = await MatchNotifier(self.sink).notify_matches(self.ride, matches)

        self.assertEqual(delivered, 1)
        self.assertEqual(self.sink.send.await_count, 2)

    async def test_unexpected_sink_error_is_contained(self):
        self.sink.send.side_effect = RuntimeError("boom")
        matches = self._matches(self.ride, [self.request])

        with self.assertLogs('rides.services.notifier', level='ERROR'):
            delivered = await MatchNotifier(self.sink).notify_matches(self.ride, matches)

        self.assertEqual(delivered, 0)

    async def test_repeated_runs_notify_again(self):
        matches = self._matches(self.ride, [self.request])
        notifier = MatchNotifier(self.sink)

        await notifier.notify_matches(self.ride, matches)
        await notifier.notify_matches(self.ride, matches)

        self.assertEqual(self.sink.send.await_count, 4)


class ChannelLayerNotificationSinkTests(TransactionTestCase):
    """Tests for the database + channel layer notification sink."""

    def setUp(self):
        self.user = User.objects.create_user(username='mona')

    def test_send_stores_and_broadcasts(self):
        channel_layer = MagicMock()
        channel_layer.group_send = AsyncMock()
        sink = ChannelLayerNotificationSink(channel_layer=channel_layer)

        async_to_sync(sink.send)(self.user.id, {
            'type': 'SUGGESTED_RIDE',
            'relatedId': 42,
            'data': {'driverName': 'Amr', 'from': 'Cairo', 'to': 'Giza'},
        })

        notification = Notification.objects.get(user=self.user)
        self.assertEqual(notification.type, 'SUGGESTED_RIDE')
        self.assertEqual(notification.related_id, '42')
        self.assertIn('Amr is driving from Cairo to Giza', notification.message)

        channel_layer.group_send.assert_awaited_once()
        group, message = channel_layer.group_send.await_args.args
        self.assertEqual(group, user_group_name(self.user.id))
        self.assertEqual(message['type'], 'notification_message')
        self.assertEqual(message['data']['relatedId'], '42')

    def test_failure_raises_dispatch_error(self):
        channel_layer = MagicMock()
        channel_layer.group_send = AsyncMock(side_effect=ConnectionError("layer down"))
        sink = ChannelLayerNotificationSink(channel_layer=channel_layer)

        with self.assertRaises(NotificationDispatchError) as context:
            async_to_sync(sink.send)(self.user.id, {'type': 'SUGGESTED_RIDE', 'relatedId': 1, 'data': {}})

        self.assertEqual(context.exception.user_id, self.user.id)


class PostingStoreTests(TestCase):
    """Tests for the candidate pool query."""

    def setUp(self):
        self.driver = User.objects.create_user(username='driver')
        self.passenger = User.objects.create_user(username='passenger')
        self.ride = build_posting(
            self.driver, Posting.Kind.RIDE, CAIRO_ROUTE[0], CAIRO_ROUTE[-1], route=CAIRO_ROUTE
        )
        self.ride.save()
        self.route = Route(CAIRO_ROUTE)

    def _request(self, origin, destination, owner=None, **extra):
        posting = build_posting(owner or self.passenger, Posting.Kind.REQUEST, origin, destination, **extra)
        posting.save()
        return posting

    def test_returns_nearby_opposite_upcoming_postings(self):
        near = self._request((30.045, 31.34), (30.035, 31.25))
        self._request((31.2, 29.9), (31.1, 29.95))  # Alexandria
        self._request((30.045, 31.34), (30.035, 31.25), owner=self.driver)
        self._request((30.045, 31.34), (30.035, 31.25), status=Posting.Status.COMPLETED)
        self._request((30.045, 31.34), (30.035, 31.25), route_geometry='')
        self._request(
            (30.045, 31.34), (30.035, 31.25),
            scheduled_time=self.ride.scheduled_time + timedelta(days=3),
        )

        pool = PostingStore().find_active_candidates(
            self.ride, self.route, 3.0, timedelta(hours=24)
        )

        self.assertEqual(pool, [near])

    def test_database_error_raises_spatial_query_error(self):
        queryset = MagicMock()
        queryset.filter.return_value = queryset
        queryset.exclude.return_value = queryset
        queryset.select_related.return_value = queryset
        queryset.__iter__.side_effect = DatabaseError("connection lost")

        with self.assertLogs('rides.services.store', level='ERROR'):
            with self.assertRaises(SpatialQueryError):
                PostingStore(queryset=queryset).find_active_candidates(self.ride, self.route, 3.0)

    def test_saving_caches_route_extent(self):
        self.assertAlmostEqual(self.ride.route_min_latitude, 30.03)
        self.assertAlmostEqual(self.ride.route_max_latitude, 30.05)
        self.assertAlmostEqual(self.ride.route_min_longitude, 31.20)
        self.assertAlmostEqual(self.ride.route_max_longitude, 31.35)

        self.ride.route_geometry = ''
        self.ride.save()
        self.assertIsNone(self.ride.route_min_latitude)

    def test_routes_near_trip_uses_route_extent(self):
        alexandria = build_posting(
            self.passenger, Posting.Kind.RIDE, (31.2, 29.9), (31.1, 29.95)
        )
        alexandria.save()
        # Endpoints far from Cairo, route passes through it
        through_cairo = build_posting(
            self.passenger, Posting.Kind.RIDE, (31.2, 29.9), (24.09, 32.9),
            route=[(31.2, 29.9), (30.04, 31.28), (24.09, 32.9)],
        )
        through_cairo.save()
        unknown_extent = build_posting(
            self.passenger, Posting.Kind.RIDE, (31.2, 29.9), (31.1, 29.95)
        )
        unknown_extent.save()
        Posting.objects.filter(pk=unknown_extent.pk).update(route_min_latitude=None)

        nearby = routes_near_trip(
            Posting.objects.filter(kind=Posting.Kind.RIDE),
            (30.045, 31.34),
            (30.035, 31.25),
            2.0,
        )

        self.assertEqual(
            set(nearby.values_list('pk', flat=True)),
            {self.ride.pk, through_cairo.pk, unknown_extent.pk},
        )


class RunMatchingTests(TestCase):
    """Tests for one background matching run."""

    def setUp(self):
        self.driver = User.objects.create_user(username='driver')
        self.passenger = User.objects.create_user(username='passenger')
        self.ride = build_posting(
            self.driver, Posting.Kind.RIDE, CAIRO_ROUTE[0], CAIRO_ROUTE[-1],
            route=CAIRO_ROUTE, route_distance_km=20,
        )
        self.ride.save()
        self.request = build_posting(
            self.passenger, Posting.Kind.REQUEST, (30.045, 31.34), (30.035, 31.25)
        )
        self.request.save()

        self.sink = MagicMock()
        self.sink.send = AsyncMock()
        self.notifier = MatchNotifier(self.sink)

    def test_matches_and_notifies(self):
        found = run_matching(self.ride.id, notifier=self.notifier)

        self.assertEqual(found, 1)
        recipients = {call.args[0] for call in self.sink.send.await_args_list}
        self.assertEqual(recipients, {self.driver.id, self.passenger.id})

    def test_missing_posting(self):
        with self.assertLogs('rides.dispatch', level='WARNING'):
            self.assertEqual(run_matching(999999, notifier=self.notifier), 0)
        self.sink.send.assert_not_awaited()

    def test_inactive_posting_is_not_matched(self):
        self.ride.status = Posting.Status.CANCELLED
        self.ride.save()

        self.assertEqual(run_matching(self.ride.id, notifier=self.notifier), 0)
        self.sink.send.assert_not_awaited()

    def test_malformed_route_is_excluded(self):
        Posting.objects.filter(pk=self.ride.pk).update(route_geometry="bad polyline!")

        with self.assertLogs('rides.dispatch', level='WARNING'):
            self.assertEqual(run_matching(self.ride.id, notifier=self.notifier), 0)

    def test_store_failure_aborts_run(self):
        store = MagicMock()
        store.get_posting.return_value = self.ride
        store.find_active_candidates.side_effect = SpatialQueryError("down")

        with self.assertLogs('rides.dispatch', level='ERROR'):
            self.assertEqual(run_matching(self.ride.id, store=store, notifier=self.notifier), 0)
        self.sink.send.assert_not_awaited()


class MatchingQueueTests(TestCase):
    """Tests for the bounded background queue."""

    def test_process_pending_runs_jobs_in_order(self):
        handled = []
        matching_queue = MatchingQueue(maxsize=5, worker_count=1, handler=handled.append)

        matching_queue.submit(1)
        matching_queue.submit(2)

        self.assertEqual(matching_queue.process_pending(), 2)
        self.assertEqual(handled, [1, 2])

    def test_full_queue_drops_job(self):
        matching_queue = MatchingQueue(maxsize=1, worker_count=1, handler=lambda posting_id: None)

        self.assertTrue(matching_queue.submit(1))
        with self.assertLogs('rides.dispatch', level='WARNING'):
            self.assertFalse(matching_queue.submit(2))

    def test_handler_failure_is_logged_not_raised(self):
        def explode(posting_id):
            raise RuntimeError("store exploded")

        matching_queue = MatchingQueue(maxsize=5, worker_count=1, handler=explode)
        matching_queue.submit(1)

        with self.assertLogs('rides.dispatch', level='ERROR'):
            self.assertEqual(matching_queue.process_pending(), 1)

    def test_worker_thread_drains_queue(self):
        done = threading.Event()
        handled = []

        def handler(posting_id):
            handled.append(posting_id)
            done.set()

        matching_queue = MatchingQueue(maxsize=5, worker_count=1, handler=handler)
        matching_queue.start()
        try:
            matching_queue.submit(7)
            self.assertTrue(done.wait(timeout=5))
        finally:
            matching_queue.stop(timeout=5)

        self.assertEqual(handled, [7])
        self.assertFalse(matching_queue.is_running)

    @patch('rides.dispatch.get_matching_queue')
    def test_enqueue_uses_local_queue(self, mock_queue):
        enqueue_matching(5)
        mock_queue.return_value.submit.assert_called_once_with(5)

    @override_settings(MATCHING_BROKER='kafka')
    @patch('rides.kafka_client.publish_posting_created')
    def test_enqueue_uses_kafka_when_configured(self, mock_publish):
        enqueue_matching(5)
        mock_publish.assert_called_once_with(5)

    @patch('rides.dispatch.get_matching_queue', side_effect=RuntimeError("no threads"))
    def test_enqueue_failure_is_contained(self, mock_queue):
        with self.assertLogs('rides.dispatch', level='ERROR'):
            enqueue_matching(5)


class KafkaClientTests(TestCase):
    """Tests for the Kafka matching event clients."""

    @patch('rides.kafka_client.get_matching_queue')
    def test_producer_without_kafka_queues_locally(self, mock_queue):
        producer = MatchingEventProducer()

        async_to_sync(producer.publish_posting_created)(3)

        mock_queue.return_value.submit.assert_called_once_with(3)

    def test_producer_publishes_event(self):
        producer = MatchingEventProducer()
        producer.producer = MagicMock()
        producer.producer.send_and_wait = AsyncMock()

        async_to_sync(producer.publish_posting_created)(3)

        producer.producer.send_and_wait.assert_awaited_once_with(
            producer.topic, {'event': POSTING_CREATED, 'posting_id': 3}
        )

    @patch('rides.kafka_client.get_matching_queue')
    def test_producer_send_failure_falls_back(self, mock_queue):
        producer = MatchingEventProducer()
        producer.producer = MagicMock()
        producer.producer.send_and_wait = AsyncMock(side_effect=ConnectionError("broker down"))

        async_to_sync(producer.publish_posting_created)(3)

        mock_queue.return_value.submit.assert_called_once_with(3)

    def test_consumer_runs_matching_for_event(self):
        handled = []
        consumer = MatchingEventConsumer(handler=handled.append)

        async_to_sync(consumer.handle_event)({'event': POSTING_CREATED, 'posting_id': 9})
        async_to_sync(consumer.handle_event)({'event': 'SOMETHING_ELSE', 'posting_id': 10})

        self.assertEqual(handled, [9])

    def test_consumer_contains_handler_failure(self):
        def explode(posting_id):
            raise RuntimeError("boom")

        consumer = MatchingEventConsumer(handler=explode)

        with self.assertLogs('rides.kafka_client', level='ERROR'):
            async_to_sync(consumer.handle_event)({'event': POSTING_CREATED, 'posting_id': 9})

    @patch('rides.kafka_client.get_publish_queue')
    def test_publish_hands_off_to_worker_queue(self, mock_queue):
        publish_posting_created(4)
        mock_queue.return_value.submit.assert_called_once_with(4)

    def test_publish_handler_reuses_one_producer(self):
        producer = MagicMock()
        producer.start = AsyncMock()
        producer.publish_posting_created = AsyncMock()
        handler = KafkaPublishHandler(producer)

        handler(1)
        handler(2)
        handler.loop.close()

        producer.start.assert_awaited_once()
        published = [call.args[0] for call in producer.publish_posting_created.await_args_list]
        self.assertEqual(published, [1, 2])


class SettingsTests(TestCase):
    """Tests for environment-driven matching settings."""

    def test_optional_float_from_environment(self):
        with patch.dict(os.environ, {'MATCHING_TIME_WINDOW_HOURS': ''}):
            self.assertIsNone(env_optional_float('MATCHING_TIME_WINDOW_HOURS', 24.0))
        with patch.dict(os.environ, {'MATCHING_TIME_WINDOW_HOURS': 'None'}):
            self.assertIsNone(env_optional_float('MATCHING_TIME_WINDOW_HOURS', 24.0))
        with patch.dict(os.environ, {'MATCHING_TIME_WINDOW_HOURS': '6'}):
            self.assertEqual(env_optional_float('MATCHING_TIME_WINDOW_HOURS', 24.0), 6.0)
        with patch.dict(os.environ):
            os.environ.pop('MATCHING_TIME_WINDOW_HOURS', None)
            self.assertEqual(env_optional_float('MATCHING_TIME_WINDOW_HOURS', 24.0), 24.0)

    @override_settings(MATCHING_TIME_WINDOW_HOURS=None)
    def test_config_without_time_window(self):
        self.assertIsNone(MatchingConfig.from_settings().time_window)

    @override_settings(MATCHING_TIME_WINDOW_HOURS=6)
    def test_config_with_time_window(self):
        self.assertEqual(MatchingConfig.from_settings().time_window, timedelta(hours=6))


class GoogleDirectionsServiceTests(TestCase):
    """Tests for Google Directions API service."""

    @patch('rides.services.directions.requests.get')
    def test_get_route_success(self, mock_get):
        """Test successful route fetch."""
        mock_response = MagicMock()
        mock_response.json.return_value = {
            'status': 'OK',
            'routes': [{
                'overview_polyline': {'points': CAIRO_POLYLINE},
                'legs': [{'distance': {'value': 15000}}, {'distance': {'value': 5000}}],
            }]
        }
        mock_response.raise_for_status = MagicMock()
        mock_get.return_value = mock_response

        service = GoogleDirectionsService(api_key='test-key')
        route = service.get_route(30.05, 31.35, 30.03, 31.20)

        self.assertEqual(route.polyline, CAIRO_POLYLINE)
        self.assertEqual(route.distance_km, 20.0)

    @patch('rides.services.directions.requests.get')
    def test_get_route_without_legs(self, mock_get):
        mock_response = MagicMock()
        mock_response.json.return_value = {
            'status': 'OK',
            'routes': [{'overview_polyline': {'points': CAIRO_POLYLINE}}]
        }
        mock_get.return_value = mock_response

        route = GoogleDirectionsService(api_key='test-key').get_route(30.05, 31.35, 30.03, 31.20)

        self.assertIsNone(route.distance_km)

    @patch('rides.services.directions.requests.get')
    def test_get_route_no_route(self, mock_get):
        """Test handling of no route found."""
        mock_response = MagicMock()
        mock_response.json.return_value = {'status': 'ZERO_RESULTS'}
        mock_response.raise_for_status = MagicMock()
        mock_get.return_value = mock_response

        service = GoogleDirectionsService(api_key='test-key')

        with self.assertRaises(DirectionsAPIError):
            service.get_route(0, 0, 0, 0)

    def test_missing_api_key(self):
        """Test handling of missing API key."""
        service = GoogleDirectionsService(api_key='')

        with self.assertRaises(DirectionsAPIError) as context:
            service.get_route(30.05, 31.35, 30.03, 31.20)

        self.assertIn("not configured", str(context.exception))


class PostingAPITests(APITestCase):
    """Tests for posting API endpoints."""

    def setUp(self):
        self.user = User.objects.create_user(username='driver', password='pass')
        self.client.force_authenticate(self.user)
        self.url = reverse('posting-list')
        self.payload = {
            'kind': 'RIDE',
            'starting_latitude': 30.05,
            'starting_longitude': 31.35,
            'destination_latitude': 30.03,
            'destination_longitude': 31.20,
            'from_city': 'Cairo Governorate',
            'to_city': 'Giza',
            'scheduled_time': (timezone.now() + timedelta(days=1)).isoformat(),
            'available_seats': 3,
            'price': 55,
        }

    @patch('rides.views.enqueue_matching')
    def test_create_posting_with_route(self, mock_enqueue):
        """Posting creation stores the route and enqueues matching after commit."""
        data = dict(self.payload, route_geometry=CAIRO_POLYLINE, route_distance_km=20)

        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.post(self.url, data, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        posting = Posting.objects.get()
        self.assertEqual(posting.owner, self.user)
        self.assertEqual(posting.route_geometry, CAIRO_POLYLINE)
        self.assertEqual(posting.from_city_norm, 'cairo')
        self.assertEqual(posting.status, Posting.Status.UPCOMING)
        mock_enqueue.assert_called_once_with(posting.id)

    @override_settings(MATCHING_BROKER='kafka')
    def test_create_does_not_wait_for_kafka(self):
        """A slow broker connection delays the publish worker, not the response."""
        published = []
        done = threading.Event()

        async def slow_start():
            await asyncio.sleep(2)

        async def publish(posting_id):
            published.append(posting_id)
            done.set()

        producer = MagicMock()
        producer.start = slow_start
        producer.publish_posting_created = publish
        publish_queue = MatchingQueue(maxsize=5, worker_count=1, handler=KafkaPublishHandler(producer))
        publish_queue.start()
        data = dict(self.payload, route_geometry=CAIRO_POLYLINE, route_distance_km=20)

        try:
            with patch('rides.kafka_client.get_publish_queue', return_value=publish_queue):
                started = time.monotonic()
                with self.captureOnCommitCallbacks(execute=True):
                    response = self.client.post(self.url, data, format='json')
                elapsed = time.monotonic() - started

            self.assertEqual(response.status_code, status.HTTP_201_CREATED)
            self.assertLess(elapsed, 1.0)
            self.assertTrue(done.wait(timeout=5))
            self.assertEqual(published, [response.data['id']])
        finally:
            publish_queue.stop(timeout=5)

    @patch('rides.views.enqueue_matching')
    @patch.object(GoogleDirectionsService, 'get_route')
    def test_create_posting_fetches_route(self, mock_directions, mock_enqueue):
        mock_directions.return_value = RouteGeometry(polyline=CAIRO_POLYLINE, distance_km=20.0)

        response = self.client.post(self.url, self.payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['route_geometry'], CAIRO_POLYLINE)
        self.assertEqual(response.data['route_distance_km'], 20.0)
        mock_directions.assert_called_once()

    @patch.object(GoogleDirectionsService, 'get_route')
    def test_create_posting_api_failure(self, mock_directions):
        """Test handling Google API failure."""
        mock_directions.side_effect = DirectionsAPIError("API Error")

        response = self.client.post(self.url, self.payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('error', response.data)
        self.assertEqual(Posting.objects.count(), 0)

    def test_create_posting_invalid_coordinates(self):
        """Test validation of invalid coordinates."""
        data = dict(self.payload, starting_latitude=100, route_geometry=CAIRO_POLYLINE)

        response = self.client.post(self.url, data, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_create_posting_malformed_polyline(self):
        data = dict(self.payload, route_geometry="not a polyline!")

        response = self.client.post(self.url, data, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('route_geometry', response.data)

    def test_create_posting_requires_a_seat(self):
        data = dict(self.payload, available_seats=0, route_geometry=CAIRO_POLYLINE)

        response = self.client.post(self.url, data, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_create_requires_authentication(self):
        self.client.force_authenticate(None)

        response = self.client.post(self.url, self.payload, format='json')

        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))

    def test_list_and_retrieve(self):
        posting = build_posting(self.user, Posting.Kind.RIDE, CAIRO_ROUTE[0], CAIRO_ROUTE[-1])
        posting.save()

        response = self.client.get(self.url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)

        response = self.client.get(reverse('posting-detail', kwargs={'pk': posting.id}))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['id'], posting.id)
        self.assertEqual(response.data['owner_id'], self.user.id)


class PostingSearchAPITests(APITestCase):
    """Tests for the posting search endpoint."""

    def setUp(self):
        self.driver = User.objects.create_user(username='driver')
        self.passenger = User.objects.create_user(username='passenger')
        self.client.force_authenticate(self.passenger)
        self.url = reverse('posting-search')

        self.ride = build_posting(
            self.driver, Posting.Kind.RIDE, CAIRO_ROUTE[0], CAIRO_ROUTE[-1],
            route=CAIRO_ROUTE, route_distance_km=20,
            from_city='Cairo Governorate', to_city='Giza',
        )
        self.ride.save()

    def test_search_by_coordinates_partial_match(self):
        params = {
            'starting_latitude': 30.045,
            'starting_longitude': 31.34,
            'destination_latitude': 30.035,
            'destination_longitude': 31.25,
        }

        response = self.client.get(self.url, params)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_matches'], 1)
        match = response.data['matches'][0]
        self.assertEqual(match['posting']['id'], self.ride.id)
        self.assertTrue(match['is_partial_match'])
        self.assertEqual(match['partial_price'], 25)
        self.assertLess(match['pickup_fraction'], match['dropoff_fraction'])

    def test_search_wrong_direction(self):
        params = {
            'starting_latitude': 30.035,
            'starting_longitude': 31.25,
            'destination_latitude': 30.045,
            'destination_longitude': 31.34,
        }

        response = self.client.get(self.url, params)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_matches'], 0)

    def test_search_direct_match_full_price(self):
        params = {
            'starting_latitude': 30.05,
            'starting_longitude': 31.35,
            'destination_latitude': 30.03,
            'destination_longitude': 31.20,
        }

        response = self.client.get(self.url, params)

        match = response.data['matches'][0]
        self.assertFalse(match['is_partial_match'])
        self.assertEqual(match['partial_price'], 55)

    def test_search_by_city(self):
        response = self.client.get(self.url, {'from_city': 'CAIRO', 'to_city': 'giza'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_matches'], 1)
        self.assertIsNone(response.data['matches'][0]['pickup_fraction'])

        response = self.client.get(self.url, {'from_city': 'Alexandria'})
        self.assertEqual(response.data['total_matches'], 0)

    def test_search_by_date(self):
        day = self.ride.scheduled_time.date()

        response = self.client.get(self.url, {'from_city': 'cairo', 'date': day.isoformat()})
        self.assertEqual(response.data['total_matches'], 1)

        other_day = (day + timedelta(days=2)).isoformat()
        response = self.client.get(self.url, {'from_city': 'cairo', 'date': other_day})
        self.assertEqual(response.data['total_matches'], 0)

    def test_search_seats_filter(self):
        response = self.client.get(self.url, {'from_city': 'cairo', 'seats': 2})
        self.assertEqual(response.data['total_matches'], 0)

    def test_search_missing_params(self):
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_search_partial_coordinates(self):
        response = self.client.get(self.url, {'starting_latitude': 30.05})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_search_only_projects_routes_near_the_trip(self):
        far_ride = build_posting(
            self.driver, Posting.Kind.RIDE, (31.2, 29.9), (31.1, 29.95), from_city='Alexandria'
        )
        far_ride.save()
        params = {
            'starting_latitude': 30.045,
            'starting_longitude': 31.34,
            'destination_latitude': 30.035,
            'destination_longitude': 31.25,
        }

        with patch('rides.views.search_along_routes', return_value=[]) as mock_search:
            self.client.get(self.url, params)

        searched = list(mock_search.call_args.args[0])
        self.assertEqual(searched, [self.ride])

    def test_search_results_are_paginated(self):
        for _ in range(20):
            build_posting(
                self.driver, Posting.Kind.RIDE, CAIRO_ROUTE[0], CAIRO_ROUTE[-1],
                from_city='Cairo',
            ).save()

        response = self.client.get(self.url, {'from_city': 'cairo'})

        self.assertEqual(response.data['total_matches'], 21)
        self.assertEqual(len(response.data['matches']), 20)
        self.assertIsNotNone(response.data['next'])
        self.assertIsNone(response.data['previous'])

        response = self.client.get(self.url, {'from_city': 'cairo', 'page': 2})

        self.assertEqual(len(response.data['matches']), 1)
        self.assertIsNone(response.data['next'])


class NotificationAPITests(APITestCase):
    """Tests for the notification list endpoint."""

    def test_lists_only_own_notifications(self):
        user = User.objects.create_user(username='mona')
        other = User.objects.create_user(username='amr')
        Notification.objects.create(user=user, type='SUGGESTED_RIDE', title='Suggested ride', related_id='1')
        Notification.objects.create(user=other, type='SUGGESTED_REQUEST', title='Suggested passenger', related_id='2')

        self.client.force_authenticate(user)
        response = self.client.get(reverse('notification-list'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['related_id'], '1')


class NotificationConsumerTests(TestCase):
    """Tests for the notification WebSocket consumer."""

    def test_group_name_generation(self):
        """Test channel group name generation."""
        self.assertEqual(user_group_name(1), "user_notifications_1")
        self.assertNotEqual(user_group_name(1), user_group_name(2))

    async def test_anonymous_connection_rejected(self):
        communicator = WebsocketCommunicator(NotificationConsumer.as_asgi(), "/ws/notifications/")
        communicator.scope['user'] = AnonymousUser()

        connected, code = await communicator.connect()

        self.assertFalse(connected)
        self.assertEqual(code, 4401)

    async def test_notifications_pushed_to_user(self):
        user = User(id=77, username='mona')
        communicator = WebsocketCommunicator(NotificationConsumer.as_asgi(), "/ws/notifications/")
        communicator.scope['user'] = user

        connected, _ = await communicator.connect()
        self.assertTrue(connected)

        await get_channel_layer().group_send(
            user_group_name(77),
            {'type': 'notification_message', 'data': {'type': 'SUGGESTED_RIDE', 'relatedId': '5'}},
        )
        message = await communicator.receive_json_from()

        self.assertEqual(message['type'], 'NEW_NOTIFICATION')
        self.assertEqual(message['data']['relatedId'], '5')

        await communicator.send_json_to({'type': 'PING'})
        self.assertEqual((await communicator.receive_json_from())['type'], 'PONG')

        await communicator.disconnect()
