"""
API views for the rides application.
"""

import logging
from datetime import datetime, time, timedelta, timezone as dt_timezone

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from rest_framework import mixins, viewsets, status
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response
from rest_framework.views import APIView
from drf_spectacular.utils import extend_schema, extend_schema_view, OpenApiParameter
from drf_spectacular.types import OpenApiTypes

from .dispatch import enqueue_matching
from .models import Notification, Posting
from .serializers import (
    NotificationSerializer,
    PostingCreateSerializer,
    PostingSearchResponseSerializer,
    PostingSearchResultSerializer,
    PostingSearchSerializer,
    PostingSerializer,
)
from .services import GoogleDirectionsService, MatchingConfig
from .services.directions import DirectionsAPIError
from .services.geometry import normalize_place_name
from .services.matching import search_along_routes
from .services.store import routes_near_trip

logger = logging.getLogger(__name__)


@extend_schema_view(
    list=extend_schema(
        summary="List postings",
        description="Retrieve a paginated list of rides and ride requests.",
        tags=['Postings']
    ),
    retrieve=extend_schema(
        summary="Get a posting",
        description="Retrieve details of a specific ride or request by ID.",
        tags=['Postings']
    ),
    create=extend_schema(
        summary="Create a posting",
        description=(
            "Create a ride or a ride request. When no route polyline is supplied "
            "it is fetched from the Google Directions API. Matching against "
            "opposite postings runs in the background once the posting is saved."
        ),
        tags=['Postings']
    ),
)
class PostingViewSet(
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    ViewSet for posting operations.

    Endpoints:
    - POST /api/postings/ - Create a ride or request
    - GET /api/postings/ - List postings
    - GET /api/postings/{id}/ - Retrieve a posting
    """

    queryset = Posting.objects.select_related('owner')

    def get_serializer_class(self):
        if self.action == 'create':
            return PostingCreateSerializer
        return PostingSerializer

    def create(self, request, *args, **kwargs):
        """Create a posting and hand it to background matching after commit."""
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        data = dict(serializer.validated_data)

        if not data.get('route_geometry'):
            directions_service = GoogleDirectionsService()
            try:
                route = directions_service.get_route(
                    data['starting_latitude'],
                    data['starting_longitude'],
                    data['destination_latitude'],
                    data['destination_longitude']
                )
            except DirectionsAPIError as e:
                return Response(
                    {'error': str(e)},
                    status=status.HTTP_400_BAD_REQUEST
                )
            data['route_geometry'] = route.polyline
            if not data.get('route_distance_km'):
                data['route_distance_km'] = route.distance_km

        with transaction.atomic():
            posting = Posting.objects.create(owner=request.user, **data)
            transaction.on_commit(lambda: enqueue_matching(posting.id))

        logger.info(f"Created {posting.kind} posting {posting.id} for user {request.user.pk}")

        response_serializer = PostingSerializer(posting)
        return Response(response_serializer.data, status=status.HTTP_201_CREATED)


class PostingSearchView(APIView):
    """
    API view for searching postings along a trip or by city.
    """

    pagination_class = PageNumberPagination

    @extend_schema(
        summary="Search postings",
        description="""
        Find upcoming postings for a trip.

        With trip coordinates, a posting qualifies if:
        1. **Pickup proximity**: the trip's start is within the radius of the posting's route
        2. **Dropoff proximity**: the trip's destination is within the radius AND after the pickup along the route
        3. **Seat availability**: the posting has at least the requested number of seats

        Partial trips are quoted a pro-rated price. Without coordinates the
        search falls back to normalized city names.
        """,
        tags=['Matching'],
        parameters=[
            OpenApiParameter(name='kind', type=OpenApiTypes.STR, location=OpenApiParameter.QUERY,
                             required=False, description='RIDE (default) or REQUEST'),
            OpenApiParameter(name='starting_latitude', type=OpenApiTypes.FLOAT,
                             location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name='starting_longitude', type=OpenApiTypes.FLOAT,
                             location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name='destination_latitude', type=OpenApiTypes.FLOAT,
                             location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name='destination_longitude', type=OpenApiTypes.FLOAT,
                             location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name='from_city', type=OpenApiTypes.STR,
                             location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name='to_city', type=OpenApiTypes.STR,
                             location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name='date', type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY,
                             required=False, description='Only postings on this UTC day'),
            OpenApiParameter(name='seats', type=OpenApiTypes.INT, location=OpenApiParameter.QUERY,
                             required=False, default=1),
            OpenApiParameter(name='radius_km', type=OpenApiTypes.FLOAT, location=OpenApiParameter.QUERY,
                             required=False, description='Proximity radius in km (default: 2)'),
            OpenApiParameter(name='page', type=OpenApiTypes.INT, location=OpenApiParameter.QUERY,
                             required=False),
        ],
        responses={200: PostingSearchResponseSerializer},
    )
    def get(self, request):
        """Find postings matching the trip."""
        serializer = PostingSearchSerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)

        data = serializer.validated_data

        postings = Posting.objects.filter(
            kind=data['kind'],
            status=Posting.Status.UPCOMING,
            available_seats__gte=data['seats'],
        ).select_related('owner')

        if data.get('date'):
            day_start = datetime.combine(data['date'], time.min, tzinfo=dt_timezone.utc)
            postings = postings.filter(
                scheduled_time__gte=day_start,
                scheduled_time__lt=day_start + timedelta(days=1),
            )
        else:
            postings = postings.filter(scheduled_time__gte=timezone.now())

        if data['by_coordinates']:
            results = self._search_by_coordinates(postings, data)
        else:
            results = self._search_by_city(postings, data)

        paginator = self.pagination_class()
        page = paginator.paginate_queryset(results, request, view=self)

        return Response({
            'total_matches': len(results),
            'next': paginator.get_next_link(),
            'previous': paginator.get_previous_link(),
            'matches': PostingSearchResultSerializer(page, many=True).data,
        })

    def _search_by_coordinates(self, postings, data):
        radius_km = data.get('radius_km')
        config = MatchingConfig.from_settings(
            radius_km=radius_km if radius_km is not None else settings.SEARCH_RADIUS_KM
        )

        origin = (data['starting_latitude'], data['starting_longitude'])
        destination = (data['destination_latitude'], data['destination_longitude'])

        nearby = routes_near_trip(
            postings.exclude(route_geometry=''), origin, destination, config.radius_km
        )
        matches = search_along_routes(nearby, origin, destination, config)

        return [
            {
                'posting': m.posting,
                'is_partial_match': m.is_partial_match,
                'partial_price': m.price,
                'pickup_latitude': m.pickup.latitude,
                'pickup_longitude': m.pickup.longitude,
                'dropoff_latitude': m.dropoff.latitude,
                'dropoff_longitude': m.dropoff.longitude,
                'pickup_fraction': m.pickup.fraction,
                'dropoff_fraction': m.dropoff.fraction,
            }
            for m in matches
        ]

    def _search_by_city(self, postings, data):
        from_city = normalize_place_name(data.get('from_city', ''))
        to_city = normalize_place_name(data.get('to_city', ''))

        if from_city:
            postings = postings.filter(from_city_norm__contains=from_city)
        if to_city:
            postings = postings.filter(to_city_norm__contains=to_city)

        return [
            {
                'posting': posting,
                'is_partial_match': False,
                'partial_price': posting.price,
                'pickup_latitude': None,
                'pickup_longitude': None,
                'dropoff_latitude': None,
                'dropoff_longitude': None,
                'pickup_fraction': None,
                'dropoff_fraction': None,
            }
            for posting in postings
        ]


@extend_schema_view(
    list=extend_schema(
        summary="List notifications",
        description="Match suggestions and other updates for the current user.",
        tags=['Notifications']
    ),
    retrieve=extend_schema(
        summary="Get a notification",
        tags=['Notifications']
    ),
)
class NotificationViewSet(viewsets.ReadOnlyModelViewSet):
    """Read-only access to the current user's notifications."""

    serializer_class = NotificationSerializer

    def get_queryset(self):
        return Notification.objects.filter(user=self.request.user)
