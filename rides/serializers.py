"""
Serializers for the rides API.
"""

from rest_framework import serializers

from .models import Notification, Posting
from .services.exceptions import DegeneratePathError, MalformedPolylineError
from .services.route import Route


def validate_latitude(value):
    if not -90 <= value <= 90:
        raise serializers.ValidationError("Latitude must be between -90 and 90")
    return value


def validate_longitude(value):
    if not -180 <= value <= 180:
        raise serializers.ValidationError("Longitude must be between -180 and 180")
    return value


class PostingSerializer(serializers.ModelSerializer):
    """Serializer for Posting model - used for list and retrieve operations."""

    owner_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = Posting
        fields = [
            'id',
            'kind',
            'owner_id',
            'starting_latitude',
            'starting_longitude',
            'destination_latitude',
            'destination_longitude',
            'from_city',
            'from_suburb',
            'to_city',
            'to_suburb',
            'route_geometry',
            'route_distance_km',
            'scheduled_time',
            'available_seats',
            'price',
            'status',
            'date_added',
            'date_last_updated',
        ]
        read_only_fields = fields


class PostingCreateSerializer(serializers.ModelSerializer):
    """
    Serializer for creating a ride or request.

    ``route_geometry`` is optional; when it is left out the route is
    fetched from the routing provider.
    """

    route_geometry = serializers.CharField(required=False, allow_blank=True)

    class Meta:
        model = Posting
        fields = [
            'kind',
            'starting_latitude',
            'starting_longitude',
            'destination_latitude',
            'destination_longitude',
            'from_city',
            'from_suburb',
            'to_city',
            'to_suburb',
            'route_geometry',
            'route_distance_km',
            'scheduled_time',
            'available_seats',
            'price',
        ]
        extra_kwargs = {
            'available_seats': {'min_value': 1},
            'price': {'min_value': 0},
        }

    def validate_starting_latitude(self, value):
        return validate_latitude(value)

    def validate_starting_longitude(self, value):
        return validate_longitude(value)

    def validate_destination_latitude(self, value):
        return validate_latitude(value)

    def validate_destination_longitude(self, value):
        return validate_longitude(value)

    def validate_route_geometry(self, value):
        if not value:
            return value
        try:
            Route.from_polyline(value)
        except (MalformedPolylineError, DegeneratePathError) as e:
            raise serializers.ValidationError(str(e))
        return value


class PostingSearchSerializer(serializers.Serializer):
    """
    Serializer for posting search query parameters.

    Either the four trip coordinates or ``from_city``/``to_city`` must be
    given.
    """

    kind = serializers.ChoiceField(choices=Posting.Kind.choices, default=Posting.Kind.RIDE)
    starting_latitude = serializers.FloatField(required=False, validators=[validate_latitude])
    starting_longitude = serializers.FloatField(required=False, validators=[validate_longitude])
    destination_latitude = serializers.FloatField(required=False, validators=[validate_latitude])
    destination_longitude = serializers.FloatField(required=False, validators=[validate_longitude])
    from_city = serializers.CharField(required=False, allow_blank=True)
    to_city = serializers.CharField(required=False, allow_blank=True)
    date = serializers.DateField(required=False)
    seats = serializers.IntegerField(default=1, min_value=1)
    radius_km = serializers.FloatField(required=False, min_value=0)

    COORDINATE_FIELDS = (
        'starting_latitude',
        'starting_longitude',
        'destination_latitude',
        'destination_longitude',
    )

    def validate(self, attrs):
        given = [field for field in self.COORDINATE_FIELDS if field in attrs]
        if given and len(given) != len(self.COORDINATE_FIELDS):
            raise serializers.ValidationError(
                "Coordinate search needs starting and destination latitude and longitude"
            )
        if not given and not (attrs.get('from_city') or attrs.get('to_city')):
            raise serializers.ValidationError(
                "Provide trip coordinates or at least one of from_city and to_city"
            )
        attrs['by_coordinates'] = bool(given)
        return attrs


class PostingSearchResultSerializer(serializers.Serializer):
    """Serializer for one search hit."""

    posting = PostingSerializer()
    is_partial_match = serializers.BooleanField()
    partial_price = serializers.FloatField()
    pickup_latitude = serializers.FloatField(allow_null=True)
    pickup_longitude = serializers.FloatField(allow_null=True)
    dropoff_latitude = serializers.FloatField(allow_null=True)
    dropoff_longitude = serializers.FloatField(allow_null=True)
    pickup_fraction = serializers.FloatField(allow_null=True)
    dropoff_fraction = serializers.FloatField(allow_null=True)


class PostingSearchResponseSerializer(serializers.Serializer):
    """Serializer for the complete search response."""

    total_matches = serializers.IntegerField()
    next = serializers.URLField(allow_null=True)
    previous = serializers.URLField(allow_null=True)
    matches = PostingSearchResultSerializer(many=True)


class NotificationSerializer(serializers.ModelSerializer):

    class Meta:
        model = Notification
        fields = [
            'id',
            'type',
            'title',
            'message',
            'related_id',
            'data',
            'is_read',
            'date_added',
        ]
        read_only_fields = fields
