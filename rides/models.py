"""
Posting and notification models for the ride-sharing application.
"""

from django.conf import settings
from django.db import models
from django.core.validators import MinValueValidator

from .services.exceptions import MalformedPolylineError
from .services.geometry import normalize_place_name
from .services.route import decode


class Posting(models.Model):
    """
    A ride offered by a driver or a ride request posted by a passenger.

    The route_geometry field stores an encoded polyline string from the
    routing provider. A posting takes part in geospatial matching only
    while it is upcoming and has a route.
    """

    class Kind(models.TextChoices):
        RIDE = 'RIDE', 'Ride'
        REQUEST = 'REQUEST', 'Request'

    class Status(models.TextChoices):
        UPCOMING = 'UPCOMING', 'Upcoming'
        IN_PROGRESS = 'IN_PROGRESS', 'In progress'
        COMPLETED = 'COMPLETED', 'Completed'
        CANCELLED = 'CANCELLED', 'Cancelled'

    kind = models.CharField(
        max_length=16,
        choices=Kind.choices,
        default=Kind.RIDE,
    )
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='postings',
    )
    starting_latitude = models.FloatField(
        help_text="Starting point latitude"
    )
    starting_longitude = models.FloatField(
        help_text="Starting point longitude"
    )
    destination_latitude = models.FloatField(
        help_text="Destination latitude"
    )
    destination_longitude = models.FloatField(
        help_text="Destination longitude"
    )
    from_city = models.CharField(max_length=128, blank=True, default='')
    from_suburb = models.CharField(max_length=128, blank=True, default='')
    to_city = models.CharField(max_length=128, blank=True, default='')
    to_suburb = models.CharField(max_length=128, blank=True, default='')
    from_city_norm = models.CharField(max_length=128, blank=True, default='', editable=False)
    from_suburb_norm = models.CharField(max_length=128, blank=True, default='', editable=False)
    to_city_norm = models.CharField(max_length=128, blank=True, default='', editable=False)
    to_suburb_norm = models.CharField(max_length=128, blank=True, default='', editable=False)
    route_geometry = models.TextField(
        blank=True,
        default='',
        help_text="Encoded polyline string from the routing provider"
    )
    route_distance_km = models.FloatField(
        null=True,
        blank=True,
        help_text="Route distance reported by the routing provider"
    )
    route_min_latitude = models.FloatField(null=True, blank=True, editable=False)
    route_max_latitude = models.FloatField(null=True, blank=True, editable=False)
    route_min_longitude = models.FloatField(null=True, blank=True, editable=False)
    route_max_longitude = models.FloatField(null=True, blank=True, editable=False)
    scheduled_time = models.DateTimeField()
    available_seats = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
        help_text="Number of seats offered or requested"
    )
    price = models.FloatField(
        default=0,
        validators=[MinValueValidator(0)],
        help_text="Price for the full origin to destination trip"
    )
    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.UPCOMING,
    )
    date_added = models.DateTimeField(auto_now_add=True)
    date_last_updated = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['scheduled_time']
        indexes = [
            models.Index(fields=['kind', 'status', 'scheduled_time'], name='rides_posting_match_idx'),
        ]
        verbose_name = 'Posting'
        verbose_name_plural = 'Postings'

    def __str__(self):
        return f"{self.get_kind_display()} {self.id}: ({self.starting_latitude}, {self.starting_longitude}) -> ({self.destination_latitude}, {self.destination_longitude})"

    def save(self, *args, **kwargs):
        self.from_city_norm = normalize_place_name(self.from_city)
        self.from_suburb_norm = normalize_place_name(self.from_suburb)
        self.to_city_norm = normalize_place_name(self.to_city)
        self.to_suburb_norm = normalize_place_name(self.to_suburb)
        self.set_route_bounds()
        super().save(*args, **kwargs)

    def set_route_bounds(self):
        """Cache the lat/lng extent of the route for search prefiltering."""
        try:
            points = decode(self.route_geometry) if self.route_geometry else []
        except MalformedPolylineError:
            points = []

        if points:
            lats = [lat for lat, _ in points]
            lngs = [lng for _, lng in points]
            self.route_min_latitude, self.route_max_latitude = min(lats), max(lats)
            self.route_min_longitude, self.route_max_longitude = min(lngs), max(lngs)
        else:
            self.route_min_latitude = self.route_max_latitude = None
            self.route_min_longitude = self.route_max_longitude = None

    @property
    def origin_coords(self) -> tuple:
        """Return origin coordinates as tuple."""
        return (self.starting_latitude, self.starting_longitude)

    @property
    def destination_coords(self) -> tuple:
        """Return destination coordinates as tuple."""
        return (self.destination_latitude, self.destination_longitude)

    @property
    def is_request(self) -> bool:
        return self.kind == self.Kind.REQUEST

    @property
    def opposite_kind(self) -> str:
        return self.Kind.RIDE if self.is_request else self.Kind.REQUEST

    @property
    def has_route(self) -> bool:
        return bool(self.route_geometry)

    @property
    def is_matchable(self) -> bool:
        return self.status == self.Status.UPCOMING and self.has_route


class Notification(models.Model):
    """A match proposal or other update delivered to a user."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='notifications',
    )
    type = models.CharField(max_length=32)
    title = models.CharField(max_length=255)
    message = models.TextField(blank=True, default='')
    related_id = models.CharField(max_length=64, blank=True, default='')
    data = models.JSONField(default=dict, blank=True)
    is_read = models.BooleanField(default=False)
    date_added = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-date_added']

    def __str__(self):
        return f"{self.type} for user {self.user_id}"
