"""
Admin configuration for the rides app.
"""

from django.contrib import admin
from .models import Notification, Posting


@admin.register(Posting)
class PostingAdmin(admin.ModelAdmin):
    list_display = [
        'id',
        'kind',
        'owner',
        'from_city',
        'to_city',
        'scheduled_time',
        'available_seats',
        'price',
        'status',
    ]
    list_filter = ['kind', 'status', 'scheduled_time']
    search_fields = ['id', 'from_city_norm', 'to_city_norm']
    readonly_fields = [
        'date_added',
        'date_last_updated',
        'route_geometry',
        'from_city_norm',
        'from_suburb_norm',
        'to_city_norm',
        'to_suburb_norm',
    ]
    ordering = ['-date_added']


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'type', 'related_id', 'is_read', 'date_added']
    list_filter = ['type', 'is_read']
    search_fields = ['related_id']
    ordering = ['-date_added']
