"""
URL configuration for the rides app.
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import NotificationViewSet, PostingSearchView, PostingViewSet

router = DefaultRouter()
router.register(r'postings', PostingViewSet, basename='posting')
router.register(r'notifications', NotificationViewSet, basename='notification')

urlpatterns = [
    path('postings/search/', PostingSearchView.as_view(), name='posting-search'),
    path('', include(router.urls)),
]
