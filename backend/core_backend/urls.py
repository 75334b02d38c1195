"""
URL configuration for core_backend project.

HTTP endpoints live under /api/; the WebSocket routes are wired in asgi.py.
"""

from django.http import JsonResponse
from django.urls import include, path


def health_check(request):
    """Simple health check endpoint that doesn't require authentication"""
    return JsonResponse({"status": "ok", "message": "Backend is running"})


urlpatterns = [
    path("api/health/", health_check, name="health_check"),
    # The orders app registers its base endpoint as 'orders', so mount it at api/
    path("api/", include("orders.urls")),
    path("api/payments/", include("payments.urls")),
]
