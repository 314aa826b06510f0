"""URL configuration for the booking fulfillment service.

The `urlpatterns` list routes URLs to views. It includes the Django admin
and the automation API used by webhooks, operators and the internal cron.
"""
from django.contrib import admin  # type: ignore
from django.urls import path, include  # type: ignore

urlpatterns = [
    path('admin/', admin.site.urls),
    # Automation: events, failure queue, supplier locks
    path('api/v1/automation/', include('apps.automation.urls')),
    # Internal cron trigger (shared secret)
    path('api/v1/internal/automation/', include('apps.automation.internal_urls')),
]
