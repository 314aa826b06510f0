"""Production settings for the booking fulfillment service.

This module extends the base settings with production specific
configuration. Ensure that sensitive values are provided via environment
variables and that security settings are appropriate for production use.
"""

from .base import *  # noqa: F401,F403

# Never run with debug enabled in production
DEBUG = False

# Allowed hosts should be defined explicitly via environment variable
ALLOWED_HOSTS = os.environ.get('DJANGO_ALLOWED_HOSTS', '').split(',')  # noqa: F405

# Configure secure proxies and cookies
CSRF_COOKIE_SECURE = True
SESSION_COOKIE_SECURE = True

if not AUTOMATION_INTERNAL_SECRET:  # noqa: F405
    raise RuntimeError('AUTOMATION_INTERNAL_SECRET must be set in production')
