"""Development settings for the booking fulfillment service.

This module extends the base settings with development specific
configuration, such as enabling debug and allowing all hosts. Do not use
these settings in production!
"""

from .base import *  # noqa: F401,F403

# Enable debug mode for development
DEBUG = True

# Allow all hosts in development
ALLOWED_HOSTS = ['*']

# Any non-empty secret works locally; production must set its own.
AUTOMATION_INTERNAL_SECRET = AUTOMATION_INTERNAL_SECRET or 'dev-internal-secret'  # noqa: F405
