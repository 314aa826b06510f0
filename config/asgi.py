"""ASGI config for the booking fulfillment service.

Webhook deliveries and internal cron triggers can be served by an ASGI
server as well; the application itself is synchronous Django.
"""

import os
from django.core.asgi import get_asgi_application  # type: ignore

# Use the development settings by default. Production servers should set
# DJANGO_SETTINGS_MODULE accordingly.
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.dev')

application = get_asgi_application()
