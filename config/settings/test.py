"""Test settings for the booking fulfillment service.

Uses an in-memory SQLite database and runs Celery tasks eagerly so the
retry scheduler can be exercised without a broker.
"""

from .base import *  # noqa: F401,F403

DEBUG = False

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'

AUTOMATION_INTERNAL_SECRET = 'test-internal-secret'
SUPPLIER_ENDPOINTS = {'amadeus': 'https://supplier.test/amadeus/orders'}
