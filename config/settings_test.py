import tempfile

from .settings import *

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

STRIPE_SECRET_KEY = 'sk_test_fake_key_for_testing'
STRIPE_WEBHOOK_SECRET = 'whsec_fake_secret_for_testing'
DEFAULT_CURRENCY = 'aud'

ADMIN_PASSWORD = 'test-admin-secret'
BUSINESS_EMAIL = 'owner@example.com'
DEFAULT_FROM_EMAIL = 'bookings@example.com'
PUBLIC_BASE_URL = 'https://tidyjacks.test'

EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'

MEDIA_ROOT = tempfile.mkdtemp(prefix='tidyjacks-media-')

STORAGES = {
    'default': {
        'BACKEND': 'django.core.files.storage.FileSystemStorage',
    },
    'staticfiles': {
        'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage',
    },
}

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'root': {'level': 'CRITICAL'},
}
