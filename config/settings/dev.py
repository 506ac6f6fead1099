# config/settings/dev.py
"""
Development settings.
These settings are for local development only.
"""

from .base import *  # noqa

DEBUG = True

ALLOWED_HOSTS = [
    "localhost",
    "127.0.0.1",
]

CSRF_TRUSTED_ORIGINS = [
    # keep empty for localhost; add ngrok/cloudflare tunnel here if used
]

EMAIL_BACKEND = "django.core.mail.backends.console.EmailBackend"

SECURE_SSL_REDIRECT = False
SESSION_COOKIE_SECURE = False
CSRF_COOKIE_SECURE = False

# Ops events are logged in dev even without OPS_EVENTS_ENABLED.
OPS_EVENTS_ENABLED = True
