# subscriptions/stripe_client.py
import logging

import stripe
from django.conf import settings

from common.errors import CollaboratorError

logger = logging.getLogger(__name__)

_configured = False


def get_stripe():
    """
    Return the configured `stripe` module. Configured once per process on
    first use; a missing key fails here rather than at import time.
    """
    global _configured
    if not _configured:
        key = (getattr(settings, "STRIPE_SECRET_KEY", "") or "").strip()
        if not key:
            raise CollaboratorError("STRIPE_SECRET_KEY is not set")
        stripe.api_key = key
        stripe.max_network_retries = getattr(settings, "STRIPE_MAX_NETWORK_RETRIES", 2)
        _configured = True
    return stripe


def get_webhook_secret() -> str:
    secret = (getattr(settings, "STRIPE_WEBHOOK_SECRET", "") or "").strip()
    if not secret:
        raise CollaboratorError("STRIPE_WEBHOOK_SECRET is not set")
    return secret


def reset_client():
    global _configured
    _configured = False
