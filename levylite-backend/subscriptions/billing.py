# subscriptions/billing.py
"""
Stripe billing: hosted billing portal sessions and webhook processing.

Webhook events are logged once per Stripe event id in PaymentEvent. A
handler failure is recorded on the event row and does not fail the HTTP
response, so Stripe does not retry a payload we cannot process.
"""
import json
import logging
from datetime import datetime, timezone as dt_timezone
from decimal import Decimal

import stripe
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from common.errors import CollaboratorError, ValidationError
from organisations.models import Organisation
from .gating import current_subscription
from .models import PaymentEvent, PlatformInvoice, Subscription
from .stripe_client import get_stripe, get_webhook_secret

logger = logging.getLogger(__name__)

STRIPE_STATUS_MAP = {
    "active": Subscription.STATUS_ACTIVE,
    "trialing": Subscription.STATUS_TRIALING,
    "past_due": Subscription.STATUS_PAST_DUE,
    "unpaid": Subscription.STATUS_PAST_DUE,
    "canceled": Subscription.STATUS_CANCELED,
    "incomplete_expired": Subscription.STATUS_CANCELED,
    "paused": Subscription.STATUS_PAUSED,
}


def _get(obj, *path):
    """Walk nested dict/StripeObject keys, returning None when any step is missing."""
    cur = obj
    for key in path:
        if cur is None:
            return None
        try:
            cur = cur[key]
        except (KeyError, IndexError, TypeError):
            return None
    return cur


def _ts(value):
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=dt_timezone.utc)


def _customer_id(customer):
    if not customer:
        return None
    if isinstance(customer, str):
        return customer
    return _get(customer, "id")


def create_billing_portal_session(organisation, return_url: str = None) -> str:
    sub = current_subscription(organisation)
    if sub is None or not sub.stripe_customer_id:
        raise ValidationError("No billing account found. Please subscribe first.")
    base = getattr(settings, "LEVYLITE_SITE_URL", "").rstrip("/")
    client = get_stripe()
    try:
        session = client.billing_portal.Session.create(
            customer=sub.stripe_customer_id,
            return_url=return_url or f"{base}/settings/billing",
        )
    except stripe.StripeError as exc:
        logger.exception("Stripe billing portal session failed for organisation %s", organisation.id)
        raise CollaboratorError(f"Stripe error: {exc}")
    return session["url"]


# ----------------------------------------------------------------------------
# Webhooks
# ----------------------------------------------------------------------------

def extract_organisation_id(obj):
    org_id = _get(obj, "metadata", "organisation_id")
    if org_id:
        return org_id
    return _get(obj, "parent", "subscription_details", "metadata", "organisation_id")


def _find_subscription(stripe_customer_id, organisation_id=None):
    qs = Subscription.objects.select_for_update().order_by("-created_at", "-id")
    if stripe_customer_id:
        sub = qs.filter(stripe_customer_id=stripe_customer_id).first()
        if sub:
            return sub
    if organisation_id:
        return qs.filter(organisation_id=organisation_id).first()
    return None


def _period_dates(stripe_sub):
    item = _get(stripe_sub, "items", "data", 0)
    start = _get(item, "current_period_start") or _get(stripe_sub, "current_period_start")
    end = _get(item, "current_period_end") or _get(stripe_sub, "current_period_end")
    return _ts(start), _ts(end)


def _billed_lots(stripe_sub) -> int:
    return int(_get(stripe_sub, "items", "data", 0, "quantity") or 0)


def _retrieve_subscription(stripe_subscription_id):
    client = get_stripe()
    try:
        return client.Subscription.retrieve(stripe_subscription_id, expand=["items.data"])
    except stripe.StripeError as exc:
        raise CollaboratorError(f"Stripe error retrieving {stripe_subscription_id}: {exc}")


def handle_checkout_completed(session: dict):
    org_id = _get(session, "metadata", "organisation_id")
    if not org_id:
        logger.error("checkout.session.completed missing organisation_id in metadata")
        return
    stripe_sub_id = session.get("subscription")
    if isinstance(stripe_sub_id, dict):
        stripe_sub_id = stripe_sub_id.get("id")
    if not stripe_sub_id:
        return

    stripe_sub = _retrieve_subscription(stripe_sub_id)
    start, end = _period_dates(stripe_sub)
    sub = _find_subscription(None, org_id)
    if sub is None:
        logger.error("checkout.session.completed: organisation %s has no subscription", org_id)
        return
    sub.status = Subscription.STATUS_ACTIVE
    sub.stripe_customer_id = _customer_id(session.get("customer")) or sub.stripe_customer_id
    sub.stripe_subscription_id = stripe_sub_id
    sub.billed_lots_count = _billed_lots(stripe_sub)
    sub.current_period_start = start
    sub.current_period_end = end
    sub.save()


def _money(cents) -> Decimal:
    return (Decimal(int(cents or 0)) / 100).quantize(Decimal("0.01"))


def record_platform_invoice(invoice: dict, sub: Subscription):
    """Upsert the billing-history row for a paid Stripe invoice."""
    invoice_id = invoice.get("id")
    if not invoice_id:
        logger.warning("invoice.paid without an invoice id for subscription %s", sub.id)
        return None
    line = _get(invoice, "lines", "data", 0) or {}
    interval = (
        _get(line, "pricing", "price_details", "price", "recurring", "interval")
        or _get(line, "price", "recurring", "interval")
    )
    taxes = invoice.get("total_taxes") or []
    gst_cents = sum(int(t.get("amount") or 0) for t in taxes) if taxes else invoice.get("tax")
    paid_at = _ts(_get(invoice, "status_transitions", "paid_at")) or timezone.now()
    record, _ = PlatformInvoice.objects.update_or_create(
        stripe_invoice_id=invoice_id,
        defaults={
            "organisation_id": sub.organisation_id,
            "subscription": sub,
            "invoice_number": invoice.get("number") or "",
            "subtotal_ex_gst": _money(invoice.get("subtotal")),
            "gst_amount": _money(gst_cents),
            "total_inc_gst": _money(invoice.get("total")),
            "lots_billed": int(line.get("quantity") or 0),
            "billing_interval": (
                PlatformInvoice.INTERVAL_ANNUAL if interval == "year" else PlatformInvoice.INTERVAL_MONTHLY
            ),
            "invoice_date": _ts(invoice.get("created")),
            "due_date": _ts(invoice.get("due_date")),
            "paid_at": paid_at,
            "status": "paid",
            "stripe_invoice_url": invoice.get("hosted_invoice_url") or "",
            "stripe_pdf_url": invoice.get("invoice_pdf") or "",
        },
    )
    logger.info("Recorded platform invoice %s for organisation %s", invoice_id, sub.organisation_id)
    return record


def handle_invoice_paid(invoice: dict):
    cust_id = _customer_id(invoice.get("customer"))
    sub = _find_subscription(cust_id)
    if sub is None:
        logger.error("invoice.paid: no matching subscription for customer %s", cust_id)
        return
    stripe_sub_id = _get(invoice, "parent", "subscription_details", "subscription") or invoice.get("subscription")
    if isinstance(stripe_sub_id, dict):
        stripe_sub_id = stripe_sub_id.get("id")
    sub.status = Subscription.STATUS_ACTIVE
    if stripe_sub_id:
        stripe_sub = _retrieve_subscription(stripe_sub_id)
        sub.current_period_start, sub.current_period_end = _period_dates(stripe_sub)
        sub.billed_lots_count = _billed_lots(stripe_sub)
    sub.save()
    record_platform_invoice(invoice, sub)


def handle_invoice_payment_failed(invoice: dict):
    cust_id = _customer_id(invoice.get("customer"))
    sub = _find_subscription(cust_id)
    if sub is None:
        logger.error("invoice.payment_failed: no matching subscription for customer %s", cust_id)
        return
    sub.status = Subscription.STATUS_PAST_DUE
    sub.save()


def handle_subscription_updated(stripe_sub: dict):
    cust_id = _customer_id(stripe_sub.get("customer"))
    sub = _find_subscription(cust_id, _get(stripe_sub, "metadata", "organisation_id"))
    if sub is None:
        logger.error("customer.subscription.updated: no matching subscription for customer %s", cust_id)
        return
    raw_status = stripe_sub.get("status")
    sub.status = STRIPE_STATUS_MAP.get(raw_status, sub.status)
    sub.cancel_at_period_end = bool(stripe_sub.get("cancel_at_period_end"))
    sub.billed_lots_count = _billed_lots(stripe_sub)
    sub.current_period_start, sub.current_period_end = _period_dates(stripe_sub)
    if stripe_sub.get("canceled_at"):
        sub.canceled_at = _ts(stripe_sub["canceled_at"])
    sub.save()


def handle_subscription_deleted(stripe_sub: dict):
    cust_id = _customer_id(stripe_sub.get("customer"))
    sub = _find_subscription(cust_id, _get(stripe_sub, "metadata", "organisation_id"))
    if sub is None:
        logger.error("customer.subscription.deleted: no matching subscription for customer %s", cust_id)
        return
    sub.status = Subscription.STATUS_CANCELED
    sub.canceled_at = timezone.now()
    sub.save()


EVENT_HANDLERS = {
    "checkout.session.completed": handle_checkout_completed,
    "invoice.paid": handle_invoice_paid,
    "invoice.payment_failed": handle_invoice_payment_failed,
    "customer.subscription.updated": handle_subscription_updated,
    "customer.subscription.deleted": handle_subscription_deleted,
}


def verify_webhook(payload: bytes, sig_header: str) -> dict:
    if not sig_header:
        raise ValidationError("Missing stripe-signature header")
    client = get_stripe()
    try:
        client.Webhook.construct_event(payload, sig_header, get_webhook_secret())
    except (ValueError, stripe.SignatureVerificationError) as exc:
        logger.warning("Stripe webhook signature verification failed: %s", exc)
        raise ValidationError("Invalid signature")
    return json.loads(payload)


def record_event(event: dict):
    obj = _get(event, "data", "object") or {}
    org_id = extract_organisation_id(obj)
    organisation = None
    if org_id:
        organisation = Organisation.objects.filter(id=org_id).first() if str(org_id).isdigit() else None
    record, created = PaymentEvent.objects.get_or_create(
        stripe_event_id=event["id"],
        defaults={
            "event_type": event.get("type", ""),
            "organisation": organisation,
            "payload": obj,
        },
    )
    return record, created


def process_event(event: dict) -> PaymentEvent:
    """Log and dispatch one verified event. Already-processed events are skipped."""
    record, created = record_event(event)
    if record.processed:
        logger.info("Stripe event %s already processed", record.stripe_event_id)
        return record

    handler = EVENT_HANDLERS.get(record.event_type)
    try:
        with transaction.atomic():
            if handler:
                handler(_get(event, "data", "object") or {})
            record.processed = True
            record.processed_at = timezone.now()
            record.error_message = ""
            record.save(update_fields=["processed", "processed_at", "error_message"])
    except Exception as exc:
        logger.exception("Error processing Stripe event %s (%s)", record.stripe_event_id, record.event_type)
        record.error_message = str(exc) or exc.__class__.__name__
        record.save(update_fields=["error_message"])
    return record


def handle_webhook(payload: bytes, sig_header: str) -> PaymentEvent:
    event = verify_webhook(payload, sig_header)
    return process_event(event)
