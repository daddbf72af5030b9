"""
Tests for plan gating, lot limits, trials and Stripe billing/webhooks.
Stripe is always mocked.
"""
import json
from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

import stripe
from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate

from common.errors import CollaboratorError, NotFound, ValidationError
from common.roles import OrgRole
from organisations.models import Organisation, OrganisationUser
from schemes.models import Scheme, SchemeStatus, Lot, LotStatus
from subscriptions.billing import create_billing_portal_session, process_event
from subscriptions.gating import (
    FeatureNotAvailable,
    is_feature_enabled,
    organisation_can_access,
    require_feature,
)
from subscriptions.models import Plan, Subscription, SubscriptionAudit, PaymentEvent, PlatformInvoice
from subscriptions.services import (
    check_plan_limits,
    create_trial_subscription,
    default_plan,
    ensure_lot_capacity,
    get_trial_info,
)
from subscriptions.stripe_client import get_stripe, reset_client
from subscriptions.views import (
    BillingPortalSessionView,
    FeatureCheckView,
    FeatureListView,
    PlatformInvoiceListView,
    StripeWebhookView,
)


class SubscriptionsTestBase(TestCase):
    def setUp(self):
        self.factory = APIRequestFactory()
        self.user = get_user_model().objects.create_user(username="manager", password="test-pass")
        self.org = Organisation.objects.create(name="Harbour Strata", code="harbour")
        OrganisationUser.objects.create(organisation=self.org, user=self.user, role=OrgRole.MANAGER)
        self.plan = Plan.objects.create(
            code="TEST_BASIC",
            name="Basic",
            max_lots=3,
            features={"levy_notices": True, "owner_portal": "true", "unknown_feature": True},
        )

    def _subscribe(self, status=Subscription.STATUS_ACTIVE, **kwargs):
        return Subscription.objects.create(organisation=self.org, plan=self.plan, status=status, **kwargs)

    def _scheme(self, **kwargs):
        data = dict(
            organisation=self.org,
            scheme_number="SP 12345",
            scheme_name="Ocean View",
            street_address="1 Beach Rd",
            suburb="Cottesloe",
            state="WA",
            postcode="6011",
        )
        data.update(kwargs)
        return Scheme.objects.create(**data)

    def _request(self, method, path, data=None, user=None):
        request = getattr(self.factory, method)(path, data, format="json")
        force_authenticate(request, user=user or self.user)
        request.organisation = self.org
        return request


class GatingTests(SubscriptionsTestBase):
    def test_is_feature_enabled_is_strict(self):
        self.assertTrue(is_feature_enabled("levy_notices", {"levy_notices": True}))
        self.assertFalse(is_feature_enabled("levy_notices", {"levy_notices": "true"}))
        self.assertFalse(is_feature_enabled("levy_notices", {}))
        self.assertFalse(is_feature_enabled("levy_notices", None))
        self.assertFalse(is_feature_enabled("unknown_feature", {"unknown_feature": True}))

    def test_organisation_access_follows_subscription(self):
        self.assertFalse(organisation_can_access(self.org, "levy_notices"))
        sub = self._subscribe(status=Subscription.STATUS_TRIALING)
        self.assertTrue(organisation_can_access(self.org, "levy_notices"))
        self.assertFalse(organisation_can_access(self.org, "owner_portal"))

        sub.status = Subscription.STATUS_PAST_DUE
        sub.save()
        self.assertFalse(organisation_can_access(self.org, "levy_notices"))

    def test_require_feature(self):
        self._subscribe()
        require_feature(self.org, "levy_notices")
        with self.assertRaises(FeatureNotAvailable) as ctx:
            require_feature(self.org, "document_storage")
        self.assertEqual(ctx.exception.feature_key, "document_storage")
        self.assertEqual(ctx.exception.status_code, 403)

    def test_feature_views(self):
        self._subscribe()
        response = FeatureListView.as_view()(self._request("get", "/api/v1/subscriptions/features"))
        self.assertTrue(response.data["levy_notices"])
        self.assertFalse(response.data["owner_portal"])
        self.assertNotIn("unknown_feature", response.data)

        request = self._request("get", "/api/v1/subscriptions/features/document_storage")
        response = FeatureCheckView.as_view()(request, feature_key="document_storage")
        self.assertEqual(
            response.data, {"feature": "document_storage", "label": "Document storage", "enabled": False}
        )


class PlanLimitTests(SubscriptionsTestBase):
    def test_no_subscription_has_no_allowance(self):
        limits = check_plan_limits(self.org, adding=1)
        self.assertEqual(limits["max_lots"], 0)
        self.assertFalse(limits["within_limits"])
        with self.assertRaises(ValidationError):
            ensure_lot_capacity(self.org)

    def test_counts_active_lots_in_live_schemes(self):
        self._subscribe()
        live = self._scheme()
        archived = self._scheme(scheme_number="SP 22222", status=SchemeStatus.ARCHIVED)
        Lot.objects.create(scheme=live, lot_number="1", unit_entitlement=Decimal("1"))
        Lot.objects.create(scheme=live, lot_number="2", unit_entitlement=Decimal("1"), status=LotStatus.SOLD)
        Lot.objects.create(scheme=archived, lot_number="1", unit_entitlement=Decimal("1"))
        limits = check_plan_limits(self.org)
        self.assertEqual(limits, {"current_lots": 1, "max_lots": 3, "within_limits": True})
        self.assertFalse(check_plan_limits(self.org, adding=3)["within_limits"])
        ensure_lot_capacity(self.org, adding=2)

    def test_unlimited_plan(self):
        self.plan.max_lots = None
        self.plan.save()
        self._subscribe()
        self.assertTrue(check_plan_limits(self.org, adding=100000)["within_limits"])


class TrialTests(SubscriptionsTestBase):
    def test_trial_subscription(self):
        sub = create_trial_subscription(self.org, plan=self.plan, trial_days=14)
        self.assertEqual(sub.status, Subscription.STATUS_TRIALING)
        info = get_trial_info(self.org)
        self.assertTrue(info["is_trialing"])
        self.assertEqual(info["trial_days_remaining"], 14)
        self.assertTrue(SubscriptionAudit.objects.filter(subscription=sub, action="created").exists())

    def test_expired_trial_reports_zero(self):
        self._subscribe(status=Subscription.STATUS_TRIALING, trial_end_at=timezone.now() - timedelta(days=2))
        self.assertEqual(get_trial_info(self.org)["trial_days_remaining"], 0)

    def test_not_trialing(self):
        self._subscribe()
        self.assertFalse(get_trial_info(self.org)["is_trialing"])

    def test_default_plan_is_seeded(self):
        self.assertEqual(default_plan().code, "LEVYLITE_STANDARD")

    @override_settings(DEFAULT_SIGNUP_PLAN_CODE="MISSING")
    def test_default_plan_missing(self):
        with self.assertRaises(NotFound):
            default_plan()


class StripeClientTests(TestCase):
    def tearDown(self):
        reset_client()

    @override_settings(STRIPE_SECRET_KEY="")
    def test_missing_key(self):
        reset_client()
        with self.assertRaises(CollaboratorError):
            get_stripe()

    @override_settings(STRIPE_SECRET_KEY="sk_test_123", STRIPE_MAX_NETWORK_RETRIES=3)
    def test_configures_module(self):
        reset_client()
        client = get_stripe()
        self.assertIs(client, stripe)
        self.assertEqual(stripe.api_key, "sk_test_123")
        self.assertEqual(stripe.max_network_retries, 3)


class BillingPortalTests(SubscriptionsTestBase):
    def test_requires_customer(self):
        self._subscribe()
        with self.assertRaises(ValidationError):
            create_billing_portal_session(self.org)

    @override_settings(LEVYLITE_SITE_URL="https://app.levylite.test")
    @patch("subscriptions.billing.get_stripe")
    def test_creates_session(self, mock_get_stripe):
        client = MagicMock()
        client.billing_portal.Session.create.return_value = {"url": "https://billing.stripe.test/s/1"}
        mock_get_stripe.return_value = client
        self._subscribe(stripe_customer_id="cus_123")

        response = BillingPortalSessionView.as_view()(self._request("post", "/api/v1/subscriptions/billing/portal-session", {}))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data, {"portal_url": "https://billing.stripe.test/s/1"})
        client.billing_portal.Session.create.assert_called_once_with(
            customer="cus_123", return_url="https://app.levylite.test/settings/billing"
        )

    @patch("subscriptions.billing.get_stripe")
    def test_stripe_error_is_collaborator_error(self, mock_get_stripe):
        client = MagicMock()
        client.billing_portal.Session.create.side_effect = stripe.StripeError("boom")
        mock_get_stripe.return_value = client
        self._subscribe(stripe_customer_id="cus_123")
        with self.assertRaises(CollaboratorError):
            create_billing_portal_session(self.org)

    def test_managers_only(self):
        auditor = get_user_model().objects.create_user(username="auditor", password="x")
        OrganisationUser.objects.create(organisation=self.org, user=auditor, role=OrgRole.AUDITOR)
        request = self._request("post", "/api/v1/subscriptions/billing/portal-session", {}, user=auditor)
        response = BillingPortalSessionView.as_view()(request)
        self.assertEqual(response.status_code, 403)


def _event(event_id, event_type, obj):
    return {"id": event_id, "type": event_type, "data": {"object": obj}}


@override_settings(STRIPE_WEBHOOK_SECRET="whsec_test")
class WebhookTests(SubscriptionsTestBase):
    def setUp(self):
        super().setUp()
        self.sub = self._subscribe(status=Subscription.STATUS_TRIALING, stripe_customer_id="cus_123")
        patcher = patch("subscriptions.billing.get_stripe")
        self.client_mock = MagicMock()
        patcher.start().return_value = self.client_mock
        self.addCleanup(patcher.stop)
        self.client_mock.Subscription.retrieve.return_value = {
            "items": {"data": [{"quantity": 42, "current_period_start": 1782864000, "current_period_end": 1785542400}]}
        }

    def _post(self, payload: dict, signature="t=1,v1=abc"):
        body = json.dumps(payload).encode()
        request = self.factory.post(
            "/api/v1/subscriptions/webhooks/stripe",
            body,
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE=signature,
        )
        return StripeWebhookView.as_view()(request)

    def test_invalid_signature(self):
        self.client_mock.Webhook.construct_event.side_effect = stripe.SignatureVerificationError("bad", "sig")
        response = self._post(_event("evt_1", "invoice.paid", {"customer": "cus_123"}))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(PaymentEvent.objects.count(), 0)

    def test_missing_signature(self):
        response = self._post(_event("evt_1", "invoice.paid", {"customer": "cus_123"}), signature="")
        self.assertEqual(response.status_code, 400)

    def test_checkout_completed_activates(self):
        event = _event(
            "evt_checkout",
            "checkout.session.completed",
            {"customer": "cus_456", "subscription": "sub_1", "metadata": {"organisation_id": str(self.org.id)}},
        )
        response = self._post(event)
        self.assertEqual(response.status_code, 200)
        self.sub.refresh_from_db()
        self.assertEqual(self.sub.status, Subscription.STATUS_ACTIVE)
        self.assertEqual(self.sub.stripe_customer_id, "cus_456")
        self.assertEqual(self.sub.stripe_subscription_id, "sub_1")
        self.assertEqual(self.sub.billed_lots_count, 42)
        self.assertIsNotNone(self.sub.current_period_end)
        record = PaymentEvent.objects.get(stripe_event_id="evt_checkout")
        self.assertTrue(record.processed)
        self.assertEqual(record.organisation, self.org)
        self.client_mock.Subscription.retrieve.assert_called_once_with("sub_1", expand=["items.data"])

    def test_duplicate_event_processed_once(self):
        event = _event("evt_dup", "invoice.payment_failed", {"customer": "cus_123"})
        self._post(event)
        self.sub.refresh_from_db()
        self.assertEqual(self.sub.status, Subscription.STATUS_PAST_DUE)

        self.sub.status = Subscription.STATUS_ACTIVE
        self.sub.save()
        response = self._post(event)
        self.assertEqual(response.status_code, 200)
        self.sub.refresh_from_db()
        self.assertEqual(self.sub.status, Subscription.STATUS_ACTIVE)
        self.assertEqual(PaymentEvent.objects.filter(stripe_event_id="evt_dup").count(), 1)

    def test_subscription_updated(self):
        event = _event(
            "evt_upd",
            "customer.subscription.updated",
            {
                "customer": "cus_123",
                "status": "past_due",
                "cancel_at_period_end": True,
                "items": {"data": [{"quantity": 7}]},
            },
        )
        process_event(event)
        self.sub.refresh_from_db()
        self.assertEqual(self.sub.status, Subscription.STATUS_PAST_DUE)
        self.assertTrue(self.sub.cancel_at_period_end)
        self.assertEqual(self.sub.billed_lots_count, 7)
        actions = set(SubscriptionAudit.objects.filter(subscription=self.sub).values_list("action", flat=True))
        self.assertTrue({"status_changed", "cancel_at_period_end_changed"} <= actions)

    def test_subscription_deleted(self):
        process_event(_event("evt_del", "customer.subscription.deleted", {"customer": "cus_123"}))
        self.sub.refresh_from_db()
        self.assertEqual(self.sub.status, Subscription.STATUS_CANCELED)
        self.assertIsNotNone(self.sub.canceled_at)

    def test_handler_error_is_recorded_and_acknowledged(self):
        self.client_mock.Subscription.retrieve.side_effect = stripe.StripeError("stripe down")
        event = _event(
            "evt_err",
            "invoice.paid",
            {"customer": "cus_123", "subscription": "sub_1"},
        )
        response = self._post(event)
        self.assertEqual(response.status_code, 200)
        record = PaymentEvent.objects.get(stripe_event_id="evt_err")
        self.assertFalse(record.processed)
        self.assertIn("stripe down", record.error_message)
        self.sub.refresh_from_db()
        self.assertEqual(self.sub.status, Subscription.STATUS_TRIALING)

    def test_unknown_event_type_is_logged(self):
        process_event(_event("evt_other", "customer.created", {"id": "cus_999"}))
        self.assertTrue(PaymentEvent.objects.get(stripe_event_id="evt_other").processed)

    def test_invoice_paid_records_billing_history(self):
        invoice = {
            "id": "in_1",
            "customer": "cus_123",
            "subscription": "sub_1",
            "number": "LL-0001",
            "subtotal": 9000,
            "total": 9900,
            "total_taxes": [{"amount": 900}],
            "created": 1782864000,
            "hosted_invoice_url": "https://invoice.stripe.test/in_1",
            "invoice_pdf": "https://invoice.stripe.test/in_1.pdf",
            "lines": {
                "data": [{"quantity": 42, "pricing": {"price_details": {"price": {"recurring": {"interval": "year"}}}}}]
            },
        }
        process_event(_event("evt_inv_1", "invoice.paid", invoice))
        process_event(_event("evt_inv_2", "invoice.paid", dict(invoice, total=9910)))

        record = PlatformInvoice.objects.get(stripe_invoice_id="in_1")
        self.assertEqual(PlatformInvoice.objects.count(), 1)
        self.assertEqual(record.organisation, self.org)
        self.assertEqual(record.subscription, self.sub)
        self.assertEqual(record.subtotal_ex_gst, Decimal("90.00"))
        self.assertEqual(record.gst_amount, Decimal("9.00"))
        self.assertEqual(record.total_inc_gst, Decimal("99.10"))
        self.assertEqual(record.lots_billed, 42)
        self.assertEqual(record.billing_interval, PlatformInvoice.INTERVAL_ANNUAL)
        self.assertEqual(record.stripe_pdf_url, "https://invoice.stripe.test/in_1.pdf")
        self.assertIsNotNone(record.paid_at)

    def test_invoice_paid_without_id_skips_history(self):
        process_event(_event("evt_noid", "invoice.paid", {"customer": "cus_123"}))
        self.sub.refresh_from_db()
        self.assertEqual(self.sub.status, Subscription.STATUS_ACTIVE)
        self.assertEqual(PlatformInvoice.objects.count(), 0)


class BillingHistoryTests(SubscriptionsTestBase):
    def test_lists_own_invoices_only(self):
        sub = self._subscribe()
        PlatformInvoice.objects.create(organisation=self.org, subscription=sub, stripe_invoice_id="in_own",
                                       invoice_number="LL-0001", total_inc_gst=Decimal("99.00"))
        other = Organisation.objects.create(name="Other", code="other")
        PlatformInvoice.objects.create(organisation=other, stripe_invoice_id="in_other")

        response = PlatformInvoiceListView.as_view()(self._request("get", "/api/v1/subscriptions/billing/invoices"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["count"], 1)
        self.assertEqual(response.data["results"][0]["invoice_number"], "LL-0001")
        self.assertEqual(response.data["results"][0]["total_inc_gst"], "99.00")

    def test_requires_manager(self):
        viewer = get_user_model().objects.create_user(username="auditor", password="test-pass")
        OrganisationUser.objects.create(organisation=self.org, user=viewer, role=OrgRole.AUDITOR)
        request = self._request("get", "/api/v1/subscriptions/billing/invoices", user=viewer)
        response = PlatformInvoiceListView.as_view()(request)
        self.assertEqual(response.status_code, 403)
