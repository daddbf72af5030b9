"""
Tests for schemes, lots, owners and the owner portal lifecycle.
"""
from datetime import timedelta
from decimal import Decimal
from io import StringIO
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core import mail
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate

from common.errors import NotFound, ValidationError
from common.roles import OrgRole
from emails.models import EmailLog, EmailStatus
from organisations.models import Organisation, OrganisationUser
from subscriptions.models import Plan, Subscription
from schemes.models import Scheme, SchemeStatus, Lot, LotStatus, Owner, LotOwnership, PortalState
from schemes.portal import (
    ACCEPT,
    ACTIVATE,
    INVITE,
    RESET,
    accept_invite,
    activate_owner,
    invite_owner,
    reset_owner_portal,
    transition,
)
from schemes.portal_views import PortalActivateView, PortalMeView
from schemes.services import import_lots, parse_lot_rows
from schemes.views import SchemeViewSet, LotViewSet, OwnerViewSet


ALL_FEATURES = {
    "levy_notices": True,
    "email_notices": True,
    "owner_portal": True,
    "document_storage": True,
    "bulk_lot_import": True,
}


class SchemesTestBase(TestCase):
    """Organisation with a manager, an entitled subscription and one scheme."""

    def setUp(self):
        self.factory = APIRequestFactory()
        User = get_user_model()
        self.user = User.objects.create_user(username="manager", email="manager@example.com", password="test-pass")
        self.org = Organisation.objects.create(name="Harbour Strata", code="harbour", email="office@harbour.test")
        OrganisationUser.objects.create(organisation=self.org, user=self.user, role=OrgRole.MANAGER)
        self.plan = Plan.objects.create(code="TEST_ALL", name="Test all", max_lots=None, features=ALL_FEATURES)
        self.subscription = Subscription.objects.create(
            organisation=self.org, plan=self.plan, status=Subscription.STATUS_ACTIVE
        )
        self.scheme = Scheme.objects.create(
            organisation=self.org,
            scheme_number="SP 12345",
            scheme_name="Ocean View",
            street_address="1 Beach Rd",
            suburb="Cottesloe",
            state="WA",
            postcode="6011",
        )

    def _request(self, method, path, data=None, user=None, fmt="json"):
        request = getattr(self.factory, method)(path, data, format=fmt)
        force_authenticate(request, user=user or self.user)
        request.organisation = self.org
        return request

    def _owner(self, email="jane@example.com", **kwargs):
        return Owner.objects.create(
            organisation=self.org, first_name="Jane", last_name="Citizen", email=email, **kwargs
        )


class SchemeApiTests(SchemesTestBase):
    def test_create_normalises_scheme_number(self):
        request = self._request(
            "post",
            "/api/v1/schemes",
            {
                "scheme_number": " sp 54321 ",
                "scheme_name": "Park Lane",
                "street_address": "9 Park Ln",
                "suburb": "Perth",
                "state": "WA",
                "postcode": "6000",
            },
        )
        response = SchemeViewSet.as_view({"post": "create"})(request)
        self.assertEqual(response.status_code, 201, response.data)
        self.assertEqual(response.data["scheme_number"], "SP 54321")
        self.assertEqual(response.data["organisation"], self.org.id)

    def test_duplicate_scheme_number_rejected(self):
        request = self._request(
            "post",
            "/api/v1/schemes",
            {
                "scheme_number": "SP 12345",
                "scheme_name": "Copy",
                "street_address": "2 Beach Rd",
                "suburb": "Cottesloe",
                "state": "WA",
                "postcode": "6011",
            },
        )
        response = SchemeViewSet.as_view({"post": "create"})(request)
        self.assertEqual(response.status_code, 400)
        self.assertIn("scheme_number", response.data)

    def test_delete_archives_and_list_hides_archived(self):
        request = self._request("delete", f"/api/v1/schemes/{self.scheme.id}")
        response = SchemeViewSet.as_view({"delete": "destroy"})(request, pk=self.scheme.id)
        self.assertEqual(response.status_code, 200)
        self.scheme.refresh_from_db()
        self.assertEqual(self.scheme.status, SchemeStatus.ARCHIVED)

        response = SchemeViewSet.as_view({"get": "list"})(self._request("get", "/api/v1/schemes"))
        self.assertEqual(response.data["count"], 0)

        request = self._request("get", "/api/v1/schemes?include_archived=1")
        response = SchemeViewSet.as_view({"get": "list"})(request)
        self.assertEqual(response.data["count"], 1)

    def test_list_is_scoped_to_organisation(self):
        other = Organisation.objects.create(name="Other", code="other")
        Scheme.objects.create(
            organisation=other, scheme_number="SP 99999", scheme_name="Elsewhere",
            street_address="3 Hill St", suburb="Subiaco", state="WA", postcode="6008",
        )
        response = SchemeViewSet.as_view({"get": "list"})(self._request("get", "/api/v1/schemes"))
        self.assertEqual([s["scheme_name"] for s in response.data["results"]], ["Ocean View"])

    def test_auditor_cannot_create(self):
        auditor = get_user_model().objects.create_user(username="auditor", password="x")
        OrganisationUser.objects.create(organisation=self.org, user=auditor, role=OrgRole.AUDITOR)
        request = self._request("post", "/api/v1/schemes", {"scheme_name": "Nope"}, user=auditor)
        response = SchemeViewSet.as_view({"post": "create"})(request)
        self.assertEqual(response.status_code, 403)

    def test_lot_count_annotation(self):
        Lot.objects.create(scheme=self.scheme, lot_number="1", unit_entitlement=Decimal("10"))
        Lot.objects.create(scheme=self.scheme, lot_number="2", unit_entitlement=Decimal("20"))
        Lot.objects.create(scheme=self.scheme, lot_number="3", unit_entitlement=Decimal("5"), status=LotStatus.SOLD)
        request = self._request("get", f"/api/v1/schemes/{self.scheme.id}")
        response = SchemeViewSet.as_view({"get": "retrieve"})(request, pk=self.scheme.id)
        self.assertEqual(response.data["lot_count"], 2)
        self.assertEqual(Decimal(response.data["total_entitlement"]), Decimal("30"))


class LotApiTests(SchemesTestBase):
    def test_create_lot(self):
        request = self._request(
            "post", "/api/v1/lots", {"scheme": self.scheme.id, "lot_number": "1", "unit_entitlement": "12.5"}
        )
        response = LotViewSet.as_view({"post": "create"})(request)
        self.assertEqual(response.status_code, 201, response.data)
        self.assertEqual(Lot.objects.filter(scheme=self.scheme).count(), 1)

    def test_create_lot_respects_plan_limit(self):
        self.plan.max_lots = 1
        self.plan.save()
        Lot.objects.create(scheme=self.scheme, lot_number="1", unit_entitlement=Decimal("1"))
        request = self._request(
            "post", "/api/v1/lots", {"scheme": self.scheme.id, "lot_number": "2", "unit_entitlement": "1"}
        )
        response = LotViewSet.as_view({"post": "create"})(request)
        self.assertEqual(response.status_code, 400)
        self.assertIn("Upgrade", response.data["detail"])

    def test_duplicate_lot_number_rejected(self):
        Lot.objects.create(scheme=self.scheme, lot_number="1", unit_entitlement=Decimal("1"))
        request = self._request(
            "post", "/api/v1/lots", {"scheme": self.scheme.id, "lot_number": "1", "unit_entitlement": "1"}
        )
        response = LotViewSet.as_view({"post": "create"})(request)
        self.assertEqual(response.status_code, 400)

    def test_cannot_add_lot_to_other_organisations_scheme(self):
        other = Organisation.objects.create(name="Other", code="other")
        foreign = Scheme.objects.create(
            organisation=other, scheme_number="SP 99999", scheme_name="Elsewhere",
            street_address="3 Hill St", suburb="Subiaco", state="WA", postcode="6008",
        )
        request = self._request(
            "post", "/api/v1/lots", {"scheme": foreign.id, "lot_number": "1", "unit_entitlement": "1"}
        )
        response = LotViewSet.as_view({"post": "create"})(request)
        self.assertEqual(response.status_code, 400)
        self.assertIn("scheme", response.data)

    def test_import_csv(self):
        csv_text = "lot_number,unit_entitlement,unit_number\n1,10,1A\n2,20,2A\n3,30,\n"
        request = self._request("post", "/api/v1/lots/import", {"scheme": self.scheme.id, "csv": csv_text})
        response = LotViewSet.as_view({"post": "import_csv"})(request)
        self.assertEqual(response.status_code, 201, response.data)
        self.assertEqual(response.data["imported"], 3)
        self.assertEqual(Lot.objects.get(scheme=self.scheme, lot_number="1").unit_number, "1A")

    def test_import_rejects_malformed_scheme(self):
        for scheme in ("abc", None, "1.5"):
            request = self._request("post", "/api/v1/lots/import", {"scheme": scheme, "csv": "lot_number,unit_entitlement\n1,10\n"})
            response = LotViewSet.as_view({"post": "import_csv"})(request)
            self.assertEqual(response.status_code, 400, scheme)
            self.assertEqual(response.data["detail"], "scheme must be a scheme id")
        self.assertFalse(Lot.objects.exists())

    def test_import_rejects_other_organisations_scheme(self):
        other = Organisation.objects.create(name="Other", code="other")
        foreign = Scheme.objects.create(
            organisation=other,
            scheme_number="SP 99999",
            scheme_name="Elsewhere",
            street_address="2 Hill St",
            suburb="Perth",
            state="WA",
            postcode="6000",
        )
        request = self._request("post", "/api/v1/lots/import", {"scheme": foreign.id, "csv": "lot_number,unit_entitlement\n1,10\n"})
        response = LotViewSet.as_view({"post": "import_csv"})(request)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["detail"], "Scheme not found")

    def test_import_requires_feature(self):
        self.plan.features = {"levy_notices": True}
        self.plan.save()
        request = self._request("post", "/api/v1/lots/import", {"scheme": self.scheme.id, "csv": "x"})
        response = LotViewSet.as_view({"post": "import_csv"})(request)
        self.assertEqual(response.status_code, 403)
        self.assertIn("Bulk lot import", response.data["detail"])

    def test_parse_rows_reports_line_errors(self):
        with self.assertRaises(ValidationError) as ctx:
            parse_lot_rows("lot_number,unit_entitlement\n1,abc\n,5\n")
        self.assertIn("line 2", ctx.exception.message)
        self.assertIn("line 3", ctx.exception.message)

    def test_import_is_all_or_nothing(self):
        Lot.objects.create(scheme=self.scheme, lot_number="2", unit_entitlement=Decimal("1"))
        rows = parse_lot_rows("lot_number,unit_entitlement\n1,10\n2,20\n")
        with self.assertRaises(ValidationError):
            import_lots(self.scheme, rows)
        self.assertFalse(Lot.objects.filter(scheme=self.scheme, lot_number="1").exists())


class PortalTransitionTests(TestCase):
    def test_forward_path(self):
        state = transition(PortalState.NO_ACCESS, INVITE)
        self.assertEqual(state, PortalState.INVITED)
        state = transition(state, ACCEPT)
        self.assertEqual(state, PortalState.ACCEPTED)
        self.assertEqual(transition(state, ACTIVATE), PortalState.ACTIVATED)

    def test_reset_from_any_state(self):
        for state in PortalState:
            self.assertEqual(transition(state, RESET), PortalState.NO_ACCESS)

    def test_invalid_moves_raise(self):
        for state, action in [
            (PortalState.NO_ACCESS, ACCEPT),
            (PortalState.NO_ACCESS, ACTIVATE),
            (PortalState.INVITED, INVITE),
            (PortalState.INVITED, ACTIVATE),
            (PortalState.ACTIVATED, INVITE),
            (PortalState.ACCEPTED, "bogus"),
        ]:
            with self.assertRaises(ValidationError):
                transition(state, action)


class OwnerPortalTests(SchemesTestBase):
    def test_invite_accept_activate(self):
        owner = self._owner()
        token = invite_owner(owner)
        self.assertEqual(owner.portal_status, PortalState.INVITED)
        self.assertIsNotNone(owner.portal_invite_sent_at)

        owner = accept_invite(token)
        self.assertEqual(owner.portal_status, PortalState.ACCEPTED)
        self.assertEqual(owner.portal_user.username, "jane@example.com")
        self.assertFalse(owner.portal_user.has_usable_password())

        activate_owner(owner, "long-enough-pw")
        owner.refresh_from_db()
        self.assertEqual(owner.portal_status, PortalState.ACTIVATED)
        self.assertTrue(owner.portal_user.check_password("long-enough-pw"))
        self.assertLessEqual(owner.portal_invite_sent_at, owner.portal_invite_accepted_at)
        self.assertLessEqual(owner.portal_invite_accepted_at, owner.portal_activated_at)
        owner.full_clean()

    @override_settings(EMAIL_ENABLED=False)
    def test_invite_without_mail_is_skipped(self):
        invite_owner(self._owner())
        log = EmailLog.objects.get(to_address="jane@example.com")
        self.assertEqual(log.status, EmailStatus.SKIPPED)

    @override_settings(EMAIL_ENABLED=True, EMAIL_BACKEND="django.core.mail.backends.locmem.EmailBackend")
    def test_invite_sends_activation_link(self):
        token = invite_owner(self._owner())
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn(f"/owner/activate?token={token}", mail.outbox[0].body)

    def test_invite_requires_email(self):
        with self.assertRaises(ValidationError):
            invite_owner(self._owner(email=None))

    def test_second_invite_rejected(self):
        owner = self._owner()
        invite_owner(owner)
        with self.assertRaises(ValidationError):
            invite_owner(owner)

    def test_short_password_rejected(self):
        owner = accept_invite(invite_owner(self._owner()))
        with self.assertRaises(ValidationError):
            activate_owner(owner, "short")
        owner.refresh_from_db()
        self.assertEqual(owner.portal_status, PortalState.ACCEPTED)

    def test_expired_token(self):
        token = invite_owner(self._owner())
        with patch("schemes.portal.invite_max_age", return_value=timedelta(seconds=-1)):
            with self.assertRaises(ValidationError) as ctx:
                accept_invite(token)
        self.assertIn("expired", ctx.exception.message)

    def test_tampered_token(self):
        token = invite_owner(self._owner())
        with self.assertRaises(ValidationError):
            accept_invite(token[:-2] + "xx")

    def test_reset_clears_fields_and_voids_old_token(self):
        owner = self._owner()
        old_token = invite_owner(owner)
        accept_invite(old_token)
        reset_owner_portal(owner)
        self.assertEqual(owner.portal_status, PortalState.NO_ACCESS)
        self.assertIsNone(owner.portal_user_id)
        self.assertIsNone(owner.portal_invite_sent_at)
        self.assertIsNone(owner.portal_invite_accepted_at)

        invite_owner(owner)
        with self.assertRaises(ValidationError):
            accept_invite(old_token)

    def test_token_for_deleted_owner(self):
        owner = self._owner()
        token = invite_owner(owner)
        owner.delete()
        with self.assertRaises(NotFound):
            accept_invite(token)

    def test_clean_rejects_inconsistent_timestamps(self):
        now = timezone.now()
        owner = self._owner()
        owner.portal_status = PortalState.ACTIVATED
        owner.portal_activated_at = now
        with self.assertRaises(DjangoValidationError):
            owner.clean()

        owner.portal_invite_sent_at = now
        owner.portal_invite_accepted_at = now - timedelta(minutes=1)
        with self.assertRaises(DjangoValidationError):
            owner.clean()

    def test_portal_invite_endpoint_is_gated(self):
        self.plan.features = {"levy_notices": True}
        self.plan.save()
        owner = self._owner()
        request = self._request("post", f"/api/v1/owners/{owner.id}/portal-invite")
        response = OwnerViewSet.as_view({"post": "portal_invite"})(request, pk=owner.id)
        self.assertEqual(response.status_code, 403)
        owner.refresh_from_db()
        self.assertEqual(owner.portal_status, PortalState.NO_ACCESS)

    def test_portal_invite_and_reset_endpoints(self):
        owner = self._owner()
        request = self._request("post", f"/api/v1/owners/{owner.id}/portal-invite")
        response = OwnerViewSet.as_view({"post": "portal_invite"})(request, pk=owner.id)
        self.assertEqual(response.status_code, 200, response.data)
        self.assertEqual(response.data["portal_status"], PortalState.INVITED)

        request = self._request("post", f"/api/v1/owners/{owner.id}/portal-reset")
        response = OwnerViewSet.as_view({"post": "portal_reset"})(request, pk=owner.id)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["portal_status"], PortalState.NO_ACCESS)


class PortalViewTests(SchemesTestBase):
    def test_activate_view_accepts_and_activates(self):
        owner = self._owner()
        token = invite_owner(owner)
        request = self.factory.post(
            "/api/v1/portal/activate", {"token": token, "password": "correct-horse"}, format="json"
        )
        response = PortalActivateView.as_view()(request)
        self.assertEqual(response.status_code, 200, response.data)
        self.assertIn("access", response.data)
        owner.refresh_from_db()
        self.assertEqual(owner.portal_status, PortalState.ACTIVATED)

    def test_activate_view_rolls_back_on_short_password(self):
        owner = self._owner()
        token = invite_owner(owner)
        request = self.factory.post("/api/v1/portal/activate", {"token": token, "password": "short"}, format="json")
        response = PortalActivateView.as_view()(request)
        self.assertEqual(response.status_code, 400)
        owner.refresh_from_db()
        self.assertEqual(owner.portal_status, PortalState.INVITED)
        self.assertIsNone(owner.portal_user_id)

    def test_me_lists_lots(self):
        owner = self._owner()
        lot = Lot.objects.create(scheme=self.scheme, lot_number="4", unit_entitlement=Decimal("25"))
        LotOwnership.objects.create(lot=lot, owner=owner, is_primary_contact=True)
        portal_user = get_user_model().objects.create_user(username="jane@example.com", password="x")
        owner.portal_user = portal_user
        owner.save()

        request = self.factory.get("/api/v1/portal/me")
        force_authenticate(request, user=portal_user)
        request.owner = owner
        request.organisation = self.org
        response = PortalMeView.as_view()(request)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["owner"]["email"], "jane@example.com")
        self.assertEqual([l["lot_number"] for l in response.data["lots"]], ["4"])
        self.assertEqual(response.data["levy_items"], [])


class ResetOwnerPortalCommandTests(SchemesTestBase):
    def test_resets_matching_owner(self):
        owner = self._owner()
        invite_owner(owner)
        out = StringIO()
        call_command("reset_owner_portal", "JANE@example.com", stdout=out)
        self.assertIn("Reset portal fields for: Jane Citizen (jane@example.com)", out.getvalue())
        owner.refresh_from_db()
        self.assertEqual(owner.portal_status, PortalState.NO_ACCESS)

    def test_no_match(self):
        out = StringIO()
        call_command("reset_owner_portal", "nobody@example.com", stdout=out)
        self.assertIn("No owner found with email: nobody@example.com", out.getvalue())

    def test_resets_all_matches_or_none(self):
        first = self._owner()
        second = Owner.objects.create(
            organisation=self.org, first_name="John", last_name="Citizen", email="jane@example.com"
        )
        invite_owner(first)
        invite_owner(second)
        real_reset = reset_owner_portal
        calls = []

        def failing_second(owner):
            calls.append(owner.id)
            if len(calls) == 2:
                raise DatabaseError("connection lost")
            return real_reset(owner)

        with patch("schemes.management.commands.reset_owner_portal.reset_owner_portal", side_effect=failing_second):
            with self.assertRaises(CommandError) as ctx:
                call_command("reset_owner_portal", "jane@example.com", stdout=StringIO())
        self.assertIn("connection lost", str(ctx.exception))
        first.refresh_from_db()
        second.refresh_from_db()
        self.assertEqual(first.portal_status, PortalState.INVITED)
        self.assertEqual(second.portal_status, PortalState.INVITED)

    def test_service_error_becomes_command_error(self):
        self._owner()
        with patch(
            "schemes.management.commands.reset_owner_portal.reset_owner_portal",
            side_effect=ValidationError("cannot reset"),
        ):
            with self.assertRaises(CommandError) as ctx:
                call_command("reset_owner_portal", "jane@example.com", stdout=StringIO())
        self.assertIn("cannot reset", str(ctx.exception))
