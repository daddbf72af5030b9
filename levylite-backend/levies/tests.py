"""
Tests for levy apportionment, schedules, item generation and notices.
"""
from collections import Counter
from datetime import date
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core import mail
from django.db import DatabaseError
from django.db.models import Sum
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework.test import APIRequestFactory, force_authenticate

from common.errors import CollaboratorError, NotFound, ValidationError
from common.roles import OrgRole
from organisations.models import Organisation, OrganisationUser
from schemes.models import Scheme, Lot, LotStatus, Owner, LotOwnership
from subscriptions.models import Plan, Subscription
from levies.apportion import apportion, from_cents, to_cents
from levies.models import LevySchedule, LevyPeriod, LevyItem, LevyItemStatus
from levies.notices import (
    build_notice_data,
    get_levy_item,
    render_levy_notice_pdf,
    send_levy_notice,
    send_notices_for_period,
)
from levies.periods import due_date_for, fy_label, generate_periods
from levies.services import (
    calculate_levies,
    calculate_levies_for_period,
    create_schedule,
    delete_schedule,
    rounding_note,
    update_schedule,
)
from levies.views import LevyScheduleViewSet, LevyItemViewSet


class ApportionTests(SimpleTestCase):
    def test_equal_weights_leftover_goes_first(self):
        result = apportion(100, [1, 1, 1])
        self.assertEqual(result.shares, [34, 33, 33])
        self.assertEqual(result.reconciled, [0])

    def test_exact_split(self):
        result = apportion(10000, [2, 3, 5])
        self.assertEqual(result.shares, [2000, 3000, 5000])
        self.assertEqual(result.reconciled, [])

    def test_largest_remainder_wins(self):
        # raw shares 3.33 and 6.67
        self.assertEqual(apportion(10, [1, 2]).shares, [3, 7])

    def test_mapping_keys_preserved(self):
        result = apportion(1000, {7: Decimal("1.5"), 3: Decimal("1.5"), 9: Decimal("1")})
        self.assertEqual(result.keys, [7, 3, 9])
        self.assertEqual(sum(result.shares), 1000)
        self.assertEqual(result.as_dict(), {7: 375, 3: 375, 9: 250})

    def test_shares_always_sum_to_total(self):
        for total in (0, 1, 99, 12345, 1000001):
            result = apportion(total, [Decimal("12.3456"), Decimal("7"), Decimal("0.0001"), Decimal("40")])
            self.assertEqual(sum(result.shares), total)

    def test_zero_weight_gets_nothing(self):
        self.assertEqual(apportion(100, [0, 1]).shares, [0, 100])

    def test_invalid_input(self):
        for total, weights in [(100, []), (100, [0, 0]), (100, [1, -1]), (-1, [1]), (10.5, [1])]:
            with self.assertRaises(ValidationError):
                apportion(total, weights)

    def test_cents_conversion(self):
        self.assertEqual(to_cents(Decimal("1234.565")), 123457)
        self.assertEqual(from_cents(123457), Decimal("1234.57"))

    def test_rounding_note(self):
        self.assertEqual(rounding_note(Counter()), "")
        self.assertEqual(
            rounding_note(Counter({"1": 1})), "1 cent allocated to lot 1 with the largest remainder"
        )
        self.assertEqual(
            rounding_note(Counter({"10": 1, "2": 2})),
            "3 cents allocated to lots 2, 10 with the largest remainders",
        )


class PeriodTests(SimpleTestCase):
    def test_fy_label(self):
        self.assertEqual(fy_label(date(2026, 7, 1)), "FY2027")
        self.assertEqual(fy_label(date(2027, 6, 30)), "FY2027")
        self.assertEqual(fy_label(date(2026, 6, 30)), "FY2026")

    def test_quarterly_periods(self):
        periods = generate_periods(date(2026, 7, 1), "quarterly", 15)
        self.assertEqual([p.period_name for p in periods], ["Q1 FY2027", "Q2 FY2027", "Q3 FY2027", "Q4 FY2027"])
        self.assertEqual(periods[0].period_end, date(2026, 9, 30))
        self.assertEqual(periods[3].period_end, date(2027, 6, 30))
        self.assertEqual(periods[1].due_date, date(2026, 10, 15))

    def test_monthly_and_annual_names(self):
        monthly = generate_periods(date(2026, 7, 1), "monthly", 1)
        self.assertEqual(len(monthly), 12)
        self.assertEqual(monthly[0].period_name, "Jul FY2027")
        self.assertEqual(monthly[11].period_name, "Jun FY2027")
        self.assertEqual(generate_periods(date(2026, 7, 1), "annual", 1)[0].period_name, "Annual FY2027")
        self.assertEqual(
            [p.period_name for p in generate_periods(date(2026, 7, 1), "half-yearly", 1)],
            ["Period 1 FY2027", "Period 2 FY2027"],
        )

    def test_due_date_clamped_to_month_end(self):
        self.assertEqual(due_date_for(date(2027, 2, 1), 31), date(2027, 2, 28))

    def test_unknown_frequency(self):
        with self.assertRaises(ValidationError):
            generate_periods(date(2026, 7, 1), "fortnightly", 1)


class LeviesTestBase(TestCase):
    def setUp(self):
        self.factory = APIRequestFactory()
        self.user = get_user_model().objects.create_user(username="manager", password="test-pass")
        self.org = Organisation.objects.create(name="Harbour Strata", code="harbour", email="office@harbour.test")
        OrganisationUser.objects.create(organisation=self.org, user=self.user, role=OrgRole.MANAGER)
        self.plan = Plan.objects.create(
            code="TEST_NOTICES",
            name="Notices",
            features={"levy_notices": True, "email_notices": True},
        )
        Subscription.objects.create(organisation=self.org, plan=self.plan, status=Subscription.STATUS_ACTIVE)
        self.scheme = Scheme.objects.create(
            organisation=self.org,
            scheme_number="SP 12345",
            scheme_name="Ocean View",
            street_address="1 Beach Rd",
            suburb="Cottesloe",
            state="WA",
            postcode="6011",
            trust_bsb="066-000",
            trust_account_number="12345678",
        )
        self.lots = [
            Lot.objects.create(scheme=self.scheme, lot_number=str(n), unit_entitlement=Decimal(e))
            for n, e in [(1, "10"), (2, "20"), (3, "30")]
        ]

    def _schedule(self, admin="12000.00", capital="0.00", frequency="quarterly"):
        return create_schedule(
            self.scheme,
            {
                "budget_year_start": date(2026, 7, 1),
                "budget_year_end": date(2027, 6, 30),
                "admin_fund_total": Decimal(admin),
                "capital_works_fund_total": Decimal(capital),
                "frequency": frequency,
            },
            user=self.user,
        )

    def _request(self, method, path, data=None):
        request = getattr(self.factory, method)(path, data, format="json")
        force_authenticate(request, user=self.user)
        request.organisation = self.org
        return request


class ScheduleServiceTests(LeviesTestBase):
    def test_create_generates_periods(self):
        schedule = self._schedule()
        self.assertEqual(schedule.periods_per_year, 4)
        self.assertEqual(schedule.periods.count(), 4)
        self.assertEqual(schedule.total_budget, Decimal("12000.00"))

    def test_end_before_start_rejected(self):
        with self.assertRaises(ValidationError):
            create_schedule(
                self.scheme,
                {
                    "budget_year_start": date(2026, 7, 1),
                    "budget_year_end": date(2026, 6, 30),
                    "admin_fund_total": Decimal("100"),
                    "frequency": "annual",
                },
            )

    def test_mismatched_periods_per_year_rejected(self):
        with self.assertRaises(ValidationError):
            create_schedule(
                self.scheme,
                {
                    "budget_year_start": date(2026, 7, 1),
                    "budget_year_end": date(2027, 6, 30),
                    "admin_fund_total": Decimal("100"),
                    "frequency": "monthly",
                    "periods_per_year": 4,
                },
            )

    def test_update_rebuilds_periods_until_items_exist(self):
        schedule = self._schedule()
        schedule = update_schedule(schedule, {"frequency": "monthly"})
        self.assertEqual(schedule.periods.count(), 12)
        self.assertEqual(schedule.periods_per_year, 12)

        calculate_levies(schedule.id, self.org)
        with self.assertRaises(ValidationError):
            update_schedule(schedule, {"admin_fund_total": Decimal("1.00")})

    def test_delete_is_hard_without_items(self):
        schedule = self._schedule()
        self.assertEqual(delete_schedule(schedule), "deleted")
        self.assertFalse(LevySchedule.objects.filter(pk=schedule.pk).exists())

    def test_delete_deactivates_with_items(self):
        schedule = self._schedule()
        calculate_levies(schedule.id, self.org)
        self.assertEqual(delete_schedule(schedule), "deactivated")
        schedule.refresh_from_db()
        self.assertFalse(schedule.active)
        with self.assertRaises(ValidationError):
            calculate_levies(schedule.id, self.org, replace=True)


class CalculateLeviesTests(LeviesTestBase):
    def test_items_by_entitlement(self):
        schedule = self._schedule(admin="12000.00", capital="2400.00")
        result = calculate_levies(schedule.id, self.org)
        self.assertEqual(result.items_created, 12)
        self.assertEqual(result.rounding_note, "")

        q1 = schedule.periods.get(period_number=1)
        amounts = {
            i.lot.lot_number: (i.admin_levy_amount, i.capital_levy_amount, i.total_levy_amount)
            for i in LevyItem.objects.filter(period=q1).select_related("lot")
        }
        self.assertEqual(amounts["1"], (Decimal("500.00"), Decimal("100.00"), Decimal("600.00")))
        self.assertEqual(amounts["3"], (Decimal("1500.00"), Decimal("300.00"), Decimal("1800.00")))
        self.assertTrue(all(i.status == LevyItemStatus.PENDING for i in LevyItem.objects.all()))
        self.assertEqual(LevyItem.objects.get(period=q1, lot=self.lots[0]).due_date, q1.due_date)

    def test_rounding_reconciles_to_budget(self):
        Lot.objects.filter(scheme=self.scheme).update(unit_entitlement=Decimal("1"))
        schedule = self._schedule(admin="1000.00")
        result = calculate_levies(schedule.id, self.org)
        total = LevyItem.objects.filter(period__schedule=schedule).aggregate(t=Sum("total_levy_amount"))["t"]
        self.assertEqual(total, Decimal("1000.00"))
        self.assertEqual(result.rounding_note, "4 cents allocated to lot 1 with the largest remainder")
        self.assertEqual(LevyItem.objects.filter(lot=self.lots[0]).first().admin_levy_amount, Decimal("83.34"))

    def test_only_active_lots(self):
        self.lots[2].status = LotStatus.SOLD
        self.lots[2].save()
        schedule = self._schedule()
        self.assertEqual(calculate_levies(schedule.id, self.org).items_created, 8)
        self.assertFalse(LevyItem.objects.filter(lot=self.lots[2]).exists())

    def test_no_active_lots(self):
        Lot.objects.filter(scheme=self.scheme).update(status=LotStatus.INACTIVE)
        schedule = self._schedule()
        with self.assertRaises(ValidationError):
            calculate_levies(schedule.id, self.org)

    def test_zero_total_entitlement(self):
        Lot.objects.filter(scheme=self.scheme).update(unit_entitlement=Decimal("0"))
        schedule = self._schedule()
        with self.assertRaises(ValidationError) as ctx:
            calculate_levies(schedule.id, self.org)
        self.assertIn("entitlement", ctx.exception.message)
        self.assertEqual(LevyItem.objects.count(), 0)

    def test_regenerate_requires_replace(self):
        schedule = self._schedule()
        calculate_levies(schedule.id, self.org)
        with self.assertRaises(ValidationError):
            calculate_levies(schedule.id, self.org)
        self.assertEqual(LevyItem.objects.count(), 12)

        Lot.objects.filter(pk=self.lots[0].pk).update(unit_entitlement=Decimal("40"))
        result = calculate_levies(schedule.id, self.org, replace=True)
        self.assertEqual(result.items_created, 12)
        self.assertEqual(LevyItem.objects.count(), 12)
        self.assertEqual(
            LevyItem.objects.filter(lot=self.lots[0]).first().admin_levy_amount, Decimal("1333.33")
        )

    def test_period_run_matches_full_run(self):
        schedule = self._schedule(admin="1000.00", capital="333.33")
        q2 = schedule.periods.get(period_number=2)
        calculate_levies_for_period(q2.id, self.org)
        single = list(LevyItem.objects.filter(period=q2).order_by("lot_id").values_list("total_levy_amount", flat=True))

        calculate_levies(schedule.id, self.org, replace=True)
        full = list(LevyItem.objects.filter(period=q2).order_by("lot_id").values_list("total_levy_amount", flat=True))
        self.assertEqual(single, full)

    def test_other_organisation_cannot_calculate(self):
        schedule = self._schedule()
        other = Organisation.objects.create(name="Other", code="other")
        with self.assertRaises(NotFound):
            calculate_levies(schedule.id, other)

    def test_malformed_ids_are_not_found(self):
        for bad in ("abc", None, "1.5", True):
            with self.assertRaises(NotFound):
                calculate_levies(bad, self.org)
            with self.assertRaises(NotFound):
                calculate_levies_for_period(bad, self.org)
            with self.assertRaises(NotFound):
                get_levy_item(bad, self.org)

    def test_concurrent_generation_is_rejected(self):
        schedule = self._schedule()
        calculate_levies(schedule.id, self.org)
        # another run committed items after this one checked for them
        with patch("django.db.models.query.QuerySet.exists", return_value=False):
            with self.assertRaises(ValidationError) as ctx:
                calculate_levies(schedule.id, self.org)
        self.assertTrue(ctx.exception.message.startswith("levy items have already been generated"))
        self.assertEqual(LevyItem.objects.count(), 12)

    def test_replace_refused_once_payments_allocated(self):
        schedule = self._schedule()
        calculate_levies(schedule.id, self.org)
        LevyItem.objects.filter(lot=self.lots[0]).update(amount_paid=Decimal("100.00"))
        with self.assertRaises(ValidationError) as ctx:
            calculate_levies(schedule.id, self.org, replace=True)
        self.assertIn("payments allocated", ctx.exception.message)
        self.assertEqual(LevyItem.objects.filter(amount_paid=Decimal("100.00")).count(), 4)

    def test_failed_replace_keeps_existing_items(self):
        schedule = self._schedule()
        calculate_levies(schedule.id, self.org)
        before = list(LevyItem.objects.order_by("id").values_list("id", "total_levy_amount"))

        Lot.objects.filter(pk=self.lots[0].pk).update(unit_entitlement=Decimal("40"))
        with patch.object(LevyItem.objects, "bulk_create", side_effect=DatabaseError("insert failed")):
            with self.assertRaises(DatabaseError):
                calculate_levies(schedule.id, self.org, replace=True)
        self.assertEqual(list(LevyItem.objects.order_by("id").values_list("id", "total_levy_amount")), before)


class LevyApiTests(LeviesTestBase):
    def test_create_schedule_endpoint(self):
        request = self._request(
            "post",
            "/api/v1/levy-schedules",
            {
                "scheme": self.scheme.id,
                "budget_year_start": "2026-07-01",
                "budget_year_end": "2027-06-30",
                "admin_fund_total": "12000.00",
                "frequency": "half-yearly",
            },
        )
        response = LevyScheduleViewSet.as_view({"post": "create"})(request)
        self.assertEqual(response.status_code, 201, response.data)
        self.assertEqual(response.data["periods_per_year"], 2)
        self.assertEqual([p["period_name"] for p in response.data["periods"]], ["Period 1 FY2027", "Period 2 FY2027"])

    def test_calculate_endpoint(self):
        schedule = self._schedule()
        request = self._request("post", f"/api/v1/levy-schedules/{schedule.id}/calculate", {})
        response = LevyScheduleViewSet.as_view({"post": "calculate"})(request, pk=schedule.id)
        self.assertEqual(response.status_code, 201, response.data)
        self.assertEqual(response.data["items_created"], 12)

        response = LevyScheduleViewSet.as_view({"post": "calculate"})(
            self._request("post", f"/api/v1/levy-schedules/{schedule.id}/calculate", {}), pk=schedule.id
        )
        self.assertEqual(response.status_code, 400)

        response = LevyScheduleViewSet.as_view({"post": "calculate"})(
            self._request("post", f"/api/v1/levy-schedules/{schedule.id}/calculate", {"replace": True}),
            pk=schedule.id,
        )
        self.assertEqual(response.status_code, 201)

    def test_calculate_with_malformed_pk_is_404(self):
        request = self._request("post", "/api/v1/levy-schedules/abc/calculate", {})
        response = LevyScheduleViewSet.as_view({"post": "calculate"})(request, pk="abc")
        self.assertEqual(response.status_code, 404)

        request = self._request("get", "/api/v1/levy-items/abc/notice")
        response = LevyItemViewSet.as_view({"get": "notice"})(request, pk="abc")
        self.assertEqual(response.status_code, 404)

    def test_destroy_reports_outcome(self):
        schedule = self._schedule()
        request = self._request("delete", f"/api/v1/levy-schedules/{schedule.id}")
        response = LevyScheduleViewSet.as_view({"delete": "destroy"})(request, pk=schedule.id)
        self.assertEqual(response.data, {"result": "deleted"})

    def test_notice_download(self):
        schedule = self._schedule()
        calculate_levies(schedule.id, self.org)
        item = LevyItem.objects.first()
        request = self._request("get", f"/api/v1/levy-items/{item.id}/notice")
        response = LevyItemViewSet.as_view({"get": "notice"})(request, pk=item.id)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["Content-Type"], "application/pdf")
        self.assertTrue(response.content.startswith(b"%PDF"))
        item.refresh_from_db()
        self.assertIsNotNone(item.notice_generated_at)

    def test_notice_download_gated(self):
        self.plan.features = {"document_storage": True}
        self.plan.save()
        schedule = self._schedule()
        calculate_levies(schedule.id, self.org)
        item = LevyItem.objects.first()
        response = LevyItemViewSet.as_view({"get": "notice"})(
            self._request("get", f"/api/v1/levy-items/{item.id}/notice"), pk=item.id
        )
        self.assertEqual(response.status_code, 403)


class LevyNoticeTests(LeviesTestBase):
    def setUp(self):
        super().setUp()
        self.owner = Owner.objects.create(
            organisation=self.org, first_name="Jane", last_name="Citizen", email="jane@example.com"
        )
        LotOwnership.objects.create(lot=self.lots[0], owner=self.owner, is_primary_contact=True)
        self.schedule = self._schedule()
        calculate_levies(self.schedule.id, self.org)
        self.q1 = self.schedule.periods.get(period_number=1)
        self.item = LevyItem.objects.select_related("lot", "period", "scheme").get(period=self.q1, lot=self.lots[0])

    def test_notice_data(self):
        data = build_notice_data(self.item)
        self.assertEqual(data["payment_reference"], "LOT1-Q1FY2027")
        self.assertEqual(data["owner_name"], "Jane Citizen")
        self.assertEqual(data["unit_entitlement"], "10/60 (16.7%)")
        self.assertEqual(data["arrears_amount"], Decimal("0.00"))

    def test_arrears_from_other_periods(self):
        q2_item = LevyItem.objects.get(period__period_number=2, lot=self.lots[0])
        q2_item.status = LevyItemStatus.PARTIAL
        q2_item.amount_paid = Decimal("200.00")
        q2_item.save()
        paid = LevyItem.objects.get(period__period_number=3, lot=self.lots[0])
        paid.status = LevyItemStatus.PAID
        paid.save()
        self.assertEqual(build_notice_data(self.item)["arrears_amount"], Decimal("300.00"))

    def test_pdf_renders(self):
        pdf = render_levy_notice_pdf(build_notice_data(self.item))
        self.assertTrue(pdf.startswith(b"%PDF"))

    @override_settings(EMAIL_ENABLED=True, EMAIL_BACKEND="django.core.mail.backends.locmem.EmailBackend")
    def test_send_notice(self):
        send_levy_notice(self.item)
        self.item.refresh_from_db()
        self.assertEqual(self.item.status, LevyItemStatus.SENT)
        self.assertIsNotNone(self.item.notice_sent_at)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ["jane@example.com"])
        filename, content, mimetype = mail.outbox[0].attachments[0]
        self.assertEqual(filename, "levy-notice-LOT1-Q1FY2027.pdf")
        self.assertEqual(mimetype, "application/pdf")

    @override_settings(EMAIL_ENABLED=True, EMAIL_BACKEND="django.core.mail.backends.locmem.EmailBackend")
    def test_send_keeps_paid_status(self):
        self.item.status = LevyItemStatus.PAID
        self.item.save()
        send_levy_notice(self.item)
        self.item.refresh_from_db()
        self.assertEqual(self.item.status, LevyItemStatus.PAID)

    @override_settings(EMAIL_ENABLED=False)
    def test_send_without_mail_configured(self):
        with self.assertRaises(CollaboratorError):
            send_levy_notice(self.item)
        self.item.refresh_from_db()
        self.assertEqual(self.item.status, LevyItemStatus.PENDING)

    @override_settings(EMAIL_ENABLED=True, EMAIL_BACKEND="django.core.mail.backends.locmem.EmailBackend")
    def test_send_for_period_reports_failures(self):
        result = send_notices_for_period(self.q1.id, self.org)
        self.assertEqual(result["total"], 3)
        self.assertEqual(result["succeeded"], 1)
        self.assertEqual(result["failed"], 2)
        self.assertEqual(len(mail.outbox), 1)
