"""
Tests for payment recording, oldest-first allocation and the arrears report.
"""
from datetime import date, timedelta
from decimal import Decimal
from io import StringIO
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.db import DatabaseError
from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from common.errors import ValidationError
from common.roles import OrgRole
from levies.models import LevyItem, LevyItemStatus
from levies.services import calculate_levies, create_schedule
from organisations.models import Organisation, OrganisationUser
from payments.models import Payment, PaymentAllocation, PaymentMethod
from payments.services import arrears_report, mark_overdue_items, record_payment
from payments.views import PaymentViewSet
from schemes.models import Scheme, Lot, Owner, LotOwnership
from subscriptions.models import Plan, Subscription


class PaymentsTestBase(TestCase):
    def setUp(self):
        self.factory = APIRequestFactory()
        self.user = get_user_model().objects.create_user(username="manager", password="test-pass")
        self.org = Organisation.objects.create(name="Harbour Strata", code="harbour")
        OrganisationUser.objects.create(organisation=self.org, user=self.user, role=OrgRole.MANAGER)
        self.plan = Plan.objects.create(code="TEST_REPORTS", name="Reports", features={"reports": True})
        Subscription.objects.create(organisation=self.org, plan=self.plan, status=Subscription.STATUS_ACTIVE)
        self.scheme = Scheme.objects.create(
            organisation=self.org,
            scheme_number="SP 12345",
            scheme_name="Ocean View",
            street_address="1 Beach Rd",
            suburb="Cottesloe",
            state="WA",
            postcode="6011",
        )
        self.lots = [
            Lot.objects.create(scheme=self.scheme, lot_number=str(n), unit_entitlement=Decimal(e))
            for n, e in [(1, "10"), (2, "20"), (3, "30")]
        ]
        # 12000 a year, quarterly: lot 1 owes 500.00, lot 2 1000.00, lot 3 1500.00 per quarter
        schedule = create_schedule(
            self.scheme,
            {
                "budget_year_start": date(2026, 7, 1),
                "budget_year_end": date(2027, 6, 30),
                "admin_fund_total": Decimal("12000.00"),
                "frequency": "quarterly",
            },
            user=self.user,
        )
        calculate_levies(schedule.id, self.org)

    def _items(self, lot):
        return list(LevyItem.objects.filter(lot=lot).order_by("due_date"))

    def _pay(self, lot, amount, **data):
        data.setdefault("payment_method", PaymentMethod.BANK_TRANSFER)
        return record_payment(lot, dict(data, amount=Decimal(amount)), user=self.user)

    def _request(self, method, path, data=None):
        request = getattr(self.factory, method)(path, data, format="json")
        force_authenticate(request, user=self.user)
        request.organisation = self.org
        return request


class RecordPaymentTests(PaymentsTestBase):
    def test_allocates_oldest_first(self):
        result = self._pay(self.lots[0], "1200.00")
        items = self._items(self.lots[0])
        self.assertEqual([i.amount_paid for i in items], [Decimal("500.00"), Decimal("500.00"), Decimal("200.00"),
                                                          Decimal("0.00")])
        self.assertEqual([i.status for i in items], [LevyItemStatus.PAID, LevyItemStatus.PAID,
                                                     LevyItemStatus.PARTIAL, LevyItemStatus.PENDING])
        self.assertEqual(result.total_allocated, Decimal("1200.00"))
        self.assertEqual(result.unallocated_amount, Decimal("0.00"))
        self.assertEqual(
            [a.allocated_amount for a in PaymentAllocation.objects.filter(payment=result.payment)],
            [Decimal("500.00"), Decimal("500.00"), Decimal("200.00")],
        )

    def test_partial_item_is_settled_before_later_items(self):
        self._pay(self.lots[0], "200.00")
        self._pay(self.lots[0], "400.00")
        first, second = self._items(self.lots[0])[:2]
        self.assertEqual((first.amount_paid, first.status), (Decimal("500.00"), LevyItemStatus.PAID))
        self.assertEqual((second.amount_paid, second.status), (Decimal("100.00"), LevyItemStatus.PARTIAL))

    def test_overpayment_left_unallocated(self):
        result = self._pay(self.lots[0], "2500.00")
        self.assertTrue(all(i.status == LevyItemStatus.PAID for i in self._items(self.lots[0])))
        self.assertEqual(result.total_allocated, Decimal("2000.00"))
        self.assertEqual(result.unallocated_amount, Decimal("500.00"))
        self.assertIn("unallocated credit", result.note)

    def test_lot_without_levies_records_unallocated_payment(self):
        new_lot = Lot.objects.create(scheme=self.scheme, lot_number="4", unit_entitlement=Decimal("5"))
        result = self._pay(new_lot, "300.00", payment_method=PaymentMethod.CASH)
        self.assertEqual(result.allocations, [])
        self.assertEqual(result.unallocated_amount, Decimal("300.00"))
        self.assertTrue(result.note.startswith("No outstanding levies"))
        self.assertEqual(Payment.objects.filter(lot=new_lot).count(), 1)

    def test_other_lots_untouched(self):
        self._pay(self.lots[0], "2000.00")
        self.assertTrue(all(i.amount_paid == 0 for i in self._items(self.lots[1])))

    def test_rejects_non_positive_amount(self):
        with self.assertRaises(ValidationError):
            self._pay(self.lots[0], "0")
        self.assertEqual(Payment.objects.count(), 0)

    def test_rejects_unknown_method(self):
        with self.assertRaises(ValidationError):
            self._pay(self.lots[0], "10.00", payment_method="paypal")

    def test_failure_leaves_items_and_payments_unchanged(self):
        with patch.object(PaymentAllocation.objects, "bulk_create", side_effect=DatabaseError("insert failed")):
            with self.assertRaises(DatabaseError):
                self._pay(self.lots[0], "700.00")
        self.assertEqual(Payment.objects.count(), 0)
        items = self._items(self.lots[0])
        self.assertTrue(all(i.amount_paid == 0 and i.status == LevyItemStatus.PENDING for i in items))


class OverdueAndArrearsTests(PaymentsTestBase):
    def test_mark_overdue_skips_partial_and_future(self):
        first_due = self._items(self.lots[0])[0].due_date
        self._pay(self.lots[1], "400.00")
        updated = mark_overdue_items(today=first_due + timedelta(days=1))
        self.assertEqual(updated, 2)
        statuses = {i.lot_id: i.status for i in LevyItem.objects.filter(due_date=first_due)}
        self.assertEqual(statuses[self.lots[0].id], LevyItemStatus.OVERDUE)
        self.assertEqual(statuses[self.lots[1].id], LevyItemStatus.PARTIAL)
        self.assertEqual(statuses[self.lots[2].id], LevyItemStatus.OVERDUE)
        self.assertFalse(LevyItem.objects.filter(due_date__gt=first_due, status=LevyItemStatus.OVERDUE).exists())

    def test_mark_overdue_command(self):
        first_due = self._items(self.lots[0])[0].due_date
        out = StringIO()
        call_command("mark_overdue_levies", "--as-of", (first_due + timedelta(days=1)).isoformat(), stdout=out)
        self.assertIn("Marked 3 levy items overdue", out.getvalue())

    def test_arrears_report_buckets(self):
        owner = Owner.objects.create(organisation=self.org, first_name="Jane", last_name="Citizen")
        LotOwnership.objects.create(lot=self.lots[0], owner=owner, is_primary_contact=True)
        first_due = self._items(self.lots[0])[0].due_date
        self._pay(self.lots[1], "400.00")
        self._pay(self.lots[2], "1500.00")

        report = arrears_report(self.scheme, today=first_due + timedelta(days=45))
        self.assertEqual(report["total_overdue"], Decimal("1100.00"))
        self.assertEqual(report["lots_in_arrears"], 2)
        self.assertEqual(report["aging"]["days_31_to_60"], {"count": 2, "amount": Decimal("1100.00")})
        self.assertEqual(report["aging"]["under_30"], {"count": 0, "amount": Decimal("0.00")})
        rows = {row["lot_number"]: row for row in report["items"]}
        self.assertEqual(rows["1"]["owner_name"], "Jane Citizen")
        self.assertEqual(rows["2"]["balance"], Decimal("600.00"))
        self.assertEqual(rows["2"]["days_overdue"], 45)

    def test_nothing_in_arrears_before_first_due_date(self):
        first_due = self._items(self.lots[0])[0].due_date
        report = arrears_report(self.scheme, today=first_due)
        self.assertEqual(report["items"], [])
        self.assertEqual(report["total_overdue"], Decimal("0.00"))


class PaymentApiTests(PaymentsTestBase):
    def test_create_returns_allocations(self):
        request = self._request(
            "post",
            "/api/v1/payments",
            {"lot": self.lots[0].id, "amount": "600.00", "payment_method": "bpay", "reference": "BP-1"},
        )
        response = PaymentViewSet.as_view({"post": "create"})(request)
        self.assertEqual(response.status_code, 201, response.data)
        self.assertEqual(response.data["scheme"], self.scheme.id)
        self.assertEqual(len(response.data["allocations"]), 2)
        self.assertEqual(response.data["total_allocated"], Decimal("600.00"))
        self.assertEqual(response.data["unallocated_amount"], Decimal("0.00"))

    def test_create_rejects_other_organisations_lot(self):
        other = Organisation.objects.create(name="Other", code="other")
        other_scheme = Scheme.objects.create(
            organisation=other, scheme_number="SP 1", scheme_name="Elsewhere", street_address="2 Rd",
            suburb="Perth", state="WA", postcode="6000",
        )
        foreign_lot = Lot.objects.create(scheme=other_scheme, lot_number="1", unit_entitlement=Decimal("1"))
        request = self._request(
            "post", "/api/v1/payments", {"lot": foreign_lot.id, "amount": "10.00", "payment_method": "cash"}
        )
        response = PaymentViewSet.as_view({"post": "create"})(request)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(Payment.objects.count(), 0)

    def test_create_rejects_zero_amount(self):
        request = self._request(
            "post", "/api/v1/payments", {"lot": self.lots[0].id, "amount": "0.00", "payment_method": "cash"}
        )
        response = PaymentViewSet.as_view({"post": "create"})(request)
        self.assertEqual(response.status_code, 400)

    def test_list_filters_by_lot(self):
        self._pay(self.lots[0], "100.00")
        self._pay(self.lots[1], "100.00")
        request = self._request("get", f"/api/v1/payments?lot={self.lots[1].id}")
        response = PaymentViewSet.as_view({"get": "list"})(request)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["count"], 1)

    def test_outstanding_lists_unpaid_items(self):
        self._pay(self.lots[0], "500.00")
        request = self._request("get", f"/api/v1/payments/outstanding?lot={self.lots[0].id}")
        response = PaymentViewSet.as_view({"get": "outstanding"})(request)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 3)

    def test_outstanding_rejects_malformed_lot(self):
        request = self._request("get", "/api/v1/payments/outstanding?lot=abc")
        response = PaymentViewSet.as_view({"get": "outstanding"})(request)
        self.assertEqual(response.status_code, 400)

    def test_arrears_report_endpoint(self):
        first_due = self._items(self.lots[0])[0].due_date
        as_of = (first_due + timedelta(days=10)).isoformat()
        request = self._request("get", f"/api/v1/payments/arrears?scheme={self.scheme.id}&as_of={as_of}")
        response = PaymentViewSet.as_view({"get": "arrears"})(request)
        self.assertEqual(response.status_code, 200, response.data)
        self.assertEqual(response.data["total_overdue"], Decimal("3000.00"))
        self.assertEqual(response.data["aging"]["under_30"]["count"], 3)

    def test_arrears_report_requires_reports_feature(self):
        self.plan.features = {"levy_notices": True}
        self.plan.save()
        request = self._request("get", f"/api/v1/payments/arrears?scheme={self.scheme.id}")
        response = PaymentViewSet.as_view({"get": "arrears"})(request)
        self.assertEqual(response.status_code, 403)
