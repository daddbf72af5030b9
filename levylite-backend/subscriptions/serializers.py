from rest_framework import serializers
from .models import Plan, PlatformInvoice, Subscription


class PlanSerializer(serializers.ModelSerializer):
    class Meta:
        model = Plan
        fields = ["id", "code", "name", "description", "trial_days", "max_lots", "features"]


class SubscriptionSerializer(serializers.ModelSerializer):
    plan_code = serializers.CharField(source="plan.code", read_only=True)
    plan_name = serializers.CharField(source="plan.name", read_only=True)

    class Meta:
        model = Subscription
        fields = [
            "id",
            "organisation",
            "plan_code",
            "plan_name",
            "status",
            "trial_end_at",
            "current_period_start",
            "current_period_end",
            "cancel_at_period_end",
            "canceled_at",
            "billed_lots_count",
        ]


class PlatformInvoiceSerializer(serializers.ModelSerializer):
    class Meta:
        model = PlatformInvoice
        fields = [
            "id",
            "invoice_number",
            "subtotal_ex_gst",
            "gst_amount",
            "total_inc_gst",
            "lots_billed",
            "billing_interval",
            "invoice_date",
            "due_date",
            "paid_at",
            "status",
            "stripe_invoice_url",
            "stripe_pdf_url",
        ]
        read_only_fields = fields
