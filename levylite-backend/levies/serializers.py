from rest_framework import serializers

from schemes.models import Scheme
from schemes.serializers import OrganisationScopedRelatedField
from .models import LevySchedule, LevyPeriod, LevyItem


class LevyPeriodSerializer(serializers.ModelSerializer):
    item_count = serializers.IntegerField(read_only=True, required=False)

    class Meta:
        model = LevyPeriod
        fields = ("id", "schedule", "period_number", "period_name", "period_start", "period_end", "due_date",
                  "status", "item_count")
        read_only_fields = fields


class LevyScheduleSerializer(serializers.ModelSerializer):
    scheme = OrganisationScopedRelatedField(queryset=Scheme.objects.all())
    periods = LevyPeriodSerializer(many=True, read_only=True)
    total_budget = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = LevySchedule
        fields = (
            "id", "scheme", "budget_year_start", "budget_year_end", "admin_fund_total",
            "capital_works_fund_total", "total_budget", "frequency", "periods_per_year", "active",
            "periods", "created_at", "updated_at",
        )
        read_only_fields = ("active", "created_at", "updated_at")
        extra_kwargs = {"periods_per_year": {"required": False}}


class LevyItemSerializer(serializers.ModelSerializer):
    lot_number = serializers.CharField(source="lot.lot_number", read_only=True)
    period_name = serializers.CharField(source="period.period_name", read_only=True)
    balance = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = LevyItem
        fields = (
            "id", "period", "period_name", "lot", "lot_number", "scheme",
            "admin_levy_amount", "capital_levy_amount", "total_levy_amount", "amount_paid", "balance",
            "due_date", "status", "notice_generated_at", "notice_sent_at",
        )
        read_only_fields = fields


class CalculateLeviesSerializer(serializers.Serializer):
    replace = serializers.BooleanField(default=False)
