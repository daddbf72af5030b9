from rest_framework import serializers

from schemes.models import Lot
from schemes.serializers import OrganisationScopedRelatedField
from .models import Payment, PaymentAllocation, PaymentMethod


class PaymentAllocationSerializer(serializers.ModelSerializer):
    period_name = serializers.CharField(source="levy_item.period.period_name", read_only=True)

    class Meta:
        model = PaymentAllocation
        fields = ("id", "levy_item", "period_name", "allocated_amount")
        read_only_fields = fields


class PaymentSerializer(serializers.ModelSerializer):
    lot = OrganisationScopedRelatedField(queryset=Lot.objects.all(), organisation_path="scheme__organisation")
    lot_number = serializers.CharField(source="lot.lot_number", read_only=True)
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices)
    allocations = PaymentAllocationSerializer(many=True, read_only=True)

    class Meta:
        model = Payment
        fields = (
            "id", "scheme", "lot", "lot_number", "amount", "payment_date", "payment_method",
            "reference", "notes", "allocations", "created_by", "created_at",
        )
        read_only_fields = ("scheme", "created_by", "created_at")
        extra_kwargs = {"payment_date": {"required": False}}

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError("Payment amount must be greater than zero")
        return value


class ArrearsQuerySerializer(serializers.Serializer):
    as_of = serializers.DateField(required=False)
