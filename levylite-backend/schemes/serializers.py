# schemes/serializers.py
from rest_framework import serializers
from rest_framework.validators import UniqueTogetherValidator

from .models import Scheme, Lot, Owner, LotOwnership


def _request_org(serializer):
    request = serializer.context.get("request")
    return getattr(request, "organisation", None)


class OrganisationScopedRelatedField(serializers.PrimaryKeyRelatedField):
    """PK field whose queryset is narrowed to request.organisation via `organisation_path`."""

    def __init__(self, organisation_path="organisation", **kwargs):
        self.organisation_path = organisation_path
        super().__init__(**kwargs)

    def get_queryset(self):
        qs = super().get_queryset()
        request = self.context.get("request")
        org = getattr(request, "organisation", None)
        if org is None:
            return qs.none()
        return qs.filter(**{self.organisation_path: org})


# ---------- LITE HELPERS ----------
class SchemeLiteSerializer(serializers.ModelSerializer):
    class Meta:
        model = Scheme
        fields = ("id", "scheme_number", "scheme_name")


class OwnerLiteSerializer(serializers.ModelSerializer):
    class Meta:
        model = Owner
        fields = ("id", "first_name", "last_name", "email")


# ---------- CORE ENTITIES ----------
class SchemeSerializer(serializers.ModelSerializer):
    lot_count = serializers.IntegerField(read_only=True, required=False)
    total_entitlement = serializers.DecimalField(max_digits=14, decimal_places=4, read_only=True, required=False)

    class Meta:
        model = Scheme
        fields = (
            "id", "organisation", "scheme_number", "scheme_name", "scheme_type",
            "street_address", "suburb", "state", "postcode", "abn", "levy_due_day",
            "trust_bsb", "trust_account_number", "trust_account_name",
            "status", "notes", "lot_count", "total_entitlement", "created_at", "updated_at",
        )
        read_only_fields = ("organisation", "created_at", "updated_at")

    def validate_scheme_number(self, value):
        value = value.strip().upper()
        org = _request_org(self)
        qs = Scheme.objects.filter(organisation=org, scheme_number__iexact=value)
        if self.instance is not None:
            qs = qs.exclude(pk=self.instance.pk)
        if qs.exists():
            raise serializers.ValidationError("A scheme with this number already exists")
        return value


class LotSerializer(serializers.ModelSerializer):
    scheme = OrganisationScopedRelatedField(queryset=Scheme.objects.all())
    owners = OwnerLiteSerializer(many=True, read_only=True)

    class Meta:
        model = Lot
        fields = (
            "id", "scheme", "lot_number", "unit_number", "street_address", "lot_type",
            "unit_entitlement", "status", "notes", "owners", "created_at", "updated_at",
        )
        read_only_fields = ("created_at", "updated_at")

    def validate(self, attrs):
        scheme = attrs.get("scheme") or getattr(self.instance, "scheme", None)
        lot_number = attrs.get("lot_number") or getattr(self.instance, "lot_number", None)
        if scheme and lot_number:
            qs = Lot.objects.filter(scheme=scheme, lot_number=lot_number)
            if self.instance is not None:
                qs = qs.exclude(pk=self.instance.pk)
            if qs.exists():
                raise serializers.ValidationError({"lot_number": "Lot number already exists in this scheme"})
        return attrs


class OwnerSerializer(serializers.ModelSerializer):
    lots = serializers.SerializerMethodField()

    class Meta:
        model = Owner
        fields = (
            "id", "organisation", "title", "first_name", "last_name", "email", "phone_mobile",
            "correspondence_method", "status",
            "portal_status", "portal_invite_sent_at", "portal_invite_accepted_at", "portal_activated_at",
            "lots", "created_at", "updated_at",
        )
        read_only_fields = (
            "organisation", "portal_status", "portal_invite_sent_at",
            "portal_invite_accepted_at", "portal_activated_at", "created_at", "updated_at",
        )

    def get_lots(self, obj):
        return [
            {
                "ownership_id": o.id,
                "lot_id": o.lot_id,
                "lot_number": o.lot.lot_number,
                "scheme_id": o.lot.scheme_id,
                "is_primary_contact": o.is_primary_contact,
            }
            for o in obj.ownerships.select_related("lot")
        ]


class LotOwnershipSerializer(serializers.ModelSerializer):
    lot = OrganisationScopedRelatedField(queryset=Lot.objects.all(), organisation_path="scheme__organisation")
    owner = OrganisationScopedRelatedField(queryset=Owner.objects.all())

    class Meta:
        model = LotOwnership
        fields = (
            "id", "lot", "owner", "ownership_type", "ownership_percentage",
            "is_primary_contact", "receive_levy_notices", "created_at",
        )
        read_only_fields = ("created_at",)
        validators = [
            UniqueTogetherValidator(
                queryset=LotOwnership.objects.all(),
                fields=("lot", "owner"),
                message="Owner is already assigned to this lot",
            )
        ]
