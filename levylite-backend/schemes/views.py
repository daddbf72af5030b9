# levylite-backend/schemes/views.py
from django.db.models import Count, Q, Sum
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.filters import SearchFilter, OrderingFilter
from rest_framework.parsers import JSONParser, MultiPartParser, FormParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.api_mixins import (
    DEFAULT_PERMISSION_ROLES,
    IsInOrganisation,
    OrganisationScopedViewSetMixin,
    RoleRequired,
)
from common.errors import ValidationError, parse_id
from subscriptions.gating import require_feature
from .models import Scheme, SchemeStatus, Lot, LotStatus, Owner, LotOwnership
from .portal import invite_owner, reset_owner_portal
from .serializers import SchemeSerializer, LotSerializer, OwnerSerializer, LotOwnershipSerializer
from .services import archive_scheme, create_lot, import_lots, parse_lot_rows


class SchemeViewSet(OrganisationScopedViewSetMixin, viewsets.ModelViewSet):
    """
    Schemes are archived, never deleted: DELETE sets status=archived.
    Archived schemes are hidden from the list unless ?include_archived=1.
    """
    queryset = Scheme.objects.all()
    serializer_class = SchemeSerializer
    permission_classes = [IsAuthenticated, IsInOrganisation, RoleRequired]
    permission_roles = DEFAULT_PERMISSION_ROLES
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_fields = ["status", "state", "scheme_type"]
    search_fields = ["scheme_number", "scheme_name", "suburb"]
    ordering_fields = ["id", "scheme_name", "scheme_number", "created_at"]
    ordering = ["scheme_name"]

    def get_queryset(self):
        qs = super().get_queryset().annotate(
            lot_count=Count("lots", filter=Q(lots__status=LotStatus.ACTIVE), distinct=True),
            total_entitlement=Sum("lots__unit_entitlement", filter=Q(lots__status=LotStatus.ACTIVE)),
        )
        if self.action == "list" and self.request.query_params.get("include_archived") not in ("1", "true"):
            qs = qs.exclude(status=SchemeStatus.ARCHIVED)
        return qs

    def perform_create(self, serializer):
        serializer.save(organisation=self.request.organisation, created_by=self.request.user)

    def destroy(self, request, *args, **kwargs):
        scheme = archive_scheme(self.get_object())
        return Response(self.get_serializer(scheme).data, status=status.HTTP_200_OK)


class LotViewSet(OrganisationScopedViewSetMixin, viewsets.ModelViewSet):
    queryset = Lot.objects.select_related("scheme").prefetch_related("owners")
    serializer_class = LotSerializer
    permission_classes = [IsAuthenticated, IsInOrganisation, RoleRequired]
    permission_roles = DEFAULT_PERMISSION_ROLES
    organisation_field = None
    organisation_path = "scheme__organisation"
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_fields = ["scheme", "status", "lot_type"]
    search_fields = ["lot_number", "unit_number", "street_address"]
    ordering_fields = ["id", "lot_number", "unit_entitlement"]
    ordering = ["id"]

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        lot = create_lot(serializer, request.organisation)
        return Response(self.get_serializer(lot).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["POST"], url_path="import", parser_classes=[MultiPartParser, FormParser, JSONParser])
    def import_csv(self, request):
        """
        Bulk import from CSV: multipart `file` or JSON `csv`, plus `scheme`.
        Columns: lot_number, unit_entitlement, unit_number, lot_type, street_address.
        """
        require_feature(request.organisation, "bulk_lot_import")
        scheme_id = parse_id(request.data.get("scheme"), ValidationError("scheme must be a scheme id"))
        scheme = Scheme.objects.filter(id=scheme_id, organisation=request.organisation).first()
        if scheme is None:
            raise ValidationError("Scheme not found")
        upload = request.FILES.get("file")
        if upload is not None:
            try:
                text = upload.read().decode("utf-8-sig")
            except UnicodeDecodeError:
                raise ValidationError("CSV must be UTF-8 encoded")
        else:
            text = request.data.get("csv") or ""
        lots = import_lots(scheme, parse_lot_rows(text))
        return Response({"imported": len(lots)}, status=status.HTTP_201_CREATED)


class OwnerViewSet(OrganisationScopedViewSetMixin, viewsets.ModelViewSet):
    queryset = Owner.objects.prefetch_related("ownerships__lot")
    serializer_class = OwnerSerializer
    permission_classes = [IsAuthenticated, IsInOrganisation, RoleRequired]
    permission_roles = DEFAULT_PERMISSION_ROLES
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_fields = ["status", "portal_status", "lots__scheme"]
    search_fields = ["first_name", "last_name", "email"]
    ordering_fields = ["id", "last_name", "first_name"]
    ordering = ["last_name", "first_name", "id"]

    @action(detail=True, methods=["POST"], url_path="portal-invite")
    def portal_invite(self, request, pk=None):
        require_feature(request.organisation, "owner_portal")
        owner = self.get_object()
        invite_owner(owner)
        return Response(self.get_serializer(owner).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["POST"], url_path="portal-reset")
    def portal_reset(self, request, pk=None):
        owner = self.get_object()
        reset_owner_portal(owner)
        return Response(self.get_serializer(owner).data, status=status.HTTP_200_OK)


class LotOwnershipViewSet(OrganisationScopedViewSetMixin, viewsets.ModelViewSet):
    queryset = LotOwnership.objects.select_related("lot", "owner")
    serializer_class = LotOwnershipSerializer
    permission_classes = [IsAuthenticated, IsInOrganisation, RoleRequired]
    permission_roles = DEFAULT_PERMISSION_ROLES
    organisation_field = None
    organisation_path = "owner__organisation"
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ["lot", "owner", "is_primary_contact"]
    ordering = ["id"]

    def perform_create(self, serializer):
        ownership = serializer.save()
        if ownership.is_primary_contact:
            LotOwnership.objects.filter(lot=ownership.lot).exclude(pk=ownership.pk).update(is_primary_contact=False)

    def perform_update(self, serializer):
        self.perform_create(serializer)
