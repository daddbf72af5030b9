# payments/views.py
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.api_mixins import (
    DEFAULT_PERMISSION_ROLES,
    IsInOrganisation,
    OrganisationScopedViewSetMixin,
    RoleRequired,
)
from common.errors import NotFound, ValidationError, parse_id
from levies.serializers import LevyItemSerializer
from schemes.models import Lot, Scheme
from subscriptions.gating import require_feature
from .models import Payment
from .serializers import ArrearsQuerySerializer, PaymentSerializer
from .services import arrears_report, outstanding_items, record_payment


class PaymentViewSet(OrganisationScopedViewSetMixin, mixins.ListModelMixin, mixins.RetrieveModelMixin,
                     mixins.CreateModelMixin, viewsets.GenericViewSet):
    """
    Payments are append-only. POST allocates the amount to the lot's
    outstanding levy items, oldest due date first.
    """
    queryset = Payment.objects.select_related("lot").prefetch_related("allocations__levy_item__period")
    serializer_class = PaymentSerializer
    permission_classes = [IsAuthenticated, IsInOrganisation, RoleRequired]
    permission_roles = DEFAULT_PERMISSION_ROLES
    organisation_field = None
    organisation_path = "scheme__organisation"
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_fields = ["scheme", "lot", "payment_method"]
    search_fields = ["reference", "lot__lot_number"]
    ordering_fields = ["payment_date", "amount", "id"]
    ordering = ["-payment_date", "-id"]

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        result = record_payment(data.pop("lot"), data, user=request.user)
        body = dict(self.get_serializer(result.payment).data)
        body.update(
            total_allocated=result.total_allocated,
            unallocated_amount=result.unallocated_amount,
            note=result.note,
        )
        return Response(body, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["GET"])
    def outstanding(self, request):
        """Unpaid levy items of ?lot=<id>, in the order a payment would settle them."""
        lot_id = parse_id(request.query_params.get("lot"), ValidationError("lot must be a lot id"))
        lot = Lot.objects.filter(id=lot_id, scheme__organisation=request.organisation).first()
        if lot is None:
            raise NotFound("Lot not found")
        items = [item for item in outstanding_items(lot).select_related("lot") if item.balance > 0]
        return Response(LevyItemSerializer(items, many=True).data)

    @action(detail=False, methods=["GET"])
    def arrears(self, request):
        """Arrears report for ?scheme=<id>, optionally ?as_of=YYYY-MM-DD."""
        require_feature(request.organisation, "reports")
        scheme_id = parse_id(request.query_params.get("scheme"), ValidationError("scheme must be a scheme id"))
        scheme = Scheme.objects.filter(id=scheme_id, organisation=request.organisation).first()
        if scheme is None:
            raise NotFound("Scheme not found")
        query = ArrearsQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        return Response(arrears_report(scheme, today=query.validated_data.get("as_of")))
