# levies/views.py
from django.db.models import Count
from django.http import HttpResponse
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.api_mixins import (
    DEFAULT_PERMISSION_ROLES,
    IsInOrganisation,
    OrganisationScopedViewSetMixin,
    RoleRequired,
)
from subscriptions.gating import require_feature
from .models import LevySchedule, LevyPeriod, LevyItem
from .notices import (
    build_notice_data,
    generate_levy_notice,
    generate_notices_for_period,
    get_levy_item,
    send_levy_notice,
    send_notices_for_period,
)
from .serializers import (
    CalculateLeviesSerializer,
    LevyItemSerializer,
    LevyPeriodSerializer,
    LevyScheduleSerializer,
)
from .services import (
    calculate_levies,
    calculate_levies_for_period,
    create_schedule,
    delete_schedule,
    update_schedule,
)


def _calculation_response(result):
    return Response(
        {"items_created": result.items_created, "rounding_note": result.rounding_note},
        status=status.HTTP_201_CREATED,
    )


def _replace_flag(request) -> bool:
    serializer = CalculateLeviesSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    return serializer.validated_data["replace"]


class LevyScheduleViewSet(OrganisationScopedViewSetMixin, viewsets.ModelViewSet):
    queryset = LevySchedule.objects.select_related("scheme").prefetch_related("periods")
    serializer_class = LevyScheduleSerializer
    permission_classes = [IsAuthenticated, IsInOrganisation, RoleRequired]
    permission_roles = DEFAULT_PERMISSION_ROLES
    organisation_field = None
    organisation_path = "scheme__organisation"
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_fields = ["scheme", "frequency", "active"]
    ordering_fields = ["budget_year_start", "id"]
    ordering = ["-budget_year_start", "id"]

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        schedule = create_schedule(data.pop("scheme"), data, user=request.user)
        return Response(self.get_serializer(schedule).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop("partial", False)
        schedule = self.get_object()
        serializer = self.get_serializer(schedule, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        data.pop("scheme", None)
        schedule = update_schedule(schedule, data)
        return Response(self.get_serializer(schedule).data)

    def destroy(self, request, *args, **kwargs):
        result = delete_schedule(self.get_object())
        return Response({"result": result}, status=status.HTTP_200_OK)

    @action(detail=True, methods=["POST"])
    def calculate(self, request, pk=None):
        """Generate levy items for every period. Pass {"replace": true} to regenerate."""
        return _calculation_response(calculate_levies(pk, request.organisation, replace=_replace_flag(request)))


class LevyPeriodViewSet(OrganisationScopedViewSetMixin, viewsets.ReadOnlyModelViewSet):
    queryset = LevyPeriod.objects.select_related("schedule").annotate(item_count=Count("items"))
    serializer_class = LevyPeriodSerializer
    permission_classes = [IsAuthenticated, IsInOrganisation, RoleRequired]
    permission_roles = DEFAULT_PERMISSION_ROLES
    organisation_field = None
    organisation_path = "schedule__scheme__organisation"
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ["schedule", "status"]
    ordering = ["schedule", "period_number"]

    @action(detail=True, methods=["POST"])
    def calculate(self, request, pk=None):
        return _calculation_response(
            calculate_levies_for_period(pk, request.organisation, replace=_replace_flag(request))
        )

    @action(detail=True, methods=["POST"], url_path="generate-notices")
    def generate_notices(self, request, pk=None):
        require_feature(request.organisation, "levy_notices")
        return Response(generate_notices_for_period(pk, request.organisation))

    @action(detail=True, methods=["POST"], url_path="send-notices")
    def send_notices(self, request, pk=None):
        require_feature(request.organisation, "levy_notices")
        require_feature(request.organisation, "email_notices")
        return Response(send_notices_for_period(pk, request.organisation))


class LevyItemViewSet(OrganisationScopedViewSetMixin, mixins.ListModelMixin, mixins.RetrieveModelMixin,
                      viewsets.GenericViewSet):
    queryset = LevyItem.objects.select_related("lot", "period")
    serializer_class = LevyItemSerializer
    permission_classes = [IsAuthenticated, IsInOrganisation, RoleRequired]
    permission_roles = DEFAULT_PERMISSION_ROLES
    organisation_field = None
    organisation_path = "scheme__organisation"
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_fields = ["scheme", "period", "period__schedule", "lot", "status"]
    ordering_fields = ["due_date", "lot_id", "total_levy_amount"]
    ordering = ["period", "lot_id"]

    @action(detail=True, methods=["GET"])
    def notice(self, request, pk=None):
        """Download the levy notice PDF."""
        require_feature(request.organisation, "levy_notices")
        item = get_levy_item(pk, request.organisation)
        data = build_notice_data(item)
        pdf = generate_levy_notice(item, data)
        resp = HttpResponse(pdf, content_type="application/pdf")
        resp["Content-Disposition"] = f'attachment; filename="levy-notice-{data["payment_reference"]}.pdf"'
        return resp

    @action(detail=True, methods=["POST"], url_path="send-notice")
    def send_notice(self, request, pk=None):
        require_feature(request.organisation, "levy_notices")
        require_feature(request.organisation, "email_notices")
        item = send_levy_notice(get_levy_item(pk, request.organisation))
        return Response(self.get_serializer(item).data)
