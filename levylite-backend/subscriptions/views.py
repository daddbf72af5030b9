from rest_framework import generics, permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from common.api_mixins import IsInOrganisation
from common.permissions import IsManager
from .billing import create_billing_portal_session, handle_webhook
from .gating import FEATURES, current_subscription, organisation_can_access
from .models import Plan, PlatformInvoice
from .serializers import PlanSerializer, PlatformInvoiceSerializer, SubscriptionSerializer
from .services import check_plan_limits, get_trial_info


class PlanListView(generics.ListAPIView):
    serializer_class = PlanSerializer
    permission_classes = [permissions.IsAuthenticated, IsInOrganisation]
    pagination_class = None

    def get_queryset(self):
        return Plan.objects.filter(is_active=True)


class PlatformInvoiceListView(generics.ListAPIView):
    """Billing history: the organisation's paid LevyLite invoices, newest first."""
    serializer_class = PlatformInvoiceSerializer
    permission_classes = [permissions.IsAuthenticated, IsInOrganisation, IsManager]

    def get_queryset(self):
        return PlatformInvoice.objects.filter(organisation=self.request.organisation)

class CurrentSubscriptionView(APIView):
    permission_classes = [permissions.IsAuthenticated, IsInOrganisation]

    def get(self, request):
        org = request.organisation
        sub = current_subscription(org)
        return Response(
            {
                "subscription": SubscriptionSerializer(sub).data if sub else None,
                "limits": check_plan_limits(org),
                "trial": get_trial_info(org),
            }
        )


class FeatureListView(APIView):
    permission_classes = [permissions.IsAuthenticated, IsInOrganisation]

    def get(self, request):
        org = request.organisation
        return Response({key: organisation_can_access(org, key) for key in FEATURES})


class FeatureCheckView(APIView):
    """UI convenience check; gated endpoints re-check on the server."""
    permission_classes = [permissions.IsAuthenticated, IsInOrganisation]

    def get(self, request, feature_key):
        return Response(
            {
                "feature": feature_key,
                "label": FEATURES.get(feature_key),
                "enabled": organisation_can_access(request.organisation, feature_key),
            }
        )


class PlanLimitsView(APIView):
    permission_classes = [permissions.IsAuthenticated, IsInOrganisation]

    def get(self, request):
        return Response(check_plan_limits(request.organisation))


class TrialInfoView(APIView):
    permission_classes = [permissions.IsAuthenticated, IsInOrganisation]

    def get(self, request):
        return Response(get_trial_info(request.organisation))


class BillingPortalSessionView(APIView):
    permission_classes = [permissions.IsAuthenticated, IsManager]

    def post(self, request):
        url = create_billing_portal_session(request.organisation, return_url=request.data.get("return_url"))
        return Response({"portal_url": url})


class StripeWebhookView(APIView):
    authentication_classes = []  # verified by Stripe signature
    permission_classes = [permissions.AllowAny]

    def post(self, request):
        event = handle_webhook(request.body, request.headers.get("Stripe-Signature", ""))
        return Response({"received": True, "event": event.stripe_event_id}, status=status.HTTP_200_OK)
