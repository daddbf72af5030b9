from django.urls import path
from .views import (
    PlanListView,
    PlatformInvoiceListView,
    CurrentSubscriptionView,
    FeatureListView,
    FeatureCheckView,
    PlanLimitsView,
    TrialInfoView,
    BillingPortalSessionView,
    StripeWebhookView,
)

urlpatterns = [
    path("plans", PlanListView.as_view(), name="subscription-plans"),
    path("current", CurrentSubscriptionView.as_view(), name="subscription-current"),
    path("features", FeatureListView.as_view(), name="subscription-features"),
    path("features/<str:feature_key>", FeatureCheckView.as_view(), name="subscription-feature-check"),
    path("limits", PlanLimitsView.as_view(), name="subscription-limits"),
    path("trial", TrialInfoView.as_view(), name="subscription-trial"),
    path("billing/invoices", PlatformInvoiceListView.as_view(), name="billing-invoices"),
    path("billing/portal-session", BillingPortalSessionView.as_view(), name="billing-portal-session"),
    path("webhooks/stripe", StripeWebhookView.as_view(), name="stripe-webhook"),
]
