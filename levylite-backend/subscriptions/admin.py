from django.contrib import admin
from .models import Plan, Subscription, SubscriptionAudit, PaymentEvent, PlatformInvoice


@admin.register(Plan)
class PlanAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "max_lots", "trial_days", "is_active")
    search_fields = ("code", "name")
    list_filter = ("is_active",)


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    list_display = ("organisation", "plan", "status", "trial_end_at", "current_period_end", "cancel_at_period_end")
    list_filter = ("status", "plan")
    search_fields = ("organisation__name", "organisation__code", "plan__code", "stripe_customer_id")


@admin.register(SubscriptionAudit)
class SubscriptionAuditAdmin(admin.ModelAdmin):
    list_display = ("subscription", "action", "actor", "created_at")
    list_filter = ("action",)
    readonly_fields = ("metadata",)


@admin.register(PaymentEvent)
class PaymentEventAdmin(admin.ModelAdmin):
    list_display = ("stripe_event_id", "event_type", "organisation", "processed", "created_at")
    list_filter = ("event_type", "processed")
    search_fields = ("stripe_event_id",)
    readonly_fields = ("payload",)


@admin.register(PlatformInvoice)
class PlatformInvoiceAdmin(admin.ModelAdmin):
    list_display = ("invoice_number", "organisation", "total_inc_gst", "lots_billed", "billing_interval", "paid_at")
    list_filter = ("billing_interval", "status")
    search_fields = ("invoice_number", "stripe_invoice_id", "organisation__name")
