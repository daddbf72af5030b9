from django.contrib import admin

from common.admin_mixins import OrganisationScopedAdmin
from .models import Payment, PaymentAllocation


class PaymentAllocationInline(admin.TabularInline):
    model = PaymentAllocation
    extra = 0
    readonly_fields = ("levy_item", "allocated_amount", "created_at")


@admin.register(Payment)
class PaymentAdmin(OrganisationScopedAdmin):
    organisation_field = "scheme__organisation"
    list_display = ("payment_date", "scheme", "lot", "amount", "payment_method", "reference")
    list_filter = ("payment_method",)
    search_fields = ("reference", "lot__lot_number", "scheme__scheme_number")
    inlines = [PaymentAllocationInline]
