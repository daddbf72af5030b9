from django.contrib import admin

from common.admin_mixins import OrganisationScopedAdmin
from .models import Scheme, Lot, Owner, LotOwnership


class LotInline(admin.TabularInline):
    model = Lot
    extra = 0
    fields = ("lot_number", "unit_number", "lot_type", "unit_entitlement", "status")


class LotOwnershipInline(admin.TabularInline):
    model = LotOwnership
    extra = 0
    autocomplete_fields = ("lot",)


@admin.register(Scheme)
class SchemeAdmin(OrganisationScopedAdmin):
    list_display = ("scheme_number", "scheme_name", "organisation", "suburb", "state", "status")
    list_filter = ("status", "state", "scheme_type")
    search_fields = ("scheme_number", "scheme_name", "suburb")
    inlines = [LotInline]


@admin.register(Lot)
class LotAdmin(OrganisationScopedAdmin):
    organisation_field = "scheme__organisation"
    list_display = ("lot_number", "scheme", "unit_number", "lot_type", "unit_entitlement", "status")
    list_filter = ("status", "lot_type")
    search_fields = ("lot_number", "unit_number", "scheme__scheme_number")


@admin.register(Owner)
class OwnerAdmin(OrganisationScopedAdmin):
    list_display = ("last_name", "first_name", "email", "organisation", "portal_status")
    list_filter = ("portal_status", "status")
    search_fields = ("first_name", "last_name", "email")
    readonly_fields = ("portal_status", "portal_user", "portal_invite_sent_at", "portal_invite_accepted_at",
                       "portal_activated_at")
    inlines = [LotOwnershipInline]
