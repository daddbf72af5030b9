from django.contrib import admin

from common.admin_mixins import OrganisationScopedAdmin
from .models import LevySchedule, LevyPeriod, LevyItem


class LevyPeriodInline(admin.TabularInline):
    model = LevyPeriod
    extra = 0
    readonly_fields = ("period_number", "period_name", "period_start", "period_end", "due_date")


@admin.register(LevySchedule)
class LevyScheduleAdmin(OrganisationScopedAdmin):
    organisation_field = "scheme__organisation"
    list_display = ("scheme", "budget_year_start", "budget_year_end", "frequency", "admin_fund_total",
                    "capital_works_fund_total", "active")
    list_filter = ("frequency", "active")
    search_fields = ("scheme__scheme_number", "scheme__scheme_name")
    inlines = [LevyPeriodInline]


@admin.register(LevyItem)
class LevyItemAdmin(OrganisationScopedAdmin):
    organisation_field = "scheme__organisation"
    list_display = ("period", "lot", "admin_levy_amount", "capital_levy_amount", "total_levy_amount", "status",
                    "notice_sent_at")
    list_filter = ("status",)
    search_fields = ("lot__lot_number", "period__period_name", "scheme__scheme_number")
