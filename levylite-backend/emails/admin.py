from django.contrib import admin

from common.admin_mixins import OrganisationScopedAdmin
from .models import EmailTemplate, EmailLog, EmailStatus


@admin.register(EmailTemplate)
class EmailTemplateAdmin(admin.ModelAdmin):
    list_display = ("name", "subject", "version", "is_active", "updated_at")
    list_filter = ("is_active",)
    search_fields = ("name", "subject")


@admin.register(EmailLog)
class EmailLogAdmin(OrganisationScopedAdmin):
    list_display = ("created_at", "to_address", "template", "organisation", "status", "sent_at")
    list_filter = ("status", "template")
    search_fields = ("to_address", "subject", "error_message")
    readonly_fields = ("organisation", "to_address", "subject", "template", "payload", "status",
                       "error_message", "created_at", "sent_at")
    actions = ["mark_skipped"]

    @admin.action(description="Mark queued rows as skipped")
    def mark_skipped(self, request, queryset):
        updated = queryset.filter(status=EmailStatus.QUEUED).update(status=EmailStatus.SKIPPED)
        self.message_user(request, f"{updated} email log(s) marked skipped")
