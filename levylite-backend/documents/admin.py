from django.contrib import admin

from common.admin_mixins import OrganisationScopedAdmin
from organisations.models import OrganisationUser
from .models import SchemeDocument


@admin.register(SchemeDocument)
class SchemeDocumentAdmin(OrganisationScopedAdmin):
    organisation_field = "scheme__organisation"
    list_display = ("document_name", "scheme", "category", "visibility", "file_size", "created_at", "deleted_at")
    list_filter = ("category", "visibility")
    search_fields = ("document_name", "original_filename", "scheme__scheme_number")
    readonly_fields = ("file_size", "mime_type", "uploaded_by", "deleted_at", "deleted_by")

    def get_queryset(self, request):
        # admins see soft-deleted rows too
        qs = SchemeDocument.all_objects.select_related("scheme")
        if request.user.is_superuser:
            return qs
        org_ids = OrganisationUser.objects.filter(user=request.user, is_active=True).values_list(
            "organisation_id", flat=True
        )
        return qs.filter(scheme__organisation__in=list(org_ids))
