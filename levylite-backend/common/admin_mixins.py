from django.contrib import admin
from organisations.models import OrganisationUser


class OrganisationScopedAdmin(admin.ModelAdmin):
    """
    Filter admin queryset to the user's organisation memberships.
    Superusers see all.
    """
    organisation_field = "organisation"  # override for scheme-linked models

    def get_queryset(self, request):
        qs = super().get_queryset(request)
        if request.user.is_superuser:
            return qs
        org_ids = OrganisationUser.objects.filter(user=request.user, is_active=True).values_list(
            "organisation_id", flat=True
        )
        return qs.filter(**{f"{self.organisation_field}__in": list(org_ids)})
