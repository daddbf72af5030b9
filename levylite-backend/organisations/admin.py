from django.contrib import admin
from .models import Organisation, OrganisationUser

@admin.register(Organisation)
class OrganisationAdmin(admin.ModelAdmin):
    list_display = ("name", "code", "email", "is_active")
    search_fields = ("name", "code", "email")
    list_filter = ("is_active",)

@admin.register(OrganisationUser)
class OrganisationUserAdmin(admin.ModelAdmin):
    list_display = ("organisation", "user", "role", "is_active", "joined_at")
    list_filter = ("organisation", "role", "is_active")
    search_fields = ("user__username", "user__email", "organisation__name", "organisation__code")
