from django.conf import settings
from django.db import models
from common.models import TimeStampedModel
from common.roles import OrgRole


class Organisation(TimeStampedModel):
    """
    Strata management business. Schemes, owners and subscriptions FK to this.
    """
    name = models.CharField(max_length=160)
    code = models.SlugField(unique=True)
    abn = models.CharField(max_length=11, blank=True, null=True)
    email = models.EmailField(blank=True, null=True)
    phone = models.CharField(max_length=32, blank=True, null=True)
    address = models.CharField(max_length=255, blank=True, null=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class OrganisationUser(models.Model):
    """
    Membership binding a Django user to an Organisation, with a role.
    """
    organisation = models.ForeignKey(Organisation, on_delete=models.CASCADE, related_name="memberships")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="organisation_memberships")
    role = models.CharField(max_length=20, choices=OrgRole.choices, default=OrgRole.MANAGER)
    is_active = models.BooleanField(default=True)
    invited_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    joined_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        unique_together = ("organisation", "user")
        ordering = ["id"]

    def __str__(self):
        return f"{self.user} @ {self.organisation} ({self.role})"
