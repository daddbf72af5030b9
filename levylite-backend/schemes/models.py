from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, MaxValueValidator, RegexValidator
from django.db import models
from common.models import TimeStampedModel


AU_STATES = [
    ("WA", "WA"),
    ("NSW", "NSW"),
    ("VIC", "VIC"),
    ("QLD", "QLD"),
    ("SA", "SA"),
    ("TAS", "TAS"),
    ("NT", "NT"),
    ("ACT", "ACT"),
]

scheme_number_validator = RegexValidator(r"^[Ss][Pp]\s?\d{4,6}$", 'Scheme number must be in format "SP 12345"')
postcode_validator = RegexValidator(r"^\d{4}$", "Postcode must be 4 digits")


class SchemeStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    INACTIVE = "inactive", "Inactive"
    ARCHIVED = "archived", "Archived"


class Scheme(TimeStampedModel):
    """
    A managed strata property. Never hard-deleted; archive via status.
    """
    organisation = models.ForeignKey("organisations.Organisation", on_delete=models.CASCADE, related_name="schemes")
    scheme_number = models.CharField(max_length=16, validators=[scheme_number_validator])
    scheme_name = models.CharField(max_length=255)
    scheme_type = models.CharField(
        max_length=20,
        choices=[("strata", "Strata"), ("survey-strata", "Survey-strata"), ("community", "Community")],
        default="strata",
    )
    street_address = models.CharField(max_length=255)
    suburb = models.CharField(max_length=120)
    state = models.CharField(max_length=3, choices=AU_STATES, default="WA")
    postcode = models.CharField(max_length=4, validators=[postcode_validator])
    abn = models.CharField(max_length=11, blank=True, null=True)
    levy_due_day = models.PositiveSmallIntegerField(
        default=1, validators=[MinValueValidator(1), MaxValueValidator(28)]
    )
    trust_bsb = models.CharField(max_length=7, blank=True, null=True)
    trust_account_number = models.CharField(max_length=20, blank=True, null=True)
    trust_account_name = models.CharField(max_length=120, blank=True, null=True)
    status = models.CharField(max_length=16, choices=SchemeStatus.choices, default=SchemeStatus.ACTIVE)
    notes = models.TextField(blank=True, default="")
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )

    class Meta:
        ordering = ["scheme_name"]
        constraints = [
            models.UniqueConstraint(fields=["organisation", "scheme_number"], name="uniq_scheme_number_per_org"),
        ]
        indexes = [
            models.Index(fields=["organisation", "status"], name="schemes_sch_organis_5c1f0e_idx"),
        ]

    def __str__(self):
        return f"{self.scheme_number} {self.scheme_name}"

    @property
    def address(self) -> str:
        return f"{self.street_address}, {self.suburb} {self.state} {self.postcode}"


class LotStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    INACTIVE = "inactive", "Inactive"
    SOLD = "sold", "Sold"


class Lot(TimeStampedModel):
    scheme = models.ForeignKey(Scheme, on_delete=models.CASCADE, related_name="lots")
    lot_number = models.CharField(max_length=16)
    unit_number = models.CharField(max_length=16, blank=True, null=True)
    street_address = models.CharField(max_length=255, blank=True, null=True)
    lot_type = models.CharField(
        max_length=20,
        choices=[
            ("residential", "Residential"),
            ("commercial", "Commercial"),
            ("parking", "Parking"),
            ("storage", "Storage"),
            ("other", "Other"),
        ],
        default="residential",
    )
    # share basis for levy apportionment
    unit_entitlement = models.DecimalField(
        max_digits=12, decimal_places=4, validators=[MinValueValidator(Decimal("0"))]
    )
    status = models.CharField(max_length=16, choices=LotStatus.choices, default=LotStatus.ACTIVE)
    notes = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["scheme", "id"]
        constraints = [
            models.UniqueConstraint(fields=["scheme", "lot_number"], name="uniq_lot_number_per_scheme"),
        ]
        indexes = [
            models.Index(fields=["scheme", "status"], name="schemes_lot_scheme__a3e9b2_idx"),
        ]

    def __str__(self):
        return f"Lot {self.lot_number} ({self.scheme.scheme_number})"


class PortalState(models.TextChoices):
    NO_ACCESS = "no_access", "No access"
    INVITED = "invited", "Invited"
    ACCEPTED = "accepted", "Accepted"
    ACTIVATED = "activated", "Activated"


class Owner(TimeStampedModel):
    organisation = models.ForeignKey("organisations.Organisation", on_delete=models.CASCADE, related_name="owners")
    title = models.CharField(max_length=16, blank=True, null=True)
    first_name = models.CharField(max_length=80)
    last_name = models.CharField(max_length=80)
    email = models.EmailField(blank=True, null=True)
    phone_mobile = models.CharField(max_length=32, blank=True, null=True)
    correspondence_method = models.CharField(
        max_length=10,
        choices=[("email", "Email"), ("postal", "Postal"), ("both", "Both")],
        default="email",
    )
    status = models.CharField(
        max_length=16,
        choices=[("active", "Active"), ("inactive", "Inactive"), ("deceased", "Deceased")],
        default="active",
    )

    # owner portal access; only schemes.portal writes these
    portal_status = models.CharField(max_length=16, choices=PortalState.choices, default=PortalState.NO_ACCESS)
    portal_user = models.OneToOneField(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="owner_profile"
    )
    portal_invite_sent_at = models.DateTimeField(null=True, blank=True)
    portal_invite_accepted_at = models.DateTimeField(null=True, blank=True)
    portal_activated_at = models.DateTimeField(null=True, blank=True)

    lots = models.ManyToManyField(Lot, through="LotOwnership", related_name="owners")

    class Meta:
        ordering = ["last_name", "first_name", "id"]
        indexes = [
            models.Index(fields=["organisation", "email"], name="schemes_own_organis_7d2c41_idx"),
        ]

    def __str__(self):
        return self.display_name

    @property
    def display_name(self) -> str:
        return " ".join(p for p in [self.title, self.first_name, self.last_name] if p)

    def clean(self):
        invited, accepted, activated = (
            self.portal_invite_sent_at,
            self.portal_invite_accepted_at,
            self.portal_activated_at,
        )
        if activated and not accepted:
            raise ValidationError("Portal cannot be activated before the invite is accepted")
        if accepted and not invited:
            raise ValidationError("Portal invite cannot be accepted before it is sent")
        if accepted and accepted < invited:
            raise ValidationError("Invite accepted time precedes invite sent time")
        if activated and activated < accepted:
            raise ValidationError("Activation time precedes invite accepted time")

        expected = PortalState.NO_ACCESS
        if activated:
            expected = PortalState.ACTIVATED
        elif accepted:
            expected = PortalState.ACCEPTED
        elif invited:
            expected = PortalState.INVITED
        if self.portal_status != expected:
            raise ValidationError(f"Portal status {self.portal_status} does not match its timestamps")


class LotOwnership(TimeStampedModel):
    lot = models.ForeignKey(Lot, on_delete=models.CASCADE, related_name="ownerships")
    owner = models.ForeignKey(Owner, on_delete=models.CASCADE, related_name="ownerships")
    ownership_type = models.CharField(
        max_length=20,
        choices=[("sole", "Sole"), ("joint-tenants", "Joint tenants"), ("tenants-in-common", "Tenants in common")],
        default="sole",
    )
    ownership_percentage = models.DecimalField(
        max_digits=5, decimal_places=2, default=Decimal("100.00"),
        validators=[MinValueValidator(Decimal("0.01")), MaxValueValidator(Decimal("100"))],
    )
    is_primary_contact = models.BooleanField(default=False)
    receive_levy_notices = models.BooleanField(default=True)

    class Meta:
        ordering = ["lot", "-is_primary_contact", "id"]
        constraints = [
            models.UniqueConstraint(fields=["lot", "owner"], name="uniq_owner_per_lot"),
        ]

    def __str__(self):
        return f"{self.owner} owns {self.lot}"
