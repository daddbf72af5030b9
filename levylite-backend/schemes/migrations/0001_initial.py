from decimal import Decimal

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("organisations", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Scheme",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "scheme_number",
                    models.CharField(
                        max_length=16,
                        validators=[
                            django.core.validators.RegexValidator(
                                "^[Ss][Pp]\\s?\\d{4,6}$", 'Scheme number must be in format "SP 12345"'
                            )
                        ],
                    ),
                ),
                ("scheme_name", models.CharField(max_length=255)),
                (
                    "scheme_type",
                    models.CharField(
                        choices=[("strata", "Strata"), ("survey-strata", "Survey-strata"), ("community", "Community")],
                        default="strata",
                        max_length=20,
                    ),
                ),
                ("street_address", models.CharField(max_length=255)),
                ("suburb", models.CharField(max_length=120)),
                (
                    "state",
                    models.CharField(
                        choices=[
                            ("WA", "WA"),
                            ("NSW", "NSW"),
                            ("VIC", "VIC"),
                            ("QLD", "QLD"),
                            ("SA", "SA"),
                            ("TAS", "TAS"),
                            ("NT", "NT"),
                            ("ACT", "ACT"),
                        ],
                        default="WA",
                        max_length=3,
                    ),
                ),
                (
                    "postcode",
                    models.CharField(
                        max_length=4,
                        validators=[django.core.validators.RegexValidator("^\\d{4}$", "Postcode must be 4 digits")],
                    ),
                ),
                ("abn", models.CharField(blank=True, max_length=11, null=True)),
                (
                    "levy_due_day",
                    models.PositiveSmallIntegerField(
                        default=1,
                        validators=[
                            django.core.validators.MinValueValidator(1),
                            django.core.validators.MaxValueValidator(28),
                        ],
                    ),
                ),
                ("trust_bsb", models.CharField(blank=True, max_length=7, null=True)),
                ("trust_account_number", models.CharField(blank=True, max_length=20, null=True)),
                ("trust_account_name", models.CharField(blank=True, max_length=120, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Active"), ("inactive", "Inactive"), ("archived", "Archived")],
                        default="active",
                        max_length=16,
                    ),
                ),
                ("notes", models.TextField(blank=True, default="")),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "organisation",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="schemes",
                        to="organisations.organisation",
                    ),
                ),
            ],
            options={
                "ordering": ["scheme_name"],
                "indexes": [models.Index(fields=["organisation", "status"], name="schemes_sch_organis_5c1f0e_idx")],
                "constraints": [
                    models.UniqueConstraint(fields=("organisation", "scheme_number"), name="uniq_scheme_number_per_org")
                ],
            },
        ),
        migrations.CreateModel(
            name="Lot",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("lot_number", models.CharField(max_length=16)),
                ("unit_number", models.CharField(blank=True, max_length=16, null=True)),
                ("street_address", models.CharField(blank=True, max_length=255, null=True)),
                (
                    "lot_type",
                    models.CharField(
                        choices=[
                            ("residential", "Residential"),
                            ("commercial", "Commercial"),
                            ("parking", "Parking"),
                            ("storage", "Storage"),
                            ("other", "Other"),
                        ],
                        default="residential",
                        max_length=20,
                    ),
                ),
                (
                    "unit_entitlement",
                    models.DecimalField(
                        decimal_places=4,
                        max_digits=12,
                        validators=[django.core.validators.MinValueValidator(Decimal("0"))],
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Active"), ("inactive", "Inactive"), ("sold", "Sold")],
                        default="active",
                        max_length=16,
                    ),
                ),
                ("notes", models.TextField(blank=True, default="")),
                (
                    "scheme",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="lots", to="schemes.scheme"
                    ),
                ),
            ],
            options={
                "ordering": ["scheme", "id"],
                "indexes": [models.Index(fields=["scheme", "status"], name="schemes_lot_scheme__a3e9b2_idx")],
                "constraints": [
                    models.UniqueConstraint(fields=("scheme", "lot_number"), name="uniq_lot_number_per_scheme")
                ],
            },
        ),
        migrations.CreateModel(
            name="Owner",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("title", models.CharField(blank=True, max_length=16, null=True)),
                ("first_name", models.CharField(max_length=80)),
                ("last_name", models.CharField(max_length=80)),
                ("email", models.EmailField(blank=True, max_length=254, null=True)),
                ("phone_mobile", models.CharField(blank=True, max_length=32, null=True)),
                (
                    "correspondence_method",
                    models.CharField(
                        choices=[("email", "Email"), ("postal", "Postal"), ("both", "Both")],
                        default="email",
                        max_length=10,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Active"), ("inactive", "Inactive"), ("deceased", "Deceased")],
                        default="active",
                        max_length=16,
                    ),
                ),
                (
                    "portal_status",
                    models.CharField(
                        choices=[
                            ("no_access", "No access"),
                            ("invited", "Invited"),
                            ("accepted", "Accepted"),
                            ("activated", "Activated"),
                        ],
                        default="no_access",
                        max_length=16,
                    ),
                ),
                ("portal_invite_sent_at", models.DateTimeField(blank=True, null=True)),
                ("portal_invite_accepted_at", models.DateTimeField(blank=True, null=True)),
                ("portal_activated_at", models.DateTimeField(blank=True, null=True)),
                (
                    "organisation",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="owners",
                        to="organisations.organisation",
                    ),
                ),
                (
                    "portal_user",
                    models.OneToOneField(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="owner_profile",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["last_name", "first_name", "id"],
                "indexes": [models.Index(fields=["organisation", "email"], name="schemes_own_organis_7d2c41_idx")],
            },
        ),
        migrations.CreateModel(
            name="LotOwnership",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "ownership_type",
                    models.CharField(
                        choices=[
                            ("sole", "Sole"),
                            ("joint-tenants", "Joint tenants"),
                            ("tenants-in-common", "Tenants in common"),
                        ],
                        default="sole",
                        max_length=20,
                    ),
                ),
                (
                    "ownership_percentage",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("100.00"),
                        max_digits=5,
                        validators=[
                            django.core.validators.MinValueValidator(Decimal("0.01")),
                            django.core.validators.MaxValueValidator(Decimal("100")),
                        ],
                    ),
                ),
                ("is_primary_contact", models.BooleanField(default=False)),
                ("receive_levy_notices", models.BooleanField(default=True)),
                (
                    "lot",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="ownerships", to="schemes.lot"
                    ),
                ),
                (
                    "owner",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="ownerships", to="schemes.owner"
                    ),
                ),
            ],
            options={
                "ordering": ["lot", "-is_primary_contact", "id"],
                "constraints": [models.UniqueConstraint(fields=("lot", "owner"), name="uniq_owner_per_lot")],
            },
        ),
        migrations.AddField(
            model_name="owner",
            name="lots",
            field=models.ManyToManyField(related_name="owners", through="schemes.LotOwnership", to="schemes.lot"),
        ),
    ]
