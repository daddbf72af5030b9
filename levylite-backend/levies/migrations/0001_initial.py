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
        ("schemes", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="LevySchedule",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("budget_year_start", models.DateField()),
                ("budget_year_end", models.DateField()),
                (
                    "admin_fund_total",
                    models.DecimalField(
                        decimal_places=2,
                        max_digits=12,
                        validators=[django.core.validators.MinValueValidator(Decimal("0.01"))],
                    ),
                ),
                (
                    "capital_works_fund_total",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        max_digits=12,
                        validators=[django.core.validators.MinValueValidator(Decimal("0"))],
                    ),
                ),
                (
                    "frequency",
                    models.CharField(
                        choices=[
                            ("annual", "Annual"),
                            ("half-yearly", "Half-yearly"),
                            ("quarterly", "Quarterly"),
                            ("monthly", "Monthly"),
                        ],
                        default="quarterly",
                        max_length=16,
                    ),
                ),
                (
                    "periods_per_year",
                    models.PositiveSmallIntegerField(
                        choices=[(1, "1"), (2, "2"), (4, "4"), (12, "12")], default=4
                    ),
                ),
                ("active", models.BooleanField(default=True)),
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
                    "scheme",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="levy_schedules",
                        to="schemes.scheme",
                    ),
                ),
            ],
            options={
                "ordering": ["scheme", "-budget_year_start", "id"],
                "indexes": [models.Index(fields=["scheme", "active"], name="levies_levy_scheme__1d6f3c_idx")],
            },
        ),
        migrations.CreateModel(
            name="LevyPeriod",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("period_number", models.PositiveSmallIntegerField()),
                ("period_name", models.CharField(max_length=32)),
                ("period_start", models.DateField()),
                ("period_end", models.DateField()),
                ("due_date", models.DateField()),
                (
                    "status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("issued", "Issued"), ("closed", "Closed")],
                        default="pending",
                        max_length=16,
                    ),
                ),
                (
                    "schedule",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="periods",
                        to="levies.levyschedule",
                    ),
                ),
            ],
            options={
                "ordering": ["schedule", "period_number"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("schedule", "period_number"), name="uniq_period_number_per_schedule"
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="LevyItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("admin_levy_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("capital_levy_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("total_levy_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("amount_paid", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("due_date", models.DateField()),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("sent", "Sent"),
                            ("paid", "Paid"),
                            ("partial", "Partial"),
                            ("overdue", "Overdue"),
                        ],
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("notice_generated_at", models.DateTimeField(blank=True, null=True)),
                ("notice_sent_at", models.DateTimeField(blank=True, null=True)),
                (
                    "lot",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="levy_items", to="schemes.lot"
                    ),
                ),
                (
                    "period",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="items", to="levies.levyperiod"
                    ),
                ),
                (
                    "scheme",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="levy_items",
                        to="schemes.scheme",
                    ),
                ),
            ],
            options={
                "ordering": ["period", "lot_id"],
                "indexes": [models.Index(fields=["scheme", "status"], name="levies_levy_scheme__7a2e94_idx")],
                "constraints": [
                    models.UniqueConstraint(fields=("period", "lot"), name="uniq_levy_item_per_period_lot")
                ],
            },
        ),
    ]
