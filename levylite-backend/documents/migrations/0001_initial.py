import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

import documents.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("schemes", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="SchemeDocument",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("file", models.FileField(max_length=500, upload_to=documents.models.scheme_document_upload_path)),
                ("document_name", models.CharField(max_length=255)),
                ("original_filename", models.CharField(blank=True, default="", max_length=255)),
                (
                    "category",
                    models.CharField(
                        choices=[
                            ("agm", "AGM"),
                            ("levy-notices", "Levy notices"),
                            ("financial", "Financial"),
                            ("insurance", "Insurance"),
                            ("bylaws", "By-laws"),
                            ("correspondence", "Correspondence"),
                            ("maintenance", "Maintenance"),
                            ("contracts", "Contracts"),
                            ("building-reports", "Building reports"),
                            ("other", "Other"),
                        ],
                        default="other",
                        max_length=32,
                    ),
                ),
                ("document_date", models.DateField(blank=True, null=True)),
                (
                    "visibility",
                    models.CharField(
                        choices=[("owners", "Owners"), ("committee", "Committee"), ("manager_only", "Manager only")],
                        default="manager_only",
                        max_length=16,
                    ),
                ),
                ("tags", models.JSONField(blank=True, default=list)),
                ("file_size", models.PositiveBigIntegerField(default=0)),
                ("mime_type", models.CharField(blank=True, default="", max_length=120)),
                ("deleted_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                (
                    "deleted_by",
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
                        related_name="documents",
                        to="schemes.scheme",
                    ),
                ),
                (
                    "uploaded_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="scheme_documents",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "document_name"],
                "indexes": [
                    models.Index(fields=["scheme", "category"], name="documents_s_scheme__6b2d18_idx"),
                    models.Index(fields=["scheme", "visibility"], name="documents_s_scheme__e40c7a_idx"),
                ],
            },
        ),
    ]
