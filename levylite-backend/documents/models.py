import re
from os.path import splitext

from django.conf import settings
from django.db import models
from django.utils import timezone

from common.models import TimeStampedModel


class DocumentCategory(models.TextChoices):
    AGM = "agm", "AGM"
    LEVY_NOTICES = "levy-notices", "Levy notices"
    FINANCIAL = "financial", "Financial"
    INSURANCE = "insurance", "Insurance"
    BYLAWS = "bylaws", "By-laws"
    CORRESPONDENCE = "correspondence", "Correspondence"
    MAINTENANCE = "maintenance", "Maintenance"
    CONTRACTS = "contracts", "Contracts"
    BUILDING_REPORTS = "building-reports", "Building reports"
    OTHER = "other", "Other"


class DocumentVisibility(models.TextChoices):
    OWNERS = "owners", "Owners"
    COMMITTEE = "committee", "Committee"
    MANAGER_ONLY = "manager_only", "Manager only"


def sanitize_filename(filename: str) -> str:
    """
    Keep the extension, replace anything outside [A-Za-z0-9_-] in the stem,
    and cap the stem at 100 characters.
    """
    stem, ext = splitext(filename or "")
    safe = re.sub(r"[^A-Za-z0-9_-]+", "_", stem).strip("_")[:100] or "document"
    ext = re.sub(r"[^A-Za-z0-9]+", "", ext).lower()
    return f"{safe}.{ext}" if ext else safe


def scheme_document_upload_path(instance, filename):
    # <scheme_id>/<category>/<year>/<timestamp>_<sanitized name>
    now = timezone.now()
    return (
        f"{instance.scheme_id}/{instance.category}/{now.year}/"
        f"{now.strftime('%Y%m%d%H%M%S%f')}_{sanitize_filename(filename)}"
    )


class SchemeDocumentManager(models.Manager):
    """Excludes soft-deleted documents by default."""
    def get_queryset(self):
        return super().get_queryset().filter(deleted_at__isnull=True)


class SchemeDocument(TimeStampedModel):
    """
    A file stored against a scheme (AGM minutes, insurance, by-laws...).
    Supports soft delete via deleted_at.
    """
    scheme = models.ForeignKey("schemes.Scheme", on_delete=models.CASCADE, related_name="documents")
    file = models.FileField(upload_to=scheme_document_upload_path, max_length=500)
    document_name = models.CharField(max_length=255)
    original_filename = models.CharField(max_length=255, blank=True, default="")
    category = models.CharField(max_length=32, choices=DocumentCategory.choices, default=DocumentCategory.OTHER)
    document_date = models.DateField(null=True, blank=True)
    visibility = models.CharField(
        max_length=16, choices=DocumentVisibility.choices, default=DocumentVisibility.MANAGER_ONLY
    )
    tags = models.JSONField(default=list, blank=True)
    file_size = models.PositiveBigIntegerField(default=0)
    mime_type = models.CharField(max_length=120, blank=True, default="")
    uploaded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="scheme_documents"
    )
    deleted_at = models.DateTimeField(null=True, blank=True, db_index=True)
    deleted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )

    objects = SchemeDocumentManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ["-created_at", "document_name"]
        indexes = [
            models.Index(fields=["scheme", "category"], name="documents_s_scheme__6b2d18_idx"),
            models.Index(fields=["scheme", "visibility"], name="documents_s_scheme__e40c7a_idx"),
        ]

    def __str__(self):
        return f"{self.document_name} ({self.scheme_id})"

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    def soft_delete(self, user=None):
        self.deleted_at = timezone.now()
        if user:
            self.deleted_by = user
        self.save(update_fields=["deleted_at", "deleted_by", "updated_at"])
