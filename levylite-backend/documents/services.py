# documents/services.py
import logging
import mimetypes

from django.conf import settings
from django.core.files.storage import default_storage
from django.db import transaction

from common.errors import NotFound, ValidationError, parse_id
from schemes.models import SchemeStatus
from .models import SchemeDocument, DocumentVisibility

logger = logging.getLogger(__name__)


def max_upload_bytes() -> int:
    return getattr(settings, "DOCUMENT_MAX_UPLOAD_BYTES", 50 * 1024 * 1024)


def validate_upload(upload):
    if upload is None:
        raise ValidationError("No file uploaded")
    size = upload.size or 0
    if size == 0:
        raise ValidationError("Uploaded file is empty")
    limit = max_upload_bytes()
    if size > limit:
        raise ValidationError(f"File exceeds the maximum upload size of {limit // (1024 * 1024)} MB")


def guess_mime_type(upload) -> str:
    content_type = getattr(upload, "content_type", None)
    if content_type and content_type != "application/octet-stream":
        return content_type
    guessed, _ = mimetypes.guess_type(upload.name or "")
    return guessed or "application/octet-stream"


def get_document(document_id, organisation) -> SchemeDocument:
    document_id = parse_id(document_id, NotFound("Document not found"))
    doc = (
        SchemeDocument.objects.select_related("scheme", "uploaded_by")
        .filter(id=document_id, scheme__organisation=organisation)
        .first()
    )
    if doc is None:
        raise NotFound("Document not found")
    return doc


def store_document(scheme, upload, data: dict, user=None) -> SchemeDocument:
    """Validate and persist an uploaded file against `scheme`."""
    if scheme.status == SchemeStatus.ARCHIVED:
        raise ValidationError("Cannot upload documents to an archived scheme")
    validate_upload(upload)

    doc = SchemeDocument(
        scheme=scheme,
        document_name=data.get("document_name") or upload.name,
        original_filename=upload.name or "",
        category=data.get("category") or SchemeDocument._meta.get_field("category").default,
        document_date=data.get("document_date"),
        visibility=data.get("visibility") or DocumentVisibility.MANAGER_ONLY,
        tags=data.get("tags") or [],
        file_size=upload.size,
        mime_type=guess_mime_type(upload),
        uploaded_by=user,
    )
    # upload_to reads scheme_id and category, both set above
    doc.file.save(upload.name, upload, save=False)
    try:
        with transaction.atomic():
            doc.save()
    except Exception:
        logger.warning("Document row insert failed; removing stored file %s", doc.file.name)
        doc.file.delete(save=False)
        raise

    logger.info("Document %s uploaded to scheme %s (%s bytes)", doc.id, scheme.id, doc.file_size)
    return doc


def delete_document(doc: SchemeDocument, user=None) -> SchemeDocument:
    if doc.is_deleted:
        raise ValidationError("Document has already been deleted")
    doc.soft_delete(user=user)
    logger.info("Document %s soft-deleted", doc.id)
    return doc


def open_document(doc: SchemeDocument):
    if not doc.file or not doc.file.name:
        raise NotFound("File not found")
    if not default_storage.exists(doc.file.name):
        logger.warning("File missing from storage: %s", doc.file.name)
        raise NotFound("File not found in storage")
    return default_storage.open(doc.file.name, "rb")


def owner_visible_documents(owner):
    """`owners`-visible documents of the schemes where `owner` holds a lot."""
    return (
        SchemeDocument.objects.select_related("scheme")
        .filter(
            scheme__lots__owners=owner,
            scheme__organisation_id=owner.organisation_id,
            visibility=DocumentVisibility.OWNERS,
        )
        .distinct()
    )
