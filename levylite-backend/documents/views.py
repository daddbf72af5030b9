# documents/views.py
"""
Scheme documents: organisation-scoped list, upload, metadata update, soft delete
and proxied download. Files are never served from MEDIA_URL directly.
"""
import logging

from django.http import FileResponse
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import generics, status
from rest_framework.filters import SearchFilter, OrderingFilter
from rest_framework.parsers import MultiPartParser, FormParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from common.api_mixins import DEFAULT_PERMISSION_ROLES, IsInOrganisation, RoleRequired
from subscriptions.permissions import HasFeature
from .models import SchemeDocument
from .serializers import (
    SchemeDocumentSerializer,
    SchemeDocumentUploadSerializer,
    SchemeDocumentUpdateSerializer,
)
from .services import delete_document, get_document, open_document, store_document

logger = logging.getLogger(__name__)


class DocumentPermissionsMixin:
    permission_classes = [IsAuthenticated, IsInOrganisation, RoleRequired, HasFeature]
    permission_roles = DEFAULT_PERMISSION_ROLES
    required_feature = "document_storage"
    # stored documents stay readable after a downgrade
    feature_gate_safe_methods = False


class DocumentListView(DocumentPermissionsMixin, generics.ListAPIView):
    """
    GET /api/v1/documents?scheme=1&category=agm&search=minutes&ordering=-document_date
    """
    serializer_class = SchemeDocumentSerializer
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_fields = ["scheme", "category", "visibility"]
    search_fields = ["document_name", "original_filename"]
    ordering_fields = ["created_at", "document_date", "document_name", "file_size"]
    ordering = ["-created_at", "document_name"]

    def get_queryset(self):
        return SchemeDocument.objects.filter(scheme__organisation=self.request.organisation).select_related(
            "scheme", "uploaded_by"
        )


class DocumentUploadView(DocumentPermissionsMixin, APIView):
    """
    POST /api/v1/documents/upload (multipart)
    Fields: scheme, file, document_name, category, document_date, visibility, tags
    """
    parser_classes = [MultiPartParser, FormParser]

    def post(self, request):
        serializer = SchemeDocumentUploadSerializer(data=request.data, context={"request": request})
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        doc = store_document(data.pop("scheme"), data.pop("file"), data, user=request.user)
        logger.info("User %s uploaded document %s", request.user.get_username(), doc.id)
        return Response(SchemeDocumentSerializer(doc).data, status=status.HTTP_201_CREATED)


class DocumentDetailView(DocumentPermissionsMixin, APIView):
    """GET / PATCH / DELETE /api/v1/documents/<id>"""

    def get(self, request, pk):
        return Response(SchemeDocumentSerializer(get_document(pk, request.organisation)).data)

    def patch(self, request, pk):
        doc = get_document(pk, request.organisation)
        serializer = SchemeDocumentUpdateSerializer(doc, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(SchemeDocumentSerializer(doc).data)

    def delete(self, request, pk):
        delete_document(get_document(pk, request.organisation), user=request.user)
        return Response({"message": "Document deleted successfully"}, status=status.HTTP_200_OK)


class DocumentFileView(DocumentPermissionsMixin, APIView):
    """GET /api/v1/documents/<id>/file, proxied through the API with organisation checks."""

    def get(self, request, pk):
        doc = get_document(pk, request.organisation)
        logger.info(
            "Document accessed: id=%s user=%s organisation=%s",
            doc.id, request.user.get_username(), request.organisation.code,
        )
        return document_response(doc)


def document_response(doc: SchemeDocument) -> FileResponse:
    response = FileResponse(
        open_document(doc),
        content_type=doc.mime_type or "application/octet-stream",
        as_attachment=False,
        filename=doc.original_filename or doc.file.name.rsplit("/", 1)[-1],
    )
    response["X-Content-Type-Options"] = "nosniff"
    return response
