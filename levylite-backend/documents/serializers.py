from rest_framework import serializers

from schemes.models import Scheme
from schemes.serializers import OrganisationScopedRelatedField
from .models import SchemeDocument, DocumentCategory, DocumentVisibility


class SchemeDocumentSerializer(serializers.ModelSerializer):
    uploaded_by = serializers.SerializerMethodField()
    download_url = serializers.SerializerMethodField()

    class Meta:
        model = SchemeDocument
        fields = (
            "id", "scheme", "document_name", "original_filename", "category", "document_date",
            "visibility", "tags", "file_size", "mime_type", "uploaded_by", "download_url",
            "created_at", "updated_at",
        )
        read_only_fields = fields

    def get_uploaded_by(self, obj):
        u = obj.uploaded_by
        return u.get_username() if u else None

    def get_download_url(self, obj):
        return f"/api/v1/documents/{obj.id}/file"


class SchemeDocumentUploadSerializer(serializers.Serializer):
    scheme = OrganisationScopedRelatedField(queryset=Scheme.objects.all())
    file = serializers.FileField()
    document_name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    category = serializers.ChoiceField(choices=DocumentCategory.choices, default=DocumentCategory.OTHER)
    document_date = serializers.DateField(required=False, allow_null=True)
    visibility = serializers.ChoiceField(choices=DocumentVisibility.choices, default=DocumentVisibility.MANAGER_ONLY)
    tags = serializers.ListField(child=serializers.CharField(max_length=50), required=False)


class SchemeDocumentUpdateSerializer(serializers.ModelSerializer):
    class Meta:
        model = SchemeDocument
        fields = ("document_name", "category", "document_date", "visibility", "tags")
