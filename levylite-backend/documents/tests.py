"""
Tests for scheme document upload, listing, soft delete and download.
"""
import os
import shutil
import tempfile
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.files.uploadedfile import SimpleUploadedFile
from django.db import DatabaseError
from django.test import TestCase, override_settings
from rest_framework.test import APIRequestFactory, force_authenticate

from common.errors import NotFound, ValidationError
from common.roles import OrgRole
from documents.models import SchemeDocument, sanitize_filename, scheme_document_upload_path
from documents.services import get_document, owner_visible_documents, store_document
from documents.views import DocumentListView, DocumentUploadView, DocumentDetailView, DocumentFileView
from organisations.models import Organisation, OrganisationUser
from schemes.models import Scheme, Lot, Owner, LotOwnership
from subscriptions.models import Plan, Subscription

MEDIA_ROOT = tempfile.mkdtemp(prefix="levylite-docs-")


@override_settings(MEDIA_ROOT=MEDIA_ROOT)
class DocumentsTestBase(TestCase):
    @classmethod
    def tearDownClass(cls):
        shutil.rmtree(MEDIA_ROOT, ignore_errors=True)
        super().tearDownClass()

    def setUp(self):
        self.factory = APIRequestFactory()
        self.user = get_user_model().objects.create_user(username="manager", password="test-pass")
        self.org = Organisation.objects.create(name="Harbour Strata", code="harbour")
        OrganisationUser.objects.create(organisation=self.org, user=self.user, role=OrgRole.MANAGER)
        self.plan = Plan.objects.create(code="TEST_DOCS", name="Docs", features={"document_storage": True})
        Subscription.objects.create(organisation=self.org, plan=self.plan, status=Subscription.STATUS_ACTIVE)
        self.scheme = Scheme.objects.create(
            organisation=self.org,
            scheme_number="SP 12345",
            scheme_name="Ocean View",
            street_address="1 Beach Rd",
            suburb="Cottesloe",
            state="WA",
            postcode="6011",
        )

    def _request(self, method, path, data=None, fmt="json"):
        request = getattr(self.factory, method)(path, data, format=fmt)
        force_authenticate(request, user=self.user)
        request.organisation = self.org
        return request

    def _upload(self, name="AGM minutes 2026.pdf", content=b"%PDF-1.4 minutes", **data):
        return store_document(
            self.scheme,
            SimpleUploadedFile(name, content, content_type="application/pdf"),
            data,
            user=self.user,
        )


class UploadPathTests(DocumentsTestBase):
    def test_sanitize_filename(self):
        self.assertEqual(sanitize_filename("AGM minutes (final).PDF"), "AGM_minutes_final.pdf")
        self.assertEqual(sanitize_filename("../../etc/passwd"), "etc_passwd")
        self.assertEqual(sanitize_filename(""), "document")

    def test_upload_path_layout(self):
        doc = SchemeDocument(scheme=self.scheme, category="insurance")
        path = scheme_document_upload_path(doc, "Policy 2026.pdf")
        parts = path.split("/")
        self.assertEqual(parts[0], str(self.scheme.id))
        self.assertEqual(parts[1], "insurance")
        self.assertEqual(len(parts[2]), 4)
        self.assertTrue(parts[3].endswith("_Policy_2026.pdf"))


class DocumentServiceTests(DocumentsTestBase):
    def test_store_document(self):
        doc = self._upload(category="agm", visibility="owners", tags=["agm"])
        self.assertEqual(doc.file_size, len(b"%PDF-1.4 minutes"))
        self.assertEqual(doc.mime_type, "application/pdf")
        self.assertEqual(doc.document_name, "AGM minutes 2026.pdf")
        self.assertTrue(doc.file.name.startswith(f"{self.scheme.id}/agm/"))

    def test_empty_file_rejected(self):
        with self.assertRaises(ValidationError):
            self._upload(content=b"")
        self.assertEqual(SchemeDocument.all_objects.count(), 0)

    @override_settings(DOCUMENT_MAX_UPLOAD_BYTES=10)
    def test_size_limit(self):
        with self.assertRaises(ValidationError) as ctx:
            self._upload(content=b"x" * 11)
        self.assertIn("maximum upload size", ctx.exception.message)

    def test_get_document_rejects_malformed_id(self):
        with self.assertRaises(NotFound):
            get_document("abc", self.org)

    def test_failed_insert_removes_stored_file(self):
        def stored_files():
            return {os.path.join(root, name) for root, _, names in os.walk(MEDIA_ROOT) for name in names}

        before = stored_files()
        with patch.object(SchemeDocument, "save", side_effect=DatabaseError("insert failed")):
            with self.assertRaises(DatabaseError):
                self._upload(name="orphan.pdf")
        self.assertEqual(stored_files(), before)
        self.assertEqual(SchemeDocument.all_objects.count(), 0)

    def test_owner_visible_documents(self):
        owner = Owner.objects.create(organisation=self.org, first_name="Jane", last_name="Citizen")
        lot = Lot.objects.create(scheme=self.scheme, lot_number="1", unit_entitlement=1)
        LotOwnership.objects.create(lot=lot, owner=owner)
        shared = self._upload(visibility="owners")
        self._upload(name="private.pdf", visibility="manager_only")
        self.assertEqual(list(owner_visible_documents(owner)), [shared])


class DocumentApiTests(DocumentsTestBase):
    def test_upload_endpoint(self):
        request = self._request(
            "post",
            "/api/v1/documents/upload",
            {
                "scheme": self.scheme.id,
                "file": SimpleUploadedFile("bylaws.pdf", b"%PDF bylaws", content_type="application/pdf"),
                "category": "bylaws",
                "visibility": "owners",
            },
            fmt="multipart",
        )
        response = DocumentUploadView.as_view()(request)
        self.assertEqual(response.status_code, 201, response.data)
        self.assertEqual(response.data["category"], "bylaws")
        self.assertEqual(response.data["download_url"], f"/api/v1/documents/{response.data['id']}/file")

    def test_list_filters_and_hides_deleted(self):
        self._upload(category="agm")
        removed = self._upload(name="old.pdf", category="agm")
        self._upload(name="policy.pdf", category="insurance")
        removed.soft_delete(user=self.user)

        response = DocumentListView.as_view()(self._request("get", "/api/v1/documents?category=agm"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["count"], 1)

    def test_patch_and_delete(self):
        doc = self._upload()
        request = self._request("patch", f"/api/v1/documents/{doc.id}", {"document_name": "Minutes", "tags": ["agm"]})
        response = DocumentDetailView.as_view()(request, pk=doc.id)
        self.assertEqual(response.status_code, 200, response.data)
        self.assertEqual(response.data["document_name"], "Minutes")

        response = DocumentDetailView.as_view()(self._request("delete", f"/api/v1/documents/{doc.id}"), pk=doc.id)
        self.assertEqual(response.status_code, 200)
        self.assertIsNotNone(SchemeDocument.all_objects.get(pk=doc.pk).deleted_at)

        response = DocumentDetailView.as_view()(self._request("get", f"/api/v1/documents/{doc.id}"), pk=doc.id)
        self.assertEqual(response.status_code, 404)

    def test_download(self):
        doc = self._upload(content=b"%PDF-1.4 body")
        response = DocumentFileView.as_view()(self._request("get", f"/api/v1/documents/{doc.id}/file"), pk=doc.id)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(b"".join(response.streaming_content), b"%PDF-1.4 body")
        self.assertEqual(response["Content-Type"], "application/pdf")

    def test_other_organisation_gets_404(self):
        doc = self._upload()
        other = Organisation.objects.create(name="Other", code="other")
        request = self._request("get", f"/api/v1/documents/{doc.id}")
        request.organisation = other
        OrganisationUser.objects.create(organisation=other, user=self.user, role=OrgRole.MANAGER)
        Subscription.objects.create(organisation=other, plan=self.plan, status=Subscription.STATUS_ACTIVE)
        response = DocumentDetailView.as_view()(request, pk=doc.id)
        self.assertEqual(response.status_code, 404)

    def test_upload_requires_feature(self):
        self.plan.features = {"levy_notices": True}
        self.plan.save()
        request = self._request(
            "post",
            "/api/v1/documents/upload",
            {"scheme": self.scheme.id, "file": SimpleUploadedFile("a.pdf", b"x")},
            fmt="multipart",
        )
        response = DocumentUploadView.as_view()(request)
        self.assertEqual(response.status_code, 403)

    def test_reads_survive_downgrade(self):
        self._upload()
        self.plan.features = {}
        self.plan.save()
        response = DocumentListView.as_view()(self._request("get", "/api/v1/documents"))
        self.assertEqual(response.status_code, 200)
