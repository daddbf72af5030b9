from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework import exceptions as drf_exceptions
from rest_framework_simplejwt.tokens import AccessToken, RefreshToken

from common.errors import CollaboratorError, NotFound, api_exception_handler
from common.roles import OrgRole
from organisations.models import Organisation, OrganisationUser
from schemes.models import Owner, PortalState


class OrganisationContextMiddlewareTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.user = User.objects.create_user(username="manager", password="test-pass")
        self.org = Organisation.objects.create(name="Harbour Strata", code="harbour")
        OrganisationUser.objects.create(organisation=self.org, user=self.user, role=OrgRole.MANAGER)

    def _token(self, user, **claims):
        token = RefreshToken.for_user(user)
        for key, value in claims.items():
            token[key] = value
        return str(token.access_token)

    def _get(self, path, token=None, **extra):
        if token:
            extra["HTTP_AUTHORIZATION"] = f"Bearer {token}"
        return self.client.get(path, **extra)

    def test_token_carries_organisation_and_role(self):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": "manager", "password": "test-pass", "organisation_code": "harbour"},
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["organisation"], {"id": self.org.id, "code": "harbour"})
        self.assertEqual(body["role"], OrgRole.MANAGER)
        access = AccessToken(body["access"])
        self.assertEqual(access["organisation_id"], self.org.id)
        self.assertEqual(access["role"], OrgRole.MANAGER)

    def test_token_rejects_foreign_organisation(self):
        Organisation.objects.create(name="Other", code="other")
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": "manager", "password": "test-pass", "organisation_code": "other"},
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 401)

    def test_missing_token(self):
        response = self._get("/api/v1/schemes")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["detail"], "Authentication required")

    def test_invalid_token(self):
        response = self._get("/api/v1/schemes", token="not-a-jwt")
        self.assertEqual(response.status_code, 401)

    def test_member_with_claim(self):
        response = self._get("/api/v1/schemes", token=self._token(self.user, organisation_id=self.org.id))
        self.assertEqual(response.status_code, 200)

    def test_header_fallback(self):
        response = self._get("/api/v1/schemes", token=self._token(self.user), HTTP_X_ORGANISATION_ID=str(self.org.id))
        self.assertEqual(response.status_code, 200)

    def test_non_member(self):
        other = Organisation.objects.create(name="Other", code="other")
        response = self._get("/api/v1/schemes", token=self._token(self.user, organisation_id=other.id))
        self.assertEqual(response.status_code, 403)

    def test_inactive_organisation(self):
        self.org.is_active = False
        self.org.save()
        response = self._get("/api/v1/schemes", token=self._token(self.user, organisation_id=self.org.id))
        self.assertEqual(response.status_code, 403)

    def test_media_is_not_served(self):
        response = self._get("/media/1/agm/2026/minutes.pdf")
        self.assertEqual(response.status_code, 404)

    def test_portal_resolves_owner(self):
        portal_user = get_user_model().objects.create_user(username="jane@example.com", password="owner-pass")
        Owner.objects.create(
            organisation=self.org,
            first_name="Jane",
            last_name="Citizen",
            email="jane@example.com",
            portal_user=portal_user,
            portal_status=PortalState.ACTIVATED,
        )
        response = self._get("/api/v1/portal/me", token=self._token(portal_user))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["owner"]["email"], "jane@example.com")

    def test_portal_rejects_staff_without_owner(self):
        response = self._get("/api/v1/portal/me", token=self._token(self.user, organisation_id=self.org.id))
        self.assertEqual(response.status_code, 403)

    def test_portal_user_cannot_use_staff_api(self):
        portal_user = get_user_model().objects.create_user(username="jane@example.com", password="owner-pass")
        Owner.objects.create(organisation=self.org, first_name="Jane", last_name="Citizen", portal_user=portal_user)
        response = self._get(
            "/api/v1/schemes", token=self._token(portal_user), HTTP_X_ORGANISATION_ID=str(self.org.id)
        )
        self.assertEqual(response.status_code, 403)


class ExceptionHandlerTests(TestCase):
    def test_levylite_errors_map_to_status(self):
        response = api_exception_handler(NotFound("Scheme not found"), {"view": None})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data, {"detail": "Scheme not found"})

        response = api_exception_handler(CollaboratorError(), {"view": None})
        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.data["detail"], "External service unavailable")

    def test_drf_errors_fall_through(self):
        response = api_exception_handler(drf_exceptions.NotAuthenticated(), {"view": None})
        self.assertEqual(response.status_code, 401)

    def test_unknown_errors_are_not_handled(self):
        self.assertIsNone(api_exception_handler(RuntimeError("boom"), {"view": None}))
