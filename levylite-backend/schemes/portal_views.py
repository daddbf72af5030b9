# schemes/portal_views.py
"""
Owner-facing endpoints under /api/v1/portal/. Except for activation these
run with request.owner resolved by OrganisationContextMiddleware.
"""
from django.db import transaction
from rest_framework import serializers, status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.tokens import RefreshToken

from common.errors import NotFound
from common.permissions import IsPortalOwner
from documents.serializers import SchemeDocumentSerializer
from documents.services import owner_visible_documents
from documents.views import document_response
from levies.models import LevyItem
from levies.serializers import LevyItemSerializer
from .portal import accept_invite, activate_owner


class PortalActivateSerializer(serializers.Serializer):
    token = serializers.CharField()
    password = serializers.CharField(write_only=True, trim_whitespace=False)


class PortalActivateView(APIView):
    """
    POST /api/v1/portal/activate {token, password}
    Accepts the invite and activates the account in one step; a failure in
    either step leaves the owner unchanged. Returns a JWT pair on success.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        s = PortalActivateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        with transaction.atomic():
            owner = accept_invite(s.validated_data["token"])
            activate_owner(owner, s.validated_data["password"])
        refresh = RefreshToken.for_user(owner.portal_user)
        return Response(
            {
                "owner_id": owner.id,
                "email": owner.email,
                "portal_status": owner.portal_status,
                "refresh": str(refresh),
                "access": str(refresh.access_token),
            },
            status=status.HTTP_200_OK,
        )


class PortalMeView(APIView):
    """GET /api/v1/portal/me: profile, lots and levy items of the signed-in owner."""
    permission_classes = [IsPortalOwner]

    def get(self, request):
        owner = request.owner
        ownerships = owner.ownerships.select_related("lot", "lot__scheme").order_by("lot__scheme_id", "lot_id")
        lots = [
            {
                "lot_id": o.lot_id,
                "lot_number": o.lot.lot_number,
                "unit_number": o.lot.unit_number,
                "unit_entitlement": str(o.lot.unit_entitlement),
                "scheme_id": o.lot.scheme_id,
                "scheme_name": o.lot.scheme.scheme_name,
                "scheme_number": o.lot.scheme.scheme_number,
                "is_primary_contact": o.is_primary_contact,
                "ownership_percentage": str(o.ownership_percentage),
            }
            for o in ownerships
        ]
        items = (
            LevyItem.objects.select_related("lot", "period")
            .filter(lot__ownerships__owner=owner, scheme__organisation_id=owner.organisation_id)
            .order_by("-due_date", "lot_id")
        )
        return Response(
            {
                "owner": {
                    "id": owner.id,
                    "title": owner.title,
                    "first_name": owner.first_name,
                    "last_name": owner.last_name,
                    "email": owner.email,
                    "phone_mobile": owner.phone_mobile,
                    "portal_status": owner.portal_status,
                    "organisation": owner.organisation.name,
                },
                "lots": lots,
                "levy_items": LevyItemSerializer(items, many=True).data,
            }
        )


class PortalDocumentsView(APIView):
    """GET /api/v1/portal/documents: owners-visible documents of the owner's schemes."""
    permission_classes = [IsPortalOwner]

    def get(self, request):
        docs = owner_visible_documents(request.owner).order_by("-created_at", "document_name")
        return Response(SchemeDocumentSerializer(docs, many=True).data)


class PortalDocumentFileView(APIView):
    """GET /api/v1/portal/documents/<id>/file"""
    permission_classes = [IsPortalOwner]

    def get(self, request, pk):
        doc = owner_visible_documents(request.owner).filter(pk=pk).first()
        if doc is None:
            raise NotFound("Document not found")
        return document_response(doc)
