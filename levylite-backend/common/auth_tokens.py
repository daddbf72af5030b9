from rest_framework_simplejwt.serializers import TokenObtainPairSerializer
from rest_framework import exceptions
from organisations.models import Organisation, OrganisationUser

class OrganisationAwareTokenObtainPairSerializer(TokenObtainPairSerializer):
    """
    Accepts username, password, and optional organisation_code.
    Embeds organisation + role in the resulting tokens.
    """

    def validate(self, attrs):
        # Let SimpleJWT authenticate the user (sets self.user)
        data = super().validate(attrs)

        request = self.context["request"]
        org_code = request.data.get("organisation_code")

        if org_code:
            organisation = Organisation.objects.filter(code=org_code, is_active=True).first()
            if not organisation:
                raise exceptions.AuthenticationFailed("Invalid organisation")
            membership = OrganisationUser.objects.filter(
                user=self.user, organisation=organisation, is_active=True
            ).first()
            if not membership:
                raise exceptions.AuthenticationFailed("User is not a member of this organisation")
        else:
            membership = self.user.organisation_memberships.filter(is_active=True).select_related("organisation").first()
            if not membership:
                # Owner portal accounts carry no membership; they get plain tokens
                data["organisation"] = None
                data["role"] = None
                return data
            organisation = membership.organisation

        # Build fresh tokens WITH custom claims (ignore the ones created by super())
        refresh = self.get_token(self.user)
        refresh["organisation_id"] = organisation.id
        refresh["organisation_code"] = organisation.code
        refresh["role"] = membership.role

        data["refresh"] = str(refresh)
        data["access"] = str(refresh.access_token)
        data["organisation"] = {"id": organisation.id, "code": organisation.code}
        data["role"] = membership.role
        return data
