# common/auth_views.py
from rest_framework_simplejwt.views import TokenObtainPairView
from .auth_tokens import OrganisationAwareTokenObtainPairSerializer


class OrganisationAwareTokenObtainPairView(TokenObtainPairView):
    serializer_class = OrganisationAwareTokenObtainPairSerializer
