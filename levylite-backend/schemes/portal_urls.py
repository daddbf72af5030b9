from django.urls import path
from .portal_views import PortalActivateView, PortalMeView, PortalDocumentsView, PortalDocumentFileView

urlpatterns = [
    path("activate", PortalActivateView.as_view(), name="portal-activate"),
    path("me", PortalMeView.as_view(), name="portal-me"),
    path("documents", PortalDocumentsView.as_view(), name="portal-documents"),
    path("documents/<int:pk>/file", PortalDocumentFileView.as_view(), name="portal-document-file"),
]
