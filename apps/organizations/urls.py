"""
apps.organizations.urls
~~~~~~~~~~~~~~~~~~~~~~~
URL routing for the Organizations application.
Mounted at /api/v1/ by the root URLconf.
"""
from django.urls import path

from .views import (
    OrganizationCreateView,
    OrganizationDetailView,
    RepositoryListCreateView,
)

urlpatterns = [
    # POST /api/v1/organizations/
    path(
        "organizations/",
        OrganizationCreateView.as_view(),
        name="organization-create",
    ),
    # GET /api/v1/organizations/<org_id>/
    path(
        "organizations/<str:org_id>/",
        OrganizationDetailView.as_view(),
        name="organization-detail",
    ),
    # GET, POST /api/v1/organizations/<org_id>/repositories/
    path(
        "organizations/<str:org_id>/repositories/",
        RepositoryListCreateView.as_view(),
        name="repository-list",
    ),
]
