"""
apps.organizations.views
~~~~~~~~~~~~~~~~~~~~~~~~~
Thin DRF API views for the Organizations application.
All business logic is delegated to
:mod:`apps.organizations.services.org_service`.

Endpoints
---------
POST   /organizations/                        – Create organisation
GET    /organizations/{id}/                   – Retrieve organisation
POST   /organizations/{id}/repositories/      – Create repository
GET    /organizations/{id}/repositories/      – List repositories
"""
from __future__ import annotations

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.organizations.services import org_service
from .serializers import (
    OrganizationCreateSerializer,
    OrganizationSerializer,
    RepositoryCreateSerializer,
    RepositorySerializer,
)


class OrganizationCreateView(APIView):
    """POST /organizations/ – create a new organisation."""

    @extend_schema(
        summary="Create Organisation",
        request=OrganizationCreateSerializer,
        responses={
            201: OrganizationSerializer,
            400: OpenApiResponse(description="Validation error – name missing or blank."),
            409: OpenApiResponse(description="An organisation with that name already exists."),
        },
        tags=["Organizations"],
    )
    def post(self, request: Request) -> Response:
        serializer = OrganizationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        org = org_service.create_organization(name=serializer.validated_data["name"])
        return Response(
            OrganizationSerializer(org).data,
            status=status.HTTP_201_CREATED,
        )


class OrganizationDetailView(APIView):
    """GET /organizations/{id}/ – fetch by id or slug."""

    @extend_schema(
        summary="Get Organisation",
        responses={200: OrganizationSerializer, 404: OpenApiResponse(description="Not found.")},
        tags=["Organizations"],
    )
    def get(self, request: Request, org_id: str) -> Response:
        org = org_service.get_organization(org_id)
        return Response(OrganizationSerializer(org).data)


class RepositoryListCreateView(APIView):
    """GET / POST /organizations/{id}/repositories/"""

    @extend_schema(
        summary="List Repositories",
        responses={200: RepositorySerializer(many=True)},
        tags=["Organizations"],
    )
    def get(self, request: Request, org_id: str) -> Response:
        org = org_service.get_organization(org_id)
        repos = org.repositories.all()
        return Response(RepositorySerializer(repos, many=True).data)

    @extend_schema(
        summary="Create Repository",
        request=RepositoryCreateSerializer,
        responses={
            201: RepositorySerializer,
            404: OpenApiResponse(description="Organisation not found."),
            409: OpenApiResponse(description="Repository name already used in this organisation."),
        },
        tags=["Organizations"],
    )
    def post(self, request: Request, org_id: str) -> Response:
        serializer = RepositoryCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        repo = org_service.create_repository(
            org_id=org_id,
            name=serializer.validated_data["name"],
        )
        return Response(RepositorySerializer(repo).data, status=status.HTTP_201_CREATED)
