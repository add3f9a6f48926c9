"""
apps.schema_registry.views
~~~~~~~~~~~~~~~~~~~~~~~~~~~
DRF views for schemas and validators – thin layer; all logic delegated to
services.
"""
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from . import services
from .serializers import (
    ConfigSchemaCreateSerializer,
    ConfigSchemaSerializer,
    ConfigSchemaUpdateSerializer,
    ConfigValidatorCreateSerializer,
    ConfigValidatorSerializer,
)


class ConfigSchemaListCreateView(APIView):
    """GET /api/v1/schemas/  –  POST /api/v1/schemas/"""

    @extend_schema(responses={200: ConfigSchemaSerializer(many=True)}, tags=["Schemas"])
    def get(self, request: Request) -> Response:
        is_active_param = request.query_params.get("is_active")
        is_active = None
        if is_active_param is not None:
            is_active = is_active_param.lower() in ("1", "true", "yes")
        schemas = services.list_schemas(
            org_id=request.query_params.get("org_id"),
            repo_id=request.query_params.get("repo_id"),
            is_active=is_active,
        )
        return Response(ConfigSchemaSerializer(schemas, many=True).data)

    @extend_schema(
        request=ConfigSchemaCreateSerializer,
        responses={201: ConfigSchemaSerializer},
        tags=["Schemas"],
    )
    def post(self, request: Request) -> Response:
        serializer = ConfigSchemaCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        vd = serializer.validated_data
        schema = services.create_schema(
            org_id=vd.get("org_id"),
            repo_id=vd.get("repo_id"),
            name=vd["name"],
            definition=vd["definition"],
            description=vd.get("description", ""),
            created_by=request.headers.get("X-Actor", ""),
        )
        return Response(
            ConfigSchemaSerializer(schema).data,
            status=status.HTTP_201_CREATED,
        )


class ConfigSchemaDetailView(APIView):
    """GET / PATCH / DELETE /api/v1/schemas/<pk>/"""

    @extend_schema(responses={200: ConfigSchemaSerializer}, tags=["Schemas"])
    def get(self, request: Request, pk: str) -> Response:
        schema = services.get_schema(pk)
        return Response(ConfigSchemaSerializer(schema).data)

    @extend_schema(
        request=ConfigSchemaUpdateSerializer,
        responses={200: ConfigSchemaSerializer},
        tags=["Schemas"],
    )
    def patch(self, request: Request, pk: str) -> Response:
        serializer = ConfigSchemaUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        schema = services.update_schema(
            pk,
            data=serializer.validated_data,
            actor=request.headers.get("X-Actor", ""),
        )
        return Response(ConfigSchemaSerializer(schema).data)

    @extend_schema(responses={204: None}, tags=["Schemas"])
    def delete(self, request: Request, pk: str) -> Response:
        services.delete_schema(pk)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ConfigValidatorListCreateView(APIView):
    """GET / POST /api/v1/schemas/<pk>/validators/"""

    @extend_schema(responses={200: ConfigValidatorSerializer(many=True)}, tags=["Schemas"])
    def get(self, request: Request, pk: str) -> Response:
        services.get_schema(pk)
        validators = services.list_validators(pk, active_only=False)
        return Response(ConfigValidatorSerializer(validators, many=True).data)

    @extend_schema(
        request=ConfigValidatorCreateSerializer,
        responses={201: ConfigValidatorSerializer},
        tags=["Schemas"],
    )
    def post(self, request: Request, pk: str) -> Response:
        serializer = ConfigValidatorCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        validator = services.create_validator(schema_id=pk, **serializer.validated_data)
        return Response(ConfigValidatorSerializer(validator).data, status=status.HTTP_201_CREATED)
