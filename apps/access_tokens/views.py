"""
apps.access_tokens.views
~~~~~~~~~~~~~~~~~~~~~~~~
Token management and the CI consumer endpoints.

Endpoints
---------
GET/POST  /config-sets/{id}/tokens/   – List / issue tokens
POST      /tokens/{id}/revoke/        – Revoke a token
GET       /ci/config/                 – Resolved config for a pipeline (read)
POST      /ci/validate/               – Validate the token's set (read)
POST      /ci/values/                 – Bulk put through a token (write)

CI endpoints authenticate with ``Authorization: Bearer <token>`` only.
``set_id`` defaults to the set the token is bound to.
"""
from __future__ import annotations

import json

from django.http import HttpResponse
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.config_core.serializers import BulkPutResultSerializer
from apps.config_core.services.engine import get_engine
from common.request_meta import actor_for, request_meta
from . import services
from .authentication import ConfigTokenAuthentication
from .models import AccessToken
from .permissions import HasAccessToken
from .serializers import (
    AccessTokenCreatedSerializer,
    AccessTokenCreateSerializer,
    AccessTokenSerializer,
    CIBulkPutSerializer,
    CIConfigQuerySerializer,
    CISetSerializer,
)


# ---------------------------------------------------------------------------
# Token management
# ---------------------------------------------------------------------------

class AccessTokenListCreateView(APIView):
    """GET / POST /config-sets/{pk}/tokens/"""

    @extend_schema(responses={200: AccessTokenSerializer(many=True)}, tags=["Access Tokens"])
    def get(self, request: Request, pk: str) -> Response:
        return Response(AccessTokenSerializer(services.list_tokens(pk), many=True).data)

    @extend_schema(
        request=AccessTokenCreateSerializer,
        responses={201: AccessTokenCreatedSerializer},
        tags=["Access Tokens"],
    )
    def post(self, request: Request, pk: str) -> Response:
        serializer = AccessTokenCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        token, plaintext = services.create_token(
            set_id=pk, actor=actor_for(request), **serializer.validated_data
        )
        token.token = plaintext
        return Response(AccessTokenCreatedSerializer(token).data, status=status.HTTP_201_CREATED)


class AccessTokenRevokeView(APIView):
    """POST /tokens/{pk}/revoke/"""

    @extend_schema(request=None, responses={200: AccessTokenSerializer}, tags=["Access Tokens"])
    def post(self, request: Request, pk: str) -> Response:
        token = services.revoke_token(pk, actor=actor_for(request))
        return Response(AccessTokenSerializer(token).data)


# ---------------------------------------------------------------------------
# CI consumers
# ---------------------------------------------------------------------------

class _CIView(APIView):
    authentication_classes = [ConfigTokenAuthentication]
    permission_classes = [HasAccessToken]

    def authorize(self, request: Request, set_id, required_permission: str) -> int | str:
        token: AccessToken = request.auth
        set_id = set_id or token.config_set_id
        services.authorize(token, set_id, required_permission)
        return set_id


class CIConfigView(_CIView):
    """GET /ci/config/?set_id=&format=env|json&prefix=&transform="""

    @extend_schema(
        parameters=[CIConfigQuerySerializer],
        responses={
            200: OpenApiResponse(description="dotenv text, or {\"values\": {...}} for format=json"),
            403: OpenApiResponse(description="Set outside the token's scope."),
        },
        tags=["CI"],
    )
    def get(self, request: Request):
        query = CIConfigQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        vd = query.validated_data
        set_id = self.authorize(request, vd.get("set_id"), AccessToken.Permission.READ)

        fmt = "json" if vd["format"] == "json" else "dotenv"
        content, content_type = get_engine().exports.export(
            set_id,
            fmt,
            include_secrets=True,
            key_prefix=vd["prefix"],
            key_transform=vd["transform"],
        )
        if fmt == "json":
            return Response({"values": json.loads(content)})
        return HttpResponse(content, content_type=content_type)


class CIValidateView(_CIView):
    """POST /ci/validate/"""

    @extend_schema(request=CISetSerializer, tags=["CI"])
    def post(self, request: Request) -> Response:
        serializer = CISetSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        set_id = self.authorize(request, serializer.validated_data.get("set_id"), AccessToken.Permission.READ)
        return Response(get_engine().validate(set_id).as_dict())


class CIValuesView(_CIView):
    """POST /ci/values/"""

    @extend_schema(
        request=CIBulkPutSerializer,
        responses={
            200: BulkPutResultSerializer,
            403: OpenApiResponse(description="Token lacks write permission."),
        },
        tags=["CI"],
    )
    def post(self, request: Request) -> Response:
        serializer = CIBulkPutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        vd = serializer.validated_data
        set_id = self.authorize(request, vd.get("set_id"), AccessToken.Permission.WRITE)
        result = get_engine().values.bulk_put(
            set_id,
            vd["values"],
            actor=actor_for(request),
            reason=vd["reason"],
            request_meta=request_meta(request),
        )
        return Response(result.as_dict())
