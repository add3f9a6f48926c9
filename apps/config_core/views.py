"""
apps.config_core.views
~~~~~~~~~~~~~~~~~~~~~~~
Thin DRF API views for stores, config sets, values and exports.
All business logic is delegated to :mod:`apps.config_core.services`.

Endpoints
---------
GET/POST   /organizations/{id}/stores/               – List / create stores
GET/PATCH  /stores/{id}/                             – Store detail / update
POST       /stores/{id}/test/                        – Connection test
GET/POST   /config-sets/                             – List / create sets
GET/PATCH/DELETE /config-sets/{id}/                  – Detail / update / archive
PUT        /config-sets/{id}/parent/                 – Change parent
POST       /config-sets/{id}/lock|unlock|restore/    – Lock state / un-archive
GET        /config-sets/{id}/resolve/                – Resolved values
GET        /config-sets/{id}/compare/{other}/        – Diff against another set
POST       /config-sets/{id}/clone/                  – Clone
POST       /config-sets/{id}/validate/               – Validate against schema
GET        /config-sets/{id}/export/                 – Render an export
POST       /config-sets/{id}/import/                 – Import dotenv / json
POST       /config-sets/{id}/values/                 – Bulk put
GET/PUT/DELETE /config-sets/{id}/values/{key}/       – Single value
GET        /config-sets/{id}/values/{key}/history/   – Value history
GET/POST   /config-sets/{id}/exports/                – Export specifications
PATCH      /exports/{id}/                            – Update export spec
POST       /exports/{id}/run/                        – Run export spec
"""
from __future__ import annotations

from django.http import HttpResponse
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from common.request_meta import actor_for, request_meta
from .services import config_sets, export_engine
from .services.engine import get_engine
from .serializers import (
    BulkPutResultSerializer,
    BulkPutSerializer,
    CloneSerializer,
    ConfigExportCreateSerializer,
    ConfigExportSerializer,
    ConfigExportWriteSerializer,
    ConfigSetCreateSerializer,
    ConfigSetSerializer,
    ConfigSetUpdateSerializer,
    ConfigStoreCreateSerializer,
    ConfigStoreSerializer,
    ConfigStoreUpdateSerializer,
    ConfigValueHistorySerializer,
    ConnectionTestSerializer,
    ExportQuerySerializer,
    ImportResultSerializer,
    ImportSerializer,
    LockSerializer,
    SetParentSerializer,
    ValuePutSerializer,
)


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------

class StoreListCreateView(APIView):
    """GET / POST /organizations/{org_id}/stores/"""

    @extend_schema(responses={200: ConfigStoreSerializer(many=True)}, tags=["Stores"])
    def get(self, request: Request, org_id: str) -> Response:
        stores = get_engine().stores.list_stores(org_id=org_id)
        return Response(ConfigStoreSerializer(stores, many=True).data)

    @extend_schema(
        request=ConfigStoreCreateSerializer,
        responses={
            201: ConfigStoreSerializer,
            409: OpenApiResponse(description="Store name already used."),
            422: OpenApiResponse(description="Unsupported store type."),
        },
        tags=["Stores"],
    )
    def post(self, request: Request, org_id: str) -> Response:
        serializer = ConfigStoreCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        store = get_engine().stores.create_store(org_id=org_id, **serializer.validated_data)
        return Response(ConfigStoreSerializer(store).data, status=status.HTTP_201_CREATED)


class StoreDetailView(APIView):
    """GET / PATCH /stores/{pk}/"""

    @extend_schema(responses={200: ConfigStoreSerializer}, tags=["Stores"])
    def get(self, request: Request, pk: str) -> Response:
        return Response(ConfigStoreSerializer(get_engine().stores.get_store(pk)).data)

    @extend_schema(request=ConfigStoreUpdateSerializer, responses={200: ConfigStoreSerializer}, tags=["Stores"])
    def patch(self, request: Request, pk: str) -> Response:
        serializer = ConfigStoreUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        store = get_engine().stores.update_store(pk, data=serializer.validated_data)
        return Response(ConfigStoreSerializer(store).data)


class StoreTestView(APIView):
    """POST /stores/{pk}/test/"""

    @extend_schema(request=None, responses={200: ConnectionTestSerializer}, tags=["Stores"])
    def post(self, request: Request, pk: str) -> Response:
        result = get_engine().stores.test_store(pk)
        return Response(ConnectionTestSerializer(result).data)


# ---------------------------------------------------------------------------
# Config sets
# ---------------------------------------------------------------------------

class ConfigSetListCreateView(APIView):
    """GET / POST /config-sets/"""

    @extend_schema(
        parameters=[
            OpenApiParameter("org_id", int),
            OpenApiParameter("repo_id", int),
            OpenApiParameter("store_id", int),
            OpenApiParameter("environment", str),
            OpenApiParameter("include_archived", bool),
        ],
        responses={200: ConfigSetSerializer(many=True)},
        tags=["Config Sets"],
    )
    def get(self, request: Request) -> Response:
        params = request.query_params
        sets = config_sets.list_sets(
            org_id=params.get("org_id"),
            repo_id=params.get("repo_id"),
            store_id=params.get("store_id"),
            environment=params.get("environment"),
            include_archived=params.get("include_archived", "").lower() in ("1", "true", "yes"),
        )
        return Response(ConfigSetSerializer(sets, many=True).data)

    @extend_schema(request=ConfigSetCreateSerializer, responses={201: ConfigSetSerializer}, tags=["Config Sets"])
    def post(self, request: Request) -> Response:
        serializer = ConfigSetCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        config_set = config_sets.create_set(actor=actor_for(request), **serializer.validated_data)
        return Response(ConfigSetSerializer(config_set).data, status=status.HTTP_201_CREATED)


class ConfigSetDetailView(APIView):
    """GET / PATCH / DELETE /config-sets/{pk}/"""

    @extend_schema(responses={200: ConfigSetSerializer}, tags=["Config Sets"])
    def get(self, request: Request, pk: str) -> Response:
        return Response(ConfigSetSerializer(config_sets.get_set(pk)).data)

    @extend_schema(request=ConfigSetUpdateSerializer, responses={200: ConfigSetSerializer}, tags=["Config Sets"])
    def patch(self, request: Request, pk: str) -> Response:
        serializer = ConfigSetUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        config_set = config_sets.update_set(pk, data=serializer.validated_data)
        return Response(ConfigSetSerializer(config_set).data)

    @extend_schema(responses={200: ConfigSetSerializer}, tags=["Config Sets"])
    def delete(self, request: Request, pk: str) -> Response:
        config_set = config_sets.archive_set(pk, actor=actor_for(request))
        return Response(ConfigSetSerializer(config_set).data)


class ConfigSetParentView(APIView):
    """PUT /config-sets/{pk}/parent/"""

    @extend_schema(
        request=SetParentSerializer,
        responses={
            200: ConfigSetSerializer,
            409: OpenApiResponse(description="The change would create a cycle."),
        },
        tags=["Config Sets"],
    )
    def put(self, request: Request, pk: str) -> Response:
        serializer = SetParentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        config_set = config_sets.set_parent(
            pk, serializer.validated_data["parent_id"], actor=actor_for(request)
        )
        return Response(ConfigSetSerializer(config_set).data)


class ConfigSetLockView(APIView):
    """POST /config-sets/{pk}/lock/"""

    @extend_schema(request=LockSerializer, responses={200: ConfigSetSerializer}, tags=["Config Sets"])
    def post(self, request: Request, pk: str) -> Response:
        serializer = LockSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        config_set = config_sets.lock_set(
            pk, actor=actor_for(request), reason=serializer.validated_data["reason"]
        )
        return Response(ConfigSetSerializer(config_set).data)


class ConfigSetUnlockView(APIView):
    """POST /config-sets/{pk}/unlock/"""

    @extend_schema(request=None, responses={200: ConfigSetSerializer}, tags=["Config Sets"])
    def post(self, request: Request, pk: str) -> Response:
        config_set = config_sets.unlock_set(pk, actor=actor_for(request))
        return Response(ConfigSetSerializer(config_set).data)


class ConfigSetRestoreView(APIView):
    """POST /config-sets/{pk}/restore/"""

    @extend_schema(request=None, responses={200: ConfigSetSerializer}, tags=["Config Sets"])
    def post(self, request: Request, pk: str) -> Response:
        config_set = config_sets.restore_set(pk, actor=actor_for(request))
        return Response(ConfigSetSerializer(config_set).data)


class ConfigSetResolveView(APIView):
    """GET /config-sets/{pk}/resolve/?include_secrets=&reveal="""

    @extend_schema(
        parameters=[OpenApiParameter("include_secrets", bool), OpenApiParameter("reveal", bool)],
        tags=["Config Sets"],
    )
    def get(self, request: Request, pk: str) -> Response:
        params = request.query_params
        resolved = get_engine().resolver.resolve(
            pk,
            include_secrets=params.get("include_secrets", "").lower() in ("1", "true", "yes"),
            mask_secrets=params.get("reveal", "").lower() not in ("1", "true", "yes"),
        )
        return Response(resolved.as_dict())


class ConfigSetCompareView(APIView):
    """GET /config-sets/{pk}/compare/{other}/"""

    @extend_schema(tags=["Config Sets"])
    def get(self, request: Request, pk: str, other: str) -> Response:
        return Response(get_engine().resolver.compare(pk, other).as_dict())


class ConfigSetCloneView(APIView):
    """POST /config-sets/{pk}/clone/"""

    @extend_schema(request=CloneSerializer, responses={201: ConfigSetSerializer}, tags=["Config Sets"])
    def post(self, request: Request, pk: str) -> Response:
        serializer = CloneSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        clone = get_engine().resolver.clone(
            pk,
            serializer.validated_data["name"],
            new_environment=serializer.validated_data["environment"],
            actor=actor_for(request),
        )
        return Response(ConfigSetSerializer(clone).data, status=status.HTTP_201_CREATED)


class ConfigSetValidateView(APIView):
    """POST /config-sets/{pk}/validate/"""

    @extend_schema(request=None, tags=["Config Sets"])
    def post(self, request: Request, pk: str) -> Response:
        return Response(get_engine().validate(pk).as_dict())


# ---------------------------------------------------------------------------
# Export / import
# ---------------------------------------------------------------------------

class ConfigSetExportView(APIView):
    """GET /config-sets/{pk}/export/?format=&include_secrets=&prefix=&transform="""

    @extend_schema(parameters=[ExportQuerySerializer], responses={200: str}, tags=["Export"])
    def get(self, request: Request, pk: str) -> HttpResponse:
        query = ExportQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        vd = query.validated_data
        content, content_type = get_engine().exports.export(
            pk,
            vd["format"],
            include_secrets=vd["include_secrets"],
            key_prefix=vd["prefix"],
            key_transform=vd["transform"],
        )
        return HttpResponse(content, content_type=content_type)


class ConfigSetImportView(APIView):
    """POST /config-sets/{pk}/import/"""

    @extend_schema(request=ImportSerializer, responses={200: ImportResultSerializer}, tags=["Export"])
    def post(self, request: Request, pk: str) -> Response:
        serializer = ImportSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        vd = serializer.validated_data
        result = get_engine().exports.import_content(
            pk,
            vd["content"],
            vd["format"],
            actor=actor_for(request),
            secret_keys=vd["secret_keys"],
            request_meta=request_meta(request),
        )
        return Response(result.as_dict())


class ExportSpecListCreateView(APIView):
    """GET / POST /config-sets/{pk}/exports/"""

    @extend_schema(responses={200: ConfigExportSerializer(many=True)}, tags=["Export"])
    def get(self, request: Request, pk: str) -> Response:
        config_sets.get_set(pk)
        specs = export_engine.list_export_specs(pk)
        return Response(ConfigExportSerializer(specs, many=True).data)

    @extend_schema(request=ConfigExportCreateSerializer, responses={201: ConfigExportSerializer}, tags=["Export"])
    def post(self, request: Request, pk: str) -> Response:
        serializer = ConfigExportCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        spec = export_engine.create_export_spec(
            set_id=pk,
            actor=actor_for(request),
            **serializer.validated_data,
        )
        return Response(ConfigExportSerializer(spec).data, status=status.HTTP_201_CREATED)


class ExportSpecDetailView(APIView):
    """PATCH /exports/{pk}/"""

    @extend_schema(request=ConfigExportWriteSerializer, responses={200: ConfigExportSerializer}, tags=["Export"])
    def patch(self, request: Request, pk: str) -> Response:
        serializer = ConfigExportWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        spec = export_engine.update_export_spec(pk, data=dict(serializer.validated_data))
        return Response(ConfigExportSerializer(spec).data)


class ExportSpecRunView(APIView):
    """POST /exports/{pk}/run/"""

    @extend_schema(request=None, responses={200: str}, tags=["Export"])
    def post(self, request: Request, pk: str) -> HttpResponse:
        content, content_type = export_engine.run_export_spec(get_engine().exports, pk)
        return HttpResponse(content, content_type=content_type)


# ---------------------------------------------------------------------------
# Values
# ---------------------------------------------------------------------------

class ValueBulkView(APIView):
    """POST /config-sets/{pk}/values/"""

    @extend_schema(request=BulkPutSerializer, responses={200: BulkPutResultSerializer}, tags=["Values"])
    def post(self, request: Request, pk: str) -> Response:
        serializer = BulkPutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = get_engine().values.bulk_put(
            pk,
            serializer.validated_data["values"],
            actor=actor_for(request),
            reason=serializer.validated_data["reason"],
            request_meta=request_meta(request),
        )
        return Response(result.as_dict())


class ValueDetailView(APIView):
    """GET / PUT / DELETE /config-sets/{pk}/values/{key}/"""

    @extend_schema(parameters=[OpenApiParameter("reveal", bool)], tags=["Values"])
    def get(self, request: Request, pk: str, key: str) -> Response:
        reveal = request.query_params.get("reveal", "").lower() in ("1", "true", "yes")
        return Response(get_engine().values.get(pk, key, reveal=reveal))

    @extend_schema(request=ValuePutSerializer, tags=["Values"])
    def put(self, request: Request, pk: str, key: str) -> Response:
        serializer = ValuePutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        vd = serializer.validated_data
        stored = get_engine().values.put(
            pk,
            key,
            vd["value"],
            kind=vd.get("kind"),
            is_secret=vd["is_secret"],
            description=vd["description"],
            actor=actor_for(request),
            reason=vd["reason"],
            request_meta=request_meta(request),
            admin_override=vd["admin_override"],
        )
        return Response({
            "key": stored.key,
            "kind": stored.metadata["kind"],
            "is_secret": stored.metadata["is_secret"],
            "version": stored.version,
        })

    @extend_schema(responses={204: None}, tags=["Values"])
    def delete(self, request: Request, pk: str, key: str) -> Response:
        get_engine().values.delete(
            pk,
            key,
            actor=actor_for(request),
            request_meta=request_meta(request),
            admin_override=request.query_params.get("admin_override", "").lower() in ("1", "true"),
        )
        return Response(status=status.HTTP_204_NO_CONTENT)


class ValueHistoryView(APIView):
    """GET /config-sets/{pk}/values/{key}/history/?limit="""

    @extend_schema(
        parameters=[OpenApiParameter("limit", int)],
        responses={200: ConfigValueHistorySerializer(many=True)},
        tags=["Values"],
    )
    def get(self, request: Request, pk: str, key: str) -> Response:
        try:
            limit = max(1, min(int(request.query_params.get("limit", 50)), 500))
        except ValueError:
            limit = 50
        rows = get_engine().values.history(pk, key, limit=limit)
        return Response(ConfigValueHistorySerializer(rows, many=True).data)
