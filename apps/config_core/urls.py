"""
apps.config_core.urls
~~~~~~~~~~~~~~~~~~~~~
URL routing for stores, config sets, values and exports.
Mounted at /api/v1/ by the root URLconf.
"""
from django.urls import path

from . import views

urlpatterns = [
    # Stores
    path("organizations/<str:org_id>/stores/", views.StoreListCreateView.as_view(), name="store-list"),
    path("stores/<str:pk>/", views.StoreDetailView.as_view(), name="store-detail"),
    path("stores/<str:pk>/test/", views.StoreTestView.as_view(), name="store-test"),

    # Config sets
    path("config-sets/", views.ConfigSetListCreateView.as_view(), name="config-set-list"),
    path("config-sets/<str:pk>/", views.ConfigSetDetailView.as_view(), name="config-set-detail"),
    path("config-sets/<str:pk>/parent/", views.ConfigSetParentView.as_view(), name="config-set-parent"),
    path("config-sets/<str:pk>/lock/", views.ConfigSetLockView.as_view(), name="config-set-lock"),
    path("config-sets/<str:pk>/unlock/", views.ConfigSetUnlockView.as_view(), name="config-set-unlock"),
    path("config-sets/<str:pk>/restore/", views.ConfigSetRestoreView.as_view(), name="config-set-restore"),
    path("config-sets/<str:pk>/resolve/", views.ConfigSetResolveView.as_view(), name="config-set-resolve"),
    path(
        "config-sets/<str:pk>/compare/<str:other>/",
        views.ConfigSetCompareView.as_view(),
        name="config-set-compare",
    ),
    path("config-sets/<str:pk>/clone/", views.ConfigSetCloneView.as_view(), name="config-set-clone"),
    path("config-sets/<str:pk>/validate/", views.ConfigSetValidateView.as_view(), name="config-set-validate"),
    path("config-sets/<str:pk>/export/", views.ConfigSetExportView.as_view(), name="config-set-export"),
    path("config-sets/<str:pk>/import/", views.ConfigSetImportView.as_view(), name="config-set-import"),

    # Values
    path("config-sets/<str:pk>/values/", views.ValueBulkView.as_view(), name="config-value-bulk"),
    path("config-sets/<str:pk>/values/<str:key>/", views.ValueDetailView.as_view(), name="config-value-detail"),
    path(
        "config-sets/<str:pk>/values/<str:key>/history/",
        views.ValueHistoryView.as_view(),
        name="config-value-history",
    ),

    # Export specifications
    path("config-sets/<str:pk>/exports/", views.ExportSpecListCreateView.as_view(), name="export-spec-list"),
    path("exports/<str:pk>/", views.ExportSpecDetailView.as_view(), name="export-spec-detail"),
    path("exports/<str:pk>/run/", views.ExportSpecRunView.as_view(), name="export-spec-run"),
]
