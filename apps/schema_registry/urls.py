"""
apps.schema_registry.urls
"""
from django.urls import path

from .views import (
    ConfigSchemaDetailView,
    ConfigSchemaListCreateView,
    ConfigValidatorListCreateView,
)

urlpatterns = [
    path("schemas/", ConfigSchemaListCreateView.as_view(), name="schema-list-create"),
    path("schemas/<str:pk>/", ConfigSchemaDetailView.as_view(), name="schema-detail"),
    path(
        "schemas/<str:pk>/validators/",
        ConfigValidatorListCreateView.as_view(),
        name="schema-validators",
    ),
]
