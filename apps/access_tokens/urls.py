"""
apps.access_tokens.urls
~~~~~~~~~~~~~~~~~~~~~~~
Mounted at /api/v1/ by the root URLconf.
"""
from django.urls import path

from . import views

urlpatterns = [
    path("config-sets/<str:pk>/tokens/", views.AccessTokenListCreateView.as_view(), name="access-token-list"),
    path("tokens/<str:pk>/revoke/", views.AccessTokenRevokeView.as_view(), name="access-token-revoke"),

    path("ci/config/", views.CIConfigView.as_view(), name="ci-config"),
    path("ci/validate/", views.CIValidateView.as_view(), name="ci-validate"),
    path("ci/values/", views.CIValuesView.as_view(), name="ci-values"),
]
