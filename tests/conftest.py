"""
tests.conftest
~~~~~~~~~~~~~~
Shared fixtures: an engine with a fixed master key, one organisation with a
repository and a built-in store, and the organisation/repository set pair
used throughout the suite.
"""
from __future__ import annotations

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from apps.config_core.models import ConfigSet
from apps.config_core.services import config_sets
from apps.config_core.services.crypto import ValueCipher
from apps.config_core.services.engine import ConfigEngine, build_engine, get_engine
from apps.organizations.models import Organization, Repository


@pytest.fixture(autouse=True)
def _clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def engine() -> ConfigEngine:
    """An engine independent of the process-wide one."""
    return build_engine(ValueCipher("test-master-key"), max_retries=2, backoff=0.0)


@pytest.fixture
def app_engine() -> ConfigEngine:
    """The engine the API views use."""
    return get_engine()


@pytest.fixture
def org(db) -> Organization:
    return Organization.objects.create(name="Acme")


@pytest.fixture
def repo(org) -> Repository:
    return Repository.objects.create(organization=org, name="billing-api")


@pytest.fixture
def store(engine, org):
    return engine.stores.create_store(org_id=org.id, name="primary", is_default=True)


@pytest.fixture
def org_set(store, org) -> ConfigSet:
    """Organisation-wide set O."""
    return config_sets.create_set(
        store_id=store.id,
        name="acme-defaults",
        scope=ConfigSet.Scope.ORGANIZATION,
        org_id=org.id,
        actor="alice",
    )


@pytest.fixture
def repo_set(store, repo, org_set) -> ConfigSet:
    """Repository set R inheriting from O."""
    return config_sets.create_set(
        store_id=store.id,
        name="billing",
        scope=ConfigSet.Scope.REPOSITORY,
        repo_id=repo.id,
        environment="production",
        parent_id=org_set.id,
        actor="alice",
    )


@pytest.fixture
def api_client() -> APIClient:
    """Return an unauthenticated DRF APIClient."""
    return APIClient()
