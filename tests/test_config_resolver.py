"""
tests.test_config_resolver
~~~~~~~~~~~~~~~~~~~~~~~~~~~
Hierarchy management, resolution, comparison and cloning of config sets.
"""
from __future__ import annotations

import pytest

from apps.config_core.models import ConfigSet, ConfigValue
from apps.config_core.services import config_sets
from apps.config_core.services.config_resolver import ConfigSetResolver
from apps.config_core.services.crypto import SECRET_MASK
from apps.organizations.models import Organization
from common.exceptions import ConflictError, CycleError, NotFoundError, ValidationError


@pytest.mark.django_db
class TestConfigSetHierarchy:
    def test_child_rank(self, org_set, repo_set):
        assert org_set.hierarchy_rank == 0
        assert repo_set.hierarchy_rank == 1

    def test_repository_scope_needs_repo(self, store, org):
        with pytest.raises(ValidationError) as exc_info:
            config_sets.create_set(store_id=store.id, name="x", scope="repository", org_id=org.id)
        assert exc_info.value.code == "invalid_owner"

    def test_duplicate_name_and_environment(self, store, org, org_set):
        with pytest.raises(ConflictError):
            config_sets.create_set(
                store_id=store.id, name=org_set.name, scope="organization", org_id=org.id
            )

    def test_cross_tenant_parent_rejected(self, engine, org_set):
        other = Organization.objects.create(name="Globex")
        other_store = engine.stores.create_store(org_id=other.id, name="primary")
        with pytest.raises(ValidationError) as exc_info:
            config_sets.create_set(
                store_id=other_store.id, name="child", scope="environment", parent_id=org_set.id
            )
        assert exc_info.value.code == "cross_tenant"

    def test_reparent_to_descendant_is_cycle(self, org_set, repo_set):
        with pytest.raises(CycleError):
            config_sets.set_parent(org_set.id, repo_set.id)
        org_set.refresh_from_db()
        assert org_set.parent_id is None

    def test_reparent_recomputes_descendant_ranks(self, store, org_set, repo_set):
        root = config_sets.create_set(store_id=store.id, name="root", scope="environment")
        config_sets.set_parent(org_set.id, root.id)
        repo_set.refresh_from_db()
        org_set.refresh_from_db()
        assert (org_set.hierarchy_rank, repo_set.hierarchy_rank) == (1, 2)

    def test_detach(self, repo_set):
        detached = config_sets.set_parent(repo_set.id, None)
        assert detached.parent_id is None
        assert detached.hierarchy_rank == 0

    def test_depth_bound_on_create(self, store, settings):
        settings.CONFIG_MAX_HIERARCHY_DEPTH = 3
        parent = None
        for i in range(3):
            parent = config_sets.create_set(
                store_id=store.id,
                name=f"level-{i}",
                scope="environment",
                parent_id=parent.id if parent else None,
            )
        assert parent.hierarchy_rank == 2
        with pytest.raises(ValidationError) as exc_info:
            config_sets.create_set(store_id=store.id, name="too-deep", scope="environment", parent_id=parent.id)
        assert exc_info.value.code == "hierarchy_too_deep"

    def test_lock_and_unlock(self, org_set):
        locked = config_sets.lock_set(org_set.id, actor="alice", reason="freeze")
        assert (locked.is_locked, locked.locked_by, locked.lock_reason) == (True, "alice", "freeze")
        unlocked = config_sets.unlock_set(org_set.id)
        assert unlocked.is_locked is False
        assert unlocked.locked_at is None


@pytest.mark.django_db
class TestResolve:
    """The organisation/repository scenario: R inherits from O, R wins."""

    def test_leaf_wins(self, engine, org_set, repo_set):
        engine.values.put(org_set.id, "KEY", "parent")
        engine.values.put(org_set.id, "SHARED", "from-org")
        engine.values.put(repo_set.id, "KEY", "child")

        resolved = engine.resolver.resolve(repo_set.id)
        assert resolved.plain_values() == {"KEY": "child", "SHARED": "from-org"}
        assert resolved.values["KEY"].defining_set_id == repo_set.id
        assert resolved.values["SHARED"].defining_set_id == org_set.id
        assert resolved.inherited_from == [org_set.id]

    def test_secrets_excluded_masked_or_revealed(self, engine, org_set, repo_set):
        engine.values.put(org_set.id, "DB_PASSWORD", "hunter2", kind="secret")

        assert "DB_PASSWORD" not in engine.resolver.resolve(repo_set.id).values

        masked = engine.resolver.resolve(repo_set.id, include_secrets=True).values["DB_PASSWORD"]
        assert (masked.value, masked.masked) == (SECRET_MASK, True)

        revealed = engine.resolver.resolve(repo_set.id, include_secrets=True, mask_secrets=False)
        assert revealed.values["DB_PASSWORD"].value == "hunter2"

    def test_types_survive_resolution(self, engine, org_set):
        engine.values.put(org_set.id, "PORT", 8080)
        engine.values.put(org_set.id, "DEBUG", False)
        engine.values.put(org_set.id, "HOSTS", ["a", "b"])
        assert engine.resolver.resolve(org_set.id).plain_values() == {
            "PORT": 8080,
            "DEBUG": False,
            "HOSTS": ["a", "b"],
        }

    def test_archived_set_still_resolves(self, engine, org_set):
        engine.values.put(org_set.id, "KEY", "v")
        config_sets.archive_set(org_set.id)
        assert engine.resolver.resolve(org_set.id).plain_values() == {"KEY": "v"}

    def test_cycle_detected(self, engine, org_set, repo_set):
        ConfigSet.objects.filter(pk=org_set.pk).update(parent=repo_set)
        with pytest.raises(CycleError):
            engine.resolver.resolve(repo_set.id)

    def test_depth_bound(self, engine, org_set, repo_set):
        shallow = ConfigSetResolver(engine.registry, values=engine.values, max_depth=1)
        with pytest.raises(ValidationError) as exc_info:
            shallow.resolve(repo_set.id)
        assert exc_info.value.code == "hierarchy_too_deep"

    def test_missing_set(self, engine, db):
        with pytest.raises(NotFoundError):
            engine.resolver.resolve(999999)


@pytest.mark.django_db
class TestCompareAndClone:
    def test_compare(self, engine, org_set, repo_set):
        engine.values.put(org_set.id, "KEY", "parent")
        engine.values.put(org_set.id, "ONLY_ORG", "x")
        engine.values.put(org_set.id, "TOKEN", "old", kind="secret")
        engine.values.put(repo_set.id, "KEY", "child")
        engine.values.put(repo_set.id, "ONLY_REPO", "y")
        engine.values.put(repo_set.id, "TOKEN", "new", kind="secret")
        standalone = config_sets.create_set(
            store_id=org_set.store_id, name="standalone", scope="environment"
        )
        engine.values.put(standalone.id, "KEY", "parent")
        engine.values.put(standalone.id, "ONLY_ORG", "x")
        engine.values.put(standalone.id, "TOKEN", "old", kind="secret")

        diff = engine.resolver.compare(standalone.id, repo_set.id)
        assert diff.added == {"ONLY_REPO": "y"}
        assert diff.removed == {}
        assert diff.changed == {
            "KEY": {"from": "parent", "to": "child"},
            "TOKEN": {"from": SECRET_MASK, "to": SECRET_MASK},
        }
        assert diff.unchanged == ["ONLY_ORG"]

    def test_clone_copies_owned_values(self, engine, org_set, repo_set):
        engine.values.put(org_set.id, "INHERITED", "x")
        engine.values.put(repo_set.id, "KEY", "child")
        engine.values.put(repo_set.id, "KEY", "child-v2")
        engine.values.put(repo_set.id, "SECRET", "s", kind="secret")

        clone = engine.resolver.clone(repo_set.id, "billing-copy", new_environment="staging", actor="alice")

        assert (clone.name, clone.environment, clone.parent_id) == ("billing-copy", "staging", org_set.id)
        owned = ConfigValue.objects.filter(config_set=clone)
        assert sorted(owned.values_list("key", flat=True)) == ["KEY", "SECRET"]
        assert set(owned.values_list("version", flat=True)) == {1}
        resolved = engine.resolver.resolve(clone.id, include_secrets=True, mask_secrets=False)
        assert resolved.plain_values() == {"INHERITED": "x", "KEY": "child-v2", "SECRET": "s"}

    def test_clone_name_conflict(self, engine, org_set):
        with pytest.raises(ConflictError):
            engine.resolver.clone(org_set.id, org_set.name)
