"""Tests for flagcore/groups.py."""

from __future__ import annotations

import pytest

from flagcore.errors import FeatureGroupNotFoundError
from flagcore.groups import InMemoryGroupMembership


class TestInMemoryGroupMembership:
    """Tests for InMemoryGroupMembership."""

    @pytest.fixture
    def groups(self):
        groups = InMemoryGroupMembership({"beta": ["new-ui", "new-api"]})
        groups.define_group("staff", ["admin-panel"], metadata={"owner": "ops"})
        return groups

    def test_definitions(self, groups):
        assert groups.has_group("beta")
        assert groups.get_group("beta") == ["new-ui", "new-api"]
        assert groups.metadata("staff") == {"owner": "ops"}
        assert set(groups.all_groups()) == {"beta", "staff"}

    def test_define_dedupes(self):
        groups = InMemoryGroupMembership()
        groups.define_group("g", ["a", "b", "a"])
        assert groups.get_group("g") == ["a", "b"]

    def test_add_and_remove_features(self, groups):
        groups.add_features("beta", ["new-ui", "search"])
        assert groups.get_group("beta") == ["new-ui", "new-api", "search"]

        groups.remove_features("beta", ["new-api"])
        assert groups.get_group("beta") == ["new-ui", "search"]

    def test_unknown_group(self, groups):
        with pytest.raises(FeatureGroupNotFoundError):
            groups.get_group("missing")
        with pytest.raises(FeatureGroupNotFoundError):
            groups.assign("missing", "User|1")

    def test_memberships(self, groups):
        groups.assign("beta", "User|1")
        groups.assign("beta", "User|1")
        groups.assign_many("staff", ["User|1", "User|2"])

        assert groups.members("beta") == ["User|1"]
        assert groups.is_member("staff", "User|2")

        groups.unassign("staff", "User|2")
        assert not groups.is_member("staff", "User|2")

        groups.remove_from_all("User|1")
        assert groups.members("beta") == []
        assert groups.members("staff") == []

    def test_clear_and_delete(self, groups):
        groups.assign("beta", "User|1")
        groups.clear_group("beta")
        assert groups.members("beta") == []

        groups.delete_group("beta")
        assert not groups.has_group("beta")

    @pytest.mark.asyncio
    async def test_source_interface(self, groups):
        groups.assign("staff", "User|1")
        groups.assign("beta", "User|1")

        assert await groups.groups_for("User|1") == ["staff", "beta"]
        assert await groups.groups_for("User|9") == []
        assert await groups.features_in("staff") == ["admin-panel"]

        with pytest.raises(FeatureGroupNotFoundError):
            await groups.features_in("missing")
