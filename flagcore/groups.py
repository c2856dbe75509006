"""Feature groups and group membership.

A group bundles feature names; contexts join groups. When a context has no
direct active value for a feature, the engine checks its groups for a
globally activated value of that feature.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from flagcore.errors import FeatureGroupNotFoundError

logger = logging.getLogger(__name__)


class GroupMembershipSource(ABC):
    """Answers which groups a context belongs to and what each group holds."""

    @abstractmethod
    async def groups_for(self, context_key: str) -> List[str]:
        """Group names the context identity belongs to, in join order."""
        pass

    @abstractmethod
    async def features_in(self, group: str) -> List[str]:
        """Feature names bundled in ``group``.

        Raises:
            FeatureGroupNotFoundError: If the group is not defined.
        """
        pass


class InMemoryGroupMembership(GroupMembershipSource):
    """In-memory groups and memberships."""

    def __init__(self, groups: Optional[Dict[str, Iterable[str]]] = None):
        self._groups: Dict[str, Dict[str, Any]] = {}
        self._members: Dict[str, List[str]] = {}
        for name, features in (groups or {}).items():
            self.define_group(name, features)

    # Group definitions

    def define_group(
        self,
        name: str,
        features: Iterable[str],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._groups[name] = {
            "features": list(dict.fromkeys(features)),
            "metadata": dict(metadata or {}),
        }
        logger.info(f"Defined feature group: {name}")

    def has_group(self, name: str) -> bool:
        return name in self._groups

    def _require(self, name: str) -> Dict[str, Any]:
        group = self._groups.get(name)
        if group is None:
            raise FeatureGroupNotFoundError.for_name(name)
        return group

    def get_group(self, name: str) -> List[str]:
        return list(self._require(name)["features"])

    def metadata(self, name: str) -> Dict[str, Any]:
        return dict(self._require(name)["metadata"])

    def all_groups(self) -> Dict[str, List[str]]:
        return {name: list(group["features"]) for name, group in self._groups.items()}

    def add_features(self, name: str, features: Iterable[str]) -> None:
        group = self._require(name)
        group["features"] = list(dict.fromkeys([*group["features"], *features]))

    def remove_features(self, name: str, features: Iterable[str]) -> None:
        group = self._require(name)
        removed = set(features)
        group["features"] = [f for f in group["features"] if f not in removed]

    def delete_group(self, name: str) -> None:
        self._groups.pop(name, None)
        self._members.pop(name, None)

    # Memberships

    def assign(self, name: str, context_key: str) -> None:
        self._require(name)
        members = self._members.setdefault(name, [])
        if context_key not in members:
            members.append(context_key)

    def assign_many(self, name: str, context_keys: Iterable[str]) -> None:
        for key in context_keys:
            self.assign(name, key)

    def unassign(self, name: str, context_key: str) -> None:
        members = self._members.get(name)
        if members and context_key in members:
            members.remove(context_key)

    def is_member(self, name: str, context_key: str) -> bool:
        return context_key in self._members.get(name, [])

    def members(self, name: str) -> List[str]:
        return list(self._members.get(name, []))

    def clear_group(self, name: str) -> None:
        self._members.pop(name, None)

    def remove_from_all(self, context_key: str) -> None:
        for members in self._members.values():
            if context_key in members:
                members.remove(context_key)

    # GroupMembershipSource

    async def groups_for(self, context_key: str) -> List[str]:
        return [name for name, members in self._members.items() if context_key in members]

    async def features_in(self, group: str) -> List[str]:
        return self.get_group(group)
