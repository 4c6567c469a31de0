"""
Static entity hierarchy.

Every entity type the access layer knows about is registered here once, at
import time: its kind (user, context or product), its parent context, the
roles a membership in it can carry and the table that stores it. The entity
resolver, the context builder, the membership store and the permission engine
all read from this registry; adding a context type means adding an entry.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Literal

from sqlmodel import SQLModel

from app.models.organization import Organization
from app.models.project import Project, Workspace
from app.models.task import Label, Task
from app.models.user import User

EntityKind = Literal["user", "context", "product"]

ROOT_CONTEXT = "organization"


class HierarchyError(ValueError):
    """Raised when the registry is built from an inconsistent configuration."""


@dataclass(frozen=True)
class EntityConfig:
    name: str
    kind: EntityKind
    model: type[SQLModel]
    parent: str | None = None
    roles: tuple[str, ...] = ()
    has_slug: bool = True

    @property
    def id_field(self) -> str:
        return f"{self.name}_id"


@dataclass(frozen=True)
class ContextRef:
    """Reference to one context entity instance, e.g. ContextRef("project", <uuid>)."""

    type: str
    id: uuid.UUID


@dataclass(frozen=True)
class EntityHierarchy:
    entries: dict[str, EntityConfig] = field(default_factory=dict)

    @classmethod
    def build(cls, *configs: EntityConfig) -> EntityHierarchy:
        entries: dict[str, EntityConfig] = {}
        for config in configs:
            if config.name in entries:
                raise HierarchyError(f"Duplicate entity type: {config.name}")
            entries[config.name] = config

        if ROOT_CONTEXT not in entries or entries[ROOT_CONTEXT].kind != "context":
            raise HierarchyError(f"Hierarchy needs a '{ROOT_CONTEXT}' context entity")

        for config in entries.values():
            if config.kind == "user":
                continue
            if config.kind == "context" and not config.roles:
                raise HierarchyError(f"Context entity '{config.name}' declares no roles")
            if config.name == ROOT_CONTEXT:
                if config.parent is not None:
                    raise HierarchyError(f"'{ROOT_CONTEXT}' cannot have a parent")
                continue
            if config.parent is None:
                raise HierarchyError(f"Entity '{config.name}' has no parent")
            parent = entries.get(config.parent)
            if parent is None:
                raise HierarchyError(f"Entity '{config.name}' has unknown parent '{config.parent}'")
            if parent.kind != "context":
                raise HierarchyError(f"Parent '{config.parent}' of '{config.name}' is not a context entity")

        return cls(entries=entries)

    def get(self, entity_type: str) -> EntityConfig:
        try:
            return self.entries[entity_type]
        except KeyError:
            raise HierarchyError(f"Unregistered entity type: {entity_type}") from None

    def has(self, entity_type: str) -> bool:
        return entity_type in self.entries

    def ancestors(self, entity_type: str) -> list[str]:
        """Parent context types, nearest first, ending at the root organization."""
        chain: list[str] = []
        parent = self.get(entity_type).parent
        while parent is not None:
            chain.append(parent)
            parent = self.entries[parent].parent
        return chain

    def ordered_contexts(self, entity_type: str) -> list[str]:
        """Context levels relevant to an entity: itself when it is a context, then its ancestors."""
        levels = [entity_type] if self.is_context(entity_type) else []
        return levels + self.ancestors(entity_type)

    def is_context(self, entity_type: str) -> bool:
        return self.has(entity_type) and self.entries[entity_type].kind == "context"

    def is_product(self, entity_type: str) -> bool:
        return self.has(entity_type) and self.entries[entity_type].kind == "product"

    def roles_for(self, entity_type: str) -> tuple[str, ...]:
        return self.get(entity_type).roles

    def id_field(self, entity_type: str) -> str:
        return self.get(entity_type).id_field

    @property
    def context_types(self) -> list[str]:
        return [name for name, c in self.entries.items() if c.kind == "context"]

    @property
    def product_types(self) -> list[str]:
        return [name for name, c in self.entries.items() if c.kind == "product"]


MEMBERSHIP_ROLES = ("admin", "member")

hierarchy = EntityHierarchy.build(
    EntityConfig("user", "user", User),
    EntityConfig("organization", "context", Organization, roles=MEMBERSHIP_ROLES),
    EntityConfig("workspace", "context", Workspace, parent="organization", roles=MEMBERSHIP_ROLES),
    EntityConfig("project", "context", Project, parent="organization", roles=MEMBERSHIP_ROLES),
    EntityConfig("task", "product", Task, parent="project", has_slug=False),
    EntityConfig("label", "product", Label, parent="project", has_slug=False),
)


def context_ref_for(entity: SQLModel) -> ContextRef:
    """ContextRef of a context entity row."""
    entity_type = getattr(entity, "entity_type", None)
    if not hierarchy.is_context(entity_type):
        raise HierarchyError(f"{entity_type!r} is not a context entity")
    return ContextRef(entity_type, entity.id)


def context_ids(entity: SQLModel) -> dict[str, uuid.UUID]:
    """Map of context type -> id for an entity and all its ancestors."""
    entity_type = entity.entity_type
    ids: dict[str, uuid.UUID] = {}
    for level in hierarchy.ordered_contexts(entity_type):
        if level == entity_type:
            ids[level] = entity.id
        else:
            value = getattr(entity, hierarchy.id_field(level), None)
            if value is not None:
                ids[level] = value
    return ids
