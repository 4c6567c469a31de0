"""Default access policies and the engine instance built from them."""

from __future__ import annotations

from fastapi import Request

from app.core.hierarchy import EntityHierarchy, hierarchy
from app.permissions.engine import (
    ALL_ACTIONS,
    AccessPolicies,
    Action,
    PermissionEngine,
    PolicyGrant,
    configure_access_policies,
)

READ = Action.READ


def default_policies(subject: str, grant: PolicyGrant) -> None:
    if subject == "organization":
        grant("organization", "admin", ALL_ACTIONS)
        grant("organization", "member", READ)
    elif subject in ("workspace", "project"):
        grant(subject, "admin", ALL_ACTIONS)
        grant(subject, "member", READ)
        grant("organization", "admin", ALL_ACTIONS)
        grant("organization", "member", Action.CREATE | READ)
    elif subject == "task":
        grant("project", "admin", ALL_ACTIONS)
        grant("project", "member", ALL_ACTIONS)
        grant("organization", "admin", ALL_ACTIONS)
        grant("organization", "member", READ)
    elif subject == "label":
        grant("project", "admin", ALL_ACTIONS)
        grant("project", "member", Action.CREATE | READ | Action.UPDATE)
        grant("organization", "admin", ALL_ACTIONS)
        grant("organization", "member", READ)


def build_default_policies(entities: EntityHierarchy = hierarchy) -> AccessPolicies:
    return configure_access_policies(entities, default_policies)


def build_permission_engine(entities: EntityHierarchy = hierarchy) -> PermissionEngine:
    return PermissionEngine(entities, build_default_policies(entities))


def get_permission_engine(request: Request) -> PermissionEngine:
    """FastAPI dependency: the engine created at app startup."""
    return request.app.state.permissions
