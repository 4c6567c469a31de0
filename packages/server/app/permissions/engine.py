"""
Permission engine.

Decides whether a user may perform an action on a subject entity, given the
user's memberships. Resolution order for a non system-admin:

1. Walk the subject's context levels, nearest first (the subject itself when
   it is a context entity, then its ancestors up to the organization).
2. The first level where the user holds an active membership decides; a
   direct membership always wins over an inherited one.
3. The policy entry for (subject type, membership context type, role) gives
   the allowed actions. No membership, or no policy entry, means deny.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Protocol, Sequence

import structlog

from app.core.hierarchy import EntityHierarchy, HierarchyError

log = structlog.get_logger()


class Action(enum.Flag):
    CREATE = enum.auto()
    READ = enum.auto()
    UPDATE = enum.auto()
    DELETE = enum.auto()


NO_ACTIONS = Action(0)
ALL_ACTIONS = Action.CREATE | Action.READ | Action.UPDATE | Action.DELETE

ACTION_NAMES = {
    Action.CREATE: "create",
    Action.READ: "read",
    Action.UPDATE: "update",
    Action.DELETE: "delete",
}


class MembershipLike(Protocol):
    context_type: str
    context_id: uuid.UUID
    role: str
    activated_at: Any


class UserLike(Protocol):
    id: uuid.UUID
    role: str


# ---------------------------------------------------------------------------
# Subjects without a row yet
# ---------------------------------------------------------------------------


class EntityContext:
    """Stand-in subject for an entity that does not exist yet (create checks).

    Carries only the ancestor ids that could be derived from the request;
    `<type>_id` attributes read from them and are None when unknown.
    """

    def __init__(
        self,
        entity_type: str,
        ids: dict[str, uuid.UUID] | None = None,
        entities: dict[str, Any] | None = None,
    ):
        self.entity_type = entity_type
        self.ids = dict(ids or {})
        self.entities = dict(entities or {})  # ancestor rows that were loaded, by type
        self.id = None

    def __getattr__(self, name: str) -> Any:
        if name.endswith("_id") and name != "ids":
            return self.__dict__.get("ids", {}).get(name[: -len("_id")])
        raise AttributeError(name)

    @property
    def is_empty(self) -> bool:
        return not self.ids

    def __repr__(self) -> str:
        ids = ", ".join(f"{k}={v}" for k, v in self.ids.items())
        return f"EntityContext({self.entity_type!r}, {ids})"


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------


class PolicyGrant:
    """Collects the grants declared for one subject type."""

    def __init__(self, hierarchy: EntityHierarchy, subject: str):
        self._hierarchy = hierarchy
        self.subject = subject
        self.entries: dict[tuple[str, str], Action] = {}

    def __call__(self, context_type: str, role: str, actions: Action) -> None:
        if context_type not in self._hierarchy.ordered_contexts(self.subject):
            raise HierarchyError(f"'{context_type}' is not a context level of '{self.subject}'")
        if role not in self._hierarchy.roles_for(context_type):
            raise HierarchyError(f"Unknown role '{role}' for context '{context_type}'")
        self.entries[(context_type, role)] = actions


@dataclass(frozen=True)
class AccessPolicies:
    entries: dict[tuple[str, str, str], Action] = field(default_factory=dict)

    def lookup(self, subject: str, context_type: str, role: str) -> Action | None:
        return self.entries.get((subject, context_type, role))


def configure_access_policies(
    hierarchy: EntityHierarchy,
    configure: Callable[[str, PolicyGrant], None],
) -> AccessPolicies:
    """Build policies by calling `configure(subject, grant)` for every context and product type."""
    entries: dict[tuple[str, str, str], Action] = {}
    for subject in hierarchy.context_types + hierarchy.product_types:
        grant = PolicyGrant(hierarchy, subject)
        configure(subject, grant)
        for (context_type, role), actions in grant.entries.items():
            entries[(subject, context_type, role)] = actions
    return AccessPolicies(entries=entries)


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PermissionDecision:
    subject: str
    actions: Action
    membership: Any = None
    context_type: str | None = None  # level the deciding membership belongs to
    system_admin: bool = False

    def allows(self, action: Action) -> bool:
        return bool(action) and (self.actions & action) == action

    @property
    def can(self) -> dict[str, bool]:
        return {name: self.allows(action) for action, name in ACTION_NAMES.items()}


class PermissionEngine:
    def __init__(self, hierarchy: EntityHierarchy, policies: AccessPolicies):
        self.hierarchy = hierarchy
        self.policies = policies

    def subject_context_id(self, subject: Any, context_type: str) -> uuid.UUID | None:
        """Id of the context instance at `context_type` level for a subject."""
        if subject.entity_type == context_type:
            return subject.id
        return getattr(subject, self.hierarchy.id_field(context_type), None)

    def find_membership(
        self, memberships: Iterable[MembershipLike], subject: Any
    ) -> tuple[MembershipLike | None, str | None]:
        active = [m for m in memberships if m.activated_at is not None]
        for context_type in self.hierarchy.ordered_contexts(subject.entity_type):
            context_id = self.subject_context_id(subject, context_type)
            if context_id is None:
                continue
            for membership in active:
                if membership.context_type == context_type and membership.context_id == context_id:
                    return membership, context_type
        return None, None

    def decide(self, user: UserLike, memberships: Iterable[MembershipLike], subject: Any) -> PermissionDecision:
        entity_type = subject.entity_type
        if getattr(user, "role", None) == "admin":
            return PermissionDecision(entity_type, ALL_ACTIONS, system_admin=True)

        membership, context_type = self.find_membership(memberships, subject)
        if membership is None:
            return PermissionDecision(entity_type, NO_ACTIONS)

        actions = self.policies.lookup(entity_type, context_type, membership.role)
        if actions is None:
            log.warning(
                "permission.policy_missing",
                subject=entity_type,
                context_type=context_type,
                role=membership.role,
            )
            return PermissionDecision(entity_type, NO_ACTIONS, membership, context_type)
        return PermissionDecision(entity_type, actions, membership, context_type)

    def is_allowed(
        self,
        user: UserLike,
        memberships: Iterable[MembershipLike],
        action: Action,
        subject: Any,
    ) -> bool:
        return self.decide(user, memberships, subject).allows(action)

    def split_by_permission(
        self,
        user: UserLike,
        memberships: Sequence[MembershipLike],
        action: Action,
        subjects: Iterable[Any],
    ) -> tuple[list[Any], list[Any]]:
        """Partition subjects into (allowed, disallowed) for a batch operation."""
        allowed: list[Any] = []
        disallowed: list[Any] = []
        for subject in subjects:
            (allowed if self.is_allowed(user, memberships, action, subject) else disallowed).append(subject)
        return allowed, disallowed
