"""Module: rbac.

Role-Capability Matrix. Declarative: role -> set of (resource, action)
pairs. Nothing here mutates; ``authorize`` is the single question every
route and every rendered affordance asks.
"""

from enum import Enum


class Role(str, Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    REP = "REP"


ROLE_DESCRIPTIONS = {
    Role.ADMIN: "Can add/edit reps, doctors, products, see all data",
    Role.MANAGER: "Can view visits, samples, and doctor lists in their team",
    Role.REP: "Can log visits, issue samples",
}

ENTITY_RESOURCES = ("visit", "doctor", "product", "user", "sample", "order", "location")
CRUD_ACTIONS = ("list", "read", "create", "update", "delete")

# Actions that exist per resource, beyond plain CRUD.
EXTRA_ACTIONS: dict[str, tuple[str, ...]] = {
    "visit": ("start", "end", "edit", "cancel", "manage_any"),
    "user": ("register", "activate", "assign_locations"),
    "sample": ("reports",),
    "order": ("reports",),
    "location": ("bulk_create", "activate"),
    "dashboard": ("read", "admin"),
}


def _pairs(resource: str, *actions: str) -> set[tuple[str, str]]:
    return {(resource, action) for action in actions}


def resource_actions(resource: str) -> tuple[str, ...]:
    base = CRUD_ACTIONS if resource in ENTITY_RESOURCES else ()
    return base + EXTRA_ACTIONS.get(resource, ())


_READ_ONLY = set().union(*(_pairs(r, "list", "read") for r in ENTITY_RESOURCES))

_REP = (
    (_READ_ONLY - _pairs("user", "list", "read"))
    | _pairs("visit", "start", "end", "create")
    | _pairs("sample", "create", "update", "reports")
    | _pairs("order", "create", "update")
    | _pairs("dashboard", "read")
)

_MANAGER = (
    _READ_ONLY
    | _pairs("visit", "edit")
    | _pairs("order", "create", "update", "delete", "reports")
    | _pairs("sample", "reports")
    | _pairs("dashboard", "read")
)

_ADMIN = set().union(
    *(_pairs(r, *resource_actions(r)) for r in (*ENTITY_RESOURCES, "dashboard"))
)

CAPABILITIES: dict[Role, frozenset[tuple[str, str]]] = {
    Role.ADMIN: frozenset(_ADMIN | _MANAGER | _REP),
    Role.MANAGER: frozenset(_MANAGER),
    Role.REP: frozenset(_REP),
}


def parse_role(value) -> Role | None:
    if isinstance(value, Role):
        return value
    try:
        return Role(str(value).strip().upper())
    except ValueError:
        return None


def can(role, resource: str, action: str) -> bool:
    """Deny-by-default lookup; never raises for unknown roles or pairs."""
    parsed = parse_role(role) if role is not None else None
    if parsed is None:
        return False
    return (resource, action) in CAPABILITIES[parsed]


def authorize(identity, resource: str, action: str) -> bool:
    if identity is None:
        return False
    return can(getattr(identity, "role", None), resource, action)


def affordances(identity, resource: str) -> dict[str, bool]:
    return {action: authorize(identity, resource, action) for action in resource_actions(resource)}
