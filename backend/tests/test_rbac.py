from types import SimpleNamespace

import pytest

from medtrack.core import rbac
from medtrack.core.rbac import Role


@pytest.mark.parametrize(
    "role, resource, action, allowed",
    [
        (Role.REP, "visit", "start", True),
        (Role.REP, "visit", "end", True),
        (Role.REP, "visit", "delete", False),
        (Role.REP, "visit", "cancel", False),
        (Role.REP, "visit", "manage_any", False),
        (Role.REP, "user", "list", False),
        (Role.REP, "doctor", "list", True),
        (Role.REP, "doctor", "create", False),
        (Role.REP, "sample", "create", True),
        (Role.MANAGER, "visit", "list", True),
        (Role.MANAGER, "visit", "edit", True),
        (Role.MANAGER, "visit", "start", False),
        (Role.MANAGER, "visit", "delete", False),
        (Role.MANAGER, "order", "delete", True),
        (Role.MANAGER, "user", "register", False),
        (Role.MANAGER, "dashboard", "admin", False),
        (Role.ADMIN, "visit", "manage_any", True),
        (Role.ADMIN, "user", "register", True),
        (Role.ADMIN, "dashboard", "admin", True),
    ],
)
def test_matrix(role, resource, action, allowed):
    assert rbac.can(role, resource, action) is allowed


def test_admin_holds_every_declared_action():
    for resource in (*rbac.ENTITY_RESOURCES, "dashboard"):
        for action in rbac.resource_actions(resource):
            assert rbac.can(Role.ADMIN, resource, action), (resource, action)


def test_unknown_role_or_pair_is_denied_without_raising():
    assert rbac.can("GUEST", "visit", "list") is False
    assert rbac.can(None, "visit", "list") is False
    assert rbac.can(Role.ADMIN, "visit", "teleport") is False
    assert rbac.can(Role.ADMIN, "spaceship", "list") is False


def test_parse_role_is_case_insensitive():
    assert rbac.parse_role(" rep ") is Role.REP
    assert rbac.parse_role("Manager") is Role.MANAGER
    assert rbac.parse_role("owner") is None


def test_authorize_without_identity_is_false():
    assert rbac.authorize(None, "dashboard", "read") is False


def test_affordances_cover_every_action_of_the_resource():
    rep = SimpleNamespace(role=Role.REP)
    visit_actions = rbac.affordances(rep, "visit")

    assert set(visit_actions) == set(rbac.resource_actions("visit"))
    assert visit_actions["start"] is True
    assert visit_actions["delete"] is False


def test_capability_sets_are_immutable():
    assert isinstance(rbac.CAPABILITIES[Role.REP], frozenset)
