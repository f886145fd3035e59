import pytest

from policybot.permission import Permission, parse_permission, parse_permission_map


@pytest.mark.parametrize(
    "text, expected",
    [
        ("none", Permission.NONE),
        ("read", Permission.READ),
        ("triage", Permission.TRIAGE),
        ("write", Permission.WRITE),
        ("maintain", Permission.MAINTAIN),
        ("admin", Permission.ADMIN),
    ],
)
def test_parse_permission_names(text, expected):
    assert parse_permission(text) is expected


def test_parse_permission_ignores_case():
    assert parse_permission("ADMIN") is Permission.ADMIN
    assert parse_permission("Write") is Permission.WRITE


def test_parse_permission_invalid():
    with pytest.raises(ValueError, match="invalid permission: owner"):
        parse_permission("owner")


@pytest.mark.parametrize("perm", list(Permission))
def test_str_round_trip(perm):
    assert parse_permission(str(perm)) is perm


def test_str_is_lower_case_name():
    assert str(parse_permission("MAINTAIN")) == "maintain"
    assert f"{parse_permission('Admin')}" == "admin"


def test_permissions_are_ordered():
    names = ["admin", "none", "write", "read", "maintain", "triage"]
    ordered = sorted(parse_permission(name) for name in names)
    assert ordered == [
        Permission.NONE,
        Permission.READ,
        Permission.TRIAGE,
        Permission.WRITE,
        Permission.MAINTAIN,
        Permission.ADMIN,
    ]
    assert parse_permission("admin") > parse_permission("write") > parse_permission("none")


@pytest.mark.parametrize(
    "flags, expected",
    [
        ({"admin": True, "push": True, "pull": True}, Permission.ADMIN),
        ({"maintain": True, "push": True}, Permission.MAINTAIN),
        ({"push": True, "pull": True}, Permission.WRITE),
        ({"write": True}, Permission.WRITE),
        ({"triage": True, "pull": True}, Permission.TRIAGE),
        ({"pull": True}, Permission.READ),
        ({"read": True}, Permission.READ),
        ({"admin": False, "pull": False}, Permission.NONE),
        ({}, Permission.NONE),
    ],
)
def test_parse_permission_map(flags, expected):
    assert parse_permission_map(flags) is expected