from datetime import datetime, timezone

import pytest

from policybot.context import (
    Collaborator,
    CollaboratorPermission,
    Commit,
    File,
    FileStatus,
    MembershipContext,
    PullContext,
    Review,
    ReviewState,
    Signature,
    SignatureType,
)
from policybot.permission import Permission


def test_commit_users_author_and_committer():
    commit = Commit(sha="abc", author="alice", committer="bob")
    assert commit.users() == ["alice", "bob"]


def test_commit_users_skips_empty():
    assert Commit(sha="abc", committer="bob").users() == ["bob"]
    assert Commit(sha="abc", author="alice").users() == ["alice"]
    assert Commit(sha="abc").users() == []


def test_commit_defaults_are_independent():
    first = Commit(sha="a")
    second = Commit(sha="b")
    first.parents.append("root")
    assert second.parents == []
    assert first.pushed_at is None
    assert first.signature is None


def test_file_defaults():
    f = File(filename="README.md")
    assert (f.status, f.additions, f.deletions) == (FileStatus.MODIFIED, 0, 0)


def test_enum_values_match_wire_strings():
    assert SignatureType("GpgSignature") is SignatureType.GPG
    assert SignatureType("SmimeSignature") is SignatureType.SMIME
    assert ReviewState("changes_requested") is ReviewState.CHANGES_REQUESTED


def test_review_teams_default_empty():
    now = datetime(2018, 6, 27, 20, 33, 26, tzinfo=timezone.utc)
    review = Review(created_at=now, updated_at=now, author="bkeyes", state=ReviewState.APPROVED)
    assert review.teams == []
    assert review.body == ""


def test_signature_fields():
    sig = Signature(type=SignatureType.GPG, is_valid=True, key_id="3AA5C34371567BD2", signer="mhaypenny")
    assert sig.key_id == "3AA5C34371567BD2"
    assert sig.is_valid


def test_collaborator_permissions():
    collab = Collaborator(
        name="direct-admin",
        permissions=[CollaboratorPermission(Permission.ADMIN, via_repo=True)],
    )
    assert collab.permissions[0] == CollaboratorPermission(Permission.ADMIN, True)
    assert CollaboratorPermission(Permission.READ).via_repo is False


def test_interfaces_are_abstract():
    with pytest.raises(TypeError):
        PullContext()
    with pytest.raises(TypeError):
        MembershipContext()


class _StaticMembership(MembershipContext):
    def __init__(self, teams):
        self._teams = teams

    def is_team_member(self, team, user):
        return user in self._teams.get(team, [])

    def is_org_member(self, org, user):
        return any(t.startswith(org + "/") and user in m for t, m in self._teams.items())

    def team_members(self, team):
        return list(self._teams.get(team, []))

    def organization_members(self, org):
        members = set()
        for team, users in self._teams.items():
            if team.startswith(org + "/"):
                members.update(users)
        return sorted(members)


def test_membership_subclass_checks_commit_users():
    ctx = _StaticMembership({"org/a": ["alice"], "org/b": ["bob", "alice"]})
    commit = Commit(sha="abc", author="alice", committer="bob")
    in_team_a = [u for u in commit.users() if ctx.is_team_member("org/a", u)]
    in_team_b = [u for u in commit.users() if ctx.is_team_member("org/b", u)]
    assert in_team_a == ["alice"]
    assert in_team_b == ["alice", "bob"]