"""An in-memory pull request context for tests of code that consumes contexts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from policybot.context import (
    Collaborator,
    Comment,
    Commit,
    File,
    PullContext,
    Review,
    Reviewer,
)
from policybot.permission import Permission

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


def _invert(memberships: dict[str, list[str]]) -> dict[str, list[str]]:
    inverted: dict[str, list[str]] = {}
    for user, groups in memberships.items():
        for group in groups:
            inverted.setdefault(group, []).append(user)
    return inverted


@dataclass
class FakeContext(PullContext):
    """A pull request context whose answers are set directly on its fields.

    Each ``*_error`` field, when set, is raised by the matching method.
    """

    owner_value: str = ""
    repo_value: str = ""
    number_value: int = 0

    title_value: str = ""
    author_value: str = ""
    created_at_value: datetime = _ZERO_TIME
    state_value: str = ""
    head_sha_value: str = ""

    branch_base_name: str = ""
    branch_head_name: str = ""

    changed_files_value: list[File] = field(default_factory=list)
    changed_files_error: Exception | None = None

    commits_value: list[Commit] = field(default_factory=list)
    commits_error: Exception | None = None

    comments_value: list[Comment] = field(default_factory=list)
    comments_error: Exception | None = None

    reviews_value: list[Review] = field(default_factory=list)
    reviews_error: Exception | None = None

    team_memberships: dict[str, list[str]] = field(default_factory=dict)
    team_membership_error: Exception | None = None

    teams_value: dict[str, Permission] = field(default_factory=dict)
    teams_error: Exception | None = None

    org_memberships: dict[str, list[str]] = field(default_factory=dict)
    org_membership_error: Exception | None = None

    collaborators_value: list[Collaborator] = field(default_factory=list)
    collaborators_error: Exception | None = None

    requested_reviewers_value: list[Reviewer] = field(default_factory=list)
    requested_reviewers_error: Exception | None = None

    latest_statuses_value: dict[str, str] = field(default_factory=dict)
    latest_statuses_error: Exception | None = None

    labels_value: list[str] = field(default_factory=list)
    labels_error: Exception | None = None

    draft: bool = False

    @staticmethod
    def _check(error: Exception | None) -> None:
        if error is not None:
            raise error

    def repository_owner(self) -> str:
        return self.owner_value or "pulltest"

    def repository_name(self) -> str:
        return self.repo_value or "context"

    def number(self) -> int:
        return self.number_value if self.number_value > 0 else 1

    def title(self) -> str:
        return self.title_value

    def author(self) -> str:
        return self.author_value

    def created_at(self) -> datetime:
        return self.created_at_value

    def is_open(self) -> bool:
        return self.state_value == "open"

    def is_closed(self) -> bool:
        return self.state_value == "closed"

    def head_sha(self) -> str:
        return self.head_sha_value

    def is_draft(self) -> bool:
        return self.draft

    def branches(self) -> tuple[str, str]:
        return self.branch_base_name, self.branch_head_name

    def changed_files(self) -> list[File]:
        self._check(self.changed_files_error)
        return self.changed_files_value

    def commits(self) -> list[Commit]:
        self._check(self.commits_error)
        return self.commits_value

    def is_team_member(self, team: str, user: str) -> bool:
        self._check(self.team_membership_error)
        return team in self.team_memberships.get(user, [])

    def is_org_member(self, org: str, user: str) -> bool:
        self._check(self.org_membership_error)
        return org in self.org_memberships.get(user, [])

    def collaborator_permission(self, user: str) -> Permission:
        self._check(self.collaborators_error)
        for collaborator in self.collaborators_value:
            if collaborator.name == user:
                return collaborator.permissions[0].permission
        return Permission.NONE

    def repository_collaborators(self) -> list[Collaborator]:
        self._check(self.collaborators_error)
        return self.collaborators_value

    def organization_members(self, org: str) -> list[str]:
        self._check(self.org_membership_error)
        return _invert(self.org_memberships).get(org, [])

    def team_members(self, team: str) -> list[str]:
        self._check(self.team_membership_error)
        return _invert(self.team_memberships).get(team, [])

    def requested_reviewers(self) -> list[Reviewer]:
        self._check(self.requested_reviewers_error)
        return self.requested_reviewers_value

    def comments(self) -> list[Comment]:
        self._check(self.comments_error)
        return self.comments_value

    def reviews(self) -> list[Review]:
        self._check(self.reviews_error)
        return self.reviews_value

    def teams(self) -> dict[str, Permission]:
        self._check(self.teams_error)
        return self.teams_value

    def latest_statuses(self) -> dict[str, str]:
        self._check(self.latest_statuses_error)
        return self.latest_statuses_value

    def labels(self) -> list[str]:
        self._check(self.labels_error)
        return self.labels_value