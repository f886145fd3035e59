"""Data types and interfaces describing a pull request and its repository."""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

from policybot.permission import Permission


class FileStatus(enum.IntEnum):
    MODIFIED = 0
    ADDED = 1
    DELETED = 2


@dataclass
class File:
    filename: str
    status: FileStatus = FileStatus.MODIFIED
    additions: int = 0
    deletions: int = 0


class SignatureType(str, enum.Enum):
    GPG = "GpgSignature"
    SMIME = "SmimeSignature"


@dataclass
class Signature:
    type: SignatureType
    is_valid: bool = False
    key_id: str = ""
    signer: str = ""
    state: str = ""


@dataclass
class Commit:
    sha: str
    parents: list[str] = field(default_factory=list)
    committed_via_web: bool = False
    # Login names; empty when the author or committer is not a real user.
    author: str = ""
    committer: str = ""
    # None when the push time is not known for this commit.
    pushed_at: datetime | None = None
    # None when the commit is not signed.
    signature: Signature | None = None

    def users(self) -> list[str]:
        """Return the login names of the users associated with this commit."""
        return [name for name in (self.author, self.committer) if name]


@dataclass
class Comment:
    created_at: datetime
    updated_at: datetime
    author: str
    body: str = ""


class ReviewState(str, enum.Enum):
    APPROVED = "approved"
    CHANGES_REQUESTED = "changes_requested"
    COMMENTED = "commented"
    DISMISSED = "dismissed"
    PENDING = "pending"


@dataclass
class Review:
    created_at: datetime
    updated_at: datetime
    author: str
    state: ReviewState
    body: str = ""
    sha: str = ""
    teams: list[str] = field(default_factory=list)


class ReviewerType(str, enum.Enum):
    USER = "user"
    TEAM = "team"


@dataclass
class Reviewer:
    type: ReviewerType | None
    name: str = ""
    removed: bool = False


@dataclass
class CollaboratorPermission:
    permission: Permission
    # True if granted by a direct or team association with the repository,
    # False if granted by the organization.
    via_repo: bool = False


@dataclass
class Collaborator:
    name: str
    permissions: list[CollaboratorPermission] = field(default_factory=list)


class MembershipContext(ABC):
    """Answers questions about organization and team membership."""

    @abstractmethod
    def is_team_member(self, team: str, user: str) -> bool:
        """Return True if the user is a member of "org-name/team-name"."""

    @abstractmethod
    def is_org_member(self, org: str, user: str) -> bool:
        """Return True if the user is a member of the organization."""

    @abstractmethod
    def team_members(self, team: str) -> list[str]:
        """Return the usernames in the team "org-name/team-name"."""

    @abstractmethod
    def organization_members(self, org: str) -> list[str]:
        """Return the usernames of the organization's members."""


class PullContext(MembershipContext):
    """Information about one pull request and the repository it targets.

    A new context should be created for each request; implementations need
    not be thread-safe.
    """

    @abstractmethod
    def repository_owner(self) -> str:
        """Return the owner of the target repository."""

    @abstractmethod
    def repository_name(self) -> str:
        """Return the name of the target repository."""

    @abstractmethod
    def number(self) -> int:
        """Return the pull request number."""

    @abstractmethod
    def title(self) -> str:
        """Return the pull request title."""

    @abstractmethod
    def author(self) -> str:
        """Return the login of the user who opened the pull request."""

    @abstractmethod
    def created_at(self) -> datetime:
        """Return when the pull request was created."""

    @abstractmethod
    def is_open(self) -> bool:
        """Return True when the pull request is open."""

    @abstractmethod
    def is_closed(self) -> bool:
        """Return True when the pull request is closed."""

    @abstractmethod
    def head_sha(self) -> str:
        """Return the SHA of the head commit."""

    @abstractmethod
    def branches(self) -> tuple[str, str]:
        """Return the base and head branch names.

        Head branches in forks are prefixed with the fork owner and a colon.
        """

    @abstractmethod
    def changed_files(self) -> list[File]:
        """Return the files changed by the pull request."""

    @abstractmethod
    def commits(self) -> list[Commit]:
        """Return the commits in the pull request."""

    @abstractmethod
    def comments(self) -> list[Comment]:
        """Return all comments on the pull request."""

    @abstractmethod
    def reviews(self) -> list[Review]:
        """Return all reviews on the pull request."""

    @abstractmethod
    def is_draft(self) -> bool:
        """Return the draft status of the pull request."""

    @abstractmethod
    def repository_collaborators(self) -> list[Collaborator]:
        """Return the repository collaborators."""

    @abstractmethod
    def collaborator_permission(self, user: str) -> Permission:
        """Return the permission level of the user on the repository."""

    @abstractmethod
    def teams(self) -> dict[str, Permission]:
        """Return the team collaborators and their permission on the repository."""

    @abstractmethod
    def requested_reviewers(self) -> list[Reviewer]:
        """Return current and removed review requests."""

    @abstractmethod
    def latest_statuses(self) -> dict[str, str]:
        """Return a map of status check names to their latest result."""

    @abstractmethod
    def labels(self) -> list[str]:
        """Return the labels applied to the pull request."""