"""Organization and team membership lookups backed by the GitHub REST API."""

from __future__ import annotations

from policybot.api import GitHubClient, GitHubError, is_not_found
from policybot.context import MembershipContext


def membership_key(group: str, user: str) -> str:
    """Return the cache key for a user's membership in an org or team."""
    return f"{group}:{user}"


def split_team(team: str) -> tuple[str, str]:
    """Split "org-name/team-slug" into its organization and slug.

    Raises ValueError if the name does not have exactly two parts.
    """
    parts = team.split("/")
    if len(parts) != 2:
        raise ValueError(f"invalid team format: {team}")
    return parts[0], parts[1]


def _logins(page: object) -> list[str]:
    return [user.get("login", "") for user in (page or [])]  # type: ignore[union-attr]


class GitHubMembershipContext(MembershipContext):
    """Answers membership questions with GitHub requests, caching every answer."""

    def __init__(self, client: GitHubClient) -> None:
        self._client = client
        self._membership: dict[str, bool] = {}
        self._org_members: dict[str, list[str]] = {}
        self._team_members: dict[str, list[str]] = {}

    def is_team_member(self, team: str, user: str) -> bool:
        org, slug = split_team(team)
        key = membership_key(team, user)
        if key in self._membership:
            return self._membership[key]

        try:
            membership = self._client.get(f"orgs/{org}/teams/{slug}/memberships/{user}")
        except GitHubError as err:
            if not is_not_found(err):
                raise
            membership = None

        is_member = bool(membership) and membership.get("state") == "active"
        self._membership[key] = is_member
        return is_member

    def is_org_member(self, org: str, user: str) -> bool:
        key = membership_key(org, user)
        if key in self._membership:
            return self._membership[key]

        try:
            self._client.get(f"orgs/{org}/members/{user}")
            is_member = True
        except GitHubError as err:
            if not is_not_found(err):
                raise
            is_member = False

        self._membership[key] = is_member
        return is_member

    def organization_members(self, org: str) -> list[str]:
        if org not in self._org_members:
            members: list[str] = []
            for page in self._client.get_paged(f"orgs/{org}/members"):
                for login in _logins(page):
                    members.append(login)
                    self._membership[membership_key(org, login)] = True
            self._org_members[org] = members
        return self._org_members[org]

    def team_members(self, team: str) -> list[str]:
        if team not in self._team_members:
            org, slug = split_team(team)
            members: list[str] = []
            for page in self._client.get_paged(f"orgs/{org}/teams/{slug}/members"):
                for login in _logins(page):
                    members.append(login)
                    self._membership[membership_key(team, login)] = True
            self._team_members[team] = members
        return self._team_members[team]