"""A pull request context that loads its information from GitHub."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterator, Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from policybot.api import GitHubClient, list_teams
from policybot.context import (
    Collaborator,
    CollaboratorPermission,
    Comment,
    Commit,
    File,
    FileStatus,
    MembershipContext,
    PullContext,
    Review,
    Reviewer,
)
from policybot.github_models import (
    PageInfo,
    actor_login,
    backfill_pushed_at,
    comment_from_node,
    commit_from_node,
    parse_time,
    review_from_node,
    reviewer_from_node,
)
from policybot.permission import Permission, parse_permission, parse_permission_map

log = logging.getLogger(__name__)

# The most files GitHub returns for a pull request.
MAX_PULL_REQUEST_FILES = 3000

# The most commits GitHub returns for a pull request.
MAX_PULL_REQUEST_COMMITS = 250

_ACTOR = "__typename login"
_PAGE_INFO = "pageInfo { endCursor hasNextPage }"

_PULL_REQUEST_QUERY = f"""
query($owner: String!, $name: String!, $number: Int!) {{
  repository(owner: $owner, name: $name) {{
    pullRequest(number: $number) {{
      author {{ {_ACTOR} }}
      title
      createdAt
      state
      isCrossRepository
      isDraft
      headRefOid
      headRefName
      headRepository {{ name owner {{ {_ACTOR} }} }}
      baseRefName
    }}
  }}
}}
"""

_COMMITS_QUERY = f"""
query($owner: String!, $name: String!, $number: Int!, $cursor: String) {{
  repository(owner: $owner, name: $name) {{
    pullRequest(number: $number) {{
      commits(first: 100, after: $cursor) {{
        {_PAGE_INFO}
        nodes {{
          commit {{
            oid
            author {{ user {{ {_ACTOR} }} }}
            committer {{ user {{ {_ACTOR} }} }}
            committedViaWeb
            pushedDate
            parents(first: 3) {{ nodes {{ oid }} }}
            signature {{
              __typename
              ... on GpgSignature {{ isValid keyId signer {{ {_ACTOR} }} state }}
              ... on SmimeSignature {{ isValid signer {{ {_ACTOR} }} state }}
            }}
          }}
        }}
      }}
    }}
  }}
}}
"""

_HISTORY_QUERY = f"""
query($owner: String!, $name: String!, $oid: GitObjectID!, $cursor: String) {{
  repository(owner: $owner, name: $name) {{
    object(oid: $oid) {{
      ... on Commit {{
        history(first: 100, after: $cursor) {{
          {_PAGE_INFO}
          nodes {{ oid pushedDate }}
        }}
      }}
    }}
  }}
}}
"""

_PAGED_DATA_QUERY = f"""
query($owner: String!, $name: String!, $number: Int!, $commentCursor: String, $reviewCursor: String) {{
  repository(owner: $owner, name: $name) {{
    pullRequest(number: $number) {{
      comments(first: 100, after: $commentCursor) {{
        {_PAGE_INFO}
        nodes {{ author {{ {_ACTOR} }} body createdAt updatedAt }}
      }}
      reviews(first: 100, after: $reviewCursor, states: [APPROVED, CHANGES_REQUESTED, COMMENTED]) {{
        {_PAGE_INFO}
        nodes {{
          author {{ {_ACTOR} }}
          state
          body
          submittedAt
          updatedAt
          commit {{ oid }}
          onBehalfOf(first: 15) {{ nodes {{ slug }} }}
        }}
      }}
    }}
  }}
}}
"""

_REQUESTED_REVIEWER = f"requestedReviewer {{ ... on User {{ {_ACTOR} }} ... on Team {{ slug }} }}"

_REVIEWERS_QUERY = f"""
query($owner: String!, $name: String!, $number: Int!, $requestCursor: String, $timelineCursor: String) {{
  repository(owner: $owner, name: $name) {{
    pullRequest(number: $number) {{
      reviewRequests(first: 100, after: $requestCursor) {{
        {_PAGE_INFO}
        nodes {{ {_REQUESTED_REVIEWER} }}
      }}
      timelineItems(first: 100, after: $timelineCursor, itemTypes: [REVIEW_REQUEST_REMOVED_EVENT]) {{
        {_PAGE_INFO}
        nodes {{
          ... on ReviewRequestRemovedEvent {{
            actor {{ {_ACTOR} }}
            {_REQUESTED_REVIEWER}
          }}
        }}
      }}
    }}
  }}
}}
"""

_COLLABORATOR_FIELDS = f"{_PAGE_INFO} edges {{ permission }} nodes {{ {_ACTOR} }}"

_COLLABORATORS_QUERY = f"""
query($owner: String!, $name: String!, $directCursor: String, $allCursor: String) {{
  repository(owner: $owner, name: $name) {{
    direct: collaborators(affiliation: DIRECT, first: 100, after: $directCursor) {{
      {_COLLABORATOR_FIELDS}
    }}
    all: collaborators(affiliation: ALL, first: 100, after: $allCursor) {{
      {_COLLABORATOR_FIELDS}
    }}
  }}
}}
"""

_COLLABORATOR_PERMISSION_QUERY = f"""
query($owner: String!, $name: String!, $user: String!, $cursor: String) {{
  repository(owner: $owner, name: $name) {{
    collaborators(query: $user, first: 100, after: $cursor) {{
      {_COLLABORATOR_FIELDS}
    }}
  }}
}}
"""


class TemporaryError(Exception):
    """An error that may go away if the operation is retried later."""


def _dig(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, Mapping):
            return None
        data = data.get(key)
    return data


@dataclass
class Locator:
    """Identifies a pull request, optionally with a full or partial REST object."""

    owner: str
    repo: str
    number: int
    value: Mapping[str, Any] | None = None

    def is_complete(self) -> bool:
        """Return True if the REST object holds every field the context needs."""
        pr = self.value
        if pr is None or pr.get("draft") is None:
            return False
        required = (
            _dig(pr, "title"),
            _dig(pr, "created_at"),
            _dig(pr, "state"),
            _dig(pr, "user", "login"),
            _dig(pr, "base", "ref"),
            _dig(pr, "base", "repo", "id"),
            _dig(pr, "head", "sha"),
            _dig(pr, "head", "ref"),
            _dig(pr, "head", "repo", "id"),
            _dig(pr, "head", "repo", "name"),
            _dig(pr, "head", "repo", "owner", "login"),
        )
        return all(required)


@dataclass
class PullRequestInfo:
    """The pull request fields a context needs."""

    title: str
    author: str
    created_at: datetime | None
    state: str
    is_cross_repository: bool
    is_draft: bool
    head_ref_oid: str
    head_ref_name: str
    head_repository_name: str
    head_repository_owner: str
    base_ref_name: str


def _info_from_rest(pr: Mapping[str, Any]) -> PullRequestInfo:
    return PullRequestInfo(
        title=pr.get("title") or "",
        author=_dig(pr, "user", "login") or "",
        created_at=parse_time(pr.get("created_at")),
        state=pr.get("state") or "",
        is_cross_repository=_dig(pr, "head", "repo", "id") != _dig(pr, "base", "repo", "id"),
        is_draft=bool(pr.get("draft")),
        head_ref_oid=_dig(pr, "head", "sha") or "",
        head_ref_name=_dig(pr, "head", "ref") or "",
        head_repository_name=_dig(pr, "head", "repo", "name") or "",
        head_repository_owner=_dig(pr, "head", "repo", "owner", "login") or "",
        base_ref_name=_dig(pr, "base", "ref") or "",
    )


def _info_from_node(node: Mapping[str, Any]) -> PullRequestInfo:
    return PullRequestInfo(
        title=node.get("title") or "",
        author=actor_login(node.get("author")),
        created_at=parse_time(node.get("createdAt")),
        state=node.get("state") or "",
        is_cross_repository=bool(node.get("isCrossRepository")),
        is_draft=bool(node.get("isDraft")),
        head_ref_oid=node.get("headRefOid") or "",
        head_ref_name=node.get("headRefName") or "",
        head_repository_name=_dig(node, "headRepository", "name") or "",
        head_repository_owner=actor_login(_dig(node, "headRepository", "owner")),
        base_ref_name=node.get("baseRefName") or "",
    )


def _collaborator_permissions(conn: Mapping[str, Any]) -> Iterator[tuple[str, Permission]]:
    for edge, node in zip(conn.get("edges") or [], conn.get("nodes") or []):
        name = actor_login(node)
        try:
            yield name, parse_permission(edge.get("permission") or "")
        except ValueError as err:
            raise ValueError(f"{name}: {err}") from err


class GitHubContext(PullContext):
    """A pull request context that asks GitHub, caching each answer.

    A new instance must be created for each request.
    """

    def __init__(self, membership: MembershipContext, client: GitHubClient, locator: Locator) -> None:
        if not locator.owner or not locator.repo or not locator.number:
            raise ValueError("pull request locator does not contain full identifying information")

        self._membership = membership
        self._client = client
        self._owner = locator.owner
        self._repo = locator.repo
        self._number = locator.number
        self._pr = self._load_pull_request(locator)

        self._files: list[File] | None = None
        self._commits: list[Commit] | None = None
        self._comments: list[Comment] | None = None
        self._reviews: list[Review] | None = None
        self._reviewers: list[Reviewer] | None = None
        self._collaborators: list[Collaborator] | None = None
        self._permissions: dict[str, Permission] = {}
        self._teams: dict[str, Permission] | None = None
        self._statuses: dict[str, str] | None = None
        self._labels: list[str] | None = None

    def _repo_vars(self) -> dict[str, Any]:
        return {"owner": self._owner, "name": self._repo}

    def _pr_vars(self) -> dict[str, Any]:
        return {**self._repo_vars(), "number": self._number}

    def _load_pull_request(self, locator: Locator) -> PullRequestInfo:
        if locator.is_complete():
            assert locator.value is not None
            return _info_from_rest(locator.value)
        data = self._client.graphql(
            _PULL_REQUEST_QUERY,
            {"owner": locator.owner, "name": locator.repo, "number": locator.number},
        )
        node = _dig(data, "repository", "pullRequest")
        if not node:
            raise ValueError(
                f"failed to load pull request details: {locator.owner}/{locator.repo}#{locator.number}"
            )
        return _info_from_node(node)

    def _paginate(
        self,
        query: str,
        variables: Mapping[str, Any],
        path: Sequence[str],
        cursor: str,
    ) -> Iterator[Mapping[str, Any]]:
        """Yield each page of a single GraphQL connection."""
        query_vars: MutableMapping[str, Any] = {**variables, cursor: None}
        while True:
            conn = _dig(self._client.graphql(query, query_vars), *path) or {}
            yield conn
            if not PageInfo.from_node(conn.get("pageInfo")).update_cursor(query_vars, cursor):
                break

    # Membership questions are delegated.

    def is_team_member(self, team: str, user: str) -> bool:
        return self._membership.is_team_member(team, user)

    def is_org_member(self, org: str, user: str) -> bool:
        return self._membership.is_org_member(org, user)

    def team_members(self, team: str) -> list[str]:
        return self._membership.team_members(team)

    def organization_members(self, org: str) -> list[str]:
        return self._membership.organization_members(org)

    # Pull request fields.

    def repository_owner(self) -> str:
        return self._owner

    def repository_name(self) -> str:
        return self._repo

    def number(self) -> int:
        return self._number

    def title(self) -> str:
        return self._pr.title

    def author(self) -> str:
        return self._pr.author

    def created_at(self) -> datetime:
        return self._pr.created_at  # type: ignore[return-value]

    def is_open(self) -> bool:
        return self._pr.state.lower() == "open"

    def is_closed(self) -> bool:
        return self._pr.state.lower() == "closed"

    def head_sha(self) -> str:
        return self._pr.head_ref_oid

    def is_draft(self) -> bool:
        return self._pr.is_draft

    def branches(self) -> tuple[str, str]:
        head = self._pr.head_ref_name
        if self._pr.is_cross_repository:
            head = f"{self._pr.head_repository_owner}:{head}"
        return self._pr.base_ref_name, head

    # Loaded data.

    def changed_files(self) -> list[File]:
        if self._files is None:
            files: list[File] = []
            path = f"repos/{self._owner}/{self._repo}/pulls/{self._number}/files"
            for page in self._client.get_paged(path):
                for f in page or []:
                    status = FileStatus.MODIFIED
                    kind = f.get("status")
                    if kind == "added":
                        status = FileStatus.ADDED
                    elif kind == "deleted":
                        status = FileStatus.DELETED
                    elif kind == "renamed":
                        # The new file is added and the old one deleted; all
                        # changes are attributed to the new file.
                        status = FileStatus.ADDED
                        files.append(File(f.get("previous_filename") or "", FileStatus.DELETED))
                    files.append(
                        File(
                            filename=f.get("filename") or "",
                            status=status,
                            additions=f.get("additions") or 0,
                            deletions=f.get("deletions") or 0,
                        )
                    )
            self._files = files
        if len(self._files) >= MAX_PULL_REQUEST_FILES:
            raise ValueError(
                f"too many files in pull request, maximum is {MAX_PULL_REQUEST_FILES}"
            )
        return self._files

    def commits(self) -> list[Commit]:
        if self._commits is None:
            commits = self._load_commits()
            if len(commits) >= MAX_PULL_REQUEST_COMMITS:
                raise ValueError(
                    f"too many commits in pull request, maximum is {MAX_PULL_REQUEST_COMMITS}"
                )
            backfill_pushed_at(commits, self._pr.head_ref_oid)
            self._commits = commits
        return self._commits

    def _load_commits(self) -> list[Commit]:
        commits = [
            commit_from_node(node.get("commit") or {})
            for conn in self._paginate(
                _COMMITS_QUERY, self._pr_vars(), ("repository", "pullRequest", "commits"), "cursor"
            )
            for node in conn.get("nodes") or []
        ]

        head_sha = self._pr.head_ref_oid
        head = next((c for c in commits if c.sha == head_sha), None)
        if head is None:
            raise ValueError(f"head commit {head_sha[:10]} is missing, probably due to a force-push")

        # Push dates are missing for commits from forks and for recent pushes
        # that have not propagated yet; the commit history API has them.
        if head.pushed_at is None:
            log.debug(
                "failed to load pushed date via pull request, falling back to commit APIs (fork=%s)",
                self._pr.is_cross_repository,
            )
            self._load_pushed_at(commits)

        if head.pushed_at is None:
            raise ValueError(
                f"head commit {head_sha[:10]} is missing pushed date; this is probably a bug"
            )
        return commits

    def _load_pushed_at(self, commits: list[Commit]) -> None:
        by_sha = {c.sha: c for c in commits}
        variables = {
            "owner": self._pr.head_repository_owner,
            "name": self._pr.head_repository_name,
            "oid": self._pr.head_ref_oid,
        }

        loaded = 0
        for conn in self._paginate(
            _HISTORY_QUERY, variables, ("repository", "object", "history"), "cursor"
        ):
            nodes = conn.get("nodes") or []
            for node in nodes:
                commit = by_sha.pop(node.get("oid"), None)
                if commit is not None:
                    commit.pushed_at = parse_time(node.get("pushedDate"))
            loaded += len(nodes)
            if loaded > len(commits):
                break

        if by_sha:
            raise TemporaryError(
                f"{len(by_sha)} commits were not found while loading pushed dates. "
                f"Missing {', '.join(by_sha)}."
            )

    def comments(self) -> list[Comment]:
        if self._comments is None:
            self._load_paged_data()
        assert self._comments is not None
        return self._comments

    def reviews(self) -> list[Review]:
        if self._reviews is None:
            self._load_paged_data()
        assert self._reviews is not None
        return self._reviews

    def _load_paged_data(self) -> None:
        # Comments and reviews share one query: max(c, r) requests, not c + r.
        variables: dict[str, Any] = {**self._pr_vars(), "commentCursor": None, "reviewCursor": None}
        comments: list[Comment] = []
        reviews: list[Review] = []
        while True:
            pr = _dig(self._client.graphql(_PAGED_DATA_QUERY, variables), "repository", "pullRequest") or {}
            comment_conn = pr.get("comments") or {}
            review_conn = pr.get("reviews") or {}

            comments.extend(comment_from_node(n) for n in comment_conn.get("nodes") or [])
            more_comments = PageInfo.from_node(comment_conn.get("pageInfo")).update_cursor(
                variables, "commentCursor"
            )

            for node in review_conn.get("nodes") or []:
                state = node.get("state")
                if state == "COMMENTED":
                    comments.append(comment_from_node(node))
                if state in ("COMMENTED", "APPROVED", "CHANGES_REQUESTED"):
                    reviews.append(review_from_node(node))
            more_reviews = PageInfo.from_node(review_conn.get("pageInfo")).update_cursor(
                variables, "reviewCursor"
            )

            if not more_comments and not more_reviews:
                break

        self._comments = comments
        self._reviews = reviews

    def requested_reviewers(self) -> list[Reviewer]:
        if self._reviewers is None:
            variables: dict[str, Any] = {
                **self._pr_vars(),
                "requestCursor": None,
                "timelineCursor": None,
            }
            reviewers: list[Reviewer] = []
            while True:
                pr = _dig(self._client.graphql(_REVIEWERS_QUERY, variables), "repository", "pullRequest") or {}
                requests_conn = pr.get("reviewRequests") or {}
                timeline_conn = pr.get("timelineItems") or {}

                reviewers.extend(
                    reviewer_from_node(n.get("requestedReviewer"), False)
                    for n in requests_conn.get("nodes") or []
                )
                more_requests = PageInfo.from_node(requests_conn.get("pageInfo")).update_cursor(
                    variables, "requestCursor"
                )

                reviewers.extend(
                    reviewer_from_node(n.get("requestedReviewer"), True)
                    for n in timeline_conn.get("nodes") or []
                )
                more_timeline = PageInfo.from_node(timeline_conn.get("pageInfo")).update_cursor(
                    variables, "timelineCursor"
                )

                if not more_requests and not more_timeline:
                    break
            self._reviewers = reviewers
        return self._reviewers

    def repository_collaborators(self) -> list[Collaborator]:
        if self._collaborators is None:
            # Permission sources reported by GitHub are unreliable, so join
            # direct and overall collaborators with team permissions and
            # membership to work out how each permission is granted.
            variables: dict[str, Any] = {**self._repo_vars(), "directCursor": None, "allCursor": None}
            direct_perms: dict[str, Permission] = {}
            collaborators: list[Collaborator] = []
            while True:
                repo = _dig(self._client.graphql(_COLLABORATORS_QUERY, variables), "repository") or {}
                direct = repo.get("direct") or {}
                everyone = repo.get("all") or {}

                direct_perms.update(_collaborator_permissions(direct))
                more_direct = PageInfo.from_node(direct.get("pageInfo")).update_cursor(
                    variables, "directCursor"
                )

                collaborators.extend(
                    Collaborator(name=name, permissions=[CollaboratorPermission(perm)])
                    for name, perm in _collaborator_permissions(everyone)
                )
                more_all = PageInfo.from_node(everyone.get("pageInfo")).update_cursor(
                    variables, "allCursor"
                )

                if not more_direct and not more_all:
                    break

            team_perms = self.teams()
            team_membership: dict[str, list[str]] = defaultdict(list)
            for team in team_perms:
                for member in self.team_members(f"{self._owner}/{team}"):
                    team_membership[member].append(team)

            for collaborator in collaborators:
                overall = collaborator.permissions[0].permission
                sources = []
                if collaborator.name in direct_perms:
                    sources.append(direct_perms[collaborator.name])
                sources.extend(team_perms[team] for team in team_membership.get(collaborator.name, []))
                for perm in sources:
                    if perm >= overall:
                        collaborator.permissions[0].via_repo = True
                    elif perm > Permission.NONE:
                        collaborator.permissions.append(CollaboratorPermission(perm, via_repo=True))

            self._collaborators = collaborators
        return self._collaborators

    def collaborator_permission(self, user: str) -> Permission:
        if user in self._permissions:
            return self._permissions[user]

        # The "query" argument matches substrings, so several pages of users
        # may need to be checked before the exact login is found.
        perm = Permission.NONE
        variables = {**self._repo_vars(), "user": user}
        for conn in self._paginate(
            _COLLABORATOR_PERMISSION_QUERY, variables, ("repository", "collaborators"), "cursor"
        ):
            match = next(
                (
                    edge
                    for edge, node in zip(conn.get("edges") or [], conn.get("nodes") or [])
                    if actor_login(node) == user
                ),
                None,
            )
            if match is not None:
                perm = parse_permission(match.get("permission") or "")
                break

        self._permissions[user] = perm
        return perm

    def teams(self) -> dict[str, Permission]:
        if self._teams is None:
            self._teams = {
                team.get("slug") or "": parse_permission_map(team.get("permissions") or {})
                for team in list_teams(self._client, self._owner, self._repo)
            }
        return self._teams

    def latest_statuses(self) -> dict[str, str]:
        if self._statuses is None:
            base = f"repos/{self._owner}/{self._repo}/commits/{self.head_sha()}"
            statuses: dict[str, str] = {}
            for page in self._client.get_paged(f"{base}/status"):
                for status in (page or {}).get("statuses") or []:
                    statuses[status.get("context") or ""] = status.get("state") or ""
            for page in self._client.get_paged(f"{base}/check-runs"):
                for run in (page or {}).get("check_runs") or []:
                    statuses[run.get("name") or ""] = run.get("conclusion") or ""
            self._statuses = statuses
        return self._statuses

    def labels(self) -> list[str]:
        if self._labels is None:
            issue_labels = self._client.get(
                f"repos/{self._owner}/{self._repo}/issues/{self._number}/labels",
                {"per_page": 100},
            )
            self._labels = [(label.get("name") or "").lower() for label in issue_labels or []]
        return self._labels