"""Conversions from GitHub GraphQL response nodes to pull request data types."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, MutableMapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from policybot.context import (
    Comment,
    Commit,
    Review,
    Reviewer,
    ReviewerType,
    ReviewState,
    Signature,
    SignatureType,
)

Node = Mapping[str, Any]


def _child(node: Node | None, key: str) -> Node:
    if not node:
        return {}
    return node.get(key) or {}


@dataclass
class PageInfo:
    """The paging state of one GraphQL connection."""

    end_cursor: str | None = None
    has_next_page: bool = False

    def update_cursor(self, variables: MutableMapping[str, Any], name: str) -> bool:
        """Store the end cursor in the named variable; return True if more pages remain.

        On the last page the cursor is still stored so later queries of the
        same connection return nothing.
        """
        if self.end_cursor is not None:
            variables[name] = self.end_cursor
        return self.has_next_page and self.end_cursor is not None

    @staticmethod
    def from_node(node: Node | None) -> PageInfo:
        """Build a PageInfo from a "pageInfo" node."""
        node = node or {}
        return PageInfo(
            end_cursor=node.get("endCursor"),
            has_next_page=bool(node.get("hasNextPage")),
        )


def parse_time(value: str | None) -> datetime | None:
    """Parse an ISO 8601 timestamp as returned by GitHub; None or empty gives None."""
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def actor_login(node: Node | None) -> str:
    """Return a REST-style login for an actor, with "[bot]" appended for bots."""
    if not node:
        return ""
    login = node.get("login") or ""
    if node.get("__typename") == "Bot":
        return login + "[bot]"
    return login


def comment_from_node(node: Node) -> Comment:
    """Convert an issue comment or a pull request review node to a Comment.

    Review nodes carry "submittedAt", which is used as the creation time.
    """
    created = node["submittedAt"] if "submittedAt" in node else node.get("createdAt")
    return Comment(
        created_at=parse_time(created),
        updated_at=parse_time(node.get("updatedAt")),
        author=actor_login(node.get("author")),
        body=node.get("body") or "",
    )


def review_from_node(node: Node) -> Review:
    """Convert a pull request review node to a Review."""
    teams = [n.get("slug", "") for n in _child(node, "onBehalfOf").get("nodes") or []]
    return Review(
        created_at=parse_time(node.get("submittedAt")),
        updated_at=parse_time(node.get("updatedAt")),
        author=actor_login(node.get("author")),
        state=ReviewState((node.get("state") or "").lower()),
        body=node.get("body") or "",
        sha=_child(node, "commit").get("oid") or "",
        teams=teams,
    )


def signature_from_node(node: Node | None) -> Signature | None:
    """Convert a commit signature node; unknown or missing signatures give None."""
    if not node:
        return None
    kind = node.get("__typename")
    if kind == SignatureType.GPG.value:
        return Signature(
            type=SignatureType.GPG,
            is_valid=bool(node.get("isValid")),
            key_id=node.get("keyId") or "",
            signer=actor_login(node.get("signer")),
            state=node.get("state") or "",
        )
    if kind == SignatureType.SMIME.value:
        return Signature(
            type=SignatureType.SMIME,
            is_valid=bool(node.get("isValid")),
            signer=actor_login(node.get("signer")),
            state=node.get("state") or "",
        )
    return None


def commit_from_node(node: Node) -> Commit:
    """Convert a commit node to a Commit."""
    parents = [p.get("oid", "") for p in _child(node, "parents").get("nodes") or []]
    return Commit(
        sha=node.get("oid") or "",
        parents=parents,
        committed_via_web=bool(node.get("committedViaWeb")),
        author=actor_login(_child(node, "author").get("user")),
        committer=actor_login(_child(node, "committer").get("user")),
        pushed_at=parse_time(node.get("pushedDate")),
        signature=signature_from_node(node.get("signature")),
    )


def reviewer_from_node(node: Node | None, removed: bool = False) -> Reviewer:
    """Convert a requested reviewer node (a user or a team) to a Reviewer."""
    node = node or {}
    if node.get("login"):
        return Reviewer(type=ReviewerType.USER, name=actor_login(node), removed=removed)
    if node.get("slug"):
        return Reviewer(type=ReviewerType.TEAM, name=node["slug"], removed=removed)
    return Reviewer(type=None, removed=removed)


def backfill_pushed_at(commits: Iterable[Commit], head_sha: str) -> None:
    """Give first-parent ancestors of the head without a push time the time of their child."""
    by_sha = {c.sha: c for c in commits}
    root = head_sha
    while True:
        commit = by_sha.get(root)
        if commit is None or not commit.parents:
            break
        first_parent = by_sha.get(commit.parents[0])
        if first_parent is None:
            break
        if first_parent.pushed_at is None:
            first_parent.pushed_at = commit.pushed_at
        del by_sha[root]
        root = first_parent.sha