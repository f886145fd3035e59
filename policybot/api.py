"""A small client for the GitHub REST and GraphQL APIs."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any
from urllib.parse import urljoin

import requests

from policybot.version import get_version

_ACCEPT = "application/vnd.github.v3+json"
_TIMEOUT = 10.0
_PER_PAGE = 100


class GitHubError(Exception):
    """An error response from the GitHub API."""

    def __init__(self, status_code: int, message: str, url: str = "") -> None:
        super().__init__(f"{status_code}: {message}" + (f" ({url})" if url else ""))
        self.status_code = status_code
        self.message = message
        self.url = url


def _error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason or ""
    if isinstance(payload, dict) and "message" in payload:
        return str(payload["message"])
    return response.text


class GitHubClient:
    """Makes authenticated requests to a GitHub API server."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/") + "/"
        self.graphql_url = urljoin(self.base_url, "graphql")
        self._session = session if session is not None else requests.Session()
        self._headers = {
            "Accept": _ACCEPT,
            "User-Agent": f"policy-bot/{get_version()}",
        }
        if token:
            self._headers["Authorization"] = f"token {token}"

    def _url(self, path: str) -> str:
        return urljoin(self.base_url, path.lstrip("/"))

    def _request(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        body: Any = None,
    ) -> requests.Response:
        response = self._session.request(
            method,
            url,
            params=params,
            json=body,
            headers=self._headers,
            timeout=_TIMEOUT,
        )
        if not response.ok:
            raise GitHubError(response.status_code, _error_message(response), url=response.url)
        return response

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        if not response.content:
            return None
        return response.json()

    def get(self, path: str, params: Mapping[str, Any] | None = None) -> Any:
        """GET a REST path and return the decoded JSON body, or None if empty."""
        return self._decode(self._request("GET", self._url(path), params=params))

    def get_paged(self, path: str, params: Mapping[str, Any] | None = None) -> Iterator[Any]:
        """Yield the decoded body of each page of a REST listing."""
        query: Mapping[str, Any] | None = {"per_page": _PER_PAGE, **(params or {})}
        url: str | None = self._url(path)
        while url:
            response = self._request("GET", url, params=query)
            yield self._decode(response)
            url = response.links.get("next", {}).get("url")
            # The next link already carries the query string.
            query = None

    def post(self, path: str, body: Any = None) -> Any:
        """POST a JSON body to a REST path and return the decoded response."""
        return self._decode(self._request("POST", self._url(path), body=body))

    def graphql(self, query: str, variables: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Run a GraphQL query and return its "data" object."""
        response = self._request(
            "POST",
            self.graphql_url,
            body={"query": query, "variables": dict(variables or {})},
        )
        payload = self._decode(response) or {}
        errors = payload.get("errors")
        if errors:
            message = "; ".join(
                str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors
            )
            raise GitHubError(response.status_code, message, url=self.graphql_url)
        return payload.get("data") or {}


def list_teams(client: GitHubClient, owner: str, repo: str) -> list[dict[str, Any]]:
    """Return every team with access to a repository, including its permission flags."""
    teams: list[dict[str, Any]] = []
    for page in client.get_paged(f"repos/{owner}/{repo}/teams"):
        teams.extend(page or [])
    return teams


def is_not_found(err: BaseException) -> bool:
    """Return True if the error is a GitHub 404 response."""
    return isinstance(err, GitHubError) and err.status_code == 404