import json

import pytest
import responses
from responses import matchers

from policybot.api import GitHubClient, GitHubError, is_not_found, list_teams

BASE = "http://github.localhost/"


@pytest.fixture
def client():
    return GitHubClient(BASE, token="token")


@pytest.fixture
def mocked():
    with responses.RequestsMock() as rsps:
        yield rsps


def test_get_returns_json_and_sends_headers(client, mocked):
    mocked.add(responses.GET, BASE + "repos/testorg/testrepo", json={"name": "testrepo"})
    assert client.get("repos/testorg/testrepo") == {"name": "testrepo"}
    sent = mocked.calls[0].request
    assert sent.headers["Authorization"] == "token token"
    assert sent.headers["User-Agent"] == "policy-bot/develop"


def test_get_empty_body_returns_none(client, mocked):
    mocked.add(responses.GET, BASE + "orgs/testorg/members/mhaypenny", status=204)
    assert client.get("/orgs/testorg/members/mhaypenny") is None


def test_get_not_found_raises(client, mocked):
    mocked.add(responses.GET, BASE + "orgs/testorg/members/ttest", status=404, json={"message": "Not Found"})
    with pytest.raises(GitHubError) as info:
        client.get("orgs/testorg/members/ttest")
    assert info.value.status_code == 404
    assert info.value.message == "Not Found"
    assert is_not_found(info.value)


def test_server_error_is_not_not_found(client, mocked):
    mocked.add(responses.GET, BASE + "repos/o/r", status=500, body="boom")
    with pytest.raises(GitHubError) as info:
        client.get("repos/o/r")
    assert info.value.status_code == 500
    assert not is_not_found(info.value)
    assert not is_not_found(ValueError("x"))


def test_get_paged_follows_next_links(client, mocked):
    url = BASE + "repos/testorg/testrepo/pulls/123/files"
    mocked.add(
        responses.GET,
        url,
        json=[{"filename": "a"}],
        headers={"Link": f'<{url}?per_page=100&page=2>; rel="next"'},
        match=[matchers.query_param_matcher({"per_page": "100"})],
    )
    mocked.add(
        responses.GET,
        url,
        json=[{"filename": "b"}],
        match=[matchers.query_param_matcher({"per_page": "100", "page": "2"})],
    )
    pages = list(client.get_paged("repos/testorg/testrepo/pulls/123/files"))
    assert pages == [[{"filename": "a"}], [{"filename": "b"}]]
    assert len(mocked.calls) == 2


def test_post_sends_json_body(client, mocked):
    mocked.add(responses.POST, BASE + "repos/o/r/statuses/abc", json={"id": 1}, status=201)
    body = {"state": "success", "context": "policy-bot: develop"}
    assert client.post("repos/o/r/statuses/abc", body) == {"id": 1}
    assert json.loads(mocked.calls[0].request.body) == body


def test_graphql_returns_data(client, mocked):
    data = {"repository": {"pullRequest": {"title": "test title"}}}
    mocked.add(responses.POST, BASE + "graphql", json={"data": data})
    variables = {"owner": "testorg", "name": "testrepo", "number": 123}
    assert client.graphql("query { x }", variables) == data
    sent = json.loads(mocked.calls[0].request.body)
    assert sent == {"query": "query { x }", "variables": variables}


def test_graphql_errors_raise(client, mocked):
    mocked.add(
        responses.POST,
        BASE + "graphql",
        json={"data": None, "errors": [{"message": "bad field"}]},
    )
    with pytest.raises(GitHubError, match="bad field"):
        client.graphql("query { x }")


def test_list_teams_collects_all_pages(client, mocked):
    url = BASE + "repos/testorg/testrepo/teams"
    admins = {"slug": "admins", "permissions": {"admin": True}}
    maintainers = {"slug": "maintainers", "permissions": {"maintain": True}}
    mocked.add(
        responses.GET,
        url,
        json=[admins],
        headers={"Link": f'<{url}?per_page=100&page=2>; rel="next"'},
        match=[matchers.query_param_matcher({"per_page": "100"})],
    )
    mocked.add(
        responses.GET,
        url,
        json=[maintainers],
        match=[matchers.query_param_matcher({"per_page": "100", "page": "2"})],
    )
    assert list_teams(client, "testorg", "testrepo") == [admins, maintainers]


def test_base_url_normalised():
    c = GitHubClient("http://github.localhost")
    assert c.base_url == BASE
    assert c.graphql_url == BASE + "graphql"