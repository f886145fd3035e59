# policybot

Read what a GitHub pull request holds and how its repository is set up, so that
approval policies can be evaluated against it.

## Install

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## What it provides

- `policybot.context`: the data types that describe a pull request.
  These are `File` (with `FileStatus`), `Commit`, `Signature`
  (with `SignatureType`), `Comment`, `Review` (with `ReviewState`), `Reviewer`
  (with `ReviewerType`), `Collaborator` and `CollaboratorPermission`. The
  module also holds the abstract `MembershipContext` and `PullContext`
  interfaces.
- `policybot.permission`: the ordered `Permission` levels, which are none,
  read, triage, write, maintain and admin. `parse_permission` parses a name and
  ignores case. It raises `ValueError` for an unknown name.
  `parse_permission_map` picks the highest level set in a map of flags such as
  `{"push": True}`.
- `policybot.api`: `GitHubClient` is a small REST and GraphQL client built on
  `requests`. `get_paged` follows `next` links. A failed response or a GraphQL
  error raises `GitHubError`. `list_teams` lists the teams with access to a
  repository, and `is_not_found` tells whether an error is a 404.
- `policybot.membership`: `GitHubMembershipContext` looks up organization and
  team membership. Teams are named `"org/team-slug"`. It caches every answer.
- `policybot.github_models`: helpers that turn GraphQL nodes into the data
  types above. This module also holds `PageInfo` for cursor paging and
  `backfill_pushed_at`.
- `policybot.github`: `GitHubContext` is a `PullContext` backed by GitHub. You
  build it from a `Locator` (owner, repo, number, and optionally a REST pull
  request object). If that object is complete, no request is made for the
  pull request itself. Each kind of data loads on first use and stays cached
  for the lifetime of the context:
  - changed files: a rename becomes a deletion plus an addition
  - commits: missing push dates are filled in from the commit history
  - comments and reviews: a "commented" review also counts as a comment
  - collaborators and how each permission is granted
  - per-user collaborator permission
  - requested and removed reviewers
  - team permissions
  - statuses: commit statuses merged with check-run conclusions
  - labels, lower-cased

  The context raises `ValueError` when a pull request has 3000 or more files
  or 250 or more commits, or when the head commit is missing. It raises
  `TemporaryError` when push dates cannot be found for some commits.
- `policybot.pulltest`: `FakeContext` is an in-memory `PullContext` for tests.
  You set its answers as fields. Any `*_error` field that is set is raised by
  the matching method.
- `policybot.config`: `parse_config` reads the server's YAML configuration. It
  rejects unknown fields and raises `ConfigError`. Byte sizes (`cache.max_size`,
  e.g. `50MB`) and durations (`workers.github_timeout`, e.g. `10s`) are
  parsed. The `server`, `github` and `datadog` sections are kept as plain
  mappings. Environment variables override the file:
  - `POLICYBOT_OPTIONS_POLICY_PATH`
  - `POLICYBOT_OPTIONS_SHARED_REPOSITORY`
  - `POLICYBOT_OPTIONS_SHARED_POLICY_PATH`
  - `POLICYBOT_OPTIONS_STATUS_CHECK_CONTEXT`
  - `POLICYBOT_SESSIONS_KEY`

  After the overrides, empty options get their defaults: `.policy.yml`,
  `.github`, `policy.yml` and `policy-bot`.
- `policybot.version`: `get_version()`.

## Example

```python
from policybot.api import GitHubClient
from policybot.github import GitHubContext, Locator
from policybot.membership import GitHubMembershipContext

client = GitHubClient("https://api.github.com/", token="token")
membership = GitHubMembershipContext(client)
pr = GitHubContext(membership, client, Locator(owner="octo", repo="demo", number=42))

base, head = pr.branches()
for f in pr.changed_files():
    print(f.filename, f.status.name, f.additions, f.deletions)

print(pr.collaborator_permission("someone"))
```

## What it does not do

This package only reads pull request and repository information and parses
configuration. It has:

- no webhook server or web pages
- no command-line program
- no policy file format or policy evaluation
- no posting of commit statuses
- no selection or requesting of reviewers

Code that does these things can be built on `PullContext` and `Config`.