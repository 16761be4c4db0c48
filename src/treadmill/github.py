"""Locate the open treadmill pull request on the upstream project."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from treadmill import __version__
from treadmill.config import Settings
from treadmill.errors import PullRequestLookupError, RemoteError

logger = logging.getLogger(__name__)

SEARCH_QUERY = """\
query($q: String!) {
  search(query: $q, type: ISSUE, first: 20) {
    nodes {
      ... on PullRequest {
        number
        title
        state
        headRefName
      }
    }
  }
}
"""


@dataclass(frozen=True, slots=True)
class TreadmillPR:
    number: int
    title: str
    state: str
    head_ref: str


def _github_headers(token: str) -> dict[str, str]:
    headers = {
        "Accept": "application/vnd.github+json",
        "User-Agent": f"vendor-treadmill/{__version__}",
    }
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def _search_string(settings: Settings) -> str:
    return f'repo:{settings.upstream_repo} is:pr is:open in:title "{settings.pr_title}"'


def _field(payload: object, key: str, where: str) -> object:
    if not isinstance(payload, dict) or key not in payload:
        raise RemoteError(f"search response has no '{key}' in {where}")
    return payload[key]


def _search_nodes(payload: object) -> list[dict[str, object]]:
    data = _field(payload, "data", "response")
    search = _field(data, "search", "data")
    nodes = _field(search, "nodes", "data.search")
    if not isinstance(nodes, list):
        raise RemoteError("search response 'data.search.nodes' is not a list")
    return [node for node in nodes if isinstance(node, dict)]


def select_treadmill_pr(nodes: list[dict[str, object]], title: str) -> TreadmillPR:
    """Filter search results down to the single open, exactly-titled PR."""
    if not nodes:
        raise PullRequestLookupError(
            f"no pull requests found matching '{title}'",
            hint="Is the treadmill PR open? Has it been renamed?",
        )
    titled = [node for node in nodes if str(node.get("title", "")) == title]
    if not titled:
        seen = ", ".join(f"#{node.get('number')} '{node.get('title')}'" for node in nodes)
        raise PullRequestLookupError(
            f"no pull request has the exact title '{title}' (found: {seen})"
        )
    opened = [node for node in titled if str(node.get("state", "")).upper() == "OPEN"]
    if not opened:
        raise PullRequestLookupError(f"no OPEN pull request titled '{title}'")
    if len(opened) > 1:
        numbers = ", ".join(f"#{node.get('number')}" for node in opened)
        raise PullRequestLookupError(
            f"multiple open pull requests titled '{title}': {numbers}",
            hint="Close all but one of them.",
        )
    node = opened[0]
    number = node.get("number")
    if not isinstance(number, int):
        raise RemoteError(f"pull request has no usable number: {number!r}")
    return TreadmillPR(
        number=number,
        title=str(node.get("title", "")),
        state=str(node.get("state", "")),
        head_ref=str(node.get("headRefName", "")),
    )


def find_treadmill_pr(settings: Settings, client: httpx.Client | None = None) -> TreadmillPR:
    """Search the upstream repo once and return its single open treadmill PR."""
    query = _search_string(settings)
    logger.debug("searching: %s", query)
    body = {"query": SEARCH_QUERY, "variables": {"q": query}}
    try:
        if client is None:
            with httpx.Client(
                headers=_github_headers(settings.github_token.strip()),
                timeout=settings.http_timeout_seconds,
            ) as own_client:
                resp = own_client.post(settings.github_graphql_url, json=body)
        else:
            resp = client.post(settings.github_graphql_url, json=body)
    except httpx.HTTPError as exc:
        raise RemoteError(f"search request failed: {exc}") from exc

    if not resp.is_success:
        raise RemoteError(
            f"search request failed: {resp.status_code} {resp.reason_phrase}\n{resp.text}",
            status=resp.status_code,
        )
    try:
        payload = resp.json()
    except ValueError as exc:
        raise RemoteError(f"search response is not JSON: {exc}", status=resp.status_code) from exc
    if isinstance(payload, dict) and payload.get("errors"):
        raise RemoteError(f"search query failed: {payload['errors']}", status=resp.status_code)
    return select_treadmill_pr(_search_nodes(payload), settings.pr_title)
