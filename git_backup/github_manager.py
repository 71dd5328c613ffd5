"""
GitHub repository manager

Copyright 2025 HyperSec

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

    http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""

from typing import Any, Dict, Iterator, List

from .base import Platform, Repository, RepositoryManager, require_field
from .exceptions import (
    MalformedResponseError,
    ProviderRateLimitError,
    ProviderResponseError,
)

GRAPHQL_URL = "https://api.github.com/graphql"
PAGE_SIZE = 100

REPOSITORIES_QUERY = """
query ($owner: String!, $cursor: String, $privacy: RepositoryPrivacy) {
    repositoryOwner(login: $owner) {
        repositories(first: %d, after: $cursor, privacy: $privacy, ownerAffiliations: [OWNER], orderBy: { field: CREATED_AT, direction: ASC }) {
            nodes {
                name
                url
                isPrivate
            }
            pageInfo {
                hasNextPage
                endCursor
            }
        }
    }
}
""" % PAGE_SIZE


def paginate_graphql(
    manager: RepositoryManager,
    query: str,
    variables: Dict[str, Any],
    path: List[str],
) -> Iterator[List[Dict[str, Any]]]:
    """
    Yield the node list of each page of a cursor-paginated GraphQL connection.

    Args:
        manager: Manager whose token and HTTP session are used
        query: GraphQL query taking a $cursor variable
        variables: Query variables other than the cursor
        path: Keys leading from the response's "data" to the connection

    Raises:
        MalformedResponseError: The response lacks the expected structure or
            the provider hands back a cursor it has already returned
    """
    provider = manager.provider_name
    cursor = None
    seen_cursors = set()

    while True:
        body = {"query": query, "variables": dict(variables, cursor=cursor)}
        data = manager._request_json(
            "POST",
            GRAPHQL_URL,
            json=body,
            headers={"Authorization": f"bearer {manager.token}"},
        )

        connection = _connection(provider, data, path)
        nodes = connection.get("nodes")
        if not isinstance(nodes, list):
            raise MalformedResponseError(provider, "Response has no list of nodes")
        yield nodes

        page_info = connection.get("pageInfo") or {}
        cursor = page_info.get("endCursor")
        if not page_info.get("hasNextPage") or not cursor:
            return

        if cursor in seen_cursors:
            raise MalformedResponseError(
                provider, f"Pagination cursor '{cursor}' was returned twice"
            )
        seen_cursors.add(cursor)


def _connection(provider: str, data: Any, path: List[str]) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise MalformedResponseError(provider, "Response is not a JSON object")

    errors = data.get("errors")
    if errors:
        messages = "; ".join(str(e.get("message", e)) for e in errors)
        if any(e.get("type") == "RATE_LIMITED" for e in errors):
            raise ProviderRateLimitError(provider, messages)
        raise ProviderResponseError(provider, messages)

    node = data.get("data")
    for key in path:
        if not isinstance(node, dict) or key not in node:
            raise MalformedResponseError(
                provider, f"Response is missing '{'.'.join(path)}'"
            )
        node = node[key]
        if node is None:
            raise ProviderResponseError(provider, f"Could not resolve '{key}'")
    if not isinstance(node, dict):
        raise MalformedResponseError(
            provider, f"Response is missing '{'.'.join(path)}'"
        )
    return node


class GitHubManager(RepositoryManager):
    platform = Platform.GITHUB
    clone_host = "github.com"
    auth_hint = (
        "Create a personal access token with the 'repo' scope at "
        "https://github.com/settings/tokens"
    )

    def list_repositories(self) -> List[Repository]:
        repos = []
        variables = {
            "owner": self.source.owner,
            "privacy": "PUBLIC" if self.public_only else None,
        }

        self.logger.info(
            f"[CONFIG] Fetching GitHub repositories owned by {self.source.owner}"
        )
        for page, nodes in enumerate(
            paginate_graphql(
                self, REPOSITORIES_QUERY, variables, ["repositoryOwner", "repositories"]
            ),
            1,
        ):
            self.logger.debug(f"Page {page}: {len(nodes)} repositories")
            for node in nodes:
                name = require_field(self.provider_name, node, "name")
                url = node.get("url") or ""
                if not url.startswith("https://"):
                    self.logger.debug(f"Skipping {name}: no HTTPS clone URL")
                    continue

                repos.append(
                    Repository(
                        name=name,
                        clone_url=f"{url}.git",
                        is_private=node.get("isPrivate"),
                    )
                )

        return repos
