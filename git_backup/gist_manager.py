"""
GitHub gists manager

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

from typing import Dict, List

from .base import Platform, Repository, RepositoryManager, require_field
from .exceptions import MalformedResponseError
from .github_manager import PAGE_SIZE, paginate_graphql

GISTS_QUERY = """
query ($owner: String!, $cursor: String, $privacy: GistPrivacy) {
    user(login: $owner) {
        gists(first: %d, after: $cursor, privacy: $privacy, orderBy: { field: CREATED_AT, direction: ASC }) {
            nodes {
                url
                createdAt
                isPublic
                files(limit: 1) {
                    name
                }
            }
            pageInfo {
                hasNextPage
                endCursor
            }
        }
    }
}
""" % PAGE_SIZE


def dedupe_names(repos: List[Repository]) -> List[Repository]:
    """
    Give repeated names a numeric suffix: "notes", "notes 2", "notes 3".

    The input must already be in creation order, so that making another gist
    with an existing name never renames the older ones. A suffixed name that
    is already taken, by an earlier rename or a gist really called "notes 2",
    is skipped so every result name is unique.
    """
    used = set()
    last_suffix: Dict[str, int] = {}
    result = []
    for repo in repos:
        name = repo.name
        if name in used:
            suffix = last_suffix.get(repo.name, 1) + 1
            while f"{repo.name} {suffix}" in used:
                suffix += 1
            last_suffix[repo.name] = suffix
            name = f"{repo.name} {suffix}"
            repo = Repository(
                name=name,
                clone_url=repo.clone_url,
                is_private=repo.is_private,
            )
        used.add(name)
        result.append(repo)
    return result


class GitHubGistsManager(RepositoryManager):
    """
    Gists have no slug, so each one is named after its first file, as GitHub
    itself shows them. Names can therefore collide and are made unique here.
    """

    platform = Platform.GITHUB_GISTS
    clone_host = "gist.github.com"
    auth_hint = (
        "Create a personal access token with the 'gist' scope at "
        "https://github.com/settings/tokens"
    )

    def list_repositories(self) -> List[Repository]:
        gists = []
        variables = {
            "owner": self.source.owner,
            "privacy": "PUBLIC" if self.public_only else "ALL",
        }

        self.logger.info(f"[CONFIG] Fetching GitHub gists owned by {self.source.owner}")
        for nodes in paginate_graphql(
            self, GISTS_QUERY, variables, ["user", "gists"]
        ):
            for node in nodes:
                url = require_field(self.provider_name, node, "url")
                files = node.get("files") or []
                if not files:
                    raise MalformedResponseError(
                        self.provider_name, f"Gist {url} has no files to name it by"
                    )
                name = require_field(self.provider_name, files[0], "name")
                if not url.startswith("https://"):
                    self.logger.debug(f"Skipping gist {name}: no HTTPS clone URL")
                    continue

                gists.append((node.get("createdAt") or "", name, url, node))

        # sorted() is stable, so gists created in the same instant keep API order
        gists = sorted(gists, key=lambda g: g[0])
        repos = [
            Repository(
                name=name,
                clone_url=f"{url}.git",
                is_private=(
                    not node["isPublic"] if node.get("isPublic") is not None else None
                ),
            )
            for _, name, url, node in gists
        ]
        return dedupe_names(repos)
