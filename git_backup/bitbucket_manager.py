"""
Bitbucket repository manager

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

import re
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlencode

from .base import Platform, Repository, RepositoryManager, require_field
from .exceptions import MalformedResponseError

API_URL = "https://api.bitbucket.org/2.0"
PAGE_SIZE = 100
FIELDS = "next,values.slug,values.scm,values.links.clone,values.is_private"


class BitbucketManager(RepositoryManager):
    """
    Bitbucket Cloud repository manager.

    Authenticates with HTTP Basic auth as <owner>:<app password>. Results are
    paginated by a "next" link holding the full URL of the following page,
    which is followed as-is until the API stops returning one.
    """

    platform = Platform.BITBUCKET
    clone_host = "bitbucket.org"
    auth_hint = (
        "Create an app password with 'Repositories: Read' permission at "
        "https://bitbucket.org/account/settings/app-passwords/"
    )

    def first_page_url(self) -> str:
        params = {"role": "owner", "pagelen": PAGE_SIZE, "fields": FIELDS}
        if self.public_only:
            params["q"] = "is_private=false"
        return f"{API_URL}/repositories/{quote(self.source.owner)}?{urlencode(params)}"

    def list_repositories(self) -> List[Repository]:
        repos = []
        url: Optional[str] = self.first_page_url()

        self.logger.info(
            f"[CONFIG] Fetching Bitbucket repositories owned by {self.source.owner}"
        )
        while url:
            data = self._request_json(
                "GET", url, auth=(self.source.owner, self.token)
            )
            if not isinstance(data, dict) or not isinstance(data.get("values"), list):
                raise MalformedResponseError(
                    self.provider_name, "Response has no list of values"
                )

            for repo in data["values"]:
                name = require_field(self.provider_name, repo, "slug")

                # Mercurial repositories can still show up in old accounts
                if repo.get("scm") != "git":
                    self.logger.debug(f"Skipping {name}: not a git repository")
                    continue

                clone_url = self._get_clone_url(repo)
                if not clone_url:
                    self.logger.debug(f"Skipping {name}: no HTTPS clone URL")
                    continue

                repos.append(
                    Repository(
                        name=name,
                        clone_url=clone_url,
                        is_private=repo.get("is_private"),
                    )
                )

            url = data.get("next")

        return repos

    def _get_clone_url(self, repo: Dict[str, Any]) -> Optional[str]:
        for link in repo.get("links", {}).get("clone", []):
            if link.get("name") == "https" and link.get("href"):
                # Links embed the account name, e.g. https://owner@bitbucket.org/...
                return re.sub(r"^https://[^@/]+@", "https://", link["href"])
        return None
