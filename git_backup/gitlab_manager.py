"""
GitLab repository manager

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

from typing import List
from urllib.parse import quote

import gitlab
import requests
from gitlab import exceptions as gitlab_exceptions

from .base import (
    REQUEST_TIMEOUT,
    Platform,
    Repository,
    RepositoryManager,
    Source,
    require_field,
)
from .exceptions import (
    MalformedResponseError,
    ProviderAuthError,
    ProviderConnectionError,
    ProviderRateLimitError,
    ProviderResponseError,
)

PAGE_SIZE = 100


class GitLabManager(RepositoryManager):
    """
    Lists a user's own GitLab projects with a single request.

    Only the first page (up to PAGE_SIZE projects) is read. A full page is
    logged as a warning since later projects would be missing from the backup.
    """

    platform = Platform.GITLAB
    clone_host = "gitlab.com"
    auth_hint = (
        "Create a personal access token with the 'read_api' and "
        "'read_repository' scopes at https://gitlab.com/-/user_settings/personal_access_tokens"
    )

    def __init__(
        self,
        source: Source,
        token: str,
        public_only: bool = False,
        url: str = "https://gitlab.com",
    ):
        super().__init__(source, token, public_only)
        self.url = url
        self.client = gitlab.Gitlab(url, private_token=token, timeout=REQUEST_TIMEOUT)

    def list_repositories(self) -> List[Repository]:
        query = {"owned": True, "simple": True, "per_page": PAGE_SIZE}
        if self.public_only:
            query["visibility"] = "public"

        self.logger.info(
            f"[CONFIG] Fetching GitLab projects owned by {self.source.owner}"
        )
        try:
            projects = self.client.http_list(
                f"/users/{quote(self.source.owner, safe='')}/projects",
                query_data=query,
                get_all=False,
                obey_rate_limit=False,
            )
        except gitlab_exceptions.GitlabAuthenticationError as e:
            raise ProviderAuthError(
                self.provider_name,
                "Not authorized: is the access token that you provided for GitLab valid?",
                hint=self.auth_hint,
            ) from e
        except gitlab_exceptions.GitlabParsingError as e:
            raise MalformedResponseError(
                self.provider_name, "Invalid JSON response from GitLab"
            ) from e
        except gitlab_exceptions.GitlabHttpError as e:
            if e.response_code == 429:
                raise ProviderRateLimitError(
                    self.provider_name, "Rate limit exceeded (code 429)"
                ) from e
            raise ProviderResponseError(
                self.provider_name,
                f"Error talking to GitLab: {e.error_message} (code {e.response_code})",
                status_code=e.response_code,
            ) from e
        except requests.RequestException as e:
            raise ProviderConnectionError(
                self.provider_name, f"There was a problem talking to GitLab: {e}"
            ) from e

        if not isinstance(projects, list):
            raise MalformedResponseError(
                self.provider_name, "Expected a list of projects"
            )
        if len(projects) >= PAGE_SIZE:
            self.logger.warning(
                f"[WARN] GitLab returned a full page of {len(projects)} projects; "
                "only the first page is backed up"
            )

        repos = []
        for project in projects:
            name = require_field(self.provider_name, project, "path")
            url = project.get("http_url_to_repo") or ""
            if not url.startswith("https://"):
                self.logger.debug(f"Skipping {name}: no HTTPS clone URL")
                continue

            visibility = project.get("visibility")
            repos.append(
                Repository(
                    name=name,
                    clone_url=url,
                    is_private=visibility != "public" if visibility else None,
                )
            )

        return repos
