"""
Base classes for repository management

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

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

import requests
from loguru import logger

from .exceptions import (
    MalformedResponseError,
    ProviderAuthError,
    ProviderConnectionError,
    ProviderRateLimitError,
    ProviderResponseError,
)

REQUEST_TIMEOUT = 30
MIRROR_SUFFIX = ".git"


class Platform(Enum):
    GITHUB = "github"
    GITHUB_GISTS = "github-gists"
    GITLAB = "gitlab"
    BITBUCKET = "bitbucket"

    @property
    def display_name(self) -> str:
        return {
            Platform.GITHUB: "GitHub",
            Platform.GITHUB_GISTS: "GitHub (Gists)",
            Platform.GITLAB: "GitLab",
            Platform.BITBUCKET: "Bitbucket",
        }[self]


@dataclass(frozen=True)
class Repository:
    name: str
    clone_url: str
    is_private: Optional[bool] = None

    @property
    def folder_name(self) -> str:
        return f"{self.name}{MIRROR_SUFFIX}"


@dataclass(frozen=True)
class Source:
    platform: Platform
    owner: str
    repository: Optional[str] = None


@dataclass(frozen=True)
class Credential:
    username: str
    secret: str = field(repr=False)


class RepositoryManager(ABC):
    """
    Lists the repositories a Source points at.

    Each provider implements list_repositories() with its own pagination
    idiom. get_repositories() is what callers use: it answers single
    repository sources without touching the provider's list API.
    """

    platform: Platform
    clone_host: str
    auth_hint: str = ""

    def __init__(self, source: Source, token: str, public_only: bool = False):
        self.source = source
        self.token = token
        self.public_only = public_only
        self.session = requests.Session()
        self.logger = logger.bind(manager=self.__class__.__name__)

    @property
    def provider_name(self) -> str:
        return self.platform.display_name

    def username(self) -> str:
        return self.source.owner

    def get_repositories(self) -> List[Repository]:
        if self.source.repository:
            self.logger.info(
                f"[CONFIG] Single repository requested: {self.source.owner}/{self.source.repository}"
            )
            return [self.single_repository(self.source.repository)]
        return self.list_repositories()

    def single_repository(self, name: str) -> Repository:
        return Repository(
            name=name,
            clone_url=f"https://{self.clone_host}/{self.source.owner}/{name}{MIRROR_SUFFIX}",
        )

    @abstractmethod
    def list_repositories(self) -> List[Repository]:
        pass

    def _request_json(self, method: str, url: str, **kwargs) -> Any:
        """Send an HTTP request and decode the JSON body, mapping failures to ProviderError"""
        try:
            response = self.session.request(
                method, url, timeout=REQUEST_TIMEOUT, **kwargs
            )
        except requests.RequestException as e:
            raise ProviderConnectionError(
                self.provider_name,
                f"There was a problem talking to {self.provider_name}: {e}",
            ) from e

        self._check_response(response)

        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(
                self.provider_name,
                f"Invalid JSON response from {self.provider_name}",
            ) from e

    def _check_response(self, response: requests.Response):
        status = response.status_code
        if 200 <= status < 300:
            return

        if status == 401:
            raise ProviderAuthError(
                self.provider_name,
                f"Not authorized: is the access token that you provided for {self.provider_name} valid?",
                hint=self.auth_hint,
            )

        headers = response.headers or {}
        if status == 429 or (
            status == 403 and headers.get("X-RateLimit-Remaining") == "0"
        ):
            raise ProviderRateLimitError(
                self.provider_name,
                f"Rate limit exceeded (code {status})",
                reset_at=rate_limit_reset(headers),
            )

        self.logger.debug(f"Response: {(response.text or '')[:500]}")
        raise ProviderResponseError(
            self.provider_name,
            f"Error talking to {self.provider_name}: {response.reason or 'Unknown'} (code {status})",
            status_code=status,
        )


def rate_limit_reset(headers: Dict[str, str]) -> Optional[str]:
    """Describe when a rate limit lifts, from X-RateLimit-Reset or Retry-After"""
    reset = headers.get("X-RateLimit-Reset")
    if reset and reset.isdigit():
        return datetime.fromtimestamp(int(reset), tz=timezone.utc).isoformat()
    retry_after = headers.get("Retry-After")
    if retry_after:
        return f"{retry_after}s from now" if retry_after.isdigit() else retry_after
    return None


def require_field(provider: str, item: Dict[str, Any], key: str) -> Any:
    """Return item[key], raising MalformedResponseError when it's missing or empty"""
    value = item.get(key) if isinstance(item, dict) else None
    if value in (None, ""):
        raise MalformedResponseError(
            provider, f"Response is missing required field '{key}'"
        )
    return value
