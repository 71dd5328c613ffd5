"""
Source identification: map a location string onto a hosting provider

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
from dataclasses import dataclass, field
from typing import List, Optional, Pattern, Type

from .base import Platform, RepositoryManager, Source
from .bitbucket_manager import BitbucketManager
from .exceptions import ConfigurationError
from .gist_manager import GitHubGistsManager
from .github_manager import GitHubManager
from .gitlab_manager import GitLabManager


def build_grammars(host: str, allow_repository: bool = True) -> List[Pattern]:
    """
    Build the three location grammars for a provider host pattern.

    In order: HTTP(S) URL (scheme and www. optional), SSH form
    ([git@]host:owner[/repo]) and bare user@host form ([user@]host[/|:repo]).
    Each captures "owner" and, if allowed, an optional "repository" with any
    trailing ".git" or "/" removed.
    """
    if allow_repository:
        repo = r"(?:/(?P<repository>[^/]+?))?(?:\.git)?"
        basic_repo = r"(?:[/:](?P<repository>[^/]+?))?(?:\.git)?"
    else:
        repo = basic_repo = ""

    return [
        re.compile(rf"^(?:https?://)?(?:www\.)?{host}/(?P<owner>[^/:@]+?){repo}/?$"),
        re.compile(rf"^(?:git@)?{host}:(?P<owner>[^/.:@]+){repo}/?$"),
        re.compile(rf"^(?P<owner>[^@/:]+)@{host}{basic_repo}/?$"),
    ]


@dataclass
class Provider:
    platform: Platform
    host: str
    manager_class: Type[RepositoryManager]
    allow_repository: bool = True
    grammars: List[Pattern] = field(init=False, repr=False)

    def __post_init__(self):
        self.grammars = build_grammars(self.host, self.allow_repository)

    def match(self, location: str) -> Optional[Source]:
        for grammar in self.grammars:
            found = grammar.match(location)
            if found:
                return Source(
                    platform=self.platform,
                    owner=found.group("owner"),
                    repository=found.groupdict().get("repository"),
                )
        return None


# Tried in this order; the first provider whose grammar matches wins
PROVIDERS = [
    Provider(
        Platform.GITHUB_GISTS,
        r"gists?\.github(?:\.com)?",
        GitHubGistsManager,
        allow_repository=False,
    ),
    Provider(Platform.GITHUB, r"github(?:\.com)?", GitHubManager),
    Provider(Platform.BITBUCKET, r"bitbucket(?:\.org)?", BitbucketManager),
    Provider(Platform.GITLAB, r"gitlab(?:\.com|\.org)?", GitLabManager),
]


def identify(location: str) -> Optional[Source]:
    """Return the Source a location string points at, or None if no provider matches"""
    location = location.strip()
    for provider in PROVIDERS:
        source = provider.match(location)
        if source:
            return source
    return None


def create_manager(
    source: Source, token: str, public_only: bool = False
) -> RepositoryManager:
    for provider in PROVIDERS:
        if provider.platform == source.platform:
            return provider.manager_class(source, token, public_only=public_only)
    raise ConfigurationError(f"No provider registered for {source.platform.value}")
