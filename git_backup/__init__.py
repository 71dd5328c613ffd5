"""
git-backup - Mirror a user's Git repositories into local bare repositories

Discovers every repository an owner has on GitHub (repositories or gists),
GitLab or Bitbucket and keeps one bare mirror per repository up to date.

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

__version__ = "0.3.0"
__license__ = "Apache-2.0"
__description__ = "Mirror every repository a user owns on GitHub, GitLab or Bitbucket into local bare repositories"

from .base import Credential, Platform, Repository, RepositoryManager, Source
from .bitbucket_manager import BitbucketManager
from .gist_manager import GitHubGistsManager
from .github_manager import GitHubManager
from .gitlab_manager import GitLabManager
from .main import BackupOrchestrator, main
from .mirror import GitMirror
from .source import identify

__all__ = [
    "Credential",
    "Platform",
    "Repository",
    "RepositoryManager",
    "Source",
    "GitHubManager",
    "GitHubGistsManager",
    "GitLabManager",
    "BitbucketManager",
    "BackupOrchestrator",
    "GitMirror",
    "identify",
    "main",
]
