"""
Exception hierarchy for git-backup

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

from typing import Optional


class BackupError(Exception):
    """Base error for everything git-backup raises on purpose."""


class ConfigurationError(BackupError):
    """Unrecognised source, missing credential or unusable git installation."""


class ProviderError(BackupError):
    """Enumerating repositories from a hosting provider failed."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class ProviderConnectionError(ProviderError):
    """Network, DNS or timeout failure talking to the provider."""


class ProviderRateLimitError(ProviderConnectionError):
    """The provider refused the request because a quota was exhausted."""

    def __init__(self, provider: str, message: str, reset_at: Optional[str] = None):
        if reset_at:
            message = f"{message} (limit resets at {reset_at})"
        super().__init__(provider, message)
        self.reset_at = reset_at


class ProviderAuthError(ProviderError):
    """The provider rejected the access token."""

    def __init__(self, provider: str, message: str, hint: Optional[str] = None):
        if hint:
            message = f"{message}. {hint}"
        super().__init__(provider, message)
        self.hint = hint


class ProviderResponseError(ProviderError):
    """The provider answered with a non-success status or a GraphQL error."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        super().__init__(provider, message)
        self.status_code = status_code


class MalformedResponseError(ProviderError):
    """The response body was not valid JSON or lacked a required field."""


class SyncError(BackupError):
    """Cloning or fetching a single repository failed."""

    def __init__(self, repository: str, message: str, stderr: Optional[str] = None):
        super().__init__(f"Could not sync '{repository}': {message}")
        self.repository = repository
        self.stderr = stderr or ""


class PruneError(BackupError):
    """Removing a stale mirror folder failed."""

    def __init__(self, folder: str, message: str):
        super().__init__(f"Could not prune '{folder}': {message}")
        self.folder = folder
