"""
Local bare mirror synchronisation

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

import os
import re
import shutil
import subprocess
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from loguru import logger

from .base import Credential
from .exceptions import ConfigurationError, PruneError, SyncError

MIN_GIT_VERSION = (2, 17, 0)

USERNAME_ENV = "GIT_BACKUP_USERNAME"
PASSWORD_ENV = "GIT_BACKUP_PASSWORD"

# Runs through the shell when git hits an HTTP auth challenge. Only answers
# "get"; "store" and "erase" are ignored so nothing is ever written anywhere.
CREDENTIAL_HELPER = (
    '!f() { test "$1" = get || return 0; '
    f'echo "username=${{{USERNAME_ENV}}}"; '
    f'echo "password=${{{PASSWORD_ENV}}}"; }}; f'
)

FETCH_ARGS = ["fetch", "--prune", "--prune-tags", "origin", "+refs/*:refs/*"]


def git_command(args: List[str]) -> List[str]:
    """Prefix git arguments with the per-invocation credential helper"""
    # The empty helper clears any helpers inherited from the user's config
    return [
        "git",
        "-c",
        "credential.helper=",
        "-c",
        f"credential.helper={CREDENTIAL_HELPER}",
        *args,
    ]


def git_env(credential: Credential) -> Dict[str, str]:
    """Environment for one git process, carrying the credential for the helper"""
    env = dict(os.environ)
    env["GIT_TERMINAL_PROMPT"] = "0"
    env[USERNAME_ENV] = credential.username
    env[PASSWORD_ENV] = credential.secret
    return env


def git_version() -> Tuple[int, int, int]:
    """Return the installed git version as (major, minor, patch)"""
    try:
        result = subprocess.run(
            ["git", "version"],
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        raise ConfigurationError("Git does not appear to be installed") from e

    match = re.search(r"(\d+)\.(\d+)(?:\.(\d+))?", result.stdout)
    if result.returncode != 0 or not match:
        raise ConfigurationError(
            f"Cannot parse git version from '{result.stdout.strip()}'"
        )
    major, minor, patch = match.groups()
    return int(major), int(minor), int(patch or 0)


def check_git_version(minimum: Tuple[int, int, int] = MIN_GIT_VERSION):
    version = git_version()
    if version < minimum:
        raise ConfigurationError(
            f"Your version of git ({'.'.join(map(str, version))}) appears to be too old. "
            f"This command requires at least {'.'.join(map(str, minimum))}"
        )
    logger.debug(f"[CONFIG] git {'.'.join(map(str, version))}")
    return version


def robust_rmtree(path: Path, max_retries: int = 3):
    """
    Remove a directory tree, retrying to ride out files that are briefly busy.

    Raises:
        PruneError: The tree could not be removed after max_retries attempts
    """
    for attempt in range(max_retries):
        try:
            shutil.rmtree(path)
            return
        except FileNotFoundError:
            return
        except OSError as e:
            if attempt < max_retries - 1:
                time.sleep(0.5 * (attempt + 1))
                logger.debug(
                    f"[PRUNE] Retry {attempt + 1}/{max_retries} removing {path}: {e}"
                )
            else:
                raise PruneError(path.name, str(e)) from e


class GitMirror:
    """
    Keeps one bare mirror per repository up to date using the git binary.

    A destination that already holds a HEAD file is treated as an existing
    bare repository and fetched into; anything else is cloned into.
    """

    def __init__(self, timeout: Optional[float] = None):
        """
        Args:
            timeout: Seconds a single git invocation may run before it is
                killed. None leaves it to git and the network stack.
        """
        self.timeout = timeout

    @staticmethod
    def is_mirror(destination: Path) -> bool:
        return (Path(destination) / "HEAD").is_file()

    def plan(self, destination: Union[str, Path]) -> str:
        """Return "fetch" or "clone" for a destination without touching it"""
        return "fetch" if self.is_mirror(Path(destination)) else "clone"

    def sync(
        self,
        repository_url: str,
        credential: Credential,
        destination: Union[str, Path],
    ) -> str:
        """
        Clone or fetch a repository into a bare mirror.

        Returns:
            The action performed: "clone" or "fetch"

        Raises:
            SyncError: The folder could not be created or git failed
        """
        destination = Path(destination)
        try:
            destination.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SyncError(
                destination.name, f"Could not create path '{destination}': {e}"
            ) from e

        action = self.plan(destination)
        if action == "fetch":
            args = FETCH_ARGS
        else:
            args = ["clone", "--mirror", repository_url, "."]

        self._run_git(args, credential, destination)
        return action

    def _run_git(self, args: List[str], credential: Credential, cwd: Path):
        try:
            result = subprocess.run(
                git_command(args),
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                cwd=str(cwd),
                env=git_env(credential),
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise SyncError(
                cwd.name, f"git {args[0]} timed out after {self.timeout}s"
            ) from e
        except OSError as e:
            raise SyncError(cwd.name, f"Could not run git: {e}") from e

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise SyncError(
                cwd.name,
                f"git {args[0]} did not exit successfully (code {result.returncode}):\n{stderr}",
                stderr=stderr,
            )
