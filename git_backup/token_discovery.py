"""
Auto-discovery of access tokens from standard locations

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

import netrc
import os
import subprocess
from pathlib import Path
from typing import Optional

import yaml
from loguru import logger

from .base import Platform


def get_github_token() -> Optional[str]:
    """
    Discover GitHub token from standard locations.

    Priority:
    1. GITHUB_TOKEN environment variable
    2. GH_TOKEN environment variable
    3. gh CLI auth token (via `gh auth token` command)

    Returns:
        GitHub token or None if not found
    """
    token = os.getenv("GITHUB_TOKEN")
    if token:
        logger.debug("[TOKEN] GitHub token found in GITHUB_TOKEN env var")
        return token

    token = os.getenv("GH_TOKEN")
    if token:
        logger.debug("[TOKEN] GitHub token found in GH_TOKEN env var")
        return token

    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            timeout=5,
        )
        if result.returncode == 0 and result.stdout.strip():
            logger.info("[TOKEN] GitHub token discovered from gh CLI")
            return result.stdout.strip()
    except (subprocess.TimeoutExpired, OSError):
        pass

    return None


def get_gitlab_token(hostname: str = "gitlab.com") -> Optional[str]:
    """
    Discover GitLab token from standard locations.

    Priority:
    1. GITLAB_TOKEN environment variable
    2. glab CLI config (glab-cli/config.yml)

    Args:
        hostname: GitLab host to look up in the glab config

    Returns:
        GitLab token or None if not found
    """
    token = os.getenv("GITLAB_TOKEN")
    if token:
        logger.debug("[TOKEN] GitLab token found in GITLAB_TOKEN env var")
        return token

    config_paths = [
        Path.home() / ".config" / "glab-cli" / "config.yml",
        Path(os.getenv("XDG_CONFIG_HOME", Path.home() / ".config"))
        / "glab-cli"
        / "config.yml",
    ]

    for config_path in config_paths:
        if not config_path.exists():
            continue
        try:
            with open(config_path) as f:
                config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.debug(f"[TOKEN] Failed to read glab config: {e}")
            continue

        if isinstance(config, dict) and isinstance(config.get("hosts"), dict):
            token = (config["hosts"].get(hostname) or {}).get("token")
            if token:
                logger.info(f"[TOKEN] GitLab token discovered from {config_path}")
                return token

    return None


def get_bitbucket_password(username: Optional[str] = None) -> Optional[str]:
    """
    Discover a Bitbucket app password from standard locations.

    Priority:
    1. BITBUCKET_APP_PASSWORD environment variable
    2. BITBUCKET_TOKEN environment variable
    3. ~/.netrc entry for bitbucket.org (login must match username, if given)

    Returns:
        App password or None if not found
    """
    for var in ("BITBUCKET_APP_PASSWORD", "BITBUCKET_TOKEN"):
        token = os.getenv(var)
        if token:
            logger.debug(f"[TOKEN] Bitbucket password found in {var} env var")
            return token

    netrc_path = Path.home() / ".netrc"
    if netrc_path.exists():
        try:
            auth = netrc.netrc(str(netrc_path))
        except (OSError, netrc.NetrcParseError) as e:
            logger.debug(f"[TOKEN] Failed to read .netrc: {e}")
            return None

        for host in ["bitbucket.org", "api.bitbucket.org"]:
            creds = auth.authenticators(host)
            if creds:
                login, _, password = creds
                if username and login != username:
                    continue
                logger.info("[TOKEN] Bitbucket credentials discovered from .netrc")
                return password

    return None


def discover_token(platform: Platform, owner: Optional[str] = None) -> Optional[str]:
    """Look up a token for a platform in its usual places"""
    if platform in (Platform.GITHUB, Platform.GITHUB_GISTS):
        return get_github_token()
    if platform == Platform.GITLAB:
        return get_gitlab_token()
    if platform == Platform.BITBUCKET:
        return get_bitbucket_password(owner)
    return None
