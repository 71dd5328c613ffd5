#!/usr/bin/env python3
"""
Mirror every repository a user owns on GitHub, GitLab or Bitbucket
into local bare repositories
"""

import argparse
import os
import sys
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv
from loguru import logger
from rich_argparse import RichHelpFormatter
from tqdm import tqdm

from .base import MIRROR_SUFFIX, Credential, Repository, Source
from .exceptions import BackupError, ConfigurationError, PruneError, SyncError
from .mirror import GitMirror, check_git_version, robust_rmtree
from .source import create_manager, identify
from .token_discovery import discover_token


def setup_logging(verbose: bool = False, log_file: str = "git-backup.log"):
    """Setup console and file logging with loguru"""

    # Remove default loguru handler
    logger.remove()

    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)
    log_file_path = log_dir / log_file

    log_level = "DEBUG" if verbose else "INFO"

    console_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
        "<level>{level: <8}</level> | "
        "<level>{message}</level>"
    )

    logger.add(sys.stdout, format=console_format, level=log_level, colorize=True)

    file_format = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}"

    logger.add(
        log_file_path,
        format=file_format,
        level=log_level,
        rotation="10 MB",
        retention="30 days",
        compression="zip",
        encoding="utf-8",
    )

    logger.info("[CONFIG] Logging configured")
    logger.debug(f"Log file: {log_file_path}")

    return logger


# Configure basic loguru logging (will be reconfigured in main())
logger.remove()
logger.add(sys.stdout, level="INFO", colorize=True)


@dataclass
class BackupSummary:
    """Outcome of one run, keyed by repository name and mirror folder name"""

    actions: Dict[str, str] = field(default_factory=dict)
    failed: List[str] = field(default_factory=list)
    pruned: List[str] = field(default_factory=list)
    prune_failed: List[str] = field(default_factory=list)

    @property
    def synced(self) -> List[str]:
        return sorted(self.actions)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.prune_failed


class BackupOrchestrator:
    def __init__(
        self,
        location: str,
        destination: Optional[str] = None,
        token: Optional[str] = None,
        prune: bool = False,
        dry_run: bool = False,
        public_only: bool = False,
        max_workers: Optional[int] = None,
        timeout: Optional[float] = None,
        mirror: Optional[GitMirror] = None,
    ):
        self.location = location
        self.destination = Path(destination) if destination else Path.cwd()
        self.token = token
        self.prune = prune
        self.dry_run = dry_run
        self.public_only = public_only
        self.max_workers = max_workers or os.cpu_count() or 1
        self.mirror = mirror or GitMirror(timeout=timeout)

    def resolve_source(self) -> Source:
        source = identify(self.location)
        if source is None:
            raise ConfigurationError(f"Source '{self.location}' not recognised")
        return source

    def resolve_token(self, source: Source) -> str:
        token = self.token or discover_token(source.platform, source.owner)
        if not token:
            raise ConfigurationError(
                "Need either --token or GIT_TOKEN env var to be provided"
            )
        return token

    def run(self) -> BackupSummary:
        """
        Run a full backup pass: list, sync every repository, then prune.

        Raises:
            ConfigurationError: The source is not recognised or no token is available
            ProviderError: The repository list could not be fetched
        """
        source = self.resolve_source()
        target = f"{source.owner}/{source.repository}" if source.repository else source.owner
        logger.info(
            f"[CONFIG] Source: {source.platform.display_name} ({target})"
        )
        if self.dry_run:
            logger.info("[DRY-RUN] Nothing will be written to disk")

        token = self.resolve_token(source)
        manager = create_manager(source, token, public_only=self.public_only)

        logger.info(f"[CONNECT] Listing repositories on {manager.provider_name}...")
        repos = manager.get_repositories()
        credential = Credential(username=manager.username(), secret=token)

        if len(repos) == 1:
            logger.info("[TOTAL] Backing up 1 repository")
        else:
            logger.info(f"[TOTAL] Backing up {len(repos)} repositories")
        for repo in repos:
            if repo.is_private is None:
                logger.debug(f"  - {repo.name}")
            else:
                logger.debug(
                    f"  - {repo.name} ({'private' if repo.is_private else 'public'})"
                )

        summary = BackupSummary()
        self.sync_all(repos, credential, summary)

        if self.prune:
            self.prune_mirrors(repos, summary)

        self.log_summary(repos, summary)
        return summary

    def sync_repository(self, repo: Repository, credential: Credential) -> str:
        """Sync one repository into its mirror folder, returning "clone" or "fetch" """
        destination = self.destination / repo.folder_name

        if self.dry_run:
            action = self.mirror.plan(destination)
            logger.info(f"[DRY-RUN] Would {action} '{repo.name}' into {destination}")
            return action

        logger.info(f"[SYNC] Syncing '{repo.name}'")
        action = self.mirror.sync(repo.clone_url, credential, destination)
        logger.debug(f"[SYNC] {action} of '{repo.name}' finished")
        return action

    def sync_all(
        self, repos: List[Repository], credential: Credential, summary: BackupSummary
    ):
        if not repos:
            return

        logger.info(f"[PROCESS] Syncing with {self.max_workers} workers...")

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {
                executor.submit(self.sync_repository, repo, credential): repo
                for repo in repos
            }

            try:
                with tqdm(
                    total=len(repos),
                    desc="Syncing",
                    unit="repo",
                    disable=self.dry_run,
                ) as pbar:
                    for future in as_completed(futures):
                        repo = futures[future]
                        try:
                            summary.actions[repo.name] = future.result()
                        except SyncError as e:
                            logger.error(f"[ERROR] {e}")
                            summary.failed.append(repo.name)
                        except Exception as e:
                            logger.error(
                                f"[ERROR] Unexpected error syncing '{repo.name}': {type(e).__name__}: {e}"
                            )
                            summary.failed.append(repo.name)
                        pbar.update(1)
                        pbar.set_postfix({"OK": len(summary.actions), "FAIL": len(summary.failed)})
            except KeyboardInterrupt:
                logger.warning("[INTERRUPT] Cancelling syncs that have not started yet...")
                executor.shutdown(wait=False, cancel_futures=True)
                raise

        summary.failed.sort()

    def find_stale_mirrors(self, repos: List[Repository]) -> List[Path]:
        """
        Mirror folders under the destination that no listed repository maps to.

        Only direct child directories ending in the mirror suffix count.
        Entries that can't be inspected or whose names aren't valid UTF-8 are
        skipped, since this tool would never have created them.
        """
        keep = {repo.folder_name for repo in repos}

        try:
            entries = list(os.scandir(self.destination))
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.warning(f"[PRUNE] Could not read {self.destination}: {e}")
            return []

        stale = []
        for entry in entries:
            try:
                if not entry.is_dir(follow_symlinks=False):
                    continue
            except OSError:
                continue

            name = entry.name
            try:
                name.encode("utf-8")
            except UnicodeEncodeError:
                continue

            if not name.endswith(MIRROR_SUFFIX) or name in keep:
                continue
            if not os.access(entry.path, os.R_OK | os.X_OK):
                logger.debug(f"[PRUNE] Skipping unreadable folder {name}")
                continue

            stale.append(Path(entry.path))

        return sorted(stale)

    def prune_mirrors(self, repos: List[Repository], summary: BackupSummary):
        for path in self.find_stale_mirrors(repos):
            if self.dry_run:
                logger.info(f"[DRY-RUN] Would prune {path.name}")
                summary.pruned.append(path.name)
                continue

            logger.info(f"[PRUNE] Pruning {path.name}")
            try:
                robust_rmtree(path)
                summary.pruned.append(path.name)
            except PruneError as e:
                logger.error(f"[ERROR] {e}")
                summary.prune_failed.append(path.name)

    def log_summary(self, repos: List[Repository], summary: BackupSummary):
        logger.info("=" * 60)
        logger.info("[SUMMARY] BACKUP SUMMARY")
        logger.info("=" * 60)
        clones = sum(1 for a in summary.actions.values() if a == "clone")
        fetches = sum(1 for a in summary.actions.values() if a == "fetch")
        verb = "To" if self.dry_run else "Successfully"
        logger.info(f"[SUCCESS] {verb} clone: {clones}, fetch: {fetches}")
        logger.info(f"[FAIL] Failed syncs: {len(summary.failed)}")
        if self.prune:
            logger.info(f"[PRUNE] Pruned folders: {len(summary.pruned)}")
            if summary.prune_failed:
                logger.info(f"[FAIL] Failed prunes: {len(summary.prune_failed)}")
        logger.info(f"[TOTAL] Total repositories: {len(repos)}")

        if summary.ok:
            logger.info("[COMPLETE] Backup completed!")
        else:
            failed = ", ".join(summary.failed + summary.prune_failed)
            logger.warning(f"[WARN] Backup completed with failures: {failed}")


def get_env_default(env_var: str, fallback=None):
    """Get value from environment or .env file"""
    return os.getenv(env_var, fallback)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="git-backup",
        description="[bold blue]git-backup[/bold blue] - Mirror every repository a user owns into local bare repositories",
        epilog="""
[bold green]Examples:[/bold green]
  [dim]# Back up all GitHub repositories of a user into ./backups[/dim]
  [yellow]%(prog)s[/yellow] [cyan]github.com/someone[/cyan] [magenta]./backups[/magenta]

  [dim]# Back up one repository, removing mirrors of deleted ones[/dim]
  [yellow]%(prog)s[/yellow] [cyan]git@github.com:someone/project.git[/cyan] [magenta]./backups[/magenta]

  [dim]# See what a pruning run would do without touching anything[/dim]
  [yellow]%(prog)s[/yellow] [cyan]bitbucket.org/someone[/cyan] [magenta]./backups[/magenta] [cyan]--prune --dry-run[/cyan]

[bold blue]Supported sources:[/bold blue]
  • GitHub repositories (github.com/<owner> or github.com/<owner>/<repo>)
  • GitHub gists (gist.github.com/<owner>)
  • GitLab projects (gitlab.com/<owner> or gitlab.com/<owner>/<repo>)
  • Bitbucket repositories (bitbucket.org/<owner> or bitbucket.org/<owner>/<repo>)
        """,
        formatter_class=RichHelpFormatter,
    )

    parser.add_argument("source", help="URL of the user (or single repository) to back up")
    parser.add_argument(
        "destination",
        nargs="?",
        help="Folder to place the backups in (default: current working directory)",
    )

    ops_group = parser.add_argument_group("Backup Options")
    ops_group.add_argument(
        "--token",
        default=get_env_default("GIT_TOKEN"),
        metavar="TOKEN",
        help="Access token for the source's service (env: GIT_TOKEN)",
    )
    ops_group.add_argument(
        "--prune",
        action="store_true",
        help="Remove folders in the destination that don't correspond to a repository being backed up",
    )
    ops_group.add_argument(
        "--dry-run",
        action="store_true",
        help="Don't actually back anything up; just log what would be done",
    )
    ops_group.add_argument(
        "--public",
        action="store_true",
        help="Only back up public repositories",
    )
    ops_group.add_argument(
        "--fail-on-error",
        action="store_true",
        help="Exit non-zero when any repository fails to sync or prune",
    )

    perf_group = parser.add_argument_group("Performance Options")
    perf_group.add_argument(
        "--workers",
        type=int,
        default=get_env_default("PARALLEL_WORKERS"),
        metavar="N",
        help="Number of parallel syncs (env: PARALLEL_WORKERS, default: CPU count)",
    )
    perf_group.add_argument(
        "--timeout",
        type=float,
        default=get_env_default("GIT_BACKUP_TIMEOUT"),
        metavar="SECONDS",
        help="Kill a single git clone/fetch after this long (env: GIT_BACKUP_TIMEOUT)",
    )

    log_group = parser.add_argument_group("Logging Options")
    log_group.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )
    log_group.add_argument(
        "--log-file",
        default=get_env_default("LOG_FILE", "git-backup.log"),
        metavar="FILE",
        help="Log file name (env: LOG_FILE)",
    )

    return parser


def main(argv: Optional[List[str]] = None):
    # Load environment variables first (before parsing args)
    load_dotenv()

    args = build_parser().parse_args(argv)
    setup_logging(verbose=args.verbose, log_file=args.log_file)

    try:
        check_git_version()
        orchestrator = BackupOrchestrator(
            location=args.source,
            destination=args.destination,
            token=args.token,
            prune=args.prune,
            dry_run=args.dry_run,
            public_only=args.public,
            max_workers=args.workers,
            timeout=args.timeout,
        )
        summary = orchestrator.run()
    except BackupError as e:
        logger.error(f"[ERROR] {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.warning("[INTERRUPT] Backup interrupted; partial mirrors are fetched again next run")
        sys.exit(130)

    if args.fail_on_error and not summary.ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
