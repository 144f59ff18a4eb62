#!/usr/bin/env python3
# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
Repository Reconciliation Tool - Audit and Repair Local GitHub Clones

This script inspects collections of local git repositories and reconciles them
against their canonical GitHub identities:
- Audit reports (CSV/JSON) of naming, remote protocol and sync status
- Directory renames so folders match canonical repository names
- Origin remote repair when GitHub reports a renamed/transferred repository
- Remote protocol conversion between git, ssh and https transports

Architecture:
- Single script with modular internal structure
- Configuration-driven (YAML defaults + CLI overrides)
- Narrow synchronous collaborators (process runner, GitHub resolver,
  filesystem, prompter) so tests can swap in fakes
- Uniform plan/confirm/apply workflow for every mutation
- Deterministic, sequential processing; no caching between runs
"""

import argparse
import copy
import csv
import hashlib
import json
import logging
import os
import stat
import subprocess
import sys
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePath
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set, TextIO, Tuple

try:
    import yaml  # type: ignore
except ImportError:
    print(
        "ERROR: PyYAML is required. Install with: pip install PyYAML", file=sys.stderr
    )
    sys.exit(1)

try:
    import httpx  # type: ignore
except ImportError:
    print("ERROR: httpx is required. Install with: pip install httpx", file=sys.stderr)
    sys.exit(1)

from repo_paths import normalize_absolute, sanitize_repository_paths

# =============================================================================
# CONSTANTS
# =============================================================================

SCRIPT_VERSION = "1.0.0"
LOGGER_NAME = "repo_reconcile"

GITHUB_HOST = "github.com"
GITHUB_API_URL = "https://api.github.com"
GIT_PROTOCOL_PREFIX = "git@github.com:"
SSH_PROTOCOL_PREFIX = "ssh://git@github.com/"
HTTPS_PROTOCOL_PREFIX = "https://github.com/"
GIT_SUFFIX = ".git"
OWNER_REPOSITORY_SEPARATOR = "/"

ORIGIN_REMOTE = "origin"
GIT_METADATA_DIRECTORY = ".git"
REFS_HEADS_PREFIX = "refs/heads/"
HEAD_REFERENCE = "HEAD"
DETACHED_BRANCH = "DETACHED"

DEFAULT_COMMAND_TIMEOUT = 300.0
PARENT_DIRECTORY_MODE = 0o755
CONFIG_PATH_ENV = "REPO_RECONCILE_CONFIG"
DEFAULT_CONFIG_PATH = Path("~/.config/repo-reconcile/config.yaml")

AUDIT_CSV_HEADER = [
    "final_github_repo",
    "folder_name",
    "name_matches",
    "remote_default_branch",
    "local_branch",
    "in_sync",
    "remote_protocol",
    "origin_matches_canonical",
]

DEFAULT_CONFIGURATION: Dict[str, Any] = {
    "logging": {"level": "INFO", "include_timestamps": True},
    "github": {
        "resolver": "api",
        "api_url": GITHUB_API_URL,
        "token_env": "GITHUB_TOKEN",
        "timeout": 30.0,
    },
    "commands": {"timeout": DEFAULT_COMMAND_TIMEOUT},
    "audit": {"roots": [], "include_all": False, "depth": "full"},
    "rename": {
        "roots": [],
        "dry_run": False,
        "assume_yes": False,
        "require_clean": False,
        "include_owner": False,
    },
    "remotes": {"roots": [], "dry_run": False, "assume_yes": False, "owner": ""},
    "protocol": {
        "roots": [],
        "dry_run": False,
        "assume_yes": False,
        "from": "",
        "to": "",
    },
}

# =============================================================================
# ERRORS
# =============================================================================


class ReconcileError(Exception):
    """Base class for recoverable reconciliation errors."""


class ConfigurationError(ReconcileError):
    """Raised for invalid configuration, flags or repository roots."""


class UnsupportedProtocolError(ReconcileError):
    """Raised when a remote URL cannot be built for the requested protocol."""


class EmptyIdentityError(ReconcileError):
    """Raised when an owner/repository identity is blank."""


class UnknownRemoteFormatError(ReconcileError):
    """Raised when a remote URL does not start with a known GitHub prefix."""


class MalformedIdentityError(ReconcileError):
    """Raised when a remote path is not exactly ``owner/repository``."""


class NotGitHubRemoteError(ReconcileError):
    """Raised when a repository's origin does not point at GitHub."""


class MetadataResolutionError(ReconcileError):
    """Raised when canonical repository metadata cannot be resolved."""


class CommandExecutionError(ReconcileError):
    """Raised when an external command exits non-zero or cannot start."""

    def __init__(
        self, args: Sequence[str], cwd: Optional[str], exit_code: int, stderr: str
    ) -> None:
        self.command_args = list(args)
        self.cwd = cwd
        self.exit_code = exit_code
        self.stderr = stderr
        location = f" in {cwd}" if cwd else ""
        super().__init__(f"{' '.join(self.command_args)} failed{location}: {stderr}")


class CommandCancelledError(ReconcileError):
    """Raised when the execution context is cancelled or times out."""


# =============================================================================
# API STATISTICS TRACKING
# =============================================================================


class APIStatistics:
    """Track statistics for GitHub metadata lookups (REST API and gh CLI)."""

    def __init__(self):
        """Initialize statistics tracker."""
        self.stats = {
            "github_api": {"success": 0, "errors": {}},
            "github_cli": {"success": 0, "errors": {}},
        }

    def record_success(self, api_type: str) -> None:
        """Record a successful lookup."""
        if api_type in self.stats:
            self.stats[api_type]["success"] += 1

    def record_error(self, api_type: str, status_code: int) -> None:
        """Record a lookup error by status code."""
        if api_type in self.stats:
            errors = self.stats[api_type]["errors"]
            errors[status_code] = errors.get(status_code, 0) + 1

    def record_exception(self, api_type: str, error_type: str = "exception") -> None:
        """Record a lookup exception (transport failure, bad payload, ...)."""
        if api_type in self.stats:
            errors = self.stats[api_type]["errors"]
            errors[error_type] = errors.get(error_type, 0) + 1

    def get_total_calls(self, api_type: str) -> int:
        if api_type not in self.stats:
            return 0
        success = self.stats[api_type]["success"]
        errors = sum(self.stats[api_type]["errors"].values())
        return success + errors

    def get_total_errors(self, api_type: str) -> int:
        if api_type not in self.stats:
            return 0
        return sum(self.stats[api_type]["errors"].values())

    def has_errors(self) -> bool:
        return any(self.get_total_errors(api_type) > 0 for api_type in self.stats)

    def format_console_output(self) -> str:
        """Format statistics for console output."""
        titles = {"github_api": "GitHub REST API", "github_cli": "GitHub CLI"}
        lines = []
        for api_type, title in titles.items():
            if self.get_total_calls(api_type) == 0:
                continue
            lines.append(f"\n📊 {title} Statistics:")
            lines.append(f"   ✅ Successful lookups: {self.stats[api_type]['success']}")
            total_errors = self.get_total_errors(api_type)
            if total_errors > 0:
                lines.append(f"   ❌ Failed lookups: {total_errors}")
                for code, count in sorted(
                    self.stats[api_type]["errors"].items(), key=lambda x: str(x[0])
                ):
                    lines.append(f"      • Error {code}: {count}")
        return "\n".join(lines) if lines else ""

    def write_to_step_summary(self) -> None:
        """Append statistics to the GitHub Step Summary when running in Actions."""
        step_summary_file = os.environ.get("GITHUB_STEP_SUMMARY")
        if not step_summary_file:
            return

        lines = ["\n## 📊 GitHub Metadata Lookups\n"]
        for api_type in self.stats:
            total = self.get_total_calls(api_type)
            if total == 0:
                continue
            lines.append(
                f"- **{api_type}:** {self.stats[api_type]['success']} succeeded, "
                f"{self.get_total_errors(api_type)} failed"
            )
        if len(lines) == 1:
            return

        try:
            with open(step_summary_file, "a", encoding="utf-8") as f:
                f.write("\n".join(lines) + "\n")
        except OSError as e:
            logging.getLogger(LOGGER_NAME).debug(
                f"Could not write to GITHUB_STEP_SUMMARY: {e}"
            )


# Global statistics instance
api_stats = APIStatistics()


# =============================================================================
# LOGGING SETUP
# =============================================================================


def setup_logging(
    level: str = "INFO", include_timestamps: bool = True
) -> logging.Logger:
    """Configure logging with structured format."""
    log_format = "[%(levelname)s]"
    if include_timestamps:
        log_format = "[%(asctime)s] " + log_format
    log_format += " %(message)s"

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=log_format,
        datefmt="%Y-%m-%d %H:%M:%S UTC" if include_timestamps else None,
        stream=sys.stderr,
    )

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper()))
    return logger


# =============================================================================
# CONFIGURATION LOADING AND DEEP MERGE
# =============================================================================


def deep_merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge two dictionaries, with override taking precedence."""
    result = copy.deepcopy(base)

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge_dicts(result[key], value)
        else:
            result[key] = copy.deepcopy(value)

    return result


def load_yaml_config(config_path: Path) -> Dict[str, Any]:
    """Load and parse a YAML configuration file; a missing file is empty."""
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
    except FileNotFoundError:
        return {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}")

    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Configuration root in {config_path} must be a mapping")
    return loaded


def resolve_config_path(explicit: Optional[Path]) -> Path:
    """Pick the configuration file: --config, then $REPO_RECONCILE_CONFIG, then default."""
    if explicit is not None:
        return Path(explicit).expanduser()
    from_env = os.environ.get(CONFIG_PATH_ENV, "").strip()
    if from_env:
        return Path(from_env).expanduser()
    return DEFAULT_CONFIG_PATH.expanduser()


def load_configuration(config_path: Optional[Path] = None) -> dict[str, Any]:
    """
    Load configuration as built-in defaults deep-merged with the YAML file.

    Args:
        config_path: Explicit configuration file (optional)

    Returns:
        Merged configuration dictionary with sanitized root lists
    """
    resolved_path = resolve_config_path(config_path)
    user_config = load_yaml_config(resolved_path)
    merged_config = deep_merge_dicts(DEFAULT_CONFIGURATION, user_config)

    for section in ("audit", "rename", "remotes", "protocol"):
        section_config = merged_config.get(section) or {}
        roots = section_config.get("roots") or []
        if isinstance(roots, str):
            roots = [roots]
        section_config["roots"] = sanitize_repository_paths(roots)
        merged_config[section] = section_config

    merged_config["config_path"] = str(resolved_path)
    return merged_config


def compute_config_digest(config: Dict[str, Any]) -> str:
    """Compute SHA256 digest of configuration for reproducibility tracking."""
    config_json = json.dumps(config, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(config_json.encode("utf-8")).hexdigest()


# =============================================================================
# DOMAIN TYPES
# =============================================================================


class RemoteProtocol(str, Enum):
    """Transport protocol of a git remote URL."""

    GIT = "git"
    SSH = "ssh"
    HTTPS = "https"
    OTHER = "other"


class TernaryValue(str, Enum):
    """yes/no/not-applicable values used in reports."""

    YES = "yes"
    NO = "no"
    NOT_APPLICABLE = "n/a"


class InspectionDepth(str, Enum):
    FULL = "full"
    MINIMAL = "minimal"


# Ordered: classification is first-match git -> ssh -> https
PROTOCOL_URL_PREFIXES: Tuple[Tuple[RemoteProtocol, str], ...] = (
    (RemoteProtocol.GIT, GIT_PROTOCOL_PREFIX),
    (RemoteProtocol.SSH, SSH_PROTOCOL_PREFIX),
    (RemoteProtocol.HTTPS, HTTPS_PROTOCOL_PREFIX),
)

FETCHABLE_PROTOCOLS = frozenset({RemoteProtocol.GIT, RemoteProtocol.SSH})


@dataclass(frozen=True)
class RepositoryRecord:
    """Inspection result for one repository; never mutated after creation."""

    path: str
    folder_name: str
    origin_url: str = ""
    origin_owner_repository: str = ""
    canonical_owner_repository: str = ""
    final_owner_repository: str = ""
    desired_folder_name: str = ""
    remote_protocol: RemoteProtocol = RemoteProtocol.OTHER
    remote_default_branch: str = ""
    local_branch: str = ""
    in_sync_status: TernaryValue = TernaryValue.NOT_APPLICABLE
    origin_matches_canonical: TernaryValue = TernaryValue.NOT_APPLICABLE
    is_git_repository: bool = True


@dataclass(frozen=True)
class RepositoryMetadata:
    name_with_owner: str
    default_branch: str = ""
    description: str = ""


@dataclass(frozen=True)
class ConfirmationResult:
    """Answer to a confirmation prompt; apply_to_all implies confirmed."""

    confirmed: bool = False
    apply_to_all: bool = False

    def __post_init__(self) -> None:
        if self.apply_to_all and not self.confirmed:
            raise ValueError("apply_to_all requires confirmed")


# =============================================================================
# PROTOCOL CLASSIFICATION AND OWNER/REPOSITORY CANONICALIZATION
# =============================================================================


def classify_remote_protocol(remote_url: str) -> RemoteProtocol:
    """Map a remote URL to its protocol by literal, case-sensitive prefix."""
    for protocol, prefix in PROTOCOL_URL_PREFIXES:
        if remote_url.startswith(prefix):
            return protocol
    return RemoteProtocol.OTHER


def parse_protocol_value(value: str) -> RemoteProtocol:
    """Parse a --from/--to protocol name (git, ssh, https)."""
    normalized = (value or "").strip().lower()
    for protocol, _ in PROTOCOL_URL_PREFIXES:
        if protocol.value == normalized:
            return protocol
    raise ConfigurationError(f"unsupported protocol value: {value}")


def build_remote_url(protocol: RemoteProtocol, owner_repository: str) -> str:
    """Build the canonical GitHub remote URL for a protocol and owner/repo."""
    prefixes = dict(PROTOCOL_URL_PREFIXES)
    if protocol not in prefixes:
        raise UnsupportedProtocolError(f"unknown protocol {getattr(protocol, 'value', protocol)}")

    trimmed = (owner_repository or "").strip()
    if not trimmed:
        raise EmptyIdentityError("owner repository not detected")

    return f"{prefixes[protocol]}{trimmed}{GIT_SUFFIX}"


def canonicalize_owner_repository(remote_url: str) -> str:
    """
    Extract ``owner/repository`` from a GitHub remote URL.

    The transport prefix and a trailing ``.git`` are stripped; what remains
    must be exactly two non-empty path segments.
    """
    trimmed = (remote_url or "").strip()
    for _, prefix in PROTOCOL_URL_PREFIXES:
        if trimmed.startswith(prefix):
            trimmed = trimmed[len(prefix):]
            break
    else:
        raise UnknownRemoteFormatError(f"unrecognized remote format: {remote_url!r}")

    if trimmed.endswith(GIT_SUFFIX):
        trimmed = trimmed[: -len(GIT_SUFFIX)]

    segments = trimmed.split(OWNER_REPOSITORY_SEPARATOR)
    if len(segments) != 2 or not segments[0] or not segments[1]:
        raise MalformedIdentityError(f"expected owner/repository, got {trimmed!r}")

    return f"{segments[0]}/{segments[1]}"


def owner_repositories_equal(first: str, second: str) -> bool:
    """GitHub treats owner and repository names case-insensitively."""
    return first.strip().casefold() == second.strip().casefold()


def split_owner_repository(owner_repository: str) -> Optional[Tuple[str, str]]:
    """Split ``owner/repo`` into two trimmed, non-empty segments, or None."""
    trimmed = (owner_repository or "").strip()
    if not trimmed:
        return None
    segments = trimmed.split(OWNER_REPOSITORY_SEPARATOR)
    if len(segments) != 2:
        return None
    owner, repository = segments[0].strip(), segments[1].strip()
    if not owner or not repository:
        return None
    return owner, repository


def repository_segment(owner_repository: str) -> str:
    """Return the last segment of ``owner/repo`` (the desired folder name)."""
    if not owner_repository:
        return ""
    return owner_repository.split(OWNER_REPOSITORY_SEPARATOR)[-1]


def matches_canonical(origin: str, canonical: str) -> TernaryValue:
    if not origin.strip() or not canonical.strip():
        return TernaryValue.NOT_APPLICABLE
    if owner_repositories_equal(origin, canonical):
        return TernaryValue.YES
    return TernaryValue.NO


def sanitize_branch_name(branch: str) -> str:
    trimmed = branch.strip()
    if trimmed == HEAD_REFERENCE:
        return DETACHED_BRANCH
    return trimmed


# =============================================================================
# DIRECTORY PLANNING
# =============================================================================


@dataclass(frozen=True)
class DirectoryPlan:
    """Desired on-disk folder layout for a repository."""

    folder_name: str
    owner_segment: str = ""
    repository_segment: str = ""
    include_owner: bool = False

    def is_noop(self, current_path: str, current_folder_name: str) -> bool:
        """True when the repository already sits at the planned location."""
        target = self.folder_name.strip()
        if not target:
            return True

        if self.include_owner:
            current_parts = PurePath(os.path.normpath(current_path)).parts
            target_parts = PurePath(os.path.normpath(target)).parts
            if len(target_parts) > len(current_parts):
                return False
            return current_parts[-len(target_parts):] == target_parts

        return target == current_folder_name.strip()


def plan_directory(
    include_owner: bool, final_owner_repository: str, default_folder_name: str
) -> DirectoryPlan:
    """
    Compute the desired folder layout for a repository.

    A nested ``owner/repository`` plan is produced only when requested and the
    identity parses cleanly; otherwise the flat plan is the fallback.
    """
    default_name = (default_folder_name or "").strip()
    flat_plan = DirectoryPlan(folder_name=default_name, repository_segment=default_name)

    if not include_owner:
        return flat_plan

    segments = split_owner_repository(final_owner_repository)
    if segments is None:
        return flat_plan

    owner, repository = segments
    return DirectoryPlan(
        folder_name=os.path.join(owner, repository),
        owner_segment=owner,
        repository_segment=repository,
        include_owner=True,
    )


def is_case_only_rename(old_path: str, new_path: str) -> bool:
    return old_path.lower() == new_path.lower() and old_path != new_path


def compute_intermediate_rename_path(old_path: str, timestamp: int) -> str:
    return f"{old_path}.rename.{timestamp}"


# =============================================================================
# PROCESS EXECUTION
# =============================================================================


class ExecutionContext:
    """Cancellation and timeout scope shared by every command and API call."""

    def __init__(self, timeout: Optional[float] = DEFAULT_COMMAND_TIMEOUT) -> None:
        self.timeout = timeout
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise CommandCancelledError("operation cancelled")


@dataclass(frozen=True)
class CommandResult:
    stdout: str
    stderr: str = ""
    exit_code: int = 0


class CommandRunner:
    """Run external commands synchronously, honouring the execution context."""

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        poll_interval: float = 0.1,
        extra_env: Optional[Dict[str, str]] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(LOGGER_NAME)
        self.poll_interval = poll_interval
        self.extra_env = {"GIT_TERMINAL_PROMPT": "0"}
        if extra_env:
            self.extra_env.update(extra_env)

    def run(
        self,
        args: Sequence[str],
        cwd: Optional[str] = None,
        context: Optional[ExecutionContext] = None,
    ) -> CommandResult:
        """Run a command and return its output; raise on non-zero exit."""
        context = context or ExecutionContext()
        context.raise_if_cancelled()
        self.logger.debug(f"Running: {' '.join(args)} (cwd={cwd or os.getcwd()})")

        env = os.environ.copy()
        env.update(self.extra_env)
        try:
            process = subprocess.Popen(
                list(args),
                cwd=cwd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                env=env,
            )
        except OSError as e:
            raise CommandExecutionError(args, cwd, -1, str(e)) from e

        deadline = None
        if context.timeout is not None:
            deadline = time.monotonic() + context.timeout

        try:
            while True:
                try:
                    stdout, stderr = process.communicate(timeout=self.poll_interval)
                    break
                except subprocess.TimeoutExpired:
                    if context.cancelled:
                        self._terminate(process)
                        raise CommandCancelledError(f"{' '.join(args)} cancelled")
                    if deadline is not None and time.monotonic() >= deadline:
                        self._terminate(process)
                        raise CommandCancelledError(
                            f"{' '.join(args)} timed out after {context.timeout}s"
                        )
        except KeyboardInterrupt:
            context.cancel()
            self._terminate(process)
            raise

        result = CommandResult(stdout=stdout or "", stderr=stderr or "", exit_code=process.returncode)
        if result.exit_code != 0:
            raise CommandExecutionError(
                args, cwd, result.exit_code, result.stderr.strip() or result.stdout.strip()
            )
        return result

    @staticmethod
    def _terminate(process: subprocess.Popen) -> None:
        process.kill()
        process.communicate()


class GitExecutor:
    """Thin wrappers around git and gh invocations."""

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        git_binary: str = "git",
        github_cli_binary: str = "gh",
    ) -> None:
        self.runner = runner or CommandRunner()
        self.git_binary = git_binary
        self.github_cli_binary = github_cli_binary

    def execute_git(
        self, context: ExecutionContext, args: Sequence[str], cwd: Optional[str] = None
    ) -> CommandResult:
        return self.runner.run([self.git_binary, *args], cwd=cwd, context=context)

    def execute_github_cli(
        self, context: ExecutionContext, args: Sequence[str], cwd: Optional[str] = None
    ) -> CommandResult:
        return self.runner.run([self.github_cli_binary, *args], cwd=cwd, context=context)


class GitRepositoryManager:
    """Repository-level git operations used by inspection and executors."""

    def __init__(self, executor: GitExecutor) -> None:
        self.executor = executor

    def is_git_repository(self, context: ExecutionContext, repository_path: str) -> bool:
        try:
            result = self.executor.execute_git(
                context, ["rev-parse", "--is-inside-work-tree"], cwd=repository_path
            )
        except CommandExecutionError:
            return False
        return result.stdout.strip() == "true"

    def check_clean_worktree(self, context: ExecutionContext, repository_path: str) -> bool:
        result = self.executor.execute_git(context, ["status", "--porcelain"], cwd=repository_path)
        return not result.stdout.strip()

    def get_current_branch(self, context: ExecutionContext, repository_path: str) -> str:
        result = self.executor.execute_git(
            context, ["rev-parse", "--abbrev-ref", HEAD_REFERENCE], cwd=repository_path
        )
        return result.stdout.strip()

    def get_remote_url(
        self, context: ExecutionContext, repository_path: str, remote_name: str = ORIGIN_REMOTE
    ) -> str:
        result = self.executor.execute_git(
            context, ["remote", "get-url", remote_name], cwd=repository_path
        )
        return result.stdout.strip()

    def set_remote_url(
        self,
        context: ExecutionContext,
        repository_path: str,
        remote_name: str,
        remote_url: str,
    ) -> None:
        self.executor.execute_git(
            context, ["remote", "set-url", remote_name, remote_url], cwd=repository_path
        )


# =============================================================================
# GITHUB METADATA RESOLUTION
# =============================================================================


class GitHubAPIMetadataResolver:
    """Resolve canonical repository metadata through the GitHub REST API."""

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: str = GITHUB_API_URL,
        timeout: float = 30.0,
        stats: Optional[APIStatistics] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": f"repo-reconcile/{SCRIPT_VERSION}",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self.client = httpx.Client(
            base_url=base_url,
            timeout=httpx.Timeout(timeout, connect=10.0),
            headers=headers,
            transport=transport,
            follow_redirects=True,
        )
        self.logger = logging.getLogger(LOGGER_NAME)
        self.stats = stats or api_stats

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def close(self):
        self.client.close()

    def resolve_metadata(
        self, context: ExecutionContext, owner_repository: str
    ) -> RepositoryMetadata:
        identity = (owner_repository or "").strip()
        if not identity:
            raise MetadataResolutionError("repository identity is required")

        context.raise_if_cancelled()
        try:
            response = self.client.get(f"/repos/{identity}")
        except httpx.HTTPError as e:
            self.stats.record_exception("github_api", type(e).__name__)
            raise MetadataResolutionError(f"GitHub API request failed for {identity}: {e}") from e

        if response.status_code != 200:
            self.stats.record_error("github_api", response.status_code)
            if response.status_code in (401, 403):
                self.logger.warning(
                    f"❌ GitHub API returned {response.status_code} for {identity}; check the token"
                )
            raise MetadataResolutionError(
                f"GitHub API returned {response.status_code} for {identity}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            self.stats.record_exception("github_api", "invalid_json")
            raise MetadataResolutionError(f"Invalid GitHub API response for {identity}") from e

        self.stats.record_success("github_api")
        return RepositoryMetadata(
            name_with_owner=str(payload.get("full_name") or ""),
            default_branch=str(payload.get("default_branch") or ""),
            description=str(payload.get("description") or ""),
        )


class GitHubCLIMetadataResolver:
    """Resolve canonical repository metadata with ``gh repo view``."""

    def __init__(self, executor: GitExecutor, stats: Optional[APIStatistics] = None) -> None:
        self.executor = executor
        self.stats = stats or api_stats

    def close(self):
        pass

    def resolve_metadata(
        self, context: ExecutionContext, owner_repository: str
    ) -> RepositoryMetadata:
        identity = (owner_repository or "").strip()
        if not identity:
            raise MetadataResolutionError("repository identity is required")

        try:
            result = self.executor.execute_github_cli(
                context,
                ["repo", "view", identity, "--json", "nameWithOwner,defaultBranchRef,description"],
            )
        except CommandExecutionError as e:
            self.stats.record_error("github_cli", e.exit_code)
            raise MetadataResolutionError(f"gh repo view failed for {identity}: {e.stderr}") from e

        try:
            payload = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            self.stats.record_exception("github_cli", "invalid_json")
            raise MetadataResolutionError(f"Invalid gh output for {identity}") from e

        self.stats.record_success("github_cli")
        default_branch_ref = payload.get("defaultBranchRef") or {}
        return RepositoryMetadata(
            name_with_owner=str(payload.get("nameWithOwner") or ""),
            default_branch=str(default_branch_ref.get("name") or ""),
            description=str(payload.get("description") or ""),
        )


# =============================================================================
# DISCOVERY AND FILESYSTEM
# =============================================================================


class FilesystemRepositoryDiscoverer:
    """Locate directories containing a ``.git`` entry under the given roots."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(LOGGER_NAME)

    def discover(self, roots: Iterable[str]) -> List[str]:
        seen: Set[str] = set()
        repositories: List[str] = []
        access_errors = 0

        def on_error(error: OSError) -> None:
            nonlocal access_errors
            access_errors += 1
            self.logger.debug(f"Cannot access {error.filename}: {error}")

        for root in roots:
            normalized_root = normalize_absolute(root)
            for current, dirnames, filenames in os.walk(normalized_root, onerror=on_error):
                if GIT_METADATA_DIRECTORY in dirnames or GIT_METADATA_DIRECTORY in filenames:
                    repository_path = os.path.normpath(current)
                    if repository_path not in seen:
                        seen.add(repository_path)
                        repositories.append(repository_path)
                if GIT_METADATA_DIRECTORY in dirnames:
                    dirnames.remove(GIT_METADATA_DIRECTORY)

        if access_errors:
            self.logger.debug(f"Encountered {access_errors} access errors during discovery")
        repositories.sort()
        return repositories


class OSFileSystem:
    """Filesystem operations used by the rename executor."""

    def stat(self, path: str) -> os.stat_result:
        return os.stat(path)

    def rename(self, old_path: str, new_path: str) -> None:
        os.rename(old_path, new_path)

    def absolute(self, path: str) -> str:
        return normalize_absolute(path)

    def mkdir_all(self, path: str, mode: int = PARENT_DIRECTORY_MODE) -> None:
        os.makedirs(path, mode=mode, exist_ok=True)


def deduplicate_paths(paths: Iterable[str]) -> List[str]:
    return sorted(set(paths))


def merge_candidate_paths(existing: Iterable[str], extras: Iterable[str]) -> List[str]:
    merged = set(existing)
    merged.update(os.path.normpath(extra) for extra in extras)
    return sorted(merged)


def collect_all_folders(roots: Iterable[str]) -> List[str]:
    """Immediate, non-symlink subdirectories of every root (excluding .git)."""
    folders: Set[str] = set()
    for root in roots:
        absolute_root = normalize_absolute(root)
        with os.scandir(absolute_root) as entries:
            for entry in entries:
                if entry.is_symlink() or not entry.is_dir(follow_symlinks=False):
                    continue
                if entry.name == GIT_METADATA_DIRECTORY:
                    continue
                folders.add(os.path.normpath(os.path.join(absolute_root, entry.name)))
    return sorted(folders)


def is_path_within_repository(path: str, repository_paths: Set[str]) -> bool:
    """True when ``path`` is strictly inside one of the repository roots."""
    cleaned = os.path.normpath(path)
    if cleaned in repository_paths:
        return False
    return any(cleaned.startswith(repository + os.sep) for repository in repository_paths)


# =============================================================================
# INSPECTION SERVICE
# =============================================================================


def normalize_inspection_depth(depth: Any) -> InspectionDepth:
    if depth == InspectionDepth.MINIMAL or depth == InspectionDepth.MINIMAL.value:
        return InspectionDepth.MINIMAL
    return InspectionDepth.FULL


def build_placeholder_record(path: str) -> RepositoryRecord:
    """Report-only record for a folder that is not a repository."""
    placeholder = TernaryValue.NOT_APPLICABLE.value
    return RepositoryRecord(
        path=os.path.normpath(path),
        folder_name=os.path.basename(os.path.normpath(path)),
        remote_default_branch=placeholder,
        local_branch=placeholder,
        is_git_repository=False,
    )


class InspectionService:
    """Turn discovered repository paths into RepositoryRecords."""

    def __init__(
        self,
        discoverer: Any,
        git_manager: Any,
        git_executor: Any,
        metadata_resolver: Any = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.discoverer = discoverer
        self.git_manager = git_manager
        self.git_executor = git_executor
        self.metadata_resolver = metadata_resolver
        self.logger = logger or logging.getLogger(LOGGER_NAME)

    def discover_records(
        self,
        context: ExecutionContext,
        roots: Sequence[str],
        include_all: bool = False,
        depth: Any = InspectionDepth.FULL,
    ) -> List[RepositoryRecord]:
        """
        Discover and inspect repositories under ``roots``.

        Records come back sorted by path. Repositories whose origin is not a
        GitHub remote, or which have neither an origin nor a canonical
        identity, are left out. With ``include_all`` the immediate
        subfolders of each root that are not repositories get placeholder
        records.
        """
        normalized_depth = normalize_inspection_depth(depth)

        discovered = self.discoverer.discover(list(roots))
        normalized = [normalize_absolute(path) for path in discovered]
        self.logger.debug(
            f"Discovered {len(normalized)} candidate repositories under: {' '.join(roots)}"
        )

        repository_roots = set(normalized)
        candidates = deduplicate_paths(normalized)
        if include_all:
            candidates = merge_candidate_paths(candidates, collect_all_folders(roots))

        records: List[RepositoryRecord] = []
        for repository_path in candidates:
            if include_all and is_path_within_repository(repository_path, repository_roots):
                continue

            self.logger.debug(f"Checking {repository_path}")
            if not self.git_manager.is_git_repository(context, repository_path):
                if include_all:
                    records.append(build_placeholder_record(repository_path))
                continue

            try:
                record = self.inspect_repository(context, repository_path, normalized_depth)
            except CommandCancelledError:
                raise
            except ReconcileError as e:
                self.logger.debug(f"Excluding {repository_path}: {e}")
                continue

            if not record.origin_owner_repository and not record.canonical_owner_repository:
                self.logger.debug(f"Excluding {repository_path}: no owner/repository identity")
                continue

            records.append(record)

        return records

    def inspect_repository(
        self,
        context: ExecutionContext,
        repository_path: str,
        depth: InspectionDepth = InspectionDepth.FULL,
    ) -> RepositoryRecord:
        folder_name = os.path.basename(repository_path)

        origin_url = self.git_manager.get_remote_url(context, repository_path, ORIGIN_REMOTE)
        if GITHUB_HOST not in origin_url.lower():
            raise NotGitHubRemoteError(f"not a github remote: {origin_url!r}")

        try:
            origin_owner_repository = canonicalize_owner_repository(origin_url)
        except (UnknownRemoteFormatError, MalformedIdentityError):
            origin_owner_repository = ""

        remote_protocol = classify_remote_protocol(origin_url)

        canonical_owner_repository = ""
        remote_default_branch = ""
        if origin_owner_repository and self.metadata_resolver is not None:
            try:
                metadata = self.metadata_resolver.resolve_metadata(context, origin_owner_repository)
            except CommandCancelledError:
                raise
            except ReconcileError as e:
                self.logger.debug(f"Metadata unavailable for {origin_owner_repository}: {e}")
            else:
                canonical_owner_repository = metadata.name_with_owner.strip()
                remote_default_branch = metadata.default_branch.strip()

        if not remote_default_branch:
            remote_default_branch = self._resolve_default_branch_from_git(context, repository_path)

        local_branch = ""
        in_sync_status = TernaryValue.NOT_APPLICABLE
        if depth == InspectionDepth.FULL:
            try:
                branch_name = self.git_manager.get_current_branch(context, repository_path)
            except CommandCancelledError:
                raise
            except ReconcileError as e:
                self.logger.debug(f"Cannot read local branch in {repository_path}: {e}")
            else:
                local_branch = sanitize_branch_name(branch_name)
                in_sync_status = self._compute_in_sync(
                    context, repository_path, remote_default_branch, local_branch, remote_protocol
                )

        final_owner_repository = canonical_owner_repository or origin_owner_repository

        return RepositoryRecord(
            path=repository_path,
            folder_name=folder_name,
            origin_url=origin_url,
            origin_owner_repository=origin_owner_repository,
            canonical_owner_repository=canonical_owner_repository,
            final_owner_repository=final_owner_repository,
            desired_folder_name=repository_segment(final_owner_repository),
            remote_protocol=remote_protocol,
            remote_default_branch=remote_default_branch,
            local_branch=local_branch,
            in_sync_status=in_sync_status,
            origin_matches_canonical=matches_canonical(
                origin_owner_repository, canonical_owner_repository
            ),
        )

    def _git_output(
        self, context: ExecutionContext, repository_path: str, args: Sequence[str]
    ) -> Optional[str]:
        """Run git and return stripped stdout, or None on failure."""
        try:
            result = self.git_executor.execute_git(context, args, cwd=repository_path)
        except CommandCancelledError:
            raise
        except ReconcileError:
            return None
        return result.stdout.strip()

    def _resolve_default_branch_from_git(
        self, context: ExecutionContext, repository_path: str
    ) -> str:
        output = self._git_output(
            context, repository_path, ["ls-remote", "--symref", ORIGIN_REMOTE, HEAD_REFERENCE]
        )
        if not output:
            return ""

        # ref: refs/heads/main\tHEAD
        for line in output.splitlines():
            if not line.startswith("ref:"):
                continue
            reference_parts = line.split("\t")[0].split()
            if len(reference_parts) < 2:
                continue
            reference = reference_parts[1]
            if reference.startswith(REFS_HEADS_PREFIX):
                reference = reference[len(REFS_HEADS_PREFIX):]
            return reference
        return ""

    def _compute_in_sync(
        self,
        context: ExecutionContext,
        repository_path: str,
        remote_default_branch: str,
        local_branch: str,
        protocol: RemoteProtocol,
    ) -> TernaryValue:
        if not remote_default_branch or not local_branch:
            return TernaryValue.NOT_APPLICABLE
        if remote_default_branch.casefold() != local_branch.casefold():
            return TernaryValue.NOT_APPLICABLE
        # https fetches may prompt for credentials; sync is only checked over git/ssh
        if protocol not in FETCHABLE_PROTOCOLS:
            return TernaryValue.NOT_APPLICABLE

        fetched = self._git_output(
            context,
            repository_path,
            ["fetch", "-q", "--no-tags", "--no-recurse-submodules", ORIGIN_REMOTE, remote_default_branch],
        )
        if fetched is None:
            return TernaryValue.NOT_APPLICABLE

        upstream_reference = self._git_output(
            context,
            repository_path,
            ["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"],
        )

        head_revision = self._git_output(context, repository_path, ["rev-parse", HEAD_REFERENCE])
        if not head_revision:
            return TernaryValue.NOT_APPLICABLE

        remote_revision = self._resolve_remote_revision(
            context, repository_path, upstream_reference or "", remote_default_branch
        )
        if not remote_revision:
            return TernaryValue.NOT_APPLICABLE

        if head_revision == remote_revision:
            return TernaryValue.YES
        return TernaryValue.NO

    def _resolve_remote_revision(
        self,
        context: ExecutionContext,
        repository_path: str,
        upstream_reference: str,
        branch: str,
    ) -> str:
        references = []
        if upstream_reference.strip():
            references.append(upstream_reference.strip())
        references.append(f"refs/remotes/{ORIGIN_REMOTE}/{branch}")
        references.append(f"{ORIGIN_REMOTE}/{branch}")

        for reference in references:
            revision = self._git_output(context, repository_path, ["rev-parse", reference])
            if revision:
                return revision
        return ""


# =============================================================================
# AUDIT REPORT
# =============================================================================


def audit_report_row(record: RepositoryRecord) -> Dict[str, str]:
    """Flatten a record into the audit report columns."""
    not_applicable = TernaryValue.NOT_APPLICABLE.value
    if not record.is_git_repository:
        return {
            "final_github_repo": not_applicable,
            "folder_name": record.folder_name,
            "name_matches": not_applicable,
            "remote_default_branch": not_applicable,
            "local_branch": not_applicable,
            "in_sync": not_applicable,
            "remote_protocol": not_applicable,
            "origin_matches_canonical": not_applicable,
        }

    final_repository = record.canonical_owner_repository or record.origin_owner_repository
    name_matches = TernaryValue.NO
    if record.desired_folder_name and record.desired_folder_name == record.folder_name:
        name_matches = TernaryValue.YES

    return {
        "final_github_repo": final_repository,
        "folder_name": record.folder_name,
        "name_matches": name_matches.value,
        "remote_default_branch": record.remote_default_branch,
        "local_branch": record.local_branch,
        "in_sync": record.in_sync_status.value,
        "remote_protocol": record.remote_protocol.value,
        "origin_matches_canonical": record.origin_matches_canonical.value,
    }


def write_audit_report(
    records: Iterable[RepositoryRecord], stream: TextIO, output_format: str = "csv"
) -> None:
    rows = [audit_report_row(record) for record in records]

    if output_format == "json":
        json.dump(rows, stream, indent=2)
        stream.write("\n")
        return

    writer = csv.DictWriter(stream, fieldnames=AUDIT_CSV_HEADER, lineterminator="\n")
    writer.writeheader()
    writer.writerows(rows)


# =============================================================================
# CONFIRMATION PROMPTS
# =============================================================================


class IOConfirmationPrompter:
    """Ask on a text stream; ``y``/``yes`` confirms, ``a``/``all`` applies to all."""

    def __init__(self, input_stream: Optional[TextIO] = None, output_stream: Optional[TextIO] = None):
        self.input_stream = input_stream if input_stream is not None else sys.stdin
        self.output_stream = output_stream if output_stream is not None else sys.stdout

    def confirm(self, prompt: str) -> ConfirmationResult:
        self.output_stream.write(prompt)
        self.output_stream.flush()

        answer = self.input_stream.readline().strip().lower()
        if answer in ("a", "all"):
            return ConfirmationResult(confirmed=True, apply_to_all=True)
        if answer in ("y", "yes"):
            return ConfirmationResult(confirmed=True)
        return ConfirmationResult()


class CascadingConfirmationPrompter:
    """
    Run-wide confirmation state on top of a base prompter.

    Once the base prompter answers "apply to all", every later confirmation
    in the same run is granted without asking again. This object is the only
    holder of the assume-yes state; executors consult ``assume_yes`` before
    prompting instead of keeping their own flag.
    """

    def __init__(self, base_prompter: Any = None, assume_yes: bool = False) -> None:
        self.base_prompter = base_prompter
        self._assume_yes = bool(assume_yes)

    @property
    def assume_yes(self) -> bool:
        return self._assume_yes

    def confirm(self, prompt: str) -> ConfirmationResult:
        if self._assume_yes:
            return ConfirmationResult(confirmed=True, apply_to_all=True)
        if self.base_prompter is None:
            return ConfirmationResult()

        result = self.base_prompter.confirm(prompt)
        if result.apply_to_all:
            self._assume_yes = True
        return result


# =============================================================================
# OUTCOME REPORTING
# =============================================================================


class Outcome(str, Enum):
    PLAN = "plan"
    SKIP = "skip"
    SUCCESS = "success"
    FAILURE = "failure"


class OutcomeReporter:
    """Write executor result lines to the output/error streams and tally them."""

    def __init__(
        self,
        output: Optional[TextIO] = None,
        errors: Optional[TextIO] = None,
    ) -> None:
        self.output = output if output is not None else sys.stdout
        self.errors = errors if errors is not None else sys.stderr
        self.counts: Dict[Outcome, int] = {outcome: 0 for outcome in Outcome}

    def report(self, outcome: Outcome, message: str, to_errors: bool = False) -> None:
        self.counts[outcome] += 1
        stream = self.errors if to_errors else self.output
        stream.write(message + "\n")
        stream.flush()

    def plan(self, message: str) -> None:
        self.report(Outcome.PLAN, message)

    def skip(self, message: str, to_errors: bool = False) -> None:
        self.report(Outcome.SKIP, message, to_errors=to_errors)

    def success(self, message: str) -> None:
        self.report(Outcome.SUCCESS, message)

    def failure(self, message: str) -> None:
        self.report(Outcome.FAILURE, message, to_errors=True)

    def format_summary(self) -> str:
        return (
            f"plans: {self.counts[Outcome.PLAN]}, skips: {self.counts[Outcome.SKIP]}, "
            f"successes: {self.counts[Outcome.SUCCESS]}, failures: {self.counts[Outcome.FAILURE]}"
        )


# =============================================================================
# RENAME EXECUTOR
# =============================================================================

RENAME_PLAN_SKIP_ALREADY = "PLAN-SKIP (already named): {}"
RENAME_PLAN_SKIP_DIRTY = "PLAN-SKIP (dirty worktree): {}"
RENAME_PLAN_SKIP_PARENT_MISSING = "PLAN-SKIP (target parent missing): {}"
RENAME_PLAN_SKIP_PARENT_NOT_DIRECTORY = "PLAN-SKIP (target parent not directory): {}"
RENAME_PLAN_SKIP_EXISTS = "PLAN-SKIP (target exists): {}"
RENAME_PLAN_CASE_ONLY = "PLAN-CASE-ONLY: {} → {} (two-step move required)"
RENAME_PLAN_OK = "PLAN-OK: {} → {}"
RENAME_SKIP_ALREADY = "SKIP (already named): {}"
RENAME_SKIP_DIRTY = "SKIP (dirty worktree): {}"
RENAME_SKIP_DECLINED = "SKIP: {}"
RENAME_ERROR_PARENT_MISSING = "ERROR: target parent missing: {}"
RENAME_ERROR_PARENT_NOT_DIRECTORY = "ERROR: target parent is not a directory: {}"
RENAME_ERROR_TARGET_EXISTS = "ERROR: target exists: {}"
RENAME_ERROR_ROLLBACK = "ERROR: rollback failed, repository left at {}"
RENAME_PROMPT = "Rename '{}' → '{}'? [a/N/y] "
RENAME_SUCCESS = "Renamed {} → {}"
RENAME_FAILURE = "ERROR: rename failed for {} → {}"


@dataclass(frozen=True)
class RenameOptions:
    repository_path: str
    desired_folder_name: str
    dry_run: bool = False
    require_clean_worktree: bool = False
    include_owner: bool = False
    ensure_parent_directories: bool = False


class RenameExecutor:
    """Plan, confirm and apply a directory rename for one repository."""

    def __init__(
        self,
        file_system: Any,
        git_manager: Any,
        prompter: CascadingConfirmationPrompter,
        reporter: OutcomeReporter,
        clock: Callable[[], int] = time.time_ns,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.file_system = file_system
        self.git_manager = git_manager
        self.prompter = prompter
        self.reporter = reporter
        self.clock = clock
        self.logger = logger or logging.getLogger(LOGGER_NAME)

    def execute(self, context: ExecutionContext, options: RenameOptions) -> None:
        desired_name = options.desired_folder_name.strip()
        if not desired_name:
            return

        try:
            old_path = self.file_system.absolute(options.repository_path)
        except OSError:
            self.reporter.failure(RENAME_FAILURE.format(options.repository_path, desired_name))
            return

        new_path = os.path.normpath(os.path.join(os.path.dirname(old_path), desired_name))

        if options.dry_run:
            self._report_plan(context, old_path, new_path, options)
            return

        if not self._validate(context, old_path, new_path, options):
            return

        if not self.prompter.assume_yes:
            try:
                confirmation = self.prompter.confirm(RENAME_PROMPT.format(old_path, new_path))
            except (OSError, EOFError, ValueError) as e:
                self.logger.debug(f"Confirmation failed for {old_path}: {e}")
                self.reporter.failure(RENAME_FAILURE.format(old_path, new_path))
                return
            if not confirmation.confirmed:
                self.reporter.skip(RENAME_SKIP_DECLINED.format(old_path))
                return

        context.raise_if_cancelled()

        if not self._ensure_parent_directory(new_path, options.ensure_parent_directories):
            self.reporter.failure(RENAME_FAILURE.format(old_path, new_path))
            return

        if self._perform_rename(old_path, new_path):
            self.reporter.success(RENAME_SUCCESS.format(old_path, new_path))
        else:
            self.reporter.failure(RENAME_FAILURE.format(old_path, new_path))

    def _report_plan(
        self, context: ExecutionContext, old_path: str, new_path: str, options: RenameOptions
    ) -> None:
        case_only = is_case_only_rename(old_path, new_path)
        parent_path, parent_exists, parent_is_directory = self._parent_details(new_path)

        if old_path == new_path:
            self.reporter.skip(RENAME_PLAN_SKIP_ALREADY.format(old_path))
        elif options.require_clean_worktree and not self._is_clean(context, old_path):
            self.reporter.skip(RENAME_PLAN_SKIP_DIRTY.format(old_path))
        elif parent_exists and not parent_is_directory:
            self.reporter.skip(RENAME_PLAN_SKIP_PARENT_NOT_DIRECTORY.format(parent_path))
        elif not options.ensure_parent_directories and not parent_exists:
            self.reporter.skip(RENAME_PLAN_SKIP_PARENT_MISSING.format(parent_path))
        elif self._exists(new_path) and not case_only:
            self.reporter.skip(RENAME_PLAN_SKIP_EXISTS.format(new_path))
        elif case_only:
            self.reporter.plan(RENAME_PLAN_CASE_ONLY.format(old_path, new_path))
        else:
            self.reporter.plan(RENAME_PLAN_OK.format(old_path, new_path))

    def _validate(
        self, context: ExecutionContext, old_path: str, new_path: str, options: RenameOptions
    ) -> bool:
        case_only = is_case_only_rename(old_path, new_path)
        parent_path, parent_exists, parent_is_directory = self._parent_details(new_path)

        if old_path == new_path:
            self.reporter.skip(RENAME_SKIP_ALREADY.format(old_path))
            return False
        if options.require_clean_worktree and not self._is_clean(context, old_path):
            self.reporter.skip(RENAME_SKIP_DIRTY.format(old_path))
            return False
        if parent_exists and not parent_is_directory:
            self.reporter.failure(RENAME_ERROR_PARENT_NOT_DIRECTORY.format(parent_path))
            return False
        if not options.ensure_parent_directories and not parent_exists:
            self.reporter.skip(RENAME_ERROR_PARENT_MISSING.format(parent_path), to_errors=True)
            return False
        if self._exists(new_path) and not case_only:
            self.reporter.skip(RENAME_ERROR_TARGET_EXISTS.format(new_path), to_errors=True)
            return False
        return True

    def _is_clean(self, context: ExecutionContext, repository_path: str) -> bool:
        if self.git_manager is None:
            return False
        try:
            return self.git_manager.check_clean_worktree(context, repository_path)
        except CommandCancelledError:
            raise
        except ReconcileError:
            return False

    def _parent_details(self, path: str) -> Tuple[str, bool, bool]:
        parent_path = os.path.dirname(path)
        try:
            info = self.file_system.stat(parent_path)
        except OSError:
            return parent_path, False, False
        return parent_path, True, stat.S_ISDIR(info.st_mode)

    def _exists(self, path: str) -> bool:
        try:
            self.file_system.stat(path)
        except OSError:
            return False
        return True

    def _ensure_parent_directory(self, new_path: str, ensure_parent_directories: bool) -> bool:
        if not ensure_parent_directories:
            return True

        parent_path, parent_exists, parent_is_directory = self._parent_details(new_path)
        if parent_exists:
            return parent_is_directory

        try:
            self.file_system.mkdir_all(parent_path, PARENT_DIRECTORY_MODE)
        except OSError as e:
            self.logger.debug(f"Cannot create {parent_path}: {e}")
            return False
        return True

    def _perform_rename(self, old_path: str, new_path: str) -> bool:
        if is_case_only_rename(old_path, new_path):
            return self._perform_case_only_rename(old_path, new_path)

        try:
            self.file_system.rename(old_path, new_path)
        except OSError as e:
            self.logger.debug(f"Rename {old_path} → {new_path} failed: {e}")
            return False
        return True

    def _perform_case_only_rename(self, old_path: str, new_path: str) -> bool:
        """Move through a time-stamped intermediate name, rolling back on failure."""
        intermediate_path = compute_intermediate_rename_path(old_path, self.clock())
        try:
            self.file_system.rename(old_path, intermediate_path)
        except OSError as e:
            self.logger.debug(f"Rename {old_path} → {intermediate_path} failed: {e}")
            return False

        try:
            self.file_system.rename(intermediate_path, new_path)
        except OSError as e:
            self.logger.debug(f"Rename {intermediate_path} → {new_path} failed: {e}")
        else:
            return True

        try:
            self.file_system.rename(intermediate_path, old_path)
        except OSError as e:
            self.logger.debug(f"Rollback {intermediate_path} → {old_path} failed: {e}")
            self.reporter.failure(RENAME_ERROR_ROLLBACK.format(intermediate_path))
        return False


@dataclass
class RenameRequest:
    options: RenameOptions
    path_depth: int


def calculate_path_depth(path: str) -> int:
    cleaned = os.path.normpath(path)
    if not cleaned or cleaned == ".":
        return 0
    return Path(cleaned).as_posix().count("/")


def is_ancestor_path(potential_ancestor: str, potential_descendant: str) -> bool:
    try:
        relative = os.path.relpath(potential_descendant, potential_ancestor)
    except ValueError:
        return False
    if relative == os.curdir:
        return False
    return not (relative == os.pardir or relative.startswith(os.pardir + os.sep))


def prepare_rename_requests(
    records: Iterable[RepositoryRecord],
    include_owner: bool,
    dry_run: bool,
    require_clean: bool,
) -> List[RenameRequest]:
    """
    Build rename requests for the given records, deepest paths first.

    A record whose plan is already satisfied keeps its current folder name so
    the executor reports it as already named.
    """
    requests: List[RenameRequest] = []
    for record in records:
        plan = plan_directory(include_owner, record.final_owner_repository, record.desired_folder_name)
        desired_folder_name = plan.folder_name.strip()
        if not desired_folder_name:
            continue
        if plan.is_noop(record.path, record.folder_name):
            desired_folder_name = os.path.basename(record.path)

        requests.append(
            RenameRequest(
                options=RenameOptions(
                    repository_path=record.path,
                    desired_folder_name=desired_folder_name,
                    dry_run=dry_run,
                    require_clean_worktree=require_clean,
                    include_owner=plan.include_owner,
                    ensure_parent_directories=plan.include_owner,
                ),
                path_depth=calculate_path_depth(record.path),
            )
        )

    requests.sort(key=lambda request: (-request.path_depth, request.options.repository_path))
    return requests


def determine_clean_relaxations(
    context: ExecutionContext,
    git_manager: Any,
    requests: Sequence[RenameRequest],
    require_clean: bool,
) -> Set[str]:
    """
    Ancestor repositories that are clean before the batch starts.

    Once their nested repositories move, such ancestors look dirty only
    because of those moves, so their clean requirement is dropped.
    """
    relaxed: Set[str] = set()
    if not require_clean or git_manager is None:
        return relaxed

    paths = [request.options.repository_path for request in requests]
    ancestors = {
        first
        for first in paths
        for second in paths
        if first != second and is_ancestor_path(first, second)
    }
    for repository_path in sorted(ancestors):
        try:
            clean = git_manager.check_clean_worktree(context, repository_path)
        except CommandCancelledError:
            raise
        except ReconcileError:
            continue
        if clean:
            relaxed.add(repository_path)
    return relaxed


def run_rename_batch(
    context: ExecutionContext,
    executor: RenameExecutor,
    records: Iterable[RepositoryRecord],
    include_owner: bool,
    dry_run: bool,
    require_clean: bool,
) -> List[RenameRequest]:
    requests = prepare_rename_requests(records, include_owner, dry_run, require_clean)
    relaxed = determine_clean_relaxations(context, executor.git_manager, requests, require_clean)

    for request in requests:
        options = request.options
        if options.repository_path in relaxed:
            options = RenameOptions(
                repository_path=options.repository_path,
                desired_folder_name=options.desired_folder_name,
                dry_run=options.dry_run,
                require_clean_worktree=False,
                include_owner=options.include_owner,
                ensure_parent_directories=options.ensure_parent_directories,
            )
        executor.execute(context, options)
    return requests


# =============================================================================
# REMOTE UPDATE EXECUTOR
# =============================================================================

REMOTE_SKIP_PARSE = "UPDATE-REMOTE-SKIP: {} (error: could not parse origin owner/repo)"
REMOTE_SKIP_CANONICAL = "UPDATE-REMOTE-SKIP: {} (no upstream: no canonical redirect found)"
REMOTE_SKIP_SAME = "UPDATE-REMOTE-SKIP: {} (already canonical)"
REMOTE_SKIP_OWNER = "UPDATE-REMOTE-SKIP: {} (owner constraint unmet: expected {}, found {})"
REMOTE_SKIP_TARGET = "UPDATE-REMOTE-SKIP: {} (error: could not construct target URL)"
REMOTE_SKIP_DECLINED = "UPDATE-REMOTE-SKIP: user declined for {}"
REMOTE_PLAN = "PLAN-UPDATE-REMOTE: {} origin {} → {}"
REMOTE_PROMPT = "Update 'origin' in '{}' to canonical ({} → {})? [a/N/y] "
REMOTE_SUCCESS = "UPDATE-REMOTE-DONE: {} origin now {}"
REMOTE_FAILURE = "UPDATE-REMOTE-SKIP: {} (error: failed to set origin URL)"
REMOTE_PROMPT_FAILURE = "UPDATE-REMOTE-SKIP: {} (error: confirmation failed)"


@dataclass(frozen=True)
class RemoteUpdateOptions:
    repository_path: str
    current_origin_url: str
    origin_owner_repository: str
    canonical_owner_repository: str
    remote_protocol: RemoteProtocol
    dry_run: bool = False
    owner_constraint: str = ""

    @classmethod
    def from_record(
        cls, record: RepositoryRecord, dry_run: bool = False, owner_constraint: str = ""
    ) -> "RemoteUpdateOptions":
        return cls(
            repository_path=record.path,
            current_origin_url=record.origin_url,
            origin_owner_repository=record.origin_owner_repository,
            canonical_owner_repository=record.canonical_owner_repository,
            remote_protocol=record.remote_protocol,
            dry_run=dry_run,
            owner_constraint=owner_constraint,
        )


class RemoteUpdateExecutor:
    """Point ``origin`` at the canonical repository GitHub reports."""

    def __init__(
        self,
        git_manager: Any,
        prompter: CascadingConfirmationPrompter,
        reporter: OutcomeReporter,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.git_manager = git_manager
        self.prompter = prompter
        self.reporter = reporter
        self.logger = logger or logging.getLogger(LOGGER_NAME)

    def execute(self, context: ExecutionContext, options: RemoteUpdateOptions) -> None:
        path = options.repository_path
        origin = options.origin_owner_repository.strip()
        if not origin:
            self.reporter.skip(REMOTE_SKIP_PARSE.format(path))
            return

        canonical = options.canonical_owner_repository.strip()
        if not canonical:
            self.reporter.skip(REMOTE_SKIP_CANONICAL.format(path))
            return

        if owner_repositories_equal(origin, canonical):
            self.reporter.skip(REMOTE_SKIP_SAME.format(path))
            return

        constraint = options.owner_constraint.strip()
        if constraint:
            canonical_owner = canonical.split(OWNER_REPOSITORY_SEPARATOR)[0]
            if canonical_owner.casefold() != constraint.casefold():
                self.reporter.skip(REMOTE_SKIP_OWNER.format(path, constraint, canonical_owner))
                return

        try:
            target_url = build_remote_url(options.remote_protocol, canonical)
        except (UnsupportedProtocolError, EmptyIdentityError):
            self.reporter.skip(REMOTE_SKIP_TARGET.format(path))
            return

        if options.dry_run:
            self.reporter.plan(REMOTE_PLAN.format(path, options.current_origin_url, target_url))
            return

        if not self.prompter.assume_yes:
            try:
                confirmation = self.prompter.confirm(REMOTE_PROMPT.format(path, origin, canonical))
            except (OSError, EOFError, ValueError) as e:
                self.logger.debug(f"Confirmation failed for {path}: {e}")
                self.reporter.failure(REMOTE_PROMPT_FAILURE.format(path))
                return
            if not confirmation.confirmed:
                self.reporter.skip(REMOTE_SKIP_DECLINED.format(path))
                return

        try:
            self.git_manager.set_remote_url(context, path, ORIGIN_REMOTE, target_url)
        except CommandCancelledError:
            raise
        except ReconcileError as e:
            self.logger.debug(f"Setting origin in {path} failed: {e}")
            self.reporter.failure(REMOTE_FAILURE.format(path))
            return

        self.reporter.success(REMOTE_SUCCESS.format(path, target_url))


def run_remote_updates(
    context: ExecutionContext,
    executor: RemoteUpdateExecutor,
    records: Iterable[RepositoryRecord],
    dry_run: bool,
    owner_constraint: str = "",
) -> None:
    for record in records:
        if not record.origin_owner_repository.strip() and not record.canonical_owner_repository.strip():
            continue
        executor.execute(
            context,
            RemoteUpdateOptions.from_record(record, dry_run=dry_run, owner_constraint=owner_constraint),
        )


# =============================================================================
# PROTOCOL CONVERSION EXECUTOR
# =============================================================================

CONVERT_ERROR_READ = "ERROR: cannot read origin URL in {}"
CONVERT_ERROR_OWNER = "ERROR: cannot derive owner/repo for protocol conversion in {}"
CONVERT_ERROR_TARGET = "ERROR: cannot build target URL for protocol '{}' in {}"
CONVERT_PLAN = "PLAN-CONVERT: {} origin {} → {}"
CONVERT_PROMPT = "Convert 'origin' in '{}' ({} → {})? [a/N/y] "
CONVERT_SKIP_DECLINED = "CONVERT-SKIP: user declined for {}"
CONVERT_SUCCESS = "CONVERT-DONE: {} origin now {}"
CONVERT_FAILURE = "ERROR: failed to set origin to {} in {}"


@dataclass(frozen=True)
class ProtocolConvertOptions:
    repository_path: str
    origin_owner_repository: str
    canonical_owner_repository: str
    from_protocol: RemoteProtocol
    to_protocol: RemoteProtocol
    dry_run: bool = False

    @classmethod
    def from_record(
        cls,
        record: RepositoryRecord,
        from_protocol: RemoteProtocol,
        to_protocol: RemoteProtocol,
        dry_run: bool = False,
    ) -> "ProtocolConvertOptions":
        return cls(
            repository_path=record.path,
            origin_owner_repository=record.origin_owner_repository,
            canonical_owner_repository=record.canonical_owner_repository,
            from_protocol=from_protocol,
            to_protocol=to_protocol,
            dry_run=dry_run,
        )


class ProtocolConvertExecutor:
    """Rewrite ``origin`` from one transport protocol to another."""

    def __init__(
        self,
        git_manager: Any,
        prompter: CascadingConfirmationPrompter,
        reporter: OutcomeReporter,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.git_manager = git_manager
        self.prompter = prompter
        self.reporter = reporter
        self.logger = logger or logging.getLogger(LOGGER_NAME)

    def execute(self, context: ExecutionContext, options: ProtocolConvertOptions) -> None:
        path = options.repository_path
        try:
            current_url = self.git_manager.get_remote_url(context, path, ORIGIN_REMOTE)
        except CommandCancelledError:
            raise
        except ReconcileError as e:
            self.logger.debug(f"Reading origin in {path} failed: {e}")
            self.reporter.failure(CONVERT_ERROR_READ.format(path))
            return

        current_protocol = classify_remote_protocol(current_url)
        if current_protocol != options.from_protocol:
            return

        owner_repository = options.canonical_owner_repository.strip() or options.origin_owner_repository.strip()
        if not owner_repository:
            self.reporter.failure(CONVERT_ERROR_OWNER.format(path))
            return

        try:
            target_url = build_remote_url(options.to_protocol, owner_repository)
        except (UnsupportedProtocolError, EmptyIdentityError):
            self.reporter.failure(CONVERT_ERROR_TARGET.format(options.to_protocol.value, path))
            return

        if options.dry_run:
            self.reporter.plan(CONVERT_PLAN.format(path, current_url, target_url))
            return

        if not self.prompter.assume_yes:
            prompt = CONVERT_PROMPT.format(path, current_protocol.value, options.to_protocol.value)
            try:
                confirmation = self.prompter.confirm(prompt)
            except (OSError, EOFError, ValueError) as e:
                self.logger.debug(f"Confirmation failed for {path}: {e}")
                self.reporter.failure(CONVERT_FAILURE.format(target_url, path))
                return
            if not confirmation.confirmed:
                self.reporter.skip(CONVERT_SKIP_DECLINED.format(path))
                return

        try:
            self.git_manager.set_remote_url(context, path, ORIGIN_REMOTE, target_url)
        except CommandCancelledError:
            raise
        except ReconcileError as e:
            self.logger.debug(f"Setting origin in {path} failed: {e}")
            self.reporter.failure(CONVERT_FAILURE.format(target_url, path))
            return

        self.reporter.success(CONVERT_SUCCESS.format(path, target_url))


def run_protocol_conversions(
    context: ExecutionContext,
    executor: ProtocolConvertExecutor,
    records: Iterable[RepositoryRecord],
    from_protocol: RemoteProtocol,
    to_protocol: RemoteProtocol,
    dry_run: bool,
) -> None:
    for record in records:
        executor.execute(
            context,
            ProtocolConvertOptions.from_record(record, from_protocol, to_protocol, dry_run=dry_run),
        )


# =============================================================================
# MAIN ORCHESTRATION AND CLI ENTRY POINT
# =============================================================================


@dataclass
class Services:
    """Collaborators shared by every command in one invocation."""

    git_executor: Any
    git_manager: Any
    metadata_resolver: Any
    discoverer: Any
    file_system: Any
    inspection: InspectionService = field(init=False)

    def __post_init__(self) -> None:
        self.inspection = InspectionService(
            self.discoverer, self.git_manager, self.git_executor, self.metadata_resolver
        )

    def close(self) -> None:
        close = getattr(self.metadata_resolver, "close", None)
        if close is not None:
            close()


def build_services(config: dict[str, Any], logger: logging.Logger) -> Services:
    """Construct the real process, GitHub and filesystem collaborators."""
    git_executor = GitExecutor(CommandRunner(logger))
    github_config = config.get("github", {})
    resolver_kind = str(github_config.get("resolver", "api")).strip().lower()

    if resolver_kind == "cli":
        metadata_resolver: Any = GitHubCLIMetadataResolver(git_executor)
    elif resolver_kind == "api":
        token_env = github_config.get("token_env") or "GITHUB_TOKEN"
        token = os.environ.get(token_env) or os.environ.get("GH_TOKEN")
        if not token:
            logger.debug("No GitHub token found; using unauthenticated API requests")
        metadata_resolver = GitHubAPIMetadataResolver(
            token=token,
            base_url=github_config.get("api_url") or GITHUB_API_URL,
            timeout=float(github_config.get("timeout", 30.0)),
        )
    else:
        raise ConfigurationError(f"unknown github.resolver: {resolver_kind}")

    return Services(
        git_executor=git_executor,
        git_manager=GitRepositoryManager(git_executor),
        metadata_resolver=metadata_resolver,
        discoverer=FilesystemRepositoryDiscoverer(logger),
        file_system=OSFileSystem(),
    )


def resolve_roots(cli_roots: Optional[Sequence[str]], configured_roots: Sequence[str]) -> List[str]:
    """Command-line roots win over configured roots; at least one must exist."""
    roots = sanitize_repository_paths(cli_roots)
    if not roots:
        roots = sanitize_repository_paths(configured_roots)
    if not roots:
        raise ConfigurationError(
            "no repository roots provided; specify roots or configure defaults"
        )
    for root in roots:
        if not os.path.isdir(root):
            raise ConfigurationError(f"repository root not found: {root}")
    return roots


def resolve_flag(cli_value: Optional[bool], configured_value: Any) -> bool:
    if cli_value is not None:
        return bool(cli_value)
    return bool(configured_value)


def command_roots(args: argparse.Namespace) -> List[str]:
    return list(args.roots or []) + list(args.root or [])


def run_audit_command(
    args: argparse.Namespace,
    config: dict[str, Any],
    context: ExecutionContext,
    services: Services,
    logger: logging.Logger,
) -> int:
    section = config.get("audit", {})
    roots = resolve_roots(command_roots(args), section.get("roots", []))
    include_all = resolve_flag(args.include_all, section.get("include_all"))
    depth = normalize_inspection_depth(args.depth or section.get("depth"))

    records = services.inspection.discover_records(
        context, roots, include_all=include_all, depth=depth
    )
    write_audit_report(records, sys.stdout, args.format)
    logger.info(f"Audited {len(records)} repositories")
    return 0


def run_rename_command(
    args: argparse.Namespace,
    config: dict[str, Any],
    context: ExecutionContext,
    services: Services,
    logger: logging.Logger,
) -> int:
    section = config.get("rename", {})
    roots = resolve_roots(command_roots(args), section.get("roots", []))
    dry_run = resolve_flag(args.dry_run, section.get("dry_run"))
    assume_yes = resolve_flag(args.assume_yes, section.get("assume_yes"))
    require_clean = resolve_flag(args.require_clean, section.get("require_clean"))
    include_owner = resolve_flag(args.include_owner, section.get("include_owner"))

    records = services.inspection.discover_records(context, roots, depth=InspectionDepth.MINIMAL)

    reporter = OutcomeReporter()
    prompter = CascadingConfirmationPrompter(IOConfirmationPrompter(), assume_yes)
    executor = RenameExecutor(services.file_system, services.git_manager, prompter, reporter, logger=logger)
    run_rename_batch(context, executor, records, include_owner, dry_run, require_clean)

    logger.info(f"Folder rename finished ({reporter.format_summary()})")
    return 0


def run_remote_update_command(
    args: argparse.Namespace,
    config: dict[str, Any],
    context: ExecutionContext,
    services: Services,
    logger: logging.Logger,
) -> int:
    section = config.get("remotes", {})
    roots = resolve_roots(command_roots(args), section.get("roots", []))
    dry_run = resolve_flag(args.dry_run, section.get("dry_run"))
    assume_yes = resolve_flag(args.assume_yes, section.get("assume_yes"))
    owner_constraint = args.owner if args.owner is not None else str(section.get("owner") or "")

    records = services.inspection.discover_records(context, roots, depth=InspectionDepth.MINIMAL)

    reporter = OutcomeReporter()
    prompter = CascadingConfirmationPrompter(IOConfirmationPrompter(), assume_yes)
    executor = RemoteUpdateExecutor(services.git_manager, prompter, reporter, logger=logger)
    run_remote_updates(context, executor, records, dry_run, owner_constraint.strip())

    logger.info(f"Remote update finished ({reporter.format_summary()})")
    return 0


def run_protocol_convert_command(
    args: argparse.Namespace,
    config: dict[str, Any],
    context: ExecutionContext,
    services: Services,
    logger: logging.Logger,
) -> int:
    section = config.get("protocol", {})
    from_value = args.from_protocol if args.from_protocol is not None else str(section.get("from") or "")
    to_value = args.to_protocol if args.to_protocol is not None else str(section.get("to") or "")
    if not from_value.strip() or not to_value.strip():
        raise ConfigurationError("specify both --from and --to")

    from_protocol = parse_protocol_value(from_value)
    to_protocol = parse_protocol_value(to_value)
    if from_protocol == to_protocol:
        raise ConfigurationError("--from and --to cannot be the same protocol")

    roots = resolve_roots(command_roots(args), section.get("roots", []))
    dry_run = resolve_flag(args.dry_run, section.get("dry_run"))
    assume_yes = resolve_flag(args.assume_yes, section.get("assume_yes"))

    records = services.inspection.discover_records(context, roots, depth=InspectionDepth.MINIMAL)

    reporter = OutcomeReporter()
    prompter = CascadingConfirmationPrompter(IOConfirmationPrompter(), assume_yes)
    executor = ProtocolConvertExecutor(services.git_manager, prompter, reporter, logger=logger)
    run_protocol_conversions(context, executor, records, from_protocol, to_protocol, dry_run)

    logger.info(f"Protocol conversion finished ({reporter.format_summary()})")
    return 0


COMMAND_HANDLERS = {
    "audit": run_audit_command,
    "folders-rename": run_rename_command,
    "remote-update": run_remote_update_command,
    "protocol-convert": run_protocol_convert_command,
}


def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("roots", nargs="*", help="Repository roots to scan")
    common.add_argument(
        "--root", action="append", help="Repository root to scan (repeatable)"
    )
    common.add_argument("--config", type=Path, help="YAML configuration file")
    common.add_argument(
        "--verbose", "-v", action="store_true", help="Enable verbose logging"
    )
    common.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override log level from configuration",
    )

    mutating = argparse.ArgumentParser(add_help=False)
    mutating.add_argument(
        "--dry-run", action="store_true", default=None, help="Print the plan without changing anything"
    )
    mutating.add_argument(
        "--yes", "-y", dest="assume_yes", action="store_true", default=None,
        help="Apply every change without prompting",
    )

    parser = argparse.ArgumentParser(
        description="Audit and reconcile local GitHub repositories",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s audit ~/src --all > audit.csv
  %(prog)s folders-rename ~/src --owner --require-clean --dry-run
  %(prog)s remote-update --root ~/src --root ~/work -y
  %(prog)s protocol-convert ~/src --from https --to ssh
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {SCRIPT_VERSION}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    audit = subparsers.add_parser(
        "audit", parents=[common], help="Report repository naming, protocol and sync status"
    )
    audit.add_argument(
        "--all", dest="include_all", action="store_true", default=None,
        help="Include non-repository folders under each root",
    )
    audit.add_argument("--format", choices=["csv", "json"], default="csv", help="Report format")
    audit.add_argument("--depth", choices=["full", "minimal"], help="Inspection depth")

    rename = subparsers.add_parser(
        "folders-rename", parents=[common, mutating],
        help="Rename repository folders to match canonical GitHub names",
    )
    rename.add_argument(
        "--require-clean", action=argparse.BooleanOptionalAction, default=None,
        help="Require clean worktrees before renaming",
    )
    rename.add_argument(
        "--owner", dest="include_owner", action=argparse.BooleanOptionalAction, default=None,
        help="Nest folders as owner/repository",
    )

    remotes = subparsers.add_parser(
        "remote-update", parents=[common, mutating],
        help="Point origin at the canonical GitHub repository",
    )
    remotes.add_argument("--owner", help="Only update repositories whose canonical owner matches")

    protocol = subparsers.add_parser(
        "protocol-convert", parents=[common, mutating],
        help="Convert origin between git, ssh and https",
    )
    protocol.add_argument("--from", dest="from_protocol", help="Current protocol (git|ssh|https)")
    protocol.add_argument("--to", dest="to_protocol", help="Target protocol (git|ssh|https)")

    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    context = ExecutionContext()
    try:
        args = parse_arguments(argv)

        try:
            config = load_configuration(args.config)
        except ConfigurationError as e:
            print(f"ERROR: Failed to load configuration: {e}", file=sys.stderr)
            return 1

        if args.log_level:
            config.setdefault("logging", {})["level"] = args.log_level
        elif args.verbose:
            config.setdefault("logging", {})["level"] = "DEBUG"

        log_config = config.get("logging", {})
        logger = setup_logging(
            level=log_config.get("level", "INFO"),
            include_timestamps=log_config.get("include_timestamps", True),
        )
        logger.debug(f"Repository Reconciliation Tool v{SCRIPT_VERSION}")
        logger.debug(f"Configuration: {config['config_path']}")
        logger.debug(f"Configuration digest: {compute_config_digest(config)[:12]}...")

        context.timeout = config.get("commands", {}).get("timeout", DEFAULT_COMMAND_TIMEOUT)
        services = build_services(config, logger)
        try:
            return COMMAND_HANDLERS[args.command](args, config, context, services, logger)
        finally:
            services.close()
            api_stats_output = api_stats.format_console_output()
            if api_stats_output:
                print(api_stats_output, file=sys.stderr)
            api_stats.write_to_step_summary()

    except KeyboardInterrupt:
        context.cancel()
        print("\n❌ Operation cancelled by user", file=sys.stderr)
        return 130
    except CommandCancelledError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 130
    except ReconcileError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"❌ Unexpected error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
