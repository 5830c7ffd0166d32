"""Git Store - versioned object store primitives for memory sync

Wraps the `git` CLI with explicit timeouts. A timeout is always reported
as a network failure so callers can fall back to offline behaviour.
"""

import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence

from .constants import Defaults


class StoreError(Exception):
    """Base exception for object store operations."""
    pass


class StoreTimeout(StoreError):
    """Git command exceeded its timeout."""
    pass


class StoreUnavailable(StoreError):
    """Git binary not available."""
    pass


class StoreCommandError(StoreError):
    """Git command exited non-zero."""

    def __init__(self, args: Sequence[str], returncode: int, stdout: str, stderr: str):
        self.command = ' '.join(args)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        detail = (stderr or stdout or '').strip()
        super().__init__(f"git {self.command} failed (exit {returncode}): {detail}")


class PullOutcome(Enum):
    SUCCESS = "success"
    CONFLICT = "conflict"
    NETWORK_ERROR = "network_error"


class PushOutcome(Enum):
    SUCCESS = "success"
    REJECTED = "rejected"
    NETWORK_ERROR = "network_error"


class StoreStatus(Enum):
    CLEAN = "clean"
    DIRTY = "dirty"
    CONFLICTED = "conflicted"


@dataclass
class PullResult:
    outcome: PullOutcome
    message: str = ""
    error_kind: Optional[str] = None


@dataclass
class PushResult:
    outcome: PushOutcome
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome == PushOutcome.SUCCESS


AUTH_HINTS = [
    "authentication failed",
    "fatal: authentication",
    "bad credentials",
    "permission denied (publickey)",
    "could not read username",
    "access denied",
    "unauthorized",
]

NETWORK_HINTS = [
    "could not resolve host",
    "network is unreachable",
    "connection timed out",
    "connection reset",
    "connection refused",
    "failed to connect",
    "temporary failure",
    "name or service not known",
    "timed out",
    "proxy error",
    "tls",
    "ssl",
]

CONFLICT_HINTS = [
    "conflict",
    "non-fast-forward",
    "fetch first",
    "[rejected]",
    "needs merge",
    "would be overwritten",
]

UNMERGED_CODES = {"DD", "AU", "UD", "UA", "DU", "AA", "UU"}


def classify_error(text: str) -> str:
    """Classify git failure output as auth, network, conflict or unknown."""
    lowered = (text or "").lower()
    if any(hint in lowered for hint in AUTH_HINTS):
        return "auth"
    if any(hint in lowered for hint in NETWORK_HINTS):
        return "network"
    if any(hint in lowered for hint in CONFLICT_HINTS):
        return "conflict"
    return "unknown"


class GitStore:
    """Object store adapter backed by a local git working copy."""

    def __init__(
        self,
        root: Path,
        pull_timeout: int = Defaults.PULL_TIMEOUT,
        push_timeout: int = Defaults.PUSH_TIMEOUT,
        local_timeout: int = Defaults.LOCAL_TIMEOUT,
        remote: Optional[str] = None,
        branch: Optional[str] = None
    ):
        self.root = Path(root)
        self.pull_timeout = pull_timeout
        self.push_timeout = push_timeout
        self.local_timeout = local_timeout
        self.remote = remote
        self.branch = branch

    def _run(self, args: List[str], timeout: int, check: bool = True) -> subprocess.CompletedProcess:
        """Execute a git command in the working copy.

        Raises:
            StoreTimeout: If the command times out
            StoreUnavailable: If git is not installed
            StoreCommandError: If check is set and the command fails
        """
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=str(self.root),
                capture_output=True,
                text=True,
                timeout=timeout
            )
        except subprocess.TimeoutExpired:
            raise StoreTimeout(f"git {' '.join(args)} timed out after {timeout}s")
        except FileNotFoundError:
            raise StoreUnavailable("git not found")

        if check and result.returncode != 0:
            raise StoreCommandError(args, result.returncode, result.stdout, result.stderr)
        return result

    def _remote_args(self) -> List[str]:
        if self.remote and self.branch:
            return [self.remote, self.branch]
        if self.remote:
            return [self.remote]
        return []

    def pull(self) -> PullResult:
        """Fetch and merge remote changes.

        Merge (not rebase) keeps the `<<<<<<<` side of every conflict hunk
        as the local version.
        """
        args = ["pull", "--no-rebase", "--no-edit", "--quiet", *self._remote_args()]
        try:
            self._run(args, timeout=self.pull_timeout)
        except StoreTimeout as e:
            return PullResult(PullOutcome.NETWORK_ERROR, str(e), "network")
        except StoreCommandError as e:
            if self.conflicted_files():
                return PullResult(PullOutcome.CONFLICT, "Merge conflicts in working tree", "conflict")
            return PullResult(PullOutcome.NETWORK_ERROR, str(e), classify_error(e.stderr or e.stdout))

        if self.conflicted_files():
            return PullResult(PullOutcome.CONFLICT, "Merge conflicts in working tree", "conflict")
        return PullResult(PullOutcome.SUCCESS, "Synced with cloud")

    def push(self) -> PushResult:
        """Push local commits to the remote."""
        args = ["push", "--quiet", *self._remote_args()]
        try:
            self._run(args, timeout=self.push_timeout)
        except StoreTimeout as e:
            return PushResult(PushOutcome.NETWORK_ERROR, str(e), "network")
        except StoreCommandError as e:
            kind = classify_error(e.stderr or e.stdout)
            outcome = PushOutcome.REJECTED if kind == "conflict" else PushOutcome.NETWORK_ERROR
            return PushResult(outcome, str(e), kind)
        return PushResult(PushOutcome.SUCCESS)

    def status(self) -> StoreStatus:
        result = self._run(["status", "--porcelain"], timeout=self.local_timeout)
        lines = [line for line in result.stdout.splitlines() if line.strip()]
        if not lines:
            return StoreStatus.CLEAN
        if any(line[:2] in UNMERGED_CODES for line in lines):
            return StoreStatus.CONFLICTED
        return StoreStatus.DIRTY

    def conflicted_files(self) -> List[str]:
        """Paths (relative to root) with unresolved merge conflicts."""
        result = self._run(
            ["diff", "--name-only", "--diff-filter=U"],
            timeout=self.local_timeout,
            check=False
        )
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def stage(self, paths: Optional[List[str]] = None) -> None:
        if paths:
            self._run(["add", "--", *paths], timeout=self.local_timeout)
        else:
            self._run(["add", "-A"], timeout=self.local_timeout)

    def untrack_all(self) -> None:
        """Drop everything from the index so the next stage honours `.gitignore`."""
        self._run(
            ["rm", "-r", "--cached", "--quiet", "--ignore-unmatch", "."],
            timeout=self.local_timeout
        )

    def commit(self, message: str) -> str:
        """Commit staged changes and return the new commit id."""
        self._run(["commit", "--quiet", "-m", message], timeout=self.local_timeout * 2)
        return self.head()

    def head(self) -> str:
        return self._run(["rev-parse", "HEAD"], timeout=self.local_timeout).stdout.strip()
