"""
Git Gateway — capability interface over version-control operations.
The engines only talk to ``GitGateway``; ``SubprocessGitGateway`` runs the
``git`` binary against an explicit repository path.
"""

import os
import time
import logging
import subprocess
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence, Union

from pydantic import BaseModel, Field

from envflow.errors import (
    GitCommandError, MergeConflict, NetworkError, PushRejected, RevertConflict,
)
from envflow.gateways.retry import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════════
# Models
# ══════════════════════════════════════════════════════════════════════════════

class Revision(BaseModel):
    """A single commit on a branch."""
    sha: str
    summary: str = ""
    is_merge: bool = False

    @property
    def short_sha(self) -> str:
        return self.sha[:7]

    def oneline(self) -> str:
        return f"{self.short_sha} {self.summary}"


class RevisionRange(BaseModel):
    """Ordered revisions between two points in history, newest first."""
    from_ref: str
    to_ref: str
    revisions: List[Revision] = Field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.revisions)

    @property
    def is_empty(self) -> bool:
        return not self.revisions

    def summaries(self) -> List[str]:
        return [r.oneline() for r in self.revisions]


# Substrings of git's stderr (LC_ALL=C) that mean the remote was unreachable.
NETWORK_FAILURE_MARKERS = (
    "could not resolve host",
    "unable to access",
    "connection refused",
    "connection timed out",
    "operation timed out",
    "timed out after",
    "network is unreachable",
    "could not read from remote repository",
    "the remote end hung up unexpectedly",
    "early eof",
)

PUSH_REJECTED_MARKERS = (
    "[rejected]",
    "[remote rejected]",
    "failed to push some refs",
    "non-fast-forward",
    "protected branch",
)


def is_network_failure(stderr: str) -> bool:
    text = (stderr or "").lower()
    return any(marker in text for marker in NETWORK_FAILURE_MARKERS)


def is_push_rejection(stderr: str) -> bool:
    text = (stderr or "").lower()
    return any(marker in text for marker in PUSH_REJECTED_MARKERS)


# ══════════════════════════════════════════════════════════════════════════════
# Interface
# ══════════════════════════════════════════════════════════════════════════════

class GitGateway(ABC):
    """Version-control operations consumed by the promotion/rollback engines."""

    @abstractmethod
    def has_uncommitted_changes(self) -> bool: ...

    @abstractmethod
    def fetch(self, remote: str) -> None: ...

    @abstractmethod
    def branch_exists(self, name: str, remote: Optional[str] = None) -> bool: ...

    @abstractmethod
    def create_local_from_remote(self, name: str, remote: str) -> None: ...

    @abstractmethod
    def checkout(self, branch: str) -> None: ...

    @abstractmethod
    def pull(self, branch: str, remote: str) -> None: ...

    @abstractmethod
    def revision_range(self, from_ref: str, to_ref: str) -> RevisionRange: ...

    @abstractmethod
    def recent_revisions(self, ref: str, count: int) -> RevisionRange: ...

    @abstractmethod
    def count_revisions(self, ref: str) -> int: ...

    @abstractmethod
    def merge(self, source: str, into: str, message: str) -> None: ...

    @abstractmethod
    def revert(self, revisions: Union[RevisionRange, Sequence[Revision]], message: str) -> None: ...

    @abstractmethod
    def push(self, branch: str, remote: str) -> None: ...

    @abstractmethod
    def current_branch(self) -> str: ...

    @abstractmethod
    def head_revision(self, ref: str = "HEAD") -> str: ...

    def remote_url(self, remote: str) -> Optional[str]:
        return None


# ══════════════════════════════════════════════════════════════════════════════
# Subprocess implementation
# ══════════════════════════════════════════════════════════════════════════════

_LOG_FORMAT = "%H%x09%P%x09%s"


class SubprocessGitGateway(GitGateway):
    """Runs ``git`` in ``repo_path``. Network operations retry per ``retry_policy``."""

    def __init__(self, repo_path: str = ".", retry_policy: Optional[RetryPolicy] = None,
                 timeout_seconds: int = 300, git_binary: str = "git",
                 sleep: Callable[[float], None] = time.sleep):
        self.repo_path = os.path.abspath(repo_path)
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout_seconds = timeout_seconds
        self.git_binary = git_binary
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings) -> "SubprocessGitGateway":
        return cls(
            repo_path=settings.repo_path,
            retry_policy=RetryPolicy.from_settings(settings),
            timeout_seconds=settings.git_timeout_seconds,
        )

    # ── Plumbing ──────────────────────────────────────────────────

    def _run(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        logger.debug(f"[Git] git {' '.join(args)}")
        if not os.path.isdir(self.repo_path):
            raise GitCommandError(args, 128, f"repository path {self.repo_path} does not exist or is not a directory")
        try:
            result = subprocess.run(
                [self.git_binary, *args],
                cwd=self.repo_path,
                capture_output=True, text=True,
                timeout=self.timeout_seconds,
                env={**os.environ, "GIT_TERMINAL_PROMPT": "0", "LC_ALL": "C"},
            )
        except FileNotFoundError:
            raise GitCommandError(args, 127, f"{self.git_binary} executable not found")
        except NotADirectoryError:
            raise GitCommandError(args, 128, f"repository path {self.repo_path} is not a directory")
        except subprocess.TimeoutExpired:
            raise GitCommandError(args, -1, f"timed out after {self.timeout_seconds}s")
        if check and result.returncode != 0:
            raise GitCommandError(args, result.returncode, result.stderr, result.stdout)
        return result

    def _run_network(self, description: str, *args: str) -> subprocess.CompletedProcess:
        def attempt() -> subprocess.CompletedProcess:
            try:
                return self._run(*args)
            except GitCommandError as e:
                if is_network_failure(e.stderr):
                    raise NetworkError(f"{description} failed: {e.message}") from e
                raise
        return call_with_retry(attempt, self.retry_policy, (NetworkError,), description, self._sleep)

    def _parse_log(self, output: str) -> List[Revision]:
        revisions = []
        for line in output.splitlines():
            if not line.strip():
                continue
            sha, parents, summary = (line.split("\t", 2) + ["", ""])[:3]
            revisions.append(Revision(sha=sha, summary=summary, is_merge=len(parents.split()) > 1))
        return revisions

    def conflicted_files(self) -> List[str]:
        result = self._run("diff", "--name-only", "--diff-filter=U", check=False)
        return [f for f in result.stdout.splitlines() if f.strip()]

    # ── Queries ───────────────────────────────────────────────────

    def has_uncommitted_changes(self) -> bool:
        result = self._run("status", "--porcelain", "--untracked-files=no")
        return bool(result.stdout.strip())

    def branch_exists(self, name: str, remote: Optional[str] = None) -> bool:
        ref = f"refs/remotes/{remote}/{name}" if remote else f"refs/heads/{name}"
        return self._run("show-ref", "--verify", "--quiet", ref, check=False).returncode == 0

    def current_branch(self) -> str:
        return self._run("rev-parse", "--abbrev-ref", "HEAD").stdout.strip()

    def head_revision(self, ref: str = "HEAD") -> str:
        return self._run("rev-parse", ref).stdout.strip()

    def remote_url(self, remote: str) -> Optional[str]:
        result = self._run("remote", "get-url", remote, check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def revision_range(self, from_ref: str, to_ref: str) -> RevisionRange:
        output = self._run("log", f"--format={_LOG_FORMAT}", f"{from_ref}..{to_ref}").stdout
        return RevisionRange(from_ref=from_ref, to_ref=to_ref, revisions=self._parse_log(output))

    def recent_revisions(self, ref: str, count: int) -> RevisionRange:
        output = self._run(
            "log", "--first-parent", f"--max-count={count}", f"--format={_LOG_FORMAT}", ref,
        ).stdout
        revisions = self._parse_log(output)
        return RevisionRange(from_ref=f"{ref}~{len(revisions)}", to_ref=ref, revisions=revisions)

    def count_revisions(self, ref: str) -> int:
        return int(self._run("rev-list", "--first-parent", "--count", ref).stdout.strip() or 0)

    # ── Network ───────────────────────────────────────────────────

    def fetch(self, remote: str) -> None:
        logger.info(f"[Git] Fetching latest changes from {remote}")
        self._run_network(f"fetch {remote}", "fetch", remote)

    def pull(self, branch: str, remote: str) -> None:
        logger.info(f"[Git] Pulling {remote}/{branch}")
        try:
            self._run_network(f"pull {remote}/{branch}", "pull", "--no-rebase", "--no-edit", remote, branch)
        except GitCommandError:
            files = self.conflicted_files()
            if not files:
                raise
            raise MergeConflict(
                f"Pull of {remote}/{branch} into {branch} has conflicts. Please resolve conflicts manually.",
                files=files,
                repo_state=f"pull of {remote}/{branch} conflicted on branch {branch}, "
                           f"unresolved (git merge --abort to undo)",
            )

    def push(self, branch: str, remote: str) -> None:
        logger.info(f"[Git] Pushing {branch} to {remote}")

        def attempt() -> subprocess.CompletedProcess:
            try:
                return self._run("push", remote, branch)
            except GitCommandError as e:
                if is_push_rejection(e.stderr):
                    reason = e.stderr.strip().splitlines()[-1] if e.stderr.strip() else ""
                    raise PushRejected(
                        branch, reason,
                        repo_state=f"local {branch} is ahead of {remote}/{branch}; nothing was pushed",
                    ) from e
                if is_network_failure(e.stderr):
                    raise NetworkError(f"push {branch} failed: {e.message}") from e
                raise

        call_with_retry(attempt, self.retry_policy, (NetworkError,), f"push {remote}/{branch}", self._sleep)

    # ── Local mutation ────────────────────────────────────────────

    def create_local_from_remote(self, name: str, remote: str) -> None:
        logger.info(f"[Git] Creating local branch {name} from {remote}/{name}")
        self._run("branch", "--track", name, f"{remote}/{name}")

    def checkout(self, branch: str) -> None:
        self._run("checkout", branch)

    def merge(self, source: str, into: str, message: str) -> None:
        if self.current_branch() != into:
            self.checkout(into)
        logger.info(f"[Git] Merging {source} into {into}")
        try:
            self._run("merge", "--no-ff", "-m", message, source)
        except GitCommandError:
            files = self.conflicted_files()
            if not files:
                raise
            raise MergeConflict(
                f"Merge of {source} into {into} has conflicts. Please resolve conflicts manually.",
                files=files,
                repo_state=f"merge conflict on branch {into}, unresolved (git merge --abort to undo)",
            )

    def revert(self, revisions: Union[RevisionRange, Sequence[Revision]], message: str) -> None:
        """Revert newest-first into a single inverse commit; history is never rewritten."""
        items = revisions.revisions if isinstance(revisions, RevisionRange) else list(revisions)
        branch = self.current_branch()
        for rev in items:
            args = ["revert", "--no-commit"]
            if rev.is_merge:
                args += ["-m", "1"]
            try:
                self._run(*args, rev.sha)
            except GitCommandError:
                files = self.conflicted_files()
                if not files:
                    raise
                raise RevertConflict(
                    f"Revert of {rev.short_sha} on {branch} has conflicts. Please resolve conflicts manually.",
                    files=files,
                    repo_state=f"revert conflict on branch {branch}, unresolved (git reset --merge to undo)",
                )
        self._run("commit", "--allow-empty", "-m", message)
