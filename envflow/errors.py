"""
Error taxonomy for promotions and rollbacks.

Every error carries the pipeline stage it was raised in and a description of
the state the repository / remote was left in, so a human can resume safely.
"""

from typing import List, Optional, Sequence


class EnvflowError(Exception):
    """Base class for all orchestrator failures."""

    code = "error"

    def __init__(self, message: str, stage: str = "", repo_state: str = ""):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.repo_state = repo_state


# ── Request validation (caught before any mutation) ──────────────────────────

class InvalidRequest(EnvflowError):
    code = "invalid_request"


class UnknownEnvironment(InvalidRequest):
    code = "unknown_environment"

    def __init__(self, name: str, known: Sequence[str] = ()):
        known_list = ", ".join(known)
        message = f"Unknown environment '{name}'"
        if known_list:
            message += f". Valid environments: {known_list}"
        super().__init__(message, repo_state="untouched")
        self.name = name
        self.known = list(known)


class InvalidPromotionRequest(InvalidRequest):
    code = "invalid_promotion_request"


class InvalidRollbackRequest(InvalidRequest):
    code = "invalid_rollback_request"


# ── Preconditions ────────────────────────────────────────────────────────────

class DirtyWorkingTree(EnvflowError):
    code = "dirty_working_tree"

    def __init__(self, stage: str = ""):
        super().__init__(
            "You have uncommitted changes. Please commit or stash them first.",
            stage=stage, repo_state="untouched",
        )


class MissingBranch(EnvflowError):
    code = "missing_branch"

    def __init__(self, branch: str, remote: str, stage: str = ""):
        super().__init__(
            f"Branch '{branch}' exists neither locally nor on '{remote}'",
            stage=stage, repo_state="fetched, no branch changed",
        )
        self.branch = branch
        self.remote = remote


class NoChangesToPromote(EnvflowError):
    code = "no_changes_to_promote"


class InsufficientHistory(EnvflowError):
    code = "insufficient_history"

    def __init__(self, branch: str, requested: int, available: int, stage: str = ""):
        super().__init__(
            f"Cannot roll back {requested} revision(s) on {branch}: "
            f"only {available} revision(s) in its history",
            stage=stage, repo_state=f"on branch {branch}, unchanged",
        )
        self.branch = branch
        self.requested = requested
        self.available = available


class OperationCancelled(EnvflowError):
    code = "cancelled"


# ── Git failures ─────────────────────────────────────────────────────────────

_ERROR_PREFIXES = ("fatal:", "error:", "conflict", "automatic merge failed")


def _error_line(stderr: str, stdout: str = "") -> str:
    """Most telling line of git output. CONFLICT lines go to stdout, not stderr."""
    for text in (stderr, stdout):
        lines = [line.strip() for line in (text or "").splitlines() if line.strip()]
        flagged = [line for line in lines if line.lower().startswith(_ERROR_PREFIXES)]
        if flagged:
            return flagged[-1]
    for text in (stderr, stdout):
        lines = [line.strip() for line in (text or "").splitlines() if line.strip()]
        if lines:
            return lines[-1]
    return ""


class GitCommandError(EnvflowError):
    code = "git_error"

    def __init__(self, args: Sequence[str], returncode: int, stderr: str = "", stdout: str = ""):
        command = " ".join(["git", *args])
        detail = _error_line(stderr, stdout) or f"exit status {returncode}"
        super().__init__(f"'{command}' failed: {detail}")
        self.command_args = list(args)
        self.returncode = returncode
        self.stderr = stderr
        self.stdout = stdout


class NetworkError(EnvflowError):
    """Remote unreachable. Safe to retry; nothing was changed locally."""

    code = "network_error"


class ConflictError(EnvflowError):
    code = "conflict"

    def __init__(self, message: str, files: Optional[List[str]] = None,
                 stage: str = "", repo_state: str = ""):
        super().__init__(message, stage=stage, repo_state=repo_state)
        self.files = list(files or [])


class MergeConflict(ConflictError):
    code = "merge_conflict"


class RevertConflict(ConflictError):
    code = "revert_conflict"


class PushRejected(EnvflowError):
    code = "push_rejected"

    def __init__(self, branch: str, reason: str = "", stage: str = "", repo_state: str = ""):
        super().__init__(
            f"Push of {branch} was rejected: {reason or 'remote refused the update'}",
            stage=stage, repo_state=repo_state,
        )
        self.branch = branch
        self.reason = reason


# ── Deploy failures ──────────────────────────────────────────────────────────

class DeployFailure(EnvflowError):
    """Repository mutation succeeded, the remote deploy did not."""

    code = "deploy_failure"

    def __init__(self, message: str, outcome=None, stage: str = "", repo_state: str = ""):
        super().__init__(message, stage=stage, repo_state=repo_state)
        self.outcome = outcome
