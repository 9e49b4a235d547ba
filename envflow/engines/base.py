"""
Shared pipeline plumbing for the promotion and rollback engines.

Runs are single-threaded and synchronous. The engine holds no lock: only one
mutating run may operate on a given clone at a time, and guaranteeing that is
the caller's job (CI concurrency groups, a shell wrapper, ...).
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from envflow.environments import Environment, EnvironmentRegistry
from envflow.errors import (
    DeployFailure, DirtyWorkingTree, EnvflowError, MissingBranch, OperationCancelled,
)
from envflow.gateways.deploy_gateway import DeployGateway, DeploymentOutcome, deploy_all
from envflow.gateways.git_gateway import GitGateway, RevisionRange
from envflow.engines.models import OperationResult, OperationState

logger = logging.getLogger(__name__)

# Receives the confirmation question and the revisions about to change.
ConfirmCallback = Callable[[str, RevisionRange], bool]


def always_confirm(message: str, preview: RevisionRange) -> bool:
    return True


class OperationEngine:
    """Base for linear git + deploy pipelines."""

    operation = ""

    def __init__(self, registry: EnvironmentRegistry, git: GitGateway,
                 deployers: Optional[List[DeployGateway]] = None,
                 confirm: Optional[ConfirmCallback] = None,
                 remote: str = "origin"):
        self.registry = registry
        self.git = git
        self.deployers = list(deployers or [])
        self.confirm = confirm or always_confirm
        self.remote = remote

    # ── Stage bookkeeping ─────────────────────────────────────────

    def _enter(self, result: OperationResult, stage) -> None:
        value = stage.value if hasattr(stage, "value") else str(stage)
        result.stage = value
        result.stages.append(value)
        logger.debug(f"[{self.operation}] {result.run_id} → {value}")

    def _finish(self, result: OperationResult, done_stage) -> OperationResult:
        result.state = OperationState.DONE
        result.stages.append(done_stage.value)
        result.completed_at = datetime.utcnow()
        logger.info(f"[{self.operation}] {result.run_id} completed on {result.environment}")
        return result

    def _fail(self, result: OperationResult, error: EnvflowError, failed_stage) -> OperationResult:
        error.stage = error.stage or result.stage
        if error.repo_state:
            result.repo_state = error.repo_state
        else:
            error.repo_state = result.repo_state
        result.error = error
        result.state = OperationState.FAILED
        result.stages.append(failed_stage.value)
        result.completed_at = datetime.utcnow()
        logger.error(
            f"[{self.operation}] {result.run_id} failed at {error.stage}: {error.message} "
            f"(repository: {result.repo_state})"
        )
        return result

    # ── Shared steps ──────────────────────────────────────────────

    def _require_clean_tree(self) -> None:
        if self.git.has_uncommitted_changes():
            raise DirtyWorkingTree()

    def _ensure_local_branch(self, branch: str) -> None:
        if self.git.branch_exists(branch):
            return
        if not self.git.branch_exists(branch, remote=self.remote):
            raise MissingBranch(branch, self.remote)
        logger.warning(f"[{self.operation}] Branch '{branch}' does not exist locally; creating from remote")
        self.git.create_local_from_remote(branch, self.remote)

    def _sync_branch(self, branch: str, result: Optional[OperationResult] = None) -> None:
        self.git.checkout(branch)
        if result is not None:
            result.repo_state = f"on branch {branch}, pulling {self.remote}/{branch}"
        self.git.pull(branch, self.remote)

    def _ask(self, message: str, preview: RevisionRange) -> None:
        if not self.confirm(message, preview):
            raise OperationCancelled(f"{self.operation.capitalize()} cancelled")

    def _deploy(self, result: OperationResult, env: Environment, wait: bool,
                branch: Optional[str] = None) -> DeploymentOutcome:
        outcome = deploy_all(self.deployers, env, revision=result.revision, wait=wait, branch=branch)
        result.outcome = outcome
        if not outcome.succeeded:
            platforms = ", ".join(d.platform for d in outcome.failed)
            raise DeployFailure(
                f"Deploy of {env.name} failed on: {platforms}",
                outcome=outcome,
                repo_state=f"{result.repo_state}; deploy not rolled back",
            )
        return outcome
