"""
Rollback Engine — undo the most recent revisions of an environment branch.

Idle → Validating → Previewing → AwaitingConfirmation → Reverting → Pushing →
Redeploying → Done | Failed

Rollback is append-only: it creates an inverse commit with ``git revert`` and
never rewrites history, so the result is always safe to push to a shared
branch. Revisions are counted along the first-parent chain, so one promotion
merge is one revision.
"""

import logging

from envflow.environments import Environment
from envflow.errors import (
    EnvflowError, InsufficientHistory, InvalidRollbackRequest, UnknownEnvironment,
)
from envflow.engines.base import OperationEngine
from envflow.engines.models import OperationResult, RollbackRequest, RollbackStage

logger = logging.getLogger(__name__)


def rollback_message(env: Environment, summaries) -> str:
    lines = [f"Rollback {env.name}: revert {len(summaries)} revision(s)", ""]
    lines += [f"Reverts {s}" for s in summaries]
    return "\n".join(lines)


class RollbackEngine(OperationEngine):
    """Validates and executes a rollback of N revisions on one environment."""

    operation = "rollback"

    def validate(self, request: RollbackRequest) -> Environment:
        if isinstance(request.count, bool) or not isinstance(request.count, int) or request.count < 1:
            raise InvalidRollbackRequest(
                f"Invalid number of commits: {request.count}. Must be a positive integer",
                repo_state="untouched",
            )
        try:
            return self.registry.resolve(request.environment)
        except UnknownEnvironment as e:
            raise InvalidRollbackRequest(f"Invalid environment: {e.message}", repo_state="untouched") from e

    def run(self, request: RollbackRequest) -> OperationResult:
        result = OperationResult(operation=self.operation, environment=request.environment)
        try:
            self._enter(result, RollbackStage.VALIDATING)
            env = self.validate(request)
            result.environment = env.name
            self._require_clean_tree()

            self._enter(result, RollbackStage.PREVIEWING)
            logger.info(f"[rollback] Rolling back {request.count} commit(s) on {env.name}")
            self.git.fetch(self.remote)
            self._ensure_local_branch(env.branch)
            self._sync_branch(env.branch, result)
            result.repo_state = f"on branch {env.branch}, unchanged"

            available = self.git.count_revisions(env.branch)
            if available < request.count:
                raise InsufficientHistory(env.branch, request.count, available)
            preview = self.git.recent_revisions(env.branch, request.count)
            result.revisions = preview

            self._enter(result, RollbackStage.AWAITING_CONFIRMATION)
            self._ask(
                f"You are about to rollback {env.name}. This will create a new commit "
                f"that reverses {preview.count} revision(s)",
                preview,
            )

            self._enter(result, RollbackStage.REVERTING)
            self.git.revert(preview, rollback_message(env, preview.summaries()))
            result.revision = self.git.head_revision(env.branch)
            result.repo_state = f"revert commit on {env.branch} is local only; not pushed to {self.remote}"

            self._enter(result, RollbackStage.PUSHING)
            self.git.push(env.branch, self.remote)
            result.repo_state = f"{env.branch} pushed to {self.remote} at {result.revision[:7]}"

            if request.deploy and self.deployers:
                self._enter(result, RollbackStage.REDEPLOYING)
                self._deploy(result, env, request.wait)
        except EnvflowError as e:
            return self._fail(result, e, RollbackStage.FAILED)
        return self._finish(result, RollbackStage.DONE)

    def reject(self, environment: str, error: EnvflowError) -> OperationResult:
        """Failed result for a request that could not even be built (e.g. a bad count)."""
        result = OperationResult(operation=self.operation, environment=environment)
        self._enter(result, RollbackStage.VALIDATING)
        return self._fail(result, error, RollbackStage.FAILED)
