"""
Promotion Engine — merge a lower environment's branch into a higher one.

Idle → Validating → DiffPreview → AwaitingConfirmation → Merging → Pushing →
Deploying → Done | Failed

No step is retried here and no conflict is ever resolved automatically. Once
the merge has started the run goes to a terminal state; a merge that was
committed locally but not pushed is reported, not undone.
"""

import logging
from typing import Tuple

from envflow.environments import Environment
from envflow.errors import (
    EnvflowError, InvalidPromotionRequest, NoChangesToPromote, UnknownEnvironment,
)
from envflow.engines.base import OperationEngine
from envflow.engines.models import OperationResult, PromotionRequest, PromotionStage

logger = logging.getLogger(__name__)


class PromotionEngine(OperationEngine):
    """Validates and executes a promotion between two environments."""

    operation = "promote"

    def validate(self, request: PromotionRequest) -> Tuple[Environment, Environment]:
        try:
            source = self.registry.resolve(request.source)
        except UnknownEnvironment as e:
            raise InvalidPromotionRequest(f"Invalid source branch: {e.message}", repo_state="untouched") from e
        try:
            target = self.registry.resolve(request.target)
        except UnknownEnvironment as e:
            raise InvalidPromotionRequest(f"Invalid target branch: {e.message}", repo_state="untouched") from e
        if source.name == target.name:
            raise InvalidPromotionRequest(
                "Source and target cannot be the same branch", repo_state="untouched",
            )
        if not self.registry.is_forward(source, target):
            logger.warning(f"[promote] {source.name} → {target.name} moves against the promotion order")
        return source, target

    def run(self, request: PromotionRequest) -> OperationResult:
        result = OperationResult(operation=self.operation, environment=request.target, source=request.source)
        try:
            # 1-2. validate, clean tree; nothing touched so far
            self._enter(result, PromotionStage.VALIDATING)
            source, target = self.validate(request)
            result.environment, result.source = target.name, source.name
            self._require_clean_tree()

            # 3-4. fetch, make sure both branches exist, preview what will move
            self._enter(result, PromotionStage.DIFF_PREVIEW)
            logger.info(f"[promote] Promoting from {source.name} to {target.name}")
            self.git.fetch(self.remote)
            self._ensure_local_branch(source.branch)
            self._ensure_local_branch(target.branch)
            self._sync_branch(source.branch, result)
            result.repo_state = f"on branch {source.branch}, nothing merged or pushed"

            preview = self.git.revision_range(f"{self.remote}/{target.branch}", source.branch)
            result.revisions = preview
            if preview.is_empty:
                if not request.allow_empty:
                    raise NoChangesToPromote(
                        f"No new commits to promote from {source.name} to {target.name}",
                    )
                logger.warning("[promote] No new commits; promoting anyway (explicit opt-in)")
            else:
                logger.info(f"[promote] {preview.count} new commit(s) will be promoted")

            # 5. confirmation
            self._enter(result, PromotionStage.AWAITING_CONFIRMATION)
            self._ask(f"You are about to promote {source.name} to {target.name}", preview)

            # 6. merge
            self._enter(result, PromotionStage.MERGING)
            self._sync_branch(target.branch, result)
            result.repo_state = f"on branch {target.branch}, nothing merged or pushed"
            self.git.merge(
                source.branch, into=target.branch, message=f"Promote {source.name} to {target.name}",
            )
            result.revision = self.git.head_revision(target.branch)
            result.repo_state = f"merge commit on {target.branch} is local only; not pushed to {self.remote}"

            # 7. push
            self._enter(result, PromotionStage.PUSHING)
            self.git.push(target.branch, self.remote)
            result.repo_state = f"{target.branch} pushed to {self.remote} at {result.revision[:7]}"

            # 8. deploy
            if request.deploy and self.deployers:
                self._enter(result, PromotionStage.DEPLOYING)
                self._deploy(result, target, request.wait)
        except EnvflowError as e:
            return self._fail(result, e, PromotionStage.FAILED)
        return self._finish(result, PromotionStage.DONE)
