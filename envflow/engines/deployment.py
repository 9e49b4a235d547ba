"""
Deploy Engine — deploy whatever a branch currently points at.

Registered branches (and their aliases) deploy to their environment; any other
branch gets an ad-hoc preview environment with a sanitised service name.
"""

import logging
from typing import Optional

from envflow.errors import EnvflowError
from envflow.engines.base import OperationEngine
from envflow.engines.models import DeployStage, OperationResult

logger = logging.getLogger(__name__)


class DeployEngine(OperationEngine):
    """Deploys a branch without touching git history."""

    operation = "deploy"

    def run(self, branch: Optional[str] = None, wait: bool = True) -> OperationResult:
        result = OperationResult(operation=self.operation, environment=branch or "")
        try:
            self._enter(result, DeployStage.RESOLVING)
            branch = branch or self.git.current_branch()
            env = self.registry.for_branch(branch)
            if env is None:
                env = self.registry.preview_environment(branch)
                logger.info(f"[deploy] Deploying {branch} to PREVIEW environment")
            else:
                logger.info(f"[deploy] Deploying {branch} to {env.label or env.name}")
            result.environment = env.name
            result.revision = self.git.head_revision(branch)
            result.repo_state = f"{branch} at {result.revision[:7]}, unchanged"

            self._enter(result, DeployStage.DEPLOYING)
            self._deploy(result, env, wait, branch=branch)
        except EnvflowError as e:
            return self._fail(result, e, DeployStage.FAILED)
        return self._finish(result, DeployStage.DONE)
