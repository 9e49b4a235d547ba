"""
Request, stage and result models for the promotion, rollback and deploy engines.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from envflow.errors import EnvflowError, ConflictError
from envflow.gateways.git_gateway import RevisionRange
from envflow.gateways.deploy_gateway import DeploymentOutcome


class PromotionStage(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    DIFF_PREVIEW = "diff_preview"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    MERGING = "merging"
    PUSHING = "pushing"
    DEPLOYING = "deploying"
    DONE = "done"
    FAILED = "failed"


class RollbackStage(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    PREVIEWING = "previewing"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    REVERTING = "reverting"
    PUSHING = "pushing"
    REDEPLOYING = "redeploying"
    DONE = "done"
    FAILED = "failed"


class OperationState(str, Enum):
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


class PromotionRequest(BaseModel):
    """Merge ``source`` into ``target`` and redeploy ``target``."""
    source: str
    target: str
    allow_empty: bool = False   # explicit opt-in to promote with zero new revisions
    deploy: bool = True
    wait: bool = True


class RollbackRequest(BaseModel):
    """Revert the last ``count`` revisions of ``environment`` and redeploy it."""
    environment: str
    count: int = 1
    deploy: bool = True
    wait: bool = True


class OperationResult(BaseModel):
    """Record of one promotion or rollback run."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    run_id: str = Field(default_factory=lambda: f"run-{uuid.uuid4().hex[:8]}")
    operation: str                      # promote, rollback, deploy
    environment: str
    source: Optional[str] = None
    state: OperationState = OperationState.RUNNING
    stage: str = "idle"                 # last stage entered before the terminal state
    stages: List[str] = Field(default_factory=list)
    revisions: Optional[RevisionRange] = None
    revision: str = ""                  # resulting tip of the environment branch
    outcome: Optional[DeploymentOutcome] = None
    repo_state: str = "untouched"
    error: Optional[EnvflowError] = Field(default=None, exclude=True)
    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    @property
    def ok(self) -> bool:
        return self.state == OperationState.DONE

    @property
    def error_code(self) -> Optional[str]:
        return self.error.code if self.error else None

    @property
    def conflicted_files(self) -> List[str]:
        return list(self.error.files) if isinstance(self.error, ConflictError) else []


class DeployStage(str, Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    DEPLOYING = "deploying"
    DONE = "done"
    FAILED = "failed"
