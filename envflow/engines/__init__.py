"""Engines — promotion (merge), rollback (revert) and deploy pipelines over git + deploy gateways."""
from .models import (
    PromotionRequest, RollbackRequest, OperationResult, OperationState,
    PromotionStage, RollbackStage, DeployStage,
)
from .base import OperationEngine, ConfirmCallback, always_confirm
from .promotion import PromotionEngine
from .rollback import RollbackEngine
from .deployment import DeployEngine

__all__ = [
    "PromotionRequest", "RollbackRequest", "OperationResult", "OperationState",
    "PromotionStage", "RollbackStage", "DeployStage",
    "OperationEngine", "ConfirmCallback", "always_confirm",
    "PromotionEngine", "RollbackEngine", "DeployEngine",
]
