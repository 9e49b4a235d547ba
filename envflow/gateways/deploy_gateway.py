"""
Deploy Gateway — capability interface over hosting-platform deploys.
Each gateway covers one platform; the engines fan out over the configured list
and aggregate the per-platform results into a ``DeploymentOutcome``.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from envflow.environments import Environment

logger = logging.getLogger(__name__)


class DeployStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    PENDING = "pending"      # accepted by the platform, not waited on


class PlatformDeployment(BaseModel):
    """Result of triggering a deploy on one platform."""
    platform: str
    status: DeployStatus
    url: Optional[str] = None
    deploy_id: str = ""
    detail: str = ""


class DeploymentOutcome(BaseModel):
    """Aggregate result of deploying one environment to every configured platform."""
    environment: str
    revision: str = ""
    deployments: List[PlatformDeployment] = Field(default_factory=list)

    @property
    def url(self) -> Optional[str]:
        return next((d.url for d in self.deployments if d.url), None)

    @property
    def failed(self) -> List[PlatformDeployment]:
        return [d for d in self.deployments if d.status == DeployStatus.FAILED]

    @property
    def succeeded(self) -> bool:
        """False only when a platform FAILED. SKIPPED and PENDING platforms do not fail the outcome."""
        return not self.failed

    def status_for(self, platform: str) -> Optional[DeployStatus]:
        return next((d.status for d in self.deployments if d.platform == platform), None)


class DeployGateway(ABC):
    """One hosting platform. Triggers are never retried inside the gateway."""

    platform: str = ""

    @abstractmethod
    def trigger_deploy(self, environment: Environment, revision: str = "",
                       wait: bool = True, branch: Optional[str] = None) -> PlatformDeployment:
        """Deploy ``revision`` of ``branch`` (default: the environment's branch)."""

    @abstractmethod
    def resolve_url(self, environment: Environment) -> Optional[str]: ...

    @abstractmethod
    def service_exists(self, environment: Environment) -> bool: ...

    def close(self) -> None:
        """Release any held connections. Safe to call more than once."""


def deploy_all(gateways: List[DeployGateway], environment: Environment,
               revision: str = "", wait: bool = True,
               branch: Optional[str] = None) -> DeploymentOutcome:
    """Trigger every gateway in order and collect the per-platform results."""
    outcome = DeploymentOutcome(environment=environment.name, revision=revision)
    for gateway in gateways:
        logger.info(f"[Deploy] Deploying {environment.name} to {gateway.platform}")
        try:
            result = gateway.trigger_deploy(environment, revision=revision, wait=wait, branch=branch)
        except Exception as e:
            logger.error(f"[Deploy] {gateway.platform} deploy of {environment.name} raised: {e}")
            result = PlatformDeployment(platform=gateway.platform, status=DeployStatus.FAILED, detail=str(e))
        if result.url is None and result.status != DeployStatus.FAILED:
            result = result.model_copy(update={"url": gateway.resolve_url(environment)})
        logger.info(f"[Deploy] {gateway.platform}: {result.status.value} {result.detail}".rstrip())
        outcome.deployments.append(result)
    return outcome
