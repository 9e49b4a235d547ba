"""Gateways — capability interfaces over git and the deploy platforms (Vercel, Render)."""
from .retry import RetryPolicy, call_with_retry
from .git_gateway import GitGateway, SubprocessGitGateway, Revision, RevisionRange
from .deploy_gateway import (
    DeployGateway, DeployStatus, PlatformDeployment, DeploymentOutcome, deploy_all,
)
from .vercel_gateway import VercelGateway
from .render_gateway import RenderGateway

__all__ = [
    "RetryPolicy", "call_with_retry",
    "GitGateway", "SubprocessGitGateway", "Revision", "RevisionRange",
    "DeployGateway", "DeployStatus", "PlatformDeployment", "DeploymentOutcome", "deploy_all",
    "VercelGateway", "RenderGateway",
]
