"""
Orchestrator — front door over the promotion, rollback and deploy engines.

Everything the engines need is passed in through an explicit ``OrchestratorConfig``
(registry, git gateway, deploy gateways, confirmation callback). Nothing is read
from module-level globals, so tests wire fakes in directly.
"""

import re
import logging
from typing import Callable, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from envflow.config import Settings
from envflow.environments import EnvironmentRegistry
from envflow.errors import (
    InvalidPromotionRequest, InvalidRollbackRequest, OperationCancelled,
    UnknownEnvironment,
)
from envflow.gateways import (
    DeployGateway, GitGateway, RenderGateway, RevisionRange, SubprocessGitGateway, VercelGateway,
)
from envflow.engines import (
    ConfirmCallback, DeployEngine, OperationResult, PromotionEngine, PromotionRequest,
    RollbackEngine, RollbackRequest, always_confirm,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1

_GITHUB_REMOTE = re.compile(r"github\.com[:/](?P<repo>[^/\s]+/[^/\s]+?)(?:\.git)?/?$")


# ── Platform factories ───────────────────────────────────────────────

def _vercel(settings: Settings, interactive: bool) -> DeployGateway:
    return VercelGateway.from_settings(settings, interactive=interactive)


def _render(settings: Settings, interactive: bool) -> DeployGateway:
    return RenderGateway.from_settings(settings)


PLATFORM_FACTORIES: Dict[str, Callable[[Settings, bool], DeployGateway]] = {
    "vercel": _vercel,
    "render": _render,
}


def build_deployers(settings: Settings, interactive: bool = True) -> List[DeployGateway]:
    deployers = []
    for platform in settings.deploy_platforms:
        factory = PLATFORM_FACTORIES.get(platform)
        if factory is None:
            raise ValueError(
                f"Unknown deploy platform '{platform}'. Supported: {', '.join(PLATFORM_FACTORIES)}"
            )
        deployers.append(factory(settings, interactive))
    return deployers


class OrchestratorConfig(BaseModel):
    """Explicit wiring for one orchestrator instance."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    registry: EnvironmentRegistry
    git: GitGateway
    deployers: List[DeployGateway] = Field(default_factory=list)
    confirm: ConfirmCallback = always_confirm
    remote: str = "origin"
    deploy_wait: bool = True

    @classmethod
    def from_settings(cls, settings: Settings, confirm: Optional[ConfirmCallback] = None,
                      interactive: bool = True) -> "OrchestratorConfig":
        return cls(
            registry=EnvironmentRegistry.from_settings(settings),
            git=SubprocessGitGateway.from_settings(settings),
            deployers=build_deployers(settings, interactive=interactive),
            confirm=confirm or always_confirm,
            remote=settings.remote,
            deploy_wait=settings.deploy_wait,
        )


def parse_count(value: Union[int, str]) -> int:
    """Parse a rollback count; anything but a positive integer is rejected."""
    if isinstance(value, int) and not isinstance(value, bool):
        count = value
    else:
        text = str(value).strip()
        if not text.isdigit():
            raise InvalidRollbackRequest(
                f"Invalid number of commits: {value}. Must be a positive integer",
                repo_state="untouched",
            )
        count = int(text)
    if count < 1:
        raise InvalidRollbackRequest(
            f"Invalid number of commits: {value}. Must be a positive integer",
            repo_state="untouched",
        )
    return count


def exit_code(result: OperationResult) -> int:
    """0 on success or user cancellation, 1 for every other failure."""
    if result.ok or isinstance(result.error, OperationCancelled):
        return EXIT_OK
    return EXIT_FAILURE


def github_actions_url(remote_url: Optional[str]) -> Optional[str]:
    if not remote_url:
        return None
    match = _GITHUB_REMOTE.search(remote_url.strip())
    if not match:
        return None
    return f"https://github.com/{match.group('repo')}/actions"


# ══════════════════════════════════════════════════════════════════════════════
# Orchestrator
# ══════════════════════════════════════════════════════════════════════════════

class Orchestrator:
    """Promote, roll back and deploy environments."""

    def __init__(self, config: OrchestratorConfig):
        self.config = config
        self.registry = config.registry
        self.git = config.git
        engine_args = dict(
            registry=config.registry, git=config.git, deployers=config.deployers,
            confirm=config.confirm, remote=config.remote,
        )
        self.promotions = PromotionEngine(**engine_args)
        self.rollbacks = RollbackEngine(**engine_args)
        self.deploys = DeployEngine(**engine_args)
        logger.debug(
            f"[Orchestrator] Ready: remote={config.remote}, "
            f"platforms={[d.platform for d in config.deployers]}"
        )

    @classmethod
    def from_settings(cls, settings: Settings, confirm: Optional[ConfirmCallback] = None,
                      interactive: bool = True) -> "Orchestrator":
        return cls(OrchestratorConfig.from_settings(settings, confirm, interactive))

    def close(self) -> None:
        """Release platform clients (the Render HTTP pool)."""
        for gateway in self.config.deployers:
            gateway.close()

    def __enter__(self) -> "Orchestrator":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _wait(self, wait: Optional[bool]) -> bool:
        return self.config.deploy_wait if wait is None else wait

    # ── Operations ────────────────────────────────────────────────

    def promote(self, source: str, target: str, allow_empty: bool = False,
                deploy: bool = True, wait: Optional[bool] = None) -> OperationResult:
        request = PromotionRequest(
            source=source, target=target, allow_empty=allow_empty,
            deploy=deploy, wait=self._wait(wait),
        )
        return self.promotions.run(request)

    def rollback(self, environment: str, count: Union[int, str] = 1,
                 deploy: bool = True, wait: Optional[bool] = None) -> OperationResult:
        try:
            parsed = parse_count(count)
        except InvalidRollbackRequest as e:
            return self.rollbacks.reject(environment, e)
        request = RollbackRequest(
            environment=environment, count=parsed, deploy=deploy, wait=self._wait(wait),
        )
        return self.rollbacks.run(request)

    def deploy(self, branch: Optional[str] = None, wait: Optional[bool] = None) -> OperationResult:
        return self.deploys.run(branch=branch, wait=self._wait(wait))

    def preview(self, source: str, target: str) -> RevisionRange:
        """Revisions a promotion would move, read from the remote-tracking refs."""
        try:
            src = self.registry.resolve(source)
            dst = self.registry.resolve(target)
        except UnknownEnvironment as e:
            raise InvalidPromotionRequest(e.message, repo_state="untouched") from e
        if src.name == dst.name:
            raise InvalidPromotionRequest("Source and target cannot be the same branch", repo_state="untouched")
        remote = self.config.remote
        self.git.fetch(remote)
        return self.git.revision_range(f"{remote}/{dst.branch}", f"{remote}/{src.branch}")

    # ── Reporting ─────────────────────────────────────────────────

    def environment_urls(self, environment: str) -> Dict[str, str]:
        """Known public URLs of an environment, by platform."""
        env = self.registry.get(environment) or self.registry.preview_environment(environment)
        urls = {}
        for gateway in self.config.deployers:
            url = gateway.resolve_url(env)
            if url:
                urls[gateway.platform] = url
        return urls

    def actions_url(self) -> Optional[str]:
        return github_actions_url(self.git.remote_url(self.config.remote))

    def exit_code(self, result: OperationResult) -> int:
        return exit_code(result)
