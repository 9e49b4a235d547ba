"""
Vercel Gateway — deploys the frontend through the ``vercel`` CLI.
Production environments deploy with ``--prod``; every other branch becomes a
preview deployment tagged with the branch name.
"""

import os
import re
import shutil
import logging
import subprocess
from typing import Callable, Dict, List, Optional

from envflow.environments import Environment
from envflow.gateways.deploy_gateway import DeployGateway, DeployStatus, PlatformDeployment

logger = logging.getLogger(__name__)

_URL_PATTERN = re.compile(r"https://[^\s]+")


def extract_deploy_url(output: str) -> Optional[str]:
    """Last https URL printed by the CLI is the deployment URL."""
    matches = _URL_PATTERN.findall(output or "")
    return matches[-1] if matches else None


class VercelGateway(DeployGateway):
    """Frontend deploys via ``vercel deploy``."""

    platform = "vercel"

    def __init__(self, project_dir: str, token: Optional[str] = None,
                 interactive_login: bool = False, binary: str = "vercel",
                 timeout_seconds: int = 900,
                 runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
                 which: Callable[[str], Optional[str]] = shutil.which):
        self.project_dir = os.path.abspath(project_dir)
        self.token = token
        self.interactive_login = interactive_login
        self.binary = binary
        self.timeout_seconds = timeout_seconds
        self._runner = runner
        self._which = which
        self._last_urls: Dict[str, str] = {}

    @classmethod
    def from_settings(cls, settings, interactive: bool = True) -> "VercelGateway":
        return cls(
            project_dir=os.path.join(settings.repo_path, settings.vercel_frontend_dir),
            token=settings.vercel_token,
            interactive_login=interactive and settings.vercel_interactive_login,
            timeout_seconds=settings.deploy_timeout_seconds,
        )

    def _run(self, args: List[str], capture: bool = True) -> subprocess.CompletedProcess:
        logger.debug(f"[Vercel] {' '.join(a if a != self.token else '***' for a in args)}")
        return self._runner(
            args, cwd=self.project_dir, capture_output=capture, text=True,
            timeout=self.timeout_seconds,
        )

    # ── Authentication ────────────────────────────────────────────

    def _ensure_authenticated(self) -> bool:
        if self.token:
            return True
        logger.warning("[Vercel] VERCEL_TOKEN not found; trying local Vercel credentials")
        if self._run([self.binary, "whoami"]).returncode == 0:
            return True
        if not self.interactive_login:
            return False
        logger.info("[Vercel] Please login to Vercel...")
        return self._run([self.binary, "login"], capture=False).returncode == 0

    # ── DeployGateway ─────────────────────────────────────────────

    def service_exists(self, environment: Environment) -> bool:
        return os.path.isdir(self.project_dir)

    def resolve_url(self, environment: Environment) -> Optional[str]:
        return environment.url_for(self.platform) or self._last_urls.get(environment.name)

    def trigger_deploy(self, environment: Environment, revision: str = "",
                       wait: bool = True, branch: Optional[str] = None) -> PlatformDeployment:
        if self._which(self.binary) is None:
            return PlatformDeployment(
                platform=self.platform, status=DeployStatus.FAILED,
                detail="Vercel CLI not found. Please install it: npm install -g vercel",
            )
        if not self.service_exists(environment):
            return PlatformDeployment(
                platform=self.platform, status=DeployStatus.FAILED,
                detail=f"Frontend directory {self.project_dir} not found",
            )
        if not self._ensure_authenticated():
            return PlatformDeployment(
                platform=self.platform, status=DeployStatus.FAILED,
                detail="Not authenticated with Vercel (set VERCEL_TOKEN or run 'vercel login')",
            )

        args = [self.binary, "deploy"]
        if environment.production:
            args.append("--prod")
        args += ["--yes", "-m", "githubDeployment=1", "-m", f"githubCommitRef={branch or environment.branch}"]
        if revision:
            args += ["-m", f"githubCommitSha={revision}"]
        if self.token:
            args += ["--token", self.token]
        if not wait:
            args.append("--no-wait")

        kind = "production" if environment.production else "preview"
        logger.info(f"[Vercel] Deploying {environment.name} ({kind})")
        try:
            result = self._run(args)
        except subprocess.TimeoutExpired:
            return PlatformDeployment(
                platform=self.platform, status=DeployStatus.FAILED,
                detail=f"vercel deploy timed out after {self.timeout_seconds}s",
            )

        url = extract_deploy_url(f"{result.stdout or ''}\n{result.stderr or ''}")
        if result.returncode != 0 or not url:
            tail = (result.stderr or result.stdout or "").strip().splitlines()
            return PlatformDeployment(
                platform=self.platform, status=DeployStatus.FAILED,
                detail="Failed to deploy frontend to Vercel" + (f": {tail[-1]}" if tail else ""),
            )

        self._last_urls[environment.name] = url
        logger.info(f"[Vercel] Frontend deployed to: {url}")
        return PlatformDeployment(
            platform=self.platform,
            status=DeployStatus.SUCCEEDED if wait else DeployStatus.PENDING,
            url=url,
        )
