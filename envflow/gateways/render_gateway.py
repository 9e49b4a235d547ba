"""
Render Gateway — deploys the backend through the Render REST API.
Handles service lookup by name, deploy creation for a specific commit and
status polling until the deploy is live or has failed.
"""

import time
import logging
from typing import Any, Callable, Dict, Optional

import httpx

from envflow.environments import Environment
from envflow.gateways.deploy_gateway import DeployGateway, DeployStatus, PlatformDeployment
from envflow.gateways.retry import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)

RENDER_API_URL = "https://api.render.com/v1"

LIVE_STATUSES = {"live"}
FAILED_STATUSES = {
    "build_failed", "update_failed", "pre_deploy_failed", "canceled", "deactivated",
}


def service_setup_instructions(service_name: str, branch: str) -> str:
    return "\n".join([
        f"Service '{service_name}' not found. Create it on the Render Dashboard:",
        "  1. Go to https://dashboard.render.com/create?type=web",
        "  2. Connect your GitHub repository",
        f"  3. Set service name: {service_name}",
        f"  4. Set branch: {branch}",
        "  5. Set build command: pip install -r requirements.txt",
        "  6. Set start command: python server.py",
        "  7. Add environment variables from backend/.env.example",
    ])


class RenderGateway(DeployGateway):
    """Backend deploys via the Render API."""

    platform = "render"

    def __init__(self, api_key: Optional[str], base_url: str = RENDER_API_URL,
                 poll_interval_seconds: float = 5.0, timeout_seconds: int = 900,
                 retry_policy: Optional[RetryPolicy] = None,
                 client: Optional[httpx.Client] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.poll_interval_seconds = poll_interval_seconds
        self.timeout_seconds = timeout_seconds
        self.retry_policy = retry_policy or RetryPolicy()
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=30.0)
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_settings(cls, settings) -> "RenderGateway":
        return cls(
            api_key=settings.render_api_key,
            base_url=settings.render_api_url,
            poll_interval_seconds=settings.deploy_poll_interval_seconds,
            timeout_seconds=settings.deploy_timeout_seconds,
            retry_policy=RetryPolicy.from_settings(settings),
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "RenderGateway":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }

    # ── HTTP helpers ──────────────────────────────────────────────

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        def attempt() -> Any:
            r = self._client.get(f"{self.base_url}{path}", headers=self.headers, params=params)
            r.raise_for_status()
            return r.json()
        return call_with_retry(attempt, self.retry_policy, (httpx.TransportError,), f"GET {path}", self._sleep)

    def find_service(self, name: str) -> Optional[Dict[str, Any]]:
        """Look up a service by its exact name."""
        items = self._get("/services", params={"name": name, "limit": 20}) or []
        for item in items:
            service = item.get("service", item)
            if service.get("name") == name:
                return service
        return None

    def get_deploy(self, service_id: str, deploy_id: str) -> Dict[str, Any]:
        return self._get(f"/services/{service_id}/deploys/{deploy_id}")

    def _wait_for_deploy(self, service_id: str, deploy_id: str) -> str:
        deadline = self._clock() + self.timeout_seconds
        while True:
            status = self.get_deploy(service_id, deploy_id).get("status", "")
            if status in LIVE_STATUSES or status in FAILED_STATUSES:
                return status
            if self._clock() >= deadline:
                return "timed_out"
            logger.debug(f"[Render] Deploy {deploy_id} is {status}; polling again")
            self._sleep(self.poll_interval_seconds)

    # ── DeployGateway ─────────────────────────────────────────────

    def service_exists(self, environment: Environment) -> bool:
        name = environment.service_for(self.platform)
        if not self.api_key or not name:
            return False
        return self.find_service(name) is not None

    def resolve_url(self, environment: Environment) -> Optional[str]:
        return environment.url_for(self.platform)

    def trigger_deploy(self, environment: Environment, revision: str = "",
                       wait: bool = True, branch: Optional[str] = None) -> PlatformDeployment:
        if not self.api_key:
            logger.warning("[Render] RENDER_API_KEY not found; skipping Render deployment")
            return PlatformDeployment(
                platform=self.platform, status=DeployStatus.SKIPPED,
                detail="RENDER_API_KEY not set. Get one from https://dashboard.render.com/u/settings#api-keys",
            )
        service_name = environment.service_for(self.platform)
        if not service_name:
            return PlatformDeployment(
                platform=self.platform, status=DeployStatus.SKIPPED,
                detail=f"No Render service configured for {environment.name}",
            )

        try:
            service = self.find_service(service_name)
            if service is None:
                logger.warning(f"[Render] Service '{service_name}' not found")
                return PlatformDeployment(
                    platform=self.platform, status=DeployStatus.SKIPPED,
                    detail=service_setup_instructions(service_name, branch or environment.branch),
                )

            service_id = service["id"]
            body: Dict[str, Any] = {"clearCache": "do_not_clear"}
            if revision:
                body["commitId"] = revision
            logger.info(f"[Render] Triggering deploy of {service_name} ({service_id})")
            r = self._client.post(
                f"{self.base_url}/services/{service_id}/deploys", headers=self.headers, json=body,
            )
            r.raise_for_status()
            deploy_id = r.json().get("id", "")

            url = (service.get("serviceDetails") or {}).get("url") or self.resolve_url(environment)
            if not wait:
                return PlatformDeployment(
                    platform=self.platform, status=DeployStatus.PENDING,
                    url=url, deploy_id=deploy_id,
                    detail=f"https://dashboard.render.com/web/{service_id}",
                )

            final = self._wait_for_deploy(service_id, deploy_id)
        except httpx.HTTPError as e:
            logger.error(f"[Render] Deploy of {service_name} failed: {e}")
            return PlatformDeployment(
                platform=self.platform, status=DeployStatus.FAILED, detail=f"Render API error: {e}",
            )

        if final in LIVE_STATUSES:
            logger.info(f"[Render] Backend deployed successfully: {service_name}")
            return PlatformDeployment(
                platform=self.platform, status=DeployStatus.SUCCEEDED, url=url,
                deploy_id=deploy_id, detail=f"https://dashboard.render.com/web/{service_id}",
            )
        return PlatformDeployment(
            platform=self.platform, status=DeployStatus.FAILED, url=url,
            deploy_id=deploy_id, detail=f"Render deploy ended with status '{final}'",
        )
