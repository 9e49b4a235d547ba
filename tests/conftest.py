"""
Shared fixtures for the envflow test suite.
"""
import sys
import os
import shutil
import subprocess
from typing import Dict, List, Optional

import pytest

# Ensure project root is on sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# Set env vars before any imports that read them — no real credentials in tests
for _var in ("VERCEL_TOKEN", "RENDER_API_KEY", "ENVFLOW_ENVIRONMENTS", "ENVFLOW_ALIASES"):
    os.environ.pop(_var, None)
os.environ["ENVFLOW_LOG_LEVEL"] = "DEBUG"
os.environ["ENVFLOW_RETRY_DELAY_SECONDS"] = "0"

from envflow.config import DEFAULT_ALIASES, DEFAULT_ENVIRONMENTS, get_settings  # noqa: E402
from envflow.environments import Environment, EnvironmentRegistry  # noqa: E402
from envflow.gateways import (  # noqa: E402
    DeployGateway, DeployStatus, GitGateway, PlatformDeployment, Revision, RevisionRange,
)


def rev(sha: str, summary: str = "", is_merge: bool = False) -> Revision:
    return Revision(sha=sha.ljust(40, "0"), summary=summary or f"commit {sha}", is_merge=is_merge)


# ══════════════════════════════════════════════════════════════════════════════
# Fake gateways
# ══════════════════════════════════════════════════════════════════════════════

class FakeGitGateway(GitGateway):
    """In-memory GitGateway that records every call."""

    NETWORK_OPS = {"fetch", "pull", "push"}

    def __init__(self):
        self.calls: List[tuple] = []
        self.dirty = False
        self.local_branches = {"beta", "gamma", "prod"}
        self.remote_branches = {"beta", "gamma", "prod"}
        self.pending: List[Revision] = [rev("b2", "Add login page"), rev("b1", "Fix header")]
        self.history: Dict[str, List[Revision]] = {
            "beta": [rev("b2", "Add login page"), rev("b1", "Fix header"), rev("a0", "Initial")],
            "gamma": [rev("m1", "Promote beta to gamma", True), rev("a0", "Initial")],
            "prod": [rev("m2", "Promote gamma to prod", True), rev("a0", "Initial")],
        }
        self.errors: Dict[str, Exception] = {}
        self.branch = "beta"
        self.head = "f" * 40
        self.url: Optional[str] = "git@github.com:acme/cicd-demo.git"

    def _record(self, op: str, *args):
        self.calls.append((op, *args))
        if op in self.errors:
            raise self.errors[op]

    @property
    def ops(self) -> List[str]:
        return [c[0] for c in self.calls]

    @property
    def network_calls(self) -> List[tuple]:
        return [c for c in self.calls if c[0] in self.NETWORK_OPS]

    def has_uncommitted_changes(self) -> bool:
        self._record("has_uncommitted_changes")
        return self.dirty

    def fetch(self, remote):
        self._record("fetch", remote)

    def branch_exists(self, name, remote=None):
        self._record("branch_exists", name, remote)
        return name in (self.remote_branches if remote else self.local_branches)

    def create_local_from_remote(self, name, remote):
        self._record("create_local_from_remote", name, remote)
        self.local_branches.add(name)

    def checkout(self, branch):
        self._record("checkout", branch)
        self.branch = branch

    def pull(self, branch, remote):
        self._record("pull", branch, remote)

    def revision_range(self, from_ref, to_ref):
        self._record("revision_range", from_ref, to_ref)
        return RevisionRange(from_ref=from_ref, to_ref=to_ref, revisions=list(self.pending))

    def recent_revisions(self, ref, count):
        self._record("recent_revisions", ref, count)
        revisions = self.history.get(ref, [])[:count]
        return RevisionRange(from_ref=f"{ref}~{len(revisions)}", to_ref=ref, revisions=revisions)

    def count_revisions(self, ref):
        self._record("count_revisions", ref)
        return len(self.history.get(ref, []))

    def merge(self, source, into, message):
        self._record("merge", source, into, message)

    def revert(self, revisions, message):
        self._record("revert", [r.sha for r in revisions.revisions], message)

    def push(self, branch, remote):
        self._record("push", branch, remote)

    def current_branch(self):
        self._record("current_branch")
        return self.branch

    def head_revision(self, ref="HEAD"):
        self._record("head_revision", ref)
        return self.head

    def remote_url(self, remote):
        return self.url


class FakeDeployGateway(DeployGateway):
    """DeployGateway returning a canned status."""

    def __init__(self, platform: str = "render", status: DeployStatus = DeployStatus.SUCCEEDED,
                 url: Optional[str] = None, error: Optional[Exception] = None):
        self.platform = platform
        self.status = status
        self.url = url
        self.error = error
        self.triggers: List[tuple] = []
        self.branches: List[Optional[str]] = []
        self.closed = False

    def trigger_deploy(self, environment, revision="", wait=True, branch=None):
        self.triggers.append((environment.name, revision, wait))
        self.branches.append(branch)
        if self.error:
            raise self.error
        return PlatformDeployment(platform=self.platform, status=self.status, url=self.url)

    def resolve_url(self, environment: Environment):
        return environment.url_for(self.platform)

    def service_exists(self, environment):
        return True

    def close(self):
        self.closed = True


# ══════════════════════════════════════════════════════════════════════════════
# Fixtures
# ══════════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def fresh_settings():
    """Settings are cached process-wide; start every test from a clean cache."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def registry():
    """Default beta → gamma → prod registry with production/main aliases."""
    return EnvironmentRegistry.from_config(
        DEFAULT_ENVIRONMENTS, DEFAULT_ALIASES,
        preview_service_template="cicd-demo-backend-{name}",
        preview_url_template="https://cicd-demo-backend-{name}.onrender.com",
    )


@pytest.fixture
def fake_git():
    return FakeGitGateway()


@pytest.fixture
def fake_deployer():
    return FakeDeployGateway("render")


@pytest.fixture
def promotion_engine(registry, fake_git, fake_deployer):
    from envflow.engines import PromotionEngine
    return PromotionEngine(registry, fake_git, [fake_deployer])


@pytest.fixture
def rollback_engine(registry, fake_git, fake_deployer):
    from envflow.engines import RollbackEngine
    return RollbackEngine(registry, fake_git, [fake_deployer])


@pytest.fixture
def orchestrator(registry, fake_git, fake_deployer):
    from envflow.orchestrator import Orchestrator, OrchestratorConfig
    return Orchestrator(OrchestratorConfig(registry=registry, git=fake_git, deployers=[fake_deployer]))


# ── Real git repositories ────────────────────────────────────────────

class GitRepo:
    """A working clone plus its bare ``origin`` under tmp_path."""

    def __init__(self, root):
        self.root = root
        self.remote = str(root / "origin.git")
        self.path = str(root / "work")

    def git(self, *args: str, cwd: Optional[str] = None) -> str:
        result = subprocess.run(
            ["git", *args], cwd=cwd or self.path, capture_output=True, text=True, check=True,
        )
        return result.stdout.strip()

    def write(self, name: str, content: str) -> None:
        with open(os.path.join(self.path, name), "w") as f:
            f.write(content)

    def read(self, name: str) -> str:
        with open(os.path.join(self.path, name)) as f:
            return f.read()

    def commit(self, branch: str, name: str, content: str, message: str, push: bool = True) -> str:
        self.git("checkout", branch)
        self.write(name, content)
        self.git("add", name)
        self.git("commit", "-m", message)
        if push:
            self.git("push", "origin", branch)
        return self.git("rev-parse", "HEAD")

    def tree(self, ref: str) -> str:
        return self.git("rev-parse", f"{ref}^{{tree}}")

    def push_from_other_clone(self, branch: str, name: str, content: str, message: str) -> str:
        """Commit on ``branch`` from a second clone and push it, as a teammate would."""
        other = os.path.join(str(self.root), "other")
        if not os.path.isdir(other):
            self.git("clone", self.remote, other, cwd=str(self.root))
            self.git("config", "user.name", "Other User", cwd=other)
            self.git("config", "user.email", "other@example.com", cwd=other)
            self.git("config", "commit.gpgsign", "false", cwd=other)
        self.git("fetch", "origin", cwd=other)
        self.git("checkout", "-B", branch, f"origin/{branch}", cwd=other)
        with open(os.path.join(other, name), "w") as f:
            f.write(content)
        self.git("add", name, cwd=other)
        self.git("commit", "-m", message, cwd=other)
        self.git("push", "origin", branch, cwd=other)
        return self.git("rev-parse", "HEAD", cwd=other)


@pytest.fixture
def git_repo(tmp_path):
    """beta/gamma/prod at one initial commit, pushed to a bare origin."""
    if shutil.which("git") is None:
        pytest.skip("git executable not available")
    repo = GitRepo(tmp_path)
    repo.git("init", "--bare", repo.remote, cwd=str(tmp_path))
    repo.git("clone", repo.remote, repo.path, cwd=str(tmp_path))
    repo.git("config", "user.name", "Test User")
    repo.git("config", "user.email", "test@example.com")
    repo.git("config", "commit.gpgsign", "false")
    repo.git("checkout", "-b", "beta")
    repo.write("app.txt", "v1\n")
    repo.git("add", "app.txt")
    repo.git("commit", "-m", "Initial commit")
    for branch in ("gamma", "prod"):
        repo.git("branch", branch)
    repo.git("push", "origin", "beta", "gamma", "prod")
    return repo
