"""
Tests for Orchestrator — wiring, count parsing, deploy/preview entry points, exit codes.
Run: pytest tests/test_orchestrator.py -v
"""
import pytest

from envflow.config import Settings
from envflow.engines import DeployEngine, OperationResult, OperationState
from envflow.errors import (
    DeployFailure, DirtyWorkingTree, InvalidPromotionRequest, InvalidRollbackRequest,
    OperationCancelled,
)
from envflow.gateways import DeployStatus, RenderGateway, SubprocessGitGateway, VercelGateway
from envflow.orchestrator import (
    EXIT_FAILURE, EXIT_OK, Orchestrator, OrchestratorConfig, build_deployers, exit_code,
    github_actions_url, parse_count,
)

from conftest import FakeDeployGateway


class TestParseCount:

    @pytest.mark.parametrize("value,expected", [(1, 1), ("3", 3), (" 2 ", 2)])
    def test_valid(self, value, expected):
        assert parse_count(value) == expected

    @pytest.mark.parametrize("value", ["0", "-1", "abc", "1.5", "", 0, -2, True])
    def test_invalid(self, value):
        with pytest.raises(InvalidRollbackRequest):
            parse_count(value)


class TestExitCodes:

    def _result(self, error=None, state=OperationState.FAILED):
        return OperationResult(operation="promote", environment="gamma", state=state, error=error)

    def test_success(self):
        assert exit_code(self._result(state=OperationState.DONE)) == EXIT_OK

    def test_cancel_exits_zero(self):
        assert exit_code(self._result(OperationCancelled("Promote cancelled"))) == EXIT_OK

    @pytest.mark.parametrize("error", [DirtyWorkingTree(), DeployFailure("render failed")])
    def test_failures_exit_one(self, error):
        assert exit_code(self._result(error)) == EXIT_FAILURE


class TestOperations:

    def test_promote(self, orchestrator, fake_git):
        result = orchestrator.promote("beta", "gamma")
        assert result.ok
        assert ("merge", "beta", "gamma", "Promote beta to gamma") in fake_git.calls

    def test_wait_defaults_from_config(self, registry, fake_git, fake_deployer):
        orch = Orchestrator(OrchestratorConfig(
            registry=registry, git=fake_git, deployers=[fake_deployer], deploy_wait=False,
        ))
        orch.promote("beta", "gamma")
        assert fake_deployer.triggers[0][2] is False
        orch.rollback("gamma", 1, wait=True)
        assert fake_deployer.triggers[1][2] is True

    def test_rollback_with_string_count(self, orchestrator, fake_git):
        result = orchestrator.rollback("beta", "2")
        assert result.ok
        assert result.revisions.count == 2

    def test_rollback_bad_count_touches_nothing(self, orchestrator, fake_git):
        result = orchestrator.rollback("prod", "abc")
        assert isinstance(result.error, InvalidRollbackRequest)
        assert exit_code(result) == EXIT_FAILURE
        assert fake_git.calls == []

    def test_deploy_registered_branch(self, orchestrator, fake_git, fake_deployer):
        fake_git.branch = "gamma"
        result = orchestrator.deploy()
        assert result.ok
        assert result.environment == "gamma"
        assert fake_deployer.triggers == [("gamma", fake_git.head, True)]
        assert result.stages == ["resolving", "deploying", "done"]

    def test_deploy_preview_branch(self, orchestrator, fake_deployer):
        result = orchestrator.deploy(branch="feature/Login")
        assert result.ok
        assert result.environment == "feature-login"
        assert fake_deployer.triggers[0][0] == "feature-login"
        assert fake_deployer.branches == ["feature/Login"]

    def test_deploy_alias_branch_is_passed_to_platforms(self, orchestrator, fake_git, fake_deployer):
        result = orchestrator.deploy(branch="main")
        assert result.environment == "prod"
        assert fake_deployer.triggers == [("prod", fake_git.head, True)]
        assert fake_deployer.branches == ["main"]

    def test_deploy_failure_state_is_unchanged_branch(self, registry, fake_git):
        engine = DeployEngine(registry, fake_git, [FakeDeployGateway(status=DeployStatus.FAILED)])
        result = engine.run(branch="main")
        assert result.repo_state.startswith("main at ")
        assert "pushed" not in result.repo_state

    def test_deploy_never_touches_history(self, orchestrator, fake_git):
        orchestrator.deploy(branch="beta")
        assert fake_git.network_calls == []
        assert "merge" not in fake_git.ops

    def test_deploy_failure(self, registry, fake_git):
        engine = DeployEngine(registry, fake_git, [FakeDeployGateway(status=DeployStatus.FAILED)])
        result = engine.run(branch="prod")
        assert isinstance(result.error, DeployFailure)
        assert result.stage == "deploying"

    def test_preview_is_read_only(self, orchestrator, fake_git):
        preview = orchestrator.preview("beta", "gamma")
        assert preview.count == 2
        assert fake_git.ops == ["fetch", "revision_range"]
        assert fake_git.calls[-1] == ("revision_range", "origin/gamma", "origin/beta")

    def test_preview_rejects_unknown(self, orchestrator, fake_git):
        with pytest.raises(InvalidPromotionRequest):
            orchestrator.preview("beta", "qa")
        assert fake_git.calls == []

    def test_environment_urls(self, orchestrator):
        assert orchestrator.environment_urls("prod") == {
            "render": "https://cicd-demo-backend-prod.onrender.com",
        }

    def test_actions_url(self, orchestrator, fake_git):
        assert orchestrator.actions_url() == "https://github.com/acme/cicd-demo/actions"
        fake_git.url = None
        assert orchestrator.actions_url() is None

    def test_close_releases_every_deployer(self, registry, fake_git):
        deployers = [FakeDeployGateway("vercel"), FakeDeployGateway("render")]
        with Orchestrator(OrchestratorConfig(registry=registry, git=fake_git, deployers=deployers)):
            pass
        assert all(d.closed for d in deployers)


class TestGithubActionsUrl:

    @pytest.mark.parametrize("remote", [
        "git@github.com:acme/cicd-demo.git",
        "https://github.com/acme/cicd-demo.git",
        "https://github.com/acme/cicd-demo",
        "ssh://git@github.com/acme/cicd-demo.git",
    ])
    def test_github_remotes(self, remote):
        assert github_actions_url(remote) == "https://github.com/acme/cicd-demo/actions"

    def test_other_hosts(self):
        assert github_actions_url("https://gitlab.com/acme/cicd-demo.git") is None
        assert github_actions_url("/tmp/origin.git") is None


class TestWiring:

    def test_from_settings(self, tmp_path):
        settings = Settings(ENVFLOW_REPO_PATH=str(tmp_path), ENVFLOW_REMOTE="upstream")
        config = OrchestratorConfig.from_settings(settings, interactive=False)
        assert isinstance(config.git, SubprocessGitGateway)
        assert config.remote == "upstream"
        assert [d.platform for d in config.deployers] == ["vercel", "render"]
        assert isinstance(config.deployers[0], VercelGateway)
        assert config.deployers[0].interactive_login is False
        assert isinstance(config.deployers[1], RenderGateway)

    def test_platform_selection(self):
        settings = Settings(ENVFLOW_DEPLOY_PLATFORMS=["Render"])
        assert [d.platform for d in build_deployers(settings)] == ["render"]

    def test_unknown_platform(self):
        with pytest.raises(ValueError):
            build_deployers(Settings(ENVFLOW_DEPLOY_PLATFORMS=["netlify"]))

    def test_orchestrator_exit_code(self, orchestrator):
        assert orchestrator.exit_code(orchestrator.promote("beta", "gamma")) == EXIT_OK
        assert orchestrator.exit_code(orchestrator.promote("beta", "beta")) == EXIT_FAILURE
