"""
Tests for the envflow CLI — exit codes, confirmation, failure reporting.
Run: pytest tests/test_cli.py -v
"""
import pytest
from rich.console import Console
from typer.testing import CliRunner

from envflow.cli import commands
from envflow.errors import MergeConflict
from envflow.orchestrator import Orchestrator, OrchestratorConfig

from conftest import rev

runner = CliRunner()


@pytest.fixture
def cli(monkeypatch, registry, fake_git, fake_deployer):
    """CLI wired to the fake gateways."""
    def build(settings, confirm, interactive=True):
        return Orchestrator(OrchestratorConfig(
            registry=registry, git=fake_git, deployers=[fake_deployer], confirm=confirm,
        ))

    monkeypatch.setattr(commands, "build_orchestrator", build)
    monkeypatch.setattr(commands, "console", Console(width=200))

    def invoke(*args, input=None):
        return runner.invoke(commands.app, list(args), input=input)
    return invoke


class TestPromote:

    def test_success(self, cli, fake_git):
        result = cli("promote", "beta", "gamma", "--yes")
        assert result.exit_code == 0, result.output
        assert "promote of gamma complete" in result.output
        assert "https://cicd-demo-backend-gamma.onrender.com" in result.output
        assert "https://github.com/acme/cicd-demo/actions" in result.output
        assert ("merge", "beta", "gamma", "Promote beta to gamma") in fake_git.calls

    def test_unknown_environment_exits_one(self, cli, fake_git):
        result = cli("promote", "stage", "prod", "--yes")
        assert result.exit_code == 1
        assert "Invalid source branch" in result.output
        assert "Repository state: untouched" in result.output
        assert fake_git.calls == []

    def test_confirmation_declined_exits_zero(self, cli, fake_git):
        result = cli("promote", "beta", "gamma", input="n\n")
        assert result.exit_code == 0
        assert "Add login page" in result.output
        assert "cancelled" in result.output
        assert "merge" not in fake_git.ops

    def test_confirmation_accepted(self, cli, fake_git):
        result = cli("promote", "beta", "gamma", input="y\n")
        assert result.exit_code == 0
        assert "merge" in fake_git.ops

    def test_dirty_tree(self, cli, fake_git):
        fake_git.dirty = True
        result = cli("promote", "beta", "gamma", "--yes")
        assert result.exit_code == 1
        assert "uncommitted changes" in result.output
        assert "stage 'validating'" in result.output

    def test_merge_conflict_lists_files(self, cli, fake_git):
        fake_git.errors["merge"] = MergeConflict("Merge of beta into gamma has conflicts", files=["app.txt"])
        result = cli("promote", "beta", "gamma", "--yes")
        assert result.exit_code == 1
        assert "stage 'merging'" in result.output
        assert "- app.txt" in result.output

    def test_no_deploy(self, cli, fake_deployer):
        result = cli("promote", "beta", "gamma", "--yes", "--no-deploy")
        assert result.exit_code == 0
        assert fake_deployer.triggers == []

    def test_no_wait(self, cli, fake_deployer):
        cli("promote", "beta", "gamma", "--yes", "--no-wait")
        assert fake_deployer.triggers[0][2] is False


class TestRollback:

    def test_default_count(self, cli, fake_git):
        result = cli("rollback", "prod", "--yes")
        assert result.exit_code == 0, result.output
        revert = next(c for c in fake_git.calls if c[0] == "revert")
        assert len(revert[1]) == 1

    @pytest.mark.parametrize("count", ["abc", "0", "1.5"])
    def test_invalid_count_exits_one(self, cli, fake_git, count):
        result = cli("rollback", "prod", count, "--yes")
        assert result.exit_code == 1
        assert "Invalid number of commits" in result.output
        assert fake_git.calls == []

    def test_insufficient_history(self, cli, fake_git):
        fake_git.history["beta"] = [rev("b1"), rev("a0")]
        result = cli("rollback", "beta", "5", "--yes")
        assert result.exit_code == 1
        assert "only 2 revision(s)" in result.output
        assert "revert" not in fake_git.ops


class TestOtherCommands:

    def test_deploy_preview_branch(self, cli, fake_git, fake_deployer):
        fake_git.branch = "feature/login"
        result = cli("deploy")
        assert result.exit_code == 0, result.output
        assert fake_deployer.triggers[0][0] == "feature-login"

    def test_preview(self, cli, fake_git):
        result = cli("preview", "beta", "gamma")
        assert result.exit_code == 0
        assert "Fix header" in result.output
        assert "merge" not in fake_git.ops

    def test_preview_nothing_to_promote(self, cli, fake_git):
        fake_git.pending = []
        result = cli("preview", "gamma", "prod")
        assert result.exit_code == 0
        assert "No new commits" in result.output

    def test_preview_unknown(self, cli):
        assert cli("preview", "beta", "qa").exit_code == 1

    @pytest.mark.parametrize("args", [
        ("promote", "beta", "gamma", "--yes"),
        ("promote", "stage", "prod", "--yes"),
        ("rollback", "prod", "--yes"),
        ("deploy",),
        ("preview", "beta", "gamma"),
    ])
    def test_deployers_closed_after_every_command(self, cli, fake_deployer, args):
        cli(*args)
        assert fake_deployer.closed

    def test_envs(self, cli):
        result = cli("envs")
        assert result.exit_code == 0
        for name in ("beta", "gamma", "prod", "production"):
            assert name in result.output
