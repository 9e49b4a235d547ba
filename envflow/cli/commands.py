"""
envflow CLI — promote, roll back and deploy the beta → gamma → prod chain.

    envflow promote beta gamma
    envflow rollback prod 2
    envflow deploy --branch feature/login
    envflow preview gamma prod
    envflow envs

Exit status is 0 on success or when the operator declines the confirmation,
1 for every failure.
"""

import logging
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from envflow.config import Settings, get_settings
from envflow.engines import ConfirmCallback, OperationResult, always_confirm
from envflow.environments import EnvironmentRegistry
from envflow.errors import EnvflowError, OperationCancelled
from envflow.gateways import DeployStatus, RevisionRange
from envflow.orchestrator import EXIT_FAILURE, Orchestrator, exit_code

app = typer.Typer(add_completion=False, no_args_is_help=True,
                  help="Promote, roll back and deploy environment branches.")
console = Console()

_STATUS_STYLE = {
    DeployStatus.SUCCEEDED: "green",
    DeployStatus.PENDING: "cyan",
    DeployStatus.SKIPPED: "yellow",
    DeployStatus.FAILED: "red",
}


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def build_orchestrator(settings: Settings, confirm: ConfirmCallback,
                       interactive: bool = True) -> Orchestrator:
    return Orchestrator.from_settings(settings, confirm=confirm, interactive=interactive)


# ── Rendering ────────────────────────────────────────────────────────

def _revision_table(preview: RevisionRange, title: str) -> Table:
    table = Table(title=title)
    table.add_column("Commit", style="cyan", no_wrap=True)
    table.add_column("Summary")
    for rev in preview.revisions:
        table.add_row(rev.short_sha, rev.summary + (" (merge)" if rev.is_merge else ""))
    return table


def prompt_confirm(message: str, preview: RevisionRange) -> bool:
    """Interactive confirmation: show what will change, then ask."""
    if preview.is_empty:
        console.print("[yellow]No revisions will change.[/yellow]")
    else:
        console.print(_revision_table(preview, f"{preview.count} revision(s)"))
    console.print(f"[bold yellow]⚠ {message}[/bold yellow]")
    return typer.confirm("Are you sure you want to continue?", default=False)


def _print_outcome(result: OperationResult) -> None:
    if result.outcome is None or not result.outcome.deployments:
        return
    table = Table(title=f"Deployments of {result.outcome.environment}")
    table.add_column("Platform")
    table.add_column("Status")
    table.add_column("URL / detail", overflow="fold")
    for d in result.outcome.deployments:
        style = _STATUS_STYLE.get(d.status, "white")
        table.add_row(d.platform, f"[{style}]{d.status.value}[/{style}]", d.url or d.detail)
    console.print(table)
    for d in result.outcome.deployments:
        if d.status == DeployStatus.SKIPPED and "\n" in d.detail:
            console.print(d.detail)


def _print_failure(result: OperationResult) -> None:
    error = result.error
    if isinstance(error, OperationCancelled):
        console.print(f"[yellow]{error.message}[/yellow]")
        return
    message = error.message if error else "unknown error"
    console.print(f"[bold red]✗ {result.operation} failed at stage '{result.stage}':[/bold red] {message}")
    console.print(f"Repository state: {result.repo_state}")
    files = result.conflicted_files
    if files:
        console.print("Conflicting files:")
        for f in files:
            console.print(f"  - {f}")


def _report(orchestrator: Orchestrator, result: OperationResult) -> None:
    _print_outcome(result)
    if not result.ok:
        _print_failure(result)
        raise typer.Exit(exit_code(result))

    console.print(f"[bold green]✓ {result.operation} of {result.environment} complete[/bold green]")
    if result.revision:
        console.print(f"Revision: {result.revision[:7]}")
    urls = orchestrator.environment_urls(result.environment)
    if result.outcome and result.outcome.url:
        urls.setdefault("deployment", result.outcome.url)
    for platform, url in urls.items():
        console.print(f"  {platform}: {url}")
    actions = orchestrator.actions_url()
    if actions:
        console.print(f"Monitor the deployment at: {actions}")


def _setup(yes: bool, interactive: bool = True) -> Orchestrator:
    try:
        settings = get_settings()
        configure_logging(settings.log_level)
        confirm = always_confirm if yes else prompt_confirm
        return build_orchestrator(settings, confirm, interactive=interactive)
    except ValueError as e:
        console.print(f"[bold red]✗ invalid configuration:[/bold red] {e}")
        raise typer.Exit(EXIT_FAILURE)


# ══════════════════════════════════════════════════════════════════════════════
# Commands
# ══════════════════════════════════════════════════════════════════════════════

@app.command()
def promote(
    source: Annotated[str, typer.Argument(help="Environment to promote from (e.g. beta)")],
    target: Annotated[str, typer.Argument(help="Environment to promote to (e.g. gamma)")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip the confirmation prompt")] = False,
    allow_empty: Annotated[bool, typer.Option("--allow-empty", help="Promote even with no new commits")] = False,
    no_deploy: Annotated[bool, typer.Option("--no-deploy", help="Merge and push only")] = False,
    wait: Annotated[Optional[bool], typer.Option("--wait/--no-wait", help="Block until deploys finish")] = None,
) -> None:
    """Merge SOURCE into TARGET, push, and deploy TARGET."""
    with _setup(yes) as orchestrator:
        result = orchestrator.promote(source, target, allow_empty=allow_empty, deploy=not no_deploy, wait=wait)
        _report(orchestrator, result)


@app.command()
def rollback(
    environment: Annotated[str, typer.Argument(help="Environment to roll back")],
    count: Annotated[str, typer.Argument(help="Number of revisions to revert")] = "1",
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip the confirmation prompt")] = False,
    no_deploy: Annotated[bool, typer.Option("--no-deploy", help="Revert and push only")] = False,
    wait: Annotated[Optional[bool], typer.Option("--wait/--no-wait", help="Block until deploys finish")] = None,
) -> None:
    """Revert the last COUNT revisions of ENVIRONMENT and redeploy it."""
    with _setup(yes) as orchestrator:
        result = orchestrator.rollback(environment, count, deploy=not no_deploy, wait=wait)
        _report(orchestrator, result)


@app.command()
def deploy(
    branch: Annotated[Optional[str], typer.Option("--branch", "-b", help="Branch to deploy (default: current)")] = None,
    wait: Annotated[Optional[bool], typer.Option("--wait/--no-wait", help="Block until deploys finish")] = None,
) -> None:
    """Deploy a branch; unregistered branches get a preview environment."""
    with _setup(yes=True) as orchestrator:
        result = orchestrator.deploy(branch=branch, wait=wait)
        _report(orchestrator, result)


@app.command()
def preview(
    source: Annotated[str, typer.Argument(help="Environment to promote from")],
    target: Annotated[str, typer.Argument(help="Environment to promote to")],
) -> None:
    """Show the revisions a promotion would move, without changing anything."""
    with _setup(yes=True, interactive=False) as orchestrator:
        try:
            revisions = orchestrator.preview(source, target)
        except EnvflowError as e:
            console.print(f"[bold red]✗ preview failed:[/bold red] {e.message}")
            raise typer.Exit(EXIT_FAILURE)
    if revisions.is_empty:
        console.print(f"No new commits to promote from {source} to {target}")
        return
    console.print(_revision_table(revisions, f"{source} → {target}: {revisions.count} new commit(s)"))


@app.command()
def envs() -> None:
    """List registered environments, their branches, aliases and URLs."""
    try:
        registry = EnvironmentRegistry.from_settings(get_settings())
    except ValueError as e:
        console.print(f"[bold red]✗ invalid environment configuration:[/bold red] {e}")
        raise typer.Exit(EXIT_FAILURE)

    table = Table(title="Environments")
    table.add_column("Name", style="bold")
    table.add_column("Branch")
    table.add_column("Aliases")
    table.add_column("Services")
    table.add_column("URLs", overflow="fold")
    for env in registry.all():
        table.add_row(
            env.name + (" *" if env.production else ""),
            env.branch,
            ", ".join(registry.aliases_for(env)) or "-",
            ", ".join(f"{k}={v}" for k, v in env.services.items()) or "-",
            ", ".join(filter(None, (env.url_for(p) for p in env.urls))) or "-",
        )
    console.print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
