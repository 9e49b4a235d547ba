"""Orchestrator — explicit wiring plus promote / rollback / deploy entry points"""
from .orchestrator import (
    Orchestrator, OrchestratorConfig, build_deployers, parse_count, exit_code,
    github_actions_url, EXIT_OK, EXIT_FAILURE,
)

__all__ = [
    "Orchestrator", "OrchestratorConfig", "build_deployers", "parse_count", "exit_code",
    "github_actions_url", "EXIT_OK", "EXIT_FAILURE",
]
