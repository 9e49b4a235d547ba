"""Environments — static beta → gamma → prod topology with alias resolution."""
from .environment_registry import EnvironmentRegistry, Environment, sanitize_branch

__all__ = ["EnvironmentRegistry", "Environment", "sanitize_branch"]
