"""CLI — typer front door (``envflow promote|rollback|deploy|preview|envs``)"""
from .commands import app, main

__all__ = ["app", "main"]
