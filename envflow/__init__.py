"""
envflow — promote and roll back code between deployment environments.
Git branches are the system of record; Vercel and Render are deploy targets.
"""

__version__ = "0.1.0"
