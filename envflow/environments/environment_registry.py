"""
Environment Registry — static topology of deployment environments.
Manages the ordered beta → gamma → prod chain with:
- Case-insensitive name resolution through an explicit alias table
- Branch → environment lookup
- Adjacency in the promotion chain
- Ad-hoc preview environments for unregistered branches
"""

import re
import logging
from typing import Optional, Dict, List, Any, Iterable

from pydantic import BaseModel, ConfigDict, Field

from envflow.errors import UnknownEnvironment

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════════
# Models
# ══════════════════════════════════════════════════════════════════════════════

class Environment(BaseModel):
    """A named deployment target bound to a branch and hosted services."""
    model_config = ConfigDict(frozen=True)

    name: str
    branch: str
    label: str = ""
    order: int = 0
    production: bool = False
    preview: bool = False
    services: Dict[str, str] = Field(default_factory=dict)  # platform -> service identifier
    urls: Dict[str, str] = Field(default_factory=dict)      # platform -> URL template

    def service_for(self, platform: str) -> Optional[str]:
        return self.services.get(platform)

    def url_for(self, platform: str) -> Optional[str]:
        template = self.urls.get(platform)
        if not template:
            return None
        return template.format(name=self.name, branch=self.branch)


def sanitize_branch(branch: str) -> str:
    """Turn a branch name into something usable as a service name."""
    return re.sub(r"[^a-zA-Z0-9]", "-", branch).lower()


# ══════════════════════════════════════════════════════════════════════════════
# Environment Registry
# ══════════════════════════════════════════════════════════════════════════════

class EnvironmentRegistry:
    """
    Read-only registry of environments, ordered by promotion position.
    Built once at start-up; nothing is added or removed afterwards.
    """

    def __init__(self, environments: Iterable[Environment],
                 aliases: Optional[Dict[str, str]] = None,
                 preview_service_template: str = "{name}",
                 preview_url_template: str = ""):
        ordered = sorted(environments, key=lambda e: e.order)
        self._envs: Dict[str, Environment] = {}
        for env in ordered:
            key = env.name.lower()
            if key in self._envs:
                raise ValueError(f"Duplicate environment '{env.name}'")
            self._envs[key] = env

        self._aliases: Dict[str, str] = {}
        for alias, target in (aliases or {}).items():
            alias_key, target_key = alias.lower(), target.lower()
            if alias_key in self._envs:
                raise ValueError(f"Alias '{alias}' shadows a registered environment")
            if target_key not in self._envs:
                raise ValueError(f"Alias '{alias}' points to unknown environment '{target}'")
            self._aliases[alias_key] = target_key

        self._preview_service_template = preview_service_template
        self._preview_url_template = preview_url_template
        logger.debug(f"[Registry] Loaded environments: {', '.join(self.names())}")

    @classmethod
    def from_config(cls, environments: List[Dict[str, Any]],
                    aliases: Optional[Dict[str, str]] = None,
                    preview_service_template: str = "{name}",
                    preview_url_template: str = "") -> "EnvironmentRegistry":
        """Build a registry from plain config dicts; list position is the promotion order."""
        envs = []
        for idx, raw in enumerate(environments):
            data = dict(raw)
            data.setdefault("branch", data.get("name", ""))
            data.setdefault("label", str(data.get("name", "")).upper())
            data.setdefault("order", idx)
            envs.append(Environment(**data))
        return cls(envs, aliases, preview_service_template, preview_url_template)

    @classmethod
    def from_settings(cls, settings) -> "EnvironmentRegistry":
        return cls.from_config(
            settings.environments, settings.aliases,
            settings.preview_service_template, settings.preview_url_template,
        )

    # ── Lookup ────────────────────────────────────────────────────

    def resolve(self, name: str) -> Environment:
        """Resolve a name or alias (case-insensitive)."""
        key = (name or "").strip().lower()
        key = self._aliases.get(key, key)
        env = self._envs.get(key)
        if env is None:
            raise UnknownEnvironment(name, self.names() + sorted(self._aliases))
        return env

    def get(self, name: str) -> Optional[Environment]:
        try:
            return self.resolve(name)
        except UnknownEnvironment:
            return None

    def all(self) -> List[Environment]:
        return list(self._envs.values())

    def names(self) -> List[str]:
        return [e.name for e in self._envs.values()]

    def aliases(self) -> Dict[str, str]:
        return {alias: self._envs[target].name for alias, target in self._aliases.items()}

    def aliases_for(self, env: Environment) -> List[str]:
        return [alias for alias, target in self._aliases.items() if target == env.name.lower()]

    def for_branch(self, branch: str) -> Optional[Environment]:
        """Environment deployed from a branch; alias branch names map like env names."""
        for env in self._envs.values():
            if env.branch.lower() == branch.lower():
                return env
        return self.get(branch)

    # ── Adjacency ─────────────────────────────────────────────────

    def _index(self, env: Environment) -> int:
        return self.names().index(self.resolve(env.name).name)

    def next_after(self, env: Environment) -> Optional[Environment]:
        envs = self.all()
        idx = self._index(env)
        return envs[idx + 1] if idx + 1 < len(envs) else None

    def previous_before(self, env: Environment) -> Optional[Environment]:
        envs = self.all()
        idx = self._index(env)
        return envs[idx - 1] if idx > 0 else None

    def is_forward(self, source: Environment, target: Environment) -> bool:
        """True when target sits later in the chain than source."""
        return self._index(target) > self._index(source)

    # ── Preview environments ──────────────────────────────────────

    def preview_environment(self, branch: str) -> Environment:
        """Ad-hoc environment for a branch that is not registered."""
        name = sanitize_branch(branch)
        services = {}
        if self._preview_service_template:
            services["render"] = self._preview_service_template.format(name=name, branch=branch)
        urls = {}
        if self._preview_url_template:
            urls["render"] = self._preview_url_template
        return Environment(
            name=name, branch=branch, label=f"PREVIEW ({branch})",
            order=len(self._envs), preview=True, services=services, urls=urls,
        )
