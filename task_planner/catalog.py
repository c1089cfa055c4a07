"""
Agent catalog: the fixed pool of executable agents and their affinities.

Each agent has different strengths:
- claude: complex code, architecture, code review, security-sensitive work
- gemini: research, documentation, exploration, long-context analysis
- codex: quick fixes, tests, boilerplate
- opencode: general purpose, close behind codex on quick fixes
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import TYPE_CHECKING, Iterable, Mapping

from .models import AgentId, TaskCategory

if TYPE_CHECKING:
    from .config_loader import PlannerConfig


@dataclass(frozen=True)
class AgentProfile:
    """Static capability profile for one agent."""

    agent: AgentId
    affinity: Mapping[TaskCategory, float]  # weights in [0, 1]
    tags: frozenset[str] = frozenset()
    excluded_categories: frozenset[TaskCategory] = frozenset()
    strengths: tuple[str, ...] = ()

    def affinity_for(self, category: TaskCategory) -> float:
        return self.affinity.get(category, 0.0)

    def is_excluded(self, category: TaskCategory) -> bool:
        return category in self.excluded_categories


@dataclass(frozen=True)
class SecondarySignal:
    """Keyword signal that rewards agents carrying a matching tag."""

    name: str
    keywords: tuple[str, ...]
    tag: str
    bonus: float = 0.1


DEFAULT_PROFILES: tuple[AgentProfile, ...] = (
    AgentProfile(
        agent=AgentId.CLAUDE,
        affinity=MappingProxyType({
            TaskCategory.COMPLEX_CODE: 1.0,
            TaskCategory.REVIEW: 0.95,
            TaskCategory.GENERAL: 0.8,
            TaskCategory.RESEARCH: 0.7,
            TaskCategory.QUICK_FIX: 0.55,
        }),
        tags=frozenset({"security", "architecture"}),
        strengths=(
            "Complex multi-file changes",
            "Architectural decisions",
            "Code review and analysis",
            "Security considerations",
        ),
    ),
    AgentProfile(
        agent=AgentId.GEMINI,
        affinity=MappingProxyType({
            TaskCategory.RESEARCH: 1.0,
            TaskCategory.GENERAL: 0.75,
            TaskCategory.REVIEW: 0.6,
            TaskCategory.COMPLEX_CODE: 0.5,
            TaskCategory.QUICK_FIX: 0.45,
        }),
        tags=frozenset({"long_context", "documentation"}),
        excluded_categories=frozenset({TaskCategory.COMPLEX_CODE}),
        strengths=(
            "Research and exploration",
            "Multi-file analysis",
            "Documentation generation",
            "Long context understanding",
        ),
    ),
    AgentProfile(
        agent=AgentId.CODEX,
        affinity=MappingProxyType({
            TaskCategory.QUICK_FIX: 1.0,
            TaskCategory.GENERAL: 0.65,
            TaskCategory.COMPLEX_CODE: 0.6,
            TaskCategory.REVIEW: 0.4,
            TaskCategory.RESEARCH: 0.35,
        }),
        tags=frozenset({"tests", "fast"}),
        excluded_categories=frozenset({TaskCategory.REVIEW}),
        strengths=(
            "Fast execution",
            "Test generation",
            "Quick bug fixes",
            "Boilerplate code",
        ),
    ),
    AgentProfile(
        agent=AgentId.OPENCODE,
        affinity=MappingProxyType({
            TaskCategory.QUICK_FIX: 0.88,
            TaskCategory.GENERAL: 0.85,
            TaskCategory.COMPLEX_CODE: 0.65,
            TaskCategory.REVIEW: 0.55,
            TaskCategory.RESEARCH: 0.5,
        }),
        tags=frozenset({"fast"}),
        strengths=(
            "General purpose coding",
            "Good balance of speed and quality",
            "Wide language support",
        ),
    ),
)

DEFAULT_SECONDARY_SIGNALS: tuple[SecondarySignal, ...] = (
    SecondarySignal(
        name="security",
        keywords=(
            "auth", "oauth", "sso", "login", "security", "secure", "payment",
            "crypto", "permission", "credential", "token", "secret",
        ),
        tag="security",
        bonus=0.1,
    ),
)

DEFAULT_EXCLUSION_PENALTY = 0.25


class AgentCatalog:
    """
    Read-only registry of agent profiles and secondary scoring signals.

    Example:
        >>> catalog = AgentCatalog.default()
        >>> catalog.affinity(AgentId.GEMINI, TaskCategory.RESEARCH)
        1.0
    """

    def __init__(
        self,
        profiles: Iterable[AgentProfile] = DEFAULT_PROFILES,
        secondary_signals: Iterable[SecondarySignal] = DEFAULT_SECONDARY_SIGNALS,
        exclusion_penalty: float = DEFAULT_EXCLUSION_PENALTY,
    ) -> None:
        by_agent = {profile.agent: profile for profile in profiles}
        missing = [agent.value for agent in AgentId if agent not in by_agent]
        if missing:
            raise ValueError(f"Catalog is missing profiles for: {', '.join(missing)}")
        # Keep catalog priority order regardless of input order
        self._profiles = {agent: by_agent[agent] for agent in AgentId}
        self._signals = tuple(secondary_signals)
        self._exclusion_penalty = exclusion_penalty

    @classmethod
    def default(cls) -> AgentCatalog:
        return cls()

    @classmethod
    def from_config(cls, config: PlannerConfig) -> AgentCatalog:
        """
        Build a catalog from a validated configuration document.

        Agents the document does not mention keep their default profile;
        a mentioned agent's affinity entries override the defaults one by one.
        """
        profiles = []
        for profile in DEFAULT_PROFILES:
            override = config.agents.get(profile.agent)
            if override is None:
                profiles.append(profile)
                continue
            affinity = dict(profile.affinity)
            affinity.update(override.affinity)
            updates = {"affinity": MappingProxyType(affinity)}
            if override.tags is not None:
                updates["tags"] = frozenset(override.tags)
            if override.excluded_categories is not None:
                updates["excluded_categories"] = frozenset(override.excluded_categories)
            profiles.append(replace(profile, **updates))

        if config.secondary_signals is None:
            signals = DEFAULT_SECONDARY_SIGNALS
        else:
            signals = tuple(
                SecondarySignal(
                    name=signal.name,
                    keywords=tuple(k.lower() for k in signal.keywords),
                    tag=signal.tag,
                    bonus=signal.bonus,
                )
                for signal in config.secondary_signals
            )

        return cls(profiles, signals, config.exclusion_penalty)

    @property
    def agents(self) -> tuple[AgentId, ...]:
        """Agents in catalog priority order."""
        return tuple(self._profiles)

    @property
    def secondary_signals(self) -> tuple[SecondarySignal, ...]:
        return self._signals

    @property
    def exclusion_penalty(self) -> float:
        return self._exclusion_penalty

    def profile(self, agent: AgentId | str) -> AgentProfile:
        return self._profiles[AgentId.parse(agent)]

    def affinity(self, agent: AgentId | str, category: TaskCategory) -> float:
        return self.profile(agent).affinity_for(category)

    def priority(self, agent: AgentId) -> int:
        """Tie-break rank of an agent; lower ranks win ties."""
        return self.agents.index(agent)

    def profiles(self) -> list[AgentProfile]:
        return list(self._profiles.values())
