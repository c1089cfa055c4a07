"""Deterministic agent scoring for classified tasks."""

from __future__ import annotations

import re
from typing import Iterable

import structlog

from .catalog import AgentCatalog, SecondarySignal
from .classifier import TaskClassifier
from .exceptions import NoEligibleAgentError
from .models import (
    AgentId,
    AgentRecommendation,
    AgentScore,
    ClassificationResult,
    TaskCategory,
)

logger = structlog.get_logger()

# Affinity at or above this marks an agent as specialized for a category
SPECIALIST_AFFINITY = 0.85


def resolve_agents(agents: Iterable[AgentId | str] | None) -> tuple[AgentId, ...] | None:
    """Normalize an optional agent restriction, preserving order and dropping repeats."""
    if agents is None:
        return None
    resolved: list[AgentId] = []
    for agent in agents:
        parsed = AgentId.parse(agent)
        if parsed not in resolved:
            resolved.append(parsed)
    return tuple(resolved)


class AgentScorer:
    """
    Ranks agents by suitability for a task.

    ``score = affinity[agent][category] * confidence + secondary``, where the
    secondary term adds the bonus of every matching secondary signal for
    agents carrying the signal's tag and subtracts the catalog's exclusion
    penalty for agents excluded from the category. Ties fall back to the
    catalog priority order so rankings are reproducible.
    """

    def __init__(
        self,
        catalog: AgentCatalog | None = None,
        classifier: TaskClassifier | None = None,
    ) -> None:
        self._catalog = catalog or AgentCatalog.default()
        self._classifier = classifier or TaskClassifier()
        self._signal_patterns = {
            signal.name: [
                re.compile(rf"\b{re.escape(keyword)}\w*", re.IGNORECASE)
                for keyword in signal.keywords
            ]
            for signal in self._catalog.secondary_signals
        }

    @property
    def catalog(self) -> AgentCatalog:
        return self._catalog

    @property
    def classifier(self) -> TaskClassifier:
        return self._classifier

    def classify(self, title: str, description: str | None = None) -> ClassificationResult:
        return self._classifier.classify(title, description)

    def compare_agents_for_task(
        self,
        title: str,
        description: str | None = None,
        available_agents: Iterable[AgentId | str] | None = None,
    ) -> list[AgentScore]:
        """
        Rank agents for a task, best first.

        Args:
            title: Task title
            description: Task description
            available_agents: Optional restriction of the agent pool

        Returns:
            Agent scores sorted by descending score, then catalog order
        """
        classification = self.classify(title, description)
        return self.rank(classification, title, description, available_agents)

    def rank(
        self,
        classification: ClassificationResult,
        title: str,
        description: str | None = None,
        available_agents: Iterable[AgentId | str] | None = None,
    ) -> list[AgentScore]:
        """Rank agents for an already classified task."""
        restriction = resolve_agents(available_agents)
        agents = [
            agent for agent in self._catalog.agents
            if restriction is None or agent in restriction
        ]
        matched_signals = self._matched_signals(f"{title or ''} {description or ''}")

        scores = [
            self._score_agent(agent, classification, matched_signals)
            for agent in agents
        ]
        scores.sort(key=lambda s: (-s.score, self._catalog.priority(s.agent)))

        logger.debug(
            "agents_ranked",
            category=classification.category.value,
            ranking=[(s.agent.value, s.score) for s in scores],
        )
        return scores

    def select_agent_for_category(
        self,
        category: TaskCategory,
        available_agents: Iterable[AgentId | str] | None = None,
    ) -> AgentRecommendation:
        """
        Pick the best agent for a bare category, without task text.

        Uses the same affinity table with confidence fixed at 1.0 and no
        keyword signals.

        Raises:
            NoEligibleAgentError: If the restriction leaves no agents
        """
        restriction = resolve_agents(available_agents)
        agents = [
            agent for agent in self._catalog.agents
            if restriction is None or agent in restriction
        ]
        if not agents:
            raise NoEligibleAgentError(
                f"No eligible agent for category '{category.value}'",
                requested=tuple(a.value for a in restriction or ()),
            )

        def category_score(agent: AgentId) -> float:
            profile = self._catalog.profile(agent)
            score = profile.affinity_for(category)
            if profile.is_excluded(category):
                score -= self._catalog.exclusion_penalty
            return round(score, 4)

        ranked = sorted(agents, key=lambda a: (-category_score(a), self._catalog.priority(a)))
        recommended = ranked[0]
        profile = self._catalog.profile(recommended)
        qualifier = "specialized" if profile.affinity_for(category) >= SPECIALIST_AFFINITY else "best available"

        return AgentRecommendation(
            recommended=recommended,
            alternatives=tuple(ranked[1:]),
            confidence=max(0.0, min(1.0, category_score(recommended))),
            reasoning=(
                f"{recommended.value} is {qualifier} for {category.value}: "
                f"{', '.join(profile.strengths[:2])}"
            ),
        )

    def _matched_signals(self, text: str) -> list[SecondarySignal]:
        return [
            signal for signal in self._catalog.secondary_signals
            if any(p.search(text) for p in self._signal_patterns[signal.name])
        ]

    def _score_agent(
        self,
        agent: AgentId,
        classification: ClassificationResult,
        matched_signals: list[SecondarySignal],
    ) -> AgentScore:
        profile = self._catalog.profile(agent)
        category = classification.category
        affinity = profile.affinity_for(category)
        score = affinity * classification.confidence

        notes = []
        for signal in matched_signals:
            if signal.tag in profile.tags:
                score += signal.bonus
                notes.append(f"+{signal.name} signal")
        excluded = profile.is_excluded(category)
        if excluded:
            score -= self._catalog.exclusion_penalty
            notes.append(f"excluded for {category.value}")

        if affinity >= SPECIALIST_AFFINITY:
            reasoning = f"{agent.value} is specialized for {category.value}"
        else:
            reasoning = f"{agent.value} is a general option for {category.value}"
        if classification.keywords:
            reasoning += f" (keywords: {', '.join(classification.keywords[:3])})"
        if notes:
            reasoning += f"; {'; '.join(notes)}"

        return AgentScore(agent=agent, score=round(score, 4), reasoning=reasoning)
