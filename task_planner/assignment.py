"""
Agent assignment with session-scoped load balancing.

Workload counters live in an AssignmentSession created per planning run.
A session is not locked; planners running concurrently must each use their
own session.
"""

from __future__ import annotations

from typing import Iterable
from uuid import uuid4

import structlog

from .catalog import AgentCatalog
from .exceptions import NoEligibleAgentError
from .models import (
    AgentAssignment,
    AgentId,
    AgentRecommendation,
    AgentScore,
    AgentWorkload,
    AssignmentStats,
    Issue,
    TaskCategory,
)
from .scorer import AgentScorer, resolve_agents

logger = structlog.get_logger()

# Assigned task count at which an agent's estimated load reaches 1.0
LOAD_NORMALIZER = 5

DEFAULT_BALANCE_TOLERANCE = 0.15


class AssignmentSession:
    """Per-run owner of agent workload counters."""

    def __init__(
        self,
        agents: Iterable[AgentId] = tuple(AgentId),
        session_id: str | None = None,
    ) -> None:
        self.session_id = session_id or str(uuid4())
        self._agents = tuple(agents)
        self._workloads: dict[AgentId, AgentWorkload] = {}
        self.reset()

    def reset(self) -> None:
        self._workloads = {agent: AgentWorkload(agent=agent) for agent in self._agents}

    def workload(self, agent: AgentId) -> AgentWorkload:
        return self._workloads[agent]

    def record_assignment(self, agent: AgentId) -> None:
        workload = self._workloads[agent]
        workload.assigned_tasks += 1
        workload.estimated_load = min(1.0, workload.assigned_tasks / LOAD_NORMALIZER)

    def release(self, agent: AgentId) -> None:
        workload = self._workloads[agent]
        if workload.assigned_tasks > 0:
            workload.assigned_tasks -= 1
            workload.estimated_load = max(0.0, workload.assigned_tasks / LOAD_NORMALIZER)

    def mark_active(self, agent: AgentId, active: bool) -> None:
        self._workloads[agent].currently_active = active

    def workloads(self) -> list[AgentWorkload]:
        """Snapshot copies of every workload, in catalog order."""
        return [
            AgentWorkload(
                agent=w.agent,
                assigned_tasks=w.assigned_tasks,
                estimated_load=w.estimated_load,
                currently_active=w.currently_active,
            )
            for w in self._workloads.values()
        ]

    def stats(self) -> AssignmentStats:
        by_agent = {agent: w.assigned_tasks for agent, w in self._workloads.items()}
        return AssignmentStats(
            total_assignments=sum(by_agent.values()),
            by_agent=by_agent,
            active_agents=sum(1 for w in self._workloads.values() if w.currently_active),
        )


class AgentAssignmentService:
    """
    Assigns the most suitable agent to each issue, optionally balancing load.

    With load balancing on, every ranked candidate whose score is within
    ``balance_tolerance`` (relative) of the best score is eligible, and the
    least loaded one wins; ties go to the higher score, then catalog order.

    Attributes:
        scorer: Agent scorer used for ranking
        session: Workload state for the current planning run

    Example:
        >>> service = AgentAssignmentService()
        >>> issue = Issue(id="t-1", title="Fix typo in README")
        >>> service.assign_agent(issue).agent
        <AgentId.CODEX: 'codex'>
    """

    def __init__(
        self,
        scorer: AgentScorer | None = None,
        session: AssignmentSession | None = None,
        balance_tolerance: float = DEFAULT_BALANCE_TOLERANCE,
        balance_load: bool = True,
    ) -> None:
        if not 0.0 <= balance_tolerance <= 1.0:
            raise ValueError("balance_tolerance must be between 0 and 1")
        self.scorer = scorer or AgentScorer()
        self.session = session or AssignmentSession(self.scorer.catalog.agents)
        self._balance_tolerance = balance_tolerance
        self._balance_load = balance_load

    @property
    def catalog(self) -> AgentCatalog:
        return self.scorer.catalog

    @property
    def balance_tolerance(self) -> float:
        return self._balance_tolerance

    def assign_agent(
        self,
        issue: Issue,
        *,
        balance_load: bool | None = None,
        available_agents: Iterable[AgentId | str] | None = None,
    ) -> AgentAssignment:
        """
        Assign an agent to a single issue and count it against the session.

        Args:
            issue: Issue (or any object with title/description) to assign
            balance_load: Prefer the least loaded agent within tolerance;
                defaults to the service setting
            available_agents: Optional restriction of the agent pool

        Returns:
            AgentAssignment with the chosen agent and ranked alternatives

        Raises:
            NoEligibleAgentError: If the restriction leaves no candidates
            UnknownAgentError: If the restriction names an unknown agent
        """
        balance = self._balance_load if balance_load is None else balance_load
        issue_id = getattr(issue, "id", "")
        title = issue.title
        description = issue.description or ""

        classification = self.scorer.classify(title, description)
        ranked = self.scorer.rank(classification, title, description)

        restriction = resolve_agents(available_agents)
        if restriction is not None:
            ranked = [s for s in ranked if s.agent in restriction]
        if not ranked:
            raise NoEligibleAgentError(
                f"No eligible agent for issue {issue_id!r}: "
                f"restriction {[a.value for a in restriction or ()]} matches no catalog agent",
                requested=tuple(a.value for a in restriction or ()),
            )

        chosen = self._pick_balanced(ranked) if balance else ranked[0]
        self.session.record_assignment(chosen.agent)

        reasoning = f"{classification.reasoning}. {chosen.reasoning}"
        if chosen.agent is not ranked[0].agent:
            reasoning += f"; load-balanced away from {ranked[0].agent.value}"

        assignment = AgentAssignment(
            issue_id=issue_id,
            agent=chosen.agent,
            confidence=max(0.0, min(1.0, chosen.score)),
            category=classification.category,
            reasoning=reasoning,
            alternative_agents=[s.agent for s in ranked if s.agent is not chosen.agent],
        )

        logger.info(
            "agent_assigned",
            session_id=self.session.session_id,
            issue_id=issue_id,
            agent=chosen.agent.value,
            category=classification.category.value,
            confidence=assignment.confidence,
            balanced=balance,
        )
        return assignment

    def _pick_balanced(self, ranked: list[AgentScore]) -> AgentScore:
        best = ranked[0].score
        threshold = best - abs(best) * self._balance_tolerance
        candidates = [s for s in ranked if s.score >= threshold - 1e-9] or ranked[:1]
        return min(
            candidates,
            key=lambda s: (
                self.session.workload(s.agent).assigned_tasks,
                -s.score,
                self.catalog.priority(s.agent),
            ),
        )

    def get_agent_for_category(
        self,
        category: TaskCategory,
        available_agents: Iterable[AgentId | str] | None = None,
    ) -> AgentRecommendation:
        """Recommended agent for a category, independent of task text."""
        return self.scorer.select_agent_for_category(category, available_agents)

    def compare_agents(self, title: str, description: str | None = None) -> list[AgentScore]:
        """Compare all agents for a task without recording an assignment."""
        return self.scorer.compare_agents_for_task(title, description)

    def get_workloads(self) -> list[AgentWorkload]:
        return self.session.workloads()

    def get_assignment_stats(self) -> AssignmentStats:
        return self.session.stats()

    def reset_workloads(self) -> None:
        self.session.reset()

    def mark_agent_active(self, agent: AgentId | str, active: bool) -> None:
        """Flag an agent as currently running a task."""
        self.session.mark_active(AgentId.parse(agent), active)

    def release_assignment(self, agent: AgentId | str) -> None:
        """Release one assignment (task completed or cancelled); never below zero."""
        self.session.release(AgentId.parse(agent))
