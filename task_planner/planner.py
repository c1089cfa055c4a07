"""
Planning workflow: decompose, resolve and assign in one pass.

Turns a high-level task (or an existing batch of issues) into an
ExecutionPlan of ordered phases of (issue, agent) pairs.
"""

from __future__ import annotations

from typing import Iterable, Sequence
from uuid import uuid4

import structlog

from .assignment import DEFAULT_BALANCE_TOLERANCE, AgentAssignmentService
from .catalog import AgentCatalog
from .classifier import TaskClassifier
from .config_loader import PlannerConfig
from .dependency_resolver import DependencyResolver
from .exceptions import CyclicGraphError
from .logging_config import LogContext
from .models import (
    AgentAssignment,
    AgentId,
    DecompositionInput,
    ExecutionPhase,
    ExecutionPlan,
    Issue,
    IssueStatus,
    PlanningSummary,
    Subtask,
)
from .scorer import AgentScorer
from .task_decomposer import TaskDecompositionService

logger = structlog.get_logger()


def subtasks_to_issues(subtasks: Sequence[Subtask], id_prefix: str = "task") -> list[Issue]:
    """Give subtasks ids of the form ``<prefix>-<n>`` and map index edges onto them."""
    def issue_id(index: int) -> str:
        return f"{id_prefix}-{index + 1}"

    return [
        Issue(
            id=issue_id(index),
            title=subtask.title,
            description=subtask.description,
            priority=subtask.priority,
            type=subtask.type.value,
            depends_on=tuple(issue_id(dep) for dep in subtask.depends_on),
        )
        for index, subtask in enumerate(subtasks)
    ]


def most_urgent(issues: Sequence[Issue]) -> Issue:
    """Lowest priority number wins; ties keep backlog order."""
    return min(enumerate(issues), key=lambda pair: (pair[1].priority, pair[0]))[1]


def estimate_phase_duration(assignment_count: int) -> str:
    if assignment_count <= 2:
        return "short"
    if assignment_count <= 4:
        return "medium"
    return "long"


class PlanningWorkflow:
    """
    Runs the full planning cycle.

    decompose -> issue ids -> dependency graph -> cycle check -> phases ->
    per-issue agent assignment, in phase order.

    Each plan gets a fresh assignment session so load balancing never leaks
    between runs, unless an explicit ``assignment_service`` is supplied.

    Example:
        >>> workflow = PlanningWorkflow()
        >>> plan = workflow.plan_task(DecompositionInput(title="Add OAuth login"))
        >>> [phase.issue_ids for phase in plan.phases][0]
        ['task-1']
    """

    def __init__(
        self,
        decomposer: TaskDecompositionService | None = None,
        resolver: DependencyResolver | None = None,
        assignment_service: AgentAssignmentService | None = None,
        *,
        scorer: AgentScorer | None = None,
        balance_tolerance: float = DEFAULT_BALANCE_TOLERANCE,
        balance_load: bool = True,
        max_parallel_agents: int | None = None,
    ) -> None:
        self.scorer = scorer or (assignment_service.scorer if assignment_service else AgentScorer())
        self.decomposer = decomposer or TaskDecompositionService(self.scorer.classifier)
        self.resolver = resolver or DependencyResolver()
        self._assignment_service = assignment_service
        self._balance_tolerance = balance_tolerance
        self._balance_load = balance_load
        self.max_parallel_agents = max_parallel_agents

    @classmethod
    def from_config(
        cls,
        config: PlannerConfig,
        max_parallel_agents: int | None = None,
    ) -> PlanningWorkflow:
        """Build a workflow whose catalog, classifier and balancing follow a config document."""
        classifier = TaskClassifier.from_config(config.classifier)
        scorer = AgentScorer(AgentCatalog.from_config(config), classifier)
        return cls(
            decomposer=TaskDecompositionService(classifier),
            scorer=scorer,
            balance_tolerance=config.assignment.balance_tolerance,
            balance_load=config.assignment.balance_load,
            max_parallel_agents=max_parallel_agents,
        )

    def plan_task(
        self,
        task: DecompositionInput,
        *,
        id_prefix: str = "task",
        balance_load: bool | None = None,
        available_agents: Iterable[AgentId | str] | None = None,
    ) -> ExecutionPlan:
        """
        Decompose a task and plan its subtasks.

        Args:
            task: High-level task to decompose
            id_prefix: Prefix for generated issue ids
            balance_load: Override the workflow's load balancing setting
            available_agents: Optional restriction of the agent pool

        Returns:
            ExecutionPlan carrying the decomposition it was built from
        """
        decomposition = self.decomposer.decompose(task)
        issues = subtasks_to_issues(decomposition.subtasks, id_prefix)
        plan = self.plan_issues(
            issues,
            balance_load=balance_load,
            available_agents=available_agents,
        )
        plan.decomposition = decomposition
        return plan

    def plan_issues(
        self,
        issues: Iterable[Issue],
        *,
        balance_load: bool | None = None,
        available_agents: Iterable[AgentId | str] | None = None,
        strict: bool = False,
    ) -> ExecutionPlan:
        """
        Plan an existing batch of issues.

        Done issues keep their place in the graph (their dependents wait
        on nothing) but receive no assignment.

        Raises:
            CyclicGraphError: If the issues contain a dependency cycle
            DuplicateIssueError: If two issues share an id
            NoEligibleAgentError: If the agent restriction is empty
        """
        plan_id = f"plan_{uuid4().hex[:12]}"
        balance = self._balance_load if balance_load is None else balance_load
        agents = list(available_agents) if available_agents is not None else None

        with LogContext(plan_id=plan_id):
            graph = self.resolver.build_dependency_graph(issues, strict=strict)
            cycles = self.resolver.detect_cycles(graph)
            if cycles:
                logger.error("plan_rejected", reason="cycle", cycle=cycles[0])
                raise CyclicGraphError(cycles[0])

            order = self.resolver.topological_sort(graph)
            service = self._assignment_service or self._new_assignment_service()

            phases: list[ExecutionPhase] = []
            for phase_ids in order.parallel:
                assignments = [
                    service.assign_agent(issue, balance_load=balance, available_agents=agents)
                    for issue in (graph.issue(issue_id) for issue_id in phase_ids)
                    if issue.status is not IssueStatus.DONE
                ]
                if not assignments:
                    continue
                phases.append(ExecutionPhase(
                    phase_number=len(phases) + 1,
                    assignments=assignments,
                    can_run_parallel=self._can_run_parallel(len(assignments)),
                    estimated_duration=estimate_phase_duration(len(assignments)),
                ))

            total = sum(len(phase.assignments) for phase in phases)
            plan = ExecutionPlan(
                plan_id=plan_id,
                phases=phases,
                critical_path=order.critical_path,
                total_agent_sessions=total,
                estimated_parallelism=round(total / len(phases), 2) if phases else 0.0,
                diagnostics=list(graph.diagnostics),
            )

            logger.info(
                "plan_created",
                issues=len(graph),
                phases=len(phases),
                sessions=total,
                parallelism=plan.estimated_parallelism,
            )
            return plan

    def next_assignment(
        self,
        issues: Sequence[Issue],
        *,
        balance_load: bool | None = None,
        available_agents: Iterable[AgentId | str] | None = None,
    ) -> AgentAssignment | None:
        """Assign an agent to the most urgent ready issue of a backlog, if any."""
        ready = self.resolver.get_ready_issues(issues).ready
        if not ready:
            return None
        service = self._assignment_service or self._new_assignment_service()
        balance = self._balance_load if balance_load is None else balance_load
        return service.assign_agent(
            most_urgent(ready), balance_load=balance, available_agents=available_agents
        )

    def ready_assignments(
        self,
        issues: Sequence[Issue],
        *,
        balance_load: bool | None = None,
        available_agents: Iterable[AgentId | str] | None = None,
    ) -> list[AgentAssignment]:
        """
        Assign an agent to every ready issue of a backlog.

        All assignments share one session, so load balancing spreads the
        ready work across agents. Results follow backlog order.
        """
        ready = self.resolver.get_ready_issues(issues).ready
        service = self._assignment_service or self._new_assignment_service()
        balance = self._balance_load if balance_load is None else balance_load
        agents = list(available_agents) if available_agents is not None else None
        return [
            service.assign_agent(issue, balance_load=balance, available_agents=agents)
            for issue in ready
        ]

    def summary(self, issues: Sequence[Issue]) -> PlanningSummary:
        """
        Summarize a backlog: readiness counts, the agent for the most urgent
        ready issue and the number of phases a full plan would take.

        Raises:
            CyclicGraphError: If the backlog contains a dependency cycle
        """
        readiness = self.resolver.get_ready_issues(issues)
        next_up = self.next_assignment(issues)
        plan = self.plan_issues(issues)

        return PlanningSummary(
            ready_tasks=len(readiness.ready),
            blocked_tasks=len(readiness.blocked),
            in_progress_tasks=len(readiness.in_progress),
            recommended_next_agent=next_up.agent if next_up else None,
            estimated_phases=len(plan.phases),
        )

    def _new_assignment_service(self) -> AgentAssignmentService:
        return AgentAssignmentService(
            scorer=self.scorer,
            balance_tolerance=self._balance_tolerance,
            balance_load=self._balance_load,
        )

    def _can_run_parallel(self, assignment_count: int) -> bool:
        if assignment_count <= 1:
            return False
        return self.max_parallel_agents is None or assignment_count <= self.max_parallel_agents
