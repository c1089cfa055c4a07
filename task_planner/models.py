"""Shared data models for the agent task planner."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from .exceptions import UnknownAgentError


class AgentId(str, Enum):
    """Executable agents. Declaration order is the catalog priority order."""

    CLAUDE = "claude"
    GEMINI = "gemini"
    CODEX = "codex"
    OPENCODE = "opencode"

    @classmethod
    def parse(cls, value: AgentId | str) -> AgentId:
        """Resolve an agent from its enum member or (case-insensitive) name."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnknownAgentError(str(value)) from None

    @classmethod
    def priority_of(cls, agent: AgentId) -> int:
        """Position of an agent in the catalog priority order."""
        return list(cls).index(agent)


class TaskCategory(str, Enum):
    """Closed set of task categories produced by the classifier."""

    RESEARCH = "research"
    COMPLEX_CODE = "complex_code"
    QUICK_FIX = "quick_fix"
    REVIEW = "review"
    GENERAL = "general"


class TaskType(str, Enum):
    """Kind of work item being planned."""

    FEATURE = "feature"
    BUG = "bug"
    CHORE = "chore"
    TASK = "task"


class IssueStatus(str, Enum):
    """Lifecycle status of a backlog issue."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    DONE = "done"


class ComplexityLevel(str, Enum):
    """Coarse complexity bucket."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class ComplexityEstimate:
    """Heuristic complexity estimate for a task."""

    level: ComplexityLevel
    score: float  # 0.0 to 5.0
    factors: tuple[str, ...] = ()


@dataclass(frozen=True)
class ClassificationResult:
    """Category and confidence assigned to a task."""

    category: TaskCategory
    confidence: float  # 0.0 to 1.0
    keywords: tuple[str, ...] = ()
    scores: Mapping[TaskCategory, float] = field(default_factory=dict)
    reasoning: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "confidence": self.confidence,
            "keywords": list(self.keywords),
            "scores": {c.value: s for c, s in self.scores.items()},
            "reasoning": self.reasoning,
        }


@dataclass(frozen=True)
class Subtask:
    """A decomposed unit of work, prior to graph construction."""

    title: str
    description: str
    type: TaskType
    priority: int  # 1 (most urgent) to 3
    depends_on: tuple[int, ...] = ()  # indices into the sibling subtask list
    category: TaskCategory | None = None
    estimated_complexity: ComplexityLevel = ComplexityLevel.MEDIUM

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "type": self.type.value,
            "priority": self.priority,
            "depends_on": list(self.depends_on),
            "category": self.category.value if self.category else None,
            "estimated_complexity": self.estimated_complexity.value,
        }


@dataclass(frozen=True)
class Issue:
    """A graph node: a subtask with a global id, or a pre-existing backlog item."""

    id: str
    title: str
    description: str = ""
    status: IssueStatus = IssueStatus.OPEN
    priority: int = 2
    type: str = "task"
    depends_on: tuple[str, ...] = ()
    blocked_by: tuple[str, ...] = ()
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self) -> None:
        # Accept lists and plain strings from callers; store immutable values
        object.__setattr__(self, "status", IssueStatus(self.status))
        object.__setattr__(self, "depends_on", tuple(self.depends_on))
        object.__setattr__(self, "blocked_by", tuple(self.blocked_by))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Issue:
        """Build an issue from a persisted record (snake_case or camelCase keys)."""
        created = data.get("created_at", data.get("createdAt"))
        if isinstance(created, str):
            created = datetime.fromisoformat(created)
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            description=data.get("description") or "",
            status=data.get("status", IssueStatus.OPEN),
            priority=int(data.get("priority", 2)),
            type=data.get("type", "task"),
            depends_on=tuple(str(d) for d in data.get("depends_on", data.get("dependsOn", ())) or ()),
            blocked_by=tuple(str(d) for d in data.get("blocked_by", data.get("blockedBy", ())) or ()),
            created_at=created or datetime.now(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority,
            "type": self.type,
            "depends_on": list(self.depends_on),
            "blocked_by": list(self.blocked_by),
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class MalformedSubtaskReference:
    """Diagnostic for a dependency on an id that is not in the batch."""

    issue_id: str
    missing_id: str

    @property
    def message(self) -> str:
        return (
            f"{self.issue_id} depends on unknown {self.missing_id}; "
            "treated as already satisfied"
        )

    def to_dict(self) -> dict[str, str]:
        return {"issue_id": self.issue_id, "missing_id": self.missing_id}


@dataclass(frozen=True)
class NodeInfo:
    """View of one graph node with its outgoing and incoming edges."""

    issue: Issue
    depends_on: frozenset[str]
    dependents: frozenset[str]


@dataclass(frozen=True)
class DependencyGraph:
    """
    Immutable dependency graph over a batch of issues.

    Nodes are stored by input position; edges are tuples of positions.
    ``dependency_indices[i]`` lists what issue ``i`` depends on and
    ``dependent_indices[i]`` lists the issues that depend on ``i``.
    """

    issues: tuple[Issue, ...] = ()
    dependency_indices: tuple[tuple[int, ...], ...] = ()
    dependent_indices: tuple[tuple[int, ...], ...] = ()
    diagnostics: tuple[MalformedSubtaskReference, ...] = ()
    _positions: dict[str, int] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "_positions", {issue.id: i for i, issue in enumerate(self.issues)}
        )

    def __len__(self) -> int:
        return len(self.issues)

    def __contains__(self, issue_id: object) -> bool:
        return issue_id in self._positions

    @property
    def ids(self) -> tuple[str, ...]:
        """Issue ids in input order."""
        return tuple(issue.id for issue in self.issues)

    @property
    def edge_count(self) -> int:
        return sum(len(deps) for deps in self.dependency_indices)

    def position(self, issue_id: str) -> int:
        """Input position of an issue; raises KeyError for unknown ids."""
        return self._positions[issue_id]

    def issue(self, issue_id: str) -> Issue:
        return self.issues[self._positions[issue_id]]

    def node(self, issue_id: str) -> NodeInfo:
        index = self._positions[issue_id]
        return NodeInfo(
            issue=self.issues[index],
            depends_on=frozenset(self.issues[d].id for d in self.dependency_indices[index]),
            dependents=frozenset(self.issues[d].id for d in self.dependent_indices[index]),
        )

    @property
    def nodes(self) -> dict[str, NodeInfo]:
        """Map of issue id to node view, in input order."""
        return {issue.id: self.node(issue.id) for issue in self.issues}


@dataclass
class ExecutionOrder:
    """Phased topological order of a dependency graph."""

    sequential: list[str] = field(default_factory=list)
    parallel: list[list[str]] = field(default_factory=list)  # one inner list per phase
    critical_path: list[str] = field(default_factory=list)

    def phase_of(self, issue_id: str) -> int:
        """Zero-based phase index of an issue."""
        for index, phase in enumerate(self.parallel):
            if issue_id in phase:
                return index
        raise KeyError(issue_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sequential": list(self.sequential),
            "parallel": [list(phase) for phase in self.parallel],
            "critical_path": list(self.critical_path),
        }


@dataclass(frozen=True)
class AgentScore:
    """One agent's suitability score for a task."""

    agent: AgentId
    score: float
    reasoning: str

    def to_dict(self) -> dict[str, Any]:
        return {"agent": self.agent.value, "score": self.score, "reasoning": self.reasoning}


@dataclass(frozen=True)
class AgentRecommendation:
    """Best agent for a category with ranked alternatives."""

    recommended: AgentId
    alternatives: tuple[AgentId, ...]
    confidence: float
    reasoning: str


@dataclass
class AgentWorkload:
    """Workload counter for one agent within an assignment session."""

    agent: AgentId
    assigned_tasks: int = 0
    estimated_load: float = 0.0  # 0-1 normalized
    currently_active: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent": self.agent.value,
            "assigned_tasks": self.assigned_tasks,
            "estimated_load": self.estimated_load,
            "currently_active": self.currently_active,
        }


@dataclass
class AgentAssignment:
    """Agent chosen for one issue."""

    issue_id: str
    agent: AgentId
    confidence: float  # 0.0 to 1.0
    category: TaskCategory
    reasoning: str = ""
    alternative_agents: list[AgentId] = field(default_factory=list)  # best first

    def to_dict(self) -> dict[str, Any]:
        return {
            "issue_id": self.issue_id,
            "agent": self.agent.value,
            "confidence": self.confidence,
            "category": self.category.value,
            "reasoning": self.reasoning,
            "alternative_agents": [a.value for a in self.alternative_agents],
        }


@dataclass
class AssignmentStats:
    """Aggregate counters over an assignment session."""

    total_assignments: int
    by_agent: dict[AgentId, int]
    active_agents: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_assignments": self.total_assignments,
            "by_agent": {a.value: n for a, n in self.by_agent.items()},
            "active_agents": self.active_agents,
        }


@dataclass
class DecompositionInput:
    """High-level request handed to the decomposer."""

    title: str
    description: str = ""
    type: TaskType | str = TaskType.FEATURE
    priority: int | None = None


@dataclass
class DecompositionResult:
    """Ordered subtasks with their internal dependency structure."""

    subtasks: list[Subtask]
    reasoning: str
    template: str = ""
    signals: list[str] = field(default_factory=list)
    dependencies: list[tuple[int, int]] = field(default_factory=list)  # (from, to) index pairs
    parallel_groups: list[list[int]] = field(default_factory=list)
    critical_path: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "subtasks": [s.to_dict() for s in self.subtasks],
            "reasoning": self.reasoning,
            "template": self.template,
            "signals": list(self.signals),
            "dependencies": [{"from": a, "to": b} for a, b in self.dependencies],
            "parallel_groups": [list(g) for g in self.parallel_groups],
            "critical_path": list(self.critical_path),
        }


@dataclass
class DecompositionPreview:
    """Cheap summary of a decomposition."""

    decomposition: DecompositionResult
    estimated_effort: str
    parallelization: str


@dataclass(frozen=True)
class TemplateSuggestion:
    """Template the decomposer would use for an input."""

    template: str
    confidence: float
    signals: tuple[str, ...]
    reasoning: str


@dataclass
class BlockedIssue:
    """An issue waiting on unfinished blockers."""

    issue: Issue
    blockers: list[str]


@dataclass
class ReadyIssues:
    """Backlog split by readiness."""

    ready: list[Issue] = field(default_factory=list)
    blocked: list[BlockedIssue] = field(default_factory=list)
    in_progress: list[Issue] = field(default_factory=list)


@dataclass
class ParallelExecutionSet:
    """Ready issues split by whether they can start together."""

    can_run_parallel: list[Issue]
    must_run_sequential: list[Issue]
    reasoning: str


@dataclass
class ExecutionValidation:
    """Whether an issue may be started now."""

    can_execute: bool
    blockers: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class ExecutionPhase:
    """One phase of an execution plan."""

    phase_number: int  # 1-based
    assignments: list[AgentAssignment]
    can_run_parallel: bool
    estimated_duration: str  # short, medium, long

    @property
    def issue_ids(self) -> list[str]:
        return [a.issue_id for a in self.assignments]

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase_number": self.phase_number,
            "assignments": [a.to_dict() for a in self.assignments],
            "can_run_parallel": self.can_run_parallel,
            "estimated_duration": self.estimated_duration,
        }


@dataclass
class ExecutionPlan:
    """Ordered phases of (issue, agent) pairs plus the critical path."""

    plan_id: str
    phases: list[ExecutionPhase] = field(default_factory=list)
    critical_path: list[str] = field(default_factory=list)
    total_agent_sessions: int = 0
    estimated_parallelism: float = 0.0
    diagnostics: list[MalformedSubtaskReference] = field(default_factory=list)
    decomposition: DecompositionResult | None = None
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def assignments(self) -> list[AgentAssignment]:
        return [a for phase in self.phases for a in phase.assignments]

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan_id": self.plan_id,
            "phases": [p.to_dict() for p in self.phases],
            "critical_path": list(self.critical_path),
            "total_agent_sessions": self.total_agent_sessions,
            "estimated_parallelism": self.estimated_parallelism,
            "diagnostics": [d.to_dict() for d in self.diagnostics],
            "decomposition": self.decomposition.to_dict() if self.decomposition else None,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class PlanningSummary:
    """Backlog readiness counts with the next recommended agent."""

    ready_tasks: int
    blocked_tasks: int
    in_progress_tasks: int
    recommended_next_agent: AgentId | None
    estimated_phases: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "ready_tasks": self.ready_tasks,
            "blocked_tasks": self.blocked_tasks,
            "in_progress_tasks": self.in_progress_tasks,
            "recommended_next_agent": (
                self.recommended_next_agent.value if self.recommended_next_agent else None
            ),
            "estimated_phases": self.estimated_phases,
        }
