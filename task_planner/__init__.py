"""
Agent Task Planner

Decomposes high-level tasks into dependent subtasks, assigns each one to the
most suitable coding agent with load balancing, and orders the work into
phases that maximize safe parallelism.
"""

from .models import (
    AgentId,
    TaskCategory,
    TaskType,
    IssueStatus,
    ComplexityLevel,
    ClassificationResult,
    ComplexityEstimate,
    Subtask,
    Issue,
    MalformedSubtaskReference,
    DependencyGraph,
    ExecutionOrder,
    AgentScore,
    AgentRecommendation,
    AgentWorkload,
    AgentAssignment,
    AssignmentStats,
    DecompositionInput,
    DecompositionResult,
    DecompositionPreview,
    TemplateSuggestion,
    ReadyIssues,
    ParallelExecutionSet,
    ExecutionValidation,
    ExecutionPhase,
    ExecutionPlan,
    PlanningSummary,
)

from .catalog import AgentCatalog, AgentProfile, SecondarySignal

from .classifier import TaskClassifier, classify_task, estimate_complexity

from .scorer import AgentScorer

from .assignment import AgentAssignmentService, AssignmentSession

from .dependency_resolver import DependencyResolver

from .task_decomposer import TaskDecompositionService

from .planner import PlanningWorkflow, subtasks_to_issues

from .exceptions import (
    PlannerError,
    AssignmentError,
    NoEligibleAgentError,
    UnknownAgentError,
    DependencyError,
    CyclicGraphError,
    DanglingReferenceError,
    DuplicateIssueError,
    DecompositionError,
    ConfigurationError,
)

from .config_loader import (
    ConfigLoader,
    PlannerConfig,
    load_config,
    create_default_config,
)

from .logging_config import configure_logging, LogContext

__version__ = "1.0.0"

__all__ = [
    # Models
    "AgentId",
    "TaskCategory",
    "TaskType",
    "IssueStatus",
    "ComplexityLevel",
    "ClassificationResult",
    "ComplexityEstimate",
    "Subtask",
    "Issue",
    "MalformedSubtaskReference",
    "DependencyGraph",
    "ExecutionOrder",
    "AgentScore",
    "AgentRecommendation",
    "AgentWorkload",
    "AgentAssignment",
    "AssignmentStats",
    "DecompositionInput",
    "DecompositionResult",
    "DecompositionPreview",
    "TemplateSuggestion",
    "ReadyIssues",
    "ParallelExecutionSet",
    "ExecutionValidation",
    "ExecutionPhase",
    "ExecutionPlan",
    "PlanningSummary",
    # Components
    "AgentCatalog",
    "AgentProfile",
    "SecondarySignal",
    "TaskClassifier",
    "classify_task",
    "estimate_complexity",
    "AgentScorer",
    "AgentAssignmentService",
    "AssignmentSession",
    "DependencyResolver",
    "TaskDecompositionService",
    "PlanningWorkflow",
    "subtasks_to_issues",
    # Exceptions
    "PlannerError",
    "AssignmentError",
    "NoEligibleAgentError",
    "UnknownAgentError",
    "DependencyError",
    "CyclicGraphError",
    "DanglingReferenceError",
    "DuplicateIssueError",
    "DecompositionError",
    "ConfigurationError",
    # Config & logging
    "ConfigLoader",
    "PlannerConfig",
    "load_config",
    "create_default_config",
    "configure_logging",
    "LogContext",
]
