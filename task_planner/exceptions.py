"""Custom exceptions for the agent task planner."""

from __future__ import annotations


class PlannerError(Exception):
    """Base exception for all planner errors."""

    def __init__(self, message: str, error_code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class AssignmentError(PlannerError):
    """Exception raised for errors in agent assignment."""
    pass


class NoEligibleAgentError(AssignmentError):
    """Exception raised when an agent restriction leaves no candidates."""

    def __init__(self, message: str, requested: tuple[str, ...] = ()) -> None:
        super().__init__(message, error_code="NO_ELIGIBLE_AGENT")
        self.requested = requested


class UnknownAgentError(AssignmentError):
    """Exception raised when an agent name is not in the catalog."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown agent: {name!r}", error_code="UNKNOWN_AGENT")
        self.name = name


class DependencyError(PlannerError):
    """Exception raised for errors in dependency resolution."""
    pass


class CyclicGraphError(DependencyError):
    """Exception raised when a dependency graph contains a cycle."""

    def __init__(self, cycle: list[str]) -> None:
        path = " -> ".join([*cycle, cycle[0]]) if cycle else "<empty>"
        super().__init__(
            f"Circular dependency detected in task graph: {path}",
            error_code="CYCLIC_GRAPH",
        )
        self.cycle = list(cycle)


class DanglingReferenceError(DependencyError):
    """Exception raised in strict mode when a dependency id is not in the batch."""

    def __init__(self, issue_id: str, missing_id: str) -> None:
        super().__init__(
            f"Issue {issue_id!r} depends on unknown issue {missing_id!r}",
            error_code="DANGLING_REFERENCE",
        )
        self.issue_id = issue_id
        self.missing_id = missing_id


class DuplicateIssueError(DependencyError):
    """Exception raised when two issues in one batch share an id."""

    def __init__(self, issue_id: str) -> None:
        super().__init__(
            f"Duplicate issue id in batch: {issue_id!r}",
            error_code="DUPLICATE_ISSUE",
        )
        self.issue_id = issue_id


class DecompositionError(PlannerError):
    """Exception raised for errors in task decomposition."""
    pass


class ConfigurationError(PlannerError):
    """Exception raised when configuration is missing or invalid."""
    pass
