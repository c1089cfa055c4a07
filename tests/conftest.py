"""
Pytest configuration and fixtures.
"""

import logging

import pytest
import structlog

from task_planner.assignment import AgentAssignmentService
from task_planner.classifier import TaskClassifier
from task_planner.dependency_resolver import DependencyResolver
from task_planner.models import Issue, IssueStatus
from task_planner.planner import PlanningWorkflow
from task_planner.scorer import AgentScorer
from task_planner.task_decomposer import TaskDecompositionService


def make_issue(issue_id, depends_on=(), status=IssueStatus.OPEN, priority=2, title=None, **kwargs):
    """Build an issue with a readable default title."""
    return Issue(
        id=issue_id,
        title=title or f"Issue {issue_id}",
        depends_on=tuple(depends_on),
        status=status,
        priority=priority,
        **kwargs,
    )


@pytest.fixture
def classifier():
    """Default task classifier."""
    return TaskClassifier()


@pytest.fixture
def scorer():
    """Agent scorer over the default catalog."""
    return AgentScorer()


@pytest.fixture
def assignment_service(scorer):
    """Assignment service with a fresh session."""
    return AgentAssignmentService(scorer=scorer)


@pytest.fixture
def resolver():
    """Dependency resolver."""
    return DependencyResolver()


@pytest.fixture
def decomposer():
    """Task decomposition service."""
    return TaskDecompositionService()


@pytest.fixture
def workflow():
    """Planning workflow with default components."""
    return PlanningWorkflow()


@pytest.fixture
def diamond_issues():
    """A -> B, A -> C, {B, C} -> D."""
    return [
        make_issue("A"),
        make_issue("B", ["A"]),
        make_issue("C", ["A"]),
        make_issue("D", ["B", "C"]),
    ]


@pytest.fixture
def chain_issues():
    """A -> B -> C -> D, listed out of order."""
    return [
        make_issue("C", ["B"]),
        make_issue("A"),
        make_issue("D", ["C"]),
        make_issue("B", ["A"]),
    ]


@pytest.fixture
def sample_config():
    """Sample planner configuration document."""
    return {
        "agents": {
            "codex": {
                "affinity": {"research": 0.9},
                "tags": ["tests", "fast", "security"],
            },
        },
        "secondarySignals": [
            {
                "name": "security",
                "keywords": ["auth", "oauth", "login"],
                "tag": "security",
                "bonus": 0.2,
            },
        ],
        "exclusion_penalty": 0.3,
        "classifier": {"title_weight": 3.0},
        "assignment": {"balance_tolerance": 0.1, "balance_load": False},
        "logging": {"level": "DEBUG", "format": "json"},
    }


@pytest.fixture
def issue_factory():
    """Factory for issues with default titles."""
    return make_issue


@pytest.fixture(autouse=True)
def restore_logging():
    """Undo logging configuration done by CLI runs."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    root.handlers[:] = handlers
    root.setLevel(level)
