"""
Tests for the planning workflow.
"""

import pytest

from task_planner.config_loader import ConfigLoader
from task_planner.exceptions import CyclicGraphError, NoEligibleAgentError
from task_planner.models import (
    AgentId,
    DecompositionInput,
    IssueStatus,
    Subtask,
    TaskCategory,
    TaskType,
)
from task_planner.planner import (
    PlanningWorkflow,
    estimate_phase_duration,
    most_urgent,
    subtasks_to_issues,
)


class TestPlanTask:
    """Test cases for planning from a high-level task."""

    def test_feature_plan(self, workflow):
        """Test phases and ids of a decomposed feature."""
        plan = workflow.plan_task(DecompositionInput(title="Add dark mode"))

        assert [phase.issue_ids for phase in plan.phases] == [
            ["task-1"], ["task-2"], ["task-3", "task-4"], ["task-5"]
        ]
        assert [phase.phase_number for phase in plan.phases] == [1, 2, 3, 4]
        assert plan.critical_path == ["task-1", "task-2", "task-3", "task-5"]
        assert plan.total_agent_sessions == 5
        assert plan.estimated_parallelism == pytest.approx(1.25)
        assert plan.plan_id.startswith("plan_")

    def test_parallel_flags(self, workflow):
        """Test that only multi-issue phases run in parallel."""
        plan = workflow.plan_task(DecompositionInput(title="Add dark mode"))

        assert [phase.can_run_parallel for phase in plan.phases] == [False, False, True, False]
        assert {phase.estimated_duration for phase in plan.phases} == {"short"}

    def test_decomposition_attached(self, workflow):
        """Test that the plan carries its decomposition."""
        plan = workflow.plan_task(DecompositionInput(title="Add dark mode"))

        assert plan.decomposition is not None
        assert plan.decomposition.template == "feature"
        assert plan.to_dict()["decomposition"]["template"] == "feature"

    def test_id_prefix(self, workflow):
        """Test custom issue id prefixes."""
        plan = workflow.plan_task(
            DecompositionInput(title="Fix crash on empty cart", type=TaskType.BUG),
            id_prefix="bug-42",
        )

        assert plan.critical_path == ["bug-42-1", "bug-42-2", "bug-42-3"]

    def test_restriction_applies_to_every_assignment(self, workflow):
        """Test the agent pool restriction."""
        plan = workflow.plan_task(
            DecompositionInput(title="Add user authentication", description="OAuth login"),
            available_agents=["gemini"],
        )

        assert {a.agent for a in plan.assignments} == {AgentId.GEMINI}

    def test_plans_do_not_share_workloads(self, workflow):
        """Test that each plan starts from an idle session."""
        task = DecompositionInput(title="Add user authentication", description="OAuth login")
        first = workflow.plan_task(task)
        second = workflow.plan_task(task)

        assert [a.agent for a in first.assignments] == [a.agent for a in second.assignments]
        assert first.plan_id != second.plan_id


class TestPlanIssues:
    """Test cases for planning an existing batch of issues."""

    def test_diamond(self, workflow, diamond_issues):
        """Test the diamond plan."""
        plan = workflow.plan_issues(diamond_issues)

        assert [phase.issue_ids for phase in plan.phases] == [["A"], ["B", "C"], ["D"]]
        assert plan.critical_path == ["A", "B", "D"]
        assert all(a.issue_id in {"A", "B", "C", "D"} for a in plan.assignments)

    def test_cycle_rejected(self, workflow, issue_factory):
        """Test that cyclic batches are rejected."""
        with pytest.raises(CyclicGraphError) as exc_info:
            workflow.plan_issues([issue_factory("A", ["B"]), issue_factory("B", ["A"])])

        assert exc_info.value.cycle == ["A", "B"]

    def test_done_issues_skipped(self, workflow, issue_factory):
        """Test that finished issues get no assignment and empty phases are dropped."""
        plan = workflow.plan_issues([
            issue_factory("A", status=IssueStatus.DONE),
            issue_factory("B", ["A"]),
            issue_factory("C", ["A"]),
            issue_factory("D", ["B", "C"]),
        ])

        assert [phase.issue_ids for phase in plan.phases] == [["B", "C"], ["D"]]
        assert [phase.phase_number for phase in plan.phases] == [1, 2]
        assert plan.total_agent_sessions == 3

    def test_max_parallel_agents(self, diamond_issues):
        """Test that phases wider than the agent limit are not parallel."""
        workflow = PlanningWorkflow(max_parallel_agents=1)
        plan = workflow.plan_issues(diamond_issues)

        assert not any(phase.can_run_parallel for phase in plan.phases)

    def test_dangling_reference_diagnostic(self, workflow, issue_factory):
        """Test that unknown dependencies are reported, not fatal."""
        plan = workflow.plan_issues([issue_factory("A", ["ghost"]), issue_factory("B")])

        assert [d.missing_id for d in plan.diagnostics] == ["ghost"]
        assert plan.phases[0].issue_ids == ["A", "B"]
        assert plan.to_dict()["diagnostics"] == [{"issue_id": "A", "missing_id": "ghost"}]

    def test_empty_restriction(self, workflow, diamond_issues):
        """Test that an empty agent pool fails."""
        with pytest.raises(NoEligibleAgentError):
            workflow.plan_issues(diamond_issues, available_agents=[])

    def test_empty_batch(self, workflow):
        """Test planning nothing."""
        plan = workflow.plan_issues([])

        assert plan.phases == []
        assert plan.total_agent_sessions == 0
        assert plan.estimated_parallelism == 0.0


class TestNextAssignment:
    """Test cases for next_assignment."""

    def test_first_ready_issue(self, workflow, issue_factory):
        """Test that the first ready issue is assigned."""
        assignment = workflow.next_assignment([
            issue_factory("done-1", status=IssueStatus.DONE),
            issue_factory("blocked-1", ["open-1"]),
            issue_factory("open-1", ["done-1"], title="Fix typo in README"),
        ])

        assert assignment.issue_id == "open-1"
        assert assignment.category == TaskCategory.QUICK_FIX

    def test_nothing_ready(self, workflow, issue_factory):
        """Test a backlog with no ready work."""
        assert workflow.next_assignment([issue_factory("done-1", status=IssueStatus.DONE)]) is None

    def test_most_urgent_ready_issue(self, workflow, issue_factory):
        """Test that a later priority 1 issue beats an earlier priority 3 one."""
        assignment = workflow.next_assignment([
            issue_factory("low", priority=3),
            issue_factory("urgent", priority=1),
        ])

        assert assignment.issue_id == "urgent"

    def test_most_urgent_keeps_backlog_order_on_ties(self, issue_factory):
        """Test tie-breaking by position."""
        issues = [
            issue_factory("first", priority=2),
            issue_factory("second", priority=1),
            issue_factory("third", priority=1),
        ]

        assert most_urgent(issues).id == "second"


class TestReadyAssignments:
    """Test cases for ready_assignments."""

    def test_every_ready_issue_assigned(self, workflow, issue_factory):
        """Test backlog order and load balancing across one session."""
        assignments = workflow.ready_assignments([
            issue_factory("fix-1", title="Fix typo in README"),
            issue_factory("blocked-1", ["fix-1"]),
            issue_factory("fix-2", title="Fix typo in README"),
            issue_factory("fix-3", title="Fix typo in README"),
        ])

        assert [a.issue_id for a in assignments] == ["fix-1", "fix-2", "fix-3"]
        assert [a.agent for a in assignments] == [AgentId.CODEX, AgentId.OPENCODE, AgentId.CODEX]

    def test_without_balancing(self, workflow, issue_factory):
        """Test that disabling balancing keeps the top agent."""
        assignments = workflow.ready_assignments(
            [issue_factory(f"fix-{i}", title="Fix typo in README") for i in range(3)],
            balance_load=False,
        )

        assert {a.agent for a in assignments} == {AgentId.CODEX}

    def test_nothing_ready(self, workflow, issue_factory):
        """Test a backlog with no ready work."""
        assert workflow.ready_assignments([issue_factory("wip-1", status=IssueStatus.IN_PROGRESS)]) == []


class TestSummary:
    """Test cases for the backlog summary."""

    @pytest.fixture
    def backlog(self, issue_factory):
        return [
            issue_factory("done-1", status=IssueStatus.DONE),
            issue_factory("wip-1", status=IssueStatus.IN_PROGRESS),
            issue_factory("fix-1", ["done-1"]),
            issue_factory("fix-2", title="Fix typo in README", priority=1),
            issue_factory("next-1", ["fix-1"]),
            issue_factory("hold-1", status=IssueStatus.BLOCKED),
        ]

    def test_counts(self, workflow, backlog):
        """Test readiness counts and the phase estimate."""
        summary = workflow.summary(backlog)

        assert summary.ready_tasks == 2
        assert summary.blocked_tasks == 2
        assert summary.in_progress_tasks == 1
        assert summary.recommended_next_agent == AgentId.CODEX
        assert summary.estimated_phases == 3

    def test_to_dict(self, workflow, backlog):
        """Test serialization."""
        assert workflow.summary(backlog).to_dict() == {
            "ready_tasks": 2,
            "blocked_tasks": 2,
            "in_progress_tasks": 1,
            "recommended_next_agent": "codex",
            "estimated_phases": 3,
        }

    def test_nothing_ready(self, workflow, issue_factory):
        """Test that an all-done backlog recommends no agent."""
        summary = workflow.summary([issue_factory("done-1", status=IssueStatus.DONE)])

        assert summary.ready_tasks == 0
        assert summary.recommended_next_agent is None
        assert summary.estimated_phases == 0

    def test_cycle_rejected(self, workflow, issue_factory):
        """Test that a cyclic backlog cannot be summarized."""
        with pytest.raises(CyclicGraphError):
            workflow.summary([issue_factory("A", ["B"]), issue_factory("B", ["A"])])


class TestHelpers:
    """Test cases for module helpers and configuration."""

    def test_subtasks_to_issues(self):
        """Test id generation and edge mapping."""
        issues = subtasks_to_issues(
            [
                Subtask(title="First", description="", type=TaskType.TASK, priority=1),
                Subtask(title="Second", description="", type=TaskType.BUG, priority=2, depends_on=(0,)),
            ],
            id_prefix="feat",
        )

        assert [i.id for i in issues] == ["feat-1", "feat-2"]
        assert issues[1].depends_on == ("feat-1",)
        assert issues[1].type == "bug"

    @pytest.mark.parametrize("count,expected", [(1, "short"), (2, "short"), (3, "medium"), (5, "long")])
    def test_estimate_phase_duration(self, count, expected):
        """Test phase duration buckets."""
        assert estimate_phase_duration(count) == expected

    def test_from_config(self, sample_config):
        """Test building a workflow from configuration."""
        config = ConfigLoader().load_dict(sample_config)
        workflow = PlanningWorkflow.from_config(config, max_parallel_agents=2)

        assert workflow.max_parallel_agents == 2
        assert workflow.decomposer.classifier.title_weight == 3.0
        assert workflow.scorer.catalog.affinity(AgentId.CODEX, TaskCategory.RESEARCH) == 0.9
