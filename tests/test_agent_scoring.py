"""
Tests for the agent catalog and agent scoring.
"""

import pytest

from task_planner.catalog import AgentCatalog, AgentProfile
from task_planner.exceptions import NoEligibleAgentError, UnknownAgentError
from task_planner.models import AgentId, TaskCategory
from task_planner.scorer import AgentScorer, resolve_agents


AUTH_TITLE = "Implement authentication system"
AUTH_DESCRIPTION = "Build secure login flow"


class TestAgentCatalog:
    """Test cases for AgentCatalog."""

    def test_default_catalog_order(self):
        """Test that agents keep the catalog priority order."""
        catalog = AgentCatalog.default()

        assert catalog.agents == (AgentId.CLAUDE, AgentId.GEMINI, AgentId.CODEX, AgentId.OPENCODE)
        assert catalog.priority(AgentId.CLAUDE) == 0
        assert catalog.priority(AgentId.OPENCODE) == 3

    def test_affinity_lookup(self):
        """Test affinity lookups by enum and name."""
        catalog = AgentCatalog.default()

        assert catalog.affinity(AgentId.GEMINI, TaskCategory.RESEARCH) == 1.0
        assert catalog.affinity("codex", TaskCategory.QUICK_FIX) == 1.0

    def test_exclusions(self):
        """Test default exclusions."""
        catalog = AgentCatalog.default()

        assert catalog.profile(AgentId.GEMINI).is_excluded(TaskCategory.COMPLEX_CODE)
        assert catalog.profile(AgentId.CODEX).is_excluded(TaskCategory.REVIEW)
        assert not catalog.profile(AgentId.CLAUDE).is_excluded(TaskCategory.REVIEW)

    def test_missing_profile_rejected(self):
        """Test that a catalog must cover every agent."""
        profile = AgentProfile(agent=AgentId.CLAUDE, affinity={TaskCategory.GENERAL: 1.0})

        with pytest.raises(ValueError, match="gemini"):
            AgentCatalog(profiles=[profile])

    def test_parse_agent(self):
        """Test agent name parsing."""
        assert AgentId.parse(" Claude ") == AgentId.CLAUDE
        assert AgentId.parse(AgentId.CODEX) == AgentId.CODEX

        with pytest.raises(UnknownAgentError) as exc_info:
            AgentId.parse("gpt")
        assert exc_info.value.error_code == "UNKNOWN_AGENT"


class TestAgentScorer:
    """Test cases for AgentScorer."""

    def test_complex_code_ranking(self, scorer):
        """Test the ranking for a security-sensitive implementation task."""
        scores = scorer.compare_agents_for_task(AUTH_TITLE, AUTH_DESCRIPTION)

        assert [s.agent for s in scores] == [
            AgentId.CLAUDE, AgentId.OPENCODE, AgentId.CODEX, AgentId.GEMINI
        ]
        assert scores[0].score == pytest.approx(1.1)
        assert scores[-1].score == pytest.approx(0.25)

    def test_secondary_signal_in_reasoning(self, scorer):
        """Test that signal bonuses and exclusions are explained."""
        scores = {s.agent: s for s in scorer.compare_agents_for_task(AUTH_TITLE, AUTH_DESCRIPTION)}

        assert "specialized for complex_code" in scores[AgentId.CLAUDE].reasoning
        assert "+security signal" in scores[AgentId.CLAUDE].reasoning
        assert "excluded for complex_code" in scores[AgentId.GEMINI].reasoning

    def test_research_prefers_gemini(self, scorer):
        """Test that gemini wins research even against the security bonus."""
        scores = scorer.compare_agents_for_task(
            "Research authentication patterns",
            "Investigate best practices for OAuth",
        )

        assert scores[0].agent == AgentId.GEMINI
        assert scores[1].agent == AgentId.CLAUDE

    def test_quick_fix_prefers_codex(self, scorer):
        """Test quick fix ranking."""
        scores = scorer.compare_agents_for_task("Fix bug in login", "Fix broken login button")

        assert [s.agent for s in scores[:2]] == [AgentId.CODEX, AgentId.OPENCODE]

    def test_deterministic(self, scorer):
        """Test identical inputs give identical rankings."""
        first = scorer.compare_agents_for_task(AUTH_TITLE, AUTH_DESCRIPTION)
        second = scorer.compare_agents_for_task(AUTH_TITLE, AUTH_DESCRIPTION)

        assert first == second

    @pytest.mark.parametrize("title,description", [
        (AUTH_TITLE, AUTH_DESCRIPTION),
        ("Fix typo in README", None),
        ("Hello world", ""),
        ("Review and audit the changes", "Check the payment module"),
    ])
    def test_scores_non_increasing(self, scorer, title, description):
        """Test that scores never increase along the ranking."""
        scores = [s.score for s in scorer.compare_agents_for_task(title, description)]

        assert len(scores) == 4
        assert scores == sorted(scores, reverse=True)

    def test_restriction(self, scorer):
        """Test that a restriction limits the ranking."""
        scores = scorer.compare_agents_for_task(
            AUTH_TITLE, AUTH_DESCRIPTION, available_agents=["gemini", "codex"]
        )

        assert [s.agent for s in scores] == [AgentId.CODEX, AgentId.GEMINI]

    def test_unknown_agent_in_restriction(self, scorer):
        """Test that unknown agent names are rejected."""
        with pytest.raises(UnknownAgentError):
            scorer.compare_agents_for_task(AUTH_TITLE, available_agents=["gpt"])

    def test_ties_follow_catalog_order(self):
        """Test that equal scores fall back to catalog priority."""
        flat = AgentCatalog(
            profiles=[
                AgentProfile(agent=agent, affinity={c: 0.5 for c in TaskCategory})
                for agent in reversed(list(AgentId))
            ],
            secondary_signals=(),
        )
        scores = AgentScorer(catalog=flat).compare_agents_for_task("Fix typo")

        assert len({s.score for s in scores}) == 1
        assert [s.agent for s in scores] == list(AgentId)

    def test_resolve_agents(self):
        """Test restriction normalization."""
        assert resolve_agents(None) is None
        assert resolve_agents(["codex", "CODEX", AgentId.GEMINI]) == (AgentId.CODEX, AgentId.GEMINI)
        assert resolve_agents([]) == ()


class TestSelectAgentForCategory:
    """Test cases for category-only recommendations."""

    def test_research(self, scorer):
        """Test the research recommendation."""
        recommendation = scorer.select_agent_for_category(TaskCategory.RESEARCH)

        assert recommendation.recommended == AgentId.GEMINI
        assert recommendation.confidence == 1.0
        assert recommendation.alternatives == (AgentId.CLAUDE, AgentId.OPENCODE, AgentId.CODEX)
        assert "specialized" in recommendation.reasoning

    def test_quick_fix(self, scorer):
        """Test the quick fix recommendation."""
        recommendation = scorer.select_agent_for_category(TaskCategory.QUICK_FIX)

        assert recommendation.recommended == AgentId.CODEX
        assert recommendation.alternatives[0] == AgentId.OPENCODE

    def test_restricted_review(self, scorer):
        """Test that exclusions apply to category recommendations."""
        recommendation = scorer.select_agent_for_category(
            TaskCategory.REVIEW, available_agents=["codex", "opencode"]
        )

        assert recommendation.recommended == AgentId.OPENCODE
        assert recommendation.confidence == pytest.approx(0.55)
        assert recommendation.alternatives == (AgentId.CODEX,)

    def test_empty_restriction(self, scorer):
        """Test that an empty restriction is an error."""
        with pytest.raises(NoEligibleAgentError) as exc_info:
            scorer.select_agent_for_category(TaskCategory.GENERAL, available_agents=[])

        assert exc_info.value.error_code == "NO_ELIGIBLE_AGENT"
