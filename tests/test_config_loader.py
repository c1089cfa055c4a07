"""
Tests for configuration loading.
"""

import pytest
import yaml

from task_planner.catalog import AgentCatalog
from task_planner.config_loader import (
    ConfigLoader,
    LogLevel,
    PlannerConfig,
    create_default_config,
    load_config,
)
from task_planner.exceptions import ConfigurationError
from task_planner.models import AgentId, TaskCategory


def write_yaml(path, data):
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestConfigLoader:
    """Test cases for ConfigLoader."""

    def test_load_file(self, tmp_path, sample_config):
        """Test loading and validating a YAML file."""
        config = load_config(write_yaml(tmp_path / "planner.yaml", sample_config))

        assert config.agents[AgentId.CODEX].affinity[TaskCategory.RESEARCH] == 0.9
        assert config.secondary_signals[0].bonus == 0.2
        assert config.exclusion_penalty == 0.3
        assert config.classifier.title_weight == 3.0
        assert config.assignment.balance_load is False
        assert config.logging.level == LogLevel.DEBUG

    def test_defaults(self):
        """Test an empty document yields defaults."""
        config = ConfigLoader().load_dict({})

        assert config.agents == {}
        assert config.secondary_signals is None
        assert config.assignment.balance_tolerance == 0.15
        assert config.logging.format == "text"

    def test_agent_names_case_insensitive(self):
        """Test that agent keys are normalized."""
        config = ConfigLoader().load_dict({"agents": {" Codex ": {"affinity": {"review": 0.5}}}})

        assert AgentId.CODEX in config.agents

    def test_env_substitution_default(self, tmp_path, monkeypatch):
        """Test ${VAR:-default} substitution."""
        monkeypatch.delenv("PLANNER_TOLERANCE", raising=False)
        path = write_yaml(tmp_path / "planner.yaml", {
            "assignment": {"balance_tolerance": "${PLANNER_TOLERANCE:-0.2}"},
        })

        assert load_config(path).assignment.balance_tolerance == 0.2

    def test_env_substitution_set(self, tmp_path, monkeypatch):
        """Test that a set variable wins over the default."""
        monkeypatch.setenv("PLANNER_LOG_LEVEL", "WARNING")
        path = write_yaml(tmp_path / "planner.yaml", {
            "logging": {"level": "${PLANNER_LOG_LEVEL:-INFO}"},
        })

        assert load_config(path).logging.level == LogLevel.WARNING

    def test_env_substitution_required(self, monkeypatch):
        """Test that a missing required variable is a config error."""
        monkeypatch.delenv("PLANNER_REQUIRED_VALUE", raising=False)

        with pytest.raises(ConfigurationError) as exc_info:
            ConfigLoader().load_dict({"logging": {"file": "${PLANNER_REQUIRED_VALUE:?must be set}"}})

        assert exc_info.value.error_code == "CONFIG_INVALID"

    def test_env_substitution_disabled(self):
        """Test that substitution can be turned off."""
        config = ConfigLoader().load_dict(
            {"logging": {"file": "${HOME}/planner.log"}},
            env_substitution=False,
        )

        assert config.logging.file == "${HOME}/planner.log"

    def test_missing_file(self, tmp_path):
        """Test a missing config file."""
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(tmp_path / "missing.yaml")

        assert exc_info.value.error_code == "CONFIG_NOT_FOUND"

    @pytest.mark.parametrize("data", [
        {"agents": {"codex": {"affinity": {"research": 1.5}}}},
        {"agents": {"gpt": {"affinity": {"research": 0.5}}}},
        {"agents": {"codex": {"affinity": {"poetry": 0.5}}}},
        {"logging": {"format": "xml"}},
        {"assignment": {"balance_tolerance": 2}},
        {"secondarySignals": [{"name": "empty", "keywords": [], "tag": "x"}]},
    ])
    def test_invalid_documents(self, data):
        """Test that invalid documents are rejected."""
        with pytest.raises(ConfigurationError) as exc_info:
            ConfigLoader().load_dict(data)

        assert exc_info.value.error_code == "CONFIG_INVALID"

    def test_invalid_yaml(self, tmp_path):
        """Test malformed YAML."""
        path = tmp_path / "broken.yaml"
        path.write_text("agents: [unclosed", encoding="utf-8")

        with pytest.raises(ConfigurationError) as exc_info:
            load_config(path)

        assert exc_info.value.error_code == "CONFIG_INVALID"

    def test_non_mapping_yaml(self, tmp_path):
        """Test a YAML document that is not a mapping."""
        path = tmp_path / "list.yaml"
        path.write_text("- codex\n- claude\n", encoding="utf-8")

        with pytest.raises(ConfigurationError) as exc_info:
            load_config(path)

        assert exc_info.value.error_code == "CONFIG_INVALID"

    def test_merge_with_base(self, tmp_path):
        """Test that overrides merge into the base config."""
        base = write_yaml(tmp_path / "base.yaml", {
            "classifier": {"title_weight": 4.0},
            "assignment": {"balance_tolerance": 0.3},
            "secondarySignals": [
                {"name": "security", "keywords": ["auth"], "tag": "security"},
                {"name": "speed", "keywords": ["hotfix"], "tag": "fast"},
            ],
        })
        override = write_yaml(tmp_path / "planner.yaml", {
            "assignment": {"balance_load": False},
            "secondarySignals": [
                {"name": "security", "keywords": ["login"], "tag": "security"},
            ],
        })
        loader = ConfigLoader()
        config = loader.load(override, base_config=base)

        assert config.classifier.title_weight == 4.0
        assert config.assignment.balance_tolerance == 0.3
        assert config.assignment.balance_load is False
        assert [s.keywords for s in config.secondary_signals] == [["login"]]
        assert loader.get_loaded_files() == {str(base), str(override)}

    def test_merge_with_dict_base(self, tmp_path):
        """Test a dict base config."""
        override = write_yaml(tmp_path / "planner.yaml", {"exclusion_penalty": 0.5})
        config = ConfigLoader().load(override, base_config={"classifier": {"min_score": 2.0}})

        assert config.exclusion_penalty == 0.5
        assert config.classifier.min_score == 2.0

    def test_get_config_before_load(self):
        """Test get_config without a loaded config."""
        with pytest.raises(RuntimeError):
            ConfigLoader().get_config()

    def test_export_round_trip(self, tmp_path, sample_config):
        """Test exporting and reloading a config."""
        loader = ConfigLoader()
        original = loader.load_dict(sample_config)
        path = loader.export_to_yaml(tmp_path / "out" / "planner.yaml")
        reloaded = load_config(path)

        assert path.exists()
        assert reloaded.model_dump() == original.model_dump()
        assert "secondary_signals" in yaml.safe_load(path.read_text(encoding="utf-8"))


class TestDefaultConfig:
    """Test cases for the built-in configuration."""

    def test_mirrors_catalog(self):
        """Test the default config reproduces the default catalog."""
        config = create_default_config()
        catalog = AgentCatalog.from_config(config)
        default = AgentCatalog.default()

        for agent in AgentId:
            for category in TaskCategory:
                assert catalog.affinity(agent, category) == default.affinity(agent, category)
            assert catalog.profile(agent).tags == default.profile(agent).tags
            assert catalog.profile(agent).excluded_categories == default.profile(agent).excluded_categories
        assert catalog.secondary_signals == default.secondary_signals

    def test_exportable(self, tmp_path):
        """Test that the default config exports to valid YAML."""
        path = ConfigLoader().export_to_yaml(tmp_path / "defaults.yaml", create_default_config())
        data = yaml.safe_load(path.read_text(encoding="utf-8"))

        assert data["agents"]["gemini"]["excluded_categories"] == ["complex_code"]
        assert isinstance(load_config(path), PlannerConfig)


class TestCatalogFromConfig:
    """Test cases for AgentCatalog.from_config."""

    def test_overrides(self, sample_config):
        """Test per-agent and signal overrides."""
        catalog = AgentCatalog.from_config(ConfigLoader().load_dict(sample_config))

        assert catalog.affinity(AgentId.CODEX, TaskCategory.RESEARCH) == 0.9
        # Untouched categories keep their defaults
        assert catalog.affinity(AgentId.CODEX, TaskCategory.QUICK_FIX) == 1.0
        assert "security" in catalog.profile(AgentId.CODEX).tags
        assert catalog.profile(AgentId.CLAUDE) == AgentCatalog.default().profile(AgentId.CLAUDE)
        assert [s.bonus for s in catalog.secondary_signals] == [0.2]
        assert catalog.exclusion_penalty == 0.3
