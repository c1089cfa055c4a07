"""
Configuration Loader for the Agent Task Planner

Provides YAML configuration parsing with Pydantic validation,
config merging, and environment variable substitution.
"""

from __future__ import annotations

import os
import re
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .catalog import DEFAULT_EXCLUSION_PENALTY, DEFAULT_PROFILES, DEFAULT_SECONDARY_SIGNALS
from .exceptions import ConfigurationError
from .models import AgentId, TaskCategory

logger = structlog.get_logger()


class LogLevel(str, Enum):
    """Log level enumeration."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class AgentProfileConfig(BaseModel):
    """Per-agent overrides of the built-in catalog profile."""
    affinity: Dict[TaskCategory, float] = Field(default_factory=dict)
    tags: Optional[List[str]] = None
    excluded_categories: Optional[List[TaskCategory]] = None

    @field_validator("affinity")
    @classmethod
    def affinity_in_range(cls, v: Dict[TaskCategory, float]) -> Dict[TaskCategory, float]:
        """Affinity weights are fractions."""
        for category, weight in v.items():
            if not 0.0 <= weight <= 1.0:
                raise ValueError(
                    f"affinity for '{category.value}' must be between 0 and 1, got {weight}"
                )
        return v


class SecondarySignalConfig(BaseModel):
    """Keyword signal rewarding agents with a matching tag."""
    name: str
    keywords: List[str] = Field(min_length=1)
    tag: str
    bonus: float = Field(default=0.1, ge=0, le=1.0)


class ClassifierConfig(BaseModel):
    """Task classifier weights and thresholds."""
    title_weight: float = Field(default=2.0, ge=0)
    description_weight: float = Field(default=1.0, ge=0)
    min_score: float = Field(default=1.0, ge=0)
    long_description_words: int = Field(default=40, ge=1)
    long_description_bonus: float = Field(default=1.0, ge=0)
    multi_clause_threshold: int = Field(default=3, ge=1)
    multi_clause_bonus: float = Field(default=0.5, ge=0)


class AssignmentConfig(BaseModel):
    """Load balancing policy."""
    balance_tolerance: float = Field(default=0.15, ge=0, le=1.0)
    balance_load: bool = True


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO)
    format: str = Field(default="text", pattern="^(json|text)$")
    file: Optional[str] = None
    max_size_mb: int = Field(default=10, ge=1)
    backup_count: int = Field(default=5, ge=0)
    console: bool = True


class PlannerConfig(BaseModel):
    """Top-level planner configuration document."""
    model_config = {"populate_by_name": True}

    agents: Dict[AgentId, AgentProfileConfig] = Field(default_factory=dict)
    secondary_signals: Optional[List[SecondarySignalConfig]] = Field(
        default=None, alias="secondarySignals"
    )
    exclusion_penalty: float = Field(default=DEFAULT_EXCLUSION_PENALTY, ge=0, le=1.0)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    assignment: AssignmentConfig = Field(default_factory=AssignmentConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("agents", mode="before")
    @classmethod
    def normalize_agent_names(cls, v: Any) -> Any:
        """Agent keys are case-insensitive."""
        if isinstance(v, dict):
            return {
                k.strip().lower() if isinstance(k, str) and not isinstance(k, Enum) else k: val
                for k, val in v.items()
            }
        return v


class ConfigLoader:
    """
    Configuration loader for the planner.

    Features:
    - YAML configuration parsing
    - Pydantic validation
    - Base/override config merging
    - Environment variable substitution

    Example:
        >>> loader = ConfigLoader()
        >>> config = loader.load("planner.yaml", base_config="defaults.yaml")
        >>> config.assignment.balance_tolerance
        0.15
    """

    # Environment variable pattern: ${VAR_NAME}, ${VAR_NAME:-default} or ${VAR_NAME:?message}
    ENV_PATTERN = re.compile(r'\$\{([^}]+)\}')

    def __init__(self):
        self._config: Optional[PlannerConfig] = None
        self._loaded_files: Set[str] = set()

    def load(
        self,
        config_path: Union[str, Path],
        base_config: Optional[Union[str, Path, Dict[str, Any]]] = None,
        env_substitution: bool = True
    ) -> PlannerConfig:
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to YAML config file
            base_config: Optional base config (path or dict) the file overrides
            env_substitution: Enable environment variable substitution

        Returns:
            Validated PlannerConfig

        Raises:
            ConfigurationError: If a file is missing or the config is invalid
        """
        config_path = Path(config_path)
        merged_config: Dict[str, Any] = {}

        if base_config:
            if isinstance(base_config, (str, Path)):
                base_data = self._load_yaml_file(Path(base_config))
                merged_config = self._deep_merge(merged_config, base_data)
            elif isinstance(base_config, dict):
                merged_config = self._deep_merge(merged_config, base_config)

        config_data = self._load_yaml_file(config_path)
        merged_config = self._deep_merge(merged_config, config_data)

        config = self.load_dict(merged_config, env_substitution=env_substitution)
        logger.debug("config_loaded", path=str(config_path), files=sorted(self._loaded_files))
        return config

    def load_dict(self, data: Dict[str, Any], env_substitution: bool = True) -> PlannerConfig:
        """Validate an in-memory configuration document."""
        try:
            if env_substitution:
                data = self._substitute_env_vars(data)
            self._config = PlannerConfig(**data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid planner configuration: {e}",
                error_code="CONFIG_INVALID",
            ) from e
        except ValueError as e:
            raise ConfigurationError(str(e), error_code="CONFIG_INVALID") from e
        return self._config

    def _load_yaml_file(self, path: Path) -> Dict[str, Any]:
        """Load YAML file and return data."""
        if not path.exists():
            raise ConfigurationError(
                f"Config file not found: {path}",
                error_code="CONFIG_NOT_FOUND",
            )
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Config file {path} is not valid YAML: {e}",
                error_code="CONFIG_INVALID",
            ) from e
        if data is not None and not isinstance(data, dict):
            raise ConfigurationError(
                f"Config file {path} must contain a mapping",
                error_code="CONFIG_INVALID",
            )
        self._loaded_files.add(str(path))
        return data or {}

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries; override lists replace base lists."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _substitute_env_vars(self, data: Any) -> Any:
        """Substitute environment variables in data."""
        if isinstance(data, dict):
            return {k: self._substitute_env_vars(v) for k, v in data.items()}
        elif isinstance(data, list):
            return [self._substitute_env_vars(item) for item in data]
        elif isinstance(data, str):
            return self._substitute_env_string(data)
        else:
            return data

    def _substitute_env_string(self, value: str) -> str:
        """Substitute environment variables in a string."""
        def replace_var(match):
            var_expr = match.group(1)

            # Default value syntax: VAR:-default
            if ':-' in var_expr:
                var_name, default = var_expr.split(':-', 1)
                return os.environ.get(var_name, default)

            # Required syntax: VAR:?error
            if ':?' in var_expr:
                var_name, error_msg = var_expr.split(':?', 1)
                if var_name not in os.environ:
                    raise ValueError(f"Required environment variable {var_name}: {error_msg}")
                return os.environ[var_name]

            return os.environ.get(var_expr, match.group(0))

        return self.ENV_PATTERN.sub(replace_var, value)

    def get_config(self) -> PlannerConfig:
        """Return the loaded configuration."""
        if not self._config:
            raise RuntimeError("No configuration loaded")

        return self._config

    def get_loaded_files(self) -> Set[str]:
        return self._loaded_files.copy()

    def export_to_yaml(
        self,
        filepath: Union[str, Path],
        config: Optional[PlannerConfig] = None
    ) -> Path:
        """
        Export configuration to a YAML file.

        Args:
            filepath: Output file path
            config: Config to export (uses loaded config if None)

        Returns:
            Path to exported file
        """
        config = config or self._config

        if not config:
            raise RuntimeError("No configuration to export")

        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        data = self._remove_none_values(config.model_dump(mode="json"))

        with open(filepath, 'w', encoding='utf-8') as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

        return filepath

    def _remove_none_values(self, data: Any) -> Any:
        """Remove None values from data structure."""
        if isinstance(data, dict):
            return {k: self._remove_none_values(v) for k, v in data.items() if v is not None}
        elif isinstance(data, list):
            return [self._remove_none_values(item) for item in data if item is not None]
        else:
            return data


def load_config(
    config_path: Union[str, Path],
    base_config: Optional[Union[str, Path]] = None
) -> PlannerConfig:
    """
    Convenience function to load configuration.

    Args:
        config_path: Path to config file
        base_config: Optional base config

    Returns:
        Loaded PlannerConfig
    """
    loader = ConfigLoader()
    return loader.load(config_path, base_config)


def create_default_config() -> PlannerConfig:
    """
    Create a configuration mirroring the built-in catalog.

    Returns:
        Default PlannerConfig, suitable for exporting as a starting point
    """
    return PlannerConfig(
        agents={
            profile.agent: AgentProfileConfig(
                affinity=dict(profile.affinity),
                tags=sorted(profile.tags),
                excluded_categories=sorted(profile.excluded_categories, key=lambda c: c.value),
            )
            for profile in DEFAULT_PROFILES
        },
        secondary_signals=[
            SecondarySignalConfig(
                name=signal.name,
                keywords=list(signal.keywords),
                tag=signal.tag,
                bonus=signal.bonus,
            )
            for signal in DEFAULT_SECONDARY_SIGNALS
        ],
    )
