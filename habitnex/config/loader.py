"""
Configuration management and loading.

Handles the YAML limits file: budgets, per-endpoint daily quotas, AI model
parameters and cache tuning.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


DEFAULT_ENDPOINT_LIMITS = {
    "enhance-habit": 10,
    "mood-analysis": 10,
    "quick-insight": 25,
    "recommend-habits": 10,
}


@dataclass(frozen=True)
class AlertThresholds:
    """Percent-of-budget levels that raise budget alerts."""
    warning: float = 75.0
    critical: float = 90.0

    def __post_init__(self):
        if not 0 < self.warning <= 100:
            raise ValueError("warning threshold must be in (0, 100]")
        if not 0 < self.critical <= 100:
            raise ValueError("critical threshold must be in (0, 100]")
        if self.warning >= self.critical:
            raise ValueError("warning threshold must be below critical threshold")


@dataclass(frozen=True)
class BudgetConfig:
    """Budget limits for cost control."""
    daily: float = 5.0
    weekly: float = 30.0
    monthly: float = 100.0
    emergency_shutoff_percent: float = 150.0
    alert_thresholds: AlertThresholds = field(default_factory=AlertThresholds)

    def __post_init__(self):
        """Validate budget values are positive."""
        if self.daily <= 0:
            raise ValueError("daily budget must be > 0")
        if self.weekly <= 0:
            raise ValueError("weekly budget must be > 0")
        if self.monthly <= 0:
            raise ValueError("monthly budget must be > 0")
        if self.emergency_shutoff_percent <= 0:
            raise ValueError("emergency_shutoff_percent must be > 0")


@dataclass(frozen=True)
class AIConfig:
    """Model parameters and per-million-token rates for the hosted LLM."""
    model: str = "claude-3-haiku-20240307"
    max_tokens: int = 300
    temperature: float = 0.3
    input_cost_per_million: float = 0.25
    output_cost_per_million: float = 1.25

    def __post_init__(self):
        if not self.model:
            raise ValueError("model must not be empty")
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be > 0")
        if not 0 <= self.temperature <= 2:
            raise ValueError("temperature must be in [0, 2]")
        if self.input_cost_per_million < 0 or self.output_cost_per_million < 0:
            raise ValueError("token rates must be >= 0")


@dataclass(frozen=True)
class CacheConfig:
    ttl_days: float = 7
    cleanup_probability: float = 0.1
    estimated_unit_cost: float = 0.0015

    def __post_init__(self):
        if self.ttl_days <= 0:
            raise ValueError("ttl_days must be > 0")
        if not 0 <= self.cleanup_probability <= 1:
            raise ValueError("cleanup_probability must be in [0, 1]")
        if self.estimated_unit_cost < 0:
            raise ValueError("estimated_unit_cost must be >= 0")


@dataclass(frozen=True)
class AppConfig:
    """Complete application configuration."""
    budget: BudgetConfig = field(default_factory=BudgetConfig)
    limits: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_ENDPOINT_LIMITS))
    ai: AIConfig = field(default_factory=AIConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)

    def get_limit(self, endpoint: str) -> int:
        """Get the daily request limit for an endpoint.

        Raises:
            KeyError: If the endpoint has no configured limit
        """
        if endpoint not in self.limits:
            raise KeyError(f"No rate limit configured for endpoint: {endpoint}")
        return self.limits[endpoint]


def load_app_config(path: Optional[str] = None) -> AppConfig:
    """Load and validate application configuration from a YAML file.

    Strict validation ensures no silent misconfigurations that could
    lead to unexpected cost overruns. Sections missing from the file fall
    back to their defaults; unknown keys are rejected.

    Args:
        path: Path to YAML configuration file, or None for built-in defaults

    Returns:
        Validated AppConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    if path is None:
        return AppConfig()

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration root must be a dictionary")

    allowed_top_keys = {'budget', 'limits', 'ai', 'cache'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    return AppConfig(
        budget=_parse_budget(raw_config.get('budget', {})),
        limits=_parse_limits(raw_config.get('limits', {})),
        ai=_parse_section(raw_config.get('ai', {}), 'ai', AIConfig),
        cache=_parse_section(raw_config.get('cache', {}), 'cache', CacheConfig),
    )


def _require_dict(data: Any, path: str) -> Dict:
    if not isinstance(data, dict):
        raise ValueError(f"'{path}' must be a dictionary")
    return data


def _check_keys(data: Dict, allowed: set, path: str) -> None:
    unknown_keys = set(data.keys()) - allowed
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")


def _parse_budget(data: Any) -> BudgetConfig:
    """Parse and validate the budget section.

    Args:
        data: Budget configuration data

    Returns:
        Validated BudgetConfig

    Raises:
        ValueError: If configuration is invalid
    """
    data = _require_dict(data, 'budget')
    _check_keys(
        data,
        {'daily', 'weekly', 'monthly', 'emergency_shutoff_percent', 'alert_thresholds'},
        'budget'
    )

    values = {}
    for key in ('daily', 'weekly', 'monthly', 'emergency_shutoff_percent'):
        if key in data:
            values[key] = _number(data[key], f"budget.{key}")

    if 'alert_thresholds' in data:
        thresholds = _require_dict(data['alert_thresholds'], 'budget.alert_thresholds')
        _check_keys(thresholds, {'warning', 'critical'}, 'budget.alert_thresholds')
        values['alert_thresholds'] = AlertThresholds(**{
            key: _number(value, f"budget.alert_thresholds.{key}")
            for key, value in thresholds.items()
        })

    return BudgetConfig(**values)


def _parse_limits(data: Any) -> Dict[str, int]:
    data = _require_dict(data, 'limits')
    limits = dict(DEFAULT_ENDPOINT_LIMITS)
    for endpoint, limit in data.items():
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise ValueError(f"'limits.{endpoint}' must be a positive integer")
        limits[endpoint] = limit
    return limits


def _parse_section(data: Any, path: str, config_cls):
    """Parse a flat section whose keys map one-to-one onto a dataclass."""
    data = _require_dict(data, path)
    _check_keys(data, set(config_cls.__dataclass_fields__), path)

    values = {}
    for key, value in data.items():
        expected = config_cls.__dataclass_fields__[key].type
        if expected is str:
            if not isinstance(value, str):
                raise ValueError(f"'{path}.{key}' must be a string")
            values[key] = value
        elif expected is int:
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"'{path}.{key}' must be an integer")
            values[key] = value
        else:
            values[key] = _number(value, f"{path}.{key}")
    return config_cls(**values)


def _number(value: Any, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{path}' must be a number")
    return float(value)
