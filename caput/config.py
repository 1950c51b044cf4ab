"""Configuration management with Pydantic Settings + optional YAML."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from caput.utils.platform import get_config_dir, get_data_dir


class InferenceConfig(BaseModel):
    provider: str = "gemini"
    model: str = "gemini-2.0-flash-001"
    api_key: str = ""
    endpoint: str = "https://generativelanguage.googleapis.com/v1beta/models/"
    temperature: float = 0.7
    max_tokens: int = 8192
    timeout: float = 30.0  # seconds; a timeout counts as a connectivity failure


class EfficiencyMode(BaseModel):
    name: str
    max_plan_steps: int
    preferred_model: str
    verification_count: int
    max_tool_calls: int
    description: str = ""


def _default_modes() -> dict[str, EfficiencyMode]:
    return {
        "efficiency_first": EfficiencyMode(
            name="Efficiency first",
            max_plan_steps=5,
            preferred_model="gemini-1.5-flash",
            verification_count=1,
            max_tool_calls=3,
            description="3-5 step plans, flash models, single verification",
        ),
        "middle": EfficiencyMode(
            name="Balanced",
            max_plan_steps=10,
            preferred_model="auto",
            verification_count=2,
            max_tool_calls=7,
            description="5-10 step plans, automatic model choice, 1-2 verifications",
        ),
        "best_results": EfficiencyMode(
            name="Best results",
            max_plan_steps=20,
            preferred_model="gemini-pro",
            verification_count=3,
            max_tool_calls=10,
            description="10+ step plans, pro models, multi-stage verification",
        ),
    }


class ToolsConfig(BaseModel):
    cacheable_tools: list[str] = Field(default_factory=lambda: [
        "searchWeb",
        "quickLookup",
        "trendAnalyzer",
        "citationBuilder",
        "chartBuilder",
        "correlationAnalyzer",
        "timeSeriesForecaster",
        "codeExplainer",
        "regexBuilder",
        "taskPlanner",
    ])
    tool_alternatives: dict[str, list[str]] = Field(default_factory=lambda: {
        "searchWeb": ["quickLookup"],
        "trendAnalyzer": [],
        "generateImage": ["generateImageSDXL", "generateImageDallE"],
    })
    cache_ttl_minutes: int = 24 * 60


class SafetyConfig(BaseModel):
    max_consecutive_fails: int = 3
    high_risk_tools_enabled: bool = False
    high_risk_tools: list[str] = Field(default_factory=lambda: [
        "scraperBot",
        "threatScanner",
        "codeReviewer",
        "apiConnector",
        "webhookSender",
    ])


class AgentConfig(BaseModel):
    offline_queue_max_retries: int = 5
    offline_queue_ttl_minutes: int = 7 * 24 * 60
    step_delay: float = 0.5


class CacheConfig(BaseModel):
    sweep_interval: float = 30 * 60
    enabled: bool = True


class PricingConfig(BaseModel):
    """JPY per 1K tokens."""
    rates: dict[str, float] = Field(default_factory=lambda: {
        "gemini-2.0-flash-001": 0.25,
        "gemini-2.5-flash-preview-05-20": 0.3,
        "gemini-2.5-pro-preview-05-06": 0.75,
        "gemini-2.0-flash-lite-001": 0.15,
        "gemma-3-27b-it": 0.4,
        "gemma-3n-e4b-it": 0.2,
        "gemini-pro": 0.5,
        "gemini-1.5-flash": 0.25,
        "gemini-1.5-pro": 0.75,
    })
    default_model: str = "gemini-pro"
    fallback_rate: float = 0.5
    auto_model: str = "gemini-1.5-flash"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CAPUT_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    inference: InferenceConfig = Field(default_factory=InferenceConfig)
    efficiency_modes: dict[str, EfficiencyMode] = Field(default_factory=_default_modes)
    efficiency_mode: str = "middle"
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    safety: SafetyConfig = Field(default_factory=SafetyConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    pricing: PricingConfig = Field(default_factory=PricingConfig)
    data_dir: str = ""
    log_level: str = "INFO"
    log_json: bool = False
    log_file: str = ""

    @model_validator(mode="after")
    def _check_mode(self) -> Settings:
        if self.efficiency_mode not in self.efficiency_modes:
            raise ValueError(f"Unknown efficiency mode: {self.efficiency_mode}")
        return self

    def get_data_dir(self) -> Path:
        if self.data_dir:
            return Path(self.data_dir)
        return get_data_dir()


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_settings(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Load settings from env vars, optionally overlaying a YAML config."""
    yaml_data: dict[str, Any] = {}

    if config_path is None:
        config_path = os.environ.get("CAPUT_CONFIG")
    if config_path is None:
        default = get_config_dir() / "config.yaml"
        if default.exists():
            config_path = default

    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                yaml_data = yaml.safe_load(f) or {}

    if overrides:
        yaml_data = _deep_merge(yaml_data, overrides)

    # Values found in YAML are passed as init kwargs; the rest come from env
    return Settings(**yaml_data)
