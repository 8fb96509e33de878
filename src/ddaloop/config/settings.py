"""Configuration model for ddaloop."""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Optional

import yaml
from loguru import logger
from pydantic import BaseModel, Field, field_validator, model_validator


class LLMProvider(str, Enum):
    GEMINI = "gemini"
    CLAUDE = "claude"


DEFAULT_MODELS = {
    LLMProvider.GEMINI: "gemini-2.0-flash",
    LLMProvider.CLAUDE: "claude-sonnet-4-5-20250929",
}

API_KEY_ENV = {
    LLMProvider.GEMINI: "GEMINI_API_KEY",
    LLMProvider.CLAUDE: "ANTHROPIC_API_KEY",
}


class ProviderConfig(BaseModel):
    provider: LLMProvider = LLMProvider.GEMINI
    api_key: Optional[str] = Field(default=None)
    model: str = ""
    max_tokens: int = Field(default=1024, gt=0)
    temperature: float = 0.2
    timeout_seconds: float = Field(default=10.0, gt=0)

    def get_provider(self) -> LLMProvider:
        override = os.environ.get("DDALOOP_PROVIDER")
        if override:
            try:
                return LLMProvider(override.strip().lower())
            except ValueError:
                logger.warning(
                    f"Ignoring unknown DDALOOP_PROVIDER '{override}'; "
                    f"using {self.provider.value}"
                )
        return self.provider

    def get_api_key(self) -> Optional[str]:
        return self.api_key or os.environ.get(API_KEY_ENV[self.get_provider()])

    def get_model(self) -> str:
        return (
            os.environ.get("DDALOOP_MODEL")
            or self.model
            or DEFAULT_MODELS[self.get_provider()]
        )


class PolicyConfig(BaseModel):
    example_buffer_size: int = Field(default=5, ge=0)
    system_prompt: Optional[str] = None
    log_prompts: bool = False
    log_responses: bool = False


class TriggerConfig(BaseModel):
    enabled: bool = True
    deaths_before_first_adjustment: int = Field(default=2, ge=0)
    min_seconds_between_adjustments: float = Field(default=5.0, ge=0)


class AnalyzerConfig(BaseModel):
    # Deaths per 100 distance units, best to worst.
    death_rate_thresholds: list[float] = [0.5, 1.0, 2.0, 4.0, 6.0, 8.0]
    # Average seconds between deaths, best to worst.
    survival_time_thresholds: list[float] = [60.0, 40.0, 25.0, 10.0, 5.0, 3.0]

    @field_validator("death_rate_thresholds")
    @classmethod
    def _ascending(cls, v: list[float]) -> list[float]:
        if len(v) != 6 or any(a > b for a, b in zip(v, v[1:])):
            raise ValueError("death_rate_thresholds must be 6 ascending values")
        return v

    @field_validator("survival_time_thresholds")
    @classmethod
    def _descending(cls, v: list[float]) -> list[float]:
        if len(v) != 6 or any(a < b for a, b in zip(v, v[1:])):
            raise ValueError("survival_time_thresholds must be 6 descending values")
        return v


class VariableBounds(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None
    default: Optional[float] = None

    @model_validator(mode="after")
    def _ordered(self) -> "VariableBounds":
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"min {self.min} is greater than max {self.max}")
        return self


class Settings(BaseModel):
    llm: ProviderConfig = Field(default_factory=ProviderConfig)
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    trigger: TriggerConfig = Field(default_factory=TriggerConfig)
    analyzer: AnalyzerConfig = Field(default_factory=AnalyzerConfig)
    variables: dict[str, VariableBounds] = Field(default_factory=dict)
    session_logging: bool = True
    log_level: str = "INFO"
    data_dir: Path = Path.home() / ".ddaloop"

    @property
    def session_log_dir(self) -> Path:
        return self.data_dir / "logs"

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Settings":
        config_path = config_path or Path.home() / ".ddaloop" / "config.yaml"
        if config_path.exists():
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
            return cls(**data)
        return cls()

    def save(self) -> Path:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        config_path = self.data_dir / "config.yaml"
        with open(config_path, "w") as f:
            yaml.dump(self.model_dump(mode="json"), f, default_flow_style=False)
        return config_path
