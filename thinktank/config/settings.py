"""Configuration settings models using Pydantic."""

from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FactorWeights(BaseModel):
    """Weights used to combine the four turn factors into one score."""

    relevance: float = Field(default=0.4, ge=0.0, le=1.0)
    expertise: float = Field(default=0.3, ge=0.0, le=1.0)
    participation_balance: float = Field(default=0.2, ge=0.0, le=1.0)
    flow: float = Field(default=0.1, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def validate_sum(self) -> "FactorWeights":
        total = self.relevance + self.expertise + self.participation_balance + self.flow
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"factor weights must sum to 1.0 (got {total:.3f})")
        return self


class ScoringConfig(BaseModel):
    """Configuration for factor scoring and fallback selection."""

    weights: FactorWeights = Field(default_factory=FactorWeights)
    over_participation_ratio: float = Field(default=1.5, gt=1.0)
    under_participation_ratio: float = Field(default=0.5, gt=0.0, lt=1.0)
    lookback_messages: int = Field(default=5, ge=2)
    monopoly_window: int = Field(default=3, ge=2)
    participation_gap_points: float = Field(default=5.0, ge=0.0, le=100.0)


class ReasoningConfig(BaseModel):
    """Configuration for the delegated (AI) speaker decision."""

    enabled: bool = False
    provider: Literal["claude", "gpt"] = "gpt"
    model_id: Optional[str] = None
    timeout_seconds: float = Field(default=5.0, gt=0.0)
    latency_target_ms: int = Field(default=500, ge=1)
    history_window: int = Field(default=10, ge=1)
    max_tokens: int = Field(default=300, ge=50)
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)

    @field_validator("model_id")
    @classmethod
    def validate_model_id(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v.strip() if v else v


class AutoRunConfig(BaseModel):
    """Configuration for the automatic conversation loop."""

    message_ceiling: int = Field(default=100, ge=1)
    default_speed: int = Field(default=5, ge=1, le=10)
    estimated_turn_cost: float = Field(default=0.01, ge=0.0)
    default_strategy: Literal["intelligent", "round-robin", "random"] = "intelligent"


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="THINKTANK_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # API Keys - AliasChoices allows reading from either the field name or PROVIDER_API_KEY
    anthropic_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("anthropic_api_key", "ANTHROPIC_API_KEY"),
    )
    openai_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("openai_api_key", "OPENAI_API_KEY"),
    )

    # Nested configurations
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    reasoning: ReasoningConfig = Field(default_factory=ReasoningConfig)
    autorun: AutoRunConfig = Field(default_factory=AutoRunConfig)

    @field_validator("anthropic_api_key", "openai_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        """Validate API keys are not empty strings."""
        if v is not None and not v.strip():
            return None
        return v

    def api_key_for(self, provider: str) -> Optional[str]:
        """Get the configured API key for a reasoning provider."""
        key_map = {
            "claude": self.anthropic_api_key,
            "gpt": self.openai_api_key,
        }
        return key_map.get(provider)

    @property
    def reasoning_available(self) -> bool:
        """Whether delegated decisions are enabled and have credentials."""
        return self.reasoning.enabled and self.api_key_for(self.reasoning.provider) is not None
