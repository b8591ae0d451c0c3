"""
Configuration Models - Pydantic Models for Type-Safe Config.

All configuration is validated at load time using Pydantic.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_STAGE_ORDER = [
    "titleRelevance",
    "personEnrichment",
    "headcountFilter",
    "countryPresence",
    "advisorScoring",
    "connectionTime",
]


class GlobalConfig(BaseModel):
    """Global configuration settings."""

    cancel_timeout_seconds: float = Field(default=5.0, gt=0)
    staleness_days: int = Field(default=90, ge=0)
    provider_retry_attempts: int = Field(default=2, ge=1, le=5)
    provider_retry_backoff_seconds: float = Field(default=3.0, ge=0)
    persistence_namespace: str = Field(default="enrichment", min_length=1)
    check_connectivity: bool = True


class ProxyConfig(BaseModel):
    """Connection settings for the provider proxy server."""

    base_url: str = Field(default="http://localhost:3001")
    timeout_seconds: float = Field(default=30.0, gt=0)
    classifier_model: str = Field(default="gpt-4o-mini")


class BatchStageConfig(BaseModel):
    """Window settings shared by all batched stages."""

    enabled: bool = True
    window_size: int = Field(default=5, ge=1, le=500)
    inter_window_delay_seconds: float = Field(default=1.0, ge=0)


class TitleRelevanceConfig(BatchStageConfig):
    """Configuration for the title classification stage."""

    window_size: int = Field(default=100, ge=1, le=500)
    inter_window_delay_seconds: float = Field(default=0.5, ge=0)
    prompt_template: str = Field(
        default="Classify the job title '{position}' as Founder, Relevant or Irrelevant."
    )


class PersonEnrichmentConfig(BatchStageConfig):
    """Configuration for the person enrichment stage."""

    credits_per_call: int = Field(default=1, ge=0)


class HeadcountFilterConfig(BaseModel):
    """Configuration for the company size filter."""

    enabled: bool = True
    min_employees: int = Field(default=10, ge=0)
    max_employees: int = Field(default=1500, ge=1)


class CountryPresenceConfig(BatchStageConfig):
    """Configuration for the regional headcount stage."""

    region: str = Field(default="india")
    label: str = Field(default="Indians")
    threshold_pct: float = Field(default=20.0, ge=0, le=100)
    credits_per_call: int = Field(default=1, ge=0)


class AdvisorScoringConfig(BatchStageConfig):
    """Configuration for the employment history scoring stage."""

    inter_window_delay_seconds: float = Field(default=0.5, ge=0)
    prompt_template: str = Field(
        default=(
            "Assess this employment history for customer fit, seniority and "
            "experience relevance:\n{history}"
        )
    )
    min_experience_relevance: Optional[float] = Field(default=None, ge=0, le=5)


class ConnectionTimeConfig(BaseModel):
    """Configuration for the connection age stage."""

    enabled: bool = True
    date_formats: List[str] = Field(
        default_factory=lambda: ["%d %b %Y", "%Y-%m-%d", "%d/%m/%Y", "%m/%d/%Y"]
    )


class AnalyticsConfig(BaseModel):
    """Unit rates for cost estimates."""

    credit_cost: float = Field(default=0.001, ge=0)
    token_cost_per_1k: float = Field(default=0.002, ge=0)
    bottleneck_share_pct: float = Field(default=30.0, ge=0, le=100)


class HealthMonitorConfig(BaseModel):
    """Configuration for health monitoring."""

    enabled: bool = True
    max_ram_usage_pct: float = Field(default=80.0, ge=0, le=100)
    warn_ram_usage_pct: float = Field(default=70.0, ge=0, le=100)
    max_error_rate_pct: float = Field(default=25.0, ge=0, le=100)
    warn_on_empty_funnel: bool = True


class PipelineConfig(BaseModel):
    """Root configuration object."""

    version: str = "1.0"
    global_settings: GlobalConfig = Field(
        default_factory=GlobalConfig,
        alias="global",
    )
    stages: List[str] = Field(default_factory=lambda: list(DEFAULT_STAGE_ORDER))
    proxy: ProxyConfig = Field(default_factory=ProxyConfig)
    title_relevance: TitleRelevanceConfig = Field(
        default_factory=TitleRelevanceConfig,
    )
    person_enrichment: PersonEnrichmentConfig = Field(
        default_factory=PersonEnrichmentConfig,
    )
    headcount_filter: HeadcountFilterConfig = Field(
        default_factory=HeadcountFilterConfig,
    )
    country_presence: CountryPresenceConfig = Field(
        default_factory=CountryPresenceConfig,
    )
    advisor_scoring: AdvisorScoringConfig = Field(
        default_factory=AdvisorScoringConfig,
    )
    connection_time: ConnectionTimeConfig = Field(
        default_factory=ConnectionTimeConfig,
    )
    analytics: AnalyticsConfig = Field(default_factory=AnalyticsConfig)
    health_monitoring: HealthMonitorConfig = Field(
        default_factory=HealthMonitorConfig,
    )

    model_config = {"populate_by_name": True}

    @field_validator("stages")
    @classmethod
    def _unique_stages(cls, value: List[str]) -> List[str]:
        if len(set(value)) != len(value):
            raise ValueError("Stage ids must be unique")
        return value
