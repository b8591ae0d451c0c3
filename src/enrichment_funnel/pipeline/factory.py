"""
Pipeline Factory - Assembles the Advisor-Finder Funnel.

Wires configuration and collaborators into stages through the
StageRegistry, then into a PipelineOrchestrator.

Usage:
    orchestrator = build_advisor_pipeline(
        config,
        classifier=client,
        person_provider=client,
        organization_provider=client,
        probe=client,
    )
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from enrichment_funnel.adapters.cached_provider import CachedFactResolver
from enrichment_funnel.analytics.aggregator import AnalyticsAggregator
from enrichment_funnel.caching.cache_store import InMemoryCacheStore
from enrichment_funnel.config.models import PipelineConfig
from enrichment_funnel.domain.entities import Stage, StageKind
from enrichment_funnel.filters.base import PassThroughPolicy
from enrichment_funnel.filters.headcount import HeadcountRangePolicy
from enrichment_funnel.filters.thresholds import MinimumScorePolicy, PercentageThresholdPolicy
from enrichment_funnel.filters.title_relevance import TitleRelevancePolicy
from enrichment_funnel.interfaces.providers import (
    ClassifierProtocol,
    ConnectivityProbeProtocol,
    OrganizationProviderProtocol,
    PersonProviderProtocol,
)
from enrichment_funnel.interfaces.storage import CacheStoreProtocol, PersistenceProtocol
from enrichment_funnel.observability.events import EventChannel
from enrichment_funnel.observability.health_monitor import HealthMonitor
from enrichment_funnel.observability.snapshot_manager import RunSnapshotManager
from enrichment_funnel.pipeline.batch_executor import BatchExecutor
from enrichment_funnel.pipeline.orchestrator import PipelineOrchestrator
from enrichment_funnel.registry.stage_registry import StageRegistry
from enrichment_funnel.resilience.error_handler import ErrorHandler, RetryConfig
from enrichment_funnel.stages.advisor_scoring import AdvisorScoringProcessor
from enrichment_funnel.stages.connection_time import ConnectionTimeProcessor
from enrichment_funnel.stages.country_presence import CountryPresenceProcessor
from enrichment_funnel.stages.person_enrichment import PERSON_COLUMNS, PersonEnrichmentProcessor
from enrichment_funnel.stages.title_relevance import TitleRelevanceProcessor

logger = logging.getLogger(__name__)


@dataclass
class StageContext:
    """Everything a stage factory may need."""

    config: PipelineConfig
    classifier: Optional[ClassifierProtocol] = None
    person_provider: Optional[PersonProviderProtocol] = None
    organization_provider: Optional[OrganizationProviderProtocol] = None
    person_cache: CacheStoreProtocol = field(
        default_factory=lambda: InMemoryCacheStore(name="people")
    )
    organization_cache: CacheStoreProtocol = field(
        default_factory=lambda: InMemoryCacheStore(name="organizations")
    )
    executor: BatchExecutor = field(default_factory=BatchExecutor)
    sleep: Optional[Callable[[float], Awaitable[None]]] = None

    def error_handler(self) -> ErrorHandler:
        settings = self.config.global_settings
        return ErrorHandler(
            RetryConfig(
                max_attempts=settings.provider_retry_attempts,
                base_delay_seconds=settings.provider_retry_backoff_seconds,
            ),
            sleep=self.sleep,
        )

    def resolver(self, cache: CacheStoreProtocol, name: str) -> CachedFactResolver:
        return CachedFactResolver(
            cache,
            error_handler=self.error_handler(),
            staleness_days=self.config.global_settings.staleness_days,
            name=name,
        )


def _require(value, what: str, stage_id: str):
    if value is None:
        raise ValueError(f"Stage '{stage_id}' needs a {what}")
    return value


def build_title_relevance(context: StageContext) -> Stage:
    settings = context.config.title_relevance
    return Stage(
        stage_id="titleRelevance",
        name="Title Relevance Analysis",
        description="Classify job titles as Founder, Relevant or Irrelevant",
        processor=TitleRelevanceProcessor(
            _require(context.classifier, "classifier", "titleRelevance"),
            prompt_template=settings.prompt_template,
            window_size=settings.window_size,
            inter_window_delay=settings.inter_window_delay_seconds,
            executor=context.executor,
        ),
        policy=TitleRelevancePolicy(),
        writes=("titleRelevance", "titleRelevanceScore", "originalResponse"),
    )


def build_person_enrichment(context: StageContext) -> Stage:
    settings = context.config.person_enrichment
    return Stage(
        stage_id="personEnrichment",
        name="Person Enrichment",
        description="Match person profiles and their organizations",
        processor=PersonEnrichmentProcessor(
            _require(context.person_provider, "person provider", "personEnrichment"),
            context.resolver(context.person_cache, "people"),
            credits_per_call=settings.credits_per_call,
            window_size=settings.window_size,
            inter_window_delay=settings.inter_window_delay_seconds,
            executor=context.executor,
        ),
        policy=PassThroughPolicy("person_enrichment"),
        writes=PERSON_COLUMNS,
    )


def build_headcount_filter(context: StageContext) -> Stage:
    return Stage(
        stage_id="headcountFilter",
        name="Headcount Filter",
        description="Keep companies within the employee range",
        kind=StageKind.FILTER,
        policy=HeadcountRangePolicy(context.config.headcount_filter),
    )


def build_country_presence(context: StageContext) -> Stage:
    settings = context.config.country_presence
    processor = CountryPresenceProcessor(
        _require(context.organization_provider, "organization provider", "countryPresence"),
        context.resolver(context.organization_cache, "organizations"),
        region=settings.region,
        threshold_pct=settings.threshold_pct,
        credits_per_call=settings.credits_per_call,
        window_size=settings.window_size,
        inter_window_delay=settings.inter_window_delay_seconds,
        executor=context.executor,
    )
    return Stage(
        stage_id="countryPresence",
        name=f"{settings.label} Presence",
        description=f"Share of employees located in {settings.region}",
        processor=processor,
        policy=PercentageThresholdPolicy(
            processor.percentage_field, settings.threshold_pct, settings.label
        ),
        writes=(processor.headcount_field, processor.percentage_field),
    )


def build_advisor_scoring(context: StageContext) -> Stage:
    settings = context.config.advisor_scoring
    if settings.min_experience_relevance is None:
        policy = PassThroughPolicy("advisor_scoring")
    else:
        policy = MinimumScorePolicy(
            "experienceRelevanceScore",
            settings.min_experience_relevance,
            "Experience Relevance",
        )
    return Stage(
        stage_id="advisorScoring",
        name="Employment History Analysis",
        description="Score customer fit, seniority and experience relevance",
        processor=AdvisorScoringProcessor(
            _require(context.classifier, "classifier", "advisorScoring"),
            prompt_template=settings.prompt_template,
            window_size=settings.window_size,
            inter_window_delay=settings.inter_window_delay_seconds,
            executor=context.executor,
        ),
        policy=policy,
        writes=("advisorAnalysisResponse", "isCustomer", "seniorityScore", "experienceRelevanceScore"),
    )


def build_connection_time(context: StageContext) -> Stage:
    return Stage(
        stage_id="connectionTime",
        name="Connection Time",
        description="Time elapsed since connecting",
        processor=ConnectionTimeProcessor(
            date_formats=context.config.connection_time.date_formats,
            executor=context.executor,
        ),
        writes=("connectionTime",),
    )


def create_default_registry() -> StageRegistry:
    """Registry with every built-in stage."""
    registry = StageRegistry()
    registry.register("titleRelevance", build_title_relevance, "1.0.0",
                      "Job title classification", tags=["classifier"])
    registry.register("personEnrichment", build_person_enrichment, "1.0.0",
                      "Person profile match", tags=["provider", "cached"])
    registry.register("headcountFilter", build_headcount_filter, "1.0.0",
                      "Company size window", tags=["filter"])
    registry.register("countryPresence", build_country_presence, "1.0.0",
                      "Regional headcount share", tags=["provider", "cached"])
    registry.register("advisorScoring", build_advisor_scoring, "1.0.0",
                      "Employment history scoring", tags=["classifier"])
    registry.register("connectionTime", build_connection_time, "1.0.0",
                      "Connection age", tags=["local"])
    return registry


def _enabled(config: PipelineConfig, stage_id: str) -> bool:
    sections = {
        "titleRelevance": config.title_relevance,
        "personEnrichment": config.person_enrichment,
        "headcountFilter": config.headcount_filter,
        "countryPresence": config.country_presence,
        "advisorScoring": config.advisor_scoring,
        "connectionTime": config.connection_time,
    }
    section = sections.get(stage_id)
    return section is None or section.enabled


def build_advisor_pipeline(
    config: Optional[PipelineConfig] = None,
    *,
    classifier: Optional[ClassifierProtocol] = None,
    person_provider: Optional[PersonProviderProtocol] = None,
    organization_provider: Optional[OrganizationProviderProtocol] = None,
    probe: Optional[ConnectivityProbeProtocol] = None,
    person_cache: Optional[CacheStoreProtocol] = None,
    organization_cache: Optional[CacheStoreProtocol] = None,
    persistence: Optional[PersistenceProtocol] = None,
    channel: Optional[EventChannel] = None,
    registry: Optional[StageRegistry] = None,
    executor: Optional[BatchExecutor] = None,
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    observability=None,
) -> PipelineOrchestrator:
    """
    Build the advisor-finder pipeline.

    Args:
        config: Pipeline configuration (default: all defaults)
        classifier: Title and employment history classifier
        person_provider: Person matcher
        organization_provider: Regional contact counter
        probe: Connectivity self-test run before the first stage
        person_cache: Person cache (default: in-memory)
        organization_cache: Organization cache (default: in-memory)
        persistence: Snapshot storage (default: none, no resume)
        channel: Event channel (default: a new one)
        registry: Stage registry (default: create_default_registry())
        executor: Shared batch executor
        sleep: Awaitable sleep for window delays and retry backoff
        observability: ObservabilityManager attached to the channel

    Returns:
        Ready PipelineOrchestrator
    """
    config = config or PipelineConfig()
    registry = registry or create_default_registry()
    channel = channel or EventChannel()

    context = StageContext(
        config=config,
        classifier=classifier,
        person_provider=person_provider,
        organization_provider=organization_provider,
        executor=executor or BatchExecutor(sleep=sleep),
        sleep=sleep,
    )
    if person_cache is not None:
        context.person_cache = person_cache
    if organization_cache is not None:
        context.organization_cache = organization_cache

    order = [stage_id for stage_id in config.stages if _enabled(config, stage_id)]
    skipped = [stage_id for stage_id in config.stages if stage_id not in order]
    if skipped:
        logger.info(f"Disabled stages: {skipped}")
    stages = registry.build(order, context)

    if observability is not None:
        observability.attach(channel)

    snapshot_manager = (
        RunSnapshotManager(persistence, config.global_settings.persistence_namespace)
        if persistence is not None
        else None
    )
    return PipelineOrchestrator(
        stages,
        config=config.global_settings,
        probe=probe,
        snapshot_manager=snapshot_manager,
        channel=channel,
        aggregator=AnalyticsAggregator(config.analytics),
        health_monitor=HealthMonitor(config.health_monitoring, observability),
    )
