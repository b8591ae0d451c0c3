"""
Country Presence Stage.

Computes what share of an organization's employees sit in one region.
The regional headcount is an organization-level fact, served from the
organization cache when fresh and fetched from the organization provider
otherwise.

Written columns (region "india"):
    headcount_for_india             regional headcount (capped, see below)
    percentage_headcount_for_india  headcount / employees * 100, 2 decimals
    indiaSource                     cache, provider or skipped

Provider counts above three times the employee estimate are treated as
bad data and capped at the employee estimate.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from enrichment_funnel.adapters.cached_provider import CachedFactResolver
from enrichment_funnel.domain.entities import Row
from enrichment_funnel.domain.identity import resolve_organization_id
from enrichment_funnel.domain.value_objects import RowUpdate
from enrichment_funnel.filters.base import parse_number
from enrichment_funnel.interfaces.providers import OrganizationProviderProtocol
from enrichment_funnel.interfaces.stage import LogCallback
from enrichment_funnel.pipeline.batch_executor import BatchExecutor
from enrichment_funnel.stages.base import BatchStageProcessor

logger = logging.getLogger(__name__)

EMPLOYEE_FIELDS = (
    "organization.estimated_num_employees",
    "estimated_num_employees",
)

IMPLAUSIBLE_RATIO = 3
MEDIUM_PRESENCE_PCT = 10.0


def presence_bucket(percentage: float, threshold_pct: float) -> str:
    """Bucket a regional share into high, medium, low or none."""
    if percentage > threshold_pct:
        return "high"
    if percentage > MEDIUM_PRESENCE_PCT:
        return "medium"
    if percentage > 0:
        return "low"
    return "none"


class CountryPresenceProcessor(BatchStageProcessor):
    """Attach regional headcount and its share of total employees."""

    def __init__(
        self,
        provider: OrganizationProviderProtocol,
        resolver: CachedFactResolver,
        region: str = "india",
        threshold_pct: float = 20.0,
        credits_per_call: int = 1,
        window_size: int = 5,
        inter_window_delay: float = 1.0,
        executor: Optional[BatchExecutor] = None,
    ) -> None:
        super().__init__(window_size, inter_window_delay, executor)
        self.provider = provider
        self.resolver = resolver
        self.region = region
        self.threshold_pct = threshold_pct
        self.credits_per_call = credits_per_call
        self.domain = region

    @property
    def cache_column(self) -> str:
        return f"{self.region}_headcount"

    @property
    def headcount_field(self) -> str:
        return f"headcount_for_{self.region}"

    @property
    def percentage_field(self) -> str:
        return f"percentage_headcount_for_{self.region}"

    def _employees(self, row: Row) -> Optional[float]:
        for path in EMPLOYEE_FIELDS:
            value = parse_number(row.get(path))
            if value is not None:
                return value
        return None

    async def handle_row(self, row: Row) -> RowUpdate:
        org_id = resolve_organization_id(row.attributes)
        if not org_id:
            return RowUpdate(
                fields={f"{self.domain}Source": "skipped"},
                source="skipped",
                category="none",
            )

        employees = self._employees(row)
        if not employees:
            raise ValueError(f"No employee count for organization {org_id}")

        async def fetch() -> Dict[str, Any]:
            count = await self.provider.count_contacts(org_id, self.region)
            return {self.cache_column: count}

        fact = await self.resolver.resolve(
            org_id, self.cache_column, fetch=fetch, operation=f"{self.region} headcount"
        )

        headcount = int(parse_number(fact.fields.get(self.cache_column)) or 0)
        if headcount > employees * IMPLAUSIBLE_RATIO:
            logger.warning(
                f"Headcount {headcount} for {org_id} exceeds {IMPLAUSIBLE_RATIO}x "
                f"employees ({employees:g}), capping"
            )
            headcount = int(employees)

        percentage = round(headcount / employees * 100, 2)
        resources = (
            {"cache_hits": 1}
            if fact.from_cache
            else {"credits": self.credits_per_call, "api_calls": 1, "cache_misses": 1}
        )
        return RowUpdate(
            fields={
                self.headcount_field: headcount,
                self.percentage_field: percentage,
                f"{self.domain}Source": fact.source,
            },
            source=fact.source,
            category=presence_bucket(percentage, self.threshold_pct),
            resources=resources,
        )

    def summarize(self, analytics: Dict[str, Any]) -> Dict[str, Any]:
        categories = analytics.get("categories", {})
        sources = analytics.get("sources", {})
        analytics.update(
            {
                "presenceDistribution": {
                    bucket: categories.get(bucket, 0)
                    for bucket in ("high", "medium", "low", "none")
                },
                "cacheHits": sources.get("cache", 0),
                "providerCalls": sources.get("provider", 0),
                "creditsUsed": analytics.get("resources", {}).get("credits", 0),
            }
        )
        return analytics

    def log_summary(self, analytics: Dict[str, Any], log: LogCallback) -> None:
        super().log_summary(analytics, log)
        distribution = analytics["presenceDistribution"]
        log(
            f"{self.region} presence: high (>{self.threshold_pct:g}%) {distribution['high']}, "
            f"medium {distribution['medium']}, low {distribution['low']}, "
            f"none {distribution['none']}"
        )
