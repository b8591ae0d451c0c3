"""
Person Enrichment Stage.

Matches each row to a person profile through the person cache and the
person provider, then flattens the profile into person.* and
organization.* columns.

Source values written to personSource:
    cache     profile served from a fresh cache record
    provider  profile fetched (one credit per call)
    local     no LinkedIn URL, profile built from the row itself
    not_found provider returned no match
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Mapping, Optional

from enrichment_funnel.adapters.cached_provider import CachedFactResolver
from enrichment_funnel.domain.entities import Row
from enrichment_funnel.domain.value_objects import RowUpdate
from enrichment_funnel.interfaces.providers import PersonProviderProtocol
from enrichment_funnel.interfaces.stage import LogCallback
from enrichment_funnel.pipeline.batch_executor import BatchExecutor
from enrichment_funnel.stages.base import BatchStageProcessor

logger = logging.getLogger(__name__)

PERSON_JSON = "person_json"

PERSON_FIELDS = (
    "id",
    "first_name",
    "last_name",
    "name",
    "linkedin_url",
    "title",
    "headline",
    "email",
    "city",
    "state",
    "country",
    "seniority",
)

ORGANIZATION_FIELDS = (
    "id",
    "name",
    "website_url",
    "linkedin_url",
    "primary_domain",
    "industry",
    "founded_year",
    "estimated_num_employees",
    "city",
    "state",
    "country",
)

# Every column extract_person_fields and handle_row can write.
PERSON_COLUMNS = (
    "person",
    "organization",
    *(f"person.{name}" for name in PERSON_FIELDS),
    "person.departments",
    *(f"organization.{name}" for name in ORGANIZATION_FIELDS),
    "employment_history_summary",
    "education",
    "personSource",
)


def _date_range(entry: Mapping[str, Any]) -> str:
    start = entry.get("start_date") or "?"
    end = entry.get("end_date") or ("Present" if entry.get("current", True) else "?")
    return f"{start}–{end}"


def summarize_employment(history: Optional[Iterable[Mapping[str, Any]]]) -> str:
    """Render an employment history as "title @ company (start–end)" joined by " | "."""
    parts = []
    for entry in history or ():
        title = entry.get("title") or "Unknown title"
        company = entry.get("organization_name") or "Unknown company"
        parts.append(f"{title} @ {company} ({_date_range(entry)})")
    return " | ".join(parts)


def summarize_education(education: Optional[Iterable[Mapping[str, Any]]]) -> str:
    parts = []
    for entry in education or ():
        school = entry.get("school_name") or entry.get("organization_name") or "Unknown school"
        degree = entry.get("degree") or ""
        field_of_study = entry.get("field_of_study") or entry.get("major") or ""
        study = " in ".join(part for part in (degree, field_of_study) if part)
        text = f"{school}: {study}" if study else school
        parts.append(f"{text} ({_date_range(entry)})")
    return "; ".join(parts) or "N/A"


def extract_person_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Flatten a person match payload into row columns.

    Args:
        payload: {"person": {...}} as returned by the person provider;
            the organization may sit under person.organization or at the
            top level

    Returns:
        Column mapping with nested person/organization plus flattened keys
    """
    person = dict(payload.get("person") or {})
    organization = dict(person.get("organization") or payload.get("organization") or {})

    fields: Dict[str, Any] = {"person": person, "organization": organization}
    for name in PERSON_FIELDS:
        if person.get(name) is not None:
            fields[f"person.{name}"] = person[name]
    for name in ORGANIZATION_FIELDS:
        if organization.get(name) is not None:
            fields[f"organization.{name}"] = organization[name]

    departments = person.get("departments")
    if departments:
        fields["person.departments"] = ", ".join(str(d) for d in departments)

    fields["employment_history_summary"] = summarize_employment(
        person.get("employment_history")
    )
    fields["education"] = summarize_education(person.get("education"))
    return fields


class PersonEnrichmentProcessor(BatchStageProcessor):
    """Enrich rows with the matched person profile."""

    domain = "person"

    def __init__(
        self,
        provider: PersonProviderProtocol,
        resolver: CachedFactResolver,
        credits_per_call: int = 1,
        window_size: int = 5,
        inter_window_delay: float = 1.0,
        executor: Optional[BatchExecutor] = None,
    ) -> None:
        super().__init__(window_size, inter_window_delay, executor)
        self.provider = provider
        self.resolver = resolver
        self.credits_per_call = credits_per_call

    async def handle_row(self, row: Row) -> RowUpdate:
        linkedin_url = str(row.get("linkedin_url") or row.get("person.linkedin_url") or "").strip()
        if not linkedin_url:
            payload = {"person": row.get("person") or {}, "organization": row.get("organization") or {}}
            fields = extract_person_fields(payload)
            fields["personSource"] = "local"
            return RowUpdate(fields=fields, source="local", category="local")

        async def fetch() -> Dict[str, Any]:
            match = await self.provider.match_person(linkedin_url)
            return {PERSON_JSON: match or {}}

        fact = await self.resolver.resolve(
            linkedin_url, PERSON_JSON, fetch=fetch, operation="people match"
        )

        resources: Dict[str, int] = {}
        if fact.from_cache:
            resources["cache_hits"] = 1
        else:
            resources.update(
                {"credits": self.credits_per_call, "api_calls": 1, "cache_misses": 1}
            )

        payload = fact.fields.get(PERSON_JSON) or {}
        if not payload.get("person"):
            logger.info(f"No person match for {linkedin_url}")
            return RowUpdate(
                fields={"personSource": "not_found"},
                source=fact.source,
                category="not_found",
                resources=resources,
            )

        fields = extract_person_fields(payload)
        fields["personSource"] = fact.source
        return RowUpdate(fields=fields, source=fact.source, category="matched", resources=resources)

    def summarize(self, analytics: Dict[str, Any]) -> Dict[str, Any]:
        sources = analytics.get("sources", {})
        categories = analytics.get("categories", {})
        resources = analytics.get("resources", {})
        analytics.update(
            {
                "cacheHits": sources.get("cache", 0),
                "providerCalls": sources.get("provider", 0),
                "localRows": sources.get("local", 0),
                "matchedCount": categories.get("matched", 0),
                "notFoundCount": categories.get("not_found", 0),
                "creditsUsed": resources.get("credits", 0),
            }
        )
        return analytics

    def log_summary(self, analytics: Dict[str, Any], log: LogCallback) -> None:
        super().log_summary(analytics, log)
        log(
            f"Person matches: {analytics['matchedCount']} "
            f"({analytics['cacheHits']} from cache, {analytics['providerCalls']} fetched, "
            f"{analytics['notFoundCount']} not found)"
        )
