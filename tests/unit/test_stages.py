"""
Unit Tests for Enrichment Stage Processors.

Test Aspects Covered:
    ✅ Business Logic: Title parsing, person flattening, regional share,
       advisor answer parsing, elapsed time formatting
    ✅ Caching: Cache hits skip provider calls and credits
    ✅ Error Handling: Row failures annotated with <domain>Source="error"
    ✅ Edge Cases: Missing positions, identities, headcounts and dates
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from enrichment_funnel.adapters.cached_provider import CachedFactResolver
from enrichment_funnel.adapters.mock_provider import (
    MockClassifier,
    MockOrganizationProvider,
    MockPersonProvider,
)
from enrichment_funnel.caching.cache_store import CacheRecord, InMemoryCacheStore
from enrichment_funnel.domain.entities import Row
from enrichment_funnel.resilience.error_handler import ErrorHandler, RetryConfig
from enrichment_funnel.stages import (
    AdvisorScoringProcessor,
    ConnectionTimeProcessor,
    CountryPresenceProcessor,
    PersonEnrichmentProcessor,
    TitleRelevanceProcessor,
    extract_person_fields,
    format_elapsed_days,
    parse_assessment,
    parse_category,
)
from enrichment_funnel.stages.connection_time import parse_connected_on
from enrichment_funnel.stages.country_presence import presence_bucket
from enrichment_funnel.stages.person_enrichment import (
    ORGANIZATION_FIELDS,
    PERSON_COLUMNS,
    PERSON_FIELDS,
)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

ASSESSMENT = (
    "Customer: No\n"
    "~\n"
    "Seniority: 4 / 5\n"
    "12+ years across strategy and operations roles.\n"
    "~\n"
    "Experience relevance: 5 / 5\n"
    '"Led onboarding advisory for four clients."'
)


def discard(*args) -> None:
    pass


@pytest.fixture
def make_resolver(no_sleep):
    def factory(cache=None) -> CachedFactResolver:
        return CachedFactResolver(
            cache if cache is not None else InMemoryCacheStore(clock=lambda: NOW),
            error_handler=ErrorHandler(RetryConfig(base_delay_seconds=0), sleep=no_sleep),
            staleness_days=90,
            clock=lambda: NOW,
        )

    return factory


class TestParseCategory:
    """Test classifier answer parsing."""

    @pytest.mark.parametrize(
        "answer,position,expected",
        [
            ("Founder", "CEO", ("Founder", "exact")),
            ("relevant.", "CFO", ("Relevant", "exact")),
            ("This title is relevant for payroll", "CFO", ("Relevant", "keyword")),
            ("Clearly irrelevant", "Intern", ("Irrelevant", "keyword")),
            ("???", "Co-Founder", ("Founder", "position")),
            ("???", "Engineer", ("Irrelevant", "default")),
        ],
    )
    def test_parse(self, answer, position, expected) -> None:
        assert parse_category(answer, position) == expected


class TestTitleRelevanceProcessor:
    """Test title classification stage."""

    @pytest.mark.asyncio
    async def test_classifies_rows(self, executor, title_classifier) -> None:
        """
        SCENARIO: Founder, Relevant and Irrelevant positions
        EXPECTED: Categories, scores and token usage recorded
        """
        # Arrange
        processor = TitleRelevanceProcessor(title_classifier, window_size=2, executor=executor)
        rows = [
            Row(key="a", attributes={"position": "Founder & CEO"}),
            Row(key="b", attributes={"position": "Payroll Manager"}),
            Row(key="c", attributes={"position": "Intern"}),
        ]

        # Act
        outcome = await processor.process(rows, discard, discard)

        # Assert
        assert [row.get("titleRelevance") for row in outcome.data] == [
            "Founder",
            "Relevant",
            "Irrelevant",
        ]
        assert [row.get("titleRelevanceScore") for row in outcome.data] == [3, 2, 0]
        assert outcome.analytics["founderCount"] == 1
        assert outcome.analytics["tokensUsed"] == 75

    @pytest.mark.asyncio
    async def test_empty_position_skips_classifier(self, executor) -> None:
        classifier = MockClassifier(default="Founder")
        processor = TitleRelevanceProcessor(classifier, executor=executor)

        outcome = await processor.process([Row(key="a", attributes={"position": " "})], discard, discard)

        assert outcome.data[0].get("titleRelevance") == "Irrelevant"
        assert classifier.prompts == []
        assert outcome.analytics["totalProcessed"] == 0

    @pytest.mark.asyncio
    async def test_classifier_failure_annotates_row(self, executor) -> None:
        classifier = MockClassifier(fail_on=["Intern"])
        processor = TitleRelevanceProcessor(classifier, executor=executor)

        outcome = await processor.process([Row(key="a", attributes={"position": "Intern"})], discard, discard)

        assert outcome.data[0].get("titleRelevanceSource") == "error"
        assert outcome.analytics["errorCount"] == 1


class TestExtractPersonFields:
    """Test person payload flattening."""

    def test_flattens_person_and_organization(self) -> None:
        """
        SCENARIO: Person payload with nested organization and history
        EXPECTED: Dotted columns and summaries
        """
        payload = {
            "person": {
                "id": "p1",
                "title": "CFO",
                "departments": ["finance", "operations"],
                "employment_history": [
                    {"title": "CFO", "organization_name": "Acme", "start_date": "2020-01-01", "current": True},
                    {"title": "Controller", "organization_name": "Globex",
                     "start_date": "2015-01-01", "end_date": "2019-12-31", "current": False},
                ],
                "education": [
                    {"school_name": "LSE", "degree": "MSc", "field_of_study": "Finance",
                     "start_date": "2010", "end_date": "2011"},
                ],
                "organization": {"id": "org-1", "name": "Acme", "estimated_num_employees": 120},
            }
        }

        fields = extract_person_fields(payload)

        assert fields["person.title"] == "CFO"
        assert fields["organization.id"] == "org-1"
        assert fields["organization.estimated_num_employees"] == 120
        assert fields["person.departments"] == "finance, operations"
        assert fields["employment_history_summary"] == (
            "CFO @ Acme (2020-01-01–Present) | Controller @ Globex (2015-01-01–2019-12-31)"
        )
        assert fields["education"] == "LSE: MSc in Finance (2010–2011)"

    def test_top_level_organization_and_no_education(self) -> None:
        fields = extract_person_fields({"person": {"id": "p"}, "organization": {"id": "org-2"}})

        assert fields["organization.id"] == "org-2"
        assert fields["education"] == "N/A"
        assert fields["employment_history_summary"] == ""

    def test_declared_columns_cover_extracted_fields(self) -> None:
        person = {name: f"p-{name}" for name in PERSON_FIELDS}
        person["departments"] = ["sales"]
        person["organization"] = {name: f"o-{name}" for name in ORGANIZATION_FIELDS}

        fields = extract_person_fields({"person": person})

        assert set(fields) | {"personSource"} == set(PERSON_COLUMNS)


class TestPersonEnrichmentProcessor:
    """Test person enrichment stage."""

    @pytest.mark.asyncio
    async def test_second_run_served_from_cache(self, executor, make_resolver) -> None:
        """
        SCENARIO: Same rows enriched twice with a shared cache
        EXPECTED: First run calls the provider, second run uses only cache
        """
        # Arrange
        provider = MockPersonProvider(seed=42)
        processor = PersonEnrichmentProcessor(provider, make_resolver(), executor=executor)
        rows = [Row(key=f"u{i}", attributes={"linkedin_url": f"https://li/{i}"}) for i in range(3)]

        # Act
        first = await processor.process(rows, discard, discard)
        second = await processor.process(rows, discard, discard)

        # Assert
        assert first.analytics["providerCalls"] == 3
        assert first.analytics["creditsUsed"] == 3
        assert second.analytics["cacheHits"] == 3
        assert second.analytics["creditsUsed"] == 0
        assert len(provider.calls) == 3
        assert second.data[0].get("personSource") == "cache"
        assert second.data[0].get("organization.id") == first.data[0].get("organization.id")

    @pytest.mark.asyncio
    async def test_unmatched_and_local_rows(self, executor, make_resolver) -> None:
        provider = MockPersonProvider(unmatched=["https://li/none"])
        processor = PersonEnrichmentProcessor(provider, make_resolver(), executor=executor)
        rows = [
            Row(key="a", attributes={"linkedin_url": "https://li/none"}),
            Row(key="b", attributes={"organization": {"id": "org-9", "estimated_num_employees": 50}}),
        ]

        outcome = await processor.process(rows, discard, discard)

        assert outcome.data[0].get("personSource") == "not_found"
        assert outcome.data[1].get("personSource") == "local"
        assert outcome.data[1].get("organization.id") == "org-9"
        assert outcome.analytics["notFoundCount"] == 1
        assert outcome.analytics["localRows"] == 1
        assert provider.calls == ["https://li/none"]

    @pytest.mark.asyncio
    async def test_provider_failure_retried_then_annotated(self, executor, make_resolver) -> None:
        provider = MockPersonProvider(fail_on=["https://li/bad"])
        processor = PersonEnrichmentProcessor(provider, make_resolver(), executor=executor)

        outcome = await processor.process(
            [Row(key="a", attributes={"linkedin_url": "https://li/bad"})], discard, discard
        )

        assert outcome.data[0].get("personSource") == "error"
        assert "failed after 2 attempts" in outcome.data[0].get("personError")
        assert len(provider.calls) == 2


class TestCountryPresenceProcessor:
    """Test regional share stage."""

    def org_row(self, key: str, org_id, employees) -> Row:
        organization = {}
        if org_id is not None:
            organization["id"] = org_id
        if employees is not None:
            organization["estimated_num_employees"] = employees
        return Row(key=key, attributes={"organization": organization})

    @pytest.mark.asyncio
    async def test_percentage_computed(self, executor, make_resolver) -> None:
        """
        SCENARIO: 200 employees, 43 located in India
        EXPECTED: headcount 43, percentage 21.5, bucket high
        """
        provider = MockOrganizationProvider(counts={"org-1": 43})
        processor = CountryPresenceProcessor(provider, make_resolver(), executor=executor)

        outcome = await processor.process([self.org_row("a", "org-1", 200)], discard, discard)

        row = outcome.data[0]
        assert row.get("headcount_for_india") == 43
        assert row.get("percentage_headcount_for_india") == 21.5
        assert row.get("indiaSource") == "provider"
        assert outcome.analytics["presenceDistribution"]["high"] == 1

    @pytest.mark.asyncio
    async def test_implausible_headcount_capped(self, executor, make_resolver) -> None:
        provider = MockOrganizationProvider(counts={"org-1": 400})
        processor = CountryPresenceProcessor(provider, make_resolver(), executor=executor)

        outcome = await processor.process([self.org_row("a", "org-1", 100)], discard, discard)

        assert outcome.data[0].get("headcount_for_india") == 100
        assert outcome.data[0].get("percentage_headcount_for_india") == 100.0

    @pytest.mark.asyncio
    async def test_missing_org_skipped_missing_employees_error(self, executor, make_resolver) -> None:
        """
        SCENARIO: One row without organization id, one without employee count
        EXPECTED: First skipped without provider call, second annotated as error
        """
        provider = MockOrganizationProvider()
        processor = CountryPresenceProcessor(provider, make_resolver(), executor=executor)

        outcome = await processor.process(
            [self.org_row("a", None, 100), self.org_row("b", "org-2", None)], discard, discard
        )

        assert outcome.data[0].get("indiaSource") == "skipped"
        assert outcome.data[1].get("indiaSource") == "error"
        assert outcome.analytics["skippedCount"] == 1
        assert outcome.analytics["errorCount"] == 1
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_cache_hit_reused_across_people(self, executor, make_resolver) -> None:
        cache = InMemoryCacheStore(clock=lambda: NOW)
        cache.seed(CacheRecord(key="org-1", fields={"india_headcount": 5}, updated_at=NOW - timedelta(days=1)))
        provider = MockOrganizationProvider()
        processor = CountryPresenceProcessor(provider, make_resolver(cache), executor=executor)

        outcome = await processor.process(
            [self.org_row("a", "org-1", 50), self.org_row("b", "org-1", 50)], discard, discard
        )

        assert [row.get("percentage_headcount_for_india") for row in outcome.data] == [10.0, 10.0]
        assert outcome.analytics["cacheHits"] == 2
        assert provider.calls == []

    @pytest.mark.parametrize(
        "pct,expected", [(25.0, "high"), (20.0, "medium"), (10.0, "low"), (0.5, "low"), (0.0, "none")]
    )
    def test_presence_bucket(self, pct, expected) -> None:
        assert presence_bucket(pct, 20.0) == expected


class TestParseAssessment:
    """Test advisor answer parsing."""

    def test_full_answer(self) -> None:
        assessment = parse_assessment(ASSESSMENT)

        assert assessment.is_customer is False
        assert assessment.seniority_score == 4.0
        assert assessment.seniority_justification == "12+ years across strategy and operations roles."
        assert assessment.relevance_score == 5.0
        assert assessment.relevance_justification == "Led onboarding advisory for four clients."
        assert assessment.complete

    def test_partial_answer(self) -> None:
        assessment = parse_assessment("Customer: yes")

        assert assessment.is_customer is True
        assert assessment.seniority_score is None
        assert not assessment.complete


class TestAdvisorScoringProcessor:
    """Test advisor scoring stage."""

    @pytest.mark.asyncio
    async def test_scores_rows(self, executor) -> None:
        """
        SCENARIO: One row with history, one without
        EXPECTED: Both scored, placeholder sent for the empty history
        """
        classifier = MockClassifier(default=ASSESSMENT)
        processor = AdvisorScoringProcessor(classifier, executor=executor)
        rows = [
            Row(key="a", attributes={"employment_history_summary": "CFO @ Acme (2020–Present)"}),
            Row(key="b"),
        ]

        outcome = await processor.process(rows, discard, discard)

        assert outcome.data[0].get("seniorityScore") == 4.0
        assert outcome.data[1].get("isCustomer") is False
        assert "No employment history available" in classifier.prompts[1]
        assert outcome.analytics["parsedCount"] == 2
        assert outcome.analytics["tokensUsed"] == 50


class TestConnectionTime:
    """Test connection age formatting."""

    @pytest.mark.parametrize(
        "days,expected",
        [
            (0, "0 days"),
            (1, "1 day"),
            (31, "1 month, 1 day"),
            (60, "2 months"),
            (400, "1 year, 1 month, 10 days"),
        ],
    )
    def test_format_elapsed_days(self, days, expected) -> None:
        assert format_elapsed_days(days) == expected

    def test_parse_formats(self) -> None:
        assert parse_connected_on("05 Mar 2024") == datetime(2024, 3, 5, tzinfo=timezone.utc)
        assert parse_connected_on("2024-03-05T10:00:00Z").hour == 10
        with pytest.raises(ValueError):
            parse_connected_on("yesterday")

    @pytest.mark.asyncio
    async def test_processor(self, executor) -> None:
        """
        SCENARIO: 1.5 days old, missing, and unparseable dates
        EXPECTED: "2 days" (rounded up), "Unknown", error annotation
        """
        processor = ConnectionTimeProcessor(clock=lambda: NOW, executor=executor)
        rows: List[Row] = [
            Row(key="a", attributes={"connected_on": "31 May 2025"}),
            Row(key="b"),
            Row(key="c", attributes={"connected_on": "sometime"}),
        ]

        outcome = await processor.process(rows, discard, discard)

        assert outcome.data[0].get("connectionTime") == "2 days"
        assert outcome.data[0].get("connectionDays") == 2
        assert outcome.data[1].get("connectionTime") == "Unknown"
        assert outcome.data[2].get("connectionTimeSource") == "error"
        assert outcome.analytics["knownCount"] == 1
        assert outcome.analytics["unknownCount"] == 1
