"""
Stages Package - Processors of the Advisor-Finder Funnel.

Stages:
    - TitleRelevanceProcessor: classify job titles
    - PersonEnrichmentProcessor: match person profiles (cached)
    - CountryPresenceProcessor: regional headcount share (cached)
    - AdvisorScoringProcessor: score employment histories
    - ConnectionTimeProcessor: elapsed time since connecting

Every processor is a BatchStageProcessor: it implements handle_row for a
single row and inherits windowed execution, failure isolation and
analytics from the BatchExecutor.
"""

from enrichment_funnel.stages.advisor_scoring import AdvisorScoringProcessor, parse_assessment
from enrichment_funnel.stages.base import BatchStageProcessor
from enrichment_funnel.stages.connection_time import ConnectionTimeProcessor, format_elapsed_days
from enrichment_funnel.stages.country_presence import CountryPresenceProcessor
from enrichment_funnel.stages.person_enrichment import (
    PersonEnrichmentProcessor,
    extract_person_fields,
)
from enrichment_funnel.stages.title_relevance import TitleRelevanceProcessor, parse_category

__all__ = [
    "BatchStageProcessor",
    "TitleRelevanceProcessor",
    "PersonEnrichmentProcessor",
    "CountryPresenceProcessor",
    "AdvisorScoringProcessor",
    "ConnectionTimeProcessor",
    "parse_category",
    "parse_assessment",
    "extract_person_fields",
    "format_elapsed_days",
]
