"""
Advisor Scoring Stage.

Sends each lead's employment history summary to the classifier and parses
the "~"-separated answer:

    Customer: No
    ~
    Seniority: 4 / 5
    12+ years across strategy and ops roles.
    ~
    Experience relevance: 5 / 5
    Led onboarding advisory across 4 clients.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

from enrichment_funnel.domain.entities import Row
from enrichment_funnel.domain.value_objects import RowUpdate
from enrichment_funnel.interfaces.providers import ClassifierProtocol
from enrichment_funnel.pipeline.batch_executor import BatchExecutor
from enrichment_funnel.stages.base import BatchStageProcessor

logger = logging.getLogger(__name__)

NO_HISTORY = "No employment history available for this lead."

_CUSTOMER = re.compile(r"customer:\s*(yes|no)\b", re.IGNORECASE)
_SENIORITY = re.compile(r"seniority:\s*(\d+(?:\.\d+)?)\s*/\s*5", re.IGNORECASE)
_RELEVANCE = re.compile(r"experience relevance:\s*(\d+(?:\.\d+)?)\s*/\s*5", re.IGNORECASE)


@dataclass(frozen=True)
class AdvisorAssessment:
    """Parsed classifier answer. Missing parts are None."""

    is_customer: Optional[bool] = None
    seniority_score: Optional[float] = None
    seniority_justification: str = ""
    relevance_score: Optional[float] = None
    relevance_justification: str = ""

    @property
    def complete(self) -> bool:
        return None not in (self.is_customer, self.seniority_score, self.relevance_score)


def _justification(section: str, pattern: re.Pattern) -> str:
    return pattern.sub("", section, count=1).strip().strip('"').strip()


def parse_assessment(text: str) -> AdvisorAssessment:
    """Parse the customer flag, both scores and their justifications."""
    customer = _CUSTOMER.search(text)
    seniority = _SENIORITY.search(text)
    relevance = _RELEVANCE.search(text)

    seniority_text = relevance_text = ""
    for section in text.split("~"):
        if _SENIORITY.search(section):
            seniority_text = _justification(section, _SENIORITY)
        elif _RELEVANCE.search(section):
            relevance_text = _justification(section, _RELEVANCE)

    return AdvisorAssessment(
        is_customer=customer.group(1).lower() == "yes" if customer else None,
        seniority_score=float(seniority.group(1)) if seniority else None,
        seniority_justification=seniority_text,
        relevance_score=float(relevance.group(1)) if relevance else None,
        relevance_justification=relevance_text,
    )


class AdvisorScoringProcessor(BatchStageProcessor):
    """Score employment histories for advisor fit."""

    domain = "advisorAnalysis"

    def __init__(
        self,
        classifier: ClassifierProtocol,
        prompt_template: str = "Assess this employment history:\n{history}",
        window_size: int = 5,
        inter_window_delay: float = 0.5,
        executor: Optional[BatchExecutor] = None,
    ) -> None:
        super().__init__(window_size, inter_window_delay, executor)
        self.classifier = classifier
        self.prompt_template = prompt_template

    async def handle_row(self, row: Row) -> RowUpdate:
        history = str(row.get("employment_history_summary") or "").strip() or NO_HISTORY
        result = await self.classifier.classify(self.prompt_template.format(history=history))
        assessment = parse_assessment(result.text)
        if not assessment.complete:
            logger.warning(f"Incomplete advisor assessment for {row.key}")

        return RowUpdate(
            fields={
                "advisorAnalysisResponse": result.text,
                "advisorAnalysisSource": "classifier",
                "isCustomer": assessment.is_customer,
                "seniorityScore": assessment.seniority_score,
                "seniorityJustification": assessment.seniority_justification,
                "experienceRelevanceScore": assessment.relevance_score,
                "experienceRelevanceJustification": assessment.relevance_justification,
            },
            source="classifier",
            category="complete" if assessment.complete else "incomplete",
            resources={"tokens": result.tokens, "api_calls": 1},
        )

    def summarize(self, analytics: Dict[str, Any]) -> Dict[str, Any]:
        categories = analytics.get("categories", {})
        analytics.update(
            {
                "parsedCount": categories.get("complete", 0),
                "unparsedCount": categories.get("incomplete", 0),
                "tokensUsed": analytics.get("resources", {}).get("tokens", 0),
            }
        )
        return analytics
