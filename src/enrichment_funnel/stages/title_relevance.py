"""
Title Relevance Stage.

Classifies each row's job title into Founder, Relevant or Irrelevant.

Parsing of the classifier answer, in order:
    1. Exact match of the whole answer (case-insensitive)
    2. Keyword in the answer ("founder", "relevant" without "irrelevant")
    3. Founding keywords in the position itself
    4. Irrelevant

Empty positions are Irrelevant without a classifier call.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from enrichment_funnel.domain.entities import Row
from enrichment_funnel.domain.value_objects import RowUpdate
from enrichment_funnel.interfaces.providers import ClassifierProtocol
from enrichment_funnel.pipeline.batch_executor import BatchExecutor
from enrichment_funnel.stages.base import BatchStageProcessor

logger = logging.getLogger(__name__)

FOUNDER = "Founder"
RELEVANT = "Relevant"
IRRELEVANT = "Irrelevant"

CATEGORY_SCORES = {FOUNDER: 3, RELEVANT: 2, IRRELEVANT: 0}

FOUNDING_KEYWORDS = ("founder", "co-founder", "founding")


def parse_category(answer: str, position: str = "") -> Tuple[str, str]:
    """
    Map a classifier answer to a category.

    Returns:
        Tuple of (category, how) where how is "exact", "keyword",
        "position" or "default"
    """
    text = answer.strip().strip(".").lower()
    for category in CATEGORY_SCORES:
        if text == category.lower():
            return category, "exact"

    if "founder" in text and "not founder" not in text:
        return FOUNDER, "keyword"
    if "relevant" in text and "irrelevant" not in text:
        return RELEVANT, "keyword"
    if "irrelevant" in text:
        return IRRELEVANT, "keyword"

    lowered = position.lower()
    if any(keyword in lowered for keyword in FOUNDING_KEYWORDS):
        return FOUNDER, "position"
    return IRRELEVANT, "default"


class TitleRelevanceProcessor(BatchStageProcessor):
    """Classify job titles."""

    domain = "titleRelevance"

    def __init__(
        self,
        classifier: ClassifierProtocol,
        prompt_template: str = "Classify the job title '{position}'.",
        window_size: int = 100,
        inter_window_delay: float = 0.5,
        executor: Optional[BatchExecutor] = None,
    ) -> None:
        super().__init__(window_size, inter_window_delay, executor)
        self.classifier = classifier
        self.prompt_template = prompt_template

    async def handle_row(self, row: Row) -> RowUpdate:
        position = str(row.get("position") or "").strip()
        if not position:
            return RowUpdate(
                fields={
                    "titleRelevance": IRRELEVANT,
                    "titleRelevanceScore": 0,
                    "titleRelevanceSource": "local",
                },
                source="skipped",
                category=IRRELEVANT,
            )

        result = await self.classifier.classify(self.prompt_template.format(position=position))
        category, how = parse_category(result.text, position)
        if how == "default":
            logger.warning(f"Unrecognized classification '{result.text}' for '{position}'")

        return RowUpdate(
            fields={
                "titleRelevance": category,
                "titleRelevanceScore": CATEGORY_SCORES[category],
                "titleRelevanceSource": "classifier",
                "originalResponse": result.text,
            },
            source="classifier",
            category=category,
            resources={"tokens": result.tokens, "api_calls": 1},
        )

    def summarize(self, analytics: Dict[str, Any]) -> Dict[str, Any]:
        categories = analytics.get("categories", {})
        resources = analytics.get("resources", {})
        analytics.update(
            {
                "founderCount": categories.get(FOUNDER, 0),
                "relevantCount": categories.get(RELEVANT, 0),
                "irrelevantCount": categories.get(IRRELEVANT, 0),
                "tokensUsed": resources.get("tokens", 0),
                "totalProcessed": analytics.get("processed", 0) - analytics.get("skippedCount", 0),
            }
        )
        return analytics
