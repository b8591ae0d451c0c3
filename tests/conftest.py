"""
Pytest Configuration and Shared Fixtures.

This module contains fixtures available to all tests.
"""

from __future__ import annotations

import random
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

import pytest

from enrichment_funnel.adapters.mock_provider import (
    MockClassifier,
    MockConnectivityProbe,
    MockOrganizationProvider,
    MockPersonProvider,
    generate_lead_records,
)
from enrichment_funnel.config.models import PipelineConfig
from enrichment_funnel.pipeline.batch_executor import BatchExecutor

# Classifier answers for the positions of generate_lead_records():
# 3 Founder, 4 Relevant, 3 Irrelevant over the first ten records.
TITLE_ANSWERS = {
    "'Founder & CEO'": "Founder",
    "'Co-Founder'": "Founder",
    "'Chief People Officer'": "Founder",
    "'VP Human Resources'": "Relevant",
    "'Director of Finance'": "Relevant",
    "'Head of IT Operations'": "Relevant",
    "'Payroll Manager'": "Relevant",
    "'Software Engineer'": "Irrelevant",
    "'Intern'": "Irrelevant",
    "'Sales Associate'": "Irrelevant",
}

FIXED_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class RecordingSleep:
    """Awaitable sleep that returns immediately and records delays."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture(autouse=True)
def set_random_seed():
    """Ensure all tests are deterministic."""
    random.seed(42)
    yield


@pytest.fixture
def sample_config_path() -> Path:
    """Path to sample configuration file."""
    return Path(__file__).parent / "fixtures" / "sample_config.yaml"


@pytest.fixture
def no_sleep() -> RecordingSleep:
    """Sleep replacement for window delays and retry backoff."""
    return RecordingSleep()


@pytest.fixture
def executor(no_sleep: RecordingSleep) -> BatchExecutor:
    """Batch executor that never actually sleeps."""
    return BatchExecutor(sleep=no_sleep)


@pytest.fixture
def lead_records() -> List[Dict[str, Any]]:
    """Ten connection-export records."""
    return generate_lead_records(10, seed=42)


@pytest.fixture
def title_classifier() -> MockClassifier:
    """Classifier answering 3 Founder / 4 Relevant / 3 Irrelevant."""
    return MockClassifier(responses=TITLE_ANSWERS, default="Irrelevant")


@pytest.fixture
def person_provider() -> MockPersonProvider:
    """Create mock person provider for testing."""
    return MockPersonProvider(seed=42)


@pytest.fixture
def organization_provider() -> MockOrganizationProvider:
    """Create mock organization provider for testing."""
    return MockOrganizationProvider(seed=42)


@pytest.fixture
def probe() -> MockConnectivityProbe:
    """Connectivity probe that always succeeds."""
    return MockConnectivityProbe(connected=True)


@pytest.fixture
def fast_config() -> PipelineConfig:
    """Default configuration without pacing or backoff."""
    return PipelineConfig.model_validate(
        {
            "global": {
                "provider_retry_backoff_seconds": 0,
                "cancel_timeout_seconds": 0.2,
            },
            "title_relevance": {"inter_window_delay_seconds": 0},
            "person_enrichment": {"inter_window_delay_seconds": 0},
            "country_presence": {"inter_window_delay_seconds": 0},
            "advisor_scoring": {"inter_window_delay_seconds": 0},
        }
    )


@pytest.fixture
def title_answers() -> Dict[str, str]:
    """Classifier answers keyed by quoted position."""
    return dict(TITLE_ANSWERS)
