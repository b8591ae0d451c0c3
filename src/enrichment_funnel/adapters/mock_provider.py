"""
Mock Providers.

Fake provider collaborators for development and testing. Every answer is
derived from a seeded random generator keyed by the request, so repeated
runs over the same input produce identical results. Each fake records
its calls and can be told to fail for selected keys.
"""

from __future__ import annotations

import random
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from enrichment_funnel.interfaces.providers import Classification
from enrichment_funnel.resilience.errors import ProviderError


class MockConnectivityProbe:
    """Connectivity probe with a fixed answer."""

    def __init__(self, connected: bool = True) -> None:
        self.connected = connected
        self.calls = 0

    async def test_connection(self) -> bool:
        self.calls += 1
        return self.connected


class MockClassifier:
    """
    Scripted classifier.

    The first key of responses found in the prompt selects the answer;
    otherwise default is returned.
    """

    def __init__(
        self,
        responses: Optional[Mapping[str, str]] = None,
        default: str = "Irrelevant",
        tokens_per_call: int = 25,
        fail_on: Iterable[str] = (),
    ) -> None:
        self.responses = dict(responses or {})
        self.default = default
        self.tokens_per_call = tokens_per_call
        self.fail_on: Set[str] = set(fail_on)
        self.prompts: List[str] = []

    async def classify(self, prompt: str) -> Classification:
        self.prompts.append(prompt)
        for marker in self.fail_on:
            if marker in prompt:
                raise ProviderError(f"Classifier unavailable for '{marker}'", status_code=503)
        for marker, answer in self.responses.items():
            if marker in prompt:
                return Classification(text=answer, tokens=self.tokens_per_call)
        return Classification(text=self.default, tokens=self.tokens_per_call)


class MockPersonProvider:
    """Fake person matcher returning deterministic profiles."""

    MOCK_TITLES = [
        "Co-Founder & CEO",
        "VP People Operations",
        "Director of Finance",
        "Head of IT",
        "Software Engineer",
        "Payroll Specialist",
    ]

    MOCK_COMPANIES = [
        ("Acme Analytics", 45),
        ("Globex Systems", 320),
        ("Initech", 1200),
        ("Umbrella Health", 5400),
        ("Hooli", 8),
    ]

    def __init__(
        self,
        seed: int = 42,
        unmatched: Iterable[str] = (),
        fail_on: Iterable[str] = (),
    ) -> None:
        """
        Initialize mock provider with random seed.

        Args:
            seed: Random seed for reproducibility
            unmatched: LinkedIn URLs that return no match
            fail_on: LinkedIn URLs that raise ProviderError
        """
        self._seed = seed
        self.unmatched = set(unmatched)
        self.fail_on = set(fail_on)
        self.calls: List[str] = []

    async def match_person(self, linkedin_url: str) -> Optional[Dict[str, Any]]:
        self.calls.append(linkedin_url)
        if linkedin_url in self.fail_on:
            raise ProviderError(f"People match failed for {linkedin_url}", status_code=500)
        if linkedin_url in self.unmatched:
            return None

        rng = random.Random(f"{self._seed}:{linkedin_url}")
        company, employees = rng.choice(self.MOCK_COMPANIES)
        org_id = f"org-{company.lower().replace(' ', '-')}"
        history = [
            {
                "title": rng.choice(self.MOCK_TITLES),
                "organization_name": rng.choice(self.MOCK_COMPANIES)[0],
                "start_date": f"{2010 + index * 3}-01-01",
                "end_date": None if index == 0 else f"{2013 + index * 3}-01-01",
                "current": index == 0,
            }
            for index in range(rng.randint(1, 3))
        ]
        return {
            "person": {
                "id": f"person-{rng.randint(0, 9999):04d}",
                "linkedin_url": linkedin_url,
                "title": rng.choice(self.MOCK_TITLES),
                "city": rng.choice(["Berlin", "Austin", "Bengaluru", "London"]),
                "country": rng.choice(["Germany", "United States", "India", "United Kingdom"]),
                "employment_history": history,
                "organization": {
                    "id": org_id,
                    "name": company,
                    "estimated_num_employees": employees,
                    "industry": rng.choice(["software", "healthcare", "fintech"]),
                },
            },
        }


class MockOrganizationProvider:
    """Fake regional contact counter."""

    def __init__(
        self,
        seed: int = 42,
        counts: Optional[Mapping[str, int]] = None,
        fail_on: Iterable[str] = (),
        failures_before_success: int = 0,
    ) -> None:
        """
        Initialize mock provider.

        Args:
            seed: Random seed for reproducibility
            counts: Fixed answers by organization id
            fail_on: Organization ids that always fail
            failures_before_success: Transient failures per organization
        """
        self._seed = seed
        self.counts = dict(counts or {})
        self.fail_on = set(fail_on)
        self.failures_before_success = failures_before_success
        self._failures: Dict[str, int] = {}
        self.calls: List[str] = []

    async def count_contacts(self, organization_id: str, region: str) -> int:
        self.calls.append(organization_id)
        if organization_id in self.fail_on:
            raise ProviderError(f"Contacts search failed for {organization_id}", status_code=500)
        failed = self._failures.get(organization_id, 0)
        if failed < self.failures_before_success:
            self._failures[organization_id] = failed + 1
            raise ProviderError(f"Transient failure for {organization_id}", status_code=429)
        if organization_id in self.counts:
            return self.counts[organization_id]
        rng = random.Random(f"{self._seed}:{organization_id}:{region}")
        return rng.randint(0, 200)


MOCK_PEOPLE = [
    ("Ada", "Lovelace", "Founder & CEO"),
    ("Grace", "Hopper", "VP Human Resources"),
    ("Alan", "Turing", "Software Engineer"),
    ("Katherine", "Johnson", "Director of Finance"),
    ("Linus", "Torvalds", "Head of IT Operations"),
    ("Margaret", "Hamilton", "Co-Founder"),
    ("Dennis", "Ritchie", "Intern"),
    ("Barbara", "Liskov", "Chief People Officer"),
    ("Ken", "Thompson", "Sales Associate"),
    ("Frances", "Allen", "Payroll Manager"),
]


def generate_lead_records(count: int = 10, seed: int = 42) -> List[Dict[str, Any]]:
    """
    Generate connection-export style records.

    Args:
        count: Number of records
        seed: Random seed for reproducibility

    Returns:
        Records with first_name, last_name, position, linkedin_url and
        connected_on
    """
    rng = random.Random(seed)
    records = []
    for index in range(count):
        first, last, position = MOCK_PEOPLE[index % len(MOCK_PEOPLE)]
        records.append(
            {
                "first_name": first,
                "last_name": last,
                "position": position,
                "company": rng.choice(["Acme Analytics", "Globex Systems", "Initech"]),
                "linkedin_url": f"https://www.linkedin.com/in/{first.lower()}-{last.lower()}-{index}",
                "connected_on": f"{rng.randint(1, 28):02d} "
                f"{rng.choice(['Jan', 'Mar', 'Jun', 'Sep', 'Nov'])} "
                f"{rng.randint(2015, 2024)}",
            }
        )
    return records
