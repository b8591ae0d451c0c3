"""
Provider Protocols.

Defines the interfaces of the rate- and cost-limited services the stages
call: a connectivity probe, a person matcher, an organization contact
counter and a text classifier.

Each call is one request/response unit for one person or organization
and raises with a message on failure.

Design Notes:
    - Uses typing.Protocol for structural subtyping
    - Wire formats are the adapter's concern (see adapters.http_client)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class Classification:
    """Text completion plus the tokens it consumed."""

    text: str
    tokens: int = 0


@runtime_checkable
class ConnectivityProbeProtocol(Protocol):
    """Self-test of the provider subsystem."""

    async def test_connection(self) -> bool:
        """Return True when providers are reachable."""
        ...


@runtime_checkable
class PersonProviderProtocol(Protocol):
    """Looks up a person profile by LinkedIn URL."""

    async def match_person(self, linkedin_url: str) -> Optional[Dict[str, Any]]:
        """
        Return the provider's person payload, or None when unmatched.

        The payload carries "person" and optionally "organization" keys.
        """
        ...


@runtime_checkable
class OrganizationProviderProtocol(Protocol):
    """Counts an organization's contacts located in a region."""

    async def count_contacts(self, organization_id: str, region: str) -> int:
        ...


@runtime_checkable
class ClassifierProtocol(Protocol):
    """Single-prompt text classifier."""

    async def classify(self, prompt: str) -> Classification:
        ...
