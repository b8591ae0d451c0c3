"""
Adapters Package - Infrastructure Implementations.

This package contains concrete implementations of the abstract
interfaces defined in the interfaces package. Following the
Hexagonal Architecture (Ports & Adapters) pattern.

Providers:
    - ProxyApiClient: httpx client for the provider proxy server
    - Mock*: seeded fakes for development/testing
    - CachedFactResolver: read-through cache in front of a provider call

Persistence:
    - InMemoryPersistence, JsonFilePersistence: snapshot stores

Output:
    - ConsoleRunLogger: prints pipeline events
    - export_csv: flat CSV of all rows

Design Principles:
    - All adapters implement their respective protocols
    - Easily swappable via Dependency Injection
    - No business logic in adapters
"""

from enrichment_funnel.adapters.cached_provider import CachedFactResolver, ResolvedFact
from enrichment_funnel.adapters.console_logger import ConsoleRunLogger
from enrichment_funnel.adapters.csv_export import export_csv, flatten_row
from enrichment_funnel.adapters.http_client import ProxyApiClient
from enrichment_funnel.adapters.mock_provider import (
    MockClassifier,
    MockConnectivityProbe,
    MockOrganizationProvider,
    MockPersonProvider,
    generate_lead_records,
)
from enrichment_funnel.adapters.persistence import InMemoryPersistence, JsonFilePersistence

__all__ = [
    "CachedFactResolver",
    "ResolvedFact",
    "ConsoleRunLogger",
    "export_csv",
    "flatten_row",
    "ProxyApiClient",
    "MockClassifier",
    "MockConnectivityProbe",
    "MockOrganizationProvider",
    "MockPersonProvider",
    "generate_lead_records",
    "InMemoryPersistence",
    "JsonFilePersistence",
]
