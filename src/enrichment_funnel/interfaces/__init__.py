"""
Interfaces Layer - Abstract Protocols for Collaborators.

This package defines the abstract interfaces (using typing.Protocol) for all
external collaborators. High-level modules depend on these abstractions,
not on concrete implementations.

Protocols:
    - ConnectivityProbeProtocol, PersonProviderProtocol,
      OrganizationProviderProtocol, ClassifierProtocol: providers
    - CacheStoreProtocol: keyed facts with staleness metadata
    - PersistenceProtocol: snapshot store for resumability
    - StageProcessorProtocol, TagFilterPolicyProtocol: stage seams
"""

from enrichment_funnel.interfaces.providers import (
    Classification,
    ClassifierProtocol,
    ConnectivityProbeProtocol,
    OrganizationProviderProtocol,
    PersonProviderProtocol,
)
from enrichment_funnel.interfaces.stage import (
    StageProcessorProtocol,
    TagFilterPolicyProtocol,
)
from enrichment_funnel.interfaces.storage import CacheStoreProtocol, PersistenceProtocol

__all__ = [
    "Classification",
    "ClassifierProtocol",
    "ConnectivityProbeProtocol",
    "OrganizationProviderProtocol",
    "PersonProviderProtocol",
    "StageProcessorProtocol",
    "TagFilterPolicyProtocol",
    "CacheStoreProtocol",
    "PersistenceProtocol",
]
