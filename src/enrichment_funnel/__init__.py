"""
Enrichment Funnel - Multi-Stage Lead Enrichment Pipeline.

Drives a set of record rows through an ordered sequence of stages
(classification, third-party enrichment calls, numeric filters),
accumulating attributes on each row and permanently tagging rows that
fail a stage's acceptance criteria. Runs are resumable, cancellable and
partially extractable at any point.

Architecture:
    - Hexagonal Architecture (Ports & Adapters)
    - Dependency Injection for testability
    - Bounded-concurrency batch execution on asyncio
    - Configuration-driven behavior via YAML

Main Components:
    - domain: Core entities (Row, Stage, PipelineSnapshot, etc.)
    - interfaces: Protocols for external collaborators
    - pipeline: Orchestrator, row store and batch executor
    - filters: Tag filter policies
    - stages: Stage processors of the advisor-finder funnel
    - adapters: HTTP client, mock providers, persistence, CSV export
    - config: Configuration models and loaders

Example:
    >>> from enrichment_funnel.pipeline.factory import build_advisor_pipeline
    >>> orchestrator = build_advisor_pipeline(
    ...     config, classifier=classifier, person_provider=people,
    ...     organization_provider=organizations,
    ... )
    >>> orchestrator.set_initial_data(records)
    >>> snapshot = await orchestrator.run_to_completion()
    >>> print(f"{len(snapshot.active_rows)} qualified leads")

"""

import logging

__version__ = "0.4.0"


def configure_logging(
    level: int = logging.INFO,
    format: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
) -> None:
    """
    Configure logging for the enrichment funnel.

    Call this at application startup to see log messages.
    By default, only WARNING and above are visible.

    Args:
        level: Logging level (default: INFO)
        format: Log message format

    Example:
        >>> import enrichment_funnel
        >>> enrichment_funnel.configure_logging(logging.DEBUG)
    """
    logging.basicConfig(
        level=level,
        format=format,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("enrichment_funnel").setLevel(level)
