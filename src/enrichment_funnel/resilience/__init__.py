"""
Resilience Package - Error Taxonomy and Fault Tolerance.

This package provides resilience patterns for robust operation:
    - ErrorHandler: Retry with backoff for provider calls
    - Error taxonomy shared by executor, stages and orchestrator

Design Principles:
    - Row and cache failures are absorbed locally
    - Stage and connectivity failures surface into run state
    - Retry with backoff for transient provider errors
    - Continue with partial data when possible
"""

from enrichment_funnel.resilience.error_handler import (
    ErrorHandler,
    RetryConfig,
    RetryExhausted,
)
from enrichment_funnel.resilience.errors import (
    CacheError,
    ConnectivityError,
    EnrichmentFunnelError,
    PipelineStateError,
    ProviderError,
    StageAbortError,
)

__all__ = [
    "ErrorHandler",
    "RetryConfig",
    "RetryExhausted",
    "CacheError",
    "ConnectivityError",
    "EnrichmentFunnelError",
    "PipelineStateError",
    "ProviderError",
    "StageAbortError",
]
