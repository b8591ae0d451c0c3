"""
Registry Module - Dynamic Stage Management.

Components:
    - StageRegistry: Central registry of stage factories
    - StageInfo: Metadata about registered stages
"""

from enrichment_funnel.registry.stage_registry import StageInfo, StageRegistry

__all__ = [
    "StageRegistry",
    "StageInfo",
]
