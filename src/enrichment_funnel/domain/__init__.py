"""
Domain Layer - Core Entities and Value Objects.

This package contains the core domain model of the enrichment funnel.
Everything here is pure Python with no infrastructure dependencies
(except Pydantic for validation).

Entities:
    - Row: One record flowing through the pipeline
    - Stage: One ordered unit of the pipeline
    - StageStatus / StageState: Per-stage lifecycle
    - PipelineSnapshot: Immutable view of a run

Value Objects:
    - FilterResult: Outcome of a tag filter policy
    - RowUpdate: Fields produced for one row by a stage handler
    - StageOutcome: Rows and analytics returned by a stage processor

Identity:
    - resolve_identity / resolve_organization_id
"""
