"""
Pipeline Package - Orchestration and Row Management.

Components:
    - PipelineOrchestrator: stage-by-stage run control
    - PipelineRun: mutable state of one run
    - RowStore: rows addressed by identity
    - BatchExecutor: bounded-concurrency row processing
    - build_advisor_pipeline: wires the default funnel

Import from the submodules directly, e.g.
enrichment_funnel.pipeline.factory, since stage modules depend on the
batch executor defined here.
"""
