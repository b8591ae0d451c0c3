"""
Integration Tests - End-to-End Pipeline Tests.

These tests drive the PipelineOrchestrator with the mock providers to
avoid external dependencies while testing the full workflow.

Test Files:
    - test_orchestrator.py: Step, skip, retry, cancel, resume
    - test_advisor_pipeline.py: The default funnel built from config
"""
