"""
Test Suite for Enrichment Funnel.

Test organization:
    - unit/: Unit tests for individual components
    - integration/: End-to-end pipeline tests
    - performance/: Throughput with mock providers
    - fixtures/: Shared test fixtures and sample data

Running Tests:
    pytest tests/                           # All tests
    pytest tests/unit/                      # Unit tests only
    pytest tests/integration/               # Integration tests only
    pytest --cov=src/enrichment_funnel      # With coverage
"""
