"""
Unit Tests - Testing Individual Components in Isolation.

Each component is tested in isolation with fake collaborators.
Unit tests should be fast, deterministic, and focused.

Test Files:
    - test_identity.py: Row identity precedence
    - test_row_store.py: Merge and tag monotonicity
    - test_batch_executor.py: Windows, failure isolation, progress
    - test_filters.py: Tag filter policies
    - test_config_loader.py: Configuration loading/validation
"""
