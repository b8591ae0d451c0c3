"""
Validation Package - Initial Data Validation.

    - InputValidator: structural checks plus identity warnings
    - ValidationError: raised for unusable input
"""

from enrichment_funnel.validation.input_validator import (
    InputValidator,
    ValidationError,
    ValidationReport,
)

__all__ = [
    "InputValidator",
    "ValidationError",
    "ValidationReport",
]
