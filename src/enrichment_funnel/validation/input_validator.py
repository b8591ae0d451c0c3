"""
Input Validator - Validate Initial Records.

Validates the records handed to set_initial_data before a run starts:
    - Input is a list of mappings (fatal)
    - Every record has an identity (warning, positional key used)
    - Identities are unique (warning, duplicates get a #n suffix)

Design Notes:
    - Fail-fast only on structural problems
    - Data-quality findings are returned, logged, never raised
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence

from enrichment_funnel.domain.identity import resolve_identity
from enrichment_funnel.resilience.errors import EnrichmentFunnelError

logger = logging.getLogger(__name__)


class ValidationError(EnrichmentFunnelError):
    """Raised when initial data cannot be loaded."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field
        self.message = message


@dataclass
class ValidationReport:
    """Non-fatal findings about the initial records."""

    total: int = 0
    missing_identity: List[int] = field(default_factory=list)
    duplicates: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not self.warnings


class InputValidator:
    """
    Validates initial records.

    Usage:
        report = InputValidator().validate(records)
        for warning in report.warnings:
            print(warning)
    """

    def __init__(self, max_rows: Optional[int] = None) -> None:
        """
        Initialize validator.

        Args:
            max_rows: Optional upper bound on the number of records
        """
        self.max_rows = max_rows

    def validate(self, records: Any) -> ValidationReport:
        """
        Validate initial records.

        Args:
            records: Candidate list of mappings

        Returns:
            ValidationReport with the non-fatal findings

        Raises:
            ValidationError: If records is not a list of mappings or
                exceeds max_rows
        """
        if isinstance(records, (str, bytes, Mapping)) or not isinstance(records, Sequence):
            raise ValidationError(
                f"Initial data must be a list of records, got {type(records).__name__}"
            )

        bad = [index for index, record in enumerate(records) if not isinstance(record, Mapping)]
        if bad:
            raise ValidationError(
                f"Records at positions {bad[:10]} are not mappings", field="records"
            )

        if self.max_rows is not None and len(records) > self.max_rows:
            raise ValidationError(
                f"{len(records)} records exceed the limit of {self.max_rows}",
                field="records",
            )

        report = ValidationReport(total=len(records))
        identities = []
        for index, record in enumerate(records):
            identity = resolve_identity(record)
            if identity is None:
                report.missing_identity.append(index)
            else:
                identities.append(identity)

        report.duplicates = sorted(
            identity for identity, count in Counter(identities).items() if count > 1
        )

        if report.missing_identity:
            report.warnings.append(
                f"{len(report.missing_identity)} records have no identity; "
                f"positional keys assigned"
            )
        if report.duplicates:
            report.warnings.append(
                f"{len(report.duplicates)} identities appear more than once: "
                f"{report.duplicates[:5]}"
            )

        for warning in report.warnings:
            logger.warning(f"Input validation: {warning}")
        logger.debug(f"Validated {report.total} records")
        return report
