"""
Health Monitor - Run Health Checks.

Provides health checks at key pipeline points:
    - Pre-run: System resources available
    - Post-stage: Row error rate plausible, funnel not exhausted

Design Notes:
    - Configurable thresholds from PipelineConfig.health_monitoring
    - Returns HealthStatus with pass/warn/fail and details
    - Anomalies never halt a run; they are logged via the
      ObservabilityManager if provided
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

import psutil

from enrichment_funnel.config.models import HealthMonitorConfig

logger = logging.getLogger(__name__)


class HealthCheckResult(Enum):
    """Result of a health check."""
    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"


@dataclass
class HealthCheck:
    """Individual health check result."""
    name: str
    result: HealthCheckResult
    message: str
    value: Optional[float] = None
    threshold: Optional[float] = None


@dataclass
class HealthStatus:
    """Overall health status."""
    is_healthy: bool
    checks: List[HealthCheck] = field(default_factory=list)
    timestamp: str = ""

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now().isoformat()

    def add_check(self, check: HealthCheck) -> None:
        """Add a health check result."""
        self.checks.append(check)
        if check.result == HealthCheckResult.FAIL:
            self.is_healthy = False

    @property
    def anomalies(self) -> List[HealthCheck]:
        return [c for c in self.checks if c.result != HealthCheckResult.PASS]

    @property
    def summary(self) -> Dict[str, Any]:
        """Get summary of health status."""
        return {
            "is_healthy": self.is_healthy,
            "timestamp": self.timestamp,
            "checks": {
                c.name: {
                    "result": c.result.value,
                    "message": c.message,
                    "value": c.value,
                    "threshold": c.threshold,
                }
                for c in self.checks
            },
        }


class HealthMonitor:
    """
    Monitor run health at key pipeline points.

    Performs checks:
        - Pre-run: RAM usage
        - Post-stage: row error rate, remaining active rows
    """

    def __init__(
        self,
        config: Optional[HealthMonitorConfig] = None,
        observability: Optional[Any] = None,
    ) -> None:
        """
        Initialize health monitor.

        Args:
            config: Health monitoring configuration
            observability: ObservabilityManager for logging (optional)
        """
        self.config = config or HealthMonitorConfig()
        self.observability = observability

    def check_pre_run(self) -> HealthStatus:
        """
        Check system health before the first stage.

        Checks:
            - RAM usage below threshold
        """
        status = HealthStatus(is_healthy=True)

        if not self.config.enabled:
            return status

        ram_check = self._check_ram_usage()
        status.add_check(ram_check)
        if ram_check.result != HealthCheckResult.PASS:
            self._log_anomaly(ram_check)

        return status

    def check_post_stage(
        self,
        stage_id: str,
        analytics: Mapping[str, Any],
        active_count: int,
    ) -> HealthStatus:
        """
        Check health after a stage completed.

        Args:
            stage_id: Stage that just completed
            analytics: The stage's analytics
            active_count: Untagged rows left in the store

        Checks:
            - Row error rate below threshold
            - Active rows remaining
        """
        status = HealthStatus(is_healthy=True)

        if not self.config.enabled or analytics.get("skipped"):
            return status

        error_check = self._check_error_rate(stage_id, analytics)
        status.add_check(error_check)
        if error_check.result != HealthCheckResult.PASS:
            self._log_anomaly(error_check)

        if self.config.warn_on_empty_funnel:
            funnel_check = self._check_active_rows(stage_id, active_count)
            status.add_check(funnel_check)
            if funnel_check.result != HealthCheckResult.PASS:
                self._log_anomaly(funnel_check)

        return status

    def _check_ram_usage(self) -> HealthCheck:
        """Check current RAM usage."""
        ram_pct = psutil.virtual_memory().percent

        if ram_pct >= self.config.max_ram_usage_pct:
            return HealthCheck(
                name="ram_usage",
                result=HealthCheckResult.FAIL,
                message=f"RAM usage {ram_pct:.1f}% exceeds max {self.config.max_ram_usage_pct}%",
                value=ram_pct,
                threshold=self.config.max_ram_usage_pct,
            )
        elif ram_pct >= self.config.warn_ram_usage_pct:
            return HealthCheck(
                name="ram_usage",
                result=HealthCheckResult.WARN,
                message=f"RAM usage {ram_pct:.1f}% approaching limit",
                value=ram_pct,
                threshold=self.config.warn_ram_usage_pct,
            )
        else:
            return HealthCheck(
                name="ram_usage",
                result=HealthCheckResult.PASS,
                message=f"RAM usage {ram_pct:.1f}% OK",
                value=ram_pct,
                threshold=self.config.max_ram_usage_pct,
            )

    def _check_error_rate(self, stage_id: str, analytics: Mapping[str, Any]) -> HealthCheck:
        """Check the share of rows that failed in the stage."""
        processed = int(analytics.get("processed", 0) or 0)
        errors = int(analytics.get("errorCount", 0) or 0)
        error_pct = errors / processed * 100 if processed > 0 else 0.0

        if error_pct > self.config.max_error_rate_pct:
            return HealthCheck(
                name="error_rate",
                result=HealthCheckResult.WARN,
                message=(
                    f"{stage_id}: {errors}/{processed} rows failed "
                    f"({error_pct:.1f}% > {self.config.max_error_rate_pct}%)"
                ),
                value=error_pct,
                threshold=self.config.max_error_rate_pct,
            )
        return HealthCheck(
            name="error_rate",
            result=HealthCheckResult.PASS,
            message=f"{stage_id}: error rate {error_pct:.1f}% OK",
            value=error_pct,
            threshold=self.config.max_error_rate_pct,
        )

    def _check_active_rows(self, stage_id: str, active_count: int) -> HealthCheck:
        """Warn when every row has been tagged."""
        if active_count == 0:
            return HealthCheck(
                name="active_rows",
                result=HealthCheckResult.WARN,
                message=f"All rows tagged after {stage_id}; later stages will be skipped",
                value=0.0,
                threshold=1.0,
            )
        return HealthCheck(
            name="active_rows",
            result=HealthCheckResult.PASS,
            message=f"{active_count} active rows after {stage_id}",
            value=float(active_count),
            threshold=1.0,
        )

    def _log_anomaly(self, check: HealthCheck) -> None:
        """Log health check anomaly."""
        severity = "ERROR" if check.result == HealthCheckResult.FAIL else "WARNING"

        if self.observability:
            self.observability.log_anomaly(
                check.message,
                severity,
                context={
                    "check_name": check.name,
                    "value": check.value,
                    "threshold": check.threshold,
                },
            )
        else:
            log_fn = logger.error if severity == "ERROR" else logger.warning
            log_fn(f"Health check {check.name}: {check.message}")
