"""
Pipeline Orchestrator - Stage-by-Stage Run Control.

The PipelineOrchestrator drives one run through an ordered list of
stages, one stage per process_current_step() call, so the caller decides
when to advance, retry, cancel or stop.

Per step:
    1. Cancellation requested: mark the current stage cancelled, halt
    2. Past the last stage: mark the run complete, halt
    3. Mark the stage processing; before stage 0 only, check RAM and
       test provider connectivity
    4. Active subset: every row for stage 0, untagged rows afterwards
    5. Empty subset: complete the stage as skipped, processor not called
    6. Run the processor, merging each finished row immediately
    7. Apply the stage's tag filter policy to the untagged rows
    8. Complete the stage and advance
    9. On failure: mark the stage errored and halt; retry_current_stage()
       re-enters the same stage without resending finished rows

State is persisted after every stage transition; get_state() returns an
immutable snapshot at any moment, mid-run included.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from enrichment_funnel.analytics.aggregator import RESOURCE_FIELDS, AnalyticsAggregator
from enrichment_funnel.config.models import GlobalConfig
from enrichment_funnel.domain.entities import (
    LogEntry,
    PipelineSnapshot,
    Row,
    Stage,
    StageDescriptor,
    StageKind,
    StageStatus,
)
from enrichment_funnel.domain.value_objects import StageOutcome
from enrichment_funnel.interfaces.providers import ConnectivityProbeProtocol
from enrichment_funnel.observability.events import EventChannel, EventType, PipelineEvent
from enrichment_funnel.observability.health_monitor import HealthMonitor, HealthStatus
from enrichment_funnel.observability.snapshot_manager import RunSnapshotManager
from enrichment_funnel.pipeline.row_store import RowStore
from enrichment_funnel.pipeline.run_state import PipelineRun
from enrichment_funnel.resilience.errors import (
    ConnectivityError,
    PipelineStateError,
    StageAbortError,
)
from enrichment_funnel.validation.input_validator import InputValidator

logger = logging.getLogger(__name__)

CONNECTIVITY_FAILURE = (
    "API connection test failed. Please check your proxy server and API keys."
)
SKIPPED_MESSAGE = "Skipped - No data to process"
CANCELLED_MESSAGE = "Cancelled by user"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class PipelineOrchestrator:
    """
    Caller-held controller of one pipeline run.

    Usage:
        orchestrator = PipelineOrchestrator(stages, config.global_settings)
        orchestrator.set_initial_data(records)
        while await orchestrator.process_current_step():
            pass
        snapshot = orchestrator.get_state()
    """

    def __init__(
        self,
        stages: Sequence[Stage],
        config: Optional[GlobalConfig] = None,
        probe: Optional[ConnectivityProbeProtocol] = None,
        snapshot_manager: Optional[RunSnapshotManager] = None,
        channel: Optional[EventChannel] = None,
        aggregator: Optional[AnalyticsAggregator] = None,
        health_monitor: Optional[HealthMonitor] = None,
        input_validator: Optional[InputValidator] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """
        Initialize orchestrator with all dependencies.

        Args:
            stages: Ordered stages of the pipeline
            config: Global settings (cancel timeout, connectivity check)
            probe: Provider connectivity self-test run before stage 0
            snapshot_manager: Persists the run after every transition
            channel: Receives log, progress, status and anomaly events
            aggregator: Run-wide analytics
            health_monitor: Pre-run and post-stage health checks
            input_validator: Validates set_initial_data input
            clock: Wall clock for log timestamps
        """
        stage_ids = [stage.stage_id for stage in stages]
        if len(set(stage_ids)) != len(stage_ids):
            raise ValueError(f"Stage ids must be unique: {stage_ids}")

        self.stages: List[Stage] = list(stages)
        self.config = config or GlobalConfig()
        self.probe = probe
        self.snapshot_manager = snapshot_manager
        self.channel = channel or EventChannel()
        self.aggregator = aggregator or AnalyticsAggregator()
        self.health_monitor = health_monitor
        self.input_validator = input_validator or InputValidator()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self.run: Optional[PipelineRun] = None
        self.store = RowStore()
        self._attempt = 0
        self._cancel_timer: Optional[asyncio.TimerHandle] = None

    @property
    def stage_ids(self) -> List[str]:
        return [stage.stage_id for stage in self.stages]

    @property
    def pipeline(self) -> List[StageDescriptor]:
        return [
            StageDescriptor(
                stage_id=stage.stage_id,
                name=stage.name,
                description=stage.description,
                kind=stage.kind,
            )
            for stage in self.stages
        ]

    # ------------------------------------------------------------------
    # Caller surface
    # ------------------------------------------------------------------

    def set_initial_data(self, records: Sequence[Mapping[str, Any]]) -> None:
        """
        Start a new run over records.

        Discards any persisted snapshot and all state of a previous run.

        Raises:
            ValidationError: If records is not a list of mappings
        """
        report = self.input_validator.validate(records)

        self._invalidate_attempt()
        self._cancel_timer_if_any()
        if self.snapshot_manager is not None:
            self.snapshot_manager.clear()

        self.run = PipelineRun(stage_ids=self.stage_ids)
        self.store = RowStore.from_records(records)
        self.aggregator.reset()
        self.aggregator.start_run(total_rows=len(self.store))

        self._log(f"Initialized with {len(self.store)} records.")
        for warning in report.warnings:
            self._log(warning, level="warning")
        self._persist()

    async def process_current_step(self) -> bool:
        """
        Advance exactly one stage.

        Returns:
            True while further stages remain to be processed

        Raises:
            PipelineStateError: If no data was loaded or a step is in flight
        """
        run = self._require_run()
        if run.is_processing:
            raise PipelineStateError("A step is already in progress")
        if run.is_cancelled:
            return False
        if run.is_cancelling:
            self._finish_cancellation(CANCELLED_MESSAGE)
            return False
        if run.error is not None:
            logger.debug(f"Run halted on error, retry required: {run.error}")
            return False
        if run.processing_complete or run.current_stage_index >= len(self.stages):
            self._complete_run()
            return False

        return await self._execute_current_stage()

    async def retry_current_stage(self) -> bool:
        """
        Re-enter the errored stage.

        Rows completed by an earlier attempt are kept and not resent.

        Returns:
            True while further stages remain to be processed

        Raises:
            PipelineStateError: If the current stage is not in error
        """
        run = self._require_run()
        stage_id = run.current_stage_id
        if run.is_processing:
            raise PipelineStateError("Cannot retry while a step is in progress")
        if run.is_cancelled:
            raise PipelineStateError("Cannot retry a cancelled run")
        if stage_id is None or run.status_of(stage_id) != StageStatus.ERROR:
            raise PipelineStateError("Current stage is not in error")

        run.error = None
        self._log(f"Retrying step {run.current_stage_index + 1}/{len(self.stages)}")
        return await self._execute_current_stage()

    def cancel_processing(self) -> bool:
        """
        Request cancellation.

        Lands at the next stage boundary; if a stage is in flight and does
        not return within cancel_timeout_seconds, the run is forced into
        the cancelled state.

        Returns:
            True when the request was accepted
        """
        run = self.run
        if run is None or run.is_cancelled or run.processing_complete:
            return False
        if run.is_cancelling:
            return True

        run.is_cancelling = True
        self._log("Cancellation requested.", level="warning")

        if not run.is_processing:
            self._finish_cancellation(CANCELLED_MESSAGE)
            return True

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, cancellation is cooperative only")
        else:
            self._cancel_timer = loop.call_later(
                self.config.cancel_timeout_seconds, self._force_cancel
            )
        self._persist()
        return True

    async def run_to_completion(
        self, records: Optional[Sequence[Mapping[str, Any]]] = None
    ) -> PipelineSnapshot:
        """
        Process stages until the run completes, errors or is cancelled.

        Args:
            records: Start a new run over these records first

        Returns:
            Final snapshot
        """
        if records is not None:
            self.set_initial_data(records)
        while await self.process_current_step():
            pass
        return self.get_state()

    def resume(self) -> bool:
        """
        Restore the last persisted run.

        A stage that was in flight when the snapshot was taken is reset to
        pending and runs again on the next step, without resending rows it
        already finished.

        Returns:
            True when a snapshot for this pipeline was restored
        """
        if self.snapshot_manager is None:
            return False
        snapshot = self.snapshot_manager.load()
        if snapshot is None:
            return False
        if snapshot.run.stage_ids != self.stage_ids:
            logger.warning(
                f"Snapshot stages {snapshot.run.stage_ids} do not match pipeline "
                f"{self.stage_ids}, not resuming"
            )
            return False

        run = snapshot.run
        stage_id = run.current_stage_id
        if stage_id is not None and run.status_of(stage_id) == StageStatus.PROCESSING:
            run.set_status(stage_id, StageStatus.PENDING)
        run.is_processing = False
        run.is_cancelling = False

        self._invalidate_attempt()
        self.run = run
        self.store = snapshot.store
        self.aggregator.reset()
        self.aggregator.start_run(total_rows=len(self.store))
        self._log(
            f"Resumed at step {run.current_stage_index + 1}/{len(self.stages)} "
            f"with {self.store.active_count} active rows."
        )
        return True

    def get_state(self) -> PipelineSnapshot:
        """Immutable view of the run, available at any moment."""
        run = self.run
        if run is None:
            return PipelineSnapshot(pipeline=self.pipeline)
        return PipelineSnapshot(
            rows=self.store.rows,
            pipeline=self.pipeline,
            current_stage_index=run.current_stage_index,
            current_stage_id=run.current_stage_id,
            is_processing=run.is_processing,
            is_cancelling=run.is_cancelling,
            is_cancelled=run.is_cancelled,
            processing_complete=run.processing_complete,
            error=run.error,
            progress=run.progress,
            logs=list(run.logs),
            stage_status=dict(run.stage_status),
            analytics={key: dict(value) for key, value in run.analytics.items()},
            filter_analytics={
                key: dict(value) for key, value in run.filter_analytics.items()
            },
            run_analytics=self.aggregator.report(),
        )

    # ------------------------------------------------------------------
    # Stage execution
    # ------------------------------------------------------------------

    async def _execute_current_stage(self) -> bool:
        run = self._require_run()
        index = run.current_stage_index
        stage = self.stages[index]
        attempt = self._attempt
        started = time.perf_counter()

        run.is_processing = True
        run.set_progress(0)
        self._set_status(stage, StageStatus.PROCESSING, "Processing")
        self._log(f"Starting step {index + 1}/{len(self.stages)}: {stage.name}")
        self._persist()

        try:
            if index == 0:
                await self._pre_run_checks()

            subset = self.store.rows if index == 0 else self.store.active_rows()
            if not subset:
                return self._skip_stage(stage, started)

            self.aggregator.start_stage(stage.stage_id, input_rows=len(subset))
            analytics = await self._run_processor(stage, subset, attempt)
            if attempt != self._attempt:
                logger.info(f"Discarding result of superseded attempt on {stage.stage_id}")
                return False

            if stage.policy is not None:
                result = stage.policy.apply(self.store.rows)
                self.store.apply_tags(result.tagged)
                analytics["filtering"] = result.to_analytics()
                if stage.kind == StageKind.FILTER:
                    run.filter_analytics[stage.stage_id] = result.to_analytics()
                self._log(
                    f"{stage.name}: {result.tagged_count} rows tagged, "
                    f"{result.untagged_count} remain"
                )
                filtered = result.tagged_count
            else:
                filtered = 0

            self._record_stage_metrics(stage, analytics, filtered)
            self._check_stage_health(stage, analytics)

        except Exception as e:
            if attempt != self._attempt:
                logger.info(f"Ignoring failure of superseded attempt on {stage.stage_id}: {e}")
                return False
            return self._fail_stage(stage, e)

        run.analytics[stage.stage_id] = analytics
        run.set_progress(100)
        self._set_status(
            stage,
            StageStatus.COMPLETE,
            "Complete",
            analytics=analytics,
            duration=time.perf_counter() - started,
        )
        return self._advance()

    async def _pre_run_checks(self) -> None:
        if self.health_monitor is not None:
            self._publish_anomalies(self.health_monitor.check_pre_run())

        if not self.config.check_connectivity or self.probe is None:
            return
        self._log("Testing provider connection...")
        try:
            connected = await self.probe.test_connection()
        except Exception as e:
            logger.warning(f"Connectivity probe raised: {e}")
            connected = False
        if not connected:
            raise ConnectivityError(CONNECTIVITY_FAILURE)
        self._log("Provider connection OK.")

    async def _run_processor(self, stage: Stage, subset: List[Row], attempt: int) -> Dict[str, Any]:
        run = self._require_run()
        if stage.kind == StageKind.FILTER or stage.processor is None:
            return {"total": len(subset)}

        done = run.completed_for(stage.stage_id)
        pending = [row for row in subset if row.key not in done]
        if not pending:
            self._log(f"All {len(subset)} rows already processed in an earlier attempt")
            return {"total": 0, "processed": 0, "errorCount": 0, "reusedRows": len(subset)}
        if done:
            self._log(f"Resuming with {len(pending)} of {len(subset)} rows")

        def on_row_complete(row: Row, succeeded: bool) -> None:
            if attempt != self._attempt:
                return
            self.store.merge([row])
            if succeeded:
                run.mark_completed(stage.stage_id, row.key)

        try:
            outcome: StageOutcome = await stage.processor.process(
                pending,
                log=lambda message: self._log(message),
                progress=lambda value: self._report_progress(stage, value, attempt),
                on_row_complete=on_row_complete,
            )
        except StageAbortError as e:
            if attempt == self._attempt:
                self.store.merge(e.completed_rows)
                self._record_resources(stage, e.analytics.get("resources"))
            raise

        if attempt == self._attempt:
            self.store.merge(outcome.data)
        analytics = dict(outcome.analytics)
        if done:
            analytics["reusedRows"] = len(subset) - len(pending)
        return analytics

    def _skip_stage(self, stage: Stage, started: float) -> bool:
        run = self._require_run()
        analytics = {"skipped": True}
        self.aggregator.record_skipped(stage.stage_id)
        run.analytics[stage.stage_id] = analytics
        run.set_progress(100)
        self._log(f"{stage.name}: no active rows, skipping")
        self._set_status(
            stage,
            StageStatus.COMPLETE,
            SKIPPED_MESSAGE,
            analytics=analytics,
            duration=time.perf_counter() - started,
        )
        return self._advance()

    def _fail_stage(self, stage: Stage, error: Exception) -> bool:
        run = self._require_run()
        message = str(error) or error.__class__.__name__
        logger.error(f"Stage {stage.stage_id} failed: {message}")
        run.is_processing = False
        run.error = message
        self._set_status(stage, StageStatus.ERROR, message)
        self._log(f"Error in {stage.name}: {message}", level="error")
        if run.is_cancelling:
            self._finish_cancellation(CANCELLED_MESSAGE)
        else:
            self._persist()
        return False

    def _advance(self) -> bool:
        run = self._require_run()
        run.is_processing = False
        run.current_stage_index += 1

        if run.is_cancelling:
            self._finish_cancellation(CANCELLED_MESSAGE)
            return False
        if run.current_stage_index >= len(self.stages):
            self._complete_run()
            return False

        self._persist()
        return True

    def _complete_run(self) -> None:
        run = self._require_run()
        if not run.processing_complete:
            run.processing_complete = True
            self.aggregator.end_run(qualified_rows=self.store.active_count)
            self._log(
                f"Pipeline complete: {self.store.active_count} of {len(self.store)} "
                f"rows qualified."
            )
        self._persist()

    def _record_resources(self, stage: Stage, resources: Optional[Mapping[str, Any]]) -> None:
        resources = resources or {}
        counts = {name: int(resources.get(name, 0) or 0) for name in RESOURCE_FIELDS}
        self.aggregator.record_resources(stage.stage_id, **counts)

    def _record_stage_metrics(self, stage: Stage, analytics: Mapping[str, Any], filtered: int) -> None:
        self._record_resources(stage, analytics.get("resources"))
        self.aggregator.end_stage(
            stage.stage_id,
            output_rows=self.store.active_count,
            filtered_rows=filtered,
            error_rows=int(analytics.get("errorCount", 0) or 0),
        )

    def _check_stage_health(self, stage: Stage, analytics: Mapping[str, Any]) -> None:
        if self.health_monitor is None:
            return
        status = self.health_monitor.check_post_stage(
            stage.stage_id, analytics, self.store.active_count
        )
        self._publish_anomalies(status, stage.stage_id)

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def _finish_cancellation(self, message: str) -> None:
        run = self._require_run()
        self._cancel_timer_if_any()
        stage_id = run.current_stage_id
        if stage_id is not None:
            run.set_status(stage_id, StageStatus.CANCELLED, message)
            self._publish(EventType.STATUS, {"status": StageStatus.CANCELLED.value,
                                             "message": message}, stage_id)
        run.is_processing = False
        run.is_cancelling = False
        run.is_cancelled = True
        self._log("Processing cancelled.", level="warning")
        self._persist()

    def _force_cancel(self) -> None:
        self._cancel_timer = None
        run = self.run
        if run is None or not run.is_cancelling:
            return
        logger.warning(
            f"Cancellation did not land within {self.config.cancel_timeout_seconds}s, forcing"
        )
        self._invalidate_attempt()
        self._finish_cancellation(f"{CANCELLED_MESSAGE} (forced)")

    def _cancel_timer_if_any(self) -> None:
        if self._cancel_timer is not None:
            self._cancel_timer.cancel()
            self._cancel_timer = None

    def _invalidate_attempt(self) -> None:
        self._attempt += 1

    # ------------------------------------------------------------------
    # Events, logging, persistence
    # ------------------------------------------------------------------

    def _require_run(self) -> PipelineRun:
        if self.run is None:
            raise PipelineStateError("No data loaded; call set_initial_data() first")
        return self.run

    def _publish(self, event_type: EventType, data: Dict[str, Any], stage_id: Optional[str] = None) -> None:
        self.channel.publish(
            PipelineEvent(
                event_type=event_type,
                data=data,
                stage_id=stage_id,
                correlation_id=self.run.correlation_id if self.run else None,
            )
        )

    def _log(self, message: str, level: str = "info") -> None:
        run = self.run
        stage_id = run.current_stage_id if run is not None else None
        if run is not None:
            run.logs.append(
                LogEntry(timestamp=self._clock(), message=message, level=level, stage_id=stage_id)
            )
        logger.log(_LEVELS.get(level, logging.INFO), message)
        self._publish(EventType.LOG, {"message": message, "level": level}, stage_id)

    def _report_progress(self, stage: Stage, value: float, attempt: int) -> None:
        if attempt != self._attempt or self.run is None:
            return
        progress = self.run.set_progress(value)
        self._publish(EventType.PROGRESS, {"progress": progress}, stage.stage_id)

    def _set_status(
        self,
        stage: Stage,
        status: StageStatus,
        message: str,
        analytics: Optional[Dict[str, Any]] = None,
        duration: Optional[float] = None,
    ) -> None:
        run = self._require_run()
        run.set_status(stage.stage_id, status, message, analytics)
        data: Dict[str, Any] = {"status": status.value, "message": message}
        if duration is not None:
            data["duration_seconds"] = round(duration, 3)
        self._publish(EventType.STATUS, data, stage.stage_id)

    def _publish_anomalies(self, status: HealthStatus, stage_id: Optional[str] = None) -> None:
        for check in status.anomalies:
            self._log(f"Health check {check.name}: {check.message}", level="warning")
            self._publish(
                EventType.ANOMALY,
                {
                    "message": check.message,
                    "level": "warning",
                    "check": check.name,
                    "value": check.value,
                    "threshold": check.threshold,
                },
                stage_id,
            )

    def _persist(self) -> None:
        if self.snapshot_manager is not None and self.run is not None:
            self.snapshot_manager.save(self.run, self.store)
