"""
Integration Tests for PipelineOrchestrator.

Test Aspects Covered:
    ✅ Business Logic: Stage-by-stage advance, active subset, tag filtering
    ✅ Skipping: Empty subset completes the stage without the processor
    ✅ Error Handling: Stage failure halts, retry resends only unfinished rows
    ✅ Cancellation: Cooperative at stage boundary, forced after timeout
    ✅ Resumability: Persisted snapshot restored at the same stage
    ✅ Setup: Connectivity failure before stage 0, recoverable by retry
    ✅ Events: Log, status and progress published on the channel
"""

from __future__ import annotations

import asyncio
from typing import List, Optional

import pytest

from enrichment_funnel.adapters.mock_provider import MockClassifier, MockConnectivityProbe
from enrichment_funnel.adapters.persistence import InMemoryPersistence
from enrichment_funnel.config.models import GlobalConfig, HeadcountFilterConfig
from enrichment_funnel.domain.entities import Row, Stage, StageKind, StageStatus
from enrichment_funnel.domain.value_objects import RowUpdate, StageOutcome
from enrichment_funnel.filters.headcount import HeadcountRangePolicy
from enrichment_funnel.observability.events import EventChannel, EventType, PipelineEvent
from enrichment_funnel.observability.snapshot_manager import RunSnapshotManager
from enrichment_funnel.pipeline.factory import StageContext, build_title_relevance
from enrichment_funnel.pipeline.orchestrator import (
    CONNECTIVITY_FAILURE,
    SKIPPED_MESSAGE,
    PipelineOrchestrator,
)
from enrichment_funnel.pipeline.row_store import RowStore
from enrichment_funnel.pipeline.run_state import PipelineRun
from enrichment_funnel.resilience.errors import PipelineStateError, StageAbortError
from enrichment_funnel.stages.base import BatchStageProcessor


class RecordingProcessor:
    """Marks every row it receives; can block or fail on demand."""

    def __init__(
        self,
        field: str = "seen",
        block: Optional[asyncio.Event] = None,
        failures: int = 0,
    ) -> None:
        self.field = field
        self.block = block
        self.failures = failures
        self.calls: List[List[str]] = []

    async def process(self, rows, log, progress, on_row_complete=None) -> StageOutcome:
        self.calls.append([row.key for row in rows])
        if self.block is not None:
            await self.block.wait()
        if self.failures:
            self.failures -= 1
            raise RuntimeError("provider quota exhausted")
        processed = [row.merged({self.field: True}) for row in rows]
        for index in range(len(processed)):
            progress((index + 1) / len(processed) * 100)
        log(f"Marked {len(processed)} rows")
        return StageOutcome(data=processed, analytics={"processed": len(processed), "errorCount": 0})


class AbortingProcessor(BatchStageProcessor):
    """Aborts the stage once, at the given row; can also fail one row once."""

    domain = "probe"

    def __init__(self, abort_key: str, executor, fail_key: Optional[str] = None, credits: int = 0) -> None:
        super().__init__(window_size=5, inter_window_delay=0, executor=executor)
        self.abort_key = abort_key
        self.fail_key = fail_key
        self.credits = credits
        self.armed = True
        self.handled: List[str] = []
        self.charged: List[str] = []

    async def handle_row(self, row: Row) -> RowUpdate:
        self.handled.append(row.key)
        if self.armed and row.key == self.abort_key:
            self.armed = False
            raise StageAbortError("credits exhausted")
        if row.key == self.fail_key:
            self.fail_key = None
            raise RuntimeError("transient 502")
        self.charged.append(row.key)
        resources = {"credits": self.credits} if self.credits else {}
        return RowUpdate(fields={"probed": True}, source="provider", resources=resources)


def recording_stage(stage_id: str, processor: RecordingProcessor, policy=None) -> Stage:
    return Stage(stage_id=stage_id, name=stage_id.title(), processor=processor, policy=policy)


def make_orchestrator(stages, probe=None, persistence=None, channel=None, **config) -> PipelineOrchestrator:
    settings = {"cancel_timeout_seconds": 5.0, "provider_retry_backoff_seconds": 0}
    settings.update(config)
    return PipelineOrchestrator(
        stages,
        config=GlobalConfig(**settings),
        probe=probe,
        snapshot_manager=RunSnapshotManager(persistence, "test") if persistence is not None else None,
        channel=channel,
    )


async def wait_until_processing(orchestrator: PipelineOrchestrator) -> None:
    for _ in range(100):
        if orchestrator.run is not None and orchestrator.run.is_processing:
            return
        await asyncio.sleep(0)
    raise AssertionError("stage never started")


@pytest.fixture
def title_stage(fast_config, title_classifier, executor) -> Stage:
    context = StageContext(config=fast_config, classifier=title_classifier, executor=executor)
    return build_title_relevance(context)


class TestStageProgression:
    """Test the normal forward path."""

    @pytest.mark.asyncio
    async def test_title_filter_narrows_next_stage(self, title_stage, lead_records, probe) -> None:
        """
        SCENARIO: 10 leads classified 3 Founder / 4 Relevant / 3 Irrelevant
        EXPECTED: 3 tagged "Irrelevant Title: Irrelevant", next stage receives the 7 others
        """
        # Arrange
        follower = RecordingProcessor()
        orchestrator = make_orchestrator([title_stage, recording_stage("follower", follower)], probe=probe)
        orchestrator.set_initial_data(lead_records)

        # Act
        assert await orchestrator.process_current_step() is True
        assert await orchestrator.process_current_step() is False
        state = orchestrator.get_state()

        # Assert
        assert len(state.rows) == 10
        assert len(state.active_rows) == 7
        assert {row.tag for row in state.tagged_rows} == {"Irrelevant Title: Irrelevant"}
        assert len(follower.calls[0]) == 7
        assert set(follower.calls[0]) == {row.key for row in state.active_rows}
        assert state.processing_complete
        assert state.analytics["titleRelevance"]["filtering"]["taggedCount"] == 3
        assert state.analytics["titleRelevance"]["founderCount"] == 3
        assert state.status_of("titleRelevance") == StageStatus.COMPLETE
        assert probe.calls == 1

    @pytest.mark.asyncio
    async def test_rows_keep_input_order_and_tagged_rows_kept(self, title_stage, lead_records) -> None:
        orchestrator = make_orchestrator([title_stage])

        state = await orchestrator.run_to_completion(lead_records)

        assert [row.get("linkedin_url") for row in state.rows] == [r["linkedin_url"] for r in lead_records]
        assert all(row.get("titleRelevance") for row in state.rows)

    @pytest.mark.asyncio
    async def test_filter_stage_without_processor(self) -> None:
        """
        SCENARIO: Pure headcount filter after an enrichment stage
        EXPECTED: Rows outside the range tagged, filter analytics recorded
        """
        records = [
            {"id": "a", "organization": {"estimated_num_employees": 5}},
            {"id": "b", "organization": {"estimated_num_employees": 50}},
        ]
        enrich = RecordingProcessor()
        headcount = Stage(
            stage_id="headcountFilter",
            name="Headcount Filter",
            kind=StageKind.FILTER,
            policy=HeadcountRangePolicy(HeadcountFilterConfig(min_employees=10, max_employees=100)),
        )
        orchestrator = make_orchestrator([recording_stage("enrich", enrich), headcount])

        state = await orchestrator.run_to_completion(records)

        assert [row.tag for row in state.rows] == ["Too Small: 5 employees", ""]
        assert state.filter_analytics["headcountFilter"]["tooSmallCount"] == 1
        assert state.run_analytics["pipeline"]["qualifiedRows"] == 1

    @pytest.mark.asyncio
    async def test_stage_with_no_active_rows_is_skipped(self, lead_records, fast_config) -> None:
        """
        SCENARIO: Every title classified Irrelevant
        EXPECTED: Next stage completes as skipped, its processor never called
        """
        stage = build_title_relevance(
            StageContext(config=fast_config, classifier=MockClassifier(default="Irrelevant"))
        )
        follower = RecordingProcessor()
        orchestrator = make_orchestrator([stage, recording_stage("follower", follower)])

        state = await orchestrator.run_to_completion(lead_records)

        assert follower.calls == []
        assert state.stage_status["follower"].message == SKIPPED_MESSAGE
        assert state.status_of("follower") == StageStatus.COMPLETE
        assert state.analytics["follower"] == {"skipped": True}
        assert state.run_analytics["steps"]["follower"]["skipped"] is True
        assert state.processing_complete

    @pytest.mark.asyncio
    async def test_empty_initial_data(self) -> None:
        processor = RecordingProcessor()
        orchestrator = make_orchestrator([recording_stage("only", processor)])

        state = await orchestrator.run_to_completion([])

        assert processor.calls == []
        assert state.processing_complete

    @pytest.mark.asyncio
    async def test_events_published(self, lead_records) -> None:
        channel = EventChannel()
        events: List[PipelineEvent] = []
        channel.subscribe(events.append)
        orchestrator = make_orchestrator([recording_stage("only", RecordingProcessor())], channel=channel)

        await orchestrator.run_to_completion(lead_records)

        messages = [event.message for event in events if event.event_type == EventType.LOG]
        assert messages[0] == "Initialized with 10 records."
        assert "Starting step 1/1: Only" in messages
        assert messages[-1] == "Pipeline complete: 10 of 10 rows qualified."
        statuses = [event.data["status"] for event in events if event.event_type == EventType.STATUS]
        assert statuses == ["processing", "complete"]
        progress = [event.data["progress"] for event in events if event.event_type == EventType.PROGRESS]
        assert progress == sorted(progress)
        assert progress[-1] == 100.0
        assert len({event.correlation_id for event in events}) == 1


class TestCallerContract:
    """Test illegal operations."""

    @pytest.mark.asyncio
    async def test_process_before_initial_data(self) -> None:
        orchestrator = make_orchestrator([recording_stage("only", RecordingProcessor())])

        with pytest.raises(PipelineStateError):
            await orchestrator.process_current_step()

    @pytest.mark.asyncio
    async def test_retry_when_not_in_error(self, lead_records) -> None:
        orchestrator = make_orchestrator([recording_stage("only", RecordingProcessor())])
        orchestrator.set_initial_data(lead_records)

        with pytest.raises(PipelineStateError):
            await orchestrator.retry_current_stage()

    @pytest.mark.asyncio
    async def test_second_step_while_processing_rejected(self, lead_records) -> None:
        """
        SCENARIO: Step called while a step is still running
        EXPECTED: PipelineStateError; snapshot shows the stage processing
        """
        gate = asyncio.Event()
        orchestrator = make_orchestrator([recording_stage("slow", RecordingProcessor(block=gate))])
        orchestrator.set_initial_data(lead_records)

        task = asyncio.create_task(orchestrator.process_current_step())
        await wait_until_processing(orchestrator)

        with pytest.raises(PipelineStateError):
            await orchestrator.process_current_step()
        state = orchestrator.get_state()
        assert state.is_processing
        assert state.status_of("slow") == StageStatus.PROCESSING

        gate.set()
        assert await task is False

    def test_duplicate_stage_ids_rejected(self) -> None:
        with pytest.raises(ValueError):
            make_orchestrator(
                [recording_stage("a", RecordingProcessor()), recording_stage("a", RecordingProcessor())]
            )

    @pytest.mark.asyncio
    async def test_set_initial_data_starts_over(self, lead_records) -> None:
        processor = RecordingProcessor()
        orchestrator = make_orchestrator([recording_stage("only", processor)])
        await orchestrator.run_to_completion(lead_records)

        orchestrator.set_initial_data(lead_records[:2])
        state = orchestrator.get_state()

        assert state.current_stage_index == 0
        assert not state.processing_complete
        assert len(state.rows) == 2
        assert state.status_of("only") == StageStatus.PENDING


class TestFailureAndRetry:
    """Test stage failure handling."""

    @pytest.mark.asyncio
    async def test_failure_halts_and_retry_recovers(self, lead_records) -> None:
        """
        SCENARIO: Second stage raises once
        EXPECTED: Run halts with error; retry completes it; later steps blocked meanwhile
        """
        failing = RecordingProcessor(failures=1)
        orchestrator = make_orchestrator(
            [recording_stage("first", RecordingProcessor()), recording_stage("second", failing)]
        )
        orchestrator.set_initial_data(lead_records)
        await orchestrator.process_current_step()

        assert await orchestrator.process_current_step() is False
        state = orchestrator.get_state()
        assert state.error == "provider quota exhausted"
        assert state.status_of("second") == StageStatus.ERROR
        assert state.current_stage_index == 1
        assert await orchestrator.process_current_step() is False

        assert await orchestrator.retry_current_stage() is False
        state = orchestrator.get_state()
        assert state.error is None
        assert state.processing_complete
        assert all(row.get("seen") for row in state.rows)

    @pytest.mark.asyncio
    async def test_retry_does_not_resend_finished_rows(self, lead_records, executor) -> None:
        """
        SCENARIO: Stage aborts at row 7 of 10, windows of 5
        EXPECTED: 9 rows kept; retry sends only the aborted row
        """
        # Arrange
        keys = [row.key for row in RowStore.from_records(lead_records).rows]
        processor = AbortingProcessor(abort_key=keys[6], executor=executor)
        orchestrator = make_orchestrator([Stage(stage_id="probe", name="Probe", processor=processor)])
        orchestrator.set_initial_data(lead_records)

        # Act
        assert await orchestrator.process_current_step() is False
        partial = orchestrator.get_state()
        processor.handled.clear()
        await orchestrator.retry_current_stage()
        final = orchestrator.get_state()

        # Assert
        assert partial.error == "credits exhausted"
        assert sum(1 for row in partial.rows if row.get("probed")) == 9
        assert processor.handled == [keys[6]]
        assert all(row.get("probed") for row in final.rows)
        assert final.analytics["probe"]["reusedRows"] == 9
        assert final.processing_complete

    @pytest.mark.asyncio
    async def test_retry_clears_error_of_recovered_row(self, lead_records, executor) -> None:
        """
        SCENARIO: Row 2 fails and row 7 aborts the stage; retry succeeds for both
        EXPECTED: Row 2 loses its error annotation and reports the provider source
        """
        # Arrange
        keys = [row.key for row in RowStore.from_records(lead_records).rows]
        processor = AbortingProcessor(abort_key=keys[6], fail_key=keys[1], executor=executor)
        orchestrator = make_orchestrator([Stage(stage_id="probe", name="Probe", processor=processor)])
        orchestrator.set_initial_data(lead_records)

        # Act
        await orchestrator.process_current_step()
        failed = next(row for row in orchestrator.get_state().rows if row.key == keys[1])
        processor.handled.clear()
        await orchestrator.retry_current_stage()
        recovered = next(row for row in orchestrator.get_state().rows if row.key == keys[1])

        # Assert
        assert failed.get("probeSource") == "error"
        assert failed.get("probeError") == "transient 502"
        assert sorted(processor.handled) == sorted([keys[1], keys[6]])
        assert recovered.get("probeSource") == "provider"
        assert recovered.get("probed") is True
        assert "probeError" not in recovered.attributes

    @pytest.mark.asyncio
    async def test_credits_of_aborted_attempt_counted(self, lead_records, executor) -> None:
        """
        SCENARIO: Paid stage aborts at row 7 of 10, then is retried
        EXPECTED: Run-wide credits equal the paid calls made across both attempts
        """
        keys = [row.key for row in RowStore.from_records(lead_records).rows]
        processor = AbortingProcessor(abort_key=keys[6], executor=executor, credits=1)
        orchestrator = make_orchestrator([Stage(stage_id="probe", name="Probe", processor=processor)])
        orchestrator.set_initial_data(lead_records)

        await orchestrator.process_current_step()
        partial = orchestrator.get_state().run_analytics["resources"]["totalCreditsUsed"]
        await orchestrator.retry_current_stage()
        state = orchestrator.get_state()

        assert partial == 9
        assert len(processor.charged) == 10
        assert state.run_analytics["resources"]["totalCreditsUsed"] == len(processor.charged)
        assert state.processing_complete

    @pytest.mark.asyncio
    async def test_connectivity_failure_then_retry(self, lead_records) -> None:
        """
        SCENARIO: Provider self-test fails before stage 0, then recovers
        EXPECTED: Stage 0 errored with the connectivity message, processor not called; retry runs it
        """
        probe = MockConnectivityProbe(connected=False)
        processor = RecordingProcessor()
        orchestrator = make_orchestrator([recording_stage("first", processor)], probe=probe)
        orchestrator.set_initial_data(lead_records)

        assert await orchestrator.process_current_step() is False
        state = orchestrator.get_state()
        assert state.error == CONNECTIVITY_FAILURE
        assert state.status_of("first") == StageStatus.ERROR
        assert processor.calls == []

        probe.connected = True
        await orchestrator.retry_current_stage()

        assert orchestrator.get_state().processing_complete
        assert probe.calls == 2

    @pytest.mark.asyncio
    async def test_connectivity_check_disabled(self, lead_records) -> None:
        probe = MockConnectivityProbe(connected=False)
        orchestrator = make_orchestrator(
            [recording_stage("first", RecordingProcessor())], probe=probe, check_connectivity=False
        )

        state = await orchestrator.run_to_completion(lead_records)

        assert state.processing_complete
        assert probe.calls == 0


class TestCancellation:
    """Test cooperative and forced cancellation."""

    def test_cancel_without_run(self) -> None:
        orchestrator = make_orchestrator([recording_stage("a", RecordingProcessor())])

        assert orchestrator.cancel_processing() is False

    @pytest.mark.asyncio
    async def test_cancel_while_idle(self, lead_records) -> None:
        processor = RecordingProcessor()
        orchestrator = make_orchestrator([recording_stage("a", processor)])
        orchestrator.set_initial_data(lead_records)

        assert orchestrator.cancel_processing() is True

        assert await orchestrator.process_current_step() is False
        state = orchestrator.get_state()
        assert state.is_cancelled
        assert state.status_of("a") == StageStatus.CANCELLED
        assert processor.calls == []

    @pytest.mark.asyncio
    async def test_cooperative_cancel_lands_at_stage_boundary(self, lead_records) -> None:
        """
        SCENARIO: Cancel while stage 1 of 2 runs, stage returns before timeout
        EXPECTED: Stage 1 result kept, stage 2 cancelled, never started
        """
        gate = asyncio.Event()
        first = RecordingProcessor(block=gate)
        second = RecordingProcessor()
        orchestrator = make_orchestrator(
            [recording_stage("first", first), recording_stage("second", second)]
        )
        orchestrator.set_initial_data(lead_records)

        task = asyncio.create_task(orchestrator.process_current_step())
        await wait_until_processing(orchestrator)
        assert orchestrator.cancel_processing() is True
        assert orchestrator.get_state().is_cancelling
        gate.set()
        assert await task is False

        state = orchestrator.get_state()
        assert state.is_cancelled
        assert not state.is_cancelling
        assert state.status_of("first") == StageStatus.COMPLETE
        assert state.status_of("second") == StageStatus.CANCELLED
        assert all(row.get("seen") for row in state.rows)
        assert second.calls == []
        assert await orchestrator.process_current_step() is False

    @pytest.mark.asyncio
    async def test_forced_cancel_after_timeout(self, lead_records) -> None:
        """
        SCENARIO: Stage ignores cancellation beyond cancel_timeout_seconds
        EXPECTED: Run forced to cancelled; late result discarded
        """
        gate = asyncio.Event()
        processor = RecordingProcessor(block=gate)
        orchestrator = make_orchestrator(
            [recording_stage("stuck", processor)], cancel_timeout_seconds=0.05
        )
        orchestrator.set_initial_data(lead_records)

        task = asyncio.create_task(orchestrator.process_current_step())
        await wait_until_processing(orchestrator)
        orchestrator.cancel_processing()
        await asyncio.sleep(0.2)

        state = orchestrator.get_state()
        assert state.is_cancelled
        assert not state.is_processing
        assert state.stage_status["stuck"].message == "Cancelled by user (forced)"

        gate.set()
        assert await task is False
        final = orchestrator.get_state()
        assert not any(row.get("seen") for row in final.rows)
        assert final.status_of("stuck") == StageStatus.CANCELLED


class TestResume:
    """Test resumability from persisted snapshots."""

    @pytest.mark.asyncio
    async def test_resume_at_next_stage(self, lead_records) -> None:
        """
        SCENARIO: Stage 1 of 3 completed, then a new orchestrator resumes
        EXPECTED: Resumes at stage 2, stage 1 not re-run, run completes
        """
        # Arrange
        persistence = InMemoryPersistence()
        first, second, third = RecordingProcessor("a"), RecordingProcessor("b"), RecordingProcessor("c")

        def stages():
            return [recording_stage("s1", first), recording_stage("s2", second), recording_stage("s3", third)]

        original = make_orchestrator(stages(), persistence=persistence)
        original.set_initial_data(lead_records)
        await original.process_current_step()

        # Act
        resumed = make_orchestrator(stages(), persistence=persistence)
        assert resumed.resume() is True
        state = resumed.get_state()
        final = await resumed.run_to_completion()

        # Assert
        assert state.current_stage_index == 1
        assert state.status_of("s1") == StageStatus.COMPLETE
        assert len(first.calls) == 1
        assert len(second.calls) == 1
        assert final.processing_complete
        assert all(row.get("a") and row.get("c") for row in final.rows)

    @pytest.mark.asyncio
    async def test_resume_in_flight_stage(self, lead_records) -> None:
        """
        SCENARIO: Snapshot taken while stage 1 was processing with 4 rows finished
        EXPECTED: Stage reset to pending, only the 6 unfinished rows sent
        """
        persistence = InMemoryPersistence()
        manager = RunSnapshotManager(persistence, "test")
        store = RowStore.from_records(lead_records)
        run = PipelineRun(stage_ids=["s1"])
        run.is_processing = True
        run.set_status("s1", StageStatus.PROCESSING, "Processing")
        for row in store.rows[:4]:
            run.mark_completed("s1", row.key)
        manager.save(run, store)

        processor = RecordingProcessor()
        orchestrator = make_orchestrator([recording_stage("s1", processor)], persistence=persistence)

        assert orchestrator.resume() is True
        state = orchestrator.get_state()
        assert state.status_of("s1") == StageStatus.PENDING
        assert not state.is_processing

        await orchestrator.process_current_step()
        assert processor.calls[0] == [row.key for row in store.rows[4:]]

    def test_resume_rejects_other_pipeline(self, lead_records) -> None:
        persistence = InMemoryPersistence()
        original = make_orchestrator([recording_stage("s1", RecordingProcessor())], persistence=persistence)
        original.set_initial_data(lead_records)

        other = make_orchestrator([recording_stage("other", RecordingProcessor())], persistence=persistence)

        assert other.resume() is False

    def test_resume_without_snapshot(self) -> None:
        orchestrator = make_orchestrator(
            [recording_stage("s1", RecordingProcessor())], persistence=InMemoryPersistence()
        )

        assert orchestrator.resume() is False
