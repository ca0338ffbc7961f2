from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List, Optional, Sequence

import pytest

from src.pipeline import (
    AdHocCapture,
    AnalysisPipeline,
    AnalysisRecord,
    ExtractionError,
    Frame,
    ItemStatus,
    PipelineConfig,
    PipelineState,
    StoryboardEntry,
    StoryboardStatus,
    VideoMetadata,
    VideoSession,
)


class FakeExtractor:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: List[List[float]] = []

    async def extract(self, path, timestamps: Sequence[float]) -> List[Frame]:
        self.calls.append(list(timestamps))
        await asyncio.sleep(0)
        if self.fail:
            raise ExtractionError("decoder error")
        return [Frame(timestamp=ts, image=f"frame-{index}".encode()) for index, ts in enumerate(timestamps)]

    async def capture(self, path, position: float) -> Frame:
        return Frame(timestamp=position, image=b"capture")


class FakeBackend:
    def __init__(self, failing: Sequence[bytes] = (), storyboard_error: bool = False) -> None:
        self.failing = set(failing)
        self.storyboard_error = storyboard_error
        self.analyzed: List[bytes] = []
        self.storyboards: List[List[StoryboardEntry]] = []
        self.active = 0
        self.peak = 0
        self.on_analyze = None

    async def analyze(self, image: bytes) -> AnalysisRecord:
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(0.001)
            self.analyzed.append(image)
            if self.on_analyze:
                self.on_analyze(image)
            if image in self.failing:
                raise RuntimeError("503 from inference service")
            return AnalysisRecord(
                visual_description=f"scene {image.decode()}",
                ai_prompt="cinematic",
                technical_breakdown=f"lens for {image.decode()}",
                color_palette=("#000000", "#808080", "#FFFFFF"),
            )
        finally:
            self.active -= 1

    async def synthesize(self, entries: Sequence[StoryboardEntry]) -> str:
        self.storyboards.append(list(entries))
        if self.storyboard_error:
            raise RuntimeError("quota exceeded")
        return "Synopsis\n" + "\n".join(entry.visual_description for entry in entries)


def make_session(tmp_path: Path, duration: float = 9.0) -> VideoSession:
    session = VideoSession()
    video = tmp_path / "clip.mp4"
    video.write_bytes(b"stub")
    session.load(video, VideoMetadata(duration, 640, 360, 25.0, int(duration * 25)))
    return session


def make_pipeline(
    backend: FakeBackend,
    extractor: Optional[FakeExtractor] = None,
    **config,
) -> AnalysisPipeline:
    return AnalysisPipeline(
        backend.analyze,
        backend.synthesize,
        PipelineConfig(**config),
        extractor=extractor or FakeExtractor(),
    )


def test_single_failure_is_isolated(tmp_path) -> None:
    session = make_session(tmp_path)
    backend = FakeBackend(failing=[b"frame-1"])
    pipeline = make_pipeline(backend)

    summary = asyncio.run(pipeline.run(session, 3))

    statuses = [item.status for item in session.collection]
    assert statuses == [ItemStatus.READY, ItemStatus.FAILED, ItemStatus.READY]
    assert session.collection[1].error == "Frame analysis failed"
    assert session.state is PipelineState.COMPLETE
    assert summary.ready == 2 and summary.failed == 1
    assert [entry.timestamp for entry in backend.storyboards[0]] == [0.0, 6.0]
    assert session.storyboard.startswith("Synopsis")
    assert session.storyboard_status is StoryboardStatus.READY


def test_thumbnails_backfilled_and_calls_sequential(tmp_path) -> None:
    session = make_session(tmp_path, duration=10.0)
    backend = FakeBackend()
    pipeline = make_pipeline(backend)

    asyncio.run(pipeline.run(session, 5))

    assert [item.timestamp for item in session.collection] == [0, 2, 4, 6, 8]
    assert [item.thumbnail for item in session.collection] == [f"frame-{i}".encode() for i in range(5)]
    assert backend.analyzed == [f"frame-{i}".encode() for i in range(5)]
    assert backend.peak == 1


def test_storyboard_skipped_when_nothing_ready(tmp_path) -> None:
    session = make_session(tmp_path)
    backend = FakeBackend(failing=[b"frame-0", b"frame-1"])
    pipeline = make_pipeline(backend)

    summary = asyncio.run(pipeline.run(session, 2))

    assert backend.storyboards == []
    assert session.storyboard is None
    assert session.state is PipelineState.COMPLETE
    assert summary.storyboard_status is StoryboardStatus.SKIPPED


def test_storyboard_failure_keeps_batch_complete(tmp_path) -> None:
    session = make_session(tmp_path)
    backend = FakeBackend(storyboard_error=True)
    pipeline = make_pipeline(backend)

    asyncio.run(pipeline.run(session, 3))

    assert session.state is PipelineState.COMPLETE
    assert session.storyboard is None
    assert session.storyboard_status is StoryboardStatus.FAILED
    assert all(item.status is ItemStatus.READY for item in session.collection)


def test_extraction_failure_rolls_back_to_idle(tmp_path) -> None:
    session = make_session(tmp_path)
    backend = FakeBackend()
    pipeline = make_pipeline(backend, FakeExtractor(fail=True))

    summary = asyncio.run(pipeline.run(session, 4))

    assert summary.aborted
    assert session.state is PipelineState.IDLE
    assert session.notification == "Video processing failed, please try again."
    assert len(session.collection) == 4
    assert all(item.status is ItemStatus.FAILED for item in session.collection)
    assert all(item.status is not ItemStatus.READY for item in session.collection)
    assert backend.analyzed == []


def test_rerun_produces_same_item_count_and_clears_storyboard(tmp_path) -> None:
    session = make_session(tmp_path)
    backend = FakeBackend()
    pipeline = make_pipeline(backend)

    asyncio.run(pipeline.run(session, 5))
    first_ids = [item.id for item in session.collection]
    assert session.storyboard is not None

    summary = pipeline.prepare(session, 5)
    assert session.storyboard is None
    assert session.state is PipelineState.ANALYZING
    asyncio.run(pipeline.execute(session, summary))

    assert len(session.collection) == 5
    assert not set(first_ids) & {item.id for item in session.collection}


def test_rerun_during_pending_storyboard_drops_previous_storyboard(tmp_path) -> None:
    session = make_session(tmp_path)
    backend = FakeBackend()

    async def scenario():
        release = asyncio.Event()

        async def held_synthesis(entries: Sequence[StoryboardEntry]) -> str:
            await release.wait()
            return await backend.synthesize(entries)

        pipeline = AnalysisPipeline(backend.analyze, held_synthesis, PipelineConfig(), extractor=FakeExtractor())
        first = asyncio.create_task(pipeline.run(session, 2))
        while session.storyboard_status is not StoryboardStatus.PENDING:
            await asyncio.sleep(0.001)
        assert session.state is PipelineState.COMPLETE

        backend.failing = {b"frame-0", b"frame-1"}
        second = pipeline.prepare(session, 2)
        assert second is not None
        release.set()
        first_summary = await first

        assert session.storyboard is None
        assert session.storyboard_status is StoryboardStatus.IDLE
        assert session.state is PipelineState.ANALYZING

        second_summary = await pipeline.execute(session, second)
        return first_summary, second_summary

    first_summary, second_summary = asyncio.run(scenario())

    assert first_summary.storyboard_status is StoryboardStatus.READY
    assert second_summary.ready == 0
    assert all(item.status is ItemStatus.FAILED for item in session.collection)
    assert session.state is PipelineState.COMPLETE
    assert session.storyboard is None
    assert session.storyboard_status is StoryboardStatus.SKIPPED


def test_run_is_noop_without_video_or_while_analyzing(tmp_path) -> None:
    backend = FakeBackend()
    pipeline = make_pipeline(backend)
    assert asyncio.run(pipeline.run(VideoSession(), 3)) is None

    session = make_session(tmp_path)
    assert pipeline.prepare(session, 3) is not None
    before = session.collection
    assert pipeline.prepare(session, 3) is None
    assert session.collection is before


def test_timeout_counts_as_frame_failure(tmp_path) -> None:
    session = make_session(tmp_path)
    backend = FakeBackend()

    async def slow_for_second(image: bytes) -> AnalysisRecord:
        if image == b"frame-1":
            await asyncio.sleep(1)
        return await backend.analyze(image)

    pipeline = AnalysisPipeline(
        slow_for_second,
        backend.synthesize,
        PipelineConfig(analyze_timeout_sec=0.05),
        extractor=FakeExtractor(),
    )
    asyncio.run(pipeline.run(session, 3))

    statuses = [item.status for item in session.collection]
    assert statuses == [ItemStatus.READY, ItemStatus.FAILED, ItemStatus.READY]
    assert session.collection[1].error == "Frame analysis failed"


def test_loading_new_video_mid_run_discards_stale_writes(tmp_path) -> None:
    session = make_session(tmp_path)
    backend = FakeBackend()
    replacement = tmp_path / "other.mp4"
    replacement.write_bytes(b"stub")

    def swap_video(image: bytes) -> None:
        if image == b"frame-1":
            session.load(replacement, VideoMetadata(4.0, 320, 240, 25.0, 100))

    backend.on_analyze = swap_video
    pipeline = make_pipeline(backend)

    summary = asyncio.run(pipeline.run(session, 3))

    assert backend.analyzed == [b"frame-0", b"frame-1"]
    assert len(session.collection) == 0
    assert session.state is PipelineState.IDLE
    assert session.storyboard is None
    assert backend.storyboards == []
    assert summary.ready == 2


def test_adhoc_capture_prepends_and_resolves(tmp_path) -> None:
    session = make_session(tmp_path)
    backend = FakeBackend()
    pipeline = make_pipeline(backend)
    capture = AdHocCapture(pipeline)

    asyncio.run(pipeline.run(session, 3))
    item_id = asyncio.run(capture.capture_current(session, 4.2))

    first = session.collection[0]
    assert first.id == item_id
    assert first.source == "capture"
    assert first.timestamp == 4.2
    assert first.thumbnail == b"capture"
    assert first.status is ItemStatus.READY
    assert len(session.collection) == 4
    assert session.state is PipelineState.COMPLETE


def test_adhoc_capture_failure_uses_generic_message(tmp_path) -> None:
    session = make_session(tmp_path)
    backend = FakeBackend(failing=[b"capture"])
    capture = AdHocCapture(make_pipeline(backend))

    asyncio.run(capture.capture_current(session, 1.0))

    assert session.collection[0].status is ItemStatus.FAILED
    assert session.collection[0].error == "Analysis failed"


@pytest.mark.parametrize("position", [None, 0.0, -1.0, 9.0, 99.0])
def test_adhoc_capture_requires_position(tmp_path, position) -> None:
    session = make_session(tmp_path)
    capture = AdHocCapture(make_pipeline(FakeBackend()))
    assert asyncio.run(capture.capture_current(session, position)) is None
    assert len(session.collection) == 0


def test_adhoc_capture_noop_while_analyzing(tmp_path) -> None:
    session = make_session(tmp_path)
    backend = FakeBackend()
    pipeline = make_pipeline(backend)
    capture = AdHocCapture(pipeline)

    pipeline.prepare(session, 3)
    before = session.collection

    assert asyncio.run(capture.capture_current(session, 2.0)) is None
    assert session.collection is before
    assert backend.analyzed == []
