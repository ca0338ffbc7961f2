"""High-level batch orchestrator: sample, extract, analyse, synthesise."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional
from uuid import uuid4

from .extractor import ExtractionError, ExtractorConfig, FrameExtractor
from .queue import InferenceQueue
from .results import AttachThumbnail, MarkFailed, MarkReady, ReplaceAll
from .sampler import SamplerConfig, TimestampSampler
from .session import VideoSession
from .types import (
    FrameAnalyzer,
    ResultItem,
    RunSummary,
    StoryboardEntry,
    StoryboardStatus,
    StoryboardSynthesizer,
)


def new_item_id() -> str:
    return uuid4().hex[:12]


@dataclass
class PipelineConfig:
    sampler: SamplerConfig = field(default_factory=SamplerConfig)
    extractor: ExtractorConfig = field(default_factory=ExtractorConfig)
    analyze_timeout_sec: Optional[float] = 60.0
    frame_error_message: str = "Frame analysis failed"
    capture_error_message: str = "Analysis failed"
    extraction_error_message: str = "Frame extraction failed"
    extraction_failure_notice: str = "Video processing failed, please try again."


class AnalysisPipeline:
    """Coordinates one batch run against the active :class:`VideoSession`."""

    def __init__(
        self,
        analyze: FrameAnalyzer,
        synthesize: StoryboardSynthesizer,
        config: PipelineConfig | None = None,
        *,
        extractor: FrameExtractor | None = None,
        queue: InferenceQueue | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config or PipelineConfig()
        self._logger = logger or logging.getLogger(__name__)
        self._analyze = analyze
        self._synthesize = synthesize
        self._sampler = TimestampSampler(self._config.sampler, self._logger)
        self._extractor = extractor or FrameExtractor(self._config.extractor, self._logger)
        self._queue = queue or InferenceQueue(self._config.analyze_timeout_sec, self._logger)

    @property
    def config(self) -> PipelineConfig:
        return self._config

    @property
    def sampler(self) -> TimestampSampler:
        return self._sampler

    @property
    def extractor(self) -> FrameExtractor:
        return self._extractor

    @property
    def queue(self) -> InferenceQueue:
        return self._queue

    @property
    def analyze(self) -> FrameAnalyzer:
        return self._analyze

    def prepare(self, session: VideoSession, frame_count: Optional[int] = None) -> Optional[RunSummary]:
        """Enter Analyzing and publish placeholders; ``None`` when the run may not start."""
        if not session.has_video or session.duration <= 0:
            self._logger.debug("No video loaded; batch run ignored")
            return None
        if not session.machine.begin():
            self._logger.debug("Batch run already active; request ignored")
            return None

        generation = session.generation
        run = session.begin_run()
        timestamps = self._sampler.sample(session.duration, frame_count)
        placeholders = tuple(ResultItem(id=new_item_id(), timestamp=ts) for ts in timestamps)
        session.dispatch(generation, ReplaceAll(placeholders))
        return RunSummary(
            run_id=new_item_id(),
            generation=generation,
            timestamps=list(timestamps),
            item_ids=[item.id for item in placeholders],
            run=run,
        )

    async def run(self, session: VideoSession, frame_count: Optional[int] = None) -> Optional[RunSummary]:
        summary = self.prepare(session, frame_count)
        if summary is None:
            return None
        return await self.execute(session, summary)

    async def execute(self, session: VideoSession, summary: RunSummary) -> RunSummary:
        generation = summary.generation
        started = time.perf_counter()
        self._logger.info(
            "Run %s started for %s (%d frames)", summary.run_id, session.filename, len(summary.timestamps)
        )
        try:
            await self._analyze_frames(session, summary)
        except Exception:
            if session.owns(generation, summary.run) and session.machine.analyzing:
                session.machine.abort()
            raise

        if summary.aborted:
            return summary

        self._logger.info(
            "Run %s analysed in %.2fs (ready=%d, failed=%d)",
            summary.run_id,
            time.perf_counter() - started,
            summary.ready,
            summary.failed,
        )
        return summary

    # ------------------------------------------------------------------
    @staticmethod
    def _owns(session: VideoSession, summary: RunSummary) -> bool:
        return session.owns(summary.generation, summary.run)

    async def _analyze_frames(self, session: VideoSession, summary: RunSummary) -> None:
        generation = summary.generation
        if not self._owns(session, summary):
            summary.aborted = True
            return
        placeholders = dict(zip(summary.timestamps, summary.item_ids))
        path = session.path

        try:
            frames = await self._extractor.extract(path, summary.timestamps)
        except ExtractionError as error:
            self._logger.error("Run %s aborted: %s", summary.run_id, error)
            summary.aborted = True
            if self._owns(session, summary):
                for item_id in placeholders.values():
                    session.dispatch(generation, MarkFailed(item_id, self._config.extraction_error_message))
                session.machine.abort()
                session.notification = self._config.extraction_failure_notice
            return

        if not self._owns(session, summary):
            return
        for frame in frames:
            item_id = placeholders.get(frame.timestamp)
            if item_id is not None:
                session.dispatch(generation, AttachThumbnail(item_id, frame.image))

        completed: List[StoryboardEntry] = []
        for frame in frames:
            if not self._owns(session, summary):
                self._logger.debug("Run %s superseded; remaining frames skipped", summary.run_id)
                return
            item_id = placeholders.get(frame.timestamp)
            if item_id is None:
                continue
            try:
                record = await self._queue.submit(self._analyze, frame.image)
            except Exception as error:
                self._logger.warning("Analysis failed for frame at %.2fs: %s", frame.timestamp, error)
                summary.failed += 1
                if self._owns(session, summary):
                    session.dispatch(generation, MarkFailed(item_id, self._config.frame_error_message))
                continue
            summary.ready += 1
            if self._owns(session, summary):
                session.dispatch(generation, MarkReady(item_id, record))
            completed.append(
                StoryboardEntry(
                    timestamp=frame.timestamp,
                    visual_description=record.visual_description,
                    technical_breakdown=record.technical_breakdown,
                )
            )

        if not self._owns(session, summary):
            return
        session.machine.complete()
        await self._storyboard(session, summary, completed)

    async def _storyboard(
        self, session: VideoSession, summary: RunSummary, completed: List[StoryboardEntry]
    ) -> None:
        if not completed:
            summary.storyboard_status = StoryboardStatus.SKIPPED
            session.storyboard_status = StoryboardStatus.SKIPPED
            return

        session.storyboard_status = StoryboardStatus.PENDING
        try:
            text = await self._queue.submit(self._synthesize, tuple(completed))
        except Exception as error:
            self._logger.warning("Storyboard synthesis failed for run %s: %s", summary.run_id, error)
            summary.storyboard_status = StoryboardStatus.FAILED
            if self._owns(session, summary):
                session.storyboard_status = StoryboardStatus.FAILED
            return

        summary.storyboard_status = StoryboardStatus.READY
        if self._owns(session, summary):
            session.storyboard = text
            session.storyboard_status = StoryboardStatus.READY


__all__ = ["AnalysisPipeline", "PipelineConfig", "new_item_id"]
