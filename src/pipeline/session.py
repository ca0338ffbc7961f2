"""The active video and everything observable about it."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .results import ResultCollection, ResultStore, Update
from .state import PipelineStateMachine
from .types import PipelineState, StoryboardStatus, VideoMetadata


class VideoSession:
    """Process-wide state for the currently loaded video.

    Loading or unloading a video starts a new generation. Starting a batch run
    starts a new run within that generation. Work started for an older
    generation or run may still complete, but its writes are discarded.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self.results = ResultStore(self._logger)
        self.machine = PipelineStateMachine()
        self.path: Optional[Path] = None
        self.filename: Optional[str] = None
        self.metadata: Optional[VideoMetadata] = None
        self.storyboard: Optional[str] = None
        self.storyboard_status = StoryboardStatus.IDLE
        self.notification: Optional[str] = None
        self.run = 0

    # ------------------------------------------------------------------
    @property
    def generation(self) -> int:
        return self.results.generation

    @property
    def state(self) -> PipelineState:
        return self.machine.state

    @property
    def collection(self) -> ResultCollection:
        return self.results.collection

    @property
    def duration(self) -> float:
        return self.metadata.duration_seconds if self.metadata else 0.0

    @property
    def has_video(self) -> bool:
        return self.path is not None and self.metadata is not None

    def is_current(self, generation: int) -> bool:
        return generation == self.results.generation

    def owns(self, generation: int, run: int) -> bool:
        """True while ``run`` is the latest batch run on the current video."""
        return self.is_current(generation) and run == self.run

    def dispatch(self, generation: int, update: Update) -> bool:
        return self.results.dispatch(generation, update)

    def begin_run(self) -> int:
        self.run += 1
        self.clear_storyboard()
        self.notification = None
        return self.run

    # ------------------------------------------------------------------
    def load(self, path: Path, metadata: VideoMetadata, filename: Optional[str] = None) -> int:
        previous = self.path
        generation = self._reset()
        self.path = Path(path)
        self.metadata = metadata
        self.filename = filename or self.path.name
        if previous is not None and previous != self.path:
            self._discard_upload(previous)
        self._logger.info(
            "Loaded video %s (%.2fs, %dx%d) as generation %d",
            self.filename,
            metadata.duration_seconds,
            metadata.width,
            metadata.height,
            generation,
        )
        return generation

    def unload(self) -> int:
        previous = self.path
        generation = self._reset()
        self.path = None
        self.metadata = None
        self.filename = None
        if previous is not None:
            self._discard_upload(previous)
        return generation

    def clear_storyboard(self) -> None:
        self.storyboard = None
        self.storyboard_status = StoryboardStatus.IDLE

    def _reset(self) -> int:
        generation = self.results.reset()
        self.machine.reset()
        self.clear_storyboard()
        self.notification = None
        return generation

    def _discard_upload(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as error:
            self._logger.debug("Could not remove upload %s: %s", path, error)


__all__ = ["VideoSession"]
