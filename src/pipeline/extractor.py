"""Seek-and-capture frame extraction backed by OpenCV."""
from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

import cv2
import numpy as np

from .types import Frame, VideoMetadata


class ExtractionError(RuntimeError):
    """Raised when the decoder cannot load, seek or capture the video."""


@dataclass
class ExtractorConfig:
    scale: float = 0.5
    seek_timeout_sec: float = 10.0


def _open(path: Path) -> cv2.VideoCapture:
    if not path.exists():
        raise ExtractionError(f"Media path does not exist: {path}")
    capture = cv2.VideoCapture(str(path))
    if not capture.isOpened():
        capture.release()
        raise ExtractionError(f"Unable to open video: {path.name}")
    return capture


def _read_metadata(capture: cv2.VideoCapture, path: Path) -> VideoMetadata:
    fps = float(capture.get(cv2.CAP_PROP_FPS) or 0.0)
    frame_count = int(capture.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
    width = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)
    height = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)
    if fps <= 0 or frame_count <= 0 or width <= 0 or height <= 0:
        raise ExtractionError(f"Video has no decodable frames: {path.name}")
    return VideoMetadata(
        duration_seconds=frame_count / fps,
        width=width,
        height=height,
        fps=fps,
        frame_count=frame_count,
    )


def probe(path: Path | str) -> VideoMetadata:
    """Load intrinsic dimensions and duration without capturing anything."""
    source = Path(path)
    capture = _open(source)
    try:
        return _read_metadata(capture, source)
    finally:
        capture.release()


def encode_png(frame_bgr: np.ndarray, scale: float = 0.5) -> bytes:
    """Downscale a BGR raster and encode it as lossless PNG."""
    height, width = frame_bgr.shape[:2]
    target = (max(1, int(width * scale)), max(1, int(height * scale)))
    if target != (width, height):
        frame_bgr = cv2.resize(frame_bgr, target, interpolation=cv2.INTER_AREA)
    ok, buffer = cv2.imencode(".png", frame_bgr)
    if not ok:
        raise ExtractionError("PNG encoding failed")
    return buffer.tobytes()


class FrameExtractor:
    """Captures downscaled PNG frames at requested timestamps, one seek at a time."""

    def __init__(self, config: ExtractorConfig | None = None, logger: Optional[logging.Logger] = None) -> None:
        self._config = config or ExtractorConfig()
        self._logger = logger or logging.getLogger(__name__)

    async def extract(self, path: Path | str, timestamps: Sequence[float]) -> List[Frame]:
        requested = [float(ts) for ts in timestamps]
        timeout = max(0.0, self._config.seek_timeout_sec) * (len(requested) + 1)
        cancelled = threading.Event()
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._extract_sync, Path(path), requested, cancelled),
                timeout=timeout or None,
            )
        except asyncio.TimeoutError as error:
            cancelled.set()
            self._logger.warning(
                "Extraction from %s timed out after %.1fs; stopping after the current seek", Path(path).name, timeout
            )
            raise ExtractionError(f"Frame extraction timed out after {timeout:.1f}s") from error

    async def capture(self, path: Path | str, position: float) -> Frame:
        frames = await self.extract(path, [position])
        return frames[0]

    # ------------------------------------------------------------------
    def _extract_sync(
        self, path: Path, timestamps: List[float], cancelled: Optional[threading.Event] = None
    ) -> List[Frame]:
        capture = _open(path)
        try:
            metadata = _read_metadata(capture, path)
            self._logger.debug(
                "Extracting %d frames from %s (%dx%d, %.2fs)",
                len(timestamps),
                path.name,
                metadata.width,
                metadata.height,
                metadata.duration_seconds,
            )
            frames: List[Frame] = []
            for ts in timestamps:
                if cancelled is not None and cancelled.is_set():
                    raise ExtractionError(f"Extraction from {path.name} abandoned before {ts:.2f}s")
                frames.append(Frame(timestamp=ts, image=self._grab(capture, ts, metadata)))
            return frames
        finally:
            capture.release()

    def _grab(self, capture: cv2.VideoCapture, ts: float, metadata: VideoMetadata) -> bytes:
        if not capture.set(cv2.CAP_PROP_POS_MSEC, ts * 1000.0):
            # Some backends refuse time seeks but accept frame indices.
            index = min(int(ts * metadata.fps), metadata.frame_count - 1)
            if not capture.set(cv2.CAP_PROP_POS_FRAMES, index):
                raise ExtractionError(f"Seek to {ts:.2f}s failed")
        ok, frame_bgr = capture.read()
        if not ok or frame_bgr is None:
            raise ExtractionError(f"Unable to decode frame at {ts:.2f}s")
        return encode_png(frame_bgr, self._config.scale)


__all__ = ["ExtractionError", "ExtractorConfig", "FrameExtractor", "encode_png", "probe"]
