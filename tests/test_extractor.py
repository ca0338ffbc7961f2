from __future__ import annotations

import asyncio
import threading
import time

import cv2
import numpy as np
import pytest

from src.pipeline.extractor import ExtractionError, ExtractorConfig, FrameExtractor, encode_png, probe

from conftest import SEGMENT_COLORS

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def _decode(image: bytes) -> np.ndarray:
    frame = cv2.imdecode(np.frombuffer(image, dtype=np.uint8), cv2.IMREAD_COLOR)
    assert frame is not None
    return frame


def test_probe_reports_duration_and_size(sample_video) -> None:
    metadata = probe(sample_video)
    assert metadata.width == 64
    assert metadata.height == 48
    assert metadata.duration_seconds == pytest.approx(5.0, abs=0.2)


def test_probe_rejects_non_video(tmp_path) -> None:
    bogus = tmp_path / "notes.mp4"
    bogus.write_bytes(b"definitely not a video")
    with pytest.raises(ExtractionError):
        probe(bogus)
    with pytest.raises(ExtractionError):
        probe(tmp_path / "missing.mp4")


def test_extract_preserves_order_and_downscales(sample_video) -> None:
    extractor = FrameExtractor()
    timestamps = [0.5, 1.5, 2.5, 3.5, 4.5]

    frames = asyncio.run(extractor.extract(sample_video, timestamps))

    assert [frame.timestamp for frame in frames] == timestamps
    for index, frame in enumerate(frames):
        assert frame.image.startswith(PNG_SIGNATURE)
        pixels = _decode(frame.image)
        assert pixels.shape == (24, 32, 3)
        expected = np.array(SEGMENT_COLORS[index], dtype=np.float32)
        assert np.abs(pixels.reshape(-1, 3).mean(axis=0) - expected).max() < 40


def test_extract_out_of_order_request_keeps_request_order(sample_video) -> None:
    frames = asyncio.run(FrameExtractor().extract(sample_video, [3.5, 0.5]))
    assert [frame.timestamp for frame in frames] == [3.5, 0.5]
    first = _decode(frames[0].image).reshape(-1, 3).mean(axis=0)
    assert np.abs(first - np.array(SEGMENT_COLORS[3])).max() < 40


def test_extract_empty_sequence(sample_video) -> None:
    assert asyncio.run(FrameExtractor().extract(sample_video, [])) == []


def test_extract_missing_file_is_fatal(tmp_path) -> None:
    with pytest.raises(ExtractionError):
        asyncio.run(FrameExtractor().extract(tmp_path / "gone.avi", [0.0]))


def test_capture_single_frame(sample_video) -> None:
    frame = asyncio.run(FrameExtractor(ExtractorConfig(scale=0.25)).capture(sample_video, 2.5))
    assert frame.timestamp == 2.5
    assert _decode(frame.image).shape == (12, 16, 3)


def test_encode_png_never_collapses_to_zero() -> None:
    tiny = np.zeros((1, 1, 3), dtype=np.uint8)
    assert _decode(encode_png(tiny)).shape == (1, 1, 3)


class SlowExtractor(FrameExtractor):
    def __init__(self, config: ExtractorConfig) -> None:
        super().__init__(config)
        self.grabbed: list[float] = []
        self.finished = threading.Event()

    def _extract_sync(self, path, timestamps, cancelled=None):
        try:
            return super()._extract_sync(path, timestamps, cancelled)
        finally:
            self.finished.set()

    def _grab(self, capture, ts, metadata) -> bytes:
        time.sleep(0.1)
        self.grabbed.append(ts)
        return super()._grab(capture, ts, metadata)


def test_timed_out_extraction_stops_seeking(sample_video) -> None:
    extractor = SlowExtractor(ExtractorConfig(seek_timeout_sec=0.02))
    timestamps = [0.5 * index for index in range(10)]

    with pytest.raises(ExtractionError, match="timed out"):
        asyncio.run(extractor.extract(sample_video, timestamps))

    assert extractor.finished.wait(timeout=5)
    assert len(extractor.grabbed) < len(timestamps)
