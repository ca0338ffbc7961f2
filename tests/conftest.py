from __future__ import annotations

from pathlib import Path

import cv2
import numpy as np
import pytest

# One solid BGR colour per second of synthetic footage.
SEGMENT_COLORS = [
    (0, 0, 255),
    (0, 255, 0),
    (255, 0, 0),
    (0, 255, 255),
    (255, 255, 255),
]


def write_video(path: Path, seconds: int = 5, fps: int = 10, size: tuple[int, int] = (64, 48)) -> Path:
    width, height = size
    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*"MJPG"), fps, (width, height))
    assert writer.isOpened(), "OpenCV could not open an MJPG writer"
    try:
        for index in range(seconds * fps):
            color = SEGMENT_COLORS[(index // fps) % len(SEGMENT_COLORS)]
            frame = np.zeros((height, width, 3), dtype=np.uint8)
            frame[:, :] = color
            writer.write(frame)
    finally:
        writer.release()
    return path


@pytest.fixture()
def sample_video(tmp_path) -> Path:
    return write_video(tmp_path / "sample.avi")
