"""Timestamp sampling for Framelens batch runs."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class SamplerConfig:
    default_frame_count: int = 8
    max_frame_count: int = 64


def sample_timestamps(duration: float, count: int) -> List[float]:
    """Return ``count`` evenly spaced times in ``[0, duration)``, starting at zero."""
    if duration <= 0 or count <= 0:
        return []
    step = duration / count
    return [index * step for index in range(count)]


def format_time(seconds: float) -> str:
    """Render seconds as ``M:SS``."""
    total = max(0.0, float(seconds))
    minutes = int(math.floor(total / 60))
    secs = int(math.floor(total % 60))
    return f"{minutes}:{secs:02d}"


class TimestampSampler:
    """Clamps the requested frame count and samples the video duration."""

    def __init__(self, config: SamplerConfig | None = None, logger: Optional[logging.Logger] = None) -> None:
        self._config = config or SamplerConfig()
        self._logger = logger or logging.getLogger(__name__)

    def frame_count(self, requested: Optional[int]) -> int:
        if requested is None:
            requested = self._config.default_frame_count
        upper = max(1, self._config.max_frame_count)
        return max(1, min(int(requested), upper))

    def sample(self, duration: float, requested: Optional[int] = None) -> List[float]:
        count = self.frame_count(requested)
        timestamps = sample_timestamps(duration, count)
        self._logger.debug("Sampled %d timestamps over %.3fs", len(timestamps), duration)
        return timestamps


__all__ = ["SamplerConfig", "TimestampSampler", "format_time", "sample_timestamps"]
