"""Typed primitives for the Framelens analysis pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Protocol, Sequence, Tuple


class ItemStatus(str, Enum):
    """Lifecycle states of a single result item."""

    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class PipelineState(str, Enum):
    """Batch run state for the active video."""

    IDLE = "idle"
    ANALYZING = "analyzing"
    COMPLETE = "complete"


class StoryboardStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Frame:
    """A still PNG sample of the video at a specific timestamp."""

    timestamp: float
    image: bytes


@dataclass(frozen=True)
class VideoMetadata:
    duration_seconds: float
    width: int
    height: int
    fps: float
    frame_count: int


@dataclass(frozen=True)
class AnalysisRecord:
    """Structured scene analysis returned by the inference backend."""

    visual_description: str
    ai_prompt: str
    technical_breakdown: str
    color_palette: Tuple[str, ...]
    character_prompt: Optional[str] = None

    def to_payload(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "visualDescription": self.visual_description,
            "aiPrompt": self.ai_prompt,
            "technicalBreakdown": self.technical_breakdown,
            "colorPalette": list(self.color_palette),
        }
        if self.character_prompt:
            payload["characterPrompt"] = self.character_prompt
        return payload


@dataclass(frozen=True)
class ResultItem:
    """One observable analysis card; replaced, never mutated."""

    id: str
    timestamp: float
    thumbnail: bytes = b""
    status: ItemStatus = ItemStatus.LOADING
    data: Optional[AnalysisRecord] = None
    error: Optional[str] = None
    source: str = "batch"


@dataclass(frozen=True)
class StoryboardEntry:
    """Slice of a completed record sent to the storyboard synthesizer."""

    timestamp: float
    visual_description: str
    technical_breakdown: str


@dataclass
class RunSummary:
    run_id: str
    generation: int
    timestamps: List[float] = field(default_factory=list)
    item_ids: List[str] = field(default_factory=list)
    ready: int = 0
    failed: int = 0
    aborted: bool = False
    storyboard_status: StoryboardStatus = StoryboardStatus.IDLE
    run: int = 0


class FrameAnalyzer(Protocol):
    async def __call__(self, image: bytes) -> AnalysisRecord:
        ...


class StoryboardSynthesizer(Protocol):
    async def __call__(self, entries: Sequence[StoryboardEntry]) -> str:
        ...
