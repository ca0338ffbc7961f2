"""Pydantic models for the Framelens service and the inference backend."""
from __future__ import annotations

import base64
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from src.pipeline import AnalysisRecord, ItemStatus, PipelineState, ResultItem, StoryboardStatus, VideoMetadata

from .colors import MIN_PALETTE_SIZE, normalize_palette


class FrameAnalysisModel(BaseModel):
    """Structured scene analysis requested from the model for a single frame."""

    visualDescription: str = Field(
        ...,
        description="Detailed visual description of the scene: subjects, action and environment.",
    )
    aiPrompt: str = Field(
        ...,
        description="A high-quality English text-to-image prompt for Midjourney/Stable Diffusion.",
    )
    characterPrompt: Optional[str] = Field(
        None,
        description="English prompt describing the main character; empty when no person is visible.",
    )
    technicalBreakdown: str = Field(
        ...,
        description="How the shot was made: lighting, lens choice, camera movement, CGI or practical effects.",
    )
    colorPalette: List[str] = Field(..., description="List of 3-5 hex color codes (#RRGGBB).")

    @field_validator("colorPalette")
    @classmethod
    def _check_palette(cls, value: List[str]) -> List[str]:
        palette = normalize_palette(value)
        if len(palette) < MIN_PALETTE_SIZE:
            raise ValueError(f"Expected at least {MIN_PALETTE_SIZE} valid hex colors, got {len(palette)}")
        return palette

    @field_validator("characterPrompt")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value.strip()

    def to_record(self) -> AnalysisRecord:
        return AnalysisRecord(
            visual_description=self.visualDescription,
            ai_prompt=self.aiPrompt,
            character_prompt=self.characterPrompt,
            technical_breakdown=self.technicalBreakdown,
            color_palette=tuple(self.colorPalette),
        )


class VideoResponse(BaseModel):
    generation: int
    filename: str
    duration_seconds: float
    width: int
    height: int
    fps: float

    @classmethod
    def build(cls, generation: int, filename: str, metadata: VideoMetadata) -> "VideoResponse":
        return cls(
            generation=generation,
            filename=filename,
            duration_seconds=metadata.duration_seconds,
            width=metadata.width,
            height=metadata.height,
            fps=metadata.fps,
        )


class AnalysisRequest(BaseModel):
    frame_count: Optional[int] = Field(None, ge=1, description="Number of frames to sample from the video")


class AnalysisStartResponse(BaseModel):
    run_id: str
    state: PipelineState
    timestamps: List[float] = Field(default_factory=list)


class CaptureRequest(BaseModel):
    position: Optional[float] = Field(None, description="Current playback position in seconds")


class ResultItemModel(BaseModel):
    id: str
    timestamp: float
    status: ItemStatus
    source: str = "batch"
    thumbnail: Optional[str] = Field(None, description="PNG thumbnail as a data URL")
    data: Optional[FrameAnalysisModel] = None
    error: Optional[str] = None

    @classmethod
    def from_item(cls, item: ResultItem, include_thumbnail: bool = True) -> "ResultItemModel":
        thumbnail = None
        if include_thumbnail and item.thumbnail:
            thumbnail = "data:image/png;base64," + base64.b64encode(item.thumbnail).decode("ascii")
        data = None
        if item.data is not None:
            data = FrameAnalysisModel.model_construct(**item.data.to_payload())
        return cls(
            id=item.id,
            timestamp=item.timestamp,
            status=item.status,
            source=item.source,
            thumbnail=thumbnail,
            data=data,
            error=item.error,
        )


class SessionResponse(BaseModel):
    generation: int
    state: PipelineState
    video: Optional[VideoResponse] = None
    storyboard: Optional[str] = None
    storyboard_status: StoryboardStatus = StoryboardStatus.IDLE
    notification: Optional[str] = None
    results: List[ResultItemModel] = Field(default_factory=list)
