"""Frame sampling and sequential analysis pipeline for Framelens."""

from .analyzer import AnalysisPipeline, PipelineConfig
from .capture import AdHocCapture, CaptureTicket
from .extractor import ExtractionError, ExtractorConfig, FrameExtractor, probe
from .queue import InferenceQueue, InferenceTimeout
from .results import ResultCollection, ResultStore
from .sampler import SamplerConfig, TimestampSampler, format_time, sample_timestamps
from .session import VideoSession
from .state import InvalidTransition, PipelineStateMachine
from .types import (
    AnalysisRecord,
    Frame,
    ItemStatus,
    PipelineState,
    ResultItem,
    RunSummary,
    StoryboardEntry,
    StoryboardStatus,
    VideoMetadata,
)

__all__ = [
    "AdHocCapture",
    "AnalysisPipeline",
    "AnalysisRecord",
    "CaptureTicket",
    "ExtractionError",
    "ExtractorConfig",
    "Frame",
    "FrameExtractor",
    "InferenceQueue",
    "InferenceTimeout",
    "InvalidTransition",
    "ItemStatus",
    "PipelineConfig",
    "PipelineState",
    "PipelineStateMachine",
    "ResultCollection",
    "ResultItem",
    "ResultStore",
    "RunSummary",
    "SamplerConfig",
    "StoryboardEntry",
    "StoryboardStatus",
    "TimestampSampler",
    "VideoMetadata",
    "VideoSession",
    "format_time",
    "probe",
    "sample_timestamps",
]
