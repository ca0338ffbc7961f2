"""FastAPI service for Framelens: upload a video, analyse sampled frames, read the storyboard."""
from __future__ import annotations

import asyncio
import logging
import shutil
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional
from uuid import uuid4

from fastapi import BackgroundTasks, FastAPI, File, HTTPException, Query, Response, UploadFile
from fastapi.responses import PlainTextResponse

from . import __version__
from .config import (
    ANALYZE_TIMEOUT_MS,
    DEFAULT_FRAME_COUNT,
    GEMINI_API_KEY,
    GEMINI_MODEL,
    GEMINI_TEMPERATURE,
    INFERENCE_BACKEND,
    LOG_LEVEL,
    MAX_FRAME_COUNT,
    MAX_UPLOAD_BYTES,
    OUTPUT_LANGUAGE,
    SEEK_TIMEOUT_MS,
    UPLOAD_DIR,
    ensure_dirs,
)
from .inference import GeminiBackend, OfflineBackend, select_backend
from .schemas import (
    AnalysisRequest,
    AnalysisStartResponse,
    CaptureRequest,
    ResultItemModel,
    SessionResponse,
    VideoResponse,
)
from src.pipeline import (
    AdHocCapture,
    AnalysisPipeline,
    ExtractionError,
    ExtractorConfig,
    PipelineConfig,
    RunSummary,
    SamplerConfig,
    VideoSession,
    probe,
)
from src.pipeline.capture import CaptureTicket

ensure_dirs()

logger = logging.getLogger("framelens.service")
logging.getLogger("framelens").setLevel(LOG_LEVEL)

UPLOAD_CHUNK_BYTES = 1024 * 1024
INVALID_VIDEO_MESSAGE = "Please upload a valid video file."


def _create_pipeline() -> AnalysisPipeline:
    backend_name = select_backend(INFERENCE_BACKEND, GEMINI_API_KEY)
    if backend_name == "gemini":
        backend = GeminiBackend(
            api_key=GEMINI_API_KEY,
            model=GEMINI_MODEL,
            temperature=GEMINI_TEMPERATURE,
            language=OUTPUT_LANGUAGE,
            logger=logger,
        )
    else:
        backend = OfflineBackend()
    logger.info("Using %s inference backend", backend_name)

    config = PipelineConfig(
        sampler=SamplerConfig(default_frame_count=DEFAULT_FRAME_COUNT, max_frame_count=MAX_FRAME_COUNT),
        extractor=ExtractorConfig(seek_timeout_sec=max(0, SEEK_TIMEOUT_MS) / 1000),
        analyze_timeout_sec=ANALYZE_TIMEOUT_MS / 1000 if ANALYZE_TIMEOUT_MS > 0 else None,
    )
    return AnalysisPipeline(backend.analyze_frame, backend.synthesize_storyboard, config, logger=logger)


_session = VideoSession(logger)
_pipeline = _create_pipeline()
_capture = AdHocCapture(_pipeline, logger)


def _video_response() -> Optional[VideoResponse]:
    if not _session.has_video:
        return None
    return VideoResponse.build(_session.generation, _session.filename or "", _session.metadata)


def _store_upload(upload: UploadFile) -> Path:
    suffix = Path(upload.filename or "").suffix or ".bin"
    target = UPLOAD_DIR / f"{uuid4().hex}{suffix}"
    written = 0
    with target.open("wb") as handle:
        while True:
            chunk = upload.file.read(UPLOAD_CHUNK_BYTES)
            if not chunk:
                break
            written += len(chunk)
            if MAX_UPLOAD_BYTES > 0 and written > MAX_UPLOAD_BYTES:
                handle.close()
                target.unlink(missing_ok=True)
                raise HTTPException(status_code=413, detail="Video exceeds the upload size limit")
            handle.write(chunk)
    return target


async def _run_batch(summary: RunSummary) -> None:
    started = time.perf_counter()
    try:
        await _pipeline.execute(_session, summary)
    except Exception as error:  # pragma: no cover - unexpected pipeline bug
        logger.exception("Run %s crashed: %s", summary.run_id, error)
        return
    logger.info(
        "Run %s finished in %.2fs (aborted=%s, storyboard=%s)",
        summary.run_id,
        time.perf_counter() - started,
        summary.aborted,
        summary.storyboard_status.value,
    )


def clear_uploads() -> None:
    """Remove every stored upload except the active video."""
    if not UPLOAD_DIR.exists():
        return
    for entry in UPLOAD_DIR.iterdir():
        if _session.path is not None and entry == _session.path:
            continue
        if entry.is_dir():
            shutil.rmtree(entry, ignore_errors=True)
        else:
            entry.unlink(missing_ok=True)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    clear_uploads()
    yield
    _session.unload()


app = FastAPI(title="Framelens", version=__version__, lifespan=lifespan)


async def _resolve_capture(ticket: CaptureTicket) -> None:
    await _capture.resolve(_session, ticket)


@app.get("/health")
def health():
    return {"status": "ok", "service": "framelens", "version": __version__}


@app.post("/video", response_model=VideoResponse)
async def upload_video(file: UploadFile = File(...)) -> VideoResponse:
    """Validate an uploaded video and make it the active session video."""

    content_type = (file.content_type or "").lower()
    if not content_type.startswith("video/"):
        raise HTTPException(status_code=415, detail=INVALID_VIDEO_MESSAGE)

    ensure_dirs()
    path = await asyncio.to_thread(_store_upload, file)
    try:
        metadata = await asyncio.to_thread(probe, path)
    except ExtractionError as error:
        path.unlink(missing_ok=True)
        logger.warning("Rejected upload %s: %s", file.filename, error)
        raise HTTPException(status_code=422, detail=INVALID_VIDEO_MESSAGE) from error

    generation = _session.load(path, metadata, file.filename)
    return VideoResponse.build(generation, _session.filename or path.name, metadata)


@app.delete("/video")
async def remove_video():
    generation = _session.unload()
    return {"generation": generation, "state": _session.state}


@app.post("/analysis", response_model=AnalysisStartResponse, status_code=202)
async def start_analysis(background: BackgroundTasks, payload: Optional[AnalysisRequest] = None) -> AnalysisStartResponse:
    """Start a batch run over the active video; the run continues in the background."""

    if not _session.has_video:
        raise HTTPException(status_code=409, detail="No video loaded")
    if _session.machine.analyzing:
        raise HTTPException(status_code=409, detail="Analysis already in progress")

    frame_count = payload.frame_count if payload else None
    summary = _pipeline.prepare(_session, frame_count)
    if summary is None:
        raise HTTPException(status_code=409, detail="Analysis could not be started")

    background.add_task(_run_batch, summary)
    return AnalysisStartResponse(run_id=summary.run_id, state=_session.state, timestamps=summary.timestamps)


@app.post("/capture", response_model=ResultItemModel, status_code=202)
async def capture_frame(payload: CaptureRequest, background: BackgroundTasks) -> ResultItemModel:
    """Analyse the frame at the client's current playback position."""

    if _session.machine.analyzing:
        raise HTTPException(status_code=409, detail="Analysis already in progress")
    if not AdHocCapture.position_available(_session, payload.position):
        raise HTTPException(status_code=422, detail="No playback position available")

    try:
        ticket = await _capture.snapshot(_session, payload.position)
    except ExtractionError as error:
        logger.warning("Capture at %s failed: %s", payload.position, error)
        raise HTTPException(status_code=422, detail="Unable to capture the current frame") from error
    if ticket is None:
        raise HTTPException(status_code=409, detail="Capture is not available right now")

    background.add_task(_resolve_capture, ticket)
    return ResultItemModel.from_item(ticket.item)


@app.get("/session", response_model=SessionResponse)
def session_state(thumbnails: bool = Query(True)) -> SessionResponse:
    return SessionResponse(
        generation=_session.generation,
        state=_session.state,
        video=_video_response(),
        storyboard=_session.storyboard,
        storyboard_status=_session.storyboard_status,
        notification=_session.notification,
        results=[ResultItemModel.from_item(item, thumbnails) for item in _session.collection],
    )


@app.get("/results/{item_id}/thumbnail")
def result_thumbnail(item_id: str):
    item = _session.collection.get(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Unknown result id")
    if not item.thumbnail:
        raise HTTPException(status_code=404, detail="Thumbnail not ready")
    return Response(content=item.thumbnail, media_type="image/png")


@app.get("/storyboard", response_class=PlainTextResponse)
def storyboard():
    if _session.storyboard is None:
        raise HTTPException(status_code=404, detail="Storyboard not available")
    return _session.storyboard

