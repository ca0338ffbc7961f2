"""Inference backends: per-frame scene analysis and storyboard synthesis."""
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence

import cv2
import numpy as np
from google import genai
from google.genai import types
from pydantic import ValidationError
from sklearn.cluster import KMeans

from src.pipeline import AnalysisRecord, StoryboardEntry, format_time

from .colors import MIN_PALETTE_SIZE, compute_luma, normalize_palette, rgb_to_hex
from .schemas import FrameAnalysisModel

BACKENDS = ("auto", "gemini", "offline")

ANALYSIS_PROMPT = (
    "Analyse this video frame. Act as a professional filmmaker and AI prompt engineer and deconstruct the scene.\n"
    "Notes:\n"
    "1. 'visualDescription' and 'technicalBreakdown' must be written in {language}.\n"
    "2. 'aiPrompt' stays in English, optimised for Midjourney/Stable Diffusion.\n"
    "3. If a person is visible, write 'characterPrompt' in English describing their appearance, wardrobe "
    "and pose so the character can be regenerated; otherwise leave it empty.\n"
    "4. 'colorPalette' lists 3-5 dominant colors as #RRGGBB hex codes."
)

STORYBOARD_PROMPT = (
    "You are a film editor. Below are analyses of frames sampled in chronological order from one video.\n"
    "Write, in {language}, a storyboard script with:\n"
    "1. A short synopsis of what happens in the video.\n"
    "2. A chronological shot list; for each shot give its timestamp, framing, action and camera/lighting notes.\n\n"
    "{shots}"
)


class InferenceError(RuntimeError):
    """Raised when the backend returns nothing usable."""


def select_backend(name: str, api_key: Optional[str]) -> str:
    backend = (name or "auto").lower()
    if backend not in BACKENDS:
        raise ValueError(f"Unsupported inference backend '{name}'")
    if backend == "auto":
        return "gemini" if api_key else "offline"
    if backend == "gemini" and not api_key:
        raise ValueError("gemini backend requested but GEMINI_API_KEY is not set")
    return backend


def render_shots(entries: Sequence[StoryboardEntry]) -> str:
    blocks: List[str] = []
    for index, entry in enumerate(entries, start=1):
        blocks.append(
            f"Shot {index} [{format_time(entry.timestamp)}]\n"
            f"Visual: {entry.visual_description}\n"
            f"Technique: {entry.technical_breakdown}"
        )
    return "\n\n".join(blocks)


def parse_analysis(text: Optional[str]) -> AnalysisRecord:
    if not text:
        raise InferenceError("Empty response from model")
    try:
        return FrameAnalysisModel.model_validate_json(text).to_record()
    except ValidationError as error:
        raise InferenceError(f"Malformed analysis response: {error.error_count()} validation errors") from error


class GeminiBackend:
    """Google Gemini via the ``google-genai`` async client."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gemini-2.5-flash",
        temperature: float = 0.4,
        language: str = "English",
        client: Optional[genai.Client] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._client = client or genai.Client(api_key=api_key)
        self._model = model
        self._temperature = temperature
        self._language = language
        self._logger = logger or logging.getLogger(__name__)

    async def analyze_frame(self, image: bytes) -> AnalysisRecord:
        response = await self._client.aio.models.generate_content(
            model=self._model,
            contents=[
                types.Part.from_bytes(data=image, mime_type="image/png"),
                ANALYSIS_PROMPT.format(language=self._language),
            ],
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=FrameAnalysisModel,
                temperature=self._temperature,
            ),
        )
        parsed = getattr(response, "parsed", None)
        if isinstance(parsed, FrameAnalysisModel):
            return parsed.to_record()
        return parse_analysis(response.text)

    async def synthesize_storyboard(self, entries: Sequence[StoryboardEntry]) -> str:
        prompt = STORYBOARD_PROMPT.format(language=self._language, shots=render_shots(entries))
        self._logger.debug("Requesting storyboard for %d shots", len(entries))
        response = await self._client.aio.models.generate_content(
            model=self._model,
            contents=prompt,
            config=types.GenerateContentConfig(temperature=0.7),
        )
        text = (response.text or "").strip()
        if not text:
            raise InferenceError("Empty storyboard response from model")
        return text


def dominant_colors(rgb: np.ndarray, count: int = 5, random_state: int = 42, max_pixels: int = 4096) -> List[str]:
    """Most common colours of an RGB raster, most frequent first, padded to three."""
    pixels = rgb.reshape(-1, 3).astype(np.float32)
    if pixels.shape[0] > max_pixels:
        rng = np.random.default_rng(random_state)
        pixels = pixels[rng.choice(pixels.shape[0], size=max_pixels, replace=False)]

    unique = np.unique(pixels, axis=0)
    n_clusters = min(count, unique.shape[0])
    if n_clusters >= 2:
        model = KMeans(n_clusters=n_clusters, random_state=random_state, n_init=10)
        labels = model.fit_predict(pixels)
        counts = np.bincount(labels, minlength=n_clusters)
        order = np.argsort(-counts, kind="stable")
        centers = [model.cluster_centers_[index] for index in order]
    else:
        centers = [unique[0]]

    palette = normalize_palette(rgb_to_hex(center) for center in centers)
    base = np.array(centers[0], dtype=np.float32)
    for mix in (0.5, -0.5, 0.25, -0.25, 1.0, -1.0):
        if len(palette) >= MIN_PALETTE_SIZE:
            break
        target = 255.0 if mix > 0 else 0.0
        shade = base + (target - base) * abs(mix)
        palette = normalize_palette(palette + [rgb_to_hex(shade)])
    return palette


class OfflineBackend:
    """Deterministic backend that needs no network: pixel statistics and templates."""

    def __init__(self, palette_size: int = 5, random_state: int = 42) -> None:
        self._palette_size = palette_size
        self._random_state = random_state

    async def analyze_frame(self, image: bytes) -> AnalysisRecord:
        return await asyncio.to_thread(self._analyze_sync, image)

    async def synthesize_storyboard(self, entries: Sequence[StoryboardEntry]) -> str:
        if not entries:
            raise InferenceError("No analysed frames to build a storyboard from")
        start = format_time(entries[0].timestamp)
        end = format_time(entries[-1].timestamp)
        synopsis = f"Synopsis: {len(entries)} analysed shots spanning {start} to {end}."
        return f"{synopsis}\n\nShot list:\n\n{render_shots(entries)}"

    # ------------------------------------------------------------------
    def _analyze_sync(self, image: bytes) -> AnalysisRecord:
        frame_bgr = cv2.imdecode(np.frombuffer(image, dtype=np.uint8), cv2.IMREAD_COLOR)
        if frame_bgr is None:
            raise InferenceError("Unable to decode frame image")
        rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
        hsv = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2HSV)
        palette = dominant_colors(rgb, self._palette_size, self._random_state)

        height, width = rgb.shape[:2]
        luma = compute_luma(rgb.reshape(-1, 3).mean(axis=0))
        saturation = float(hsv[:, :, 1].mean()) / 255.0
        key = "low-key" if luma < 85 else "high-key" if luma > 170 else "balanced"
        grade = "saturated" if saturation > 0.5 else "muted" if saturation < 0.2 else "natural"
        framing = "widescreen" if width >= height else "vertical"
        primary = palette[0]

        return AnalysisRecord(
            visual_description=(
                f"A {framing} {width}x{height} frame with {key} exposure and a {grade} palette dominated by {primary}."
            ),
            ai_prompt=(
                f"cinematic still, {framing} composition, {key} lighting, {grade} color grade, "
                f"color palette {', '.join(palette)}, highly detailed, 35mm film"
            ),
            technical_breakdown=(
                f"Average luminance {luma:.0f}/255 suggests {key} lighting; "
                f"mean saturation {saturation:.2f} indicates a {grade} grade."
            ),
            color_palette=tuple(palette),
        )


__all__ = [
    "BACKENDS",
    "GeminiBackend",
    "InferenceError",
    "OfflineBackend",
    "dominant_colors",
    "parse_analysis",
    "render_shots",
    "select_backend",
]
