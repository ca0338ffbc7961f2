"""Runtime configuration for the Framelens service."""
from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Optional

_BASE_DIR = Path(os.environ.get("FRAMELENS_BASE_DIR", Path(tempfile.gettempdir()) / "framelens")).resolve()

UPLOAD_DIR = Path(os.environ.get("FRAMELENS_UPLOAD_DIR", _BASE_DIR / "uploads")).resolve()

GEMINI_API_KEY: Optional[str] = os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY") or None
GEMINI_MODEL = os.environ.get("FRAMELENS_MODEL", "gemini-2.5-flash")
GEMINI_TEMPERATURE = float(os.environ.get("FRAMELENS_TEMPERATURE", "0.4"))
OUTPUT_LANGUAGE = os.environ.get("FRAMELENS_OUTPUT_LANGUAGE", "English")
INFERENCE_BACKEND = os.environ.get("FRAMELENS_INFERENCE_BACKEND", "auto").lower()

DEFAULT_FRAME_COUNT = int(os.environ.get("FRAMELENS_DEFAULT_FRAME_COUNT", "8"))
MAX_FRAME_COUNT = int(os.environ.get("FRAMELENS_MAX_FRAME_COUNT", "64"))
ANALYZE_TIMEOUT_MS = int(os.environ.get("FRAMELENS_ANALYZE_TIMEOUT_MS", "60000"))
SEEK_TIMEOUT_MS = int(os.environ.get("FRAMELENS_SEEK_TIMEOUT_MS", "10000"))
MAX_UPLOAD_BYTES = int(os.environ.get("FRAMELENS_MAX_UPLOAD_BYTES", str(1024 * 1024 * 1024)))
LOG_LEVEL = os.environ.get("FRAMELENS_LOG_LEVEL", "INFO").upper()


def ensure_dirs() -> Path:
    UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    return UPLOAD_DIR


__all__ = [
    "UPLOAD_DIR",
    "GEMINI_API_KEY",
    "GEMINI_MODEL",
    "GEMINI_TEMPERATURE",
    "OUTPUT_LANGUAGE",
    "INFERENCE_BACKEND",
    "DEFAULT_FRAME_COUNT",
    "MAX_FRAME_COUNT",
    "ANALYZE_TIMEOUT_MS",
    "SEEK_TIMEOUT_MS",
    "MAX_UPLOAD_BYTES",
    "LOG_LEVEL",
    "ensure_dirs",
]
