#!/usr/bin/env python3
"""Command-line client for the Framelens analysis service."""
from __future__ import annotations

import argparse
import json
import mimetypes
import os
import sys
import time
from pathlib import Path
from typing import Dict, List, Optional

import requests

from src.pipeline.sampler import format_time

SERVICE_URL_ENV = "FRAMELENS_SERVICE_URL"
SERVICE_URL_DEFAULT = "http://127.0.0.1:8765"
STATUS_POLL_SECONDS = 2
RETRY_ATTEMPTS = 3
GLOBAL_TIMEOUT_SECONDS = 30 * 60
HTTP_TIMEOUT_DEFAULT = int(os.getenv("FRAMELENS_HTTP_TIMEOUT", "60"))
SETTLED_STORYBOARD = {"idle", "ready", "failed", "skipped"}


def guess_video_type(path: Path) -> str:
    content_type, _ = mimetypes.guess_type(path.name)
    return content_type or "application/octet-stream"


def post_with_retry(url: str, payload: Optional[dict], timeout_sec: int) -> requests.Response:
    for attempt in range(RETRY_ATTEMPTS):
        try:
            response = requests.post(url, json=payload, timeout=(timeout_sec, timeout_sec))
            if response.status_code < 500:
                return response
            response.raise_for_status()
        except requests.RequestException as error:
            wait_time = 2 ** attempt
            print(f"[WARN] POST failed ({error}); retrying in {wait_time}s", file=sys.stderr)
            time.sleep(wait_time)
    raise RuntimeError(f"Failed to reach {url} after retries")


def upload_video(base_url: str, path: Path, timeout_sec: int) -> dict:
    with path.open("rb") as handle:
        response = requests.post(
            f"{base_url}/video",
            files={"file": (path.name, handle, guess_video_type(path))},
            timeout=(timeout_sec, timeout_sec),
        )
    if response.status_code in (413, 415, 422):
        raise RuntimeError(response.json().get("detail", "Upload rejected"))
    response.raise_for_status()
    return response.json()


def fetch_session(base_url: str, timeout_sec: int, thumbnails: bool = False) -> dict:
    response = requests.get(
        f"{base_url}/session",
        params={"thumbnails": str(thumbnails).lower()},
        timeout=(timeout_sec, timeout_sec),
    )
    response.raise_for_status()
    return response.json()


def is_settled(session: dict) -> bool:
    """A run is settled once it left Analyzing and the storyboard is no longer pending."""
    state = session.get("state")
    if state == "analyzing":
        return False
    if state == "complete":
        return session.get("storyboard_status") in SETTLED_STORYBOARD
    return True


def poll_session(base_url: str, timeout_sec: int) -> dict:
    deadline = time.time() + GLOBAL_TIMEOUT_SECONDS
    while time.time() < deadline:
        session = fetch_session(base_url, timeout_sec)
        if is_settled(session):
            return session
        time.sleep(STATUS_POLL_SECONDS)
    raise TimeoutError("Timed out waiting for analysis to finish")


def render_results(results: List[Dict[str, object]]) -> List[str]:
    lines: List[str] = []
    for item in results:
        stamp = format_time(float(item.get("timestamp") or 0.0))
        status = str(item.get("status", "?"))
        data = item.get("data") or {}
        if status == "ready" and isinstance(data, dict):
            detail = str(data.get("visualDescription", "")).strip()
            palette = " ".join(data.get("colorPalette") or [])
            if palette:
                detail = f"{detail} [{palette}]"
        else:
            detail = str(item.get("error") or "")
        source = "*" if item.get("source") == "capture" else " "
        lines.append(f"{source}{stamp:>6}  {status:<8} {detail}".rstrip())
    return lines


def run(
    video: Path,
    service_url: str,
    frames: Optional[int],
    capture: Optional[float],
    http_timeout: int,
    as_json: bool,
) -> int:
    if not video.exists():
        print(f"[ERROR] Video not found: {video}", file=sys.stderr)
        return 2

    info = upload_video(service_url, video, http_timeout)
    print(f"Uploaded {info['filename']} ({format_time(info['duration_seconds'])}, {info['width']}x{info['height']})")

    payload = {"frame_count": frames} if frames else None
    response = post_with_retry(f"{service_url}/analysis", payload, http_timeout)
    if response.status_code != 202:
        print(f"[ERROR] {response.json().get('detail', 'Analysis rejected')}", file=sys.stderr)
        return 1
    planned = response.json().get("timestamps", [])
    print(f"Analysing {len(planned)} frames...")
    session = poll_session(service_url, http_timeout)

    if capture is not None:
        response = post_with_retry(f"{service_url}/capture", {"position": capture}, http_timeout)
        if response.status_code != 202:
            print(f"[WARN] Capture skipped: {response.json().get('detail')}", file=sys.stderr)
        session = poll_session(service_url, http_timeout)
        while any(item.get("status") == "loading" for item in session.get("results", [])):
            time.sleep(STATUS_POLL_SECONDS)
            session = fetch_session(service_url, http_timeout)

    if as_json:
        print(json.dumps(session, indent=2, ensure_ascii=False))
        return 0

    if session.get("notification"):
        print(f"[ERROR] {session['notification']}", file=sys.stderr)
        return 1
    for line in render_results(session.get("results", [])):
        print(line)
    if session.get("storyboard"):
        print("\n=== Storyboard ===\n")
        print(session["storyboard"])
    else:
        print(f"\n(storyboard {session.get('storyboard_status')})")
    return 0


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Analyse a video with the Framelens service")
    parser.add_argument("video", type=Path, help="Path to the video file")
    parser.add_argument(
        "--service-url",
        default=None,
        help=f"Base URL for the service (default: env {SERVICE_URL_ENV} or {SERVICE_URL_DEFAULT})",
    )
    parser.add_argument("--frames", type=int, default=None, help="Number of frames to sample (default: service default)")
    parser.add_argument(
        "--capture",
        type=float,
        default=None,
        help="Also analyse the single frame at this position (seconds) after the batch",
    )
    parser.add_argument("--http-timeout", type=int, default=HTTP_TIMEOUT_DEFAULT, help="HTTP timeout in seconds")
    parser.add_argument("--json", action="store_true", help="Print the raw session payload")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    service_url = (args.service_url or os.getenv(SERVICE_URL_ENV) or SERVICE_URL_DEFAULT).rstrip("/")
    try:
        return run(
            video=args.video,
            service_url=service_url,
            frames=args.frames,
            capture=args.capture,
            http_timeout=args.http_timeout,
            as_json=args.json,
        )
    except Exception as error:  # pragma: no cover - integration level logging
        print(f"[ERROR] {error}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
