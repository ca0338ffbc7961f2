#!/usr/bin/env python3
import os, sys, traceback

def ok(msg): print("[OK] " + msg)
def warn(msg): print("[WARN] " + msg)
def fail(msg): print("[FAIL] " + msg); sys.exit(1)

# 1) OpenCV with a video backend
try:
    import cv2
    ok(f"OpenCV {cv2.__version__} import is available")
except Exception:
    traceback.print_exc()
    fail("OpenCV not available. Install via: pip install opencv-python-headless")

# 2) Inference credentials
if os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY"):
    ok("Gemini API key found")
else:
    warn("GEMINI_API_KEY not set; the service will use the offline backend")

# 3) Ensure upload folder
from src.service.config import ensure_dirs

ok(f"Upload folder ensured at {ensure_dirs()}")

print("\nEnvironment check passed ✅")
