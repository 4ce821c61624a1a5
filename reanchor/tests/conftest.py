from __future__ import annotations

"""Shared pytest fixtures and test environment defaults."""

import os
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ["REANCHOR_REPLACEMENT_PROVIDER"] = "none"
os.environ.pop("OPENAI_API_KEY", None)
os.environ.pop("GEMINI_API_KEY", None)
os.environ.pop("REANCHOR_WINDOW_OFFSETS", None)
os.environ.setdefault("REANCHOR_METRICS_ENABLED", "true")
