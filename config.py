"""
Runtime configuration.

Values come from the environment (a .env file in the repo root is loaded
first, if present). Everything has a default that works for a local proxy
on http://127.0.0.1:8080 in front of the production portal.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR   = Path(__file__).parent
ASSETS_DIR = ROOT_DIR / "assets"
LOG_DIR    = ROOT_DIR / "logs"

load_dotenv(ROOT_DIR / ".env")

# ---------------------------------------------------------------------------
# Proxy
# ---------------------------------------------------------------------------

PORT       = int(os.environ.get("PORT", "8080"))
PROXY_URL  = os.environ.get("PROXY_URL", "http://127.0.0.1:8080").rstrip("/")
TARGET_URL = os.environ.get("TARGET_URL", "https://my.utaipei.edu.tw").rstrip("/")

UPSTREAM_TIMEOUT = float(os.environ.get("UPSTREAM_TIMEOUT", "30"))
MAX_REDIRECTS    = int(os.environ.get("MAX_REDIRECTS", "100"))

# Portal entry page (frameset); "/" redirects here.
ENTRY_PATH = "/utaipei/index_sky.html"

# ---------------------------------------------------------------------------
# Search overlay
# ---------------------------------------------------------------------------

EXTRACT_URL     = os.environ.get("EXTRACT_URL", f"{PROXY_URL}/api/parse-html")
EXTRACT_TIMEOUT = float(os.environ.get("EXTRACT_TIMEOUT", "10"))

DEBOUNCE_SECONDS     = 0.2
READY_POLL_SECONDS   = 2.0
READY_MAX_ATTEMPTS   = 30

# Label of the menu header that opens the favourites editor.
FAVORITES_EDIT_LABEL = "編輯我的最愛"
