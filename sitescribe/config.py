"""
Runtime configuration for SiteScribe.
Values come from environment variables (optionally a .env file) with defaults.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


# ========== Logging ==========
LOG_LEVEL = os.getenv("SITESCRIBE_LOG_LEVEL", "INFO").upper()

# ========== Output ==========
OUTPUT_DIR = Path(os.getenv("SITESCRIBE_OUTPUT_DIR", "output"))

# ========== Crawl limits ==========
# Hard ceilings; request values above these are rejected by validation.
MAX_PAGES_LIMIT = int(os.getenv("SITESCRIBE_MAX_PAGES_LIMIT", "50"))
MAX_DEPTH_LIMIT = int(os.getenv("SITESCRIBE_MAX_DEPTH_LIMIT", "5"))

DEFAULT_MAX_PAGES = 10
DEFAULT_MAX_DEPTH = 1

# ========== Renderer ==========
NAVIGATION_TIMEOUT_MS = int(os.getenv("SITESCRIBE_NAVIGATION_TIMEOUT_MS", "30000"))
TITLE_TIMEOUT_MS = int(os.getenv("SITESCRIBE_TITLE_TIMEOUT_MS", "10000"))
MAX_WAIT_TIME_MS = 10_000
MAX_CONTENT_SIZE = int(os.getenv("SITESCRIBE_MAX_CONTENT_SIZE", str(10 * 1024 * 1024)))
ALLOW_PRIVATE_ADDRESSES = _env_bool("SITESCRIBE_ALLOW_PRIVATE_ADDRESSES", False)
HEADLESS = _env_bool("SITESCRIBE_HEADLESS", True)
VIEWPORT_WIDTH = 1280
VIEWPORT_HEIGHT = 800

# ========== Jobs ==========
FINISHED_JOB_RETENTION = int(os.getenv("SITESCRIBE_FINISHED_JOB_RETENTION", "100"))

# ========== API ==========
RATE_LIMIT = os.getenv("SITESCRIBE_RATE_LIMIT", "5/minute")
