"""Mockup engine settings: Printify endpoints, retry windows, cache layout."""

import os
from pathlib import Path
from typing import List

PRINTIFY_API_BASE = "https://api.printify.com/v1"

# Upload + temp product creation: attempt n waits BASE * 2^(n-1) before retrying
PRINTIFY_MAX_RETRIES = 3
PRINTIFY_RETRY_BASE_DELAY = 1.0

# Mockup rendering is async on Printify's side, poll inside a 2-5s band
MOCKUP_POLL_ATTEMPTS = 5
MOCKUP_POLL_MIN_DELAY = 2.0
MOCKUP_POLL_MAX_DELAY = 5.0

MAX_MOCKUP_VIEWS = 4
PREFERRED_LABELS = ["front", "left", "right", "close-up"]
EXCLUDED_LABELS = {"size-chart"}
DEFAULT_CAMERA_LABEL = "front"

# Temp product variant price in cents (never sold)
TEMP_PRODUCT_PRICE = 100

# Background removal fallback thresholds (0-255 scale)
DARK_LUMINANCE_MAX = 60
LIGHT_LUMINANCE_MIN = 245
NEAR_GRAY_MAX_SPREAD = 8
BACKGROUND_REMOVAL_MODEL = os.getenv("BACKGROUND_REMOVAL_MODEL", "u2net")

THUMBNAIL_MAX_DIMENSION = 512
THUMBNAIL_QUALITY = 80

# Relative luminance at or below this is a "dark" product color
COLOR_TIER_THRESHOLD = 0.35

DEFAULT_ALLOWED_IMAGE_HOSTS = [
    "storage.googleapis.com",
    "up.railway.app",
]

MOCKUP_CONTENT_TYPE = "image/jpeg"
MOCKUP_FILE_EXT = ".jpg"

# Static fallback previews when Printify is unavailable
LOCAL_MOCKUP_TEMPLATES = {
    "pillow": "/mockup-templates/pillow-template.png",
    "framed-print": "/mockup-templates/frame-template.png",
    "mug": "/mockup-templates/mug-template.png",
    "blanket": "/mockup-templates/blanket-template.png",
    "t-shirt": "/mockup-templates/tshirt-template.png",
    "phone-case": "/mockup-templates/phone-case-template.png",
}


def get_storage_dir() -> Path:
    """STORAGE_DIR (e.g. a mounted volume) or ./local-storage for development."""
    return Path(os.getenv("STORAGE_DIR") or Path.cwd() / "local-storage")


def get_allowed_image_hosts() -> List[str]:
    hosts = list(DEFAULT_ALLOWED_IMAGE_HOSTS)
    extra = os.getenv("ALLOWED_IMAGE_HOSTS", "")
    hosts.extend(h.strip() for h in extra.split(",") if h.strip())
    return hosts


def coalescing_enabled() -> bool:
    return os.getenv("MOCKUP_COALESCE_REQUESTS", "").lower() in ("true", "1", "yes")
