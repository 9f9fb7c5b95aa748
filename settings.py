"""
Runtime configuration read from the environment.

Values come from ``.env`` (via python-dotenv) or the process environment:

    CERTSTUDIO_LOG_LEVEL          logging level name (default INFO)
    CERTSTUDIO_CORS_ORIGINS       comma-separated origins allowed by the API
    CERTSTUDIO_MAX_UPLOAD_MB      upload size limit in megabytes (default 20)
    CERTSTUDIO_DEFAULT_FONT_SIZE  font size for unstyled fields (default 16)
    CERTSTUDIO_SESSION_TTL        seconds an idle editing session is kept (default 3600)
    CERTSTUDIO_MAX_SESSIONS       most editing sessions held in memory (default 100)
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL: str = os.environ.get("CERTSTUDIO_LOG_LEVEL", "INFO").upper()
CORS_ORIGINS: list[str] = [
    origin.strip()
    for origin in os.environ.get(
        "CERTSTUDIO_CORS_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173",
    ).split(",")
    if origin.strip()
]
MAX_UPLOAD_BYTES: int = int(float(os.environ.get("CERTSTUDIO_MAX_UPLOAD_MB", "20")) * 1024 * 1024)
DEFAULT_FONT_SIZE: float = float(os.environ.get("CERTSTUDIO_DEFAULT_FONT_SIZE", "16"))
SESSION_TTL_SECONDS: float = float(os.environ.get("CERTSTUDIO_SESSION_TTL", "3600"))
MAX_SESSIONS: int = int(os.environ.get("CERTSTUDIO_MAX_SESSIONS", "100"))

ZOOM_MIN = 0.5
ZOOM_MAX = 2.0
OUTPUT_NAME_PATTERN = "certificate_{number}.pdf"
ARCHIVE_NAME = "certificates.zip"


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=getattr(logging, level or LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
