# ctaflow/core/config.py
"""
Application configuration - loads from environment variables.
Single source of truth for all settings.
"""
import os
from typing import List, Optional
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables FIRST
BASE_DIR = Path(__file__).resolve().parent.parent.parent
env_path = BASE_DIR / '.env'
load_dotenv(dotenv_path=env_path)


def normalize_base_url(url: str) -> str:
    """Strip trailing slashes and make sure the URL ends with /api"""
    u = (url or "").strip().rstrip("/")
    return u if u.endswith("/api") else f"{u}/api"


# ────────────────────────────────────────────
# Flow API (collaborator backend)
# ────────────────────────────────────────────
API_BASE_URL: str = normalize_base_url(os.getenv("CTAFLOW_API_BASE_URL", "http://localhost:7113/api"))
API_TOKEN: Optional[str] = os.getenv("CTAFLOW_API_TOKEN") or None
HTTP_TIMEOUT: float = float(os.getenv("CTAFLOW_HTTP_TIMEOUT", "30"))
BUSINESS_HEADER: str = "X-Business-Id"

# ────────────────────────────────────────────
# Business context
# ────────────────────────────────────────────
DEFAULT_BUSINESS_ID: Optional[str] = os.getenv("DEFAULT_BUSINESS_ID") or None

# ────────────────────────────────────────────
# Draft cache
# ────────────────────────────────────────────
DRAFT_DEBOUNCE_SECONDS: float = float(os.getenv("DRAFT_DEBOUNCE_SECONDS", "0.25"))
DRAFT_DATABASE_URL: str = os.getenv("DRAFT_DATABASE_URL", "sqlite:///./ctaflow_drafts.db")

# ────────────────────────────────────────────
# Canvas / layout
# ────────────────────────────────────────────
GRID: int = 16
NODE_DEFAULT_WIDTH: float = 260.0
NODE_DEFAULT_HEIGHT: float = 140.0
LAYOUT_NODE_SEP: float = float(os.getenv("LAYOUT_NODE_SEP", "50"))
LAYOUT_RANK_SEP: float = float(os.getenv("LAYOUT_RANK_SEP", "90"))
LAYOUT_MARGIN: float = float(os.getenv("LAYOUT_MARGIN", "20"))

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

# Comma-separated origins allowed to call the editor API
CORS_ORIGINS: List[str] = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
    if o.strip()
]


# ────────────────────────────────────────────
# Settings Class
# ────────────────────────────────────────────
class Settings:
    API_BASE_URL: str = API_BASE_URL
    API_TOKEN: Optional[str] = API_TOKEN
    HTTP_TIMEOUT: float = HTTP_TIMEOUT
    DEFAULT_BUSINESS_ID: Optional[str] = DEFAULT_BUSINESS_ID
    DRAFT_DEBOUNCE_SECONDS: float = DRAFT_DEBOUNCE_SECONDS
    DRAFT_DATABASE_URL: str = DRAFT_DATABASE_URL
    LAYOUT_NODE_SEP: float = LAYOUT_NODE_SEP
    LAYOUT_RANK_SEP: float = LAYOUT_RANK_SEP
    LAYOUT_MARGIN: float = LAYOUT_MARGIN
    LOG_LEVEL: str = LOG_LEVEL
    CORS_ORIGINS: List[str] = CORS_ORIGINS

settings = Settings()
