"""
Application configuration (env, settings, constants).

Responsibility: Centralize config loading, environment variables, and app-wide
constants. Keeps the rest of the app decoupled from how config is sourced.
Every value is optional; a malformed number falls back to its default.
"""

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(float(raw))
    except ValueError:
        logger.warning("[config] invalid %s=%r, using default %s", name, raw, default)
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("[config] invalid %s=%r, using default %s", name, raw, default)
        return default


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"

# Knowledge base (static FAQ)
FAQ_PATH: str = os.getenv("FAQ_PATH", "data/faq.json").strip() or "data/faq.json"
FAQ_MATCH_THRESHOLD: float = _float_env("FAQ_MATCH_THRESHOLD", 0.6)
# Whether a knowledge-base answer counts against the text budget
KB_HIT_CONSUMES_BUDGET: bool = _bool_env("KB_HIT_CONSUMES_BUDGET", True)

# Anti-spam budgets (windows in seconds)
TEXT_RATE_LIMIT: int = _int_env("TEXT_RATE_LIMIT", 5)
TEXT_RATE_WINDOW: float = _float_env("TEXT_RATE_WINDOW", 60.0)
IMAGE_RATE_LIMIT: int = _int_env("IMAGE_RATE_LIMIT", 3)
IMAGE_RATE_WINDOW: float = _float_env("IMAGE_RATE_WINDOW", 60.0)

# Images
IMAGE_SIZE_LIMIT: int = _int_env("IMAGE_SIZE_LIMIT", int(1.2 * 1024 * 1024))
ALLOWED_IMAGE_TYPES: frozenset[str] = frozenset({"image/jpeg", "image/png", "image/webp"})
DEFAULT_IMAGE_TYPE: str = "image/jpeg"
IMAGE_FETCH_TIMEOUT: float = _float_env("IMAGE_FETCH_TIMEOUT", 15.0)
IMAGE_FETCH_MAX_REDIRECTS: int = _int_env("IMAGE_FETCH_MAX_REDIRECTS", 5)
# Loopback, private and link-local hosts are refused unless this is set
ALLOW_PRIVATE_IMAGE_HOSTS: bool = _bool_env("ALLOW_PRIVATE_IMAGE_HOSTS", False)

# Circuit breaker cooldown (seconds) after a provider signals overload
BREAKER_COOLDOWN: float = _float_env("BREAKER_COOLDOWN", 300.0)

# Gemini (vision provider)
GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "").strip()
GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-1.5-flash").strip() or "gemini-1.5-flash"
GEMINI_API_URL: str = (
    os.getenv("GEMINI_API_URL", "https://generativelanguage.googleapis.com/v1beta/models").strip()
    or "https://generativelanguage.googleapis.com/v1beta/models"
)
VISION_TIMEOUT: float = _float_env("VISION_TIMEOUT", 30.0)

# OpenRouter (text provider, OpenAI-compatible API)
OPENROUTER_API_KEY: str = os.getenv("OPENROUTER_API_KEY", "").strip()
OPENROUTER_MODEL: str = (
    os.getenv("OPENROUTER_MODEL", "meta-llama/llama-3.3-8b-instruct:free").strip()
    or "meta-llama/llama-3.3-8b-instruct:free"
)
OPENROUTER_BASE_URL: str = (
    os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1").strip()
    or "https://openrouter.ai/api/v1"
)
TEXT_MAX_TOKENS: int = _int_env("TEXT_MAX_TOKENS", 150)
TEXT_TIMEOUT: float = _float_env("TEXT_TIMEOUT", 30.0)

# Attribution headers OpenRouter shows on its dashboard
APP_REFERER: str = os.getenv("APP_REFERER", "").strip()
APP_TITLE: str = os.getenv("APP_TITLE", "Customer Service Bot").strip()

# Client identity: the first X-Forwarded-For entry is used only behind a trusted proxy
TRUST_FORWARDED_FOR: bool = _bool_env("TRUST_FORWARDED_FOR", False)

# Security event log (empty dir disables it)
SECURITY_LOG_DIR: str = os.getenv("SECURITY_LOG_DIR", "logs").strip()
SECURITY_LOG_RETENTION_DAYS: int = _int_env("SECURITY_LOG_RETENTION_DAYS", 7)
