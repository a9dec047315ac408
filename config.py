"""Application configuration — environment variables and derived constants.

Loads the bot token, API base URL, proxy and update-delivery settings from the
environment via ``python-dotenv``.  All values are resolved at import time so
other modules can ``from config import …`` without repeated lookups.
"""

# ── stdlib ───────────────────────────────────────────────────────────────────
import os
from typing import Mapping

# ── third-party ──────────────────────────────────────────────────────────────
from dotenv import load_dotenv

# ── core ─────────────────────────────────────────────────────────────────────
from botapi.core.logger import BotApiLogger

# ── Environment bootstrap ────────────────────────────────────────────────────
load_dotenv()

logger = BotApiLogger.get_logger("config")


# ── Helper functions (private) ───────────────────────────────────────────────


def _parse_int(raw: str | None) -> int | None:
    """Parse an integer setting; blank or non-numeric values yield ``None``."""
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


def _parse_bool(raw: str | None) -> bool:
    """``1``, ``true``, ``yes`` and ``on`` (any case) are true; anything else is false."""
    return (raw or "").strip().lower() in {"1", "true", "yes", "on"}


def _parse_list(raw: str | None) -> list[str] | None:
    """Split a comma-separated list, dropping empty items.  Empty input → ``None``."""
    if not raw:
        return None
    items = [item.strip() for item in raw.split(",") if item.strip()]
    return items or None


def _parse_proxy(env: Mapping[str, str]) -> dict | None:
    """Build proxy settings from ``BOT_PROXY_*``.

    Host and a numeric port are both required; otherwise no proxy is used.
    """
    host = (env.get("BOT_PROXY_HOST") or "").strip()
    port = _parse_int(env.get("BOT_PROXY_PORT"))
    if not host or port is None:
        return None
    proxy: dict = {"host": host, "port": port, "https": _parse_bool(env.get("BOT_PROXY_HTTPS"))}
    user = env.get("BOT_PROXY_USER")
    password = env.get("BOT_PROXY_PASSWORD")
    if user is not None and password is not None:
        proxy["user"] = user
        proxy["password"] = password
    return proxy


# ── Public constants ─────────────────────────────────────────────────────────

BOT_TOKEN: str | None = os.environ.get("BOT_TOKEN")
BASE_URL: str | None = os.environ.get("BOT_API_BASE_URL") or None
HTTP_PROXY: dict | None = _parse_proxy(os.environ)

UPDATE_MODE: str = (os.environ.get("UPDATE_MODE") or "polling").strip().lower()

POLL_TIMEOUT: int = _parse_int(os.environ.get("POLL_TIMEOUT")) or 60
POLL_LIMIT: int | None = _parse_int(os.environ.get("POLL_LIMIT"))
ALLOWED_UPDATES: list[str] | None = _parse_list(os.environ.get("ALLOWED_UPDATES"))

WEBHOOK_HOST: str = os.environ.get("WEBHOOK_HOST") or "0.0.0.0"
WEBHOOK_PORT: int = _parse_int(os.environ.get("WEBHOOK_PORT")) or 8443
WEBHOOK_URL: str | None = os.environ.get("WEBHOOK_URL") or None
WEBHOOK_PRIVATE_KEY: str | None = os.environ.get("WEBHOOK_PRIVATE_KEY") or None
WEBHOOK_PUBLIC_KEY: str | None = os.environ.get("WEBHOOK_PUBLIC_KEY") or None


# ── Startup diagnostics ─────────────────────────────────────────────────────

if BOT_TOKEN:
    logger.info("Config loaded — BOT_TOKEN is set")
else:
    logger.warning("Config loaded — BOT_TOKEN is NOT set")

if UPDATE_MODE not in {"polling", "webhook"}:
    logger.warning("Unknown UPDATE_MODE, falling back to polling", extra={"update_mode": UPDATE_MODE})
    UPDATE_MODE = "polling"

logger.info(
    "Update delivery configured",
    extra={"update_mode": UPDATE_MODE, "proxy": HTTP_PROXY is not None, "custom_base_url": BASE_URL is not None},
)
