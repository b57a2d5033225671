"""Application configuration."""

import os
from pathlib import Path

from dotenv import load_dotenv


def _load_dotenv_safe(dotenv_path: str | None = None, *, override: bool = False) -> None:
    """Load dotenv using UTF-8-SIG so BOM-prefixed files don't break first key parsing."""
    try:
        load_dotenv(dotenv_path=dotenv_path, override=override, encoding="utf-8-sig")
    except TypeError:
        # Older python-dotenv versions may not expose the `encoding` argument.
        load_dotenv(dotenv_path=dotenv_path, override=override)


# Load base environment first, then optional per-instance override env file.
_load_dotenv_safe()
_CIRCLES_ENV_FILE = os.getenv("CIRCLES_ENV_FILE", "").strip()
if _CIRCLES_ENV_FILE:
    _circles_env_path = Path(_CIRCLES_ENV_FILE).expanduser()
    if not _circles_env_path.is_absolute():
        _circles_env_path = (Path.cwd() / _circles_env_path).resolve()
    if not _circles_env_path.exists():
        raise FileNotFoundError(f"CIRCLES_ENV_FILE does not exist: {_circles_env_path}")
    if not _circles_env_path.is_file():
        raise IsADirectoryError(f"CIRCLES_ENV_FILE is not a file: {_circles_env_path}")
    try:
        _load_dotenv_safe(str(_circles_env_path), override=True)
    except (OSError, UnicodeError, ValueError) as exc:
        raise RuntimeError(f"Failed to load CIRCLES_ENV_FILE '{_circles_env_path}': {exc}") from exc


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "y", "on")


# Circles RPC (Gnosis chain production endpoint by default).
CIRCLES_RPC_URL = os.getenv("CIRCLES_RPC_URL", "https://rpc.aboutcircles.com/").strip()
CIRCLES_RPC_TIMEOUT = max(1.0, float(os.getenv("CIRCLES_RPC_TIMEOUT", "15")))
CIRCLES_RPC_CONCURRENCY = max(1, int(os.getenv("CIRCLES_RPC_CONCURRENCY", "8")))
CIRCLES_QUERY_NAMESPACE = os.getenv("CIRCLES_QUERY_NAMESPACE", "V_Crc").strip()
CIRCLES_INCLUDE_V1_BALANCE = _env_flag("CIRCLES_INCLUDE_V1_BALANCE", "true")
HTTP_CONNECTOR_LIMIT = max(1, int(os.getenv("HTTP_CONNECTOR_LIMIT", "30")))

# Accrual model: 1 CRC per hour, capped at a week.
CIRCLES_HOURLY_RATE = max(0.0, float(os.getenv("CIRCLES_HOURLY_RATE", "1")))
CIRCLES_MAX_ACCRUAL_DAYS = max(0.0, float(os.getenv("CIRCLES_MAX_ACCRUAL_DAYS", "7")))
CIRCLES_DAILY_UNIT = max(0.000001, float(os.getenv("CIRCLES_DAILY_UNIT", "24")))

# Retry policy applied to every ledger read.
LEDGER_RETRY_ATTEMPTS = max(1, int(os.getenv("LEDGER_RETRY_ATTEMPTS", "3")))
LEDGER_RETRY_BASE_SECONDS = max(0.0, float(os.getenv("LEDGER_RETRY_BASE_SECONDS", "1.0")))

TRUST_RELATIONS_PAGE_SIZE = max(1, int(os.getenv("TRUST_RELATIONS_PAGE_SIZE", "100")))
TRANSACTION_HISTORY_PAGE_SIZE = max(1, int(os.getenv("TRANSACTION_HISTORY_PAGE_SIZE", "100")))
# 0 disables the fan-out cap.
ENRICH_MAX_CONCURRENCY = max(0, int(os.getenv("ENRICH_MAX_CONCURRENCY", "0")))

REMINDER_CLAIM_URL = os.getenv("REMINDER_CLAIM_URL", "https://circles.garden").strip()
REMINDER_COMPOSE_URL = os.getenv("REMINDER_COMPOSE_URL", "https://warpcast.com/~/compose").strip()
REMINDER_HASHTAGS = [
    tag.strip()
    for tag in os.getenv("REMINDER_HASHTAGS", "CirclesUBI,BasicIncome").split(",")
    if tag.strip()
]

RUN_TAG = os.getenv("RUN_TAG", "").strip()
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = os.getenv("LOG_DIR", "logs")
APP_LOG_FILE = os.path.join(LOG_DIR, "app.log")
