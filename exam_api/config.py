"""Application configuration and constants."""
import logging
import os
from pathlib import Path


def _parse_int_env(name: str, default: int) -> int:
    """Parse integer from environment variable."""
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _parse_bool_env(name: str, default: bool) -> bool:
    """Parse boolean flag from environment variable."""
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


# Database
DB_DIR = Path(os.environ.get("DB_DIR", Path.cwd() / "data"))
DB_DIR.mkdir(parents=True, exist_ok=True)
DATABASE_URL = os.environ.get(
    "DATABASE_URL", f"sqlite:///{DB_DIR / 'exams.db'}"
)

# Authentication (tokens are issued by the hosted backend)
SECRET_KEY = os.environ.get(
    "SECRET_KEY",
    "CHANGE_ME_IN_PRODUCTION_USE_openssl_rand_hex_32"
)
ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")

# Logging
LOG_LEVEL = logging.getLevelName(os.environ.get("LOG_LEVEL", "INFO").upper())
if not isinstance(LOG_LEVEL, int):
    LOG_LEVEL = logging.INFO

# Timers
WARNING_THRESHOLD_SECONDS = _parse_int_env("WARNING_THRESHOLD_SECONDS", 300)
DEFAULT_SECTION_MINUTES = _parse_int_env("DEFAULT_SECTION_MINUTES", 35)
DEFAULT_EXAM_MINUTES = _parse_int_env("DEFAULT_EXAM_MINUTES", 120)

# Exam structure and scoring
UNIT_SECTION_ID = "unit"
TOEFL_SECTIONS = ("listening", "structure", "reading")
SECTION_WEIGHTS = {
    "listening": _parse_int_env("LISTENING_WEIGHT", 50),
    "structure": _parse_int_env("STRUCTURE_WEIGHT", 40),
    "reading": _parse_int_env("READING_WEIGHT", 50),
}
TOEFL_SECTION_SCALE = 140
TOEFL_FINAL_SCALE = 677
LIVE_SCORING = _parse_bool_env("LIVE_SCORING", True)

# Host UI policy
SECURITY_POLICY_ENABLED = _parse_bool_env("SECURITY_POLICY_ENABLED", True)

# Activity cleanup
STALE_ACTIVITY_MINUTES = _parse_int_env("STALE_ACTIVITY_MINUTES", 180)
ACTIVITY_CLEANUP_INTERVAL_SECONDS = _parse_int_env(
    "ACTIVITY_CLEANUP_INTERVAL_SECONDS", 15 * 60
)
