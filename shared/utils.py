import hashlib
import re
import secrets
import time
from pathlib import Path

from shared.config import config
from shared.logging_utils import setup_logging

__all__ = [
    "config",
    "ensure_directory",
    "format_processing_time",
    "generate_hash",
    "generate_notification_id",
    "parse_processing_time",
    "parse_size_mb",
    "setup_logging",
]

_SIZE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?|\.\d+)\s*([kmg]?i?b)?\s*$", re.IGNORECASE)
_SIZE_FACTORS = {
    "b": 1 / (1024 * 1024),
    "kb": 1 / 1024,
    "kib": 1 / 1024,
    "mb": 1.0,
    "mib": 1.0,
    "gb": 1024.0,
    "gib": 1024.0,
}


def generate_hash(text: str) -> str:
    """Generate a hash for caching purposes"""
    return hashlib.md5(text.encode()).hexdigest()


def generate_notification_id() -> str:
    """Millisecond timestamp plus a random suffix, unique within a process."""
    return f"{int(time.time() * 1000)}{secrets.token_hex(5)}"


def ensure_directory(path: str) -> None:
    """Ensure directory exists, create if not"""
    Path(path).mkdir(parents=True, exist_ok=True)


def parse_size_mb(size: str | None) -> float | None:
    """Convert a display size such as "2.4 MB" or "512 KB" to megabytes.

    A bare number is read as MB. Returns None when the string cannot be parsed.
    """
    if not size:
        return None
    match = _SIZE_PATTERN.match(size)
    if not match:
        return None
    value = float(match.group(1))
    unit = (match.group(2) or "mb").lower()
    factor = _SIZE_FACTORS.get(unit)
    if factor is None:
        return None
    return value * factor


def format_processing_time(seconds: float) -> str:
    return f"{seconds:.1f}s"


def parse_processing_time(value: str | None) -> float | None:
    """Read back a value written by format_processing_time; None when empty or malformed."""
    if not value:
        return None
    try:
        return float(value.strip().rstrip("s"))
    except ValueError:
        return None
