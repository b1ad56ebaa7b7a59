"""Read fallback values from ``.env.defaults`` at the repository root.

Environment variables always win; the file only fills in what is unset. A
missing file simply means no fallbacks.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

DEFAULTS_FILE_ENV = "SETTLEMENT_VALIDATION_DEFAULTS"


def _defaults_path() -> Path:
    override = os.getenv(DEFAULTS_FILE_ENV)
    if override:
        return Path(override)
    return Path(__file__).resolve().parents[1] / ".env.defaults"


def parse_env_file(text: str) -> Dict[str, str]:
    defaults: Dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        value = value.strip()
        if len(value) >= 2 and value[0] in ('"', "'") and value[-1] == value[0]:
            value = value[1:-1]
        defaults[key.strip()] = value
    return defaults


@lru_cache(maxsize=1)
def _load_env_defaults() -> Dict[str, str]:
    env_defaults = _defaults_path()
    if not env_defaults.exists():
        return {}
    return parse_env_file(env_defaults.read_text(encoding="utf-8"))


def get_env_default(key: str) -> Optional[str]:
    return _load_env_defaults().get(key)


def env(key: str, default: Optional[str] = None) -> Optional[str]:
    """Environment variable, then ``.env.defaults``, then ``default``."""
    value = os.getenv(key)
    if value:
        return value
    fallback = get_env_default(key)
    if fallback:
        return fallback
    return default


def reset_cache() -> None:
    _load_env_defaults.cache_clear()
