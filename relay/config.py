from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

DEFAULT_REMOVE_BG_URL = "https://api.remove.bg/v1.0/removebg"


def _float_env(env: Mapping[str, str], key: str, default: float) -> float:
    try:
        value = float(env.get(key, default))
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


@dataclass
class RelayConfig:
    remove_bg_api_key: Optional[str] = None
    remove_bg_api_url: str = DEFAULT_REMOVE_BG_URL
    upstream_timeout: float = 60.0
    max_content_mb: float = 20.0
    cors_origins: Tuple[str, ...] = ("*",)

    @property
    def max_content_length(self) -> int:
        return int(self.max_content_mb * 1024 * 1024)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RelayConfig":
        env = os.environ if environ is None else environ
        origins = tuple(o.strip() for o in env.get("RELAY_CORS_ORIGINS", "*").split(",") if o.strip())
        return cls(
            remove_bg_api_key=(env.get("REMOVE_BG_API_KEY") or "").strip() or None,
            remove_bg_api_url=env.get("REMOVE_BG_API_URL") or DEFAULT_REMOVE_BG_URL,
            upstream_timeout=_float_env(env, "RELAY_UPSTREAM_TIMEOUT", 60.0),
            max_content_mb=_float_env(env, "RELAY_MAX_CONTENT_MB", 20.0),
            cors_origins=origins or ("*",),
        )
