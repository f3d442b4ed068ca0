from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Callable

SERVICE_NAME = "splitly"


def _env(name: str, default: Any, cast: Callable[[str], Any]):
	raw = os.getenv(name)
	if raw is None:
		return default
	try:
		return cast(raw)
	except Exception as e:
		raise ValueError(
			f"env var {name!r}={raw!r} not valid for {cast.__name__}"
		) from e


# minimal env surface
LOG_LEVEL = _env("LOG_LEVEL", "INFO", str)
OTLP_ENDPOINT = _env("OTLP_ENDPOINT", None, str)
LOKI_URL = _env("LOKI_URL", None, str)  # presence toggles json logs, no direct emission

# provider tuning
GEMINI_MODEL = _env("GEMINI_MODEL", "gemini-2.5-flash", str).strip()
PROVIDER_TIMEOUT_SECS = _env("PROVIDER_TIMEOUT_SECS", 20, int)
ASSIGNMENT_CACHE_SIZE = _env("ASSIGNMENT_CACHE_SIZE", 64, int)

# session behaviour
MAX_UNDO_HISTORY = _env("MAX_UNDO_HISTORY", 10, int)
STATE_PATH = _env("STATE_PATH", None, str)  # unset keeps sessions in memory

# constraints
MAX_UPLOAD_MB = _env("MAX_UPLOAD_MB", 10, int)
ALLOWED_MIME_TYPES = {"image/jpeg", "image/png", "image/webp"}


@dataclass(frozen=True)
class Settings:
	service: str = SERVICE_NAME
	log_level: str = LOG_LEVEL
	json_logs: bool = bool(OTLP_ENDPOINT or LOKI_URL)
	otlp_endpoint: str | None = OTLP_ENDPOINT
	gemini_model: str = GEMINI_MODEL
	provider_timeout_secs: int = PROVIDER_TIMEOUT_SECS
	assignment_cache_size: int = ASSIGNMENT_CACHE_SIZE
	max_undo_history: int = MAX_UNDO_HISTORY
	state_path: str | None = STATE_PATH
	max_upload_mb: int = MAX_UPLOAD_MB
	allowed_mime_types: set[str] = field(default_factory=lambda: ALLOWED_MIME_TYPES)


def load_settings() -> Settings:
	return Settings()
