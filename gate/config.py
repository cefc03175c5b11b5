from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional


class ConfigError(RuntimeError):
	"""Raised when an environment variable holds an unusable value."""


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
	val = os.getenv(name)
	if val is None or val == "":
		return default
	return val


def _env_int(name: str, default: int, *, minimum: int = 0) -> int:
	raw = _env(name)
	if raw is None:
		return default
	try:
		value = int(raw.strip())
	except ValueError as exc:
		raise ConfigError(f"{name} must be an integer (got {raw!r})") from exc
	if value < minimum:
		raise ConfigError(f"{name} must be >= {minimum} (got {value})")
	return value


def _env_bool(name: str, default: bool = False) -> bool:
	raw = os.getenv(name)
	if raw is None or raw == "":
		return default
	return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


STORE_BACKENDS = frozenset({"memory", "minio"})


@dataclass(frozen=True)
class GateConfig:
	max_content_length: int = 65536
	control_public_key_b64: Optional[str] = None
	ban_seconds: int = 5 * 60
	ban_jitter_seconds: int = 30
	trust_forwarded_headers: bool = True
	store_backend: str = "memory"
	log_level: str = "INFO"

	@classmethod
	def from_env(cls) -> "GateConfig":
		backend = (_env("GATE_STORE_BACKEND", "memory") or "memory").strip().lower()
		if backend not in STORE_BACKENDS:
			raise ConfigError(f"GATE_STORE_BACKEND must be one of {sorted(STORE_BACKENDS)} (got {backend!r})")
		return cls(
			max_content_length=_env_int("GATE_MAX_CONTENT_LENGTH", 65536, minimum=1),
			control_public_key_b64=_env("GATE_CONTROL_PUBLIC_KEY"),
			ban_seconds=_env_int("GATE_BAN_SECONDS", 5 * 60, minimum=1),
			ban_jitter_seconds=_env_int("GATE_BAN_JITTER_SECONDS", 30, minimum=1),
			trust_forwarded_headers=_env_bool("GATE_TRUST_FORWARDED_HEADERS", True),
			store_backend=backend,
			log_level=(_env("GATE_LOG_LEVEL", "INFO") or "INFO").upper(),
		)


def configure_logging(level: str = "INFO") -> None:
	logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(message)s")
