from __future__ import annotations

import base64
import binascii
import hmac


def b64encode(data: bytes) -> str:
	return base64.b64encode(data).decode("ascii")


def b64decode(data_b64: str) -> bytes:
	"""Strict base64 decode; raises ValueError on any non-alphabet input."""
	try:
		return base64.b64decode(data_b64, validate=True)
	except (binascii.Error, TypeError) as exc:
		raise ValueError("invalid base64") from exc


def constant_time_equal(a: bytes, b: bytes) -> bool:
	"""Constant-time bytes comparison."""
	return hmac.compare_digest(a, b)
