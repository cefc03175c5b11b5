from __future__ import annotations

import json
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Optional

from cryptography.hazmat.primitives.asymmetric import ec

from signing.ecdsa import generate_private_key, public_key_of, sign


class GateRefusal(Exception):
	"""Raised when the gate answers with `{"success": false, "error": ...}`."""

	def __init__(self, status: int, error: str) -> None:
		super().__init__(f"{status}: {error}")
		self.status = status
		self.error = error


class GateTransportError(Exception):
	"""Raised when the gate cannot be reached or returns invalid responses."""


def encode_body(payload: Any) -> bytes:
	"""Serialize once; the signature covers exactly these bytes."""
	return json.dumps(payload, separators=(",", ":")).encode("utf-8")


def signed_headers(private_key: ec.EllipticCurvePrivateKey, body: bytes) -> dict[str, str]:
	return {
		"Content-Type": "application/json",
		"X-Public-Key": public_key_of(private_key).to_base64(),
		"X-Signature": sign(private_key, body),
	}


@dataclass
class ClientConfig:
	base_url: str
	timeout_seconds: float = 5.0


def _decode(body: bytes) -> dict[str, Any]:
	try:
		decoded = json.loads(body.decode("utf-8"))
	except Exception as exc:  # noqa: BLE001
		raise GateTransportError("gate returned non-JSON response") from exc
	if not isinstance(decoded, dict):
		raise GateTransportError("gate returned unexpected JSON")
	return decoded


def _send(req: urllib.request.Request, *, timeout_seconds: float) -> dict[str, Any]:
	try:
		with urllib.request.urlopen(req, timeout=timeout_seconds) as resp:
			return _decode(resp.read())
	except urllib.error.HTTPError as exc:
		try:
			raw = exc.read()
		except OSError:
			raw = b""
		try:
			decoded = _decode(raw)
		except GateTransportError:
			raise GateTransportError(f"gate HTTP error: {exc.code}") from exc
		raise GateRefusal(exc.code, str(decoded.get("error") or "refused")) from exc
	except urllib.error.URLError as exc:
		raise GateTransportError(f"gate unreachable: {exc.reason}") from exc


class SignedClient:
	"""Client that signs every POST body with its P-256 key."""

	def __init__(
		self,
		*,
		config: ClientConfig,
		private_key: Optional[ec.EllipticCurvePrivateKey] = None,
		extra_headers: Optional[dict[str, str]] = None,
	) -> None:
		self._config = config
		self._private_key = private_key or generate_private_key()
		self._extra_headers = dict(extra_headers or {})

	@property
	def public_key_b64(self) -> str:
		return public_key_of(self._private_key).to_base64()

	def _url(self, path: str) -> str:
		return f"{self._config.base_url.rstrip('/')}/{path.lstrip('/')}"

	def post_json(self, path: str, payload: Any) -> dict[str, Any]:
		body = encode_body(payload)
		headers = {**self._extra_headers, **signed_headers(self._private_key, body)}
		req = urllib.request.Request(url=self._url(path), data=body, headers=headers, method="POST")
		return _send(req, timeout_seconds=self._config.timeout_seconds)

	def get_json(self, path: str) -> dict[str, Any]:
		req = urllib.request.Request(url=self._url(path), headers=dict(self._extra_headers), method="GET")
		return _send(req, timeout_seconds=self._config.timeout_seconds)
