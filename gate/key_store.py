from __future__ import annotations

import asyncio
from typing import Optional, Protocol

from signing.ecdsa import KeyMalformed, PublicKey
from signing.utils import constant_time_equal
from storage.minio_adapter import MinioObjectStore


class KeyStoreError(RuntimeError):
	"""Raised when the control key is missing or unusable."""


class KeyStore(Protocol):
	async def get_control_public_key(self) -> PublicKey:
		...


class AuthorizationPolicy(Protocol):
	async def is_authorized(self, public_key: PublicKey) -> bool:
		...


def _parse_control_key(key_b64: str) -> PublicKey:
	try:
		return PublicKey.from_base64(key_b64.strip())
	except KeyMalformed as exc:
		raise KeyStoreError(f"control key is malformed: {exc}") from exc


class StaticKeyStore:
	"""Control key supplied once at startup (e.g. from configuration)."""

	def __init__(self, control_key: Optional[PublicKey]) -> None:
		self._control_key = control_key

	@classmethod
	def from_base64(cls, key_b64: Optional[str]) -> "StaticKeyStore":
		return cls(_parse_control_key(key_b64) if key_b64 else None)

	async def get_control_public_key(self) -> PublicKey:
		if self._control_key is None:
			raise KeyStoreError("no control key is provisioned")
		return self._control_key


class MinioKeyStore:
	"""Reads the control key record `{"public_key": "<base64>"}` from MinIO.

	The record is read on every call so an externally rotated key takes
	effect without a restart.
	"""

	def __init__(self, objects: MinioObjectStore, *, object_name: str = "keys/control.json") -> None:
		self._objects = objects
		self._object_name = object_name

	def _load(self) -> PublicKey:
		doc = self._objects.get_json(self._object_name)
		if doc is None:
			raise KeyStoreError(f"no control key record at {self._object_name!r}")
		key_b64 = doc.get("public_key")
		if not isinstance(key_b64, str) or not key_b64:
			raise KeyStoreError("control key record has no public_key")
		return _parse_control_key(key_b64)

	async def get_control_public_key(self) -> PublicKey:
		return await asyncio.to_thread(self._load)


class ControlKeyPolicy:
	"""Allow-list of size one: only the control key is authorized."""

	def __init__(self, key_store: KeyStore) -> None:
		self._key_store = key_store

	async def is_authorized(self, public_key: PublicKey) -> bool:
		control_key = await self._key_store.get_control_public_key()
		return constant_time_equal(control_key.compressed, public_key.compressed)
