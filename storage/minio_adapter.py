from __future__ import annotations

import json
import os
from dataclasses import dataclass
from io import BytesIO
from typing import Any, Iterator, Optional

from minio import Minio
from minio.error import S3Error


class StorageError(RuntimeError):
	"""Raised when storage operations fail."""


_MISSING_CODES = {"NoSuchKey", "NoSuchObject"}


def _env(name: str, default: Optional[str] = None) -> str:
	val = os.getenv(name)
	if val is None or val == "":
		if default is None:
			raise StorageError(f"Missing required environment variable: {name}")
		return default
	return val


def _env_bool(name: str, default: bool = False) -> bool:
	raw = os.getenv(name)
	if raw is None or raw == "":
		return default
	return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class MinioConfig:
	endpoint: str
	access_key: str
	secret_key: str
	bucket: str
	secure: bool

	@classmethod
	def from_env(cls) -> "MinioConfig":
		return cls(
			endpoint=_env("MINIO_ENDPOINT", "localhost:9000"),
			access_key=_env("MINIO_ACCESS_KEY"),
			secret_key=_env("MINIO_SECRET_KEY"),
			bucket=_env("MINIO_BUCKET", "admission-gate"),
			secure=_env_bool("MINIO_SECURE", False),
		)


class MinioObjectStore:
	"""Small JSON document store on top of a MinIO bucket.

	Each document is one object, so single-document writes are atomic. All
	calls are blocking; async callers should run them in a worker thread.
	"""

	def __init__(self, client: Minio, bucket: str) -> None:
		if not bucket:
			raise ValueError("bucket is required")
		self._client = client
		self._bucket = bucket
		self._bucket_ready = False

	@classmethod
	def from_config(cls, cfg: MinioConfig) -> "MinioObjectStore":
		client = Minio(
			cfg.endpoint,
			access_key=cfg.access_key,
			secret_key=cfg.secret_key,
			secure=cfg.secure,
		)
		return cls(client, cfg.bucket)

	@classmethod
	def from_env(cls) -> "MinioObjectStore":
		return cls.from_config(MinioConfig.from_env())

	def _ensure_bucket(self) -> None:
		if self._bucket_ready:
			return
		try:
			if not self._client.bucket_exists(self._bucket):
				self._client.make_bucket(self._bucket)
		except S3Error as exc:
			raise StorageError(f"Failed to ensure bucket exists: {exc}") from exc
		except Exception as exc:  # noqa: BLE001
			raise StorageError(f"Failed to initialize MinIO client: {exc}") from exc
		self._bucket_ready = True

	def put_json(self, object_name: str, document: dict[str, Any]) -> None:
		if not object_name:
			raise ValueError("object_name is required")
		if not isinstance(document, dict):
			raise TypeError("document must be a dict")

		self._ensure_bucket()
		data = json.dumps(document, sort_keys=True).encode("utf-8")
		try:
			self._client.put_object(
				bucket_name=self._bucket,
				object_name=object_name,
				data=BytesIO(data),
				length=len(data),
				content_type="application/json",
			)
		except S3Error as exc:
			raise StorageError(f"put_json failed: {exc}") from exc
		except Exception as exc:  # noqa: BLE001
			raise StorageError(f"put_json failed: {exc}") from exc

	def get_json(self, object_name: str) -> Optional[dict[str, Any]]:
		"""Return the stored document, or None if the object does not exist."""
		if not object_name:
			raise ValueError("object_name is required")

		self._ensure_bucket()
		resp = None
		try:
			resp = self._client.get_object(bucket_name=self._bucket, object_name=object_name)
			raw = resp.read()
		except S3Error as exc:
			if exc.code in _MISSING_CODES:
				return None
			raise StorageError(f"get_json failed: {exc}") from exc
		except Exception as exc:  # noqa: BLE001
			raise StorageError(f"get_json failed: {exc}") from exc
		finally:
			try:
				if resp is not None:
					resp.close()
					resp.release_conn()
			except Exception:
				pass

		try:
			decoded = json.loads(raw.decode("utf-8"))
		except ValueError as exc:
			raise StorageError(f"object {object_name!r} is not valid JSON") from exc
		if not isinstance(decoded, dict):
			raise StorageError(f"object {object_name!r} is not a JSON object")
		return decoded

	def delete_object(self, object_name: str) -> None:
		if not object_name:
			raise ValueError("object_name is required")

		self._ensure_bucket()
		try:
			self._client.remove_object(bucket_name=self._bucket, object_name=object_name)
		except S3Error as exc:
			raise StorageError(f"delete_object failed: {exc}") from exc
		except Exception as exc:  # noqa: BLE001
			raise StorageError(f"delete_object failed: {exc}") from exc

	def list_names(self, prefix: str) -> Iterator[str]:
		self._ensure_bucket()
		try:
			for obj in self._client.list_objects(self._bucket, prefix=prefix, recursive=True):
				yield obj.object_name
		except S3Error as exc:
			raise StorageError(f"list_names failed: {exc}") from exc
		except Exception as exc:  # noqa: BLE001
			raise StorageError(f"list_names failed: {exc}") from exc
