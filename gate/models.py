from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Awaitable, Callable, FrozenSet, Iterable, Mapping, Optional, Union

from starlette.datastructures import Headers
from starlette.requests import Request

from signing.ecdsa import PublicKey


MUTATING_METHOD = "POST"


class EndpointTable:
	"""method -> path -> handler, plus the payload limit and admin paths.

	Immutable once built; owned by the caller of the pipeline.
	"""

	def __init__(
		self,
		endpoints: Mapping[str, Mapping[str, Any]],
		*,
		max_content_length: int,
		privileged_paths: Iterable[str] = (),
	) -> None:
		if max_content_length <= 0:
			raise ValueError("max_content_length must be > 0")
		self._endpoints = MappingProxyType(
			{method.upper(): MappingProxyType(dict(paths)) for method, paths in endpoints.items()}
		)
		self.max_content_length = int(max_content_length)
		self.privileged_paths: FrozenSet[str] = frozenset(privileged_paths)

	@classmethod
	def from_routes(
		cls,
		routes: Iterable[Any],
		*,
		max_content_length: int,
		privileged_paths: Iterable[str] = (),
	) -> "EndpointTable":
		"""Build the table from Starlette/FastAPI routes (exact paths only)."""
		table: dict[str, dict[str, Any]] = {}
		for route in routes:
			methods = getattr(route, "methods", None)
			path = getattr(route, "path", None)
			if not methods or not path:
				continue
			for method in methods:
				table.setdefault(method.upper(), {})[path] = getattr(route, "endpoint", None)
		return cls(table, max_content_length=max_content_length, privileged_paths=privileged_paths)

	def exists(self, method: str, path: str) -> bool:
		paths = self._endpoints.get(method.upper())
		return paths is not None and path in paths

	def is_privileged(self, path: str) -> bool:
		return path in self.privileged_paths


BodyReader = Callable[[], Awaitable[bytes]]


@dataclass
class IncomingRequest:
	"""Transport-neutral view of one request.

	The body is pulled from the transport at most once and cached.
	"""

	method: str
	path: str
	headers: Headers
	peer_address: Optional[str]
	_read_body: BodyReader = field(repr=False)
	_body: Optional[bytes] = field(default=None, repr=False)

	@classmethod
	def build(
		cls,
		*,
		method: str,
		path: str,
		headers: Union[Headers, Mapping[str, str], None] = None,
		body: bytes = b"",
		peer_address: Optional[str] = None,
	) -> "IncomingRequest":
		"""Build a request from in-memory parts."""
		if not isinstance(headers, Headers):
			headers = Headers(headers=dict(headers or {}))
		data = bytes(body)

		async def _read() -> bytes:
			return data

		return cls(method=method.upper(), path=path, headers=headers, peer_address=peer_address, _read_body=_read)

	@classmethod
	def from_starlette(cls, request: Request) -> "IncomingRequest":
		return cls(
			method=request.method.upper(),
			path=request.url.path,
			headers=request.headers,
			peer_address=request.client.host if request.client else None,
			_read_body=request.body,
		)

	async def body(self) -> bytes:
		if self._body is None:
			self._body = bytes(await self._read_body())
		return self._body


@dataclass(frozen=True)
class Admission:
	"""Successful pipeline outcome.

	`body` and `public_key` are None for non-mutating methods, which are
	admitted without reading the body.
	"""

	body: Optional[bytes] = None
	public_key: Optional[PublicKey] = None
	source_address: Optional[str] = None
