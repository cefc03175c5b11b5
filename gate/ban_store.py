from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import RLock
from typing import Callable, Dict, Optional, Protocol
from urllib.parse import quote, unquote

from storage.minio_adapter import MinioObjectStore, StorageError


logger = logging.getLogger(__name__)


class MalformedBanRecord(StorageError):
	"""A stored ban object is missing or has an unparseable `expires_at`."""


Clock = Callable[[], datetime]


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


@dataclass(frozen=True)
class BanRecord:
	address: str
	expires_at: datetime

	def is_active(self, now: datetime) -> bool:
		return now < self.expires_at


class BanStore(Protocol):
	async def get(self, address: str) -> Optional[BanRecord]:
		...

	async def is_banned(self, address: str) -> bool:
		...

	async def ban(self, address: str, duration_seconds: int) -> BanRecord:
		...

	async def unban(self, address: str) -> bool:
		...

	async def purge_expired(self) -> int:
		...


def _check_ban_args(address: str, duration_seconds: int) -> None:
	if not address:
		raise ValueError("address is required")
	if duration_seconds <= 0:
		raise ValueError("duration_seconds must be > 0")


class InMemoryBanStore:
	"""Address -> ban expiry, held in process memory.

	At most one record per address; a new ban replaces the previous expiry.
	Expired records read as absent and are evicted on access.
	"""

	def __init__(self, *, clock: Clock = _utcnow) -> None:
		self._clock = clock
		self._lock = RLock()
		self._records: Dict[str, BanRecord] = {}

	def _get_under_lock(self, address: str) -> Optional[BanRecord]:
		record = self._records.get(address)
		if record is None:
			return None
		if not record.is_active(self._clock()):
			del self._records[address]
			return None
		return record

	async def get(self, address: str) -> Optional[BanRecord]:
		with self._lock:
			return self._get_under_lock(address)

	async def is_banned(self, address: str) -> bool:
		return await self.get(address) is not None

	async def ban(self, address: str, duration_seconds: int) -> BanRecord:
		_check_ban_args(address, duration_seconds)
		record = BanRecord(
			address=address,
			expires_at=self._clock() + timedelta(seconds=int(duration_seconds)),
		)
		with self._lock:
			self._records[address] = record
		return record

	async def unban(self, address: str) -> bool:
		with self._lock:
			if self._get_under_lock(address) is None:
				return False
			del self._records[address]
			return True

	async def purge_expired(self) -> int:
		now = self._clock()
		with self._lock:
			stale = [a for a, r in self._records.items() if not r.is_active(now)]
			for address in stale:
				del self._records[address]
		return len(stale)


class MinioBanStore:
	"""Ban records persisted as one JSON object per address.

	Writes are last-write-wins per address. Reads treat expired objects as
	absent and leave them in place; only `purge_expired` deletes them, and it
	re-reads each object first so a ban written in the meantime survives.
	"""

	def __init__(self, objects: MinioObjectStore, *, prefix: str = "bans/", clock: Clock = _utcnow) -> None:
		self._objects = objects
		self._prefix = prefix
		self._clock = clock

	def _object_name(self, address: str) -> str:
		return self._prefix + quote(address, safe="")

	def _read(self, name: str) -> Optional[BanRecord]:
		doc = self._objects.get_json(name)
		if doc is None:
			return None
		try:
			expires_at = datetime.fromisoformat(str(doc["expires_at"]))
		except (KeyError, ValueError) as exc:
			raise MalformedBanRecord(f"malformed ban record {name!r}") from exc
		if expires_at.tzinfo is None:
			expires_at = expires_at.replace(tzinfo=timezone.utc)
		address = str(doc.get("address") or unquote(name[len(self._prefix):]))
		return BanRecord(address=address, expires_at=expires_at)

	def _get_sync(self, address: str) -> Optional[BanRecord]:
		record = self._read(self._object_name(address))
		if record is None or not record.is_active(self._clock()):
			return None
		return record

	def _ban_sync(self, address: str, duration_seconds: int) -> BanRecord:
		record = BanRecord(
			address=address,
			expires_at=self._clock() + timedelta(seconds=int(duration_seconds)),
		)
		self._objects.put_json(
			self._object_name(address),
			{"address": record.address, "expires_at": record.expires_at.isoformat()},
		)
		return record

	def _unban_sync(self, address: str) -> bool:
		if self._get_sync(address) is None:
			return False
		self._objects.delete_object(self._object_name(address))
		return True

	def _purge_sync(self) -> int:
		now = self._clock()
		purged = 0
		for name in list(self._objects.list_names(self._prefix)):
			try:
				record = self._read(name)
			except MalformedBanRecord:
				logger.warning("Skipping malformed ban record (object=%s)", name)
				continue
			if record is None or record.is_active(now):
				continue
			# A concurrent ban may have replaced the object since it was listed.
			current = self._read(name)
			if current is None or current.expires_at != record.expires_at:
				continue
			self._objects.delete_object(name)
			purged += 1
		return purged

	async def get(self, address: str) -> Optional[BanRecord]:
		return await asyncio.to_thread(self._get_sync, address)

	async def is_banned(self, address: str) -> bool:
		return await self.get(address) is not None

	async def ban(self, address: str, duration_seconds: int) -> BanRecord:
		_check_ban_args(address, duration_seconds)
		return await asyncio.to_thread(self._ban_sync, address, duration_seconds)

	async def unban(self, address: str) -> bool:
		return await asyncio.to_thread(self._unban_sync, address)

	async def purge_expired(self) -> int:
		return await asyncio.to_thread(self._purge_sync)
