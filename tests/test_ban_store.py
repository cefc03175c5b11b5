"""
Tests for ban stores: replace-not-extend, expiry boundaries, eviction, MinIO persistence.
"""
from datetime import timedelta

import pytest

from gate.ban_store import InMemoryBanStore, MinioBanStore
from storage.minio_adapter import MinioObjectStore


IP = "192.0.2.10"


@pytest.fixture
def memory_store(clock):
	return InMemoryBanStore(clock=clock)


@pytest.fixture
def minio_store(fake_minio, clock):
	return MinioBanStore(MinioObjectStore(fake_minio, "gate-test"), clock=clock)


@pytest.fixture(params=["memory", "minio"])
def store(request, memory_store, minio_store):
	return memory_store if request.param == "memory" else minio_store


class TestBanStoreContract:

	@pytest.mark.asyncio
	async def test_unknown_address_is_not_banned(self, store):
		assert await store.is_banned(IP) is False
		assert await store.get(IP) is None

	@pytest.mark.asyncio
	async def test_ban_sets_expiry(self, store, clock):
		record = await store.ban(IP, 300)
		assert record.address == IP
		assert record.expires_at == clock() + timedelta(seconds=300)
		assert await store.is_banned(IP) is True

	@pytest.mark.asyncio
	async def test_second_ban_replaces_expiry(self, store, clock):
		await store.ban(IP, 600)
		await store.ban(IP, 10)
		record = await store.get(IP)
		assert record.expires_at == clock() + timedelta(seconds=10)

	@pytest.mark.asyncio
	async def test_second_ban_can_lengthen(self, store, clock):
		await store.ban(IP, 10)
		clock.advance(5)
		await store.ban(IP, 10)
		assert (await store.get(IP)).expires_at == clock() + timedelta(seconds=10)

	@pytest.mark.asyncio
	async def test_banned_strictly_before_expiry(self, store, clock):
		await store.ban(IP, 30)
		clock.advance(29.999)
		assert await store.is_banned(IP) is True
		clock.advance(0.001)
		assert await store.is_banned(IP) is False
		clock.advance(100)
		assert await store.is_banned(IP) is False

	@pytest.mark.asyncio
	async def test_bans_are_per_address(self, store):
		await store.ban(IP, 30)
		assert await store.is_banned("192.0.2.11") is False

	@pytest.mark.asyncio
	@pytest.mark.parametrize("duration", [0, -1])
	async def test_duration_must_be_positive(self, store, duration):
		with pytest.raises(ValueError):
			await store.ban(IP, duration)

	@pytest.mark.asyncio
	async def test_address_is_required(self, store):
		with pytest.raises(ValueError):
			await store.ban("", 30)

	@pytest.mark.asyncio
	async def test_unban(self, store):
		await store.ban(IP, 30)
		assert await store.unban(IP) is True
		assert await store.is_banned(IP) is False
		assert await store.unban(IP) is False

	@pytest.mark.asyncio
	async def test_unban_of_expired_record_reports_nothing_lifted(self, store, clock):
		await store.ban(IP, 30)
		clock.advance(30)
		assert await store.unban(IP) is False

	@pytest.mark.asyncio
	async def test_purge_expired(self, store, clock):
		await store.ban(IP, 10)
		await store.ban("192.0.2.11", 100)
		clock.advance(50)
		assert await store.purge_expired() == 1
		assert await store.is_banned("192.0.2.11") is True


class TestMinioBanStore:

	@pytest.mark.asyncio
	async def test_records_are_one_object_per_address(self, minio_store, fake_minio):
		await minio_store.ban("2001:db8::1", 30)
		await minio_store.ban(IP, 30)
		names = sorted(name for (_, name) in fake_minio.objects)
		assert names == ["bans/192.0.2.10", "bans/2001%3Adb8%3A%3A1"]

	@pytest.mark.asyncio
	async def test_expired_record_reads_as_absent_until_purged(self, minio_store, fake_minio, clock):
		await minio_store.ban(IP, 30)
		clock.advance(31)
		assert await minio_store.is_banned(IP) is False
		assert ("gate-test", "bans/192.0.2.10") in fake_minio.objects
		assert await minio_store.purge_expired() == 1
		assert fake_minio.objects == {}

	@pytest.mark.asyncio
	async def test_read_of_expired_record_keeps_a_concurrent_ban(self, minio_store, fake_minio, clock, monkeypatch):
		objects = MinioObjectStore(fake_minio, "gate-test")
		writer = MinioBanStore(objects, clock=clock)
		await minio_store.ban(IP, 30)
		clock.advance(31)

		read = minio_store._read

		def read_then_rebanned(name):
			record = read(name)
			writer._ban_sync(IP, 300)
			return record

		monkeypatch.setattr(minio_store, "_read", read_then_rebanned)
		assert await minio_store.is_banned(IP) is False
		assert await writer.is_banned(IP) is True

	@pytest.mark.asyncio
	async def test_purge_keeps_a_ban_written_after_listing(self, minio_store, fake_minio, clock, monkeypatch):
		objects = MinioObjectStore(fake_minio, "gate-test")
		writer = MinioBanStore(objects, clock=clock)
		await minio_store.ban(IP, 30)
		clock.advance(31)

		read = minio_store._read
		calls = []

		def rebanned_after_first_read(name):
			record = read(name)
			if not calls:
				writer._ban_sync(IP, 300)
			calls.append(name)
			return record

		monkeypatch.setattr(minio_store, "_read", rebanned_after_first_read)
		assert await minio_store.purge_expired() == 0
		assert await writer.is_banned(IP) is True

	@pytest.mark.asyncio
	async def test_purge_skips_malformed_records(self, minio_store, fake_minio, clock):
		await minio_store.ban(IP, 30)
		fake_minio.objects[("gate-test", "bans/broken")] = b'{"address": "broken"}'
		clock.advance(31)
		assert await minio_store.purge_expired() == 1
		assert list(fake_minio.objects) == [("gate-test", "bans/broken")]

	@pytest.mark.asyncio
	async def test_state_survives_a_new_store_instance(self, fake_minio, clock):
		objects = MinioObjectStore(fake_minio, "gate-test")
		await MinioBanStore(objects, clock=clock).ban(IP, 30)
		assert await MinioBanStore(objects, clock=clock).is_banned(IP) is True
