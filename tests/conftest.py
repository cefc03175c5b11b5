"""
Shared fixtures: signing keys, a controllable clock, stores and a gate app.
"""
import random
from datetime import datetime, timedelta, timezone
from io import BytesIO
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from minio.error import S3Error

from client.client import encode_body, signed_headers
from gate.ban_store import InMemoryBanStore
from gate.config import GateConfig
from gate.key_store import StaticKeyStore
from gate.main import create_app
from signing.ecdsa import generate_private_key, public_key_of


class FakeClock:
	"""Callable UTC clock that only moves when told to."""

	def __init__(self, start=None):
		self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

	def __call__(self):
		return self.now

	def advance(self, seconds):
		self.now = self.now + timedelta(seconds=seconds)


class NoSuchKey(S3Error):
	"""S3Error for a missing object, without depending on S3Error's constructor."""

	code = "NoSuchKey"

	def __init__(self, object_name):
		Exception.__init__(self, f"NoSuchKey: {object_name}")


class FakeMinio:
	"""In-process stand-in for the subset of minio.Minio the adapter uses."""

	def __init__(self):
		self.buckets = set()
		self.objects = {}

	def bucket_exists(self, bucket):
		return bucket in self.buckets

	def make_bucket(self, bucket):
		self.buckets.add(bucket)

	def put_object(self, bucket_name, object_name, data, length, content_type):
		self.objects[(bucket_name, object_name)] = data.read(length)

	def get_object(self, bucket_name, object_name):
		try:
			raw = self.objects[(bucket_name, object_name)]
		except KeyError:
			raise NoSuchKey(object_name) from None
		resp = BytesIO(raw)
		resp.release_conn = lambda: None
		return resp

	def remove_object(self, bucket_name, object_name):
		self.objects.pop((bucket_name, object_name), None)

	def list_objects(self, bucket, prefix="", recursive=False):
		for (b, name) in sorted(self.objects):
			if b == bucket and name.startswith(prefix):
				yield SimpleNamespace(object_name=name)


def signed_request_headers(private_key, body, **extra):
	headers = signed_headers(private_key, body)
	headers.update(extra)
	return headers


@pytest.fixture
def clock():
	return FakeClock()


@pytest.fixture
def control_private_key():
	return generate_private_key()


@pytest.fixture
def other_private_key():
	return generate_private_key()


@pytest.fixture
def key_store(control_private_key):
	return StaticKeyStore(public_key_of(control_private_key))


@pytest.fixture
def ban_store(clock):
	return InMemoryBanStore(clock=clock)


@pytest.fixture
def fake_minio():
	return FakeMinio()


@pytest.fixture
def gate_config():
	return GateConfig(max_content_length=1024)


@pytest.fixture
def app(gate_config, key_store, ban_store):
	return create_app(gate_config, key_store=key_store, ban_store=ban_store, rng=random.Random(7))


@pytest.fixture
def client(app):
	return TestClient(app)


@pytest.fixture
def post_signed(client):
	"""POST `payload` to `path`, signed by `private_key`."""

	def _post(path, payload, private_key, headers=None):
		body = encode_body(payload)
		return client.post(path, content=body, headers=signed_request_headers(private_key, body, **(headers or {})))

	return _post
