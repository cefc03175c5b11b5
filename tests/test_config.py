"""
Tests for environment-driven configuration.
"""
import pytest

from gate.config import ConfigError, GateConfig


GATE_VARS = [
	"GATE_MAX_CONTENT_LENGTH",
	"GATE_CONTROL_PUBLIC_KEY",
	"GATE_BAN_SECONDS",
	"GATE_BAN_JITTER_SECONDS",
	"GATE_TRUST_FORWARDED_HEADERS",
	"GATE_STORE_BACKEND",
	"GATE_LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
	for name in GATE_VARS:
		monkeypatch.delenv(name, raising=False)


def test_defaults():
	cfg = GateConfig.from_env()
	assert cfg == GateConfig()
	assert cfg.ban_seconds == 300
	assert cfg.ban_jitter_seconds == 30
	assert cfg.trust_forwarded_headers is True


def test_overrides(monkeypatch):
	monkeypatch.setenv("GATE_MAX_CONTENT_LENGTH", "2048")
	monkeypatch.setenv("GATE_BAN_SECONDS", "60")
	monkeypatch.setenv("GATE_TRUST_FORWARDED_HEADERS", "off")
	monkeypatch.setenv("GATE_STORE_BACKEND", "MinIO")
	monkeypatch.setenv("GATE_LOG_LEVEL", "debug")
	cfg = GateConfig.from_env()
	assert cfg.max_content_length == 2048
	assert cfg.ban_seconds == 60
	assert cfg.trust_forwarded_headers is False
	assert cfg.store_backend == "minio"
	assert cfg.log_level == "DEBUG"


@pytest.mark.parametrize(
	"name,value",
	[
		("GATE_MAX_CONTENT_LENGTH", "lots"),
		("GATE_MAX_CONTENT_LENGTH", "0"),
		("GATE_BAN_SECONDS", "-1"),
		("GATE_STORE_BACKEND", "redis"),
	],
)
def test_invalid_values(monkeypatch, name, value):
	monkeypatch.setenv(name, value)
	with pytest.raises(ConfigError):
		GateConfig.from_env()
