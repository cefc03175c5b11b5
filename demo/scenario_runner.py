from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional

import uvicorn
from fastapi import FastAPI

from client.client import ClientConfig, GateRefusal, GateTransportError, SignedClient
from gate.ban_store import InMemoryBanStore
from gate.config import GateConfig, configure_logging
from gate.key_store import StaticKeyStore
from gate.main import create_app
from signing.ecdsa import generate_private_key, public_key_of


@dataclass(frozen=True)
class DemoConfig:
	host: str = "127.0.0.1"
	port: int = 8000
	http_timeout_seconds: float = 5.0

	@property
	def base_url(self) -> str:
		return f"http://{self.host}:{self.port}"


class GateServer:
	def __init__(self, app: FastAPI, host: str = "127.0.0.1", port: int = 8000) -> None:
		self._app = app
		self._host = host
		self._port = port
		self._server: Optional[uvicorn.Server] = None
		self._thread: Optional[threading.Thread] = None

	def start(self) -> None:
		config = uvicorn.Config(
			self._app,
			host=self._host,
			port=self._port,
			log_level="error",
			access_log=False,
		)
		server = uvicorn.Server(config)
		self._server = server

		def _run() -> None:
			server.run()

		t = threading.Thread(target=_run, name="gate-server", daemon=True)
		self._thread = t
		t.start()

	def stop(self) -> None:
		if self._server is not None:
			self._server.should_exit = True
		if self._thread is not None:
			self._thread.join(timeout=5)


def _wait_for_gate(client: SignedClient, attempts: int = 50, delay_s: float = 0.1) -> None:
	for _ in range(attempts):
		try:
			if client.get_json("/healthz").get("status") == "ok":
				return
		except GateTransportError:
			time.sleep(delay_s)
	raise GateTransportError("gate did not become ready")


def _expect_refusal(fn, *, status: int, contains: str) -> GateRefusal:
	try:
		body = fn()
	except GateRefusal as exc:
		if exc.status != status or contains not in exc.error:
			raise RuntimeError(f"unexpected refusal: {exc.status} {exc.error}") from exc
		return exc
	raise RuntimeError(f"expected refusal ({status}), got: {body}")


def run_demo() -> None:
	configure_logging("INFO")
	log = logging.getLogger("scenario")

	cfg = DemoConfig()
	control_private_key = generate_private_key()
	ban_store = InMemoryBanStore()
	app = create_app(
		GateConfig(),
		key_store=StaticKeyStore(public_key_of(control_private_key)),
		ban_store=ban_store,
	)
	server = GateServer(app, host=cfg.host, port=cfg.port)

	attacker_ip = "203.0.113.7"
	operator_ip = "198.51.100.20"
	client_cfg = ClientConfig(base_url=cfg.base_url, timeout_seconds=cfg.http_timeout_seconds)
	attacker = SignedClient(config=client_cfg, extra_headers={"X-Real-IP": attacker_ip})
	operator = SignedClient(
		config=client_cfg,
		private_key=control_private_key,
		extra_headers={"X-Real-IP": operator_ip},
	)

	log.info("Starting gate")
	server.start()
	try:
		_wait_for_gate(attacker)

		echoed = attacker.post_json("/echo", {"message": "hello"})
		if echoed.get("public_key") != attacker.public_key_b64:
			raise RuntimeError(f"echo did not report the signer key: {echoed}")
		log.info("Signed request admitted (signer key echoed back)")

		_expect_refusal(lambda: attacker.get_json("/missing"), status=404, contains="Not found")
		log.info("Unknown endpoint refused with 404")

		refusal = _expect_refusal(
			lambda: attacker.post_json("/admin/unban", {"address": attacker_ip}),
			status=401,
			contains="control key",
		)
		log.info("Non-control admin request refused: %s", refusal.error)

		refusal = _expect_refusal(
			lambda: attacker.post_json("/admin/unban", {"address": attacker_ip}),
			status=401,
			contains="Banned",
		)
		log.info("Banned address refused again: %s", refusal.error)

		lifted = operator.post_json("/admin/unban", {"address": attacker_ip})
		if lifted.get("lifted") is not True:
			raise RuntimeError(f"control key could not lift the ban: {lifted}")
		log.info("Control key lifted the ban (address=%s)", attacker_ip)

		echoed = attacker.post_json("/echo", {"message": "back again"})
		log.info("Attacker can use non-admin endpoints: %s", echoed.get("success"))

	finally:
		log.info("Stopping gate")
		server.stop()


if __name__ == "__main__":
	run_demo()
