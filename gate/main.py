from __future__ import annotations

import json
import logging
import random
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from storage.minio_adapter import MinioObjectStore

from .admin import AdminAuthorizer
from .ban_store import BanStore, InMemoryBanStore, MinioBanStore
from .config import GateConfig, configure_logging
from .key_store import ControlKeyPolicy, KeyStore, MinioKeyStore, StaticKeyStore
from .middleware import AdmissionMiddleware
from .models import Admission, EndpointTable


logger = logging.getLogger(__name__)

ADMIN_PATHS = frozenset({"/admin/unban"})


class UnbanRequest(BaseModel):
	address: str = Field(..., min_length=1)


class UnbanResponse(BaseModel):
	success: bool
	address: str
	lifted: bool


def _admission(request: Request) -> Admission:
	return getattr(request.state, "admission", None) or Admission()


def _signed_json(request: Request) -> Any:
	admission = _admission(request)
	try:
		return json.loads((admission.body or b"").decode("utf-8"))
	except ValueError as exc:
		raise HTTPException(status_code=400, detail="Body is not valid JSON") from exc


def _build_stores(config: GateConfig) -> tuple[KeyStore, BanStore]:
	if config.store_backend == "minio":
		objects = MinioObjectStore.from_env()
		key_store: KeyStore = (
			StaticKeyStore.from_base64(config.control_public_key_b64)
			if config.control_public_key_b64
			else MinioKeyStore(objects)
		)
		return key_store, MinioBanStore(objects)
	return StaticKeyStore.from_base64(config.control_public_key_b64), InMemoryBanStore()


def create_app(
	config: Optional[GateConfig] = None,
	*,
	key_store: Optional[KeyStore] = None,
	ban_store: Optional[BanStore] = None,
	rng: Optional[random.Random] = None,
) -> FastAPI:
	config = config or GateConfig.from_env()
	if key_store is None or ban_store is None:
		default_keys, default_bans = _build_stores(config)
		key_store = key_store or default_keys
		ban_store = ban_store or default_bans

	app = FastAPI(title="Admission Gate", version="1.0")
	app.state.ban_store = ban_store

	@app.exception_handler(HTTPException)
	async def _http_error(request: Request, exc: HTTPException) -> JSONResponse:
		return JSONResponse({"success": False, "error": exc.detail}, status_code=exc.status_code)

	@app.get("/healthz")
	async def healthz() -> dict[str, str]:
		"""Health check endpoint. Does not touch ban or key state."""
		return {"status": "ok"}

	@app.post("/echo")
	async def echo(request: Request) -> dict[str, Any]:
		admission = _admission(request)
		return {
			"success": True,
			"public_key": admission.public_key.to_base64() if admission.public_key else None,
			"payload": _signed_json(request),
		}

	@app.post("/admin/unban", response_model=UnbanResponse)
	async def unban(request: Request) -> UnbanResponse:
		try:
			body = UnbanRequest.model_validate(_signed_json(request))
		except ValidationError as exc:
			raise HTTPException(status_code=422, detail="Body should be {\"address\": <string>}") from exc
		lifted = await request.app.state.ban_store.unban(body.address)
		logger.info("Ban lift requested (address=%s, lifted=%s)", body.address, lifted)
		return UnbanResponse(success=True, address=body.address, lifted=lifted)

	endpoints = EndpointTable.from_routes(
		app.routes,
		max_content_length=config.max_content_length,
		privileged_paths=ADMIN_PATHS,
	)
	authorizer = AdminAuthorizer(
		ban_store=ban_store,
		policy=ControlKeyPolicy(key_store),
		ban_seconds=config.ban_seconds,
		ban_jitter_seconds=config.ban_jitter_seconds,
		trust_forwarded_headers=config.trust_forwarded_headers,
		rng=rng,
	)
	app.add_middleware(AdmissionMiddleware, endpoints=endpoints, authorizer=authorizer)
	app.state.endpoints = endpoints
	return app


def _app_from_env() -> FastAPI:
	config = GateConfig.from_env()
	configure_logging(config.log_level)
	return create_app(config)


app = _app_from_env()
