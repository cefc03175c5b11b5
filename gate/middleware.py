from __future__ import annotations

import logging

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from .admin import AdminAuthorizer
from .errors import RequestRejected
from .models import EndpointTable, IncomingRequest
from .validator import validate_request


logger = logging.getLogger(__name__)


class AdmissionMiddleware(BaseHTTPMiddleware):
	"""HTTP boundary of the admission pipeline.

	Every rejection is answered here, once, with `{"success": false, ...}`;
	nothing raised by the pipeline reaches the application. Admitted requests
	carry their `Admission` on `request.state.admission`.
	"""

	def __init__(self, app: ASGIApp, *, endpoints: EndpointTable, authorizer: AdminAuthorizer) -> None:
		super().__init__(app)
		self._endpoints = endpoints
		self._authorizer = authorizer

	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		incoming = IncomingRequest.from_starlette(request)
		try:
			if self._endpoints.is_privileged(incoming.path):
				admission = await self._authorizer.authorize(incoming, self._endpoints)
			else:
				admission = await validate_request(incoming, self._endpoints)
		except RequestRejected as exc:
			logger.info(
				"Request rejected (method=%s, path=%s, status=%d, reason=%s)",
				incoming.method,
				incoming.path,
				exc.status_code,
				exc.reason,
			)
			return exc.to_response()
		except Exception:  # noqa: BLE001
			logger.exception("Admission pipeline failed (method=%s, path=%s)", incoming.method, incoming.path)
			return JSONResponse({"success": False, "error": "Internal error"}, status_code=500)

		request.state.admission = admission
		return await call_next(request)
