from __future__ import annotations

from typing import Iterable, Optional

from starlette.responses import JSONResponse


class RequestRejected(Exception):
	"""Terminal, request-scoped failure of the admission pipeline.

	Never retried and never fatal to the process. The HTTP boundary renders it
	once as `{"success": false, "error": message}` with `status_code`.
	"""

	status_code: int = 400
	default_message: str = "Bad request"

	def __init__(self, message: Optional[str] = None) -> None:
		self.message = message or self.default_message
		super().__init__(self.message)

	@property
	def reason(self) -> str:
		return type(self).__name__

	def to_payload(self) -> dict[str, object]:
		return {"success": False, "error": self.message}

	def to_response(self) -> JSONResponse:
		return JSONResponse(self.to_payload(), status_code=self.status_code)


class NotFound(RequestRejected):
	status_code = 404
	default_message = "Not found"


class PayloadTooLarge(RequestRejected):
	status_code = 413

	def __init__(self, *, max_content_length: int, content_length: Optional[str]) -> None:
		self.max_content_length = max_content_length
		self.content_length = content_length
		shown = content_length if content_length is not None else "missing"
		super().__init__(f"Content length should be less than {max_content_length} (but is {shown})")


class UnsupportedMediaType(RequestRejected):
	status_code = 400

	def __init__(self, accepted: Iterable[str]) -> None:
		self.accepted = tuple(accepted)
		super().__init__('Header "Content-Type" should be one of "' + '", "'.join(self.accepted) + '"')


class MissingAuthHeaders(RequestRejected):
	status_code = 401
	default_message = 'Header should contain "X-Public-Key" and "X-Signature"'


class KeyOrSignatureMalformed(RequestRejected):
	status_code = 401
	default_message = 'Header "X-Public-Key" should be the compressed public key (264 bits) base64 encoded'


class SignatureInvalid(RequestRejected):
	status_code = 401
	default_message = 'Header "X-Signature" does not verify (public key, BASE64(SIGN(SHA256(content))))'


class Banned(RequestRejected):
	status_code = 401
	default_message = "Banned"


class NotControlKey(RequestRejected):
	status_code = 401
	default_message = 'Header "X-Public-Key" should be the control key'
