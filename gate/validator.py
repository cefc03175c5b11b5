from __future__ import annotations

import logging
from typing import Optional

from signing.ecdsa import KeyMalformed, PublicKey, SignatureMalformed

from .errors import (
	KeyOrSignatureMalformed,
	MissingAuthHeaders,
	NotFound,
	PayloadTooLarge,
	SignatureInvalid,
	UnsupportedMediaType,
)
from .models import MUTATING_METHOD, Admission, EndpointTable, IncomingRequest


logger = logging.getLogger(__name__)

ACCEPTED_CONTENT_TYPES = ("application/json", "application/json; charset=utf-8")

HEADER_PUBLIC_KEY = "X-Public-Key"
HEADER_SIGNATURE = "X-Signature"


def _parse_content_length(raw: Optional[str]) -> Optional[int]:
	"""Return the declared length, or None if absent, non-numeric or zero."""
	if raw is None:
		return None
	text = raw.strip()
	if not (text.isascii() and text.isdigit()):
		return None
	value = int(text)
	return value or None


async def validate_request(request: IncomingRequest, endpoints: EndpointTable) -> Admission:
	"""Run the structural and signature checks for one request.

	Raises a `RequestRejected` subclass on the first failing check. Mutating
	requests that pass carry their raw body and the verified signer key.
	"""
	if not endpoints.exists(request.method, request.path):
		raise NotFound()

	if request.method != MUTATING_METHOD:
		return Admission()

	raw_length = request.headers.get("content-length")
	declared = _parse_content_length(raw_length)
	max_length = endpoints.max_content_length
	if declared is None or declared > max_length:
		raise PayloadTooLarge(max_content_length=max_length, content_length=raw_length)

	body = await request.body()
	# A body shorter than its declared length is accepted.
	if len(body) > declared:
		raise PayloadTooLarge(max_content_length=max_length, content_length=raw_length)

	if request.headers.get("content-type") not in ACCEPTED_CONTENT_TYPES:
		raise UnsupportedMediaType(ACCEPTED_CONTENT_TYPES)

	key_b64 = request.headers.get(HEADER_PUBLIC_KEY)
	signature_b64 = request.headers.get(HEADER_SIGNATURE)
	if not key_b64 or not signature_b64:
		raise MissingAuthHeaders()

	try:
		public_key = PublicKey.from_base64(key_b64)
	except KeyMalformed as exc:
		logger.debug("Rejecting malformed public key: %s", exc)
		raise KeyOrSignatureMalformed() from exc

	try:
		valid = public_key.verify(signature_b64, body)
	except SignatureMalformed as exc:
		logger.debug("Rejecting malformed signature: %s", exc)
		raise KeyOrSignatureMalformed(SignatureInvalid.default_message) from exc
	if not valid:
		raise SignatureInvalid()

	return Admission(body=body, public_key=public_key)
