from __future__ import annotations

from dataclasses import dataclass

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature

from .utils import b64decode, b64encode


COMPRESSED_KEY_LENGTH = 33
RAW_SIGNATURE_LENGTH = 64
_CURVE = ec.SECP256R1()


class KeyMalformed(ValueError):
	"""Raised when a public key is not a base64 compressed P-256 point."""


class SignatureMalformed(ValueError):
	"""Raised when a signature cannot be decoded."""


def _algorithm() -> ec.ECDSA:
	return ec.ECDSA(hashes.SHA256())


@dataclass(frozen=True)
class PublicKey:
	"""P-256 public key held in its 33-byte compressed encoding.

	Two keys are equal iff their compressed encodings are byte-equal.
	"""

	compressed: bytes

	def __post_init__(self) -> None:
		data = self.compressed
		if not isinstance(data, (bytes, bytearray)):
			raise KeyMalformed("public key must be bytes")
		if len(data) != COMPRESSED_KEY_LENGTH or data[0] not in (0x02, 0x03):
			raise KeyMalformed(f"public key must be a {COMPRESSED_KEY_LENGTH}-byte compressed point")
		# Point validity is checked here so that a PublicKey always holds a usable key.
		self.to_ec_key()
		object.__setattr__(self, "compressed", bytes(data))

	@classmethod
	def from_base64(cls, key_b64: str) -> "PublicKey":
		if not key_b64:
			raise KeyMalformed("public key is required")
		try:
			raw = b64decode(key_b64)
		except ValueError as exc:
			raise KeyMalformed("public key is not valid base64") from exc
		return cls(raw)

	@classmethod
	def from_key(cls, key: ec.EllipticCurvePublicKey) -> "PublicKey":
		if not isinstance(key.curve, ec.SECP256R1):
			raise KeyMalformed("public key must be on curve P-256")
		return cls(key.public_bytes(serialization.Encoding.X962, serialization.PublicFormat.CompressedPoint))

	def to_base64(self) -> str:
		return b64encode(self.compressed)

	def to_ec_key(self) -> ec.EllipticCurvePublicKey:
		try:
			return ec.EllipticCurvePublicKey.from_encoded_point(_CURVE, bytes(self.compressed))
		except ValueError as exc:
			raise KeyMalformed("public key is not a valid P-256 point") from exc

	def verify(self, signature_b64: str, message: bytes) -> bool:
		"""Verify an ECDSA signature over SHA-256(message).

		`message` is hashed exactly as given. The signature may be ASN.1 DER or
		raw 64-byte r || s, base64 encoded.
		"""
		if not signature_b64:
			raise SignatureMalformed("signature is required")
		try:
			signature = b64decode(signature_b64)
		except ValueError as exc:
			raise SignatureMalformed("signature is not valid base64") from exc
		if not signature:
			raise SignatureMalformed("signature is empty")

		key = self.to_ec_key()
		try:
			key.verify(signature, bytes(message), _algorithm())
			return True
		except InvalidSignature:
			pass

		if len(signature) != RAW_SIGNATURE_LENGTH:
			return False
		r = int.from_bytes(signature[:32], "big")
		s = int.from_bytes(signature[32:], "big")
		try:
			key.verify(encode_dss_signature(r, s), bytes(message), _algorithm())
		except (InvalidSignature, ValueError):
			return False
		return True


def verify(key_b64: str, signature_b64: str, message: bytes) -> bool:
	"""Parse `key_b64` and verify `signature_b64` over `message`.

	Raises KeyMalformed / SignatureMalformed for undecodable inputs; returns
	False only for a well-formed signature that does not match.
	"""
	return PublicKey.from_base64(key_b64).verify(signature_b64, message)


def generate_private_key() -> ec.EllipticCurvePrivateKey:
	"""Generate a fresh P-256 signing key."""
	return ec.generate_private_key(_CURVE)


def sign(private_key: ec.EllipticCurvePrivateKey, message: bytes) -> str:
	"""Return base64(DER(ECDSA(SHA-256(message))))."""
	return b64encode(private_key.sign(bytes(message), _algorithm()))


def public_key_of(private_key: ec.EllipticCurvePrivateKey) -> PublicKey:
	return PublicKey.from_key(private_key.public_key())
