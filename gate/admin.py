from __future__ import annotations

import logging
import random
from typing import Optional

from .ban_store import BanStore
from .errors import Banned, NotControlKey
from .key_store import AuthorizationPolicy
from .models import MUTATING_METHOD, Admission, EndpointTable, IncomingRequest
from .validator import validate_request


logger = logging.getLogger(__name__)

UNKNOWN_ADDRESS = "unknown"


def resolve_source_address(request: IncomingRequest, *, trust_forwarded_headers: bool = True) -> str:
	"""X-Real-IP, then the first X-Forwarded-For hop, then the transport peer."""
	if trust_forwarded_headers:
		real_ip = (request.headers.get("x-real-ip") or "").strip()
		if real_ip:
			return real_ip
		forwarded = request.headers.get("x-forwarded-for") or ""
		first_hop = forwarded.split(",", 1)[0].strip()
		if first_hop:
			return first_hop
	return request.peer_address or UNKNOWN_ADDRESS


class AdminAuthorizer:
	"""Gate for privileged endpoints.

	Runs the request validator, then for mutating requests:
	- rejects addresses with an active ban (no further checks);
	- admits signers accepted by the authorization policy;
	- bans everyone else for `ban_seconds` plus 1..`ban_jitter_seconds` seconds.
	"""

	def __init__(
		self,
		*,
		ban_store: BanStore,
		policy: AuthorizationPolicy,
		ban_seconds: int = 5 * 60,
		ban_jitter_seconds: int = 30,
		trust_forwarded_headers: bool = True,
		rng: Optional[random.Random] = None,
	) -> None:
		if ban_seconds <= 0:
			raise ValueError("ban_seconds must be > 0")
		if ban_jitter_seconds <= 0:
			raise ValueError("ban_jitter_seconds must be > 0")
		self._ban_store = ban_store
		self._policy = policy
		self._ban_seconds = int(ban_seconds)
		self._ban_jitter_seconds = int(ban_jitter_seconds)
		self._trust_forwarded_headers = trust_forwarded_headers
		self._rng = rng or random.Random()

	def ban_duration(self) -> int:
		# Jitter is U(0, jitter] rounded up to whole seconds.
		return self._ban_seconds + self._rng.randint(1, self._ban_jitter_seconds)

	async def authorize(self, request: IncomingRequest, endpoints: EndpointTable) -> Admission:
		admission = await validate_request(request, endpoints)
		if request.method != MUTATING_METHOD:
			return admission

		address = resolve_source_address(request, trust_forwarded_headers=self._trust_forwarded_headers)
		if await self._ban_store.is_banned(address):
			logger.warning("Rejected admin request from banned address (address=%s, path=%s)", address, request.path)
			raise Banned()

		if await self._policy.is_authorized(admission.public_key):
			return Admission(body=admission.body, public_key=admission.public_key, source_address=address)

		duration = self.ban_duration()
		await self._ban_store.ban(address, duration)
		logger.warning(
			"Banned address after non-control key admin request (address=%s, path=%s, seconds=%d)",
			address,
			request.path,
			duration,
		)
		raise NotControlKey()
