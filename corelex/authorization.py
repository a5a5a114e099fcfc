"""Per-service authorization: signed claims, token cache and single-flight.

A paid service is invoked with an auth token obtained by submitting a
signed authorization claim::

    claim = {"issued_at", "nonce", "requester", "service_id"}
    signature = ed25519(canonicalize(claim))

Tokens are cached per service id until they expire (minus an optional
refresh margin) or the server rejects them. Concurrent callers for one
service id share a single in-flight authorization; different service ids
never wait on each other.
"""

import asyncio
import enum
import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable

from .canonicaljson import canonicalize
from .errors import AuthorizationError
from .identity import Identity
from .signing import sign
from .types import AuthGrant, Authorization

_LOG = logging.getLogger(__name__)

Submit = Callable[[Authorization], Awaitable[AuthGrant]]


class AuthState(enum.Enum):
    UNAUTHORIZED = "unauthorized"
    PENDING = "pending"
    AUTHORIZED = "authorized"
    EXPIRED = "expired"


@dataclass(frozen=True)
class AuthToken:
    service_id: str
    value: str
    # time.monotonic() deadline
    expires_at: float

    def expired(self, now: float, margin: float = 0.0) -> bool:
        return now + margin >= self.expires_at

    def __repr__(self) -> str:
        return f"AuthToken(service_id={self.service_id!r}, expires_at={self.expires_at!r})"


class _ServiceSlot:
    __slots__ = ("lock", "token", "inflight", "state")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.token: AuthToken | None = None
        self.inflight: asyncio.Task | None = None
        self.state = AuthState.UNAUTHORIZED


class TokenStore:
    """Keyed token cache with one lock per service id."""

    def __init__(self) -> None:
        self._slots: dict[str, _ServiceSlot] = {}

    def slot(self, service_id: str) -> _ServiceSlot:
        slot = self._slots.get(service_id)
        if slot is None:
            slot = self._slots[service_id] = _ServiceSlot()
        return slot

    def peek(self, service_id: str) -> _ServiceSlot | None:
        return self._slots.get(service_id)

    def __contains__(self, service_id: str) -> bool:
        slot = self._slots.get(service_id)
        return slot is not None and slot.token is not None

    def __len__(self) -> int:
        return sum(1 for slot in self._slots.values() if slot.token is not None)


def _utc_now_iso() -> str:
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def _consume_exception(task: asyncio.Task) -> None:
    # Waiters may all have been cancelled; keep the loop from warning about it.
    if not task.cancelled():
        task.exception()


class AuthorizationBroker:
    """Obtains and caches auth tokens for paid services.

    Args:
        identity: Caller identity used to sign authorization claims.
        submit: Coroutine function sending an :class:`Authorization` to the
            authorize endpoint and returning the granted ``data`` mapping.
            It raises :class:`AuthorizationError` when the server refuses.
        authorization_timeout: Upper bound for one authorization round trip.
        default_token_ttl: Token lifetime when the grant carries no expiry.
        token_refresh_margin: Treat tokens as expired this many seconds early.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        identity: Identity,
        submit: Submit,
        *,
        authorization_timeout: float = 30.0,
        default_token_ttl: float = 300.0,
        token_refresh_margin: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
        store: TokenStore | None = None,
    ):
        self._identity = identity
        self._submit = submit
        self._authorization_timeout = authorization_timeout
        self._default_token_ttl = default_token_ttl
        self._refresh_margin = token_refresh_margin
        self._clock = clock
        self._store = store if store is not None else TokenStore()
        self._last_nonce = 0

    @property
    def store(self) -> TokenStore:
        return self._store

    def state(self, service_id: str) -> AuthState:
        """Current state of *service_id*'s authorization."""
        slot = self._store.peek(service_id)
        if slot is None:
            return AuthState.UNAUTHORIZED
        if slot.state is AuthState.AUTHORIZED and slot.token is not None:
            if slot.token.expired(self._clock()):
                return AuthState.EXPIRED
        return slot.state

    def cached_token(self, service_id: str) -> AuthToken | None:
        """The usable cached token for *service_id*, if any."""
        slot = self._store.peek(service_id)
        if slot is None or slot.token is None:
            return None
        if slot.token.expired(self._clock(), self._refresh_margin):
            return None
        return slot.token

    def _next_nonce(self) -> int:
        # Microseconds keep the value inside the canonical safe-integer range.
        nonce = max(time.time_ns() // 1000, self._last_nonce + 1)
        self._last_nonce = nonce
        return nonce

    def build_authorization(self, service_id: str) -> Authorization:
        """Build and sign a fresh authorization claim for *service_id*."""
        if not isinstance(service_id, str) or not service_id:
            raise AuthorizationError("service_id must be a non-empty string")
        claim = {
            "issued_at": _utc_now_iso(),
            "nonce": self._next_nonce(),
            "requester": self._identity.public_key_base64,
            "service_id": service_id,
        }
        signature = sign(canonicalize(claim), self._identity)
        return {**claim, "signature": signature.to_base64()}

    async def ensure_authorized(self, service_id: str) -> AuthToken:
        """Return a valid token for *service_id*, authorizing if needed.

        Raises:
            AuthorizationError: If the server refuses, the grant is unusable,
                or the handshake exceeds ``authorization_timeout``.
            TransportError: If the authorize request failed on the network.
        """
        token = self.cached_token(service_id)
        if token is not None:
            return token

        slot = self._store.slot(service_id)
        async with slot.lock:
            token = self.cached_token(service_id)
            if token is not None:
                return token
            if slot.inflight is None:
                authorization = self.build_authorization(service_id)
                slot.state = AuthState.PENDING
                task = asyncio.get_running_loop().create_task(
                    self._authorize(service_id, slot, authorization)
                )
                task.add_done_callback(_consume_exception)
                slot.inflight = task
            task = slot.inflight

        # A cancelled waiter must not cancel the shared authorization.
        return await asyncio.shield(task)

    async def _authorize(
        self, service_id: str, slot: _ServiceSlot, authorization: Authorization
    ) -> AuthToken:
        token = None
        try:
            grant = await asyncio.wait_for(
                self._submit(authorization), self._authorization_timeout
            )
            token = self._token_from_grant(service_id, grant)
        except asyncio.TimeoutError:
            _LOG.info("authorization timed out service=%s", service_id)
            raise AuthorizationError(
                f"Authorization for service {service_id} timed out "
                f"after {self._authorization_timeout}s"
            ) from None
        except AuthorizationError as e:
            _LOG.info("authorization refused service=%s reason=%s", service_id, e.message)
            raise
        finally:
            slot.inflight = None
            if token is None:
                slot.state = AuthState.UNAUTHORIZED

        slot.token = token
        slot.state = AuthState.AUTHORIZED
        _LOG.info(
            "authorization granted service=%s ttl=%.1fs",
            service_id,
            token.expires_at - self._clock(),
        )
        return token

    def accept_grant(self, service_id: str, grant: AuthGrant) -> AuthToken:
        """Store a token obtained outside :meth:`ensure_authorized`."""
        token = self._token_from_grant(service_id, grant)
        slot = self._store.slot(service_id)
        slot.token = token
        slot.state = AuthState.AUTHORIZED
        return token

    def invalidate(self, service_id: str, token_value: str | None = None) -> None:
        """Drop the cached token after the server rejected it.

        With *token_value* given, only that exact token is dropped so a
        stale rejection never evicts a newer token.
        """
        slot = self._store.peek(service_id)
        if slot is None or slot.token is None:
            return
        if token_value is not None and slot.token.value != token_value:
            return
        slot.token = None
        slot.state = AuthState.EXPIRED
        _LOG.info("auth token invalidated service=%s", service_id)

    def _token_from_grant(self, service_id: str, grant: AuthGrant) -> AuthToken:
        if not isinstance(grant, dict):
            raise AuthorizationError("Authorization response is not an object", details=grant)
        value = grant.get("auth_token")
        if not isinstance(value, str) or not value:
            raise AuthorizationError(
                "Authorization response carried no auth_token", details=grant
            )

        try:
            if grant.get("expires_in") is not None:
                ttl = float(grant["expires_in"])
            elif grant.get("expires_at"):
                expires_at = datetime.fromisoformat(
                    str(grant["expires_at"]).replace("Z", "+00:00")
                )
                if expires_at.tzinfo is None:
                    expires_at = expires_at.replace(tzinfo=timezone.utc)
                ttl = (expires_at - datetime.now(timezone.utc)).total_seconds()
            else:
                ttl = self._default_token_ttl
        except (TypeError, ValueError) as e:
            raise AuthorizationError(
                f"Authorization response has an invalid expiry: {e}", details=grant
            ) from e

        if not math.isfinite(ttl):
            raise AuthorizationError("Authorization response has an invalid expiry", details=grant)
        if ttl <= 0:
            raise AuthorizationError("Authorization response is already expired", details=grant)
        return AuthToken(service_id, value, self._clock() + ttl)
