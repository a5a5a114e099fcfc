"""Envelope construction, signing, and verification.

Wire contract for one call:

* JSON body: the original body fields, plus ``signedPayload`` (standard
  base64 signature over ``canonicalize(body)``) and, for paid services,
  ``auth_token``.
* Body-less requests whose payload travels as query parameters carry the
  signature over ``canonicalize(params)`` in the ``X-Signed-Payload`` header.
* Signed requests name their key in ``X-Signer-Public-Key`` and the scheme
  in ``X-Signature-Algorithm``.
"""

import base64
import json
import re
from dataclasses import dataclass, field
from typing import Any

from .authorization import AuthorizationBroker
from .canonicaljson import canonicalize
from .errors import AuthorizationError, EncodingError, EnvelopeError
from .identity import Identity
from .signing import DEFAULT_SCHEME, Signature, SignatureScheme, sign, verify

SIGNATURE_FIELD = "signedPayload"
AUTH_TOKEN_FIELD = "auth_token"
RESERVED_FIELDS = frozenset({SIGNATURE_FIELD, AUTH_TOKEN_FIELD})

PUBLIC_KEY_HEADER = "X-Signer-Public-Key"
ALGORITHM_HEADER = "X-Signature-Algorithm"
SIGNATURE_HEADER = "X-Signed-Payload"

_BASE64_STANDARD_RE = re.compile(r"^[A-Za-z0-9+/]*={0,2}$")


def _validate_base64_standard(value: Any, field_name: str) -> bytes:
    """Decode and validate standard base64 (RFC 4648 section 4). Rejects URL-safe."""
    if not isinstance(value, str):
        raise EnvelopeError(f"{field_name} must be a string")
    if "-" in value or "_" in value:
        raise EnvelopeError(
            f"{field_name} uses URL-safe base64; standard base64 required"
        )
    if not _BASE64_STANDARD_RE.match(value):
        raise EnvelopeError(f"{field_name} is not valid base64")
    try:
        return base64.b64decode(value)
    except Exception as e:
        raise EnvelopeError(f"{field_name} base64 decode failed: {e}") from e


@dataclass
class Envelope:
    """The signed (and possibly authorized) unit sent for one call."""

    method: str
    path: str
    data: dict | None = None
    query: dict | None = None
    signature: Signature | None = None
    auth_token: str | None = field(default=None, repr=False)
    public_key: str | None = None

    @property
    def signed(self) -> bool:
        return self.signature is not None

    @property
    def signed_payload(self) -> str | None:
        return self.signature.to_base64() if self.signature else None

    def headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.data is not None:
            headers["Content-Type"] = "application/json"
        if self.signature is not None:
            headers[PUBLIC_KEY_HEADER] = self.public_key or ""
            headers[ALGORITHM_HEADER] = self.signature.algorithm
            if self.data is None:
                headers[SIGNATURE_HEADER] = self.signed_payload
        return headers

    def body(self) -> dict | None:
        """The JSON body as sent: data fields plus signature and token."""
        if self.data is None:
            return None
        body = dict(self.data)
        if self.signature is not None:
            body[SIGNATURE_FIELD] = self.signed_payload
        if self.auth_token is not None:
            body[AUTH_TOKEN_FIELD] = self.auth_token
        return body

    def encoded_body(self) -> bytes | None:
        body = self.body()
        if body is None:
            return None
        return json.dumps(body, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


class EnvelopeBuilder:
    """Encodes, signs and authorizes request payloads."""

    def __init__(self, identity: Identity, broker: AuthorizationBroker | None = None):
        self._identity = identity
        self._broker = broker

    async def build(
        self,
        method: str,
        path: str,
        body: dict | None = None,
        *,
        signing_required: bool = True,
        target_service_id: str | None = None,
        query: dict | None = None,
    ) -> Envelope:
        """Build one envelope.

        Authorization happens before anything is signed or sent: if it
        fails, no envelope is produced.

        Raises:
            AuthorizationError: If the target service cannot be authorized.
            EncodingError: If the payload is not canonically encodable or
                uses a reserved field name.
            SigningError: If signing fails.
        """
        if body is not None:
            if not isinstance(body, dict):
                raise EncodingError("Request body must be a JSON object")
            clash = RESERVED_FIELDS.intersection(body)
            if clash:
                raise EncodingError(f"Request body uses reserved fields: {sorted(clash)}")

        payload = body if body is not None else query
        encoded = None
        if signing_required and payload is not None:
            encoded = canonicalize(payload)

        auth_token = None
        if target_service_id is not None:
            if self._broker is None:
                raise AuthorizationError("No authorization broker configured")
            token = await self._broker.ensure_authorized(target_service_id)
            auth_token = token.value

        envelope = Envelope(
            method=method.upper(),
            path=path,
            data=body,
            query=query,
            auth_token=auth_token,
        )
        if encoded is not None:
            envelope.signature = sign(encoded, self._identity)
            envelope.public_key = self._identity.public_key_base64
        return envelope


def verify_envelope(
    envelope: Envelope, scheme: SignatureScheme = DEFAULT_SCHEME
) -> None:
    """Verify an envelope's signature against its embedded public key.

    Raises:
        EnvelopeError: On structural violations.
        SignatureError: On signature verification failure.
    """
    if envelope.signature is None:
        raise EnvelopeError("Envelope is not signed")
    payload = envelope.data if envelope.data is not None else envelope.query
    if payload is None:
        raise EnvelopeError("Signed envelope has no payload")
    pubkey_bytes = _validate_base64_standard(envelope.public_key, "public_key")
    _validate_base64_standard(envelope.signed_payload, SIGNATURE_FIELD)
    verify(pubkey_bytes, envelope.signature, canonicalize(payload), scheme)


def verify_body(body: dict, public_key: str, scheme: SignatureScheme = DEFAULT_SCHEME) -> None:
    """Verify a wire body (``data`` fields plus ``signedPayload``).

    ``auth_token`` is not covered by the signature and is ignored.
    """
    if not isinstance(body, dict):
        raise EnvelopeError("body must be a JSON object")
    if SIGNATURE_FIELD not in body:
        raise EnvelopeError(f"Missing envelope field: {SIGNATURE_FIELD}")
    sig_bytes = _validate_base64_standard(body[SIGNATURE_FIELD], SIGNATURE_FIELD)
    pubkey_bytes = _validate_base64_standard(public_key, "public_key")
    data = {k: v for k, v in body.items() if k not in RESERVED_FIELDS}
    verify(pubkey_bytes, Signature(sig_bytes, scheme.algorithm), canonicalize(data), scheme)
