"""Signature schemes and the request signer.

The pipeline only depends on :class:`SignatureScheme`. Ed25519 (PyNaCl) is
the system-wide scheme: signatures are deterministic, 64 bytes long and
travel as standard base64.
"""

import abc
import base64
from dataclasses import dataclass
from typing import TYPE_CHECKING

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from .errors import SignatureError, SigningError

if TYPE_CHECKING:
    from .identity import Identity


class SignatureScheme(abc.ABC):
    """Capability ``sign(bytes, key) -> signature`` for one key type."""

    algorithm: str

    @abc.abstractmethod
    def generate(self) -> bytes:
        """Return fresh random private key bytes."""

    @abc.abstractmethod
    def sign(self, message: bytes, private_key: bytes) -> bytes:
        """Sign *message* with raw *private_key* bytes."""

    @abc.abstractmethod
    def public_key(self, private_key: bytes) -> bytes:
        """Derive the raw public key for *private_key*."""

    @abc.abstractmethod
    def verify(self, public_key: bytes, signature: bytes, message: bytes) -> None:
        """Raise :class:`SignatureError` unless *signature* matches *message*."""


class Ed25519Scheme(SignatureScheme):
    algorithm = "ed25519"
    seed_size = 32
    signature_size = 64

    def _signing_key(self, private_key: bytes) -> SigningKey:
        if not isinstance(private_key, (bytes, bytearray)):
            raise SigningError("Private key material is missing")
        if len(private_key) != self.seed_size:
            raise SigningError(
                f"Invalid ed25519 seed: expected {self.seed_size} bytes, "
                f"got {len(private_key)}"
            )
        return SigningKey(bytes(private_key))

    def generate(self) -> bytes:
        return bytes(SigningKey.generate())

    def sign(self, message: bytes, private_key: bytes) -> bytes:
        signing_key = self._signing_key(private_key)
        try:
            return signing_key.sign(message).signature
        except Exception as e:
            raise SigningError(f"ed25519 signing failed: {e}") from e

    def public_key(self, private_key: bytes) -> bytes:
        return bytes(self._signing_key(private_key).verify_key)

    def verify(self, public_key: bytes, signature: bytes, message: bytes) -> None:
        try:
            VerifyKey(public_key).verify(message, signature)
        except BadSignatureError as e:
            raise SignatureError(f"Signature verification failed: {e}") from e
        except Exception as e:
            raise SignatureError(f"Verification error: {e}") from e


DEFAULT_SCHEME: SignatureScheme = Ed25519Scheme()


@dataclass(frozen=True)
class Signature:
    """A signature bound to exactly one encoded payload."""

    value: bytes
    algorithm: str

    def to_base64(self) -> str:
        """Standard base64 (RFC 4648 section 4, padded)."""
        return base64.b64encode(self.value).decode("ascii")

    @classmethod
    def from_base64(cls, value: str, algorithm: str = "ed25519") -> "Signature":
        try:
            return cls(base64.b64decode(value, validate=True), algorithm)
        except Exception as e:
            raise SignatureError(f"Signature is not valid base64: {e}") from e


def sign(encoded_payload: bytes, identity: "Identity") -> Signature:
    """Sign canonical payload bytes with *identity*'s private key.

    Raises:
        SigningError: If the payload is not bytes, the identity carries no
            usable key, or the primitive rejects the input.
    """
    if identity is None:
        raise SigningError("Private key material is missing")
    if not isinstance(encoded_payload, (bytes, bytearray)):
        raise SigningError(
            f"Encoded payload must be bytes, got {type(encoded_payload).__name__}"
        )
    value = identity.sign(bytes(encoded_payload))
    if not value:
        raise SigningError("Signature primitive returned an empty signature")
    return Signature(value, identity.scheme.algorithm)


def verify(
    public_key: bytes,
    signature: Signature,
    encoded_payload: bytes,
    scheme: SignatureScheme = DEFAULT_SCHEME,
) -> None:
    """Verify *signature* over *encoded_payload*.

    Raises:
        SignatureError: If verification fails or the algorithms differ.
    """
    if signature.algorithm != scheme.algorithm:
        raise SignatureError(
            f"Signature algorithm {signature.algorithm} does not match "
            f"scheme {scheme.algorithm}"
        )
    scheme.verify(public_key, signature.value, encoded_payload)
