"""Caller identity: key generation, load, save, parse and sign."""

import base64
import binascii
import re
from pathlib import Path

from .errors import IdentityError, SigningError
from .signing import DEFAULT_SCHEME, SignatureScheme

_HEX_RE = re.compile(r"^(0x)?[0-9a-fA-F]+$")


class Identity:
    """A signing identity backed by a private key held in memory only."""

    def __init__(self, private_key: bytes, scheme: SignatureScheme = DEFAULT_SCHEME):
        try:
            public_key = scheme.public_key(private_key)
        except SigningError as e:
            raise IdentityError(f"Invalid private key: {e.message}") from e
        self._private_key = bytes(private_key)
        self._public_key = public_key
        self.scheme = scheme

    def __repr__(self) -> str:
        return f"Identity(algorithm={self.scheme.algorithm!r}, public_key={self.public_key_base64!r})"

    @classmethod
    def generate(cls, scheme: SignatureScheme = DEFAULT_SCHEME) -> "Identity":
        """Generate a new random keypair (in-memory only)."""
        return cls(scheme.generate(), scheme)

    @classmethod
    def create(cls, path: str) -> "Identity":
        """Generate a new keypair and save it to *path*. Creates parent dirs.

        Raises:
            IdentityError: If *path* already exists (will not overwrite).
        """
        p = Path(path)
        if p.exists():
            raise IdentityError(f"Identity file already exists: {path}")
        identity = cls.generate()
        identity.save(path)
        return identity

    @classmethod
    def load(cls, path: str) -> "Identity":
        """Load a private key file: raw 32-byte seed or a text key."""
        p = Path(path)
        if not p.exists():
            raise IdentityError(f"Identity file not found: {path}")
        raw = p.read_bytes()
        if len(raw) == 32:
            return cls(raw)
        try:
            text = raw.decode("ascii").strip()
        except UnicodeDecodeError:
            raise IdentityError(
                f"Invalid key file: expected 32 bytes, got {len(raw)}"
            ) from None
        return cls.from_string(text)

    @classmethod
    def from_string(cls, value: str, scheme: SignatureScheme = DEFAULT_SCHEME) -> "Identity":
        """Parse a textual private key.

        Accepts hex or standard base64 of the 32-byte seed, or of the
        64-byte ``seed || public_key`` keypair form.
        """
        if not isinstance(value, str) or not value.strip():
            raise IdentityError("Private key material is missing")
        text = value.strip()
        raw = None
        if _HEX_RE.match(text) and len(text.removeprefix("0x")) in (64, 128):
            raw = bytes.fromhex(text.removeprefix("0x"))
        else:
            try:
                raw = base64.b64decode(text, validate=True)
            except (binascii.Error, ValueError):
                raise IdentityError("Private key is neither hex nor base64") from None

        if len(raw) == 64:
            seed, public = raw[:32], raw[32:]
            identity = cls(seed, scheme)
            if identity.public_key_bytes != public:
                raise IdentityError("Keypair public half does not match its seed")
            return identity
        if len(raw) != 32:
            raise IdentityError(
                f"Invalid private key: expected 32 or 64 bytes, got {len(raw)}"
            )
        return cls(raw, scheme)

    def save(self, path: str) -> None:
        """Save the raw 32-byte private key to disk. Creates parent dirs."""
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(self._private_key)

    @property
    def public_key_bytes(self) -> bytes:
        """Raw public key."""
        return self._public_key

    @property
    def public_key_base64(self) -> str:
        """Base64-encoded public key (RFC 4648 section 4 with padding)."""
        return base64.b64encode(self._public_key).decode("ascii")

    def sign(self, message: bytes) -> bytes:
        """Sign message bytes, returning the raw signature."""
        return self.scheme.sign(message, self._private_key)

    def verify(self, signature: bytes, message: bytes) -> None:
        """Verify a signature made by this identity.

        Raises:
            SignatureError: If verification fails.
        """
        self.scheme.verify(self._public_key, signature, message)
