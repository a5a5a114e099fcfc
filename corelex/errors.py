"""Machine-readable error categories for CoreLex client failures."""

from typing import Any


class CoreLexError(Exception):
    """Base exception for all CoreLex errors."""

    kind = "corelex"

    def __init__(
        self,
        message: str,
        details: Any = None,
        status: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        self.status = status

    def to_dict(self) -> dict:
        """Render the ``{error, details, kind, status}`` result structure."""
        out: dict[str, Any] = {"error": self.message, "kind": self.kind}
        if self.details is not None:
            out["details"] = self.details
        if self.status is not None:
            out["status"] = self.status
        return out


class EncodingError(CoreLexError):
    """Payload cannot be canonically encoded."""

    kind = "encoding"


class SigningError(CoreLexError):
    """Key material or the signature primitive rejected the input."""

    kind = "signing"


class SignatureError(SigningError):
    """Signature verification failed."""


class IdentityError(CoreLexError):
    """Identity key loading, parsing or generation error."""

    kind = "identity"


class EnvelopeError(CoreLexError):
    """Invalid envelope structure."""

    kind = "envelope"


class AuthorizationError(CoreLexError):
    """Service authorization was refused, expired or timed out."""

    kind = "authorization"


class TransportError(CoreLexError):
    """Network-level failure talking to the API."""

    kind = "transport"


class APIError(CoreLexError):
    """The API answered with a structured ``{error, details}`` body."""

    kind = "api"


class ConfigurationError(CoreLexError):
    """Invalid client configuration."""

    kind = "configuration"
