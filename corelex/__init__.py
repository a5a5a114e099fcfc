"""CoreLex Python client SDK v0.1."""

from .authorization import AuthorizationBroker, AuthState, AuthToken, TokenStore
from .canonicaljson import canonicalize
from .client import CoreLexClient
from .config import ClientConfig
from .envelope import Envelope, EnvelopeBuilder, verify_body, verify_envelope
from .errors import (
    CoreLexError,
    EncodingError,
    SigningError,
    SignatureError,
    IdentityError,
    EnvelopeError,
    AuthorizationError,
    TransportError,
    APIError,
    ConfigurationError,
)
from .identity import Identity
from .signing import Ed25519Scheme, Signature, SignatureScheme, sign, verify
from .transport import HTTPRequest, HTTPResponse, RequestsTransport, Transport
from .types import APIResponse

__all__ = [
    "CoreLexClient",
    "ClientConfig",
    "Identity",
    "canonicalize",
    "sign",
    "verify",
    "Signature",
    "SignatureScheme",
    "Ed25519Scheme",
    "AuthorizationBroker",
    "AuthState",
    "AuthToken",
    "TokenStore",
    "Envelope",
    "EnvelopeBuilder",
    "verify_envelope",
    "verify_body",
    "Transport",
    "RequestsTransport",
    "HTTPRequest",
    "HTTPResponse",
    "APIResponse",
    "CoreLexError",
    "EncodingError",
    "SigningError",
    "SignatureError",
    "IdentityError",
    "EnvelopeError",
    "AuthorizationError",
    "TransportError",
    "APIError",
    "ConfigurationError",
]
