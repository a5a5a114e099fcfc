"""Client configuration.

Environment variables (all overridable via ``ClientConfig.from_env`` args):
    CORELEX_BASE_URL              - API base URL (required)
    CORELEX_PRIVATE_KEY           - hex/base64 private key
    CORELEX_PRIVATE_KEY_PATH      - path to a key file (alternative to the above)
    CORELEX_TIMEOUT               - HTTP timeout in seconds (default 30)
    CORELEX_AUTH_TIMEOUT          - authorization handshake bound (default 30)
    CORELEX_TOKEN_TTL             - token lifetime when the server sends none (default 300)
    CORELEX_TOKEN_REFRESH_MARGIN  - re-authorize this many seconds early (default 0)
"""

import os
from dataclasses import dataclass, field

from .errors import ConfigurationError, IdentityError
from .identity import Identity


@dataclass
class ClientConfig:
    base_url: str
    private_key: str | None = field(default=None, repr=False)
    private_key_path: str | None = None
    timeout: float = 30.0
    authorization_timeout: float = 30.0
    default_token_ttl: float = 300.0
    token_refresh_margin: float = 0.0

    def __post_init__(self) -> None:
        if not isinstance(self.base_url, str) or not self.base_url.strip():
            raise ConfigurationError("base_url is required")
        self.base_url = self.base_url.strip().rstrip("/")
        for name in ("timeout", "authorization_timeout", "default_token_ttl"):
            if float(getattr(self, name)) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        if float(self.token_refresh_margin) < 0:
            raise ConfigurationError("token_refresh_margin must not be negative")

    @classmethod
    def from_env(cls, **overrides) -> "ClientConfig":
        """Build a config from ``CORELEX_*`` variables; *overrides* win."""
        env = os.environ
        values = {
            "base_url": env.get("CORELEX_BASE_URL", ""),
            "private_key": env.get("CORELEX_PRIVATE_KEY"),
            "private_key_path": env.get("CORELEX_PRIVATE_KEY_PATH"),
            "timeout": _float_env("CORELEX_TIMEOUT", 30.0),
            "authorization_timeout": _float_env("CORELEX_AUTH_TIMEOUT", 30.0),
            "default_token_ttl": _float_env("CORELEX_TOKEN_TTL", 300.0),
            "token_refresh_margin": _float_env("CORELEX_TOKEN_REFRESH_MARGIN", 0.0),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def load_identity(self) -> Identity:
        """Resolve the configured key material into an :class:`Identity`.

        Raises:
            IdentityError: If no key, or both a key and a key path, are set.
        """
        if self.private_key and self.private_key_path:
            raise IdentityError("Set either private_key or private_key_path, not both")
        if self.private_key:
            return Identity.from_string(self.private_key)
        if self.private_key_path:
            return Identity.load(self.private_key_path)
        raise IdentityError("Private key material is missing")


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None
