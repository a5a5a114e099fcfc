"""Tests for client configuration loading."""

import pytest

from corelex.config import ClientConfig
from corelex.errors import ConfigurationError, IdentityError
from corelex.identity import Identity


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "CORELEX_BASE_URL",
        "CORELEX_PRIVATE_KEY",
        "CORELEX_PRIVATE_KEY_PATH",
        "CORELEX_TIMEOUT",
        "CORELEX_AUTH_TIMEOUT",
        "CORELEX_TOKEN_TTL",
        "CORELEX_TOKEN_REFRESH_MARGIN",
    ):
        monkeypatch.delenv(name, raising=False)


class TestClientConfig:
    def test_defaults(self):
        config = ClientConfig(base_url="http://api.test/")
        assert config.base_url == "http://api.test"
        assert config.timeout == 30.0
        assert config.authorization_timeout == 30.0
        assert config.default_token_ttl == 300.0
        assert config.token_refresh_margin == 0.0

    def test_base_url_required(self):
        with pytest.raises(ConfigurationError, match="base_url"):
            ClientConfig(base_url=" ")

    @pytest.mark.parametrize("name", ["timeout", "authorization_timeout", "default_token_ttl"])
    def test_non_positive_durations_rejected(self, name):
        with pytest.raises(ConfigurationError, match=name):
            ClientConfig(base_url="http://api.test", **{name: 0})

    def test_negative_margin_rejected(self):
        with pytest.raises(ConfigurationError, match="token_refresh_margin"):
            ClientConfig(base_url="http://api.test", token_refresh_margin=-1)

    def test_repr_hides_private_key(self):
        config = ClientConfig(base_url="http://api.test", private_key="deadbeef")
        assert "deadbeef" not in repr(config)


class TestFromEnv:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("CORELEX_BASE_URL", "http://env.test")
        monkeypatch.setenv("CORELEX_TIMEOUT", "12")
        monkeypatch.setenv("CORELEX_TOKEN_TTL", "90")
        config = ClientConfig.from_env()
        assert config.base_url == "http://env.test"
        assert config.timeout == 12.0
        assert config.default_token_ttl == 90.0

    def test_overrides_win(self, monkeypatch):
        monkeypatch.setenv("CORELEX_BASE_URL", "http://env.test")
        config = ClientConfig.from_env(base_url="http://override.test", timeout=3)
        assert config.base_url == "http://override.test"
        assert config.timeout == 3

    def test_invalid_number(self, monkeypatch):
        monkeypatch.setenv("CORELEX_BASE_URL", "http://env.test")
        monkeypatch.setenv("CORELEX_AUTH_TIMEOUT", "soon")
        with pytest.raises(ConfigurationError, match="CORELEX_AUTH_TIMEOUT"):
            ClientConfig.from_env()


class TestLoadIdentity:
    def test_from_private_key(self):
        ident = Identity.generate()
        config = ClientConfig(base_url="http://api.test", private_key=ident._private_key.hex())
        assert config.load_identity().public_key_bytes == ident.public_key_bytes

    def test_from_key_path(self, tmp_path):
        path = str(tmp_path / "id.key")
        ident = Identity.create(path)
        config = ClientConfig(base_url="http://api.test", private_key_path=path)
        assert config.load_identity().public_key_bytes == ident.public_key_bytes

    def test_missing_key(self):
        with pytest.raises(IdentityError, match="missing"):
            ClientConfig(base_url="http://api.test").load_identity()

    def test_both_sources_rejected(self, tmp_path):
        config = ClientConfig(
            base_url="http://api.test", private_key="00" * 32, private_key_path=str(tmp_path / "k")
        )
        with pytest.raises(IdentityError, match="not both"):
            config.load_identity()
