"""Tests for caller identity management."""

import base64

import pytest

from corelex.identity import Identity
from corelex.errors import IdentityError, SignatureError


class TestIdentityGenerate:
    def test_generate_produces_valid_key(self):
        ident = Identity.generate()
        assert len(ident.public_key_bytes) == 32

    def test_public_key_base64_is_standard(self):
        ident = Identity.generate()
        pk = ident.public_key_base64
        assert "-" not in pk
        assert "_" not in pk
        assert len(base64.b64decode(pk)) == 32

    def test_two_identities_differ(self):
        a = Identity.generate()
        b = Identity.generate()
        assert a.public_key_bytes != b.public_key_bytes

    def test_repr_hides_private_key(self):
        ident = Identity.generate()
        seed = ident._private_key
        text = repr(ident)
        assert base64.b64encode(seed).decode() not in text
        assert seed.hex() not in text
        assert ident.public_key_base64 in text


class TestIdentityFromString:
    def test_hex_seed(self):
        orig = Identity.generate()
        loaded = Identity.from_string(orig._private_key.hex())
        assert loaded.public_key_bytes == orig.public_key_bytes

    def test_prefixed_hex_seed(self):
        orig = Identity.generate()
        loaded = Identity.from_string("0x" + orig._private_key.hex())
        assert loaded.public_key_bytes == orig.public_key_bytes

    def test_base64_seed(self):
        orig = Identity.generate()
        loaded = Identity.from_string(base64.b64encode(orig._private_key).decode())
        assert loaded.public_key_bytes == orig.public_key_bytes

    def test_base64_keypair(self):
        orig = Identity.generate()
        keypair = orig._private_key + orig.public_key_bytes
        loaded = Identity.from_string(base64.b64encode(keypair).decode())
        assert loaded.public_key_bytes == orig.public_key_bytes

    def test_keypair_with_wrong_public_half_rejected(self):
        a = Identity.generate()
        b = Identity.generate()
        keypair = a._private_key + b.public_key_bytes
        with pytest.raises(IdentityError, match="does not match"):
            Identity.from_string(keypair.hex())

    def test_empty_rejected(self):
        with pytest.raises(IdentityError, match="missing"):
            Identity.from_string("  ")

    def test_garbage_rejected(self):
        with pytest.raises(IdentityError, match="neither hex nor base64"):
            Identity.from_string("not a key!")

    def test_wrong_length_rejected(self):
        with pytest.raises(IdentityError, match="expected 32 or 64 bytes"):
            Identity.from_string(base64.b64encode(b"short").decode())


class TestIdentitySaveLoad:
    def test_round_trip(self, tmp_path):
        path = str(tmp_path / "key")
        orig = Identity.generate()
        orig.save(path)
        loaded = Identity.load(path)
        assert loaded.public_key_bytes == orig.public_key_bytes

    def test_save_creates_parent_dirs(self, tmp_path):
        path = str(tmp_path / "a" / "b" / "c" / "key")
        ident = Identity.generate()
        ident.save(path)
        assert Identity.load(path).public_key_bytes == ident.public_key_bytes

    def test_load_text_key_file(self, tmp_path):
        path = tmp_path / "key.txt"
        orig = Identity.generate()
        path.write_text(orig._private_key.hex() + "\n")
        assert Identity.load(str(path)).public_key_bytes == orig.public_key_bytes

    def test_load_missing_file_raises(self):
        with pytest.raises(IdentityError, match="not found"):
            Identity.load("/nonexistent/path/key")

    def test_load_wrong_length_raises(self, tmp_path):
        path = tmp_path / "badkey"
        path.write_bytes(b"\xff\xfe too short")
        with pytest.raises(IdentityError, match="expected 32 bytes"):
            Identity.load(str(path))


class TestIdentityCreate:
    def test_create_generates_and_saves(self, tmp_path):
        path = str(tmp_path / "new.key")
        ident = Identity.create(path)
        assert Identity.load(path).public_key_bytes == ident.public_key_bytes

    def test_create_refuses_overwrite(self, tmp_path):
        path = str(tmp_path / "existing.key")
        Identity.create(path)
        with pytest.raises(IdentityError, match="already exists"):
            Identity.create(path)


class TestIdentitySignVerify:
    def test_sign_and_verify(self):
        ident = Identity.generate()
        sig = ident.sign(b"hello world")
        assert len(sig) == 64
        ident.verify(sig, b"hello world")

    def test_signing_is_deterministic(self):
        ident = Identity.generate()
        assert ident.sign(b"message") == ident.sign(b"message")

    def test_verify_wrong_message_fails(self):
        ident = Identity.generate()
        sig = ident.sign(b"correct message")
        with pytest.raises(SignatureError):
            ident.verify(sig, b"wrong message")

    def test_verify_tampered_signature_fails(self):
        ident = Identity.generate()
        sig = bytearray(ident.sign(b"message"))
        sig[0] ^= 0xFF
        with pytest.raises(SignatureError):
            ident.verify(bytes(sig), b"message")
