# tests/client/test_jwk_keys.py
"""Tests for RSA JSON Web Key helpers."""

import pytest
from cryptography.hazmat.primitives import hashes

from remit_chat.client.keys import (
    KeyFormatError,
    fingerprint,
    hash_candidates,
    private_key_from_jwk,
    public_key_from_jwk,
)


class TestJwkConversion:
    def test_generated_pair_shape(self, sender_keys):
        public_jwk, private_jwk = sender_keys

        assert public_jwk["kty"] == "RSA"
        assert public_jwk["alg"] == "RSA-OAEP-256"
        assert public_jwk["key_ops"] == ["encrypt"]
        assert "d" not in public_jwk
        assert private_jwk["n"] == public_jwk["n"]
        assert private_jwk["key_ops"] == ["decrypt"]

    def test_public_and_private_agree(self, sender_keys):
        public_jwk, private_jwk = sender_keys
        public_key = public_key_from_jwk(public_jwk)
        private_key = private_key_from_jwk(private_jwk)

        assert private_key.public_key().public_numbers() == public_key.public_numbers()

    def test_private_key_without_crt_members(self, sender_keys):
        """Keys exported with only n, e and d are still usable."""
        _, private_jwk = sender_keys
        minimal = {member: private_jwk[member] for member in ("kty", "n", "e", "d")}

        rebuilt = private_key_from_jwk(minimal)

        original = private_key_from_jwk(private_jwk).private_numbers()
        assert rebuilt.private_numbers().d == original.d
        assert {rebuilt.private_numbers().p, rebuilt.private_numbers().q} == {original.p, original.q}

    @pytest.mark.parametrize(
        "jwk",
        [
            None,
            {"kty": "EC", "x": "abc"},
            {"kty": "RSA", "e": "AQAB"},
            {"kty": "RSA", "n": 12345, "e": "AQAB"},
        ],
    )
    def test_bad_public_jwk(self, jwk):
        with pytest.raises(KeyFormatError):
            public_key_from_jwk(jwk)

    def test_private_jwk_requires_d(self, sender_keys):
        public_jwk, _ = sender_keys
        with pytest.raises(KeyFormatError, match="'d'"):
            private_key_from_jwk(public_jwk)


class TestHashCandidates:
    def test_default_prefers_sha256(self):
        assert hash_candidates({}) == [hashes.SHA256, hashes.SHA1]

    def test_sha1_key_tries_sha1_first(self):
        assert hash_candidates({"alg": "RSA-OAEP"}) == [hashes.SHA1, hashes.SHA256]

    def test_other_alg_kept_first(self):
        assert hash_candidates({"alg": "RSA-OAEP-512"}) == [hashes.SHA512, hashes.SHA256, hashes.SHA1]


class TestFingerprint:
    def test_public_modulus_wins(self):
        assert fingerprint({"n": "abc"}, {"n": "zzz"}) == "rsa:abc"

    def test_private_modulus_fallback(self):
        assert fingerprint(None, {"n": "zzz"}) == "rsa:zzz"

    def test_ec_and_fallback(self):
        assert fingerprint({"x": "pt"}) == "ec:pt"
        assert fingerprint({"kty": "oct"}).startswith("fallback:")

    def test_pair_halves_share_fingerprint(self, sender_keys):
        public_jwk, private_jwk = sender_keys
        assert fingerprint(public_jwk) == fingerprint(private_jwk=private_jwk)
