# src/remit_chat/client/keys.py
"""RSA-OAEP key material expressed as JSON Web Keys."""

from __future__ import annotations

import base64
import json
from typing import Any

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa

DEFAULT_JWK_ALG = "RSA-OAEP-256"
PUBLIC_EXPONENT = 65537
DEFAULT_KEY_SIZE = 2048

RSA_HASH_BY_JWK_ALG: dict[str, type[hashes.HashAlgorithm]] = {
    "RSA-OAEP": hashes.SHA1,
    "RSA-OAEP-256": hashes.SHA256,
    "RSA-OAEP-384": hashes.SHA384,
    "RSA-OAEP-512": hashes.SHA512,
}


class KeyFormatError(ValueError):
    """Raised when a JWK cannot be turned into an RSA key."""


def _b64url_uint(value: int) -> str:
    raw = value.to_bytes((value.bit_length() + 7) // 8 or 1, "big")
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def _uint_from_b64url(value: Any, member: str) -> int:
    if not isinstance(value, str) or not value.strip():
        raise KeyFormatError(f"JWK member '{member}' is missing")
    cleaned = value.strip()
    padding = "=" * (-len(cleaned) % 4)
    try:
        return int.from_bytes(base64.urlsafe_b64decode(cleaned + padding), "big")
    except ValueError as err:
        raise KeyFormatError(f"JWK member '{member}' is not base64url") from err


def public_jwk_from_key(key: rsa.RSAPublicKey, alg: str = DEFAULT_JWK_ALG) -> dict[str, Any]:
    numbers = key.public_numbers()
    return {
        "kty": "RSA",
        "alg": alg,
        "n": _b64url_uint(numbers.n),
        "e": _b64url_uint(numbers.e),
        "ext": True,
        "key_ops": ["encrypt"],
    }


def private_jwk_from_key(key: rsa.RSAPrivateKey, alg: str = DEFAULT_JWK_ALG) -> dict[str, Any]:
    numbers = key.private_numbers()
    public = numbers.public_numbers
    return {
        "kty": "RSA",
        "alg": alg,
        "n": _b64url_uint(public.n),
        "e": _b64url_uint(public.e),
        "d": _b64url_uint(numbers.d),
        "p": _b64url_uint(numbers.p),
        "q": _b64url_uint(numbers.q),
        "dp": _b64url_uint(numbers.dmp1),
        "dq": _b64url_uint(numbers.dmq1),
        "qi": _b64url_uint(numbers.iqmp),
        "ext": True,
        "key_ops": ["decrypt"],
    }


def public_key_from_jwk(jwk: Any) -> rsa.RSAPublicKey:
    if not isinstance(jwk, dict) or jwk.get("kty") != "RSA":
        raise KeyFormatError("Only RSA JWKs are supported")
    n = _uint_from_b64url(jwk.get("n"), "n")
    e = _uint_from_b64url(jwk.get("e"), "e")
    try:
        return rsa.RSAPublicNumbers(e, n).public_key()
    except ValueError as err:
        raise KeyFormatError(f"Invalid RSA public key: {err}") from err


def private_key_from_jwk(jwk: Any) -> rsa.RSAPrivateKey:
    """Build a private key; CRT members are recovered when a JWK omits them."""
    if not isinstance(jwk, dict) or jwk.get("kty") != "RSA":
        raise KeyFormatError("Only RSA JWKs are supported")
    n = _uint_from_b64url(jwk.get("n"), "n")
    e = _uint_from_b64url(jwk.get("e"), "e")
    d = _uint_from_b64url(jwk.get("d"), "d")

    if all(jwk.get(member) for member in ("p", "q")):
        p = _uint_from_b64url(jwk["p"], "p")
        q = _uint_from_b64url(jwk["q"], "q")
    else:
        p, q = rsa.rsa_recover_prime_factors(n, e, d)

    dp = _uint_from_b64url(jwk["dp"], "dp") if jwk.get("dp") else rsa.rsa_crt_dmp1(d, p)
    dq = _uint_from_b64url(jwk["dq"], "dq") if jwk.get("dq") else rsa.rsa_crt_dmq1(d, q)
    qi = _uint_from_b64url(jwk["qi"], "qi") if jwk.get("qi") else rsa.rsa_crt_iqmp(p, q)
    try:
        return rsa.RSAPrivateNumbers(p, q, d, dp, dq, qi, rsa.RSAPublicNumbers(e, n)).private_key()
    except ValueError as err:
        raise KeyFormatError(f"Invalid RSA private key: {err}") from err


def hash_candidates(jwk: dict[str, Any] | None) -> list[type[hashes.HashAlgorithm]]:
    """Return the OAEP hashes to try: the key's own ``alg`` first, then SHA-256, then SHA-1."""
    ordered: list[type[hashes.HashAlgorithm]] = []
    preferred = RSA_HASH_BY_JWK_ALG.get(str((jwk or {}).get("alg") or "").strip())
    for candidate in (preferred, hashes.SHA256, hashes.SHA1):
        if candidate is not None and candidate not in ordered:
            ordered.append(candidate)
    return ordered


def fingerprint(
    public_jwk: dict[str, Any] | None = None,
    private_jwk: dict[str, Any] | None = None,
) -> str:
    """Identify a key pair by its modulus."""
    public_n = str((public_jwk or {}).get("n") or "").strip()
    if public_n:
        return f"rsa:{public_n}"
    private_n = str((private_jwk or {}).get("n") or "").strip()
    if private_n:
        return f"rsa:{private_n}"
    public_x = str((public_jwk or {}).get("x") or "").strip()
    if public_x:
        return f"ec:{public_x}"
    return "fallback:" + json.dumps(public_jwk or {}, sort_keys=True)


def generate_jwk_pair(key_size: int = DEFAULT_KEY_SIZE) -> tuple[dict[str, Any], dict[str, Any]]:
    """Generate a fresh RSA key pair and return ``(public_jwk, private_jwk)``."""
    private_key = rsa.generate_private_key(public_exponent=PUBLIC_EXPONENT, key_size=key_size)
    return public_jwk_from_key(private_key.public_key()), private_jwk_from_key(private_key)
