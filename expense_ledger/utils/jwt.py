"""Minimal HS256 JSON Web Token support for bearer authentication."""

from __future__ import annotations

import base64
import hmac
import json
import time
from collections.abc import Mapping, Sequence
from hashlib import sha256
from typing import Any

SUPPORTED_ALGORITHMS = frozenset({"HS256"})


class JWTError(Exception):
    """Base class for JWT-related errors."""


class InvalidTokenError(JWTError):
    """Raised when a token cannot be decoded or the signature is invalid."""


class ExpiredSignatureError(JWTError):
    """Raised when a token has expired."""


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    try:
        return base64.urlsafe_b64decode(data + padding)
    except (ValueError, TypeError) as exc:
        raise InvalidTokenError("Token segment is not valid base64") from exc


def _json_segment(data: Mapping[str, Any]) -> str:
    return _b64url_encode(json.dumps(data, separators=(",", ":"), sort_keys=True).encode())


def _sign(message: bytes, secret: str, algorithm: str) -> bytes:
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise InvalidTokenError(f"Unsupported JWT algorithm: {algorithm}")
    return hmac.new(secret.encode("utf-8"), message, sha256).digest()


def encode(payload: Mapping[str, Any], secret: str, algorithm: str = "HS256") -> str:
    signing_input = f"{_json_segment({'alg': algorithm, 'typ': 'JWT'})}.{_json_segment(payload)}"
    signature = _b64url_encode(_sign(signing_input.encode(), secret, algorithm))
    return f"{signing_input}.{signature}"


def decode(
    token: str,
    secret: str,
    algorithms: Sequence[str] | None = None,
    *,
    verify_exp: bool = True,
) -> dict[str, Any]:
    try:
        header_segment, payload_segment, signature_segment = token.split(".")
    except ValueError as exc:
        raise InvalidTokenError("Token structure is invalid") from exc

    try:
        header = json.loads(_b64url_decode(header_segment))
        payload = json.loads(_b64url_decode(payload_segment))
    except ValueError as exc:
        raise InvalidTokenError("Token segment is not valid JSON") from exc

    algorithm = header.get("alg") if isinstance(header, dict) else None
    if not algorithm:
        raise InvalidTokenError("Token header missing algorithm")
    if algorithms and algorithm not in algorithms:
        raise InvalidTokenError("Token uses an unexpected signing algorithm")

    expected = _sign(f"{header_segment}.{payload_segment}".encode(), secret, algorithm)
    if not hmac.compare_digest(expected, _b64url_decode(signature_segment)):
        raise InvalidTokenError("Token signature mismatch")

    if not isinstance(payload, dict):
        raise InvalidTokenError("Token payload must be an object")
    if verify_exp and "exp" in payload and int(payload["exp"]) < int(time.time()):
        raise ExpiredSignatureError("Token has expired")
    return payload


__all__ = ["encode", "decode", "JWTError", "InvalidTokenError", "ExpiredSignatureError"]
