from __future__ import annotations

import base64
import hashlib
import hmac
import json
import os
import time
from typing import Any, Dict, Optional


class AuthError(ValueError):
    pass


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode((data + padding).encode("utf-8"))


def _jwt_secret() -> str:
    return os.getenv("APP_JWT_SECRET", "dev-only-change-me")


def _sign(signing_input: bytes) -> bytes:
    return hmac.new(_jwt_secret().encode("utf-8"), signing_input, hashlib.sha256).digest()


def issue_organizer_token(user_id: str, ttl_seconds: int = 60 * 60 * 12) -> str:
    """HS256 token identifying an organizer account; used by scripts and tests."""
    now = int(time.time())
    header = {"alg": "HS256", "typ": "JWT"}
    payload = {"sub": user_id, "iat": now, "exp": now + ttl_seconds}
    header_b64 = _b64url_encode(json.dumps(header, separators=(",", ":")).encode("utf-8"))
    payload_b64 = _b64url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    signature = _sign(f"{header_b64}.{payload_b64}".encode("utf-8"))
    return f"{header_b64}.{payload_b64}.{_b64url_encode(signature)}"


def decode_token(token: str) -> Dict[str, Any]:
    try:
        header_b64, payload_b64, sig_b64 = token.split(".", 2)
        actual_sig = _b64url_decode(sig_b64)
    except ValueError as exc:
        raise AuthError("invalid token format") from exc

    if not hmac.compare_digest(_sign(f"{header_b64}.{payload_b64}".encode("utf-8")), actual_sig):
        raise AuthError("invalid token signature")

    try:
        payload = json.loads(_b64url_decode(payload_b64).decode("utf-8"))
    except ValueError as exc:
        raise AuthError("invalid token payload") from exc
    if int(payload.get("exp", 0)) < int(time.time()):
        raise AuthError("token expired")
    if not payload.get("sub"):
        raise AuthError("token has no subject")
    return payload


def organizer_id(authorization_header: Optional[str]) -> str:
    if not authorization_header:
        raise AuthError("missing authorization header")
    parts = authorization_header.strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthError("invalid authorization header")
    return str(decode_token(parts[1].strip())["sub"])
