"""Bearer token verification using Ed25519 signatures.

Clients authenticate with ``Authorization: Bearer <jwt>`` where the JWT
is signed with EdDSA by the account service. The ``sub`` claim is the
owner id every session operation is scoped to.
"""
import base64
import json
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from fastapi import Header

from chatgate.errors import UnauthorizedError


class TokenError(Exception):
    """Base class for token validation errors."""


class TokenSignatureError(TokenError):
    """Raised when the token signature is invalid."""


class TokenExpiredError(TokenError):
    """Raised when the token has expired."""


class TokenPayloadError(TokenError):
    """Raised when the token payload is malformed or missing fields."""


@dataclass(frozen=True)
class BearerClaims:
    """Validated claims from a bearer token."""

    owner_id: str
    iat: Optional[int] = None
    exp: Optional[int] = None
    email: Optional[str] = None


def _base64url_decode(data: str) -> bytes:
    padding = 4 - len(data) % 4
    if padding != 4:
        data += "=" * padding
    try:
        return base64.urlsafe_b64decode(data)
    except ValueError as exc:
        raise TokenPayloadError(f"Invalid base64url segment: {exc}") from exc


def _b64url_enc(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def public_key_to_base64(public_key: Ed25519PublicKey) -> str:
    """Encode a public key as the base64 string AUTH_PUBLIC_KEY expects."""
    return base64.b64encode(public_key.public_bytes(Encoding.Raw, PublicFormat.Raw)).decode("utf-8")


def issue_bearer_token(
    private_key: Ed25519PrivateKey, owner_id: str, ttl_seconds: Optional[int] = None,
) -> str:
    """Sign a bearer token for ``owner_id``. Without a TTL it never expires."""
    if not owner_id:
        raise TokenPayloadError("owner_id is required")
    now = int(time.time())
    claims: dict[str, Any] = {"sub": owner_id, "iat": now}
    if ttl_seconds:
        claims["exp"] = now + ttl_seconds
    header = _b64url_enc(json.dumps({"alg": "EdDSA", "typ": "JWT"}, separators=(",", ":")).encode())
    payload = _b64url_enc(json.dumps(claims, separators=(",", ":")).encode())
    signature = _b64url_enc(private_key.sign(f"{header}.{payload}".encode("ascii")))
    return f"{header}.{payload}.{signature}"


def _parse_jwt_parts(token: str) -> tuple[str, bytes, bytes, bytes]:
    """Split a JWT into (signing_input, header, payload, signature)."""
    parts = token.split(".")
    if len(parts) != 3:
        raise TokenPayloadError(
            f"Invalid JWT structure: expected 3 parts, got {len(parts)}"
        )
    header_b64, payload_b64, sig_b64 = parts
    signing_input = f"{header_b64}.{payload_b64}"
    return (
        signing_input,
        _base64url_decode(header_b64),
        _base64url_decode(payload_b64),
        _base64url_decode(sig_b64),
    )


def _validate_header(header_bytes: bytes) -> None:
    try:
        header = json.loads(header_bytes)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise TokenPayloadError(f"Invalid JWT header: {exc}") from exc
    if not isinstance(header, dict):
        raise TokenPayloadError("JWT header must be a JSON object")
    alg = header.get("alg")
    if alg != "EdDSA":
        raise TokenPayloadError(f"Unsupported algorithm: {alg}, expected EdDSA")


def _extract_claims(payload_bytes: bytes) -> dict[str, Any]:
    try:
        claims = json.loads(payload_bytes)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise TokenPayloadError(f"Invalid JWT payload: {exc}") from exc
    if not isinstance(claims, dict):
        raise TokenPayloadError("JWT payload must be a JSON object")
    sub = claims.get("sub")
    if not isinstance(sub, str) or not sub:
        raise TokenPayloadError("Missing required claim: sub")
    return claims


def verify_bearer_token(token: str, public_key_bytes: bytes, leeway_seconds: int = 0) -> BearerClaims:
    """Verify a bearer JWT and return its claims.

    Args:
        token: The raw JWT string (header.payload.signature).
        public_key_bytes: The Ed25519 public key bytes (32 bytes raw).
        leeway_seconds: Allowed clock skew when checking ``exp``.

    Returns:
        BearerClaims with the owner id taken from ``sub``.

    Raises:
        TokenSignatureError: If the Ed25519 signature is invalid.
        TokenExpiredError: If ``exp`` is in the past.
        TokenPayloadError: If the token structure or claims are invalid.
    """
    signing_input, header_bytes, payload_bytes, signature_bytes = _parse_jwt_parts(token)
    _validate_header(header_bytes)

    try:
        key = Ed25519PublicKey.from_public_bytes(public_key_bytes)
    except (ValueError, TypeError) as exc:
        raise TokenSignatureError(f"Invalid public key: {exc}") from exc

    try:
        key.verify(signature_bytes, signing_input.encode("ascii"))
    except InvalidSignature as exc:
        raise TokenSignatureError("Token signature verification failed") from exc

    claims = _extract_claims(payload_bytes)
    exp = claims.get("exp")
    if exp is not None:
        if not isinstance(exp, (int, float)):
            raise TokenPayloadError(f"Invalid exp claim: {exp!r}")
        if exp + leeway_seconds < time.time():
            raise TokenExpiredError(f"Token expired at {int(exp)}")

    return BearerClaims(
        owner_id=claims["sub"],
        iat=claims.get("iat"),
        exp=int(exp) if exp is not None else None,
        email=claims.get("email"),
    )


def create_owner_dependency(public_key_bytes: bytes, leeway_seconds: int = 0) -> Callable[..., Awaitable[str]]:
    """Build a FastAPI dependency resolving the request's owner id."""

    async def require_owner(authorization: Optional[str] = Header(default=None)) -> str:
        if not authorization:
            raise UnauthorizedError("Authorization header required")
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise UnauthorizedError("Expected a Bearer token")
        try:
            claims = verify_bearer_token(token.strip(), public_key_bytes, leeway_seconds)
        except TokenError as exc:
            raise UnauthorizedError(f"Invalid token: {exc}") from exc
        return claims.owner_id

    return require_owner
