"""JWT access token validation (ES256).

Tokens are issued by the identity service; this service only verifies
them against the identity service's public key (JWT_PUBLIC_KEY).

Without JWT_PUBLIC_KEY (dev/test only) an ephemeral key pair is
generated on import, and create_access_token signs with its private
half so local dev and tests can mint tokens the verifier trusts.
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime, timedelta

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from app.core.config import SETTINGS

logger = logging.getLogger(__name__)

ALGORITHM = "ES256"
ISSUER = "auth-service"
AUDIENCE = "quiz-service"
ACCESS_TOKEN_TTL_MIN = 15


# ---------------------------------------------------------------------------
# Key management
# ---------------------------------------------------------------------------


def load_public_key(pem: str) -> ec.EllipticCurvePublicKey:
    """Parse the identity service's P-256 public key from PEM."""
    key = serialization.load_pem_public_key(pem.encode())
    if not isinstance(key, ec.EllipticCurvePublicKey) or not isinstance(
        key.curve, ec.SECP256R1
    ):
        raise ValueError("JWT_PUBLIC_KEY must be a P-256 (ES256) public key")
    return key


def _load_keys(
    public_pem: str | None, *, is_prod: bool
) -> tuple[ec.EllipticCurvePrivateKey | None, ec.EllipticCurvePublicKey]:
    if public_pem:
        return None, load_public_key(public_pem)
    if is_prod:
        raise RuntimeError("JWT_PUBLIC_KEY must be set when APP_ENV=prod")
    logger.warning("No JWT_PUBLIC_KEY configured, using an ephemeral key pair")
    private_key = ec.generate_private_key(ec.SECP256R1())
    return private_key, private_key.public_key()


_private_key, _public_key = _load_keys(
    SETTINGS.jwt_public_key, is_prod=SETTINGS.is_prod
)


def create_access_token(
    *,
    sub: str,
    scope: str = "",
    roles: list[str] | None = None,
) -> str:
    """Build and sign a JWT access token with the ephemeral dev key.

    Claims: sub (user id), iss, aud, exp, iat, jti, scope, roles.
    Raises RuntimeError when tokens come from the identity service.
    """
    if _private_key is None:
        raise RuntimeError("Tokens are issued by the identity service")
    now = datetime.now(UTC)
    payload = {
        "sub": sub,
        "iss": ISSUER,
        "aud": AUDIENCE,
        "exp": now + timedelta(minutes=ACCESS_TOKEN_TTL_MIN),
        "iat": now,
        "jti": str(uuid.uuid4()),
        "scope": scope,
        "roles": roles or ["student"],
    }
    return jwt.encode(payload, _private_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature and claims, return the payload.

    Pins algorithm to ES256 to prevent alg:none and alg-switching attacks.
    Validates exp, iss, and aud automatically via PyJWT options.

    Raises jwt.ExpiredSignatureError, jwt.InvalidTokenError on failure.
    """
    return jwt.decode(
        token,
        _public_key,
        algorithms=[ALGORITHM],
        issuer=ISSUER,
        audience=AUDIENCE,
        options={"require": ["sub", "exp", "iat", "jti"]},
    )
