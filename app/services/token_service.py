"""Verification of ES256 access tokens issued by the identity service.

With JWT_PUBLIC_KEY_PATH set, tokens are verified against that PEM
public key and this service cannot mint tokens.  Without it, an
ephemeral P-256 key pair is generated at import so dev runs and tests
can mint tokens with create_access_token() under the same claims schema.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from pathlib import Path

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from app.core.config import SETTINGS

ALGORITHM = "ES256"
ISSUER = "identity-service"
AUDIENCE = "enrollment-service"
DEFAULT_ROLE = "learner"
ACCESS_TOKEN_TTL = timedelta(minutes=15)

_REQUIRED_CLAIMS = ["sub", "exp", "iat", "jti"]


def load_public_key(path: str | Path) -> ec.EllipticCurvePublicKey:
    """Read a PEM-encoded EC public key; anything else is a config error."""
    key = serialization.load_pem_public_key(Path(path).read_bytes())
    if not isinstance(key, ec.EllipticCurvePublicKey):
        raise ValueError(f"{path} does not hold an EC public key")
    return key


if SETTINGS.jwt_public_key_path:
    _signing_key: ec.EllipticCurvePrivateKey | None = None
    _verify_key = load_public_key(SETTINGS.jwt_public_key_path)
else:
    _signing_key = ec.generate_private_key(ec.SECP256R1())
    _verify_key = _signing_key.public_key()


def create_access_token(
    *,
    sub: str,
    roles: list[str] | None = None,
    ttl: timedelta = ACCESS_TOKEN_TTL,
) -> str:
    if _signing_key is None:
        raise RuntimeError("Token minting is disabled when JWT_PUBLIC_KEY_PATH is set")
    issued_at = datetime.now(UTC)
    claims = {
        "iss": ISSUER,
        "aud": AUDIENCE,
        "sub": sub,
        "roles": roles or [DEFAULT_ROLE],
        "iat": issued_at,
        "exp": issued_at + ttl,
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(claims, _signing_key, algorithm=ALGORITHM)


def decode_access_token(token: str, *, key=None) -> dict:
    """Verify signature, issuer, audience and expiry; return the claims.

    Only ES256 is accepted, whatever the token header says.  Raises
    jwt.ExpiredSignatureError or jwt.InvalidTokenError.
    """
    return jwt.decode(
        token,
        key if key is not None else _verify_key,
        algorithms=[ALGORITHM],
        audience=AUDIENCE,
        issuer=ISSUER,
        options={"require": _REQUIRED_CLAIMS},
    )
