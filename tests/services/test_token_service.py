from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from app.services import token_service


def _pem(public_key) -> bytes:
    return public_key.public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def test_minted_token_carries_claims() -> None:
    claims = token_service.decode_access_token(
        token_service.create_access_token(sub="u-1", roles=["admin"])
    )
    assert claims["sub"] == "u-1"
    assert claims["roles"] == ["admin"]
    assert claims["iss"] == token_service.ISSUER
    assert claims["aud"] == token_service.AUDIENCE


def test_default_role_is_learner() -> None:
    claims = token_service.decode_access_token(
        token_service.create_access_token(sub="u-2")
    )
    assert claims["roles"] == [token_service.DEFAULT_ROLE]


def test_wrong_audience_is_rejected() -> None:
    foreign = jwt.encode(
        {
            "sub": "u-3",
            "iss": token_service.ISSUER,
            "aud": "billing-service",
            "iat": datetime.now(UTC),
            "exp": datetime.now(UTC) + timedelta(minutes=5),
            "jti": "x",
        },
        token_service._signing_key,
        algorithm="ES256",
    )
    with pytest.raises(jwt.InvalidAudienceError):
        token_service.decode_access_token(foreign)


def test_hs256_token_is_rejected() -> None:
    forged = jwt.encode({"sub": "u-4"}, "a-shared-secret-of-32-bytes-long!", "HS256")
    with pytest.raises(jwt.InvalidTokenError):
        token_service.decode_access_token(forged)


def test_configured_public_key_verifies_foreign_tokens(tmp_path: Path) -> None:
    identity_key = ec.generate_private_key(ec.SECP256R1())
    pem_path = tmp_path / "identity.pem"
    pem_path.write_bytes(_pem(identity_key.public_key()))
    now = datetime.now(UTC)
    token = jwt.encode(
        {
            "sub": "u-5",
            "iss": token_service.ISSUER,
            "aud": token_service.AUDIENCE,
            "iat": now,
            "exp": now + timedelta(minutes=5),
            "jti": "j-5",
        },
        identity_key,
        algorithm="ES256",
    )

    key = token_service.load_public_key(pem_path)

    assert token_service.decode_access_token(token, key=key)["sub"] == "u-5"
    with pytest.raises(jwt.InvalidSignatureError):
        token_service.decode_access_token(token)


def test_load_public_key_rejects_rsa(tmp_path: Path) -> None:
    rsa_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    pem_path = tmp_path / "rsa.pem"
    pem_path.write_bytes(_pem(rsa_key.public_key()))
    with pytest.raises(ValueError, match="EC public key"):
        token_service.load_public_key(pem_path)
