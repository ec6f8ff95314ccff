from __future__ import annotations

import secrets
import time

import jwt
import pytest

from accessgate.config import get_settings
from accessgate.domain.account import Role
from accessgate.errors import InternalError, InvalidTokenError
from accessgate.security.passwords import hash_password, verify_password
from accessgate.security.tokens import decode_access_token, generate_verification_token, issue_access_token


def test_hash_verifies_and_is_salted():
    for _ in range(10):
        password = secrets.token_urlsafe(12)
        first = hash_password(password)
        second = hash_password(password)
        assert first != second
        assert verify_password(password, first)
        assert verify_password(password, second)


def test_verify_rejects_wrong_or_malformed_hash():
    stored = hash_password("secret1")
    assert not verify_password("secret2", stored)
    assert not verify_password("secret1", "not-a-bcrypt-hash")
    assert not verify_password("secret1", "")
    assert not verify_password("", stored)


def test_token_round_trip_carries_identity_claims():
    token, expires_in = issue_access_token(account_id="acc-1", email="a@x.com", role=Role.ADMIN)
    claims = decode_access_token(token)
    assert expires_in == get_settings().jwt_ttl_seconds
    assert claims["sub"] == "acc-1"
    assert claims["email"] == "a@x.com"
    assert claims["role"] == "Admin"
    assert claims["exp"] - claims["iat"] == expires_in


def test_zero_ttl_token_is_rejected():
    token, _ = issue_access_token(account_id="acc-1", email="a@x.com", role=Role.USER, ttl_seconds=0)
    with pytest.raises(InvalidTokenError):
        decode_access_token(token)


def test_token_signed_with_another_secret_is_rejected():
    token, _ = issue_access_token(account_id="acc-1", email="a@x.com", role=Role.USER, secret="other")
    with pytest.raises(InvalidTokenError):
        decode_access_token(token)


def test_tampered_and_garbage_tokens_are_rejected():
    token, _ = issue_access_token(account_id="acc-1", email="a@x.com", role=Role.USER)
    header, payload, signature = token.split(".")
    forged = jwt.encode(
        {"sub": "acc-1", "role": "SuperAdmin", "iat": int(time.time()), "exp": int(time.time()) + 60},
        "guess",
        algorithm="HS256",
    ).split(".")[1]
    with pytest.raises(InvalidTokenError):
        decode_access_token(".".join([header, forged, signature]))
    with pytest.raises(InvalidTokenError):
        decode_access_token("not.a.jwt")
    with pytest.raises(InvalidTokenError):
        decode_access_token("")


def test_signing_without_secret_is_a_configuration_error():
    with pytest.raises(InternalError):
        issue_access_token(account_id="acc-1", email="a@x.com", role=Role.USER, secret="")


def test_verification_tokens_are_long_hex_and_distinct():
    tokens = {generate_verification_token() for _ in range(200)}
    assert len(tokens) == 200
    for token in tokens:
        assert len(token) == 64
        int(token, 16)
