"""Unit tests for auth/tokens.py -- TokenCodec and password hashing.

Covers:
- verify(issue(...)) round-trips subject, email and role before expiry
- expired tokens, including exp == now, fail with reason "expired"
- rotating the key invalidates earlier tokens (reason "signature")
- tampered, garbage and claim-incomplete tokens are rejected
- two tokens for the same account in the same second differ
- bcrypt hashes are salted and never equal the plaintext
"""

from __future__ import annotations

import time

import pytest
from jose import jwt

from auth.models import Role
from auth.tokens import InvalidTokenError, TokenCodec, hash_password, verify_password

KEY = "a" * 32
OTHER_KEY = "b" * 32


# ---------------------------------------------------------------------------
# Round trip
# ---------------------------------------------------------------------------


def test_issue_then_verify_returns_claims(codec):
    token = codec.issue(42, "seller@example.com", Role.admin)
    claims = codec.verify(token)
    assert claims.subject_id == 42
    assert claims.email == "seller@example.com"
    assert claims.role is Role.admin
    assert claims.expires_at - claims.issued_at == 3600


def test_custom_ttl_overrides_default(codec):
    claims = codec.verify(codec.issue(1, "a@x.com", Role.user, ttl=60))
    assert claims.expires_at - claims.issued_at == 60


def test_tokens_issued_back_to_back_differ(codec):
    first = codec.issue(7, "a@x.com", Role.user)
    second = codec.issue(7, "a@x.com", Role.user)
    assert first != second
    assert codec.verify(first).subject_id == codec.verify(second).subject_id == 7


# ---------------------------------------------------------------------------
# Rejections
# ---------------------------------------------------------------------------


def test_expired_token_rejected():
    codec = TokenCodec(KEY, 3600)
    token = codec.issue(1, "a@x.com", Role.user, ttl=-10)
    with pytest.raises(InvalidTokenError) as exc_info:
        codec.verify(token)
    assert exc_info.value.reason == "expired"


def test_token_expiring_now_is_already_invalid():
    codec = TokenCodec(KEY, 3600)
    token = codec.issue(1, "a@x.com", Role.user, ttl=0)
    with pytest.raises(InvalidTokenError) as exc_info:
        codec.verify(token)
    assert exc_info.value.reason == "expired"


def test_key_rotation_invalidates_tokens():
    token = TokenCodec(KEY, 3600).issue(1, "a@x.com", Role.user)
    with pytest.raises(InvalidTokenError) as exc_info:
        TokenCodec(OTHER_KEY, 3600).verify(token)
    assert exc_info.value.reason == "signature"


def test_tampered_payload_rejected(codec):
    header, payload, signature = codec.issue(1, "a@x.com", Role.user).split(".")
    forged_payload = jwt.encode({"sub": "2", "role": "admin"}, "x" * 32).split(".")[1]
    with pytest.raises(InvalidTokenError) as exc_info:
        codec.verify(".".join([header, forged_payload, signature]))
    assert exc_info.value.reason == "signature"


@pytest.mark.parametrize("garbage", ["", "not-a-token", "a.b.c", "Bearer xyz"])
def test_garbage_is_malformed(codec, garbage):
    with pytest.raises(InvalidTokenError) as exc_info:
        codec.verify(garbage)
    assert exc_info.value.reason == "malformed"


def _signed(payload: dict) -> str:
    return jwt.encode(payload, "k" * 32, algorithm="HS256")


def test_missing_role_claim_is_malformed(codec):
    now = int(time.time())
    token = _signed({"sub": "1", "email": "a@x.com", "iat": now, "exp": now + 60})
    with pytest.raises(InvalidTokenError) as exc_info:
        codec.verify(token)
    assert exc_info.value.reason == "malformed"


def test_unknown_role_is_malformed(codec):
    now = int(time.time())
    token = _signed({"sub": "1", "email": "a@x.com", "role": "root", "iat": now, "exp": now + 60})
    with pytest.raises(InvalidTokenError) as exc_info:
        codec.verify(token)
    assert exc_info.value.reason == "malformed"


def test_non_integer_subject_is_malformed(codec):
    now = int(time.time())
    token = _signed({"sub": "abc", "email": "a@x.com", "role": "user", "iat": now, "exp": now + 60})
    with pytest.raises(InvalidTokenError) as exc_info:
        codec.verify(token)
    assert exc_info.value.reason == "malformed"


def test_missing_exp_is_malformed(codec):
    token = _signed({"sub": "1", "email": "a@x.com", "role": "user", "iat": int(time.time())})
    with pytest.raises(InvalidTokenError) as exc_info:
        codec.verify(token)
    assert exc_info.value.reason == "malformed"


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def test_hash_is_not_plaintext_and_verifies():
    hashed = hash_password("correct horse")
    assert hashed != "correct horse"
    assert verify_password("correct horse", hashed)
    assert not verify_password("wrong horse", hashed)


def test_hashes_are_salted():
    assert hash_password("same") != hash_password("same")


def test_corrupt_hash_is_a_mismatch_not_an_error():
    assert verify_password("anything", "not-a-bcrypt-hash") is False
