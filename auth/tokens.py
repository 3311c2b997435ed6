"""
auth/tokens.py -- Token codec and password hashing.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       the account id (sub), email, role, iat, exp and a random jti. The jti
       makes two tokens minted for the same account in the same second
       distinct. Tokens are never stored server-side: validity is purely a
       function of signature and expiry. Rotating SECRET_KEY invalidates
       every outstanding token.

  Verification raises InvalidTokenError with a reason ("expired",
       "signature", "malformed") instead of returning None, so callers can
       tell a bad credential apart from any other failure. The gate maps all
       three to 401.

  Passwords: bcrypt directly (no passlib wrapper) with a fixed cost factor
       from Settings.bcrypt_rounds. The _DUMMY_HASH constant enables timing
       equalization in AuthService.login() so response time does not reveal
       whether an email is registered.

  TokenCodec is built once at startup from settings and handed to the
       service and the gate through app.state. Tests build their own codecs
       with their own keys to exercise rotation.

Layer rule: no imports from api/ or catalog/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError

from auth.models import Role, TokenClaims
from core.config import get_settings

logger = logging.getLogger("bechdo.auth")

_settings = get_settings()

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes. The API layer caps passwords at
    72 characters so nothing is silently truncated for ASCII input.
    """
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A corrupt stored hash makes bcrypt raise ValueError; that is a mismatch,
    not a server error, as far as the caller is concerned.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash could not be parsed")
        return False


# Timing equalization dummy hash.
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones. Login always runs verify_password(), against
# this hash when the email is unknown.
_DUMMY_HASH: str = hash_password("bechdo_timing_dummy")


def burn_password_check(plain: str) -> None:
    """Spend one bcrypt verification without a real hash to compare against."""
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# Token codec
# ---------------------------------------------------------------------------


class InvalidTokenError(Exception):
    """Raised by TokenCodec.verify(). reason is "expired", "signature" or "malformed"."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Invalid token ({reason})")


class TokenCodec:
    """Issue and verify signed, time-bound identity assertions.

    Usage:
        codec = TokenCodec(settings.secret_key, settings.token_expire_seconds)
        token = codec.issue(42, "a@x.com", Role.user)
        claims = codec.verify(token)        # TokenClaims or InvalidTokenError
    """

    def __init__(self, secret_key: str, ttl_seconds: int) -> None:
        self._secret_key = secret_key
        self.ttl_seconds = ttl_seconds

    def issue(self, subject_id: int, email: str, role: Role, ttl: int | None = None) -> str:
        """Encode a signed JWT for the given account.

        Args:
            subject_id: Account id, stored as the string "sub" claim.
            email:      Account email at issue time.
            role:       Account role at issue time. A later role change does
                        not affect tokens already issued.
            ttl:        Lifetime in seconds. None uses the codec default.
        """
        now = datetime.now(timezone.utc)
        duration = self.ttl_seconds if ttl is None else ttl
        payload = {
            "sub": str(subject_id),
            "email": email,
            "role": Role(role).value,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=duration)).timestamp()),
            "jti": secrets.token_hex(8),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str) -> TokenClaims:
        """Decode and verify a JWT. Raises InvalidTokenError on any failure."""
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"require_exp": True, "require_iat": True, "require_sub": True},
            )
        except ExpiredSignatureError as exc:
            raise InvalidTokenError("expired") from exc
        except JWTClaimsError as exc:
            raise InvalidTokenError("malformed") from exc
        except JWTError as exc:
            reason = "signature" if "signature" in str(exc).lower() else "malformed"
            raise InvalidTokenError(reason) from exc

        try:
            claims = TokenClaims(
                subject_id=int(payload["sub"]),
                email=str(payload["email"]),
                role=Role(payload["role"]),
                issued_at=int(payload["iat"]),
                expires_at=int(payload["exp"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidTokenError("malformed") from exc

        # jose accepts a token whose exp equals the current second; expiry is
        # exclusive here.
        if claims.expires_at <= int(datetime.now(timezone.utc).timestamp()):
            raise InvalidTokenError("expired")
        return claims
