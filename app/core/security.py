import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple
from uuid import uuid4

from fastapi import Request
from jose import jwt, ExpiredSignatureError, JWTError
from passlib.context import CryptContext

from app.core.config import settings
from app.core.exceptions import InvalidTokenError, TokenExpiredError
from app.utils.helpers import utcnow

try:
    import bcrypt  # type: ignore
    import types

    if not hasattr(bcrypt, "__about__"):
        bcrypt.__about__ = types.SimpleNamespace(  # type: ignore[attr-defined]
            __version__=getattr(bcrypt, "__version__", "")
        )
except Exception:  # pragma: no cover - passlib still loads its own backend
    bcrypt = None  # type: ignore

# OTP codes are six digits, so the hash has to be slow rather than the input long.
otp_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.OTP_HASH_ROUNDS,
    bcrypt__ident="2b",
)

OAUTH_STATE_AUDIENCE = "plexus-oauth-state"


def create_access_token(
    user: Any, expires_delta: Optional[timedelta] = None
) -> str:
    """Sign a bearer token carrying the user's id, email and name."""
    if expires_delta:
        expire = utcnow() + expires_delta
    else:
        expire = utcnow() + timedelta(days=settings.ACCESS_TOKEN_EXPIRE_DAYS)

    to_encode = {
        "id": str(user.id),
        "sub": str(user.id),
        "email": user.email,
        "name": user.name,
        "iat": utcnow(),
        "exp": expire,
        "iss": settings.JWT_ISSUER,
        "aud": settings.JWT_AUDIENCE,
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Verify signature, expiry, issuer and audience.

    Raises ``TokenExpiredError`` for an otherwise valid token past its expiry and
    ``InvalidTokenError`` for everything else.
    """
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            issuer=settings.JWT_ISSUER,
        )
    except ExpiredSignatureError:
        raise TokenExpiredError() from None
    except JWTError:
        raise InvalidTokenError() from None


def generate_session_token() -> str:
    return secrets.token_hex(32)


def session_expiration(issued_at: Optional[datetime] = None) -> datetime:
    return (issued_at or utcnow()) + timedelta(days=settings.SESSION_EXPIRE_DAYS)


def issue_session_token(issued_at: Optional[datetime] = None) -> Tuple[str, datetime]:
    """Return an opaque session token with its expiry."""
    return generate_session_token(), session_expiration(issued_at)


def extract_token(request: Request) -> Optional[str]:
    """Bearer header wins over the cookie when both are present."""
    authorization = request.headers.get("Authorization")
    if authorization and authorization.startswith("Bearer "):
        token = authorization[len("Bearer "):].strip()
        if token:
            return token

    return request.cookies.get(settings.COOKIE_NAME) or None


def generate_otp_code(length: Optional[int] = None) -> str:
    digits = length or settings.OTP_LENGTH
    return f"{secrets.randbelow(10 ** digits):0{digits}d}"


def hash_otp(code: str) -> str:
    return otp_context.hash(code)


def verify_otp_hash(code: str, otp_hash: str) -> bool:
    try:
        return otp_context.verify(code, otp_hash)
    except ValueError:
        return False


def create_oauth_state() -> str:
    """Signed, short-lived state value for the Google redirect round trip."""
    payload = {
        "n": uuid4().hex,
        "exp": utcnow() + timedelta(minutes=10),
        "iss": settings.JWT_ISSUER,
        "aud": OAUTH_STATE_AUDIENCE,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def verify_oauth_state(state: str) -> bool:
    try:
        jwt.decode(
            state,
            settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            audience=OAUTH_STATE_AUDIENCE,
            issuer=settings.JWT_ISSUER,
        )
    except JWTError:
        return False
    return True
