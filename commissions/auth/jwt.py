"""
Caller tokens.

The gateway in front of this service signs an HS256 access token whose
claims carry the user id (`sub`) and an authority level from 1 to 5.
`create_access_token` exists for that gateway and for tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from commissions.config import settings

ALGORITHM = "HS256"
TOKEN_TYPE = "access"
MIN_AUTHORITY = 1
MAX_AUTHORITY = 5


def create_access_token(
    user_id: int,
    authority_level: int,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Sign an access token.

    Args:
        user_id: Caller's user ID
        authority_level: 1 (lowest) to 5
        expires_delta: Lifetime; defaults to settings.jwt_expire_hours
    """
    issued = datetime.now(timezone.utc)
    lifetime = expires_delta or timedelta(hours=settings.jwt_expire_hours)

    claims = {
        "sub": str(user_id),
        "authority_level": authority_level,
        "type": TOKEN_TYPE,
        "iat": issued,
        "exp": issued + lifetime,
    }
    return jwt.encode(claims, settings.secret_key, algorithm=ALGORITHM)


def _valid_level(value) -> bool:
    # bool is an int subclass; a token saying `true` is not level 1
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and MIN_AUTHORITY <= value <= MAX_AUTHORITY
    )


def verify_token(token: str) -> Optional[dict]:
    """
    Decode a token into {"user_id", "authority_level"}.

    Returns None for a bad signature, an expired token, a non-access
    token, or claims that are missing or out of range.
    """
    try:
        claims = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return None

    if claims.get("type") != TOKEN_TYPE:
        return None

    subject = claims.get("sub")
    level = claims.get("authority_level")
    if not isinstance(subject, str) or not subject.isdigit() or not _valid_level(level):
        return None

    return {"user_id": int(subject), "authority_level": level}


def get_token_from_request(request) -> Optional[str]:
    """Bearer header first, then the token cookie."""
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return request.cookies.get(settings.token_cookie_name)
