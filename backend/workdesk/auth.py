"""Password hashing and the bearer tokens that identify the acting user.

Access tokens carry the user's role so the portals can render the right
dashboard without a lookup; the API itself always re-reads the user row.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import bcrypt
from jose import JWTError, jwt

from workdesk.config import settings

ALGORITHM = "HS256"


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    role: str | None
    token_type: str


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(plain: str, hashed: str) -> bool:
    return bcrypt.checkpw(plain.encode(), hashed.encode())


def _encode(claims: dict, lifetime: timedelta) -> str:
    claims = {**claims, "exp": datetime.now(UTC) + lifetime}
    return jwt.encode(claims, settings.secret_key, algorithm=ALGORITHM)


def create_access_token(user_id: int, username: str, role: str) -> str:
    return _encode(
        {"sub": str(user_id), "username": username, "role": role, "type": "access"},
        timedelta(minutes=settings.access_token_expire_minutes),
    )


def create_refresh_token(user_id: int) -> str:
    return _encode(
        {"sub": str(user_id), "type": "refresh"},
        timedelta(days=settings.refresh_token_expire_days),
    )


def decode_token(token: str, expected_type: str = "access") -> TokenClaims:
    """Decode and check a token, raising ValueError if it is unusable."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
        claims = TokenClaims(
            user_id=int(payload["sub"]),
            role=payload.get("role"),
            token_type=payload.get("type", "access"),
        )
    except (JWTError, KeyError, TypeError, ValueError) as e:
        raise ValueError("Invalid token") from e
    if claims.token_type != expected_type:
        raise ValueError(f"Expected a {expected_type} token")
    return claims
