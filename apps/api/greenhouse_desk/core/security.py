from datetime import datetime, timedelta, timezone
from passlib.context import CryptContext
import jwt
from .config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"


def hash_password(pw: str) -> str:
    return pwd_context.hash(pw)


def verify_password(pw: str, hashed: str) -> bool:
    if not hashed:
        return False
    try:
        return pwd_context.verify(pw, hashed)
    except ValueError:
        return False


def _encode(sub: str, token_type: str, expires_min: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": sub,
        "typ": token_type,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=expires_min)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")


def create_access_token(sub: str) -> str:
    return _encode(sub, ACCESS_TOKEN, settings.jwt_expires_min)


def create_refresh_token(sub: str) -> str:
    return _encode(sub, REFRESH_TOKEN, settings.jwt_refresh_expires_min)


def decode_token(token: str, expected_type: str = ACCESS_TOKEN) -> dict:
    payload = jwt.decode(token, settings.jwt_secret, algorithms=["HS256"])
    if payload.get("typ") != expected_type:
        raise jwt.InvalidTokenError(f"Expected a {expected_type} token")
    return payload
