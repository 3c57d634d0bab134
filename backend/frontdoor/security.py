import time
import jwt
from .config import settings

ALGO = "HS256"

def issue_token(sub: str, ttl_seconds: int | None = None) -> str:
    """Session token handed out after a successful passkey sign-in."""
    now = int(time.time())
    ttl = settings.TOKEN_TTL_SECONDS if ttl_seconds is None else ttl_seconds
    payload = {"sub": sub, "iat": now, "exp": now + ttl, "amr": ["webauthn"]}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=ALGO)
