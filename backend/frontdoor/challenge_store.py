"""Short-lived, single-use storage of WebAuthn ceremony state.

Every issued challenge is written under a key derived from the ceremony type
and the challenge value, with a TTL. Verification takes it back out with a
transactional GET+DEL, so a challenge is consumed at most once even when two
requests race for it.
"""

import enum
import json
import logging

from redis import Redis
from .config import settings

logger = logging.getLogger(__name__)


class Ceremony(str, enum.Enum):
    REGISTER = "register"
    AUTHENTICATE = "authenticate"


class ChallengeStore:
    def __init__(self, client: Redis, ttl_seconds: int = 300, prefix: str = "webauthn"):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    def _key(self, ceremony: Ceremony, challenge: str) -> str:
        return f"{self.prefix}:{ceremony.value}:{challenge}"

    def put(self, ceremony: Ceremony, challenge: str, data: dict):
        self.client.setex(self._key(ceremony, challenge), self.ttl_seconds, json.dumps(data))

    def take_if_valid(self, ceremony: Ceremony, challenge: str) -> dict | None:
        """Consume the state stored for ``challenge``; None if unknown, expired or already used."""
        if not challenge:
            return None
        key = self._key(ceremony, challenge)
        pipe = self.client.pipeline()
        pipe.get(key)
        pipe.delete(key)
        value, _ = pipe.execute()
        if value is None:
            logger.info("No live %s challenge for the submitted value", ceremony.value)
            return None
        return json.loads(value)

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except Exception:
            return False


_store: ChallengeStore | None = None

def get_challenge_store() -> ChallengeStore:
    """FastAPI dependency; tests override it with a store over fakeredis."""
    global _store
    if _store is None:
        _store = ChallengeStore(Redis.from_url(settings.REDIS_URL), ttl_seconds=settings.CHALLENGE_TTL_SECONDS)
    return _store
