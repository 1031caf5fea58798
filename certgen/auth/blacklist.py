"""Logout support: revoked JWT IDs are kept in Redis until the token expires.

Keys are ``revoked:<jti>`` with a TTL equal to the token's remaining lifetime,
so the blacklist never outgrows the set of still-valid tokens.
"""

import logging
from datetime import datetime, timezone

from certgen.redis import get_redis

logger = logging.getLogger(__name__)

_KEY_PREFIX = "revoked:"


async def revoke_token(jti: str, exp: int) -> None:
    ttl = exp - int(datetime.now(timezone.utc).timestamp())
    if ttl <= 0:
        return

    r = await get_redis()
    await r.setex(f"{_KEY_PREFIX}{jti}", ttl, "1")
    logger.info("Token revoked: jti=%s, ttl=%ds", jti, ttl)


async def is_token_revoked(jti: str) -> bool:
    r = await get_redis()
    return await r.exists(f"{_KEY_PREFIX}{jti}") > 0
