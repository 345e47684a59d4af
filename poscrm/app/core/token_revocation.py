"""
Token Revocation using Redis.

Logout blacklists the presented token; deleting or deactivating a user
revokes every token issued to them.
"""

import logging
from redis.exceptions import RedisError
from poscrm.app.core import redis_client as redis_module
from poscrm.app.core.config import settings

logger = logging.getLogger("poscrm.auth")

TOKEN_BLACKLIST_PREFIX = "blacklist:token:"
USER_TOKENS_PREFIX = "user:tokens:"


def _ttl_seconds() -> int:
    # Revocations only need to outlive the longest-lived token
    return settings.access_token_expire_minutes * 60


async def revoke_token(token: str, user_id: int) -> bool:
    """Blacklist a single token. Returns False if Redis is unavailable."""
    try:
        await redis_module.redis_client.setex(
            f"{TOKEN_BLACKLIST_PREFIX}{token}", _ttl_seconds(), str(user_id)
        )
        return True
    except RedisError as e:
        logger.error("Error revoking token for user %s: %s", user_id, e)
        return False


async def is_token_revoked(token: str) -> bool:
    """
    Check the token blacklist.

    Fails open: when Redis is down the token is treated as valid.
    """
    try:
        return await redis_module.redis_client.exists(f"{TOKEN_BLACKLIST_PREFIX}{token}") > 0
    except RedisError as e:
        logger.error("Error checking token revocation: %s", e)
        return False


async def revoke_all_user_tokens(user_id: int) -> bool:
    """Flag every token of `user_id` as revoked."""
    try:
        await redis_module.redis_client.setex(
            f"{USER_TOKENS_PREFIX}{user_id}:revoked", _ttl_seconds(), "1"
        )
        return True
    except RedisError as e:
        logger.error("Error revoking all tokens for user %s: %s", user_id, e)
        return False


async def are_user_tokens_revoked(user_id: int) -> bool:
    try:
        return await redis_module.redis_client.exists(f"{USER_TOKENS_PREFIX}{user_id}:revoked") > 0
    except RedisError as e:
        logger.error("Error checking user token revocation for %s: %s", user_id, e)
        return False


async def clear_user_token_revocation(user_id: int) -> bool:
    """Lift a user-wide revocation (account reactivated)."""
    try:
        await redis_module.redis_client.delete(f"{USER_TOKENS_PREFIX}{user_id}:revoked")
        return True
    except RedisError as e:
        logger.error("Error clearing token revocation for user %s: %s", user_id, e)
        return False
