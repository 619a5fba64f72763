"""Redis-backed credential state: the refresh-token ledger and single-use tokens.

Refresh tokens are opaque identifiers. ``refresh_token:{token}`` maps to the
owning user id and expires with the token; ``user_sessions:{user_id}`` is the
set of that user's live tokens, used for bulk revocation.

Single-use tokens (invites, password resets, OAuth state and exchange codes)
are consumed with ``GETDEL`` so two concurrent consumers can never both win.
"""

from redis.asyncio import Redis
from redis.exceptions import RedisError

from src.agrogate.core.exceptions import UnexpectedError
from src.agrogate.core.logging import get_logger
from src.agrogate.core.security import generate_opaque_token

logger = get_logger(__name__)

PREFIX_REFRESH_TOKEN = "refresh_token"
PREFIX_USER_SESSIONS = "user_sessions"

PREFIX_ORG_INVITE = "org_invite_token"
PREFIX_PASSWORD_RESET = "password_reset"
PREFIX_GOOGLE_STATE = "google_state"
PREFIX_GOOGLE_EXCHANGE = "google_exchange"


def _refresh_key(token: str) -> str:
    return f"{PREFIX_REFRESH_TOKEN}:{token}"


def _sessions_key(user_id: str) -> str:
    return f"{PREFIX_USER_SESSIONS}:{user_id}"


class SessionLedger:
    """Registry of live refresh tokens."""

    def __init__(self, redis: Redis, ttl_seconds: int):
        self.redis = redis
        self.ttl_seconds = ttl_seconds

    async def register(self, token: str, user_id: str) -> None:
        """Store a freshly minted refresh token and add it to the user's session set."""
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.set(_refresh_key(token), user_id, ex=self.ttl_seconds)
                pipe.sadd(_sessions_key(user_id), token)
                pipe.expire(_sessions_key(user_id), self.ttl_seconds)
                await pipe.execute()
        except RedisError as e:
            logger.error("Failed to register refresh token", user_id=user_id, error=str(e))
            raise UnexpectedError("Session store unavailable") from e

    async def consume(self, token: str) -> str | None:
        """Atomically read and delete a refresh token.

        Returns the owning user id, or None if the token is unknown, expired
        or was already consumed. Exactly one of two concurrent callers wins.
        """
        try:
            user_id: str | None = await self.redis.getdel(_refresh_key(token))
            if user_id is not None:
                await self.redis.srem(_sessions_key(user_id), token)  # type: ignore[misc]
            return user_id
        except RedisError as e:
            logger.error("Failed to consume refresh token", error=str(e))
            raise UnexpectedError("Session store unavailable") from e

    async def revoke(self, token: str) -> bool:
        """Delete a refresh token. Idempotent; returns whether it was live."""
        return await self.consume(token) is not None

    async def revoke_all(self, user_id: str) -> int:
        """Delete every live refresh token of a user. Returns the number revoked."""
        try:
            tokens: set[str] = await self.redis.smembers(_sessions_key(user_id))  # type: ignore[misc]
            async with self.redis.pipeline(transaction=True) as pipe:
                for token in tokens:
                    pipe.delete(_refresh_key(token))
                pipe.delete(_sessions_key(user_id))
                await pipe.execute()
        except RedisError as e:
            logger.error("Failed to revoke user sessions", user_id=user_id, error=str(e))
            raise UnexpectedError("Session store unavailable") from e

        if tokens:
            logger.info("User sessions revoked", user_id=user_id, token_count=len(tokens))
        return len(tokens)

    async def live_tokens(self, user_id: str) -> set[str]:
        """Tokens currently registered for a user (entries may have expired since)."""
        return await self.redis.smembers(_sessions_key(user_id))  # type: ignore[no-any-return, misc]


class SingleUseTokenStore:
    """Opaque tokens that are valid for exactly one successful consumption."""

    def __init__(self, redis: Redis):
        self.redis = redis

    async def issue(self, prefix: str, payload: str, ttl_seconds: int) -> str:
        """Mint a token carrying ``payload`` that expires after ``ttl_seconds``."""
        token = generate_opaque_token()
        try:
            await self.redis.set(f"{prefix}:{token}", payload, ex=ttl_seconds)
        except RedisError as e:
            logger.error("Failed to issue single-use token", kind=prefix, error=str(e))
            raise UnexpectedError("Token store unavailable") from e
        return token

    async def consume(self, prefix: str, token: str) -> str | None:
        """Atomically read and delete a token. None if absent, expired or already used."""
        try:
            return await self.redis.getdel(f"{prefix}:{token}")  # type: ignore[no-any-return]
        except RedisError as e:
            logger.error("Failed to consume single-use token", kind=prefix, error=str(e))
            raise UnexpectedError("Token store unavailable") from e
