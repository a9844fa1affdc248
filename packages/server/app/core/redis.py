"""Session revocation list kept in Redis.

One ``RevocationList`` is built per app from its settings and lives on
``app.state.revocations``.
"""

from __future__ import annotations

import redis.asyncio as redis
from fastapi import Request

from app.core.config import Settings

REVOKED_PREFIX = "jwt:revoked:"


class RevocationList:
    """Revoked session ids; each entry expires with the token it revokes."""

    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RevocationList":
        return cls(redis.from_url(url, decode_responses=True))

    async def revoke(self, jti: str, ttl_seconds: int = 3600) -> None:
        await self.client.setex(f"{REVOKED_PREFIX}{jti}", ttl_seconds, "1")

    async def is_revoked(self, jti: str) -> bool:
        return await self.client.exists(f"{REVOKED_PREFIX}{jti}") > 0

    async def close(self) -> None:
        await self.client.aclose()


def build_revocation_list(settings: Settings) -> RevocationList:
    return RevocationList.from_url(settings.redis_url)


def get_revocation_list(request: Request) -> RevocationList:
    return request.app.state.revocations
