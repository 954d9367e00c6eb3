"""Redis-backed store for serialised profiling sessions.

The store is an opaque sink: sessions go in as JSON and come back out as
dicts. When Redis is unreachable every operation degrades to a no-op so a
profiling run never fails because the store is down.

Usage:
    store = SessionStore()
    await store.save(session)
    data = await store.load(session.session_id)
    ids = await store.list_sessions()
"""

from __future__ import annotations

import json
import logging
from typing import Any

import redis.asyncio as aioredis

from gasprofiler.core.config import get_settings
from gasprofiler.core.types import ProfilingSession

logger = logging.getLogger(__name__)


class SessionStore:
    """Async Redis store with JSON serialisation and per-key TTL."""

    def __init__(
        self,
        url: str | None = None,
        prefix: str | None = None,
        ttl: int | None = None,
        client: Any | None = None,
    ) -> None:
        settings = get_settings()
        self._url = url or settings.redis_url
        self._prefix = prefix or settings.session_store_prefix
        self.ttl = ttl if ttl is not None else settings.session_store_ttl
        self._client: Any | None = client
        self._enabled = True

    async def _get_client(self) -> Any:
        if not self._enabled:
            return None
        if self._client is None:
            try:
                self._client = aioredis.from_url(
                    self._url,
                    decode_responses=True,
                    socket_connect_timeout=2,
                )
                await self._client.ping()
            except Exception as exc:
                logger.warning("Session store unavailable: %s. Sessions will not be persisted", exc)
                self._enabled = False
                self._client = None
        return self._client

    def _key(self, session_id: str) -> str:
        return f"{self._prefix}:session:{session_id}"

    @property
    def enabled(self) -> bool:
        return self._enabled

    # ── Core operations ──────────────────────────────────────────────────────

    async def save(self, session: ProfilingSession) -> bool:
        """Persist a session. Returns False when the store is unavailable."""
        client = await self._get_client()
        if not client:
            return False
        try:
            raw = json.dumps(session.to_dict(), default=str)
            await client.set(self._key(session.session_id), raw, ex=self.ttl)
            logger.debug("Session %s stored", session.session_id, extra={"session_id": session.session_id})
            return True
        except Exception as exc:
            logger.warning("Session SET error for %s: %s", session.session_id, exc)
            return False

    async def load(self, session_id: str) -> dict[str, Any] | None:
        client = await self._get_client()
        if not client:
            return None
        try:
            raw = await client.get(self._key(session_id))
            return json.loads(raw) if raw is not None else None
        except Exception as exc:
            logger.debug("Session GET error for %s: %s", session_id, exc)
            return None

    async def delete(self, session_id: str) -> None:
        client = await self._get_client()
        if not client:
            return
        try:
            await client.delete(self._key(session_id))
        except Exception as exc:
            logger.debug("Session DELETE error for %s: %s", session_id, exc)

    async def list_sessions(self) -> list[str]:
        """Ids of every stored session under this prefix."""
        client = await self._get_client()
        if not client:
            return []
        marker = self._key("")
        ids: list[str] = []
        try:
            async for key in client.scan_iter(match=f"{marker}*", count=100):
                ids.append(key[len(marker):])
        except Exception as exc:
            logger.debug("Session SCAN error: %s", exc)
        return sorted(ids)

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
