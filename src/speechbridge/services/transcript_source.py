"""Periodic poll of the Supabase ``transcripts`` table."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from speechbridge.config import Settings
from speechbridge.services.pipeline.errors import TranscriptSourceError
from speechbridge.services.pipeline.models import SourceUpdate

logger = logging.getLogger(__name__)

UpdateHandler = Callable[[SourceUpdate], Awaitable[Any]]


class SupabaseTranscriptSource:
    """Reads the most recently updated transcript through PostgREST."""

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not settings.supabase_configured:
            raise ValueError("Supabase URL and key must be configured")
        self.base_url = str(settings.supabase_url).rstrip("/")
        self.table = settings.transcripts_table
        self._key = settings.supabase_key.get_secret_value()  # type: ignore[union-attr]
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self._key,
            "Authorization": f"Bearer {self._key}",
            "Accept": "application/json",
        }

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=10.0)
        return self._client

    async def fetch_latest(self) -> Optional[SourceUpdate]:
        """
        Fetch the latest transcript row.

        Raises:
            TranscriptSourceError: On transport, HTTP or decoding errors
        """
        try:
            response = await self._get_client().get(
                f"{self.base_url}/rest/v1/{self.table}",
                params={"select": "*", "order": "updated_at.desc", "limit": "1"},
                headers=self._headers,
            )
            response.raise_for_status()
            rows = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise TranscriptSourceError(f"Failed to fetch latest transcript: {e}") from e

        if not rows:
            return None
        return SourceUpdate.from_record(rows[0])

    async def close(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None


class TranscriptPoller:
    """
    Background task polling the transcript source at a fixed interval.

    This is the reliability channel behind push delivery: it keeps running
    regardless of client activity and feeds the same handler as the webhook.
    """

    def __init__(
        self,
        source: SupabaseTranscriptSource,
        handler: UpdateHandler,
        interval: float = 5.0,
    ):
        self.source = source
        self.handler = handler
        self.interval = interval
        self._task: Optional[asyncio.Task[None]] = None

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Transcript poller started (every {self.interval:.1f}s)")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        await self.source.close()
        logger.info("Transcript poller stopped")

    async def poll_once(self) -> bool:
        """Fetch once and hand the result to the handler."""
        try:
            update = await self.source.fetch_latest()
        except TranscriptSourceError as e:
            logger.warning(str(e))
            return False
        if update is None:
            return False
        await self.handler(update)
        return True

    async def _loop(self) -> None:
        while True:
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Transcript poll run failed: %s", exc)
            await asyncio.sleep(self.interval)


__all__ = ["SupabaseTranscriptSource", "TranscriptPoller", "UpdateHandler"]
