from __future__ import annotations

import asyncio
import io
import logging
from collections.abc import Callable

import discord

from .errors import DeliveryFailed


class DiscordNotifier:
    """Delivers rollover summaries to Discord channels (guild text channels or DMs).

    Each send is bounded by a timeout and retried with exponential backoff on
    transient HTTP errors; missing channels and permission errors fail at once.
    """

    def __init__(
        self,
        client: discord.Client,
        *,
        timeout_seconds: float = 15.0,
        attempts: int = 3,
        backoff_seconds: float = 1.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self.client = client
        self.timeout_seconds = timeout_seconds
        self.attempts = max(1, attempts)
        self.backoff_seconds = backoff_seconds
        self.logger = logger or logging.getLogger(__name__)

    async def _resolve(self, endpoint_id: str):
        channel_id = int(endpoint_id)
        channel = self.client.get_channel(channel_id)
        if channel is None:
            channel = await self.client.fetch_channel(channel_id)
        return channel

    async def _deliver(self, endpoint_id: str, build_kwargs: Callable[[], dict]) -> None:
        last_error = "unknown error"
        for attempt in range(1, self.attempts + 1):
            try:
                channel = await asyncio.wait_for(self._resolve(endpoint_id), self.timeout_seconds)
                await asyncio.wait_for(channel.send(**build_kwargs()), self.timeout_seconds)
                return
            except (discord.Forbidden, discord.NotFound, ValueError) as exc:
                raise DeliveryFailed(endpoint_id, str(exc)) from exc
            except (discord.HTTPException, asyncio.TimeoutError) as exc:
                last_error = str(exc) or type(exc).__name__
                self.logger.warning(
                    "Delivery to %s failed (attempt %d/%d): %s", endpoint_id, attempt, self.attempts, last_error
                )
                if attempt < self.attempts:
                    await asyncio.sleep(self.backoff_seconds * 2 ** (attempt - 1))
        raise DeliveryFailed(endpoint_id, last_error)

    async def send_text(self, endpoint_id: str, content: str) -> None:
        await self._deliver(
            endpoint_id,
            lambda: {"content": content, "allowed_mentions": discord.AllowedMentions.none()},
        )

    async def send_file(self, endpoint_id: str, filename: str, payload: bytes, caption: str | None = None) -> None:
        # A fresh File per attempt: discord.py consumes the buffer on send.
        await self._deliver(
            endpoint_id,
            lambda: {"content": caption, "file": discord.File(io.BytesIO(payload), filename=filename)},
        )
