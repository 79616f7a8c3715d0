"""Slack channel: post prompt chunks through the web client API, listen for edits over WebSocket."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Optional

import aiohttp
import httpx

from slaude.config.loader import SlackSettings

logger = logging.getLogger(__name__)

AUTH_ERRORS = ("invalid_auth", "not_authed")
NORMAL_CLOSE_CODES = (1000, 1005)


class SlackApiError(RuntimeError):
    """Slack refused a request or could not be reached."""

    def __init__(self, message: str, error: str = "") -> None:
        super().__init__(message)
        self.error = error


def build_blocks(text: Optional[str], ping: bool, settings: SlackSettings) -> list[dict[str, Any]]:
    """Rich-text blocks for a plain prompt chunk or for the bot mention that triggers a reply."""
    elements: list[dict[str, Any]] = []
    if not ping:
        elements.append({"type": "text", "text": text or ""})
    else:
        if settings.ping_message_prefix:
            elements.append({"type": "text", "text": settings.ping_message_prefix})
        elements.append({"type": "user", "user_id": settings.bot_user_id})
        if settings.ping_message:
            elements.append({"type": "text", "text": settings.ping_message})
    return [
        {
            "type": "rich_text",
            "elements": [{"type": "rich_text_section", "elements": elements}],
        }
    ]


def _headers(settings: SlackSettings) -> dict[str, str]:
    return {
        "Cookie": f"d={settings.cookie};",
        "User-Agent": settings.user_agent,
    }


class SlackClient:
    """Posts messages as the configured Slack user via chat.postMessage."""

    def __init__(
        self, settings: SlackSettings, http_client: Optional[httpx.AsyncClient] = None
    ) -> None:
        self._settings = settings
        self._client = http_client

    @property
    def api_url(self) -> str:
        return f"https://{self._settings.team_id}.slack.com/api/chat.postMessage"

    def _form(self, text: Optional[str], thread_ts: Optional[str], ping: bool) -> dict[str, str]:
        s = self._settings
        form = {
            "token": s.token,
            "channel": s.channel,
            "_x_mode": "online",
            "_x_sonic": "true",
            "type": "message",
            "xArgs": "{}",
            "unfurl": "[]",
            "include_channel_perm_error": "true",
            "_x_reason": "webapp_message_send",
            "blocks": json.dumps(build_blocks(text, ping, s)),
        }
        if thread_ts is not None:
            form["thread_ts"] = thread_ts
        return form

    async def post_message(
        self, text: Optional[str], thread_ts: Optional[str] = None, ping: bool = False
    ) -> Optional[str]:
        """Post one message; returns its ts."""
        form = self._form(text, thread_ts, ping)
        try:
            if self._client is not None:
                r = await self._client.post(
                    self.api_url,
                    data=form,
                    headers=_headers(self._settings),
                    timeout=self._settings.post_timeout,
                )
            else:
                async with httpx.AsyncClient() as client:
                    r = await client.post(
                        self.api_url,
                        data=form,
                        headers=_headers(self._settings),
                        timeout=self._settings.post_timeout,
                    )
        except httpx.HTTPError as e:
            raise SlackApiError(f"Failed posting message to Slack: {e}") from e
        try:
            data = r.json()
        except ValueError as e:
            raise SlackApiError(f"Slack returned {r.status_code} with a non-JSON body") from e
        if not data.get("ok", True):
            error = data.get("error")
            if error in AUTH_ERRORS:
                raise SlackApiError(
                    "Failed posting message to Slack. Your token and/or cookie might be "
                    "incorrect or expired.",
                    error,
                )
            if error:
                raise SlackApiError(str(error), error)
            raise SlackApiError(json.dumps(data))
        return data.get("ts")

    async def create_thread(self, text: str) -> str:
        ts = await self.post_message(text)
        if not ts:
            raise SlackApiError(
                "First message did not return a thread timestamp. Make sure the channel is set "
                "to a channel id that both your Slack user and the bot have access to."
            )
        return ts

    async def create_reply(self, text: str, thread_ts: str) -> Optional[str]:
        return await self.post_message(text, thread_ts)

    async def ping_bot(self, thread_ts: str) -> Optional[str]:
        return await self.post_message(None, thread_ts, ping=True)


class SlackRealtime:
    """WebSocket connection to Slack's realtime endpoint: connect, iterate frames, close."""

    def __init__(self, settings: SlackSettings) -> None:
        self._settings = settings
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None

    @property
    def url(self) -> str:
        return f"{self._settings.websocket_url}?token={self._settings.token}"

    async def connect(self) -> None:
        self._session = aiohttp.ClientSession(headers=_headers(self._settings))
        try:
            self._ws = await asyncio.wait_for(
                self._session.ws_connect(self.url),
                timeout=self._settings.connect_timeout,
            )
        except asyncio.TimeoutError as e:
            await self.close()
            raise SlackApiError("Timed out establishing WebSocket connection.") from e
        except aiohttp.ClientError as e:
            await self.close()
            raise SlackApiError(
                f"WebSocket connection failed ({e}). Your cookie and/or token might be "
                "incorrect or expired."
            ) from e
        logger.info("opened Slack realtime connection")

    async def close(self) -> None:
        if self._ws is not None:
            await self._ws.close()
            code = self._ws.close_code
            if code is not None and code not in NORMAL_CLOSE_CODES:
                logger.warning("WebSocket closed abnormally with code %s", code)
            self._ws = None
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def frames(self) -> AsyncIterator[str]:
        """Text frames in arrival order until the socket closes."""
        if self._ws is None:
            raise RuntimeError("SlackRealtime is not connected")
        async for msg in self._ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                yield msg.data
            elif msg.type == aiohttp.WSMsgType.BINARY:
                yield msg.data.decode("utf-8", errors="replace")
            elif msg.type == aiohttp.WSMsgType.ERROR:
                logger.error("WebSocket error: %s", self._ws.exception())
                break
        code = self._ws.close_code if self._ws is not None else None
        if code is not None and code not in NORMAL_CLOSE_CODES:
            logger.warning("WebSocket closed with code %s", code)
