"""OpenAI-compatible HTTP API: model listing and chat completions answered through Slack."""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
import time
from typing import Any, AsyncIterator, Callable, Iterator, Optional, TypeVar

from flask import Flask, Response, jsonify, request, stream_with_context
from pydantic import ValidationError

from slaude.channels.slack import SlackApiError
from slaude.config.loader import Config, get_config
from slaude.core.bridge import CompletionBridge
from slaude.core.events import (
    ChatCompletionRequest,
    SnapshotDelta,
    completion_chunk,
    completion_message,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DONE_SENTINEL = "[DONE]"
BAD_REQUEST_HINT = (
    "Completion request not in expected format, make sure the client is set to use OpenAI."
)


def _error(message: str, status: int):
    return jsonify({"error": {"message": message}}), status


def iterate_async(factory: Callable[[], AsyncIterator[T]]) -> Iterator[T]:
    """Drive an async iterator from sync code on a private event loop.

    Closing the returned generator closes the async iterator on the same loop,
    so its cleanup runs even when the HTTP client goes away mid-stream.
    """
    loop = asyncio.new_event_loop()
    agen = factory()
    try:
        while True:
            try:
                item = loop.run_until_complete(agen.__anext__())
            except StopAsyncIteration:
                return
            yield item
    finally:
        try:
            loop.run_until_complete(agen.aclose())
        finally:
            loop.close()


def sse(payload: Any) -> str:
    data = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
    return f"data: {data}\n\n"


def event_stream(first: Optional[SnapshotDelta], deltas: Iterator[SnapshotDelta]) -> Iterator[str]:
    """SSE records for each delta, then the [DONE] sentinel."""
    items = itertools.chain([first], deltas) if first is not None else deltas
    try:
        for delta in items:
            yield sse(completion_chunk(delta.delta))
            if delta.done:
                break
    except Exception as e:
        logger.exception("streaming response failed: %s", e)
    finally:
        deltas.close()
    yield sse(DONE_SENTINEL)


def create_app(
    config: Optional[Config] = None,
    bridge_factory: Optional[Callable[[Config], CompletionBridge]] = None,
) -> Flask:
    cfg = config or get_config()
    make_bridge = bridge_factory or CompletionBridge

    app = Flask(__name__)
    app.config["SLAUDE"] = cfg

    @app.route("/models", methods=["GET"])
    @app.route("/<path:prefix>/models", methods=["GET"])
    def list_models(prefix: Optional[str] = None):
        """Clients only probe this to see whether the API is up."""
        model_id = cfg.server.model_id
        return jsonify(
            {
                "object": "list",
                "data": [
                    {
                        "id": model_id,
                        "object": "model",
                        "created": int(time.time() * 1000),
                        "owned_by": "anthropic",
                        "permission": [],
                        "root": model_id,
                        "parent": None,
                    }
                ],
            }
        )

    @app.route("/chat/completions", methods=["POST"])
    @app.route("/<path:prefix>/chat/completions", methods=["POST"])
    def chat_completions(prefix: Optional[str] = None):
        body = request.get_json(silent=True)
        if not isinstance(body, dict) or "messages" not in body:
            return _error(BAD_REQUEST_HINT, 400)
        try:
            completion = ChatCompletionRequest.model_validate(body)
        except ValidationError as e:
            return _error(f"{BAD_REQUEST_HINT} {e.errors()[:1]}", 400)
        if not completion.messages:
            return _error("messages must not be empty", 400)

        bridge = make_bridge(cfg)
        if not completion.stream:
            try:
                content = asyncio.run(bridge.complete(completion))
            except SlackApiError as e:
                logger.error("completion failed: %s", e)
                return _error(str(e), 502)
            logger.info("finished returning the bot's response")
            return jsonify(completion_message(content))

        deltas = iterate_async(lambda: bridge.stream(completion))
        try:
            first = next(deltas)
        except StopIteration:
            first = None
        except SlackApiError as e:
            logger.error("completion failed: %s", e)
            return _error(str(e), 502)
        return Response(
            stream_with_context(event_stream(first, deltas)),
            mimetype="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.route("/api/health")
    def api_health():
        return jsonify({"ok": True})

    return app
