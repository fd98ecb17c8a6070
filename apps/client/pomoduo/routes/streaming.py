from __future__ import annotations

import asyncio
import contextlib
from typing import Any, AsyncIterator, Awaitable

from fastapi import WebSocket, WebSocketDisconnect

EventQueue = asyncio.Queue[dict[str, Any]]


async def iter_text_frames(websocket: WebSocket) -> AsyncIterator[str]:
    """Yield text frames until the client disconnects; binary frames are skipped."""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return
        text = message.get("text")
        if text is not None:
            yield text


async def _forward(websocket: WebSocket, queue: EventQueue) -> None:
    while True:
        await websocket.send_json(await queue.get())


async def serve_until_disconnect(
    websocket: WebSocket, queue: EventQueue, receiver: Awaitable[None]
) -> None:
    # Whichever side stops first ends the connection.
    tasks = [
        asyncio.create_task(_forward(websocket, queue)),
        asyncio.ensure_future(receiver),
    ]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                raise exc
    finally:
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError, WebSocketDisconnect):
                await task
