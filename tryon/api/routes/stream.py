from __future__ import annotations

import asyncio
import logging
import time

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from tryon.api.routes.tracking import build_tracking_schema
from tryon.api.services.engine import TryOnEngine
from tryon.api.services.state import get_engine

router = APIRouter()

logger = logging.getLogger(__name__)


def _is_closed_send_error(exc: BaseException) -> bool:
    # Uvicorn raises this when an ASGI websocket.send happens after close.
    if not isinstance(exc, RuntimeError):
        return False
    msg = str(exc)
    return "Unexpected ASGI message 'websocket.send'" in msg or "response already completed" in msg


@router.websocket("/stream/tracking")
async def stream_tracking(ws: WebSocket):
    """Push every newly published tracking snapshot to the client."""

    await ws.accept()
    engine: TryOnEngine = await asyncio.to_thread(get_engine)

    async def _poll_and_handle_ping() -> None:
        # Only real Starlette WebSocket instances have receive_json().
        if not hasattr(ws, "receive_json"):
            return
        try:
            msg = await asyncio.wait_for(ws.receive_json(), timeout=0.001)
        except asyncio.TimeoutError:
            return
        if not isinstance(msg, dict) or msg.get("type") != "ping":
            return
        await ws.send_json({"type": "pong", "t": msg.get("t"), "server_time": time.time()})

    try:
        async for snapshot in engine.tracking_stream():
            await _poll_and_handle_ping()
            try:
                payload = build_tracking_schema(engine, snapshot).model_dump(mode="json")
                await ws.send_json(payload)
            except WebSocketDisconnect:
                raise
            except Exception as e:
                if _is_closed_send_error(e):
                    return
                # Keep the websocket alive even if one snapshot fails serialization.
                logger.exception("Failed to send tracking snapshot")
                await asyncio.sleep(0.05)
    except WebSocketDisconnect:
        return
    except Exception:
        logger.exception("Tracking websocket crashed")
        try:
            await ws.close(code=1011)
        except Exception:
            logger.debug("Websocket close failed", exc_info=True)
