import asyncio
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect

from costa_bridge.api.deps import get_runtime
from costa_bridge.api.schemas import RefreshResponse, StreamStatusResponse
from costa_bridge.runtime import CostaRuntime
from costa_bridge.usage import UsageSnapshot

logger = logging.getLogger("costa.api")

USAGE_EVENT_BUFFER = 16

router = APIRouter()

"""
WebSocket Usage Stream
======================

/api/v1/usage/stream
--------------------
Pushes every usage snapshot published by the usage stream.

Server sends events:
- "usage": A new snapshot ({"points", "total_points", "context_length"});
  the latest known snapshot is sent right after the connection opens
"""


def _get_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _enqueue_latest(queue: asyncio.Queue, snapshot: UsageSnapshot) -> None:
    # slow clients only miss stale snapshots
    if queue.full():
        queue.get_nowait()
    queue.put_nowait(snapshot)


def _usage_event(snapshot: UsageSnapshot) -> dict:
    return {
        "type": "usage",
        "data": snapshot.model_dump(mode="json"),
        "timestamp": _get_timestamp(),
    }


@router.get("", response_model=UsageSnapshot)
async def latest_usage(runtime: CostaRuntime = Depends(get_runtime)):
    if runtime.usage_stream.latest is None:
        raise HTTPException(status_code=404, detail="No usage data received yet")
    return runtime.usage_stream.latest


@router.post("/refresh", response_model=RefreshResponse)
async def refresh_usage(runtime: CostaRuntime = Depends(get_runtime)):
    snapshot = await runtime.refresh()
    return RefreshResponse(logged_in=snapshot is not None, usage=snapshot)


def _stream_status(runtime: CostaRuntime) -> StreamStatusResponse:
    stream = runtime.usage_stream
    return StreamStatusResponse(
        state=stream.state.value,
        polling=stream.polling,
        reconnect_pending=stream.reconnect_pending,
    )


@router.post("/connect", response_model=StreamStatusResponse)
async def connect_stream(runtime: CostaRuntime = Depends(get_runtime)):
    await runtime.usage_stream.connect()
    return _stream_status(runtime)


@router.post("/disconnect", response_model=StreamStatusResponse)
async def disconnect_stream(runtime: CostaRuntime = Depends(get_runtime)):
    runtime.usage_stream.disconnect()
    return _stream_status(runtime)


@router.websocket("/stream")
async def stream_usage(websocket: WebSocket):
    """
    WebSocket endpoint streaming usage events.
    """
    runtime: CostaRuntime = websocket.app.state.runtime
    await websocket.accept()

    queue: asyncio.Queue = asyncio.Queue(maxsize=USAGE_EVENT_BUFFER)
    unsubscribe = runtime.usage_stream.on_usage(lambda snapshot: _enqueue_latest(queue, snapshot))

    async def forward_usage():
        if runtime.usage_stream.latest is not None:
            await websocket.send_json(_usage_event(runtime.usage_stream.latest))
        while True:
            snapshot = await queue.get()
            await websocket.send_json(_usage_event(snapshot))

    sender = asyncio.create_task(forward_usage())
    try:
        # clients only ever close the socket; reading detects that
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("api: Usage stream client disconnected")
    finally:
        unsubscribe()
        sender.cancel()
        await asyncio.wait({sender})
        if not sender.cancelled() and sender.exception() is not None:
            logger.warning(f"api: Failed to send usage event: {sender.exception()}")
