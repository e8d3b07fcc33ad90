"""The `/ws` realtime channel: pushes file added and removed events to each connected browser."""

import logging

import anyio
from anyio import CancelScope
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from share_api.broadcaster import Subscription

logger = logging.getLogger(__name__)

router = APIRouter()


async def forward_events(websocket: WebSocket, subscription: Subscription, cancel_scope: CancelScope) -> None:
    """Send each event of `subscription` to the client until the subscription closes."""
    try:
        async for event in subscription:
            await websocket.send_json(event.to_message())
            logger.debug("Sent %s to session %d", event.event.value, subscription.session_id)
    except Exception as e:
        logger.warning(
            "Could not send to session %d (client may have disconnected): %s", subscription.session_id, e
        )
    finally:
        cancel_scope.cancel()


async def wait_for_disconnect(websocket: WebSocket, client_left: anyio.Event, cancel_scope: CancelScope) -> None:
    # Clients have nothing to say on this channel; reading only detects the disconnect.
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        client_left.set()
    finally:
        cancel_scope.cancel()


@router.websocket("/ws")
async def realtime_events(websocket: WebSocket):
    """
    Push `newFile` and `fileDeleted` events to the client.

    No backlog is replayed: a client fetches `GET /files` after connecting
    and applies events on top of that snapshot by storage key.
    """
    gateway = websocket.app.state.gateway
    client_left = anyio.Event()
    # Subscribed before accept, so anything the client does after connecting is delivered
    subscription = gateway.handle_subscribe()
    try:
        await websocket.accept()
        async with anyio.create_task_group() as tg:
            tg.start_soon(forward_events, websocket, subscription, tg.cancel_scope)
            tg.start_soon(wait_for_disconnect, websocket, client_left, tg.cancel_scope)
        ended_by_server = subscription.closed and not client_left.is_set()
    finally:
        gateway.handle_unsubscribe(subscription)

    if not ended_by_server:
        return

    # Either the client fell behind or we are shutting down
    if subscription.overflowed:
        code, reason = status.WS_1013_TRY_AGAIN_LATER, "Session fell behind, reconnect and re-list"
    else:
        code, reason = status.WS_1001_GOING_AWAY, "Server shutting down"
    try:
        await websocket.close(code=code, reason=reason)
    except (RuntimeError, WebSocketDisconnect) as e:
        logger.debug("Session %d already closed: %s", subscription.session_id, e)
