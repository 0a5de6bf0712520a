import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status

from marketplace_app.dependencies import get_ws_user_id, get_ws_message_router
from marketplace_app.realtime.router import MessageRouter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def realtime_endpoint(
    websocket: WebSocket,
    user_id: str = Depends(get_ws_user_id),
    message_router: MessageRouter = Depends(get_ws_message_router),
):
    """
    One live connection per user.

    A newer connection of the same user replaces (and closes) the
    older one. Frames are handled one at a time in arrival order.
    """
    if not user_id:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    registry = message_router.registry

    superseded = registry.register(user_id, websocket)
    if superseded is not None:
        try:
            await superseded.close(code=status.WS_1000_NORMAL_CLOSURE)
        except Exception as e:
            logger.debug(f"Closing superseded connection of {user_id} failed: {e}")
    logger.info(f"User {user_id} connected ({len(registry)} online)")

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                logger.warning(f"Ignoring binary frame from {user_id}")
                continue
            await message_router.handle_raw(user_id, raw)
    except WebSocketDisconnect:
        pass
    finally:
        # a superseded socket must not evict or clear state of its replacement
        if registry.unregister(user_id, websocket):
            await message_router.handle_disconnect(user_id)
            logger.info(f"User {user_id} disconnected")
