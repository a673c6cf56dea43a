"""
WebSocket endpoint streaming a team's events to one client.

The token is checked before the socket is accepted, and the subscription
is made for the caller's own team only. Frames from the client are ignored
except for keep-alive pings.
"""

import asyncio
import json
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..web.auth import authenticate_token, AuthenticationError
from .broker import get_event_broker, Subscription

logger = logging.getLogger(__name__)

router = APIRouter()

CLOSE_UNAUTHORIZED = 4401
CLOSE_NO_TEAM = 4403


def _is_ping(message: str) -> bool:
    text = message.strip()
    if text == "ping":
        return True
    try:
        data = json.loads(text)
    except ValueError:
        return False
    return isinstance(data, dict) and data.get("type") == "ping"


async def _forward(websocket: WebSocket, subscription: Subscription) -> None:
    async for payload in subscription:
        await websocket.send_json(payload)


@router.websocket("/ws")
async def event_stream(websocket: WebSocket, token: Optional[str] = None):
    """Receive-only stream of task:assigned / task:updated for the caller's team."""
    try:
        user = await authenticate_token(token)
    except AuthenticationError as e:
        logger.info(f"Rejected event stream connection: {e}")
        await websocket.close(code=CLOSE_UNAUTHORIZED, reason=str(e))
        return

    if not user.team_id:
        await websocket.close(code=CLOSE_NO_TEAM, reason="User has no team")
        return

    await websocket.accept()
    subscription = await get_event_broker().subscribe(user.team_id)
    forwarder = asyncio.create_task(_forward(websocket, subscription))
    logger.info(f"Event stream opened for user {user.id} (team {user.team_id})")

    try:
        while True:
            message = await websocket.receive_text()
            if _is_ping(message):
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        logger.info(f"Event stream closed for user {user.id}")
    finally:
        forwarder.cancel()
        try:
            await forwarder
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.warning(f"Event forwarding for user {user.id} ended with error: {e}")
        await subscription.close()
