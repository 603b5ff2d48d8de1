"""
Subscriber transport over an ASGI websocket.

ASGI applications never see ping/pong frames. The protocol-level heartbeat is
run by the server (uvicorn's `ws_ping_interval` / `ws_ping_timeout`), which
closes the socket once the peer stops answering pings. The liveness ping
therefore reports whether the socket is still open on both sides.
"""

from fastapi import WebSocket
from fastapi.websockets import WebSocketState


class WebSocketTransport:
    """Adapts a FastAPI websocket to the broadcaster's transport surface."""

    __slots__ = ("_websocket",)

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket

    async def send_text(self, data: str) -> None:
        await self._websocket.send_text(data)

    async def ping(self) -> bool:
        return (
            self._websocket.client_state == WebSocketState.CONNECTED
            and self._websocket.application_state == WebSocketState.CONNECTED
        )

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        await self._websocket.close(code=code, reason=reason)
