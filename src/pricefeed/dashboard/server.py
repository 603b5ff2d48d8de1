"""
FastAPI server for the price feed.

Read-only HTTP routes for prices, history and candles plus the `/ws` live
update channel. The service is built in the lifespan and kept on `app.state`.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request, WebSocket

from pricefeed import __version__
from pricefeed.config.constants import (
    DEFAULT_CANDLE_LIMIT,
    DEFAULT_TIMEFRAME,
    EVENT_CONNECTED,
    WS_CLOSE_POLICY_VIOLATION,
)
from pricefeed.config.settings import Settings, get_settings
from pricefeed.core.service import PriceService, PriceSource
from pricefeed.realtime.auth import AuthenticationError, decode_token, extract_token
from pricefeed.realtime.broadcaster import SubscriberConnection
from pricefeed.realtime.transport import WebSocketTransport
from pricefeed.telemetry.logger import setup_logging
from pricefeed.utils.time import Clock


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = app.state.settings or get_settings()
    app.state.settings = settings

    service = PriceService.from_settings(
        settings,
        client=app.state.upstream_client,
        clock=app.state.clock,
    )
    app.state.service = service
    await service.start()
    try:
        yield
    finally:
        await service.stop()


def create_app(
    settings: Settings | None = None,
    client: PriceSource | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings override (environment settings if omitted).
        client: Upstream source override, used by tests.
        clock: Time source override, used by tests.
    """
    app = FastAPI(title="Price Feed", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.upstream_client = client
    app.state.clock = clock
    app.state.service = None

    app.get("/api/prices")(get_prices)
    app.get("/api/prices/{symbol}")(get_price)
    app.get("/api/prices/{symbol}/history")(get_price_history)
    app.get("/api/candles/{symbol}")(get_candles)
    app.get("/api/status")(get_status)
    app.websocket("/ws")(websocket_endpoint)
    return app


def _service(request: Request) -> PriceService:
    service: PriceService | None = request.app.state.service
    if service is None:
        raise HTTPException(status_code=503, detail="Service not started")
    return service


# =============================================================================
# HTTP Routes
# =============================================================================


async def get_prices(request: Request) -> dict[str, Any]:
    service = _service(request)
    return {"prices": [sample.to_dict() for sample in service.get_prices()]}


async def get_price(request: Request, symbol: str) -> dict[str, Any]:
    sample = _service(request).get_price(symbol)
    if sample is None:
        raise HTTPException(status_code=404, detail=f"No price for {symbol.upper()}")
    return sample.to_dict()


async def get_price_history(
    request: Request,
    symbol: str,
    minutes: float = Query(default=60, gt=0),
) -> dict[str, Any]:
    points = _service(request).get_historical_prices(symbol, minutes)
    return {
        "symbol": symbol.upper(),
        "minutes": minutes,
        "points": [point.to_dict() for point in points],
    }


async def get_candles(
    request: Request,
    symbol: str,
    interval: str = DEFAULT_TIMEFRAME,
    limit: int = DEFAULT_CANDLE_LIMIT,
) -> dict[str, Any]:
    candles = await _service(request).get_candles(symbol, interval, limit)
    return {
        "symbol": symbol.upper(),
        "interval": interval,
        "candles": [candle.to_dict() for candle in candles],
    }


async def get_status(request: Request) -> dict[str, Any]:
    return {"version": __version__, **_service(request).status()}


# =============================================================================
# Live Updates
# =============================================================================


async def websocket_endpoint(websocket: WebSocket, token: str | None = None) -> None:
    """
    Authenticate once at handshake, then relay live events.

    Rejected handshakes are closed with a policy-violation code.
    """
    await websocket.accept()

    service: PriceService = websocket.app.state.service
    settings: Settings = websocket.app.state.settings

    raw_token = extract_token(token, websocket.headers.get("authorization"))
    if raw_token is None:
        logger.warning("Live connection rejected: no token")
        await websocket.close(code=WS_CLOSE_POLICY_VIOLATION, reason="Unauthorized")
        return

    try:
        identity = decode_token(raw_token, settings.jwt_secret.get_secret_value())
    except AuthenticationError as e:
        logger.warning(f"Live connection rejected: {e}")
        await websocket.close(code=WS_CLOSE_POLICY_VIOLATION, reason="Invalid token")
        return

    broadcaster = service.broadcaster
    connection = SubscriberConnection(
        transport=WebSocketTransport(websocket),
        identity=identity.user_id,
        is_admin=identity.is_admin,
        email=identity.email,
    )
    broadcaster.register(connection)

    await broadcaster.send(
        connection,
        EVENT_CONNECTED,
        {
            "userId": identity.user_id,
            "isAdmin": identity.is_admin,
            "message": "Connected to live price feed",
        },
    )

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            # Text and binary frames are both accepted
            raw = message.get("text") or message.get("bytes")
            if raw:
                await broadcaster.handle_message(connection, raw)
    finally:
        broadcaster.unregister(connection)


app = create_app()


def main() -> None:
    import uvicorn

    settings = get_settings()
    log_pipeline = setup_logging(
        level=settings.log_level,
        log_file=settings.log_file,
        component_levels=dict(settings.log_levels),
    )

    print(
        f"""
╔═══════════════════════════════════════════════════════════════╗
║              PRICE FEED v{__version__:<37}║
╚═══════════════════════════════════════════════════════════════╝

API:        http://localhost:{settings.port}/api/prices
Live feed:  ws://localhost:{settings.port}/ws?token=...
Press Ctrl+C to stop.
    """
    )
    try:
        uvicorn.run(
            create_app(settings),
            host=settings.host,
            port=settings.port,
            log_level="warning",
            ws_ping_interval=settings.heartbeat_interval_seconds,
            ws_ping_timeout=settings.heartbeat_interval_seconds,
        )
    finally:
        log_pipeline.stop()


if __name__ == "__main__":
    main()
