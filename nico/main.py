"""
Nico — FastAPI application entry point.

Starts the chat node (message listener + discovery responder) on startup,
serves the REST API and the WebSocket event stream.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from nico.api.routes import init_routes, router
from nico.api.websocket import ConnectionManager
from nico.config import API_HOST, API_PORT, DATABASE_PATH, PREFERENCES_PATH
from nico.node import NicoNode
from nico.store.messages import MessageStore
from nico.store.preferences import Preferences

# --- Logging ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_default_node() -> NicoNode:
    return NicoNode(
        store=MessageStore(DATABASE_PATH),
        preferences=Preferences(PREFERENCES_PATH),
    )


def create_app(node: NicoNode | None = None) -> FastAPI:
    ws_manager = ConnectionManager()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start/stop the chat node."""
        active = node or build_default_node()
        app.state.node = active
        logger.info("Starting Nico services...")

        try:
            init_routes(active)
            active.set_listener(ws_manager)
            await active.start_server()

            address = active.local_address()
            logger.info(
                f"Nico ready — API: {API_HOST}:{API_PORT}, "
                f"device: {active.device_name} at {address}"
            )

            yield

        except Exception as e:
            logger.error(f"Startup failed: {e}", exc_info=True)
            raise
        finally:
            logger.info("Shutting down Nico services...")
            active.dispatcher.clear_listener(ws_manager)
            await active.stop_server()
            if node is None:
                active.store.close()

    app = FastAPI(
        title="Nico",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173", "http://127.0.0.1:5173",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        await ws_manager.connect(websocket)
        try:
            while True:
                # Keep the connection alive; we don't expect client messages
                await websocket.receive_text()
        except WebSocketDisconnect:
            await ws_manager.disconnect(websocket)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=API_HOST,
        port=API_PORT,
        log_level="info",
    )
