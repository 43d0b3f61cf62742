"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, WebSocket, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from campus_chat.api.routes import messages
from campus_chat.api.websocket.chat_handler import ChatWebSocketHandler
from campus_chat.core.config import Settings
from campus_chat.core.storage.database import Database
from campus_chat.services import (
    ConnectionRegistry,
    DeliveryDispatcher,
    EventBus,
    InvalidArgument,
    MessagingError,
    PersistenceFailure,
    RoomLockTable,
)

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    InvalidArgument: status.HTTP_400_BAD_REQUEST,
    PersistenceFailure: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the app with a fresh registry, dispatcher and database."""
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await app.state.database.create_all()
        logger.info("Campus chat server started")
        yield
        await app.state.event_bus.drain()
        await app.state.database.dispose()
        logger.info("Campus chat server stopped")

    app = FastAPI(title="Campus Chat", lifespan=lifespan)

    event_bus = EventBus(max_history_size=settings.event_history_size)
    registry = ConnectionRegistry()
    app.state.settings = settings
    app.state.database = Database(settings.database_url, echo=settings.database_echo)
    app.state.event_bus = event_bus
    app.state.registry = registry
    app.state.dispatcher = DeliveryDispatcher(
        registry,
        event_bus=event_bus,
        send_timeout=settings.delivery_timeout_seconds,
    )
    app.state.room_locks = RoomLockTable()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(messages.router, prefix=settings.api_prefix)

    @app.exception_handler(MessagingError)
    async def messaging_error_handler(request: Request, exc: MessagingError):
        status_code = ERROR_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        return JSONResponse(
            status_code=422,
            content={"kind": InvalidArgument.kind, "message": details},
        )

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        handler = ChatWebSocketHandler(websocket, registry, event_bus)
        await handler.handle_connection()

    @app.get("/health")
    async def health():
        return {"status": "ok", "connections": registry.connection_count}

    return app
