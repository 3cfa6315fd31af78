from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request, Header, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..core.config_manager import ConfigManager
from ..core.error_handling import ErrorHandler, ErrorContext, ErrorType
from ..core.exceptions import ValidationError, NotFoundError, ProviderError
from ..core.logging import logger
from ..core.rate_limiter import RateLimiter
from ..db.database import Database
from ..db.storage import Storage
from ..services.analytics_service import AnalyticsService
from ..services.bot_service import BotService
from ..services.chat_service import ChatService
from ..services.knowledge_base_service import KnowledgeBaseService
from ..services.metrics_broadcaster import MetricsBroadcaster, WebSocketConnectionManager
from ..services.model_service import ModelService
from ..services.settings_service import SettingsService
from .admin import router as admin_router
from .middleware import RequestLoggerMiddleware, RateLimitMiddleware, client_address


def _request_context(request: Request) -> ErrorContext:
    return ErrorContext(
        request_id=getattr(request.state, "request_id", None),
        client_host=client_address(request)
    )


def _render(exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=detail, headers=getattr(exc, "headers", None))


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _render(exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        fields = [".".join(str(part) for part in error.get("loc", ())) for error in exc.errors()]
        return _render(ErrorHandler.create_http_exception(
            ErrorType.INVALID_REQUEST_FORMAT,
            _request_context(request),
            details=f"Invalid or missing: {', '.join(fields)}" if fields else None,
            log_error=False
        ))

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return _render(ErrorHandler.handle_validation_error(exc, _request_context(request)))

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return _render(ErrorHandler.handle_not_found(exc, _request_context(request)))

    @app.exception_handler(ProviderError)
    async def provider_error_handler(request: Request, exc: ProviderError):
        return _render(ErrorHandler.handle_service_unavailable(exc.message, _request_context(request), exc))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        return _render(ErrorHandler.handle_internal_server_error(
            f"Unexpected {type(exc).__name__}",
            _request_context(request),
            exc
        ))


def create_app(
    config_manager: Optional[ConfigManager] = None,
    httpx_client: Optional[httpx.AsyncClient] = None
) -> FastAPI:
    """Build the application with one set of services stored on ``app.state``."""
    config_manager = config_manager or ConfigManager()
    database = Database(config_manager.database_url)
    storage = Storage(database)
    rate_limiter = RateLimiter(config_manager.rate_limit_defaults)
    owns_client = httpx_client is None
    httpx_client = httpx_client or httpx.AsyncClient()

    settings_service = SettingsService(storage, config_manager, rate_limiter)
    analytics_service = AnalyticsService(storage, database, config_manager.health_window_seconds)
    connection_manager = WebSocketConnectionManager()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await database.init_db()
        await settings_service.load_rate_limits()
        config_manager.start_reloader_task()
        app.state.metrics_broadcaster.start()
        logger.info("botdesk started", extra_fields={"database_url": database.engine.url.render_as_string(hide_password=True)})
        try:
            yield
        finally:
            await app.state.metrics_broadcaster.stop()
            await config_manager.stop_reloader_task()
            if owns_client:
                await httpx_client.aclose()
            await database.dispose()
            logger.info("botdesk stopped")

    app = FastAPI(title="botdesk", lifespan=lifespan)

    app.state.config_manager = config_manager
    app.state.database = database
    app.state.storage = storage
    app.state.httpx_client = httpx_client
    app.state.rate_limiter = rate_limiter
    app.state.settings_service = settings_service
    app.state.bot_service = BotService(storage)
    app.state.knowledge_base_service = KnowledgeBaseService(storage)
    app.state.model_service = ModelService(config_manager, httpx_client)
    app.state.analytics_service = analytics_service
    app.state.connection_manager = connection_manager
    app.state.metrics_broadcaster = MetricsBroadcaster(
        analytics_service,
        connection_manager,
        config_manager.metrics_interval_seconds
    )
    app.state.chat_service = ChatService(
        config_manager,
        storage,
        httpx_client,
        anthropic_key_getter=settings_service.get_anthropic_api_key
    )

    # Last added runs first: request ids exist before rate limiting
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestLoggerMiddleware)
    register_exception_handlers(app)
    app.include_router(admin_router)

    @app.get("/health")
    async def health_check():
        return {"status": "ok"}

    @app.post("/api/chat/{bot_id}")
    async def chat(bot_id: str, request: Request):
        request_id = getattr(request.state, "request_id", "unknown")
        try:
            body = await request.json()
        except ValueError:
            raise ValidationError("Request body must be valid JSON")
        return await app.state.chat_service.chat(bot_id, body, request_id, client_address(request))

    @app.get("/api/models/gemini")
    async def list_gemini_models(request: Request, x_api_key: Optional[str] = Header(None, alias="X-API-Key")):
        return await app.state.model_service.list_models("gemini", x_api_key, request.state.request_id)

    @app.get("/api/models/openrouter")
    async def list_openrouter_models(request: Request, x_api_key: Optional[str] = Header(None, alias="X-API-Key")):
        return await app.state.model_service.list_models("openrouter", x_api_key, request.state.request_id)

    @app.get("/api/system/health")
    async def system_health():
        return await app.state.analytics_service.system_health()

    @app.websocket("/ws")
    async def metrics_socket(websocket: WebSocket):
        subscriber = await connection_manager.connect(websocket)
        try:
            await app.state.metrics_broadcaster.send_initial(subscriber.client_id)
            while True:
                # Inbound messages are ignored; receiving detects disconnects
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            await connection_manager.disconnect(subscriber.client_id)

    return app


if __name__ == "__main__":
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
