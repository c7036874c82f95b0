import logging
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, get_settings
from .db import Database
from .api.routers import health, auth, products, lotes, history
from .application.errors import InventarioError
from .application.services_history import HistoryService
from .application.services_products import ProductService
from .application.services_lotes import LoteService
from .infrastructure.logging_config import setup_logging
from .security.auth import ensure_admin_user

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


def _register_exception_handlers(app: FastAPI):
    """Todas las respuestas de error tienen la forma {"error": mensaje}."""

    @app.exception_handler(InventarioError)
    async def inventario_error_handler(request: Request, exc: InventarioError):
        if exc.status_code >= 500:
            logger.error("%s %s: %s", request.method, request.url.path, exc.message)
        return _error(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail), getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        detalle = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}"
            for err in exc.errors()
        )
        return _error(400, f"Invalid request payload: {detalle}")

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        # La sesión ya hizo rollback en el UnitOfWork
        logger.error("Error de base de datos en %s %s", request.method, request.url.path, exc_info=exc)
        return _error(500, "Internal database error")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Construye la aplicación.

    uvicorn inventario.main:create_app --factory
    """
    settings = settings or get_settings()
    setup_logging(settings.log_dir, settings.log_level)

    database = Database(settings.database_url, echo=settings.debug)
    database.create_all()
    ensure_admin_user(database, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        database.dispose()

    app = FastAPI(
        lifespan=lifespan,
        title="Inventario - Productos y Lotes",
        version="0.1.0",
        description="Inventario de productos por lotes con historial de cambios auditable",
        docs_url=None if settings.is_production else "/docs",  # Deshabilitar docs en producción
        redoc_url=None if settings.is_production else "/redoc",
    )

    history_service = HistoryService(database)
    app.state.settings = settings
    app.state.database = database
    app.state.history_service = history_service
    app.state.product_service = ProductService(database, history_service)
    app.state.lote_service = LoteService(database, history_service)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Requested-With", "X-Operation-Batch-ID"],
    )

    # Middleware para agregar headers de seguridad HTTP
    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Solo agregar HSTS en producción con HTTPS
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(products.router)
    app.include_router(lotes.router)
    app.include_router(history.router)

    logger.info("Aplicación iniciada (entorno: %s)", settings.environment)
    return app
