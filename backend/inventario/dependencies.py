"""
Dependencias de FastAPI.

Todo lo que vive durante el proceso (settings, base de datos, servicios)
se construye en create_app y se guarda en app.state.
"""
from typing import Generator, Optional
from fastapi import Header, Request
from sqlalchemy.orm import Session

from .config import Settings
from .db import Database
from .application.services_history import HistoryService
from .application.services_products import ProductService
from .application.services_lotes import LoteService


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_db(request: Request) -> Generator[Session, None, None]:
    db = get_database(request).session()
    try:
        yield db
    finally:
        db.close()


def get_history_service(request: Request) -> HistoryService:
    return request.app.state.history_service


def get_product_service(request: Request) -> ProductService:
    return request.app.state.product_service


def get_lote_service(request: Request) -> LoteService:
    return request.app.state.lote_service


def get_operation_batch_id(
    x_operation_batch_id: Optional[str] = Header(default=None, alias="X-Operation-Batch-ID"),
) -> Optional[str]:
    """Lote de operaciones enviado por el cliente (opcional)."""
    if x_operation_batch_id and x_operation_batch_id.strip():
        return x_operation_batch_id.strip()
    return None
