from typing import List, Optional
from fastapi import APIRouter, Depends, Header, Query, status

from ...dependencies import get_history_service
from ...security.auth import get_current_user
from ...domain.enums import EntityType
from ...application.dtos import (
    HistoryEntryIn,
    HistoryRecordOut,
    PaginatedHistoryBatchGroups,
    HistoryCreatedOut,
    HistoryBatchCreatedOut,
    ProductContextIn,
    MessageOut,
)
from ...application.errors import ValidationError
from ...application.services_history import HistoryService

router = APIRouter(prefix="/history", tags=["history"], dependencies=[Depends(get_current_user)])

DEFAULT_LIMIT = 20
DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 10


def _int_param(value: Optional[str], default: int, minimum: int = 1) -> int:
    """Parámetro entero de query; vacío, no numérico o fuera de rango -> default."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= minimum else default


@router.get("", response_model=List[HistoryRecordOut])
def get_history(
    limit: Optional[str] = Query(default=None),
    offset: Optional[str] = Query(default=None),
    batch_id: Optional[str] = Query(default=None),
    service: HistoryService = Depends(get_history_service),
):
    """Historial reciente, o todos los registros de un lote si viene batch_id."""
    if batch_id:
        return service.get_by_batch_id(batch_id)
    return service.get_history(
        limit=_int_param(limit, DEFAULT_LIMIT),
        offset=_int_param(offset, 0, minimum=0),
    )


@router.post("", response_model=HistoryCreatedOut, status_code=status.HTTP_201_CREATED)
def create_history_entry(payload: HistoryEntryIn, service: HistoryService = Depends(get_history_service)):
    record = service.create_raw_entry(payload)
    return HistoryCreatedOut(message="History entry created successfully", id=record.id, batch_id=record.batch_id)


@router.post("/batch", response_model=HistoryBatchCreatedOut, status_code=status.HTTP_201_CREATED)
def create_history_batch(payload: List[HistoryEntryIn], service: HistoryService = Depends(get_history_service)):
    batch_id, records = service.create_batch(payload)
    return HistoryBatchCreatedOut(
        message="History batch created successfully",
        batch_id=batch_id,
        count=len(records),
    )


@router.get("/batch/{batch_id}", response_model=List[HistoryRecordOut])
def get_history_batch(batch_id: str, service: HistoryService = Depends(get_history_service)):
    return service.get_by_batch_id(batch_id)


@router.get("/grouped", response_model=PaginatedHistoryBatchGroups)
def get_grouped_history(
    page: Optional[str] = Query(default=None),
    page_size: Optional[str] = Query(default=None, alias="pageSize"),
    service: HistoryService = Depends(get_history_service),
):
    return service.get_grouped_history(
        page=_int_param(page, DEFAULT_PAGE),
        page_size=_int_param(page_size, DEFAULT_PAGE_SIZE),
    )


@router.post("/product-context", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
def record_product_context(
    payload: ProductContextIn,
    x_operation_batch_id: Optional[str] = Header(default=None, alias="X-Operation-Batch-ID"),
    service: HistoryService = Depends(get_history_service),
):
    """Snapshot de un producto dentro de un lote de operaciones del cliente."""
    if not x_operation_batch_id or not x_operation_batch_id.strip():
        raise ValidationError("X-Operation-Batch-ID header is required")
    if not payload.product_id:
        raise ValidationError("productId is required in payload")
    service.record_product_context(
        product_id=payload.product_id,
        product_name=payload.product_name_snapshot,
        quantity_before=payload.quantity_before_batch,
        quantity_after=payload.quantity_after_batch,
        batch_id=x_operation_batch_id.strip(),
    )
    return MessageOut(message="Product batch context recorded successfully")


# Debe ir al final: captura cualquier /history/{a}/{b}
@router.get("/{entity_type}/{entity_id}", response_model=List[HistoryRecordOut])
def get_entity_history(entity_type: str, entity_id: str, service: HistoryService = Depends(get_history_service)):
    if entity_type not in (EntityType.PRODUCT.value, EntityType.LOTE.value):
        raise ValidationError("Invalid entity_type. Must be 'product' or 'lote'.")
    return service.get_history_for_entity(entity_type, entity_id)
