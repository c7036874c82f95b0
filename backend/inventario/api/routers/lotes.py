from typing import Optional
from fastapi import APIRouter, Depends

from ...dependencies import get_lote_service, get_operation_batch_id
from ...security.auth import get_current_user
from ...application.dtos import LoteUpdate, LoteOut, MessageOut
from ...application.services_lotes import LoteService

router = APIRouter(prefix="/lotes", tags=["lotes"], dependencies=[Depends(get_current_user)])


@router.get("/{lote_id}", response_model=LoteOut)
def get_lote(lote_id: str, service: LoteService = Depends(get_lote_service)):
    return service.get_lote(lote_id)


@router.put("/{lote_id}", response_model=LoteOut)
def update_lote(
    lote_id: str,
    payload: LoteUpdate,
    service: LoteService = Depends(get_lote_service),
    batch_id: Optional[str] = Depends(get_operation_batch_id),
):
    return service.update_lote(
        lote_id,
        quantity=payload.quantity,
        data_validade=payload.data_validade,
        batch_id=batch_id,
    )


@router.delete("/{lote_id}", response_model=MessageOut)
def delete_lote(
    lote_id: str,
    service: LoteService = Depends(get_lote_service),
    batch_id: Optional[str] = Depends(get_operation_batch_id),
):
    service.delete_lote(lote_id, batch_id=batch_id)
    return MessageOut(message="Lote deleted successfully")
