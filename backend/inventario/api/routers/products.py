from typing import List, Optional
from fastapi import APIRouter, Depends, status

from ...dependencies import get_product_service, get_lote_service, get_operation_batch_id
from ...security.auth import get_current_user
from ...application.dtos import ProductIn, ProductUpdate, ProductOut, LoteIn, LoteOut, MessageOut
from ...application.services_products import ProductService
from ...application.services_lotes import LoteService

router = APIRouter(prefix="/products", tags=["products"], dependencies=[Depends(get_current_user)])


@router.get("", response_model=List[ProductOut])
def list_products(service: ProductService = Depends(get_product_service)):
    return service.list_products()


@router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: str, service: ProductService = Depends(get_product_service)):
    return service.get_product(product_id)


@router.post("", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
def create_product(
    payload: ProductIn,
    service: ProductService = Depends(get_product_service),
    batch_id: Optional[str] = Depends(get_operation_batch_id),
):
    return service.create_product(
        name=payload.name,
        unit=payload.unit,
        quantity=payload.quantity,
        product_id=payload.id,
        batch_id=batch_id,
    )


@router.put("/{product_id}", response_model=ProductOut)
def update_product(
    product_id: str,
    payload: ProductUpdate,
    service: ProductService = Depends(get_product_service),
    batch_id: Optional[str] = Depends(get_operation_batch_id),
):
    return service.update_product(
        product_id,
        name=payload.name,
        unit=payload.unit,
        quantity=payload.quantity,
        batch_id=batch_id,
    )


@router.delete("/{product_id}", response_model=MessageOut)
def delete_product(
    product_id: str,
    service: ProductService = Depends(get_product_service),
    batch_id: Optional[str] = Depends(get_operation_batch_id),
):
    service.delete_product(product_id, batch_id=batch_id)
    return MessageOut(message="Product deleted successfully")


# ===== LOTES DEL PRODUCTO =====

@router.get("/{product_id}/lotes", response_model=List[LoteOut])
def list_lotes(product_id: str, service: LoteService = Depends(get_lote_service)):
    return service.list_lotes(product_id)


@router.post("/{product_id}/lotes", response_model=LoteOut, status_code=status.HTTP_201_CREATED)
def create_lote(
    product_id: str,
    payload: LoteIn,
    service: LoteService = Depends(get_lote_service),
    batch_id: Optional[str] = Depends(get_operation_batch_id),
):
    return service.create_lote(product_id, payload.quantity, payload.data_validade, batch_id=batch_id)
