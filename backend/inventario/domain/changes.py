"""
Payloads del historial de cambios
=================================

El campo `changes` de cada registro de historial es un JSON cuya forma
depende de `entity_type`:

- product                -> ProductChange
- lote                   -> LoteChangeDetail
- product_batch_context  -> ProductBatchContextChangeDetail

La decodificación SIEMPRE se hace por el discriminador (parse_changes),
nunca adivinando la forma del JSON.
"""
from typing import Any, Dict, List, Optional, Type
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from .enums import ChangeAction, EntityType


class ChangePayload(BaseModel):
    """Base de los payloads. Se guardan con claves camelCase."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True

    def to_json(self) -> Dict[str, Any]:
        # Opcionales ausentes no se guardan: "sin dato" != "cero"
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class ChangedField(ChangePayload):
    field: str
    old_value: Any = None
    new_value: Any = None
    lote_id: Optional[str] = None  # si el cambio corresponde a un lote del producto


class ProductChange(ChangePayload):
    product_id: Optional[str] = None
    product_name: Optional[str] = None
    action: ChangeAction
    quantity_changed: Optional[float] = None
    quantity_before: Optional[float] = None
    quantity_after: Optional[float] = None
    is_new_product: bool = False
    is_product_removal: bool = False
    changed_fields: Optional[List[ChangedField]] = None


class LoteChangeDetail(ChangePayload):
    lote_id: str
    product_id: str
    action: ChangeAction
    quantity_changed: Optional[float] = None
    quantity_before: Optional[float] = None
    quantity_after: Optional[float] = None
    data_validade: Optional[str] = None      # valor vigente (alta / baja)
    data_validade_old: Optional[str] = None  # valor previo (modificación)
    data_validade_new: Optional[str] = None  # valor nuevo (modificación)


class ProductBatchContextChangeDetail(ChangePayload):
    """Snapshot de un producto antes y después de un lote de operaciones."""
    product_id: str = Field(..., min_length=1)
    product_name_snapshot: str = ""
    quantity_before_batch: float
    quantity_after_batch: float


PAYLOAD_TYPES: Dict[EntityType, Type[ChangePayload]] = {
    EntityType.PRODUCT: ProductChange,
    EntityType.LOTE: LoteChangeDetail,
    EntityType.PRODUCT_BATCH_CONTEXT: ProductBatchContextChangeDetail,
}


def payload_type_for(entity_type: str) -> Type[ChangePayload]:
    try:
        return PAYLOAD_TYPES[EntityType(entity_type)]
    except ValueError:
        raise ValueError(f"entity_type desconocido: {entity_type!r}")


def parse_changes(entity_type: str, data: Any) -> ChangePayload:
    """
    Decodifica `changes` según el discriminador.

    Acepta el dict guardado o una instancia ya construida. Lanza ValueError
    (incluye pydantic.ValidationError) si el payload no corresponde al tipo.
    """
    model = payload_type_for(entity_type)
    if isinstance(data, ChangePayload):
        if not isinstance(data, model):
            raise ValueError(
                f"Payload {type(data).__name__} no corresponde a entity_type {entity_type!r}"
            )
        return data
    return model.model_validate(data)
