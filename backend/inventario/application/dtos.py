from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import List, Optional, Dict, Any
from datetime import date, datetime
from decimal import Decimal

from ..domain.enums import Unit, EntityType
from ..domain.changes import parse_changes, ChangePayload


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


# ===== AUTH =====

class LoginIn(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

class UserOut(BaseModel):
    id: int
    username: str

class LoginOut(BaseModel):
    token: str
    user: UserOut


# ===== PRODUCTOS / LOTES =====

class ProductIn(BaseModel):
    id: Optional[str] = None  # si no viene, se genera
    name: str
    unit: Unit
    quantity: Decimal = Decimal("0")  # inicial; luego la definen los lotes

class ProductUpdate(BaseModel):
    name: Optional[str] = None
    unit: Optional[Unit] = None
    quantity: Optional[Decimal] = None  # solo si el producto no tiene lotes

class LoteIn(BaseModel):
    quantity: Decimal
    data_validade: str  # YYYY-MM-DD

class LoteUpdate(BaseModel):
    quantity: Optional[Decimal] = None
    data_validade: Optional[str] = None

class LoteOut(BaseModel):
    id: str
    product_id: str
    quantity: float
    data_validade: date
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, lote) -> "LoteOut":
        return cls(
            id=lote.id,
            product_id=lote.product_id,
            quantity=float(lote.quantity),
            data_validade=lote.data_validade,
            created_at=lote.created_at,
            updated_at=lote.updated_at,
        )

class ProductOut(BaseModel):
    id: str
    name: str
    unit: str
    quantity: float
    lotes: List[LoteOut] = []

    @classmethod
    def from_model(cls, product, with_lotes: bool = True) -> "ProductOut":
        return cls(
            id=product.id,
            name=product.name,
            unit=product.unit,
            quantity=float(product.quantity or 0),
            lotes=[LoteOut.from_model(l) for l in product.lotes] if with_lotes else [],
        )

class MessageOut(BaseModel):
    message: str


# ===== HISTORIAL =====

class HistoryEntryIn(CamelModel):
    id: Optional[str] = None
    timestamp: Optional[datetime] = None
    entity_type: EntityType
    entity_id: str = Field(..., min_length=1)
    batch_id: Optional[str] = None
    changes: Dict[str, Any]

    @field_validator("timestamp")
    @classmethod
    def naive_local(cls, ts: Optional[datetime]) -> Optional[datetime]:
        # El historial guarda hora local sin zona (como datetime.now() del servidor)
        if ts is not None and ts.tzinfo is not None:
            return ts.astimezone().replace(tzinfo=None)
        return ts

class HistoryRecordOut(CamelModel):
    id: str
    timestamp: datetime
    entity_type: str
    entity_id: str
    batch_id: str
    changes: Dict[str, Any]
    # Contexto agregado por la vista agrupada (no se persiste)
    product_name_context: Optional[str] = None
    product_current_total_quantity: Optional[float] = None

    @classmethod
    def from_record(cls, record) -> "HistoryRecordOut":
        return cls(
            id=record.id,
            timestamp=record.timestamp,
            entity_type=record.entity_type,
            entity_id=record.entity_id,
            batch_id=record.batch_id,
            changes=record.changes or {},
        )

    def parsed_changes(self) -> ChangePayload:
        return parse_changes(self.entity_type, self.changes)

class ProductBatchSummary(CamelModel):
    product_id: str
    product_name: str
    total_quantity_before_batch: float
    total_quantity_after_batch: float
    net_quantity_change_in_batch: float

class HistoryBatchGroup(CamelModel):
    batch_id: str
    created_at: datetime  # timestamp del primer registro del lote
    records: List[HistoryRecordOut]
    record_count: int
    product_summaries: Dict[str, ProductBatchSummary] = {}

class PaginatedHistoryBatchGroups(CamelModel):
    groups: List[HistoryBatchGroup]
    total_batches: int
    page: int
    page_size: int
    total_pages: int

class HistoryCreatedOut(BaseModel):
    message: str
    id: str
    batch_id: str

class HistoryBatchCreatedOut(BaseModel):
    message: str
    batch_id: str
    count: int

class ProductContextIn(CamelModel):
    """Cuerpo de POST /history/product-context (productId se valida en el router)."""
    product_id: Optional[str] = None
    product_name_snapshot: str = ""
    quantity_before_batch: float = 0
    quantity_after_batch: float = 0
