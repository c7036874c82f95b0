import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple
from sqlalchemy import func, desc, asc, distinct
from sqlalchemy.orm import Session
from ..domain.models import User, Product, Lote, HistoryRecord


class UserRepository:
    def __init__(self, db: Session): self.db = db
    def add(self, user: User): self.db.add(user); self.db.flush(); return user
    def by_username(self, username: str) -> Optional[User]:
        return self.db.query(User).filter(User.username == username).first()


class ProductRepository:
    def __init__(self, db: Session): self.db = db
    def add(self, product: Product): self.db.add(product); self.db.flush(); return product
    def get(self, id: str) -> Optional[Product]: return self.db.get(Product, id)
    def get_for_update(self, id: str) -> Optional[Product]:
        # Bloquea la fila hasta el commit: serializa los recálculos de cantidad
        return self.db.get(Product, id, with_for_update=True)
    def list(self) -> List[Product]:
        return self.db.query(Product).order_by(Product.name, Product.id).all()
    def delete(self, product: Product):
        self.db.delete(product); self.db.flush()


class LoteRepository:
    def __init__(self, db: Session): self.db = db

    def add(self, lote: Lote) -> Lote:
        if not lote.id:
            lote.id = str(uuid.uuid4())
        now = datetime.now()
        lote.created_at = lote.created_at or now
        lote.updated_at = lote.updated_at or now
        self.db.add(lote)
        self.db.flush()
        return lote

    def get(self, id: str, refresh: bool = False) -> Optional[Lote]:
        return self.db.get(Lote, id, populate_existing=refresh)

    def by_product(self, product_id: str) -> List[Lote]:
        return (
            self.db.query(Lote)
            .filter(Lote.product_id == product_id)
            .order_by(asc(Lote.data_validade), asc(Lote.created_at))
            .all()
        )

    def count_by_product(self, product_id: str) -> int:
        return self.db.query(func.count(Lote.id)).filter(Lote.product_id == product_id).scalar() or 0

    def total_quantity(self, product_id: str) -> Decimal:
        """Suma de las cantidades de todos los lotes del producto (vencidos incluidos)."""
        total = (
            self.db.query(func.coalesce(func.sum(Lote.quantity), 0))
            .filter(Lote.product_id == product_id)
            .scalar()
        )
        return Decimal(str(total or 0))

    def delete(self, lote: Lote):
        self.db.delete(lote); self.db.flush()


class HistoryRepository:
    """
    Almacén del historial. Solo INSERT y consultas: no hay update ni delete.

    Las escrituras quedan dentro de la transacción del UnitOfWork que posee
    la sesión; un error en cualquier registro aborta todo el lote.
    """

    def __init__(self, db: Session): self.db = db

    @staticmethod
    def _fill_defaults(record: HistoryRecord) -> HistoryRecord:
        if not record.id:
            record.id = str(uuid.uuid4())
        if record.timestamp is None:
            record.timestamp = datetime.now()
        # Sin lote explícito, el registro forma su propio lote
        if not record.batch_id:
            record.batch_id = record.id
        return record

    def insert_one(self, record: HistoryRecord) -> HistoryRecord:
        self._fill_defaults(record)
        self.db.add(record)
        self.db.flush()
        return record

    def insert_many(self, records: Sequence[HistoryRecord], require_batch_id: bool = False) -> List[HistoryRecord]:
        for record in records:
            if require_batch_id and not record.batch_id:
                raise ValueError(f"Registro sin batch_id dentro de un lote (id: {record.id})")
            self._fill_defaults(record)
            self.db.add(record)
        self.db.flush()
        return list(records)

    def find_by_entity(self, entity_type: str, entity_id: str) -> List[HistoryRecord]:
        return (
            self.db.query(HistoryRecord)
            .filter(HistoryRecord.entity_type == entity_type, HistoryRecord.entity_id == entity_id)
            .order_by(desc(HistoryRecord.timestamp), desc(HistoryRecord.seq))
            .all()
        )

    def find_by_batch(self, batch_id: str) -> List[HistoryRecord]:
        # Orden cronológico: conserva la secuencia causal dentro del lote
        return (
            self.db.query(HistoryRecord)
            .filter(HistoryRecord.batch_id == batch_id)
            .order_by(asc(HistoryRecord.timestamp), asc(HistoryRecord.seq))
            .all()
        )

    def list_recent(self, limit: int, offset: int = 0) -> List[HistoryRecord]:
        return (
            self.db.query(HistoryRecord)
            .order_by(desc(HistoryRecord.timestamp), desc(HistoryRecord.seq))
            .offset(offset)
            .limit(limit)
            .all()
        )

    def list_distinct_batches(self, page: int, page_size: int) -> Tuple[List[Tuple[str, datetime]], int]:
        """
        Página de batch_ids distintos con el timestamp de su primer registro.

        Orden: primer timestamp DESC, batch_id DESC (desempate determinista).

        Returns:
            ([(batch_id, first_entry), ...], total_de_lotes)
        """
        total = self.db.query(func.count(distinct(HistoryRecord.batch_id))).scalar() or 0
        if total == 0:
            return [], 0

        first_entry = func.min(HistoryRecord.timestamp).label("first_entry")
        rows = (
            self.db.query(HistoryRecord.batch_id, first_entry)
            .group_by(HistoryRecord.batch_id)
            .order_by(desc(first_entry), desc(HistoryRecord.batch_id))
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return [(row.batch_id, row.first_entry) for row in rows], total

    def count(self) -> int:
        return self.db.query(func.count(HistoryRecord.seq)).scalar() or 0
