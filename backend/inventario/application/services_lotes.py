"""
Servicio de Lotes
=================

Cada lote aporta su cantidad al producto. Después de cualquier alta,
modificación o baja, la cantidad del producto se recalcula como la suma
de TODOS sus lotes (vencidos incluidos) dentro de la misma transacción.

Historial: cada mutación emite un LoteChangeDetail y un snapshot
product_batch_context del producto, ambos bajo el mismo batch_id.
"""
import uuid
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Tuple

from ..db import Database
from ..domain.changes import LoteChangeDetail, ProductBatchContextChangeDetail
from ..domain.enums import ChangeAction, EntityType
from ..domain.models import Lote, Product
from ..infrastructure.unit_of_work import UnitOfWork
from .dtos import LoteOut
from .errors import ValidationError, NotFoundError
from .services_history import HistoryService
from .services_products import validar_escala_cantidad

logger = logging.getLogger(__name__)


def parse_data_validade(value: Any) -> date:
    """Fecha de validez en formato YYYY-MM-DD (fecha de calendario válida)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError(f"Fecha de validez inválida: {value!r}. Formato esperado YYYY-MM-DD")


def _validar_cantidad_lote(quantity: Any) -> Decimal:
    try:
        value = Decimal(str(quantity))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Cantidad inválida: {quantity!r}")
    if not value.is_finite() or value <= 0:
        raise ValidationError("La cantidad del lote debe ser mayor a cero")
    return validar_escala_cantidad(value)


class LoteService:
    def __init__(self, database: Database, history: HistoryService):
        self.database = database
        self.history = history

    def _uow(self) -> UnitOfWork:
        return UnitOfWork(self.database.session())

    @staticmethod
    def _recalcular_producto(uow: UnitOfWork, product: Product) -> Decimal:
        uow.db.flush()
        total = uow.lotes.total_quantity(product.id)
        product.quantity = total
        return total

    def _emitir_historial(
        self,
        detail: LoteChangeDetail,
        product_name: str,
        before: Decimal,
        after: Decimal,
        batch_id: Optional[str],
    ) -> None:
        context = ProductBatchContextChangeDetail(
            product_id=detail.product_id,
            product_name_snapshot=product_name,
            quantity_before_batch=float(before),
            quantity_after_batch=float(after),
        )
        # Sin cabecera: un batch_id nuevo compartido por ambos registros
        self.history.record_changes_safely(
            [
                (EntityType.LOTE, detail.lote_id, detail),
                (EntityType.PRODUCT_BATCH_CONTEXT, detail.product_id, context),
            ],
            batch_id or str(uuid.uuid4()),
        )

    # =========================================================================
    # CONSULTAS
    # =========================================================================

    def list_lotes(self, product_id: str) -> List[LoteOut]:
        uow = self._uow()
        try:
            if not uow.products.get(product_id):
                raise NotFoundError(f"Producto {product_id} no encontrado")
            return [LoteOut.from_model(l) for l in uow.lotes.by_product(product_id)]
        finally:
            uow.close()

    def get_lote(self, lote_id: str) -> LoteOut:
        uow = self._uow()
        try:
            lote = uow.lotes.get(lote_id)
            if not lote:
                raise NotFoundError(f"Lote {lote_id} no encontrado")
            return LoteOut.from_model(lote)
        finally:
            uow.close()

    # =========================================================================
    # MUTACIONES
    # =========================================================================

    @staticmethod
    def _bloquear_producto(uow: UnitOfWork, product_id: str) -> Product:
        product = uow.products.get_for_update(product_id)
        if not product:
            raise NotFoundError(f"Producto {product_id} no encontrado")
        return product

    def _bloquear_lote(self, uow: UnitOfWork, lote_id: str) -> Tuple[Lote, Product]:
        """
        Lote y su producto, con el producto bloqueado (SELECT ... FOR UPDATE).

        El lote se vuelve a leer después del bloqueo: otra transacción pudo
        modificarlo o eliminarlo mientras se esperaba.
        """
        lote = uow.lotes.get(lote_id)
        if not lote:
            raise NotFoundError(f"Lote {lote_id} no encontrado")
        product = self._bloquear_producto(uow, lote.product_id)
        lote = uow.lotes.get(lote_id, refresh=True)
        if not lote:
            raise NotFoundError(f"Lote {lote_id} no encontrado")
        return lote, product

    def create_lote(self, product_id: str, quantity: Any, data_validade: Any,
                    batch_id: Optional[str] = None) -> LoteOut:
        quantity = _validar_cantidad_lote(quantity)
        validade = parse_data_validade(data_validade)

        with self._uow().transaction() as uow:
            product = self._bloquear_producto(uow, product_id)
            before = Decimal(product.quantity or 0)
            lote = uow.lotes.add(Lote(product_id=product_id, quantity=quantity, data_validade=validade))
            after = self._recalcular_producto(uow, product)
            product_name = product.name
            out = LoteOut.from_model(lote)

        logger.info("Lote %s creado para producto %s (%s)", out.id, product_id, quantity)
        detail = LoteChangeDetail(
            lote_id=out.id,
            product_id=product_id,
            action=ChangeAction.CREATED,
            quantity_after=float(quantity),
            quantity_changed=float(quantity),
            data_validade=validade.isoformat(),
        )
        self._emitir_historial(detail, product_name, before, after, batch_id)
        return out

    def update_lote(self, lote_id: str, quantity: Any = None, data_validade: Any = None,
                    batch_id: Optional[str] = None) -> LoteOut:
        """Modifica cantidad y/o validez. Sin cambios efectivos no registra historial."""
        new_quantity = _validar_cantidad_lote(quantity) if quantity is not None else None
        new_validade = parse_data_validade(data_validade) if data_validade is not None else None

        with self._uow().transaction() as uow:
            lote, product = self._bloquear_lote(uow, lote_id)
            before = Decimal(product.quantity or 0)
            old_quantity = Decimal(lote.quantity)
            old_validade = lote.data_validade

            quantity_changed = new_quantity is not None and new_quantity != old_quantity
            validade_changed = new_validade is not None and new_validade != old_validade
            if not quantity_changed and not validade_changed:
                return LoteOut.from_model(lote)

            if quantity_changed:
                lote.quantity = new_quantity
            if validade_changed:
                lote.data_validade = new_validade
            lote.updated_at = datetime.now()

            after = self._recalcular_producto(uow, product)
            product_name = product.name
            out = LoteOut.from_model(lote)

        detail = LoteChangeDetail(
            lote_id=lote_id,
            product_id=out.product_id,
            action=ChangeAction.UPDATED,
            quantity_before=float(old_quantity),
            quantity_after=out.quantity,
        )
        if quantity_changed:
            detail.quantity_changed = float(new_quantity - old_quantity)
        if validade_changed:
            detail.data_validade_old = old_validade.isoformat()
            detail.data_validade_new = new_validade.isoformat()

        logger.info("Lote %s modificado (producto %s: %s -> %s)", lote_id, out.product_id, before, after)
        self._emitir_historial(detail, product_name, before, after, batch_id)
        return out

    def delete_lote(self, lote_id: str, batch_id: Optional[str] = None) -> Tuple[str, Decimal]:
        """
        Elimina el lote y recalcula el producto (0 si era el último).

        Returns:
            (product_id, nueva cantidad del producto)
        """
        with self._uow().transaction() as uow:
            lote, product = self._bloquear_lote(uow, lote_id)
            before = Decimal(product.quantity or 0)
            quantity = Decimal(lote.quantity)
            validade = lote.data_validade
            uow.lotes.delete(lote)
            after = self._recalcular_producto(uow, product)
            product_id = product.id
            product_name = product.name

        logger.info("Lote %s eliminado (producto %s)", lote_id, product_id)
        detail = LoteChangeDetail(
            lote_id=lote_id,
            product_id=product_id,
            action=ChangeAction.DELETED,
            quantity_before=float(quantity),
            quantity_changed=-float(quantity),
            data_validade=validade.isoformat(),
        )
        self._emitir_historial(detail, product_name, before, after, batch_id)
        return product_id, after
