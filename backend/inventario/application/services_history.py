"""
Historial de Cambios - Productos y Lotes
========================================

Registro inmutable de cada mutación de productos y lotes, agrupado en
"lotes de operaciones" (batch_id) y proyectado en vistas agrupadas con
resumen por producto.

- Solo INSERT, prohibido UPDATE/DELETE
- Usa su propia sesión: nunca participa de la transacción de la mutación
- Las vistas agrupadas usan los snapshots product_batch_context guardados
  en el lote, no el estado actual del producto
"""
import math
import uuid
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..db import Database
from ..domain.changes import ChangePayload, LoteChangeDetail, ProductBatchContextChangeDetail, parse_changes
from ..domain.enums import EntityType
from ..domain.models import HistoryRecord
from ..infrastructure.unit_of_work import UnitOfWork
from .dtos import (
    HistoryEntryIn,
    HistoryRecordOut,
    HistoryBatchGroup,
    ProductBatchSummary,
    PaginatedHistoryBatchGroups,
)
from .errors import InventarioError, ValidationError, ConflictError, EmptyBatchError

logger = logging.getLogger(__name__)

CONTEXT_UNAVAILABLE = "Context Unavailable"

# (entity_type, entity_id, payload)
ChangeItem = Tuple[Union[EntityType, str], str, Union[ChangePayload, Dict[str, Any]]]


@dataclass
class _ProductSnapshot:
    """Snapshot consolidado de un producto dentro de un lote de operaciones."""
    product_name: str
    quantity_before: float
    quantity_after: float


def _entity_type_value(entity_type: Union[EntityType, str]) -> str:
    try:
        return EntityType(entity_type).value
    except ValueError:
        raise ValidationError(f"entity_type inválido: {entity_type!r}")


def _marshal(entity_type: str, payload: Union[ChangePayload, Dict[str, Any]]) -> Dict[str, Any]:
    try:
        return parse_changes(entity_type, payload).to_json()
    except ValueError as e:
        raise ValidationError(f"Payload inválido para {entity_type}: {e}")


class HistoryService:
    """
    Servicio del historial.

    Traduce eventos de dominio a registros persistidos y proyecta los
    registros en grupos por lote de operaciones.
    """

    def __init__(self, database: Database):
        self.database = database

    def _uow(self) -> UnitOfWork:
        return UnitOfWork(self.database.session())

    def _write(self, records: List[HistoryRecord], shared_batch: bool = False) -> List[HistoryRecordOut]:
        uow = self._uow()
        try:
            with uow.transaction():
                if len(records) == 1 and not shared_batch:
                    uow.history.insert_one(records[0])
                else:
                    uow.history.insert_many(records, require_batch_id=shared_batch)
                return [HistoryRecordOut.from_record(r) for r in records]
        except IntegrityError as e:
            # El único UNIQUE de la tabla es el id del registro
            logger.warning("Historial rechazado por id duplicado (%d registros)", len(records), exc_info=True)
            raise ConflictError("Ya existe un registro de historial con el mismo id") from e
        except SQLAlchemyError as e:
            logger.error("Error guardando historial (%d registros)", len(records), exc_info=True)
            raise InventarioError("No se pudo guardar el historial") from e

    # =========================================================================
    # ESCRITURA
    # =========================================================================

    def record_change(
        self,
        entity_type: Union[EntityType, str],
        entity_id: str,
        payload: Union[ChangePayload, Dict[str, Any]],
        batch_id: Optional[str] = None,
    ) -> HistoryRecordOut:
        """
        Registra un cambio.

        batch_id: el del cliente (X-Operation-Batch-ID) o el generado por el
        llamador; si no hay ninguno el registro usa su propio id.
        """
        etype = _entity_type_value(entity_type)
        record = HistoryRecord(
            id=str(uuid.uuid4()),
            timestamp=datetime.now(),
            entity_type=etype,
            entity_id=entity_id,
            batch_id=batch_id or None,
            changes=_marshal(etype, payload),
        )
        out = self._write([record])[0]
        logger.debug("Historial %s/%s registrado en lote %s", etype, entity_id, out.batch_id)
        return out

    def record_changes(self, items: Iterable[ChangeItem], batch_id: str) -> List[HistoryRecordOut]:
        """Registra varios cambios bajo un mismo batch_id, en una sola transacción."""
        if not batch_id:
            raise ValidationError("batch_id es obligatorio para registrar varios cambios")
        records = []
        for entity_type, entity_id, payload in items:
            etype = _entity_type_value(entity_type)
            records.append(HistoryRecord(
                id=str(uuid.uuid4()),
                timestamp=datetime.now(),
                entity_type=etype,
                entity_id=entity_id,
                batch_id=batch_id,
                changes=_marshal(etype, payload),
            ))
        if not records:
            raise EmptyBatchError()
        return self._write(records, shared_batch=True)

    def record_changes_safely(self, items: Iterable[ChangeItem], batch_id: Optional[str]) -> List[HistoryRecordOut]:
        """
        Igual que record_changes pero sin propagar errores.

        Se usa después del commit de una mutación: un fallo del historial
        solo se registra en el log, la mutación ya quedó aplicada.
        """
        items = list(items)
        try:
            if len(items) == 1 and not batch_id:
                entity_type, entity_id, payload = items[0]
                return [self.record_change(entity_type, entity_id, payload)]
            return self.record_changes(items, batch_id or str(uuid.uuid4()))
        except Exception as e:
            logger.warning(
                "No se pudo registrar historial (%s) en lote %s: %s",
                ", ".join(f"{t}/{i}" for t, i, _ in items), batch_id, e,
                exc_info=True,
            )
            return []

    def create_raw_entry(self, entry: HistoryEntryIn) -> HistoryRecordOut:
        """Guarda un registro enviado por el cliente (respeta id, fecha y batch_id si vienen)."""
        etype = entry.entity_type.value
        record = HistoryRecord(
            id=entry.id or None,
            timestamp=entry.timestamp,
            entity_type=etype,
            entity_id=entry.entity_id,
            batch_id=entry.batch_id or None,
            changes=_marshal(etype, entry.changes),
        )
        return self._write([record])[0]

    def create_batch(self, entries: List[HistoryEntryIn]) -> Tuple[str, List[HistoryRecordOut]]:
        """
        Crea varios registros con un batch_id nuevo y común.

        Atómico: o se guardan todos o ninguno.
        """
        if not entries:
            raise EmptyBatchError()

        batch_id = str(uuid.uuid4())
        records = []
        for entry in entries:
            etype = entry.entity_type.value
            records.append(HistoryRecord(
                id=entry.id or str(uuid.uuid4()),
                timestamp=entry.timestamp or datetime.now(),
                entity_type=etype,
                entity_id=entry.entity_id,
                batch_id=batch_id,
                changes=_marshal(etype, entry.changes),
            ))

        out = self._write(records, shared_batch=True)
        logger.info("Lote de historial %s creado con %d registros", batch_id, len(out))
        return batch_id, out

    def record_product_context(
        self,
        product_id: str,
        product_name: str,
        quantity_before: float,
        quantity_after: float,
        batch_id: str,
    ) -> HistoryRecordOut:
        """Guarda el snapshot product_batch_context de un producto en un lote."""
        if not batch_id:
            raise ValidationError("X-Operation-Batch-ID header is required")
        payload = ProductBatchContextChangeDetail(
            product_id=product_id,
            product_name_snapshot=product_name,
            quantity_before_batch=quantity_before,
            quantity_after_batch=quantity_after,
        )
        return self.record_change(EntityType.PRODUCT_BATCH_CONTEXT, product_id, payload, batch_id)

    # =========================================================================
    # LECTURA
    # =========================================================================

    def get_history(self, limit: int = 20, offset: int = 0) -> List[HistoryRecordOut]:
        uow = self._uow()
        try:
            return [HistoryRecordOut.from_record(r) for r in uow.history.list_recent(limit, offset)]
        finally:
            uow.close()

    def get_history_for_entity(self, entity_type: Union[EntityType, str], entity_id: str) -> List[HistoryRecordOut]:
        etype = _entity_type_value(entity_type)
        uow = self._uow()
        try:
            return [HistoryRecordOut.from_record(r) for r in uow.history.find_by_entity(etype, entity_id)]
        finally:
            uow.close()

    def get_by_batch_id(self, batch_id: str) -> List[HistoryRecordOut]:
        uow = self._uow()
        try:
            return [HistoryRecordOut.from_record(r) for r in uow.history.find_by_batch(batch_id)]
        finally:
            uow.close()

    def get_grouped_history(self, page: int = 1, page_size: int = 10) -> PaginatedHistoryBatchGroups:
        """
        Historial agrupado por lote de operaciones, paginado por lotes.

        1. Página de batch_ids distintos (más recientes primero)
        2. Registros de cada lote en orden cronológico
        3. Snapshots product_batch_context del lote -> mapa por producto
        4. Contexto (nombre, cantidad) para cada registro de producto/lote
        5. Resumen por producto: neto = después - antes
        """
        if page < 1 or page_size < 1:
            raise ValidationError("page y pageSize deben ser mayores a cero")

        uow = self._uow()
        try:
            batches, total_batches = uow.history.list_distinct_batches(page, page_size)
            groups = []
            for batch_id, first_entry in batches:
                records = uow.history.find_by_batch(batch_id)
                if not records:
                    continue
                groups.append(self._build_group(batch_id, first_entry, records))
        finally:
            uow.close()

        total_pages = math.ceil(total_batches / page_size) if total_batches else 0
        return PaginatedHistoryBatchGroups(
            groups=groups,
            total_batches=total_batches,
            page=page,
            page_size=page_size,
            total_pages=total_pages,
        )

    # =========================================================================
    # PROYECCIÓN
    # =========================================================================

    def _extract_snapshots(self, batch_id: str, records: List[HistoryRecord]) -> Dict[str, _ProductSnapshot]:
        """
        Snapshots por producto. Si un producto tiene varios en el mismo lote,
        'antes' sale del primero y 'después' del último (records en orden cronológico).
        """
        snapshots: Dict[str, _ProductSnapshot] = {}
        for record in records:
            if record.entity_type != EntityType.PRODUCT_BATCH_CONTEXT.value:
                continue
            try:
                ctx = parse_changes(record.entity_type, record.changes)
            except ValueError as e:
                logger.warning(
                    "Snapshot inválido para %s en lote %s: %s", record.entity_id, batch_id, e
                )
                continue
            current = snapshots.get(record.entity_id)
            if current is None:
                snapshots[record.entity_id] = _ProductSnapshot(
                    product_name=ctx.product_name_snapshot,
                    quantity_before=ctx.quantity_before_batch,
                    quantity_after=ctx.quantity_after_batch,
                )
            else:
                current.quantity_after = ctx.quantity_after_batch
                current.product_name = ctx.product_name_snapshot or current.product_name
        return snapshots

    @staticmethod
    def _product_id_for(record: HistoryRecord) -> Optional[str]:
        if record.entity_type == EntityType.PRODUCT.value:
            return record.entity_id
        if record.entity_type == EntityType.LOTE.value:
            try:
                detail = parse_changes(record.entity_type, record.changes)
            except ValueError:
                # Datos antiguos: intentar solo con el productId
                return (record.changes or {}).get("productId")
            if isinstance(detail, LoteChangeDetail):
                return detail.product_id
        return None

    def _build_group(self, batch_id: str, first_entry: datetime, records: List[HistoryRecord]) -> HistoryBatchGroup:
        snapshots = self._extract_snapshots(batch_id, records)

        processed = []
        for record in records:
            out = HistoryRecordOut.from_record(record)
            if record.entity_type != EntityType.PRODUCT_BATCH_CONTEXT.value:
                product_id = self._product_id_for(record)
                if product_id:
                    snapshot = snapshots.get(product_id)
                    if snapshot:
                        out.product_name_context = snapshot.product_name
                        # Cantidad del producto al terminar el lote
                        out.product_current_total_quantity = snapshot.quantity_after
                    else:
                        # Sin snapshot (datos antiguos o escritura fallida): no inventar
                        out.product_name_context = CONTEXT_UNAVAILABLE
            processed.append(out)

        summaries = {
            product_id: ProductBatchSummary(
                product_id=product_id,
                product_name=snapshot.product_name,
                total_quantity_before_batch=snapshot.quantity_before,
                total_quantity_after_batch=snapshot.quantity_after,
                net_quantity_change_in_batch=round(snapshot.quantity_after - snapshot.quantity_before, 4),
            )
            for product_id, snapshot in snapshots.items()
        }

        return HistoryBatchGroup(
            batch_id=batch_id,
            created_at=first_entry,
            records=processed,
            record_count=len(processed),
            product_summaries=summaries,
        )
