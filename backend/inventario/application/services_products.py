"""
Servicio de Productos
=====================

Alta, modificación, baja y consulta de productos.

- La cantidad del producto es derivada de sus lotes; solo se edita a mano
  cuando el producto aún no tiene lotes
- Cada mutación confirmada emite un ProductChange al historial
- Un fallo del historial NO revierte la mutación (solo se registra en log)
"""
import uuid
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional

from ..db import Database
from ..domain.changes import ChangedField, ProductChange
from ..domain.enums import ChangeAction, EntityType, Unit
from ..domain.models import Product
from ..infrastructure.unit_of_work import UnitOfWork
from .dtos import ProductOut
from .errors import ValidationError, NotFoundError, ConflictError
from .services_history import HistoryService

logger = logging.getLogger(__name__)


def _validar_nombre(name: Optional[str]) -> str:
    if name is None or not str(name).strip():
        raise ValidationError("El nombre del producto es obligatorio")
    name = str(name).strip()
    if len(name) > 100:
        raise ValidationError("El nombre del producto no puede superar 100 caracteres")
    return name


def _validar_unidad(unit: Any) -> str:
    try:
        return Unit(unit).value
    except ValueError:
        raise ValidationError(f"Unidad inválida: {unit!r}. Debe ser 'L' o 'kg'")


# Numeric(14, 4): 10 dígitos enteros y 4 decimales
QUANTITY_INTEGER_DIGITS = 10
QUANTITY_DECIMALS = 4


def validar_escala_cantidad(value: Decimal) -> Decimal:
    """Rechaza cantidades que la columna Numeric(14, 4) no puede guardar sin redondear."""
    if value != 0 and value.normalize().as_tuple().exponent < -QUANTITY_DECIMALS:
        raise ValidationError(f"La cantidad admite como máximo {QUANTITY_DECIMALS} decimales")
    if value != 0 and value.adjusted() + 1 > QUANTITY_INTEGER_DIGITS:
        raise ValidationError(f"La cantidad admite como máximo {QUANTITY_INTEGER_DIGITS} dígitos enteros")
    return value


def _validar_cantidad(quantity: Any) -> Decimal:
    try:
        value = Decimal(str(quantity))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Cantidad inválida: {quantity!r}")
    if not value.is_finite() or value < 0:
        raise ValidationError("La cantidad no puede ser negativa")
    return validar_escala_cantidad(value)


class ProductService:
    def __init__(self, database: Database, history: HistoryService):
        self.database = database
        self.history = history

    def _uow(self) -> UnitOfWork:
        return UnitOfWork(self.database.session())

    def _get_or_404(self, uow: UnitOfWork, product_id: str) -> Product:
        product = uow.products.get(product_id)
        if not product:
            raise NotFoundError(f"Producto {product_id} no encontrado")
        return product

    def list_products(self) -> List[ProductOut]:
        uow = self._uow()
        try:
            return [ProductOut.from_model(p) for p in uow.products.list()]
        finally:
            uow.close()

    def get_product(self, product_id: str) -> ProductOut:
        uow = self._uow()
        try:
            return ProductOut.from_model(self._get_or_404(uow, product_id))
        finally:
            uow.close()

    def create_product(
        self,
        name: str,
        unit: Any,
        quantity: Any = 0,
        product_id: Optional[str] = None,
        batch_id: Optional[str] = None,
    ) -> ProductOut:
        name = _validar_nombre(name)
        unit = _validar_unidad(unit)
        quantity = _validar_cantidad(quantity)
        product_id = (product_id or "").strip() or str(uuid.uuid4())

        with self._uow().transaction() as uow:
            if uow.products.get(product_id):
                raise ConflictError(f"Ya existe un producto con id {product_id}")
            product = uow.products.add(Product(id=product_id, name=name, unit=unit, quantity=quantity))
            out = ProductOut.from_model(product, with_lotes=False)

        logger.info("Producto %s creado (%s, %s %s)", out.id, out.name, out.quantity, out.unit)
        change = ProductChange(
            product_id=out.id,
            product_name=out.name,
            action=ChangeAction.CREATED,
            quantity_after=out.quantity,
            quantity_changed=out.quantity,
            is_new_product=True,
        )
        self.history.record_changes_safely([(EntityType.PRODUCT, out.id, change)], batch_id)
        return out

    def update_product(
        self,
        product_id: str,
        name: Optional[str] = None,
        unit: Any = None,
        quantity: Any = None,
        batch_id: Optional[str] = None,
    ) -> ProductOut:
        """
        Modifica los campos enviados. Registra en el historial solo los
        campos que realmente cambiaron (changedFields).
        """
        new_name = _validar_nombre(name) if name is not None else None
        new_unit = _validar_unidad(unit) if unit is not None else None
        new_quantity = _validar_cantidad(quantity) if quantity is not None else None

        changed: List[ChangedField] = []
        with self._uow().transaction() as uow:
            product = self._get_or_404(uow, product_id)
            quantity_before = float(product.quantity or 0)

            if new_name is not None and new_name != product.name:
                changed.append(ChangedField(field="name", old_value=product.name, new_value=new_name))
                product.name = new_name

            if new_unit is not None and new_unit != product.unit:
                changed.append(ChangedField(field="unit", old_value=product.unit, new_value=new_unit))
                product.unit = new_unit

            if new_quantity is not None and new_quantity != Decimal(product.quantity or 0):
                if uow.lotes.count_by_product(product_id) > 0:
                    raise ConflictError(
                        "La cantidad de un producto con lotes se calcula a partir de sus lotes"
                    )
                changed.append(ChangedField(
                    field="quantity", old_value=quantity_before, new_value=float(new_quantity)
                ))
                product.quantity = new_quantity

            uow.db.flush()
            out = ProductOut.from_model(product)

        if not changed:
            return out

        logger.info("Producto %s modificado: %s", product_id, ", ".join(c.field for c in changed))
        change = ProductChange(
            product_id=out.id,
            product_name=out.name,
            action=ChangeAction.UPDATED,
            changed_fields=changed,
        )
        if any(c.field == "quantity" for c in changed):
            change.quantity_before = quantity_before
            change.quantity_after = out.quantity
            change.quantity_changed = round(out.quantity - quantity_before, 4)
        self.history.record_changes_safely([(EntityType.PRODUCT, out.id, change)], batch_id)
        return out

    def delete_product(self, product_id: str, batch_id: Optional[str] = None) -> None:
        """Elimina el producto y, en cascada, todos sus lotes."""
        with self._uow().transaction() as uow:
            product = self._get_or_404(uow, product_id)
            name = product.name
            quantity_before = float(product.quantity or 0)
            uow.products.delete(product)

        logger.info("Producto %s eliminado", product_id)
        change = ProductChange(
            product_id=product_id,
            product_name=name,
            action=ChangeAction.DELETED,
            quantity_before=quantity_before,
            quantity_after=0,
            quantity_changed=-quantity_before,
            is_product_removal=True,
        )
        self.history.record_changes_safely([(EntityType.PRODUCT, product_id, change)], batch_id)
