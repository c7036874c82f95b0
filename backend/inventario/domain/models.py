from sqlalchemy import Integer, String, ForeignKey, Date, DateTime, Numeric, JSON, CheckConstraint
from datetime import datetime, date
from decimal import Decimal
from typing import Any, Dict, List
from sqlalchemy.orm import relationship, Mapped, mapped_column
from ..db import Base


class User(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(200))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)


class Product(Base):
    """
    Producto de inventario.
    La cantidad es derivada: suma de las cantidades de sus lotes.
    """
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("unit IN ('L', 'kg')", name="ck_products_unit"),
        CheckConstraint("quantity >= 0", name="ck_products_quantity"),
    )

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(100))
    unit: Mapped[str] = mapped_column(String(10))  # L | kg
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4), default=0)

    lotes: Mapped[List["Lote"]] = relationship(
        "Lote",
        back_populates="product",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Lote.data_validade",
    )


class Lote(Base):
    """Lote de un producto, con cantidad y fecha de validez propias."""
    __tablename__ = "product_lots"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_product_lots_quantity"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    product_id: Mapped[str] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), index=True)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4))
    data_validade: Mapped[date] = mapped_column(Date)  # fecha de validez
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)

    product: Mapped[Product] = relationship("Product", back_populates="lotes")


class HistoryRecord(Base):
    """
    Historial de cambios. Inmutable.
    Solo INSERT permitido. Prohibido UPDATE y DELETE.
    """
    __tablename__ = "history"
    __table_args__ = {"comment": "Historial de cambios de productos y lotes - inmutable"}

    # seq conserva el orden físico de inserción (desempate de timestamps iguales)
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, index=True)
    entity_type: Mapped[str] = mapped_column(String(50), index=True)  # product, lote, product_batch_context
    entity_id: Mapped[str] = mapped_column(String(100), index=True)
    batch_id: Mapped[str] = mapped_column(String(100), index=True)
    changes: Mapped[Dict[str, Any]] = mapped_column(JSON)
