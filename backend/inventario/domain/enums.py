from enum import Enum

class Unit(str, Enum):
    LITRO = "L"      # volumen
    KILOGRAMO = "kg"  # masa

class EntityType(str, Enum):
    PRODUCT = "product"
    LOTE = "lote"
    PRODUCT_BATCH_CONTEXT = "product_batch_context"  # Snapshot del producto por lote de operaciones

class ChangeAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
