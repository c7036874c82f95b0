"""
Tests de Productos y Lotes

Cubre:
- Validaciones de entrada (unidad, nombre, cantidad, fecha de validez)
- Cantidad derivada: cantidad del producto == suma de sus lotes
- Historial emitido por cada mutación (lote + snapshot con el mismo batch_id)
- Baja de producto en cascada
- Un fallo del historial no revierte la mutación
"""
import pytest
from decimal import Decimal

from inventario.application.errors import ConflictError, InventarioError, NotFoundError, ValidationError
from inventario.domain.enums import EntityType
from inventario.infrastructure.repositories import ProductRepository
from inventario.infrastructure.unit_of_work import UnitOfWork


def _suma_lotes(database, product_id) -> Decimal:
    uow = UnitOfWork(database.session())
    try:
        return uow.lotes.total_quantity(product_id)
    finally:
        uow.close()


@pytest.fixture
def leite(product_service):
    return product_service.create_product(name="Leite", unit="L", product_id="P1")


class TestProductos:
    """Alta, modificación y baja de productos"""

    def test_crear_producto(self, product_service, history_service):
        product = product_service.create_product(name="Farinha", unit="kg", quantity=5)
        assert product.id
        assert product.unit == "kg"
        assert product.quantity == 5

        records = history_service.get_history_for_entity("product", product.id)
        assert len(records) == 1
        assert records[0].changes["action"] == "created"
        assert records[0].changes["isNewProduct"] is True
        assert records[0].changes["quantityAfter"] == 5
        assert records[0].batch_id == records[0].id

    def test_crear_con_batch_del_cliente(self, product_service, history_service):
        product = product_service.create_product(name="Sal", unit="kg", batch_id="B-CLIENTE")
        assert history_service.get_history_for_entity("product", product.id)[0].batch_id == "B-CLIENTE"

    @pytest.mark.parametrize("unit", ["g", "ml", "", None])
    def test_unidad_invalida(self, product_service, unit):
        with pytest.raises(ValidationError):
            product_service.create_product(name="X", unit=unit)

    def test_nombre_vacio(self, product_service):
        with pytest.raises(ValidationError):
            product_service.create_product(name="   ", unit="L")

    def test_cantidad_negativa(self, product_service):
        with pytest.raises(ValidationError):
            product_service.create_product(name="X", unit="L", quantity=-1)

    @pytest.mark.parametrize("cantidad", ["0.00001", "99999999999"])
    def test_cantidad_fuera_de_escala(self, product_service, cantidad):
        with pytest.raises(ValidationError):
            product_service.create_product(name="X", unit="L", quantity=cantidad)
        assert product_service.list_products() == []

    def test_id_duplicado(self, product_service, leite):
        with pytest.raises(ConflictError):
            product_service.create_product(name="Outro", unit="L", product_id="P1")

    def test_modificar_registra_campos_cambiados(self, product_service, history_service, leite):
        product = product_service.update_product("P1", name="Leite Integral", quantity=3)
        assert product.name == "Leite Integral"
        assert product.quantity == 3

        record = history_service.get_history_for_entity("product", "P1")[0]
        assert record.changes["action"] == "updated"
        fields = {c["field"]: c for c in record.changes["changedFields"]}
        assert fields["name"]["oldValue"] == "Leite"
        assert fields["name"]["newValue"] == "Leite Integral"
        assert record.changes["quantityBefore"] == 0
        assert record.changes["quantityAfter"] == 3
        assert record.changes["quantityChanged"] == 3

    def test_modificar_sin_cambios_no_registra(self, product_service, history_service, leite):
        product_service.update_product("P1", name="Leite", unit="L")
        assert len(history_service.get_history_for_entity("product", "P1")) == 1  # solo el alta

    def test_cantidad_con_lotes_es_conflicto(self, product_service, lote_service, leite):
        lote_service.create_lote("P1", 10, "2025-06-01")
        with pytest.raises(ConflictError):
            product_service.update_product("P1", quantity=99)
        assert product_service.get_product("P1").quantity == 10

    def test_modificar_inexistente(self, product_service):
        with pytest.raises(NotFoundError):
            product_service.update_product("NOPE", name="X")

    def test_baja_en_cascada(self, product_service, lote_service, history_service, leite):
        lote = lote_service.create_lote("P1", 10, "2025-06-01")
        product_service.delete_product("P1")

        with pytest.raises(NotFoundError):
            product_service.get_product("P1")
        with pytest.raises(NotFoundError):
            lote_service.get_lote(lote.id)

        record = history_service.get_history_for_entity("product", "P1")[0]
        assert record.changes["action"] == "deleted"
        assert record.changes["isProductRemoval"] is True
        assert record.changes["quantityBefore"] == 10

    def test_baja_inexistente(self, product_service):
        with pytest.raises(NotFoundError):
            product_service.delete_product("NOPE")

    def test_listado_con_lotes_por_validez(self, product_service, lote_service, leite):
        lote_service.create_lote("P1", 1, "2025-12-01")
        lote_service.create_lote("P1", 2, "2025-01-01")
        product = product_service.list_products()[0]
        assert [str(l.data_validade) for l in product.lotes] == ["2025-01-01", "2025-12-01"]


class TestLotes:
    """Lotes y cantidad derivada"""

    def test_crear_lote_bajo_batch_del_cliente(self, lote_service, product_service, history_service, leite):
        lote = lote_service.create_lote("P1", 10, "2025-01-01", batch_id="B1")
        assert product_service.get_product("P1").quantity == 10

        records = history_service.get_by_batch_id("B1")
        assert {r.entity_type for r in records} == {"lote", "product_batch_context"}

        lote_record = next(r for r in records if r.entity_type == "lote")
        assert lote_record.entity_id == lote.id
        assert lote_record.changes["action"] == "created"
        assert lote_record.changes["quantityAfter"] == 10
        assert lote_record.changes["dataValidade"] == "2025-01-01"

        context = next(r for r in records if r.entity_type == "product_batch_context")
        assert context.entity_id == "P1"
        assert context.changes["productNameSnapshot"] == "Leite"
        assert context.changes["quantityBeforeBatch"] == 0
        assert context.changes["quantityAfterBatch"] == 10

    def test_sin_cabecera_comparten_batch_generado(self, lote_service, history_service, leite):
        lote = lote_service.create_lote("P1", 2, "2025-01-01")
        lote_record = history_service.get_history_for_entity("lote", lote.id)[0]
        batch = history_service.get_by_batch_id(lote_record.batch_id)
        assert len(batch) == 2
        assert lote_record.batch_id != lote_record.id

    def test_modificar_cantidad(self, lote_service, product_service, history_service, leite):
        lote = lote_service.create_lote("P1", 10, "2025-01-01")
        lote_service.update_lote(lote.id, quantity=4, batch_id="B2")

        assert product_service.get_product("P1").quantity == 4
        records = history_service.get_by_batch_id("B2")
        detail = next(r for r in records if r.entity_type == "lote").changes
        assert detail["quantityBefore"] == 10
        assert detail["quantityAfter"] == 4
        assert detail["quantityChanged"] == -6
        context = next(r for r in records if r.entity_type == "product_batch_context").changes
        assert context["quantityBeforeBatch"] == 10
        assert context["quantityAfterBatch"] == 4

    def test_modificar_fecha(self, lote_service, history_service, leite):
        lote = lote_service.create_lote("P1", 10, "2025-01-01")
        updated = lote_service.update_lote(lote.id, data_validade="2025-03-15", batch_id="B3")
        assert str(updated.data_validade) == "2025-03-15"
        detail = next(r for r in history_service.get_by_batch_id("B3") if r.entity_type == "lote").changes
        assert detail["dataValidadeOld"] == "2025-01-01"
        assert detail["dataValidadeNew"] == "2025-03-15"
        assert "quantityChanged" not in detail

    def test_baja_del_ultimo_lote_deja_cero(self, lote_service, product_service, leite):
        lote = lote_service.create_lote("P1", 7.5, "2025-01-01")
        product_id, total = lote_service.delete_lote(lote.id)
        assert product_id == "P1"
        assert total == 0
        assert product_service.get_product("P1").quantity == 0

    def test_cantidad_derivada_incluye_vencidos(self, lote_service, product_service, database, leite):
        lote_service.create_lote("P1", 10, "2000-01-01")  # vencido
        segundo = lote_service.create_lote("P1", 2.5, "2099-01-01")
        lote_service.create_lote("P1", 1, "2050-01-01")
        lote_service.update_lote(segundo.id, quantity=3)

        product = product_service.get_product("P1")
        assert product.quantity == 14
        assert Decimal(str(product.quantity)) == _suma_lotes(database, "P1")

    @pytest.mark.parametrize("fecha", ["2025-02-30", "01/02/2025", "", "2025-1-1x"])
    def test_fecha_invalida(self, lote_service, history_service, fecha, leite):
        with pytest.raises(ValidationError):
            lote_service.create_lote("P1", 1, fecha)
        assert lote_service.list_lotes("P1") == []

    @pytest.mark.parametrize("cantidad", [0, -1, "abc"])
    def test_cantidad_invalida(self, lote_service, cantidad, leite):
        with pytest.raises(ValidationError):
            lote_service.create_lote("P1", cantidad, "2025-01-01")

    @pytest.mark.parametrize("cantidad", ["0.00001", "12345678901", "1.23456"])
    def test_cantidad_fuera_de_escala(self, lote_service, product_service, cantidad, leite):
        with pytest.raises(ValidationError):
            lote_service.create_lote("P1", cantidad, "2025-01-01")
        assert lote_service.list_lotes("P1") == []
        assert product_service.get_product("P1").quantity == 0

    def test_cantidad_en_el_limite_de_escala(self, lote_service, database, leite):
        lote_service.create_lote("P1", "1234567890.1234", "2025-01-01")
        lote_service.create_lote("P1", "0.50000", "2025-01-01")  # ceros finales no cuentan
        total = _suma_lotes(database, "P1")
        assert total == Decimal("1234567890.6234")

    def test_modificar_sin_cambios_no_registra(self, lote_service, history_service, leite):
        lote = lote_service.create_lote("P1", 10, "2025-01-01")
        lote_service.update_lote(lote.id, batch_id="NOOP")
        lote_service.update_lote(lote.id, quantity=10, data_validade="2025-01-01", batch_id="NOOP")
        assert history_service.get_by_batch_id("NOOP") == []
        assert len(history_service.get_history_for_entity("lote", lote.id)) == 1  # solo el alta

    def test_mutaciones_bloquean_el_producto(self, lote_service, monkeypatch, leite):
        bloqueados = []
        original = ProductRepository.get_for_update

        def espia(repo, product_id):
            bloqueados.append(product_id)
            return original(repo, product_id)

        monkeypatch.setattr(ProductRepository, "get_for_update", espia)
        lote = lote_service.create_lote("P1", 10, "2025-01-01")
        lote_service.update_lote(lote.id, quantity=4)
        lote_service.delete_lote(lote.id)
        assert bloqueados == ["P1", "P1", "P1"]

    def test_producto_inexistente(self, lote_service):
        with pytest.raises(NotFoundError):
            lote_service.create_lote("NOPE", 1, "2025-01-01")
        with pytest.raises(NotFoundError):
            lote_service.list_lotes("NOPE")

    def test_modificar_y_borrar_inexistente(self, lote_service):
        with pytest.raises(NotFoundError):
            lote_service.update_lote("NOPE", quantity=1)
        with pytest.raises(NotFoundError):
            lote_service.delete_lote("NOPE")

    def test_fallo_del_historial_no_revierte(self, lote_service, product_service, history_service,
                                             monkeypatch, leite):
        def falla(*args, **kwargs):
            raise InventarioError("historial no disponible")

        monkeypatch.setattr(history_service, "record_changes", falla)
        lote = lote_service.create_lote("P1", 5, "2025-01-01")

        assert lote_service.get_lote(lote.id).quantity == 5
        assert product_service.get_product("P1").quantity == 5
        assert history_service.get_history_for_entity(EntityType.LOTE, lote.id) == []
