"""
Configuración global de pytest para tests del inventario.

Cada test usa una base SQLite propia en tmp_path: no hay estado compartido.
"""
import pytest
import sys
from pathlib import Path

# Agregar el directorio raíz (backend/) al path para imports
root_dir = Path(__file__).parent.parent
sys.path.insert(0, str(root_dir))

from fastapi.testclient import TestClient

from inventario.config import Settings
from inventario.db import Database
from inventario.main import create_app
from inventario.application.services_history import HistoryService
from inventario.application.services_products import ProductService
from inventario.application.services_lotes import LoteService

ADMIN_USER = "admin"
ADMIN_PASS = "admin-test-123"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        environment="test",
        database_url=f"sqlite:///{tmp_path / 'inventario_test.db'}",
        secret_key="clave-de-pruebas-con-mas-de-32-caracteres",
        admin_user=ADMIN_USER,
        admin_pass=ADMIN_PASS,
        log_dir=None,
        log_level="WARNING",
    )


@pytest.fixture
def database(settings):
    db = Database(settings.database_url)
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def history_service(database):
    return HistoryService(database)


@pytest.fixture
def product_service(database, history_service):
    return ProductService(database, history_service)


@pytest.fixture
def lote_service(database, history_service):
    return LoteService(database, history_service)


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    """Cliente HTTP sin autenticación."""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def client_auth(client):
    """Cliente con token del usuario admin creado en el arranque."""
    r = client.post("/auth/login", json={"username": ADMIN_USER, "password": ADMIN_PASS})
    assert r.status_code == 200, r.text
    client.headers["Authorization"] = f"Bearer {r.json()['token']}"
    return client
