"""
Tests de API - Autenticación y salud
"""
from fastapi.testclient import TestClient


class TestAuthAPI:
    """Tests de endpoints de autenticación"""

    def test_health_ready(self, client):
        """GET /health/ready no requiere token"""
        r = client.get("/health/ready")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"

    def test_auth_health(self, client):
        r = client.get("/auth/health")
        assert r.status_code == 200

    def test_login_ok(self, client, settings):
        r = client.post("/auth/login", json={"username": settings.admin_user, "password": settings.admin_pass})
        assert r.status_code == 200
        data = r.json()
        assert data["token"]
        assert data["user"]["username"] == settings.admin_user
        assert isinstance(data["user"]["id"], int)

    def test_login_clave_incorrecta(self, client, settings):
        r = client.post("/auth/login", json={"username": settings.admin_user, "password": "otra"})
        assert r.status_code == 401
        assert "error" in r.json()

    def test_login_sin_cuerpo(self, client):
        """Payload inválido -> 400 con {"error": ...}"""
        r = client.post("/auth/login")
        assert r.status_code == 400
        assert r.json()["error"].startswith("Invalid request payload")

    def test_verify(self, client_auth):
        r = client_auth.get("/auth/verify")
        assert r.status_code == 200
        assert r.json() == {"valid": True}

    def test_sin_token(self, client):
        r = client.get("/products")
        assert r.status_code == 401
        assert r.json() == {"error": "Authorization header required"}

    def test_token_invalido(self, client):
        r = client.get("/auth/verify", headers={"Authorization": "Bearer no-es-un-jwt"})
        assert r.status_code == 401

    def test_headers_de_seguridad(self, client):
        r = client.get("/health/ready")
        assert r.headers["X-Content-Type-Options"] == "nosniff"
        assert r.headers["X-Frame-Options"] == "DENY"

    def test_cierre_libera_la_base(self, app, monkeypatch):
        """Al cerrar la aplicación se liberan las conexiones"""
        cerradas = []
        monkeypatch.setattr(app.state.database, "dispose", lambda: cerradas.append(True))
        with TestClient(app) as c:
            assert c.get("/health/ready").status_code == 200
            assert cerradas == []
        assert cerradas == [True]
