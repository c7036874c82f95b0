from functools import lru_cache
from pathlib import Path
from pydantic_settings import BaseSettings
from pydantic import Field, model_validator, field_validator
import secrets

BASE_DIR = Path(__file__).resolve().parent.parent  # backend/

class Settings(BaseSettings):
    # ===== ENTORNO =====
    environment: str = Field(default="development", env="ENVIRONMENT")
    debug: bool = Field(default=False, env="DEBUG")

    # ===== DATABASE =====
    database_url: str = Field(default="sqlite:///./data/inventario.db", env="DATABASE_URL")

    # ===== SECURITY =====
    secret_key: str = Field(
        default_factory=lambda: secrets.token_urlsafe(32),
        env="SECRET_KEY"
    )
    # 7 días, igual que el token emitido por el frontend original
    access_token_expire_minutes: int = Field(default=7 * 24 * 60, env="ACCESS_TOKEN_EXPIRE_MINUTES")

    # ===== ADMIN =====
    admin_user: str = Field(default="admin", env="ADMIN_USER")
    admin_pass: str = Field(default="admin", env="ADMIN_PASS")

    @field_validator("admin_user", "admin_pass", mode="after")
    @classmethod
    def empty_to_default(cls, v: str) -> str:
        return v.strip() if v and v.strip() else "admin"

    # ===== CORS =====
    allowed_origins: str = Field(
        default="http://localhost:5173,http://localhost:3000",
        env="ALLOWED_ORIGINS"
    )

    # ===== LOGGING =====
    # None = solo consola (tests, contenedores que recogen stdout)
    log_dir: str | None = Field(default="logs", env="LOG_DIR")
    log_level: str = Field(default="INFO", env="LOG_LEVEL")

    class Config:
        env_file = ".env"
        case_sensitive = False

    @model_validator(mode="after")
    def validate_secret_key(self):
        if self.environment == "production" and len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY debe tener al menos 32 caracteres en producción.")
        return self

    @property
    def allowed_origins_list(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Settings del proceso (se leen una sola vez del entorno / .env)."""
    return Settings()
