import os
import logging
from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker, declarative_base

logger = logging.getLogger(__name__)

Base = declarative_base()


def _import_all_models():
    """Importa todos los modelos para que Base.metadata los registre."""
    from .domain import models  # noqa: F401 - User, Product, Lote, HistoryRecord


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite no aplica ON DELETE CASCADE sin este pragma
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """
    Conexión a la base de datos de la aplicación.

    Se construye una vez en el arranque (create_app) y se inyecta en los
    servicios; no existe un engine global de módulo.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        connect_args = {}
        sa_url = make_url(url)
        if sa_url.get_backend_name() == "sqlite":
            connect_args["check_same_thread"] = False
            database = sa_url.database
            if database and database != ":memory:":
                os.makedirs(os.path.dirname(os.path.abspath(database)), exist_ok=True)

        self.engine = create_engine(url, echo=echo, future=True, connect_args=connect_args)
        if sa_url.get_backend_name() == "sqlite":
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        # expire_on_commit=False: los DTOs se arman después del commit del UnitOfWork
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
            future=True,
        )

    def session(self) -> Session:
        return self.SessionLocal()

    def create_all(self):
        """Crear tablas si no existen (arranque normal)."""
        _import_all_models()
        Base.metadata.create_all(bind=self.engine)
        logger.info("Tablas verificadas en %s", self.engine.url.render_as_string(hide_password=True))

    def drop_all(self):
        """Elimina todas las tablas. Usar solo en tests o para reiniciar el sistema."""
        _import_all_models()
        Base.metadata.drop_all(bind=self.engine)

    def dispose(self):
        self.engine.dispose()
