"""
Configuración de logging para la aplicación
Crea archivos de log por día en la carpeta configurada (LOG_DIR)
"""
import logging
from logging.handlers import RotatingFileHandler
from datetime import datetime
from pathlib import Path

def setup_logging(log_dir: str | None = "logs", level: str = "INFO"):
    """Configura el sistema de logging con archivos diarios"""

    log_level = getattr(logging, level.upper(), logging.INFO)

    # Formato de los mensajes de log
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    # Configurar el logger root
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Eliminar handlers existentes para evitar duplicados
    root_logger.handlers.clear()

    log_file = None
    if log_dir:
        # Crear carpeta logs si no existe
        Path(log_dir).mkdir(parents=True, exist_ok=True)

        # Nombre del archivo de log con fecha actual (YYYY-MM-DD)
        today = datetime.now().strftime("%Y-%m-%d")
        log_file = Path(log_dir) / f"inventario_{today}.log"

        # maxBytes=10MB, backupCount=5 (mantiene 5 archivos de backup)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(log_format, date_format))
        root_logger.addHandler(file_handler)

    # Handler para consola (stdout)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(log_format, date_format))
    root_logger.addHandler(console_handler)

    # Logger de la aplicación
    logging.getLogger("inventario").setLevel(log_level)

    # Logger para base de datos (SQLAlchemy)
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)  # Solo warnings y errores de SQL

    # Logger para uvicorn
    logging.getLogger("uvicorn").setLevel(logging.INFO)

    if log_file:
        logging.info(f"Sistema de logging configurado. Archivo: {log_file}")
    else:
        logging.info("Sistema de logging configurado (solo consola)")

    return root_logger
