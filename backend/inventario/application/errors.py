"""
Errores de la capa de aplicación.

Cada error conoce su código HTTP; main.create_app los traduce a
{"error": mensaje}.
"""


class InventarioError(Exception):
    """Excepción base del sistema (Internal)"""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(InventarioError):
    """Datos de entrada con forma o rango inválido"""
    status_code = 400


class NotFoundError(InventarioError):
    """La entidad solicitada no existe"""
    status_code = 404


class ConflictError(InventarioError):
    """El estado actual no permite la operación"""
    status_code = 409


class EmptyBatchError(ValidationError):
    """Lote de historial sin registros"""

    def __init__(self, message: str = "Empty batch - no history entries provided"):
        super().__init__(message)


class UnauthorizedError(InventarioError):
    """Credencial ausente o inválida"""
    status_code = 401
