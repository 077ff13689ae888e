"""
Jerarquia de errores del proxy.

Cada clase corresponde a un tipo de fallo con su propio codigo HTTP y su
propio "kind" (identificador estable que el frontend puede comparar sin
depender del texto del mensaje).

Las rutas y servicios LANZAN estas excepciones; main.py registra un unico
exception handler que las convierte en una respuesta JSON con el formato de
ErrorResponse (ver models/schemas.py):

    {"error": "<kind>", "message": "<texto legible>", "details": ...}

Como el handler corre DENTRO del middleware de CORS, las respuestas de error
tambien llevan las cabeceras CORS y el navegador puede leer el cuerpo.
"""

from typing import Any


class ProxyError(Exception):
    """
    Clase base de todos los errores controlados del proxy.

    Atributos:
        status_code (int): Codigo HTTP de la respuesta.
        kind (str): Identificador estable del tipo de error.
        message (str): Mensaje legible para humanos.
        details: Informacion extra (diagnostico del upstream, limites, etc.).
            Puede ser None, un string o cualquier valor serializable a JSON.
        headers (dict): Cabeceras adicionales de la respuesta (ej: Retry-After).
    """

    status_code: int = 500
    kind: str = "internal_error"

    def __init__(
        self,
        message: str,
        details: Any = None,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        self.headers = headers or {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.kind, "message": self.message, "details": self.details}


class MethodNotAllowed(ProxyError):
    status_code = 405
    kind = "method_not_allowed"


class InvalidPath(ProxyError):
    """Ruta con ".." o "//": intento de path traversal hacia el upstream."""

    status_code = 400
    kind = "invalid_path"


class RouteNotFound(ProxyError):
    status_code = 404
    kind = "not_found"


class MissingParameter(ProxyError):
    status_code = 400
    kind = "missing_parameter"


class RateLimited(ProxyError):
    status_code = 429
    kind = "rate_limited"


class UpstreamError(ProxyError):
    """Base de los errores originados en (o camino a) el upstream."""

    status_code = 502
    kind = "bad_gateway"


class UpstreamNotFound(UpstreamError):
    status_code = 404
    kind = "not_found"


class UpstreamClientError(UpstreamError):
    """
    El upstream respondio 4xx con un cuerpo que no pudimos reenviar tal cual.

    El codigo HTTP es el MISMO que devolvio el upstream (400, 401, 403...),
    por eso se pasa en el constructor en vez de ser fijo en la clase.
    """

    kind = "upstream_client_error"

    def __init__(self, status_code: int, message: str, details: Any = None):
        super().__init__(message, details)
        self.status_code = status_code


class UpstreamTimeout(UpstreamError):
    status_code = 408
    kind = "timeout"


class UpstreamUnreachable(UpstreamError):
    """Fallo de DNS, conexion rechazada o respuesta 5xx del upstream."""

    status_code = 502
    kind = "bad_gateway"


class InternalFault(ProxyError):
    status_code = 500
    kind = "internal_error"
