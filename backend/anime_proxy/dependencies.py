"""
Dependencias de FastAPI compartidas por las rutas.

Con `Depends(...)` FastAPI ejecuta estas funciones antes del endpoint y le
pasa el resultado como argumento. Asi cada ruta recibe ya calculados el
identificador del cliente y la URL publica del proxy.
"""

from fastapi import Request

from anime_proxy.config import settings
from anime_proxy.limiter import client_identifier


def get_client_id(request: Request) -> str:
    return client_identifier(request)


def get_proxy_base(request: Request) -> str:
    """
    URL publica del proxy, tal como la ve el cliente.

    Detras de un balanceador con TLS la conexion nos llega por http, pero
    el cliente uso https: ese dato viene en X-Forwarded-Proto.
    """
    scheme = request.headers.get("x-forwarded-proto") or request.url.scheme or "http"
    host = request.headers.get("host") or settings.DEFAULT_HOST
    return f"{scheme}://{host}"
