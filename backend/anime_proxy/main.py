"""
Punto de entrada principal de la aplicacion FastAPI.

Aqui se:
1. Crea la instancia de la aplicacion FastAPI.
2. Configura el logging y los middlewares (CORS).
3. Registra los handlers de errores (formato uniforme ErrorResponse).
4. Registra todas las rutas (proxy, listados, kodik).
5. Define el endpoint de health check.

Arquitectura de la aplicacion:
------------------------------
    main.py (punto de entrada)
        |
        +-- routes/         (Controladores: reciben HTTP requests)
        |    +-- proxy.py       /api/proxy/{path}
        |    +-- catalog.py     /api/filter, /api/recent, /api/popular
        |    +-- kodik.py       /api/kodik/episode
        |
        +-- services/       (Logica: cache, upstream, reescritura, kodik)
        |    +-- upstream.py
        |    +-- cache.py
        |    +-- rewriter.py
        |    +-- catalog.py
        |    +-- kodik.py
        |
        +-- models/schemas.py  (Formatos de respuesta propios)
        +-- errors.py          (Jerarquia de errores)
        +-- dependencies.py    (Datos derivados de la peticion)
        +-- config.py          (Configuracion centralizada)
        +-- limiter.py         (Rate limiting)

El flujo de una peticion HTTP es:
    Cliente -> CORS middleware -> Router -> Endpoint -> UpstreamClient
            -> (rate limiter, cache, upstream) -> Respuesta
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from anime_proxy.config import settings
from anime_proxy.errors import MethodNotAllowed, ProxyError, RouteNotFound
from anime_proxy.models.schemas import HealthResponse
from anime_proxy.routes.catalog import router as catalog_router
from anime_proxy.routes.kodik import router as kodik_router
from anime_proxy.routes.proxy import router as proxy_router
from anime_proxy.services.kodik import kodik_resolver
from anime_proxy.services.upstream import upstream_client

# ---------- Logging ----------

# Un unico punto de configuracion. Cada modulo crea su propio logger con
# logging.getLogger(__name__) y hereda este formato y nivel.
logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


# ---------- Ciclo de vida ----------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Codigo que corre al arrancar (antes del yield) y al apagar (despues).

    Al apagar cerramos los clientes httpx para liberar las conexiones
    abiertas con el upstream.
    """
    if not settings.kodik_token_configured:
        logger.warning("KODIK_PUBLIC_TOKEN is not set; Kodik link resolution will not work")
    if not settings.KODIK_RESOLVER_URL:
        logger.warning("KODIK_RESOLVER_URL is not set; /api/kodik/episode will return no links")
    yield
    await upstream_client.aclose()
    await kodik_resolver.aclose()


# ---------- Creacion de la aplicacion ----------

app = FastAPI(title="Anime API Proxy", lifespan=lifespan)


# ---------- Configuracion de CORS ----------

# El proxy lo consumen frontends alojados en otros dominios, asi que TODAS
# las respuestas (incluidos los errores) llevan cabeceras CORS. Por eso los
# errores se convierten en respuestas con exception handlers: esos
# handlers corren dentro del middleware y sus respuestas pasan por el.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
    max_age=settings.CORS_MAX_AGE,
)


# ---------- Manejo de errores ----------

def _error_response(exc: ProxyError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)


@app.exception_handler(ProxyError)
async def proxy_error_handler(request: Request, exc: ProxyError):
    """Convierte cualquier ProxyError en un ErrorResponse JSON."""
    return _error_response(exc)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    """
    Errores de enrutamiento de Starlette (ruta inexistente, metodo no
    permitido) con el mismo formato que el resto de errores.
    """
    if exc.status_code == 405:
        error = MethodNotAllowed(
            "Method not allowed",
            details={"allowed": settings.CORS_ALLOW_METHODS},
            headers={"Allow": ", ".join(settings.CORS_ALLOW_METHODS)},
        )
    elif exc.status_code == 404:
        error = RouteNotFound("Not found", details={"path": request.url.path})
    else:
        error = ProxyError(str(exc.detail))
        error.status_code = exc.status_code
        error.kind = "http_error"
    return _error_response(error)


# ---------- Health Check ----------

@app.get("/api/health", response_model=HealthResponse)
async def health_check():
    """
    Health check para el balanceador o la plataforma de despliegue.

    No consulta el upstream: solo confirma que el proceso responde, asi una
    caida del API de anime no hace que reinicien el proxy.
    """
    return {"status": "ok"}


# ---------- Registro de rutas ----------

app.include_router(proxy_router)
app.include_router(catalog_router)
app.include_router(kodik_router)
