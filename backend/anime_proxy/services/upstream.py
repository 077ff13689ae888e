"""
Modulo del cliente upstream: el corazon del proxy.

TODAS las rutas que hablan con el API de anime o con el host de imagenes
pasan por la clase UpstreamClient. Asi el cache, el rate limiter, la
reescritura de URLs y la traduccion de errores se comportan igual en
/api/proxy, /api/filter, /api/recent, /api/popular y /api/kodik.

Flujo de una peticion (UpstreamClient.proxy):

    rate limiter -> validar ruta -> clasificar (imagen o API)
        -> cache? --si--> respuesta con X-Cache: HIT
        -> no: peticion HTTP al upstream
            -> imagen bloqueada (HTML "403")  -> placeholder SVG
            -> imagen correcta                -> bytes + guardar en cache
            -> JSON del API                   -> reescribir URLs + guardar en cache
        -> (siempre, al final) limpieza del cache si es muy grande

Clasificacion de rutas:
    "uploads/anime/1/cover/x.jpg" -> imagen -> IMAGE_BASE_URL (sin query)
    "anime", "episodes/41924"     -> API    -> API_BASE_URL (con query)

Traduccion de errores (ver errors.py):
    timeout de httpx          -> UpstreamTimeout (408)
    DNS / conexion rechazada  -> UpstreamUnreachable (502)
    upstream responde 5xx     -> UpstreamUnreachable (502)
    cualquier otra excepcion  -> InternalFault (500)
Las respuestas 4xx del upstream NO son excepciones en httpx: si traen JSON
se reenvian tal cual con el mismo codigo HTTP.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

import httpx

from anime_proxy.config import settings
from anime_proxy.errors import (
    InternalFault,
    InvalidPath,
    ProxyError,
    RateLimited,
    UpstreamClientError,
    UpstreamNotFound,
    UpstreamTimeout,
    UpstreamUnreachable,
)
from anime_proxy.limiter import SlidingWindowLimiter, limiter
from anime_proxy.services.cache import CacheEntry, ResponseCache, make_cache_key
from anime_proxy.services.rewriter import process_api_response

logger = logging.getLogger(__name__)

# Imagen de reemplazo cuando el host de portadas bloquea la descarga.
# Es un SVG (texto), asi que no necesitamos ninguna libreria de imagenes.
PLACEHOLDER_SVG = b"""<svg width="300" height="200" xmlns="http://www.w3.org/2000/svg">
  <defs>
    <linearGradient id="grad" x1="0%" y1="0%" x2="100%" y2="100%">
      <stop offset="0%" style="stop-color:#667eea;stop-opacity:1" />
      <stop offset="100%" style="stop-color:#764ba2;stop-opacity:1" />
    </linearGradient>
  </defs>
  <rect width="100%" height="100%" fill="url(#grad)" rx="8"/>
  <text x="50%" y="60%" font-family="Arial" font-size="14" fill="white" text-anchor="middle" dy=".3em">Anime Cover</text>
</svg>
"""

# Si una "imagen" llega como HTML/JSON y contiene alguno de estos textos,
# es la pagina de bloqueo del host, no un error real.
BLOCK_MARKERS = ("<html>", "403", "forbidden")


def validate_path(path: str) -> str:
    """
    Rechaza rutas que podrian escaparse de la URL base del upstream.

    "anime/../../admin" o "anime//evil.com" se concatenan a API_BASE_URL y
    podrian apuntar a otro recurso (path traversal / SSRF). Se rechazan
    ANTES de hacer cualquier peticion.
    """
    if ".." in path or "//" in path:
        raise InvalidPath("Invalid path", details={"path": path})
    return path


def is_image_path(path: str) -> bool:
    return settings.UPLOADS_SEGMENT in path and path.lower().endswith(settings.IMAGE_EXTENSIONS)


@dataclass
class ProxyResult:
    """
    Resultado de una peticion proxificada, listo para convertir en Response.

    Para respuestas JSON se usa `data` (ya reescrito); para imagenes,
    `content` (bytes) y `media_type`.
    """
    status_code: int
    data: Any = None
    content: bytes = b""
    media_type: str = "application/json"
    headers: dict[str, str] = field(default_factory=dict)
    is_json: bool = True


class UpstreamClient:
    """
    Cliente compartido hacia el API de anime y el host de imagenes.

    Patron de diseno: Inyeccion de dependencias
    -------------------------------------------
    El cache, el limiter y el cliente httpx se pueden pasar al constructor.
    En produccion se usan los singletons globales; en tests se pasa un
    httpx.AsyncClient con MockTransport (upstream falso) y relojes falsos.
    """

    def __init__(
        self,
        cache: ResponseCache | None = None,
        rate_limiter: SlidingWindowLimiter | None = None,
        http_client: httpx.AsyncClient | None = None,
        api_base: str | None = None,
        image_base: str | None = None,
        timeout: float | None = None,
    ):
        self.cache = cache if cache is not None else ResponseCache()
        self.rate_limiter = rate_limiter if rate_limiter is not None else limiter
        self.timeout = settings.UPSTREAM_TIMEOUT_SECONDS if timeout is None else timeout
        self.http = http_client or httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
        )
        self.api_base = (api_base or settings.API_BASE_URL).rstrip("/")
        self.image_base = (image_base or settings.IMAGE_BASE_URL).rstrip("/")

    async def aclose(self) -> None:
        await self.http.aclose()

    async def proxy(
        self,
        path: str,
        query: Iterable[tuple[str, Any]] = (),
        *,
        client_id: str,
        proxy_base: str,
        headers: Mapping[str, str] | None = None,
        method: str = "GET",
    ) -> ProxyResult:
        """
        Resuelve una peticion contra el upstream (o el cache).

        Parametros:
            path (str): Ruta upstream, sin barra inicial (ej: "anime").
            query: Pares (clave, valor) de la query string del cliente.
            client_id (str): Identificador para el rate limiter.
            proxy_base (str): URL publica del proxy, para reescribir imagenes.
            headers: Cabeceras de la peticion original (se filtran).
            method (str): Metodo HTTP hacia el upstream.

        Raises:
            ProxyError: Cualquiera de las subclases de errors.py.
        """
        try:
            if not self.rate_limiter.allow(client_id):
                raise RateLimited(
                    "Too many requests",
                    details={"limit": self.rate_limiter.limit, "window": f"{self.rate_limiter.window} seconds"},
                    headers={"Retry-After": str(self.rate_limiter.window)},
                )
            return await self._proxy(path, list(query), client_id, proxy_base, headers, method)
        except ProxyError:
            raise
        except Exception as exc:
            logger.exception("Proxy error for %s", path)
            raise InternalFault("Internal proxy error", details=str(exc)) from exc
        finally:
            removed = self.cache.sweep_if_needed()
            if removed:
                logger.debug("Cache sweep removed %d expired entries", removed)

    async def get_json(
        self,
        path: str,
        params: Mapping[str, Any] | None = None,
        *,
        client_id: str,
        proxy_base: str,
    ) -> Any:
        """
        Atajo para las rutas de listado: devuelve el JSON ya reescrito.

        A diferencia de proxy(), un 4xx del upstream se convierte en
        excepcion, porque estas rutas devuelven SU propio formato.
        """
        result = await self.proxy(
            path,
            (params or {}).items(),
            client_id=client_id,
            proxy_base=proxy_base,
        )
        if not result.is_json:
            raise InternalFault("Expected a JSON response from the metadata API", details={"path": path})
        if result.status_code == 404:
            raise UpstreamNotFound("Resource not found", details=result.data)
        if result.status_code >= 400:
            raise UpstreamClientError(result.status_code, "Upstream rejected the request", details=result.data)
        return result.data

    async def _proxy(self, path, query, client_id, proxy_base, headers, method) -> ProxyResult:
        validate_path(path)

        image = is_image_path(path)
        if image:
            # Las imagenes nunca llevan query: el host de portadas no la usa
            # y solo fragmentaria el cache.
            target_url = f"{self.image_base}/{path}"
            params = []
        else:
            target_url = f"{self.api_base}/{path}"
            params = query

        cache_key = make_cache_key(method, target_url, params)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug("[%s] Cache hit: %s", client_id, target_url)
            return self._from_cache(cached, proxy_base)

        logger.info("[%s] Proxying %s %s", client_id, method, target_url)
        response = await self._fetch(method, target_url, params, self._build_headers(headers, image))

        if image:
            return self._image_result(response, target_url, cache_key)
        return self._json_result(response, target_url, cache_key, proxy_base)

    def _build_headers(self, incoming: Mapping[str, str] | None, image: bool) -> httpx.Headers:
        forwarded = httpx.Headers({
            key: value
            for key, value in (incoming or {}).items()
            if key.lower() not in settings.IGNORED_HEADERS
        })
        if image:
            forwarded.update(settings.IMAGE_HEADERS)
        else:
            forwarded["User-Agent"] = settings.API_USER_AGENT
        return forwarded

    async def _fetch(self, method: str, url: str, params: list, headers: httpx.Headers) -> httpx.Response:
        try:
            response = await self.http.request(
                method,
                url,
                params=params or None,
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as exc:
            logger.error("Upstream timeout: %s", url)
            raise UpstreamTimeout("Request timeout", details={"url": url}) from exc
        except httpx.TransportError as exc:
            logger.error("Upstream unreachable: %s (%s)", url, exc)
            raise UpstreamUnreachable("Failed to reach upstream", details=str(exc)) from exc

        if response.status_code >= 500:
            logger.error("Upstream error %d: %s", response.status_code, url)
            raise UpstreamUnreachable(
                "Upstream server error",
                details={"status": response.status_code, "url": url},
            )
        return response

    def _from_cache(self, entry: CacheEntry, proxy_base: str) -> ProxyResult:
        if entry.is_binary:
            return ProxyResult(
                status_code=200,
                content=entry.data,
                media_type=entry.content_type,
                headers={"Cache-Control": settings.IMAGE_CACHE_CONTROL, "X-Cache": "HIT"},
                is_json=False,
            )
        return ProxyResult(
            status_code=200,
            data=process_api_response(entry.data, proxy_base),
            headers={"X-Cache": "HIT"},
        )

    def _image_result(self, response: httpx.Response, url: str, cache_key: str) -> ProxyResult:
        content_type = response.headers.get("content-type", "image/jpeg")

        if "text/html" in content_type or "application/json" in content_type:
            text = response.content.decode("utf-8", errors="replace").lower()
            if any(marker in text for marker in BLOCK_MARKERS):
                logger.warning("Image blocked by upstream: %s", url)
                return ProxyResult(
                    status_code=200,
                    content=PLACEHOLDER_SVG,
                    media_type="image/svg+xml",
                    headers={"X-Cache": "MISS", "X-Placeholder": "true"},
                    is_json=False,
                )

        if response.status_code >= 400:
            self._raise_client_error(response, url)

        self.cache.put(cache_key, response.content, content_type)
        return ProxyResult(
            status_code=200,
            content=response.content,
            media_type=content_type,
            headers={"Cache-Control": settings.IMAGE_CACHE_CONTROL, "X-Cache": "MISS"},
            is_json=False,
        )

    def _json_result(self, response: httpx.Response, url: str, cache_key: str, proxy_base: str) -> ProxyResult:
        try:
            data = response.json()
        except ValueError as exc:
            if response.status_code >= 400:
                self._raise_client_error(response, url)
            raise InternalFault("Upstream returned invalid JSON", details=str(exc)) from exc

        # Guardamos el JSON ORIGINAL: la reescritura depende de la URL base
        # de cada peticion y se aplica en cada lectura.
        if response.status_code == 200:
            self.cache.put(cache_key, data)

        return ProxyResult(
            status_code=response.status_code,
            data=process_api_response(data, proxy_base),
            headers={"X-Cache": "MISS"},
        )

    @staticmethod
    def _raise_client_error(response: httpx.Response, url: str) -> None:
        if response.status_code == 404:
            raise UpstreamNotFound("Resource not found", details={"url": url})
        raise UpstreamClientError(
            response.status_code,
            "Upstream rejected the request",
            details=response.text[:500],
        )


# Instancias globales compartidas por todas las rutas (Singleton implicito).
response_cache = ResponseCache()
upstream_client = UpstreamClient(cache=response_cache, rate_limiter=limiter)
