"""
Modulo de configuracion centralizada del proxy.

Este archivo define TODAS las constantes y configuraciones que el backend
necesita para funcionar: direcciones de los servicios upstream, tiempos de
vida del cache, limites del rate limiter, cabeceras HTTP, etc.

1. **Principio DRY:** Si la URL del API upstream estuviera hardcodeada en
   cada ruta (filter, recent, popular, proxy...) y el proveedor cambiara de
   dominio, habria que tocar cinco archivos. Aqui solo se cambia una linea.

2. **Configuracion por entorno:** Usamos variables de entorno (os.getenv)
   para que la misma aplicacion pueda correr en local, staging y produccion
   con valores distintos SIN cambiar el codigo fuente.

Patron de diseno utilizado: **Singleton implicito**
La instancia `settings` se crea UNA sola vez al importar este modulo.
Cada archivo que haga `from anime_proxy.config import settings` recibe la
MISMA instancia.
"""

import os
from urllib.parse import urlparse


class Settings:
    """
    Clase que encapsula toda la configuracion de la aplicacion.

    Los servicios (cache, limiter, cliente upstream) reciben sus valores
    por defecto de aqui, pero aceptan parametros propios en el constructor.
    Asi los tests pueden crear instancias con un TTL de 1 segundo o un
    limite de 3 peticiones sin tocar variables de entorno.
    """

    # ---------- Servicios upstream ----------

    # API de metadatos de anime. Expone /anime (listado y busqueda),
    # /anime/{slug}, /episodes y /episodes/{id}. Todas las respuestas son
    # JSON con un sobre "data".
    API_BASE_URL: str = os.getenv("API_BASE_URL", "https://api.cdnlibs.org/api")

    # Host de imagenes (portadas). Sirve binarios bajo rutas "uploads/...".
    # OJO: a veces responde con una pagina HTML "403 Forbidden" en vez de
    # la imagen (proteccion anti hot-link). El proxy detecta ese caso.
    IMAGE_BASE_URL: str = os.getenv("IMAGE_BASE_URL", "https://cover.imglib.info")

    # Timeout de cada peticion al upstream, en segundos.
    # Si el upstream tarda mas, respondemos 408 en vez de dejar al cliente
    # colgado indefinidamente.
    UPSTREAM_TIMEOUT_SECONDS: float = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "15"))

    # ---------- Cache de respuestas ----------

    # Tiempo de vida de una entrada del cache: 5 minutos.
    # Una entrada con edad >= TTL se considera inexistente al leerla.
    CACHE_TTL_SECONDS: float = float(os.getenv("CACHE_TTL_SECONDS", "300"))

    # Cuando el cache supera este numero de entradas, al final de la
    # peticion se ejecuta una limpieza de entradas expiradas.
    CACHE_MAX_ENTRIES: int = int(os.getenv("CACHE_MAX_ENTRIES", "1000"))

    # ---------- Rate limiting ----------

    # Maximo de peticiones por cliente dentro de la ventana deslizante.
    RATE_LIMIT_REQUESTS: int = int(os.getenv("RATE_LIMIT_REQUESTS", "100"))

    # Duracion de la ventana deslizante, en segundos.
    RATE_LIMIT_WINDOW_SECONDS: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))

    # ---------- CORS ----------

    # Origenes permitidos, separados por coma. Este proxy es publico y lo
    # consumen frontends de terceros, por eso el valor por defecto es "*".
    CORS_ORIGINS: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")

    CORS_ALLOW_METHODS: list[str] = ["GET", "OPTIONS"]
    CORS_ALLOW_HEADERS: list[str] = ["Content-Type", "Authorization", "Range"]

    # El navegador puede reutilizar la respuesta del preflight 24 horas.
    CORS_MAX_AGE: int = 86400

    # ---------- Construccion de URLs publicas ----------

    # Host usado para construir la URL base del proxy cuando la peticion
    # no trae cabecera Host (raro, pero posible con clientes HTTP/1.0).
    DEFAULT_HOST: str = os.getenv("DEFAULT_HOST", "localhost:8000")

    # ---------- Clasificacion de rutas ----------

    # Una ruta es "de imagen" si contiene este segmento y termina en una
    # de estas extensiones. Todo lo demas va al API de metadatos.
    UPLOADS_SEGMENT: str = "uploads/"
    IMAGE_EXTENSIONS: tuple[str, ...] = (".jpg", ".png", ".webp", ".gif")

    # Marcadores que indican que una cadena ya apunta a algo que NO hay que
    # reescribir (placeholders o URLs ya pasadas por el proxy).
    PLACEHOLDER_MARKER: str = "placeholders/"
    PROXY_PREFIX: str = "/api/proxy/"

    # ---------- Cabeceras HTTP hacia el upstream ----------

    # Cabeceras del cliente que NUNCA reenviamos al upstream: describen la
    # conexion entre el cliente y nosotros, no entre nosotros y el upstream.
    IGNORED_HEADERS: frozenset[str] = frozenset({
        "host",
        "connection",
        "accept-encoding",
        "content-length",
        "origin",
        "referer",
    })

    # User-Agent con el que nos identificamos ante el API de metadatos.
    API_USER_AGENT: str = "AnimeSearchProxy/1.0 (Personal Use)"

    # Para las imagenes nos hacemos pasar por un navegador: el host de
    # portadas bloquea clientes que no lo parecen.
    IMAGE_HEADERS: dict[str, str] = {
        "User-Agent": (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
        ),
        "Accept": "image/webp,image/apng,image/svg+xml,image/*,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9,ru;q=0.8",
        "Accept-Encoding": "gzip, deflate",
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
        "Referer": os.getenv("IMAGE_REFERER", "https://animelib-api.vercel.app/"),
        "Sec-Fetch-Dest": "image",
        "Sec-Fetch-Mode": "no-cors",
        "Sec-Fetch-Site": "cross-site",
    }

    # Cache-Control que mandamos al navegador junto con cada imagen.
    IMAGE_CACHE_CONTROL: str = "public, max-age=3600"

    # ---------- Listados (filter / recent / popular) ----------

    LISTING_DEFAULT_LIMIT: int = 20
    LISTING_MIN_LIMIT: int = 10
    LISTING_MAX_LIMIT: int = 60

    # Lista blanca de valores de ordenamiento aceptados por el upstream.
    # Cualquier otro valor se sustituye por DEFAULT_SORT.
    ALLOWED_SORTS: tuple[str, ...] = (
        "rating", "-rating",
        "updated_at", "-updated_at",
        "name", "-name",
        "created_at", "-created_at",
    )
    DEFAULT_SORT: str = "-rating"

    # ---------- Kodik (resolucion de enlaces de video) ----------

    # Valor de relleno cuando no hay token configurado. Es OBVIAMENTE
    # invalido: el servicio arranca igual y lo avisamos en el log.
    KODIK_TOKEN_PLACEHOLDER: str = "your_public_token_here"

    # Token publico de Kodik (https://bd.kodik.biz/api/info).
    KODIK_PUBLIC_TOKEN: str = os.getenv("KODIK_PUBLIC_TOKEN", KODIK_TOKEN_PLACEHOLDER)

    # Endpoint HTTP del resolvedor de enlaces. Recibe ?link=...&token=...
    # y responde {"720": [{"src": "//...", "type": "..."}], ...}.
    # Vacio = resolvedor deshabilitado.
    KODIK_RESOLVER_URL: str = os.getenv("KODIK_RESOLVER_URL", "")

    # Hosts que identifican un enlace de reproductor Kodik.
    KODIK_HOSTS: tuple[str, ...] = ("kodik.info", "aniqit.com")

    # Pausa entre llamadas consecutivas al resolvedor, para no saturarlo.
    KODIK_REQUEST_DELAY_SECONDS: float = float(os.getenv("KODIK_REQUEST_DELAY_SECONDS", "0.5"))

    # ---------- Logging ----------

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def image_hosts(self) -> tuple[str, ...]:
        """
        Variantes conocidas del host de imagenes, en orden de prueba.

        Para "https://cover.imglib.info" devuelve:
            ("https://cover.imglib.info", "http://cover.imglib.info", "cover.imglib.info")
        El orden importa: primero las formas con esquema, luego la forma
        "desnuda", que tambien aparece en algunos campos del upstream.
        """
        host = urlparse(self.IMAGE_BASE_URL).netloc
        return (f"https://{host}", f"http://{host}", host)

    @property
    def kodik_token_configured(self) -> bool:
        return self.KODIK_PUBLIC_TOKEN != self.KODIK_TOKEN_PLACEHOLDER


# Instancia unica de configuracion (patron Singleton implicito).
settings = Settings()
