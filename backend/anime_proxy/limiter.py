"""
Modulo de limitacion de tasa de peticiones (Rate Limiting).

Restringe cuantas peticiones puede hacer un mismo cliente en un periodo de
tiempo: como maximo RATE_LIMIT_REQUESTS (100) en los ultimos
RATE_LIMIT_WINDOW_SECONDS (60) segundos.

Por que necesitamos rate limiting?
----------------------------------
El proxy es publico y cada peticion que no esta en cache se convierte en
una peticion a un servicio de terceros. Sin limite, un solo cliente (o un
bot) podria:
1. Hacer que el upstream nos bloquee por exceso de trafico.
2. Llenar el cache con miles de entradas distintas.

Como funciona? (ventana deslizante)
-----------------------------------
Usamos la libreria `limits`, que es el motor de SlowAPI por debajo:
    - MovingWindowRateLimiter: guarda el instante de cada peticion aceptada
      y cuenta solo las de los ultimos 60 segundos.
    - MemoryStorage: almacenamiento en memoria del proceso (sin Redis).
En cada verificacion, si el cliente ya tiene >= 100 peticiones dentro de la
ventana, se rechaza y el intento NO se registra. Los instantes viejos los
descarta la propia libreria.

Por que no usamos el decorador @limiter.limit de SlowAPI?
---------------------------------------------------------
El limite se consulta desde el cliente upstream compartido (no desde una
ruta concreta), asi que llamamos directamente a la estrategia de `limits`
que SlowAPI usa internamente. De SlowAPI seguimos usando get_remote_address
para identificar al cliente cuando no hay proxy delante.

Patron de diseno: Singleton implicito
-------------------------------------
La instancia global `limiter` es compartida por todas las rutas.
"""

from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from anime_proxy.config import settings


def client_identifier(request: Request) -> str:
    """
    Identifica al cliente para el rate limiting.

    Detras de un balanceador (Vercel, Nginx, ALB...) la IP de la conexion es
    la del balanceador, y la del cliente real viene en X-Forwarded-For:
        X-Forwarded-For: <cliente>, <proxy1>, <proxy2>
    Tomamos la primera. Sin esa cabecera, usamos la IP de la conexion.
    """
    forwarded = request.headers.get("x-forwarded-for", "")
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    return get_remote_address(request) or "unknown"


class SlidingWindowLimiter:
    """
    Limite de peticiones por cliente sobre una ventana deslizante.

    Parametros del constructor (todos opcionales):
        limit (int): Peticiones permitidas por ventana.
        window (int): Duracion de la ventana en segundos.
    """

    def __init__(self, limit: int | None = None, window: int | None = None):
        self.limit = settings.RATE_LIMIT_REQUESTS if limit is None else limit
        self.window = settings.RATE_LIMIT_WINDOW_SECONDS if window is None else window
        self._item = RateLimitItemPerSecond(self.limit, self.window)
        self._storage = MemoryStorage()
        self._strategy = MovingWindowRateLimiter(self._storage)

    def allow(self, client_id: str) -> bool:
        """
        Verifica (y registra) una peticion del cliente.

        Retorna:
            bool: True si la peticion se acepta, False si excede el limite.
        """
        return self._strategy.hit(self._item, client_id)

    def reset(self) -> None:
        self._storage.reset()


# Instancia global compartida por todas las rutas.
limiter = SlidingWindowLimiter()
