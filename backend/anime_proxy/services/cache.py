"""
Cache en memoria de respuestas del upstream.

Guarda dos tipos de entradas:
    - Respuestas del API: el JSON ya parseado, SIN reescribir. La reescritura
      de URLs se aplica en cada lectura con la URL base de la peticion
      actual, asi el cache no queda atado a un dominio concreto.
    - Imagenes: los bytes tal cual llegaron, junto con su Content-Type.

Politica de expiracion:
    - Cada entrada vive CACHE_TTL_SECONDS (5 minutos por defecto).
    - `get` ignora las entradas expiradas, pero no las borra.
    - `sweep` borra las expiradas. Se invoca al final de cada peticion
      solo cuando el cache supera CACHE_MAX_ENTRIES (ver sweep_if_needed).

Para que `sweep` no tenga que recorrer todo el diccionario, mantenemos un
min-heap ordenado por instante de expiracion. Asi solo se visitan las
entradas que de verdad expiraron: O(k log n) en vez de O(n).
Cuando una clave se sobrescribe, su registro anterior queda en el heap; si
el heap llega al doble de entradas vivas se reconstruye desde cero.

Concurrencia: un threading.Lock protege cada operacion. Ninguna operacion
hace `await` mientras tiene el lock tomado.
"""

import heapq
import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from anime_proxy.config import settings


@dataclass(frozen=True)
class CacheEntry:
    """
    Entrada inmutable del cache.

    Atributos:
        timestamp (float): Momento en que se guardo (segun el reloj del cache).
        data: JSON parseado (respuestas del API) o bytes (imagenes).
        content_type (str | None): Solo para imagenes.
    """
    timestamp: float
    data: Any
    content_type: str | None = None

    @property
    def is_binary(self) -> bool:
        return self.content_type is not None


def make_cache_key(method: str, url: str, params: Iterable[tuple[str, Any]] = ()) -> str:
    """
    Construye la clave del cache para (metodo, URL upstream, parametros).

    Los parametros se ordenan antes de serializar: "?a=1&b=2" y "?b=2&a=1"
    son la misma peticion y deben compartir entrada.
    """
    items = sorted((str(key), str(value)) for key, value in params)
    return f"{method.upper()}:{url}:{json.dumps(items, ensure_ascii=False)}"


class ResponseCache:
    """
    Diccionario clave -> CacheEntry con TTL por entrada.

    Parametros del constructor (todos opcionales):
        ttl (float): Segundos de vida de cada entrada.
        max_entries (int): Umbral a partir del cual sweep_if_needed limpia.
        clock (callable): Funcion que devuelve "ahora" en segundos.
            En tests se pasa un reloj falso para simular el paso del tiempo.
    """

    def __init__(
        self,
        ttl: float | None = None,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = settings.CACHE_TTL_SECONDS if ttl is None else ttl
        self.max_entries = settings.CACHE_MAX_ENTRIES if max_entries is None else max_entries
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        # (expira_en, clave, timestamp). El timestamp permite detectar
        # registros viejos de claves que fueron sobrescritas.
        self._expiry_heap: list[tuple[float, str, float]] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _is_fresh(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.timestamp < self.ttl

    def get(self, key: str) -> CacheEntry | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or not self._is_fresh(entry, self._clock()):
                return None
            return entry

    def put(self, key: str, data: Any, content_type: str | None = None) -> CacheEntry:
        with self._lock:
            now = self._clock()
            entry = CacheEntry(timestamp=now, data=data, content_type=content_type)
            self._entries[key] = entry
            heapq.heappush(self._expiry_heap, (now + self.ttl, key, now))
            if len(self._expiry_heap) > 2 * len(self._entries):
                self._compact()
            return entry

    def _compact(self) -> None:
        # Las claves sobrescritas dejan registros viejos en el heap. Lo
        # reconstruimos con un registro por entrada viva. Requiere el lock.
        self._expiry_heap = [
            (entry.timestamp + self.ttl, key, entry.timestamp)
            for key, entry in self._entries.items()
        ]
        heapq.heapify(self._expiry_heap)

    def sweep(self) -> int:
        """Borra todas las entradas expiradas. Retorna cuantas se borraron."""
        removed = 0
        with self._lock:
            now = self._clock()
            while self._expiry_heap and self._expiry_heap[0][0] <= now:
                _, key, stamp = heapq.heappop(self._expiry_heap)
                entry = self._entries.get(key)
                # Si la clave se sobrescribio despues, este registro del heap
                # es viejo y la entrada actual tiene su propio registro.
                if entry is not None and entry.timestamp == stamp:
                    del self._entries[key]
                    removed += 1
        return removed

    def sweep_if_needed(self) -> int:
        if len(self) > self.max_entries:
            return self.sweep()
        return 0

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._expiry_heap.clear()
