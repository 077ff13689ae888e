"""
Construccion de parametros para las rutas de listado.

/api/filter, /api/recent y /api/popular consultan el mismo endpoint del
upstream (/anime) con distintos filtros y ordenamientos. Aqui se normalizan
los parametros del cliente ANTES de mandarlos:

    - limit: se recorta al rango [10, 60]. Valores fuera de rango no son
      error, se ajustan (limit=500 -> 60, limit=1 -> 10).
    - page: minimo 1.
    - sort: solo valores de la lista blanca; cualquier otro -> "-rating".
    - filtros opcionales (type, status, year, age_rating): solo se envian
      si el cliente los especifico.
"""

from typing import Any

from anime_proxy.config import settings

LISTING_PATH = "anime"


def clamp_limit(limit: int | None) -> int:
    if not limit:
        return settings.LISTING_DEFAULT_LIMIT
    return min(max(limit, settings.LISTING_MIN_LIMIT), settings.LISTING_MAX_LIMIT)


def normalize_page(page: int | None) -> int:
    return page if page and page > 0 else 1


def normalize_sort(sort: str | None) -> str:
    return sort if sort in settings.ALLOWED_SORTS else settings.DEFAULT_SORT


def _with_filters(params: dict[str, Any], **filters: Any) -> dict[str, Any]:
    for name, value in filters.items():
        if value is not None and value != "":
            params[name] = value
    return params


def build_filter_params(
    q: str | None = None,
    limit: int | None = None,
    page: int | None = None,
    sort: str | None = None,
    type: str | None = None,
    status: str | None = None,
    year: str | None = None,
    age_rating: str | None = None,
) -> dict[str, Any]:
    """Parametros de busqueda avanzada: texto, filtros y orden libre."""
    params = {
        "limit": clamp_limit(limit),
        "page": normalize_page(page),
        "sort": normalize_sort(sort),
    }
    return _with_filters(params, q=q, type=type, status=status, year=year, age_rating=age_rating)


def build_recent_params(
    limit: int | None = None,
    page: int | None = None,
    type: str | None = None,
    status: str | None = None,
) -> dict[str, Any]:
    """Recien actualizados: orden fijo por fecha de actualizacion descendente."""
    params = {
        "limit": clamp_limit(limit),
        "page": normalize_page(page),
        "sort": "-updated_at",
    }
    return _with_filters(params, type=type, status=status)


def build_popular_params(
    limit: int | None = None,
    page: int | None = None,
    type: str | None = None,
    status: str | None = None,
    year: str | None = None,
) -> dict[str, Any]:
    """Populares: orden fijo por rating descendente."""
    params = {
        "limit": clamp_limit(limit),
        "page": normalize_page(page),
        "sort": "-rating",
    }
    return _with_filters(params, type=type, status=status, year=year)
