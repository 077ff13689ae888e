"""
Modulo de rutas de listado: /api/filter, /api/recent y /api/popular.

Las tres consultan el listado de anime del upstream con parametros ya
normalizados (ver services/catalog.py) y pasan por el MISMO cliente
upstream que /api/proxy: comparten cache, rate limiter y reescritura de
imagenes.

Ejemplos:
    /api/filter?q=naruto&status=2&sort=-rating
    /api/filter?year=2023&type=16&sort=-rating
    /api/recent?limit=15&status=1
    /api/popular?limit=20&type=16

Codigos de tipo: 16=TV, 17=Pelicula, 18=OVA, 19=ONA, 21=Especial.
Codigos de estado: 1=En emision, 2=Finalizado, 3=Anunciado.
Clasificacion por edad: 0=Ninguna, 1=6+, 2=12+, 3=16+, 4=18+.
"""

import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from anime_proxy.dependencies import get_client_id, get_proxy_base
from anime_proxy.errors import UpstreamError
from anime_proxy.services.catalog import (
    LISTING_PATH,
    build_filter_params,
    build_popular_params,
    build_recent_params,
)
from anime_proxy.services.upstream import upstream_client

logger = logging.getLogger(__name__)

router = APIRouter()


async def _fetch_listing(name: str, params: dict, client_id: str, proxy_base: str):
    try:
        return await upstream_client.get_json(
            LISTING_PATH,
            params,
            client_id=client_id,
            proxy_base=proxy_base,
        )
    except UpstreamError as exc:
        logger.error("%s listing failed: %s (%s)", name, exc.message, exc.kind)
        raise


@router.api_route("/api/filter", methods=["GET", "OPTIONS"])
async def filter_anime(
    request: Request,
    q: str | None = Query(None, description="Texto de busqueda"),
    limit: int | None = Query(None, description="Resultados por pagina (10-60, por defecto 20)"),
    page: int | None = Query(None, description="Numero de pagina (por defecto 1)"),
    sort: str | None = Query(None, description="rating, -rating, updated_at, -updated_at, name, -name, created_at, -created_at"),
    anime_type: str | None = Query(None, alias="type"),
    status: str | None = Query(None),
    year: str | None = Query(None),
    age_rating: str | None = Query(None),
    client_id: str = Depends(get_client_id),
    proxy_base: str = Depends(get_proxy_base),
):
    """Busqueda avanzada con filtros multiples y orden configurable."""
    if request.method == "OPTIONS":
        return Response(status_code=200)

    params = build_filter_params(
        q=q,
        limit=limit,
        page=page,
        sort=sort,
        type=anime_type,
        status=status,
        year=year,
        age_rating=age_rating,
    )
    return await _fetch_listing("filter", params, client_id, proxy_base)


@router.api_route("/api/recent", methods=["GET", "OPTIONS"])
async def recent_anime(
    request: Request,
    limit: int | None = Query(None),
    page: int | None = Query(None),
    anime_type: str | None = Query(None, alias="type"),
    status: str | None = Query(None),
    client_id: str = Depends(get_client_id),
    proxy_base: str = Depends(get_proxy_base),
):
    """Anime actualizados recientemente (orden -updated_at)."""
    if request.method == "OPTIONS":
        return Response(status_code=200)

    params = build_recent_params(limit=limit, page=page, type=anime_type, status=status)
    return await _fetch_listing("recent", params, client_id, proxy_base)


@router.api_route("/api/popular", methods=["GET", "OPTIONS"])
async def popular_anime(
    request: Request,
    limit: int | None = Query(None),
    page: int | None = Query(None),
    anime_type: str | None = Query(None, alias="type"),
    status: str | None = Query(None),
    year: str | None = Query(None),
    client_id: str = Depends(get_client_id),
    proxy_base: str = Depends(get_proxy_base),
):
    """Anime populares (orden -rating)."""
    if request.method == "OPTIONS":
        return Response(status_code=200)

    params = build_popular_params(limit=limit, page=page, type=anime_type, status=status, year=year)
    return await _fetch_listing("popular", params, client_id, proxy_base)
