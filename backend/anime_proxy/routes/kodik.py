"""
Modulo de ruta de enlaces de video: GET /api/kodik/episode?episode_id=...

Flujo:
    1. Obtiene el episodio del API de anime (episodes/{episode_id}) a traves
       del cliente upstream compartido (cache + rate limiter incluidos).
    2. Pasa los reproductores Kodik del episodio por el resolvedor de enlaces.
    3. Devuelve los enlaces directos ordenados por visualizaciones.

Cualquier otra ruta bajo /api/kodik/ responde 404.
"""

import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from anime_proxy.dependencies import get_client_id, get_proxy_base
from anime_proxy.errors import InternalFault, MissingParameter, RouteNotFound
from anime_proxy.models.schemas import KodikEpisodeResponse
from anime_proxy.services.kodik import kodik_integration
from anime_proxy.services.upstream import upstream_client

logger = logging.getLogger(__name__)

router = APIRouter()


@router.api_route(
    "/api/kodik/episode",
    methods=["GET", "OPTIONS"],
    response_model=KodikEpisodeResponse,
)
async def kodik_episode(
    request: Request,
    episode_id: str | None = Query(None, description="ID del episodio"),
    client_id: str = Depends(get_client_id),
    proxy_base: str = Depends(get_proxy_base),
):
    """
    Enlaces directos (360p, 480p, 720p...) de un episodio.

    Raises:
        MissingParameter (400): Si falta episode_id.
        UpstreamNotFound (404): Si el episodio no existe.
        Errores del upstream: ver errors.py.
    """
    if request.method == "OPTIONS":
        return Response(status_code=200)

    if not episode_id:
        raise MissingParameter("episode_id required")

    # El id va codificado: "1?x=y" no debe convertirse en una query upstream
    episode_data = await upstream_client.get_json(
        f"episodes/{quote(episode_id, safe='')}",
        client_id=client_id,
        proxy_base=proxy_base,
    )
    try:
        video_links = await kodik_integration.get_video_from_episode(episode_data)
    except Exception as exc:
        logger.exception("Kodik link resolution failed for episode %s", episode_id)
        raise InternalFault("Internal proxy error", details=str(exc)) from exc

    return KodikEpisodeResponse(
        episode_id=episode_id,
        kodik_links=video_links,
        total_links=len(video_links),
    )


@router.api_route("/api/kodik/{path:path}", methods=["GET", "OPTIONS"])
async def kodik_not_found(path: str, request: Request):
    if request.method == "OPTIONS":
        return Response(status_code=200)
    raise RouteNotFound("Not found", details={"path": f"/api/kodik/{path}"})
