"""
Modulo de ruta del proxy generico: GET /api/proxy/{path}.

Todo lo que va despues de /api/proxy/ se reenvia al upstream:

    /api/proxy/anime?q=naruto             -> API_BASE_URL/anime?q=naruto
    /api/proxy/episodes/41924             -> API_BASE_URL/episodes/41924
    /api/proxy/uploads/anime/1/cover/x.jpg -> IMAGE_BASE_URL/uploads/anime/1/cover/x.jpg

La logica (cache, rate limit, clasificacion, placeholder) vive en
services/upstream.py. Este archivo solo adapta HTTP <-> servicio.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from anime_proxy.dependencies import get_client_id, get_proxy_base
from anime_proxy.services.upstream import ProxyResult, upstream_client

router = APIRouter()


def render_result(result: ProxyResult) -> Response:
    """Convierte un ProxyResult del servicio en una respuesta HTTP."""
    if result.is_json:
        return JSONResponse(content=result.data, status_code=result.status_code, headers=result.headers)
    return Response(
        content=result.content,
        status_code=result.status_code,
        media_type=result.media_type,
        headers=result.headers,
    )


@router.api_route("/api/proxy/{path:path}", methods=["GET", "OPTIONS"])
async def proxy(
    path: str,
    request: Request,
    client_id: str = Depends(get_client_id),
    proxy_base: str = Depends(get_proxy_base),
):
    """
    Proxy hacia el API de anime o el host de imagenes.

    Respuestas:
        200: JSON reescrito, imagen, o placeholder SVG (X-Placeholder: true).
        4xx del upstream con JSON: se reenvia con el mismo codigo.
        400 invalid_path, 408 timeout, 429 rate_limited, 502 bad_gateway,
        500 internal_error: ver errors.py.
    """
    # Preflight CORS sin cabeceras Origin (el CORSMiddleware atiende los
    # preflight "de verdad" antes de llegar aqui).
    if request.method == "OPTIONS":
        return Response(status_code=200)

    result = await upstream_client.proxy(
        path,
        request.query_params.multi_items(),
        client_id=client_id,
        proxy_base=proxy_base,
        headers=request.headers,
    )
    return render_result(result)
