"""
Integracion con Kodik: de "episodio del API" a "enlaces de video directos".

El API de metadatos devuelve, para cada episodio, una lista de reproductores
(players). Los del proveedor Kodik traen un enlace embebible como:

    {"player": "Kodik", "src": "//kodik.info/seria/123/abc/720p",
     "team": {"name": "AniLibria", "slug": "anilibria"}, "views": 1500, ...}

Un enlace embebible no sirve para un reproductor propio; hace falta el
enlace DIRECTO al stream de cada calidad. Esa resolucion la hace un
servicio externo (el "resolvedor"), que tratamos como caja negra con este
contrato:

    resolve(link) -> {"360": [{"src": "//cdn/...360.mp4", "type": "..."}],
                      "720": [{"src": "//cdn/...720.mp4", "type": "..."}]}

Las URLs pueden venir sin esquema ("//cdn/..."); aqui se normalizan a
"https://cdn/...".
"""

import asyncio
import logging
import re
from typing import Any, Protocol

import httpx

from anime_proxy.config import settings

logger = logging.getLogger(__name__)

_LEADING_DIGITS = re.compile(r"^\s*(\d+)")


class VideoResolverError(Exception):
    """El resolvedor no pudo obtener enlaces para un reproductor."""


class VideoLinkResolver(Protocol):
    async def resolve(self, link: str) -> dict[str, Any]:
        ...


class KodikLinkResolver:
    """
    Resolvedor HTTP: GET {endpoint}?link=...&token=... -> JSON calidad -> streams.

    Parametros del constructor (todos opcionales):
        endpoint (str): URL del resolvedor. Vacio = deshabilitado.
        token (str): Token publico de Kodik.
        http_client (httpx.AsyncClient): Cliente HTTP (en tests, uno falso).
    """

    def __init__(
        self,
        endpoint: str | None = None,
        token: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.endpoint = settings.KODIK_RESOLVER_URL if endpoint is None else endpoint
        self.token = token or settings.KODIK_PUBLIC_TOKEN
        self.http = http_client or httpx.AsyncClient(timeout=settings.UPSTREAM_TIMEOUT_SECONDS)

    async def aclose(self) -> None:
        await self.http.aclose()

    async def resolve(self, link: str) -> dict[str, Any]:
        if not self.endpoint:
            raise VideoResolverError("Kodik resolver endpoint is not configured")
        try:
            response = await self.http.get(self.endpoint, params={"link": link, "token": self.token})
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise VideoResolverError(f"Resolver failed for {link}: {exc}") from exc

        if not isinstance(payload, dict):
            raise VideoResolverError(f"Unexpected resolver payload for {link}")
        return payload


def extract_kodik_link(player: dict[str, Any]) -> str | None:
    """Devuelve el `src` del reproductor solo si apunta a un host de Kodik."""
    src = player.get("src") if player else None
    if not src or not isinstance(src, str):
        return None
    if any(host in src for host in settings.KODIK_HOSTS):
        return src
    return None


def normalize_video_links(direct_links: dict[str, Any] | None) -> dict[str, list[dict[str, Any]]]:
    """
    Limpia la respuesta del resolvedor.

    - Descarta calidades sin enlaces.
    - Agrega "https:" a las URLs relativas al esquema ("//host/...").
    """
    if not direct_links:
        return {}

    qualities = {}
    for quality, links in direct_links.items():
        if not isinstance(links, list) or not links:
            continue
        normalized = []
        for link in links:
            if not isinstance(link, dict) or not isinstance(link.get("src"), str):
                continue
            src = link["src"]
            normalized.append({**link, "src": f"https:{src}" if src.startswith("//") else src})
        if normalized:
            qualities[str(quality)] = normalized
    return qualities


def best_quality(qualities: dict[str, Any]) -> str | None:
    """La etiqueta con el numero mas alto ("720" gana a "480p")."""
    def rank(label: str) -> int:
        match = _LEADING_DIGITS.match(label)
        return int(match.group(1)) if match else -1

    if not qualities:
        return None
    return max(qualities, key=rank)


class KodikIntegration:
    """
    Convierte los datos de un episodio en enlaces directos por traduccion.

    Un reproductor que falla se registra en el log y se omite: un equipo de
    traduccion caido no debe dejar al usuario sin los demas.
    """

    def __init__(self, resolver: VideoLinkResolver | None = None, delay: float | None = None):
        self.resolver = resolver or KodikLinkResolver()
        self.delay = settings.KODIK_REQUEST_DELAY_SECONDS if delay is None else delay

    async def get_video_from_episode(self, episode_data: Any) -> list[dict[str, Any]]:
        episode = episode_data.get("data") if isinstance(episode_data, dict) else None
        players = episode.get("players") if isinstance(episode, dict) else None
        if not players:
            logger.warning("Episode has no players")
            return []

        kodik_players = [
            player for player in players
            if isinstance(player, dict) and player.get("player") == "Kodik" and player.get("src")
        ]
        if not kodik_players:
            logger.warning("Episode has no Kodik players")
            return []

        results = []
        for index, player in enumerate(kodik_players):
            link = extract_kodik_link(player)
            if not link:
                continue

            # Pausa entre llamadas consecutivas al resolvedor
            if index and self.delay:
                await asyncio.sleep(self.delay)

            # Cualquier fallo (resolvedor caido, datos del reproductor mal
            # formados) descarta solo este reproductor.
            try:
                direct_links = await self.resolver.resolve(link)
                video_info = normalize_video_links(direct_links)
                if not video_info:
                    continue
                team = player.get("team") or {}
                results.append({
                    "team": team.get("name") or "Unknown",
                    "teamSlug": team.get("slug"),
                    "views": int(player.get("views") or 0),
                    "translation": (player.get("translation_type") or {}).get("label"),
                    "kodikLink": link,
                    "directLinks": video_info,
                    "quality": best_quality(video_info),
                })
            except VideoResolverError as exc:
                logger.warning("Kodik resolution failed for %s: %s", link, exc)
            except Exception as exc:
                logger.warning("Skipping malformed Kodik player %s: %r", link, exc)

        return sorted(results, key=lambda item: item["views"], reverse=True)


kodik_resolver = KodikLinkResolver()
kodik_integration = KodikIntegration(resolver=kodik_resolver)
