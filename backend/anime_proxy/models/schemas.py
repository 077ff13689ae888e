"""
Modulo de esquemas (schemas) de datos de la API.

La mayoria de las respuestas del proxy son JSON del upstream reenviado
(con URLs de imagen reescritas), y su estructura la define el upstream, no
nosotros. Aqui solo definimos los formatos PROPIOS del proxy:

    - ErrorResponse: formato uniforme de todos los errores.
    - KodikEpisodeResponse: resultado de /api/kodik/episode.

Los nombres de campo de los enlaces Kodik estan en camelCase en el JSON
(teamSlug, kodikLink, directLinks) porque asi los consumen los frontends
existentes. En Python usamos snake_case y Pydantic traduce con `alias`.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    """
    Schema estandar para respuestas de error.

    Atributos:
        error (str): Tipo de error estable (ej: "rate_limited", "timeout").
            El frontend debe comparar contra este campo, no contra el mensaje.
        message (str): Mensaje legible.
        details: Diagnostico adicional cuando es seguro exponerlo
            (cuerpo de error del upstream, limites del rate limiter...).
    """
    error: str
    message: str
    details: Any = None


class VideoSource(BaseModel):
    """Un candidato de stream para una calidad concreta."""
    model_config = ConfigDict(extra="allow")

    src: str
    type: str | None = None


class KodikTranslation(BaseModel):
    """
    Enlaces directos de un reproductor Kodik (una traduccion / un equipo).

    Atributos:
        team (str): Nombre del equipo de traduccion.
        team_slug (str | None): Identificador URL del equipo.
        views (int): Visualizaciones; se usa para ordenar los resultados.
        translation (str | None): Tipo de traduccion (doblaje, subtitulos...).
        kodik_link (str): Enlace al reproductor Kodik original.
        direct_links (dict): Calidad ("360", "720"...) -> lista de streams.
        quality (str | None): La mejor calidad disponible.
    """
    model_config = ConfigDict(populate_by_name=True)

    team: str
    team_slug: str | None = Field(default=None, alias="teamSlug")
    views: int = 0
    translation: str | None = None
    kodik_link: str = Field(alias="kodikLink")
    direct_links: dict[str, list[VideoSource]] = Field(alias="directLinks")
    quality: str | None = None


class KodikEpisodeResponse(BaseModel):
    episode_id: str
    kodik_links: list[KodikTranslation]
    total_links: int


class HealthResponse(BaseModel):
    status: str
