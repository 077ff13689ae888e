"""
Modulo de reescritura de URLs de imagenes.

El API de metadatos devuelve portadas con URLs absolutas del host de
imagenes, por ejemplo:

    "cover": {"default": "https://cover.imglib.info/uploads/anime/16133/cover/abc.jpg"}

Ese host bloquea peticiones que vienen de otros dominios (hot-link
protection), asi que el frontend no puede usar la URL directamente. Este
modulo recorre la respuesta JSON y cambia esas URLs por rutas de NUESTRO
proxy:

    "cover": {"default": "https://mi-proxy.com/api/proxy/uploads/anime/16133/cover/abc.jpg"}

Cuando el navegador pide esa URL, el proxy descarga la imagen con cabeceras
de navegador y se la entrega (ver services/upstream.py).

Propiedades importantes:
- Funcion PURA: no modifica el objeto de entrada, construye uno nuevo.
- Idempotente: una URL que ya contiene "/api/proxy/" no se vuelve a tocar.
- Fail-open: si una URL no coincide con ningun host conocido se deja
  como esta. El upstream puede empezar a usar CDNs nuevos y preferimos
  una imagen rota a romper la respuesta entera.
"""

from typing import Any

from anime_proxy.config import settings


def rewrite_url(url: Any, proxy_base: str, hosts: tuple[str, ...] | None = None) -> Any:
    """
    Convierte una URL del host de imagenes en una URL del proxy.

    Parametros:
        url: Valor a reescribir. Si no es string se devuelve sin cambios.
        proxy_base (str): URL base publica del proxy (ej: "https://mi-proxy.com").
        hosts (tuple[str, ...] | None): Variantes del host de imagenes.
            Por defecto settings.image_hosts.

    Retorna:
        La URL reescrita, o la original si no aplica.

    Ejemplos:
        >>> rewrite_url("https://cover.imglib.info/uploads/a.jpg", "http://p")
        'http://p/api/proxy/uploads/a.jpg'
        >>> rewrite_url("http://p/api/proxy/uploads/a.jpg", "http://p")
        'http://p/api/proxy/uploads/a.jpg'
    """
    if not url or not isinstance(url, str):
        return url

    if settings.PLACEHOLDER_MARKER in url or settings.PROXY_PREFIX in url:
        return url

    for host in hosts or settings.image_hosts:
        if host not in url:
            continue
        # Todo lo que viene despues de la PRIMERA aparicion del host
        path = url.split(host, 1)[1]
        if path:
            if path.startswith("/"):
                path = path[1:]
            return f"{proxy_base}{settings.PROXY_PREFIX}{path}"

    return url


def _looks_like_image_url(value: str, hosts: tuple[str, ...]) -> bool:
    # El ultimo elemento de `hosts` es la forma sin esquema, que tambien
    # cubre las variantes con http:// y https://
    return hosts[-1] in value or settings.UPLOADS_SEGMENT in value


def rewrite_image_urls(value: Any, proxy_base: str, hosts: tuple[str, ...] | None = None) -> Any:
    """
    Recorre recursivamente un valor JSON y reescribe las URLs de imagenes.

    Reglas para cada campo de un diccionario (en este orden):
        1. Clave "cover" con un diccionario como valor: cada miembro string
           se reescribe directamente; los demas miembros se recorren.
        2. String que contiene el host de imagenes o "uploads/": se reescribe.
        3. Diccionario o lista: se recorre recursivamente.
        4. Cualquier otro valor: se copia tal cual.

    Las listas se procesan elemento por elemento conservando el orden.
    Los escalares de primer nivel se devuelven sin cambios.
    """
    hosts = hosts or settings.image_hosts

    if isinstance(value, list):
        return [rewrite_image_urls(item, proxy_base, hosts) for item in value]

    if not isinstance(value, dict):
        return value

    result = {}
    for key, item in value.items():
        if key == "cover" and isinstance(item, dict):
            result[key] = {
                cover_key: (
                    rewrite_url(cover_value, proxy_base, hosts)
                    if isinstance(cover_value, str)
                    else rewrite_image_urls(cover_value, proxy_base, hosts)
                )
                for cover_key, cover_value in item.items()
            }
        elif isinstance(item, str) and _looks_like_image_url(item, hosts):
            result[key] = rewrite_url(item, proxy_base, hosts)
        elif isinstance(item, (dict, list)):
            result[key] = rewrite_image_urls(item, proxy_base, hosts)
        else:
            result[key] = item
    return result


def process_api_response(data: Any, proxy_base: str) -> Any:
    """Punto de entrada para respuestas del API: vacios pasan sin tocar."""
    if not data:
        return data
    return rewrite_image_urls(data, proxy_base)
