"""
Local wrapper URLs.

The proxy publishes images under its own endpoint:

    <base_url>/api/image-proxy/Image?url=<original url>&type=<role>

When such a URL comes back as a request it is unwrapped to the
original URL instead of being fetched from ourselves.
"""

from typing import Optional, Tuple
from urllib.parse import parse_qs, quote_plus, urlparse

from .roles import ImageRole
from .settings import LOCAL_IMAGE_PATH


def is_web_url(url: Optional[str]) -> bool:
    """True for absolute http(s) URLs with a host."""
    if not url:
        return False
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_local_url(url: Optional[str], route_path: str = LOCAL_IMAGE_PATH) -> bool:
    return bool(url) and route_path.strip("/").lower() in url.lower()


def build_local_url(
    url: str,
    role: ImageRole = ImageRole.BACKDROP,
    base_url: str = "",
    route_path: str = LOCAL_IMAGE_PATH,
) -> str:
    """
    Wrap an original URL into a proxy URL.

    Blank and already-local URLs are returned unchanged.
    """
    if not url or not url.strip():
        return url
    if is_local_url(url, route_path):
        return url
    return f"{base_url.rstrip('/')}{route_path}?url={quote_plus(url, safe='')}&type={role.value}"


def unwrap_local_url(
    url: str,
    role: ImageRole = ImageRole.BACKDROP,
    route_path: str = LOCAL_IMAGE_PATH,
) -> Tuple[str, ImageRole]:
    """
    Resolve a proxy URL back to its (original url, role).

    Anything that is not a well-formed local URL is returned as given,
    together with the given role.
    """
    if not is_local_url(url, route_path):
        return url, role

    try:
        params = parse_qs(urlparse(url).query)
    except ValueError:
        return url, role

    inner = params.get("url", [None])[0]
    if not is_web_url(inner):
        return url, role

    type_value = params.get("type", [None])[0]
    return inner, ImageRole.parse(type_value, default=role)
