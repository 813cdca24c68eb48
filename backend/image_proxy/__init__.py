"""
Image Proxy Module

Serves remote images through a local disk cache, cropping cover
images around the largest detected face.

Features:
- File-based caching with a 24 hour freshness window
- Upstream fetches with exponential backoff retries
- Face-aware 2:3 cover cropping, JPEG re-encoding
"""

from .routes_fastapi import router
from .cache_manager import DiskImageCache
from .roles import ImageRole
from .service import ImageProxyService, ProxyResponse, open_image_proxy_service
from .settings import ImageProxySettings

__all__ = [
    "router",
    "DiskImageCache",
    "ImageRole",
    "ImageProxyService",
    "ProxyResponse",
    "open_image_proxy_service",
    "ImageProxySettings",
]
