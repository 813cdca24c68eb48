"""
Image Proxy Service

Serves an image by original URL and role:

1. Unwrap local proxy URLs to the original URL and role
2. Serve from the disk cache (raw bytes, transformed per request)
3. On a miss, fetch through the resilient transport
4. Persist the raw bytes
5. Crop/encode and respond with image/jpeg

Upstream error statuses are forwarded untouched. Cache failures never
fail the request.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, Optional

from .cache_manager import DiskImageCache
from .cropper import ImageCropper
from .errors import InvalidImageRequest
from .face_detector import FaceDetector, HaarCascadeFaceDetector
from .local_url import build_local_url, unwrap_local_url
from .roles import ImageRole
from .settings import ImageProxySettings
from .transport import ResilientTransport

logger = logging.getLogger(__name__)

JPEG_CONTENT_TYPE = "image/jpeg"


@dataclass
class ProxyResponse:
    """Response envelope handed to the HTTP layer."""
    status_code: int
    content: bytes
    media_type: str
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


def create_image_response(data: bytes, cache_status: str, content_type: str = JPEG_CONTENT_TYPE) -> ProxyResponse:
    return ProxyResponse(
        status_code=200,
        content=data,
        media_type=content_type,
        headers={"X-Cache": cache_status},
    )


class ImageProxyService:
    """
    Orchestrates cache, transport and cropper for one request at a time.

    Holds no request-scoped state, so one instance serves all
    concurrent requests.
    """

    def __init__(
        self,
        settings: ImageProxySettings,
        transport: ResilientTransport,
        cache: DiskImageCache,
        cropper: ImageCropper,
    ):
        self.settings = settings
        self.transport = transport
        self.cache = cache
        self.cropper = cropper

    def get_local_url(
        self,
        url: str,
        role: ImageRole = ImageRole.BACKDROP,
        with_base_url: bool = True,
    ) -> str:
        """Build the proxy URL that serves ``url`` with ``role``."""
        base_url = self.settings.base_url if with_base_url else ""
        return build_local_url(url, role, base_url=base_url)

    async def get_image_response(self, uri: Optional[str], role: ImageRole = ImageRole.BACKDROP) -> ProxyResponse:
        """
        Get the served image for a URL.

        Raises:
            InvalidImageRequest: blank URL.
            httpx.TransportError: upstream unreachable after retries.
            ImageDecodeError: upstream bytes are not an image.
        """
        if uri is None or not uri.strip():
            raise InvalidImageRequest("uri can not be null or blank")

        url, role = unwrap_local_url(uri.strip(), role)
        logger.info(f"[ImageProxy] Request: {url[:80]} ({role.value})")

        key = self.cache.key_for(url)

        cached = await self.cache.read(key)
        if cached is not None:
            logger.debug(f"[ImageProxy] Cache hit: {url[:60]}...")
            return create_image_response(await self._transform(cached, role), "HIT")

        logger.info(f"[ImageProxy] Fetching: {url[:80]}...")
        fetched = await self.transport.fetch(url)
        if not fetched.is_success:
            logger.warning(f"[ImageProxy] Upstream returned {fetched.status_code}: {url[:60]}...")
            return ProxyResponse(
                status_code=fetched.status_code,
                content=fetched.content,
                media_type=fetched.content_type or "application/octet-stream",
            )

        if self.cache.path_for(key) is None:
            # Unsafe key: served like a miss, never persisted
            logger.warning(f"[ImageProxy] Not caching unsafe key for: {url[:60]}...")
        elif not await self.cache.write(key, fetched.content):
            # Serve the raw upstream image rather than block on caching
            logger.error(f"[ImageProxy] Save image cache error, serving raw: {url[:60]}...")
            return create_image_response(
                fetched.content,
                "MISS",
                content_type=fetched.content_type or "application/octet-stream",
            )

        return create_image_response(await self._transform(fetched.content, role), "MISS")

    async def _transform(self, data: bytes, role: ImageRole) -> bytes:
        # Decoding, detection and encoding are CPU bound
        return await asyncio.to_thread(self.cropper.transform, data, role)


@asynccontextmanager
async def open_image_proxy_service(
    settings: ImageProxySettings,
    transport: Optional[ResilientTransport] = None,
    face_detector: Optional[FaceDetector] = None,
) -> AsyncIterator[ImageProxyService]:
    """
    Create a service that owns its HTTP client and face detector.

    Both are released when the context exits, on every path.
    Passed-in components are used but not closed.
    """
    owned_transport = transport is None
    owned_detector = face_detector is None

    if owned_transport:
        transport = ResilientTransport.from_settings(settings)
    try:
        if owned_detector:
            face_detector = HaarCascadeFaceDetector()
        try:
            cache = DiskImageCache(
                cache_dir=settings.cache_dir,
                ttl_seconds=settings.cache_ttl_seconds,
                max_key_length=settings.max_key_length,
            )
            cropper = ImageCropper(face_detector, jpeg_quality=settings.jpeg_quality)
            yield ImageProxyService(settings, transport, cache, cropper)
        finally:
            if owned_detector:
                face_detector.close()
    finally:
        if owned_transport:
            await transport.aclose()
