"""
Image Proxy API Routes

Provides endpoints for:
- Serving proxied (and cover-cropped) images
- Cache statistics
- Health check
"""

import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from .errors import ImageDecodeError, InvalidImageRequest
from .roles import ImageRole
from .service import ImageProxyService
from .settings import LOCAL_IMAGE_PATH, ROUTER_PREFIX

logger = logging.getLogger(__name__)

# ============================================
# Response Models
# ============================================


class CacheStats(BaseModel):
    """Disk cache statistics."""
    total_entries: int
    total_size_bytes: int
    total_size_mb: float
    cache_ttl_hours: int


class CacheStatsResponse(BaseModel):
    success: bool
    stats: CacheStats


# ============================================
# Router
# ============================================

router = APIRouter(prefix=ROUTER_PREFIX, tags=["Image Proxy"])


def get_image_proxy_service(request: Request) -> ImageProxyService:
    """Service created by the application lifespan."""
    return request.app.state.image_proxy


# ============================================
# Endpoints
# ============================================

@router.get(LOCAL_IMAGE_PATH[len(ROUTER_PREFIX):])
async def get_image(
    url: Optional[str] = Query(None, description="Original URL of the image"),
    image_type: Optional[str] = Query(None, alias="type", description="Image role: Cover, Backdrop, ..."),
    service: ImageProxyService = Depends(get_image_proxy_service),
):
    """
    Serve an image through the proxy cache.

    This endpoint:
    1. Unwraps URLs that already point at this proxy
    2. Checks the disk cache
    3. If missed, fetches from the original URL (with retries)
    4. Crops Cover images to a 2:3 strip around the largest face
    5. Returns the image as JPEG

    Example:
        GET /api/image-proxy/Image?url=https://example.com/cover.jpg&type=Cover
    """
    role = ImageRole.parse(image_type)

    try:
        result = await service.get_image_response(url, role)
    except InvalidImageRequest as e:
        raise HTTPException(status_code=400, detail=str(e))
    except httpx.TimeoutException:
        logger.error(f"[ImageProxy] Timeout: {(url or '')[:60]}...")
        raise HTTPException(status_code=504, detail="Image fetch timeout")
    except httpx.TransportError as e:
        logger.error(f"[ImageProxy] Fetch error: {e!r}")
        raise HTTPException(status_code=502, detail=f"Failed to fetch image: {str(e)}")
    except ImageDecodeError as e:
        logger.error(f"[ImageProxy] Decode error: {e}")
        raise HTTPException(status_code=502, detail="Upstream returned an undecodable image")

    headers = dict(result.headers)
    if result.is_success:
        headers["Cache-Control"] = "public, max-age=86400"  # Browser cache 24h

    return Response(
        content=result.content,
        status_code=result.status_code,
        media_type=result.media_type,
        headers=headers,
    )


@router.get("/stats", response_model=CacheStatsResponse)
async def get_cache_stats(service: ImageProxyService = Depends(get_image_proxy_service)):
    """Get cache statistics."""
    return CacheStatsResponse(success=True, stats=CacheStats(**service.cache.get_stats()))


@router.get("/health")
async def health_check(service: ImageProxyService = Depends(get_image_proxy_service)):
    """Health check endpoint."""
    return JSONResponse(content={
        "status": "healthy",
        "service": "image-proxy",
        "cache_stats": service.cache.get_stats(),
    })
