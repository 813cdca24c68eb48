"""
FastAPI application for the image proxy.

Run with: uvicorn image_proxy.app:app
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from .routes_fastapi import router
from .service import open_image_proxy_service
from .settings import ImageProxySettings

logger = logging.getLogger(__name__)


def create_app(settings: Optional[ImageProxySettings] = None) -> FastAPI:
    settings = settings or ImageProxySettings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Own the HTTP client and face detector for the app's lifetime."""
        async with open_image_proxy_service(settings) as service:
            app.state.image_proxy = service
            logger.info(f"[ImageProxy] Started, cache directory: {settings.cache_dir}")
            yield
        logger.info("[ImageProxy] Stopped")

    app = FastAPI(title="Image Proxy", lifespan=lifespan)
    app.include_router(router)
    return app


app = create_app()
