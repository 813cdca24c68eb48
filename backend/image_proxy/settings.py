"""
Image Proxy Settings

Explicit configuration passed to every image proxy component.
The hosting app builds one instance (usually via ``from_env``);
the components themselves never read the environment.
"""

import os
from dataclasses import dataclass


# Served by routes_fastapi; local wrapper URLs point here
ROUTER_PREFIX = "/api/image-proxy"
LOCAL_IMAGE_PATH = f"{ROUTER_PREFIX}/Image"


@dataclass(frozen=True)
class ImageProxySettings:
    """Configuration for the image proxy."""
    cache_dir: str = "./image_cache"
    base_url: str = ""                       # Public base URL of this server

    # Cache settings
    cache_ttl_seconds: int = 24 * 60 * 60    # 24 hours
    max_key_length: int = 256

    # Transport settings
    max_retries: int = 3
    backoff_base: float = 3.0                # Delay before retry n is base ** n
    request_timeout_seconds: float = 30.0
    user_agent: str = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"

    # Output settings
    jpeg_quality: int = 90

    @classmethod
    def from_env(cls) -> "ImageProxySettings":
        """Build settings from IMAGE_* environment variables."""
        return cls(
            cache_dir=os.getenv("IMAGE_CACHE_DIR", "./image_cache"),
            base_url=os.getenv("IMAGE_PROXY_BASE_URL", "").rstrip("/"),
            cache_ttl_seconds=int(os.getenv("IMAGE_CACHE_TTL_HOURS", "24")) * 3600,
            request_timeout_seconds=float(os.getenv("IMAGE_PROXY_TIMEOUT_SECONDS", "30")),
        )
