"""
Image Proxy Errors

Transport failures are not wrapped: the original httpx exception
from the last attempt reaches the caller.
"""


class ImageProxyError(Exception):
    """Base class for image proxy errors."""


class InvalidImageRequest(ImageProxyError, ValueError):
    """Request rejected before any network or disk access."""


class ImageDecodeError(ImageProxyError):
    """Image bytes could not be decoded for crop/encode."""
