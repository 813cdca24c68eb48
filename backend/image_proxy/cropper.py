"""
Image Cropper / Encoder

Turns raw upstream image bytes into the served JPEG:
- Cover images wider than 2:3 portrait are cropped to a vertical
  strip chosen from the largest face position
- Every other role keeps its geometry
- Output is always JPEG (quality 90 by default)
"""

import logging
from io import BytesIO
from typing import Optional

from PIL import Image, UnidentifiedImageError

from .errors import ImageDecodeError
from .face_detector import NO_FACE, FaceBox, FaceDetector
from .roles import ImageRole

logger = logging.getLogger(__name__)


def cover_width_for(height: int) -> int:
    """Width of a 2:3 portrait strip at the given height."""
    return height * 2 // 3


def compute_crop_offset(width: int, height: int, face: FaceBox = NO_FACE) -> Optional[int]:
    """
    Horizontal offset of the cover strip, or None when no crop is needed.

    Right-aligned by default. A face reaching the right half keeps the
    right alignment, a face starting in the left half aligns left, any
    other face centers the strip on the face midpoint.
    """
    cover_width = cover_width_for(height)
    if width <= cover_width:
        return None

    max_x = width - cover_width
    x = max_x

    if not face.is_empty:
        half = width // 2
        if face.right >= half:
            x = max_x
        elif face.left <= half:
            x = 0
        else:
            x = (face.left + face.right) // 2 - cover_width // 2

    # Defensive: well-formed boxes always land in range
    return min(max(x, 0), max_x)


def _to_rgb(img: Image.Image) -> Image.Image:
    if img.mode in ("RGBA", "LA", "P"):
        # White background for transparency
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.split()[3])
        return background
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


class ImageCropper:
    """Applies the role's crop policy and encodes the result as JPEG."""

    def __init__(self, face_detector: FaceDetector, jpeg_quality: int = 90):
        self.face_detector = face_detector
        self.jpeg_quality = jpeg_quality

    def transform(self, data: bytes, role: ImageRole) -> bytes:
        """
        Crop (Cover role only) and re-encode an image.

        Raises:
            ImageDecodeError: if the bytes are not a decodable image.
        """
        try:
            img = Image.open(BytesIO(data))
            img.load()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
            raise ImageDecodeError(f"Cannot decode image ({len(data)} bytes): {e}") from e

        with img:
            width, height = img.size
            cover_width = cover_width_for(height)
            output_img = img

            # Detection only runs when a crop is actually needed
            if role.is_cropped and width > cover_width:
                face = self.face_detector.detect_largest_face(data)
                x = compute_crop_offset(width, height, face)
                logger.info(f"[Cropper] Cut {width}x{height} --> x: {x}, face: {face}")
                output_img = img.crop((x, 0, x + cover_width, height))
            else:
                logger.debug(f"[Cropper] No need to cut {width}x{height} ({role.value})")

            output = BytesIO()
            _to_rgb(output_img).save(output, format="JPEG", quality=self.jpeg_quality)
            return output.getvalue()
