"""
Image roles.

The role selects the transform policy: ``Cover`` images get the
face-aware portrait crop, every other role is passed through.
"""

from enum import Enum
from typing import Optional


class ImageRole(str, Enum):
    """Semantic image type of a proxy request"""
    COVER = "Cover"
    BACKDROP = "Backdrop"
    THUMB = "Thumb"
    BANNER = "Banner"
    LOGO = "Logo"

    @property
    def is_cropped(self) -> bool:
        return self is ImageRole.COVER

    @classmethod
    def parse(cls, value: Optional[str], default: "ImageRole" = None) -> "ImageRole":
        """
        Parse a role name leniently.

        Case-insensitive; ``Primary`` is accepted as an alias of ``Cover``.
        Missing or unknown values fall back to ``default`` (Backdrop).
        """
        if default is None:
            default = cls.BACKDROP
        if isinstance(value, cls):
            return value
        if not value or not value.strip():
            return default

        name = value.strip().lower()
        if name in _ALIASES:
            return _ALIASES[name]
        for role in cls:
            if role.value.lower() == name:
                return role
        return default


_ALIASES = {
    "primary": ImageRole.COVER,
    "poster": ImageRole.COVER,
}
