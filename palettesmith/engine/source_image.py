"""One candidate source file (plus optional alpha file) for a texture."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Optional

from palettesmith.exceptions import ReadError
from palettesmith.imaging import ImageFile

if TYPE_CHECKING:
    from palettesmith.engine.texture import TextureRecord

logger = logging.getLogger(__name__)


def canonical_filename(filename: str) -> str:
    return os.path.normpath(os.path.abspath(filename))


def source_key(filename: str, alpha_filename: Optional[str] = None) -> str:
    return f"{canonical_filename(filename)}:{canonical_filename(alpha_filename) if alpha_filename else ''}"


class SourceImage:
    """
    Size and channel count are read lazily from the image header and
    cached until the file's modification time changes.
    """

    def __init__(self, texture: TextureRecord, filename: str, alpha_filename: Optional[str] = None):
        self.texture = texture
        self.filename = canonical_filename(filename)
        self.alpha_filename = canonical_filename(alpha_filename) if alpha_filename else None
        self.model_count = 0

        self.size_known = False
        self.x_size = 0
        self.y_size = 0
        self.num_channels = 0
        self.mtime: Optional[float] = None
        self.read_error = False

    def __repr__(self):
        return f"SourceImage({self.filename!r})"

    @property
    def key(self) -> str:
        return source_key(self.filename, self.alpha_filename)

    @property
    def image_file(self) -> ImageFile:
        return ImageFile(self.filename, self.alpha_filename)

    def exists(self) -> bool:
        return self.image_file.exists()

    def increment_model_count(self) -> None:
        self.model_count += 1

    def decrement_model_count(self) -> None:
        self.model_count = max(0, self.model_count - 1)

    def get_size(self) -> bool:
        """
        Make sure x_size, y_size and num_channels are known.

        Returns:
            True if the size is known, False if the image cannot be read
        """
        image_file = self.image_file
        mtime = image_file.mtime()
        if mtime is None:
            return False
        if self.size_known and mtime == self.mtime:
            return True

        try:
            self.x_size, self.y_size, self.num_channels = image_file.probe_size()
        except ReadError as e:
            logger.warning(f"{e}")
            self.size_known = False
            self.read_error = True
            return False

        self.size_known = True
        self.read_error = False
        self.mtime = mtime
        return True
