"""
Program parameters for a palettization run.

Settings are persisted in the session file, refined by the ``:`` commands
of the rules file and finally overridden by command-line options.
"""

import logging
from pathlib import Path
from typing import Optional

from PIL import Image
from pydantic import BaseModel, ConfigDict, Field

from palettesmith.exceptions import ConfigError

logger = logging.getLogger(__name__)


class Settings(BaseModel):
    """All parameters that shape texture assignment and image generation."""
    model_config = ConfigDict(extra='forbid', validate_assignment=True)

    map_dirname: str = Field("%g", description="Image directory under install_dir; %g expands to the group directory.")
    pal_x_size: int = Field(512, gt=0, description="Palette image width in pixels.")
    pal_y_size: int = Field(512, gt=0, description="Palette image height in pixels.")
    margin: int = Field(2, ge=0, description="Default margin around each packed texture.")
    repeat_threshold: float = Field(250.0, ge=0, description="UV coverage (percent) above which a texture is not packed.")
    force_power_2: bool = Field(True, description="Round scaled texture sizes to a power of two.")
    round_uvs: bool = Field(True, description="Round UV ranges outward before sizing.")
    round_unit: float = Field(0.1, gt=0)
    round_fuzz: float = Field(0.01, ge=0)
    image_type: Optional[str] = Field("png", description="Extension of generated color images.")
    alpha_type: Optional[str] = Field(None, description="Extension of separate alpha images, if any.")
    default_group: str = Field("default", description="Group for models not named in the rules file.")
    install_dir: str = Field(".", description="Root directory for generated images.")
    model_dir: Optional[str] = Field(None, description="Output directory for rewritten models; None rewrites in place.")

    def validate_image_types(self) -> None:
        """
        Make sure the configured output types can actually be written.

        Raises:
            ConfigError: If no color type is set or Pillow cannot save a type
        """
        if not self.image_type:
            raise ConfigError(
                "No valid output image file type available; cannot run. "
                "Use :imagetype in the rules file."
            )
        for ext in filter(None, (self.image_type, self.alpha_type)):
            if _pil_format(ext) is None:
                raise ConfigError(f"Unsupported image type: {ext}")

    def image_dir(self, group_dirname: str) -> Path:
        """Directory that receives the images generated for one group."""
        return Path(self.install_dir) / self.map_dirname.replace("%g", group_dirname)

    def image_filename(self, group_dirname: str, basename: str) -> Path:
        return self.image_dir(group_dirname) / f"{basename}.{self.image_type}"

    def alpha_filename(self, color_filename: Path) -> Optional[Path]:
        """Companion alpha file for a color file, when alpha is split out."""
        if not self.alpha_type:
            return None
        return color_filename.with_name(f"{color_filename.stem}_a.{self.alpha_type}")


def _pil_format(ext: str) -> Optional[str]:
    """Pillow format name for a file extension, or None if unknown/unwritable."""
    Image.init()
    fmt = Image.registered_extensions().get(f".{ext.lower().lstrip('.')}")
    if fmt is None or fmt not in Image.SAVE:
        return None
    return fmt
