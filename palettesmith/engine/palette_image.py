"""
Palette images: the shared atlas canvases of one group page.

Textures land in a palette image only if their properties share the
page key. Pixels are sampled straight out of each texture's destination
pixels with numpy index arrays, so repeating UV ranges tile and margins
bleed the edge (clamp) or wrap around (repeat).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

import numpy as np

from palettesmith.config import Settings
from palettesmith.engine.placement import OmitReason, Placement
from palettesmith.exceptions import PalettizeError
from palettesmith.imaging import (
    bounding_size,
    convert_channels,
    find_hole,
    next_power_of_2,
    unlink_image,
    write_image,
)

if TYPE_CHECKING:
    from palettesmith.engine.group import TextureGroup

logger = logging.getLogger(__name__)


class PaletteImage:
    def __init__(self, group: TextureGroup, page: str, index: int, x_size: int, y_size: int):
        self.group = group
        self.page = page
        self.index = index
        self.x_size = x_size
        self.y_size = y_size
        self.placements: List[Placement] = []
        self.new_image = True
        self.generated_filename: Optional[str] = None

    def __repr__(self):
        return f"PaletteImage({self.basename!r}, {len(self.placements)} placements)"

    @property
    def basename(self) -> str:
        return f"{self.group.name}_palette_{self.page}_{self.index}"

    def filename(self, settings: Settings) -> Path:
        return settings.image_filename(self.group.get_dirname(), self.basename)

    def is_empty(self) -> bool:
        return not self.placements

    def place(self, placement: Placement) -> bool:
        """Pack the placement into the first free hole; False if there is none."""
        w, h = placement.packed_size()
        pos = find_hole((p.position for p in self.placements), self.x_size, self.y_size, w, h)
        if pos is None:
            return False
        placement.place_at(self, *pos)
        self.placements.append(placement)
        self.new_image = True
        return True

    def restore(self, placement: Placement) -> None:
        """Re-attach a placement whose position was read from a session."""
        placement.image = self
        self.placements.append(placement)

    def unplace(self, placement: Placement) -> None:
        if placement in self.placements:
            self.placements.remove(placement)
            self.new_image = True

    def check_solitary(self) -> None:
        """A lone texture is copied standalone instead of getting its own palette."""
        if len(self.placements) == 1:
            self.placements[0].omit_solitary()
        else:
            for placement in self.placements:
                placement.not_solitary()

    def is_solitary(self) -> bool:
        return len(self.placements) == 1

    def optimal_resize(self) -> None:
        """Shrink to the smallest power-of-two canvas holding every placement."""
        used_x, used_y = bounding_size([p.position for p in self.placements])
        x_size = min(self.x_size, next_power_of_2(max(used_x, 1)))
        y_size = min(self.y_size, next_power_of_2(max(used_y, 1)))
        if (x_size, y_size) != (self.x_size, self.y_size):
            logger.info(f"Resizing {self.basename} from {self.x_size}x{self.y_size} to {x_size}x{y_size}")
            self.x_size, self.y_size = x_size, y_size
            self.new_image = True
            for placement in self.placements:
                placement.mark_models_stale()

    def reset(self) -> None:
        for placement in list(self.placements):
            placement.force_replace()

    def remove_file(self, settings: Settings) -> None:
        if self.generated_filename:
            path = Path(self.generated_filename)
            unlink_image(path, settings.alpha_filename(path))
            self.generated_filename = None

    def update_image(self, settings: Settings, redo_all: bool) -> bool:
        """
        Write the palette image if anything changed since it was last written.

        Returns:
            True on success (including "nothing to do"), False on failure
        """
        try:
            if self.is_solitary():
                self.remove_file(settings)
                return True

            filename = self.filename(settings)
            fresh = (
                not self.new_image
                and not redo_all
                and self.generated_filename == str(filename)
                and filename.exists()
            )
            if fresh:
                logger.debug(f"{self.basename} is up to date")
                return True

            if self.generated_filename and self.generated_filename != str(filename):
                self.remove_file(settings)

            pixels = self._compose()
            write_image(pixels, filename, settings.alpha_filename(filename))
        except PalettizeError as e:
            logger.error(f"Failed to generate palette image {self.basename}: {e}")
            return False

        self.generated_filename = str(filename)
        self.new_image = False
        logger.info(f"Generated {filename} ({len(self.placements)} textures)")
        return True

    def _compose(self) -> np.ndarray:
        channels = max(p.texture.properties.num_channels for p in self.placements)
        canvas = np.zeros((self.y_size, self.x_size, channels), dtype=np.uint8)

        for placement in self.placements:
            if placement.omit_reason != OmitReason.NONE:
                continue
            region = _sample_region(placement)
            x, y, w, h = placement.position
            canvas[y:y + h, x:x + w, :] = convert_channels(region, channels)
        return canvas


def _sample_region(placement: Placement) -> np.ndarray:
    """Texture pixels covering the placement's UV range plus its margin."""
    pixels = placement.texture.get_dest_pixels()
    tex_h, tex_w = pixels.shape[0], pixels.shape[1]
    _, _, w, h = placement.position
    m = placement.placed_margin

    start_x = int(round(placement.uv_min[0] * tex_w))
    start_y = int(round((1.0 - placement.uv_max[1]) * tex_h))
    xs = start_x + np.arange(w) - m
    ys = start_y + np.arange(h) - m

    wrap_u, wrap_v = placement.wrap_modes()
    xs = xs % tex_w if wrap_u == 'repeat' else np.clip(xs, 0, tex_w - 1)
    ys = ys % tex_h if wrap_v == 'repeat' else np.clip(ys, 0, tex_h - 1)
    return pixels[ys[:, np.newaxis], xs[np.newaxis, :], :]
