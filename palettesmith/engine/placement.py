"""
Placement of one texture within one texture group.

A placement exists for every (texture, group) pair the texture is
assigned to. It tracks the pixel size the group needs, the margin, why
(if at all) the texture is left out of the shared palette images, and
where in a palette image it was packed.
"""

from __future__ import annotations

import logging
import math
from enum import Enum
from typing import TYPE_CHECKING, Optional, Set, Tuple

from palettesmith.config import Settings

if TYPE_CHECKING:
    from palettesmith.engine.dest_image import DestImage
    from palettesmith.engine.group import TextureGroup
    from palettesmith.engine.palette_image import PaletteImage
    from palettesmith.engine.reference import TextureReference
    from palettesmith.engine.texture import TextureRecord

logger = logging.getLogger(__name__)

UVPair = Tuple[float, float]


class OmitReason(str, Enum):
    NONE = 'none'            # packed into a palette image
    WORKING = 'working'      # waiting to be packed
    OMITTED = 'omitted'      # rules file said "omit"
    SIZE = 'size'            # too big for a palette image
    SOLITARY = 'solitary'    # alone on its palette image
    REPEATS = 'repeats'      # UVs repeat past the threshold
    UNKNOWN = 'unknown'      # texture size could not be determined


class Placement:
    """
    One texture's membership in one group.

    Created by TextureGroup.prepare() and destroyed via destroy() when the
    texture leaves the group; force_replace() only drops the packed spot.
    """

    def __init__(self, texture: TextureRecord, group: TextureGroup):
        self.texture = texture
        self.group = group
        self.references: Set[TextureReference] = set()

        self.size_known = False
        self.x_size = 0
        self.y_size = 0
        self.margin = 0
        self.uv_min: UVPair = (0.0, 0.0)
        self.uv_max: UVPair = (1.0, 1.0)
        self.omit_reason = OmitReason.WORKING

        self.image: Optional[PaletteImage] = None
        self.position: Optional[Tuple[int, int, int, int]] = None
        self.placed_margin = 0
        self.dest: Optional[DestImage] = None

    def __repr__(self):
        return f"Placement({self.texture.name!r} in {self.group.name!r}, {self.omit_reason.value})"

    @property
    def is_placed(self) -> bool:
        return self.image is not None

    def add_reference(self, reference: TextureReference) -> None:
        self.references.add(reference)

    def remove_reference(self, reference: TextureReference) -> None:
        self.references.discard(reference)

    def mark_models_stale(self) -> None:
        for reference in self.references:
            reference.mark_model_stale()

    def packed_size(self) -> Tuple[int, int]:
        """Size of the rect this placement needs in a palette image, margin included."""
        return self.x_size + 2 * self.margin, self.y_size + 2 * self.margin

    def wrap_modes(self) -> Tuple[str, str]:
        """Clamp only if every reference clamps on that axis."""
        refs = self.references
        wrap_u = 'clamp' if refs and all(r.wrap_u == 'clamp' for r in refs) else 'repeat'
        wrap_v = 'clamp' if refs and all(r.wrap_v == 'clamp' for r in refs) else 'repeat'
        return wrap_u, wrap_v

    def uv_area(self) -> float:
        return (self.uv_max[0] - self.uv_min[0]) * (self.uv_max[1] - self.uv_min[1])

    def determine_size(self, settings: Settings) -> None:
        """
        Compute the size this group needs from the UV range of every
        reference, and decide whether the texture can be packed at all.
        """
        texture = self.texture
        if not texture.size_known:
            self.force_replace()
            self.omit_reason = OmitReason.UNKNOWN
            return

        self.uv_min, self.uv_max = self._union_uv_range(settings)
        x_size = max(1, int(round(texture.x_size * (self.uv_max[0] - self.uv_min[0]))))
        y_size = max(1, int(round(texture.y_size * (self.uv_max[1] - self.uv_min[1]))))
        self.size_known = True
        self.x_size, self.y_size = x_size, y_size
        self.margin = texture.request.margin

        if self.omit_reason == OmitReason.UNKNOWN:
            self.omit_reason = OmitReason.WORKING

        packed_x, packed_y = self.packed_size()
        if texture.request.omit:
            self._omit(OmitReason.OMITTED)
        elif self.uv_area() * 100.0 > texture.request.repeat_threshold:
            self._omit(OmitReason.REPEATS)
        elif packed_x > settings.pal_x_size or packed_y > settings.pal_y_size:
            self._omit(OmitReason.SIZE)
        elif self.omit_reason in (OmitReason.OMITTED, OmitReason.REPEATS, OmitReason.SIZE):
            self.force_replace()
            self.omit_reason = OmitReason.WORKING
        elif self.is_placed and self.position[2:] != (packed_x, packed_y):
            # Still packable, but no longer fits the spot it had.
            self.force_replace()

    def _omit(self, reason: OmitReason) -> None:
        if self.omit_reason != reason:
            logger.debug(f"{self.texture.name} omitted from {self.group.name}: {reason.value}")
            self.mark_models_stale()
        self.force_replace()
        self.omit_reason = reason

    def _union_uv_range(self, settings: Settings) -> Tuple[UVPair, UVPair]:
        """Smallest UV rectangle covering every reference; (0,0)-(1,1) if any lacks UVs."""
        ranges = [(r.uv_min, r.uv_max) for r in self.references if r.has_uvs]
        if not ranges or len(ranges) != len(self.references):
            ranges.append(((0.0, 0.0), (1.0, 1.0)))

        min_u = min(lo[0] for lo, _ in ranges)
        min_v = min(lo[1] for lo, _ in ranges)
        max_u = max(hi[0] for _, hi in ranges)
        max_v = max(hi[1] for _, hi in ranges)

        if settings.round_uvs:
            unit, fuzz = settings.round_unit, settings.round_fuzz
            min_u = math.floor((min_u + fuzz) / unit) * unit
            min_v = math.floor((min_v + fuzz) / unit) * unit
            max_u = max(min_u + unit, math.ceil((max_u - fuzz) / unit) * unit)
            max_v = max(min_v + unit, math.ceil((max_v - fuzz) / unit) * unit)

        # A degenerate axis still needs one texel of extent.
        max_u = max(max_u, min_u + 1.0 / max(1, self.texture.x_size))
        max_v = max(max_v, min_v + 1.0 / max(1, self.texture.y_size))

        return (min_u, min_v), (max_u, max_v)

    def place_at(self, image: PaletteImage, x: int, y: int) -> None:
        packed_x, packed_y = self.packed_size()
        self.image = image
        self.position = (x, y, packed_x, packed_y)
        self.placed_margin = self.margin
        self.omit_reason = OmitReason.NONE
        self.mark_models_stale()

    def force_replace(self) -> None:
        """Drop the packed spot so the group packs this placement again."""
        if self.image is not None:
            self.image.unplace(self)
            self.image = None
            self.position = None
            self.mark_models_stale()
        if self.omit_reason in (OmitReason.NONE, OmitReason.SOLITARY):
            self.omit_reason = OmitReason.WORKING

    def omit_solitary(self) -> None:
        if self.omit_reason == OmitReason.NONE:
            self.omit_reason = OmitReason.SOLITARY
            self.mark_models_stale()

    def not_solitary(self) -> None:
        if self.omit_reason == OmitReason.SOLITARY:
            self.omit_reason = OmitReason.NONE
            self.mark_models_stale()

    def destroy(self) -> None:
        """Remove the placement from its image, its group and its references."""
        self.force_replace()
        self.group.remove_placement(self)
        for reference in list(self.references):
            reference.clear_placement()

    def uv_transform(self) -> Tuple[UVPair, UVPair]:
        """
        (offset, scale) mapping original UVs into the palette image.

        V runs bottom-up while image rows run top-down, so the top of the
        packed rect corresponds to uv_max[1].
        """
        x, y, _, _ = self.position
        img_x, img_y = self.image.x_size, self.image.y_size
        m = self.placed_margin
        du = self.uv_max[0] - self.uv_min[0]
        dv = self.uv_max[1] - self.uv_min[1]

        scale_u = self.x_size / (du * img_x)
        scale_v = self.y_size / (dv * img_y)
        offset_u = (x + m) / img_x - self.uv_min[0] * scale_u
        bottom_v = 1.0 - (y + m + self.y_size) / img_y
        offset_v = bottom_v - self.uv_min[1] * scale_v
        return (offset_u, offset_v), (scale_u, scale_v)
