"""A single use of a texture by a model document entry."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Optional, Tuple

from palettesmith.engine.placement import OmitReason, Placement
from palettesmith.schema.model_document import AtlasMapping, TextureEntry

if TYPE_CHECKING:
    from palettesmith.engine.model import ModelRecord
    from palettesmith.engine.source_image import SourceImage
    from palettesmith.engine.texture import TextureRecord

logger = logging.getLogger(__name__)

UVPair = Tuple[float, float]


class TextureReference:
    def __init__(
        self,
        model: ModelRecord,
        entry_id: str,
        texture: TextureRecord,
        source: SourceImage,
        uv_min: Optional[UVPair] = None,
        uv_max: Optional[UVPair] = None,
        wrap_u: str = 'repeat',
        wrap_v: str = 'repeat',
    ):
        self.model = model
        self.entry_id = entry_id
        self.texture = texture
        self.source = source
        self.uv_min = uv_min
        self.uv_max = uv_max
        self.wrap_u = wrap_u
        self.wrap_v = wrap_v
        self.placement: Optional[Placement] = None

    def __repr__(self):
        return f"TextureReference({self.model.name!r}:{self.entry_id!r} -> {self.texture.name!r})"

    @property
    def has_uvs(self) -> bool:
        return self.uv_min is not None

    def set_placement(self, placement: Placement) -> None:
        if placement is self.placement:
            return
        if self.placement is not None:
            self.placement.remove_reference(self)
        self.placement = placement
        placement.add_reference(self)
        self.mark_model_stale()

    def clear_placement(self) -> None:
        if self.placement is not None:
            self.placement.remove_reference(self)
            self.placement = None
            self.mark_model_stale()

    def release(self) -> None:
        """Detach from placement and source before the reference is dropped."""
        self.clear_placement()
        self.source.decrement_model_count()

    def mark_model_stale(self) -> None:
        self.model.is_stale = True

    def atlas_mapping(self, out_dir: str) -> Optional[AtlasMapping]:
        """Where this entry's pixels live after the run, relative to out_dir."""
        placement = self.placement
        if placement is None:
            return None

        if placement.omit_reason == OmitReason.NONE and placement.is_placed:
            image = placement.image.generated_filename
            if image is None:
                logger.warning(f"{placement.image.basename} has not been generated yet")
                return None
            offset, scale = placement.uv_transform()
            return AtlasMapping(
                image=os.path.relpath(image, out_dir),
                uv_offset=list(offset),
                uv_scale=list(scale),
            )

        if placement.dest is None:
            return None
        return AtlasMapping(image=os.path.relpath(placement.dest.filename, out_dir), omitted=True)

    def update_entry(self, entry: TextureEntry, out_dir: str) -> None:
        entry.filename = os.path.relpath(self.source.filename, out_dir)
        if self.source.alpha_filename:
            entry.alpha_filename = os.path.relpath(self.source.alpha_filename, out_dir)
        entry.atlas = self.atlas_mapping(out_dir)
