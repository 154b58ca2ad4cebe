"""
Texture groups.

A group is a named bucket of textures that may share palette images.
Groups depend on other groups (a model requesting "forest" can also use
textures placed in whatever "forest" depends on); the dependency level
ranks groups from most specific (low) to most shared (high).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Set

from palettesmith.config import Settings
from palettesmith.engine.palette_image import PaletteImage
from palettesmith.engine.placement import OmitReason, Placement
from palettesmith.exceptions import WriteError

if TYPE_CHECKING:
    from palettesmith.engine.texture import TextureRecord

logger = logging.getLogger(__name__)


class TextureGroup:
    def __init__(self, name: str):
        self.name = name
        self.dirname: Optional[str] = None
        self.dependency_level = 1
        self.depends_on: Set[TextureGroup] = set()
        self.placements: Set[Placement] = set()
        self.images: Dict[str, List[PaletteImage]] = {}

    def __repr__(self):
        return f"TextureGroup({self.name!r}, level={self.dependency_level})"

    def get_dirname(self) -> str:
        return self.dirname or self.name

    def clear_depends(self) -> None:
        self.depends_on.clear()

    def add_depends(self, other: TextureGroup) -> None:
        if other is not self:
            self.depends_on.add(other)

    def set_dependency_level(self, level: int, _path: Optional[Set[TextureGroup]] = None) -> None:
        """
        Raise this group to at least `level`, and everything it depends on
        to at least one more. Groups already on the current path are
        skipped so dependency cycles terminate.
        """
        path = _path or set()
        if self in path or level <= self.dependency_level:
            return
        self.dependency_level = level
        path.add(self)
        for other in self.depends_on:
            other.set_dependency_level(level + 1, path)
        path.discard(self)

    def texture_count(self) -> int:
        return len(self.placements)

    def prepare(self, texture: TextureRecord) -> Placement:
        """Create the placement representing texture's membership in this group."""
        placement = Placement(texture, self)
        self.placements.add(placement)
        return placement

    def remove_placement(self, placement: Placement) -> None:
        self.placements.discard(placement)

    def all_images(self) -> Iterable[PaletteImage]:
        for page in sorted(self.images):
            yield from self.images[page]

    def place_all(self, settings: Settings) -> None:
        """Pack every placement still waiting for a spot, then settle solitaries."""
        waiting = [
            p for p in self.placements
            if p.omit_reason in (OmitReason.NONE, OmitReason.WORKING) and not p.is_placed
        ]
        # Largest first packs tighter.
        waiting.sort(key=lambda p: (-p.packed_size()[1], -p.packed_size()[0], p.texture.name))

        for placement in waiting:
            page = placement.texture.properties.page_key()
            images = self.images.setdefault(page, [])
            if any(image.place(placement) for image in images):
                continue

            index = max((image.index for image in images), default=0) + 1
            image = PaletteImage(self, page, index, settings.pal_x_size, settings.pal_y_size)
            images.append(image)
            if not image.place(placement):
                logger.error(f"{placement.texture.name} does not fit an empty palette in {self.name}")
                placement.omit_reason = OmitReason.SIZE

        for image in self.all_images():
            image.check_solitary()

    def reset_images(self) -> None:
        """Throw away the packing so every placement is laid out from scratch."""
        for image in list(self.all_images()):
            image.reset()

    def optimal_resize(self) -> None:
        for image in self.all_images():
            if not image.is_empty():
                image.optimal_resize()

    def update_images(self, settings: Settings, redo_all: bool) -> bool:
        """Write stale palette images and remove those left empty."""
        okflag = True
        for page, images in self.images.items():
            for image in list(images):
                if image.is_empty():
                    try:
                        image.remove_file(settings)
                    except WriteError as e:
                        logger.error(f"{e}")
                        okflag = False
                    images.remove(image)
                    continue
                if not image.update_image(settings, redo_all):
                    okflag = False
        self.images = {page: images for page, images in self.images.items() if images}
        return okflag

    def find_image(self, basename: str) -> Optional[PaletteImage]:
        return next((image for image in self.all_images() if image.basename == basename), None)


def close_groups(groups: Iterable[TextureGroup]) -> Set[TextureGroup]:
    """
    Transitive closure of groups over depends_on.

    Iterates to a fixed point with a visited set, so cycles in the
    dependency graph are harmless.
    """
    result: Set[TextureGroup] = set()
    pending = list(groups)
    while pending:
        group = pending.pop()
        if group in result:
            continue
        result.add(group)
        pending.extend(g for g in group.depends_on if g not in result)
    return result


def group_sort_key(group: TextureGroup):
    return group.name
