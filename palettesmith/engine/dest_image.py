"""
Standalone copies of textures that are not packed into a palette image.

A texture gets a destination image for every placement that is omitted
(explicitly, for size, for repeating, or because it was alone on its
palette image). Several placements may map onto the same file; they
share one DestImage.

From one run to the next the set of destination files is diffed by
canonical filename so that only what changed is deleted or rewritten.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional

from palettesmith.config import Settings
from palettesmith.imaging import unlink_image, write_image

if TYPE_CHECKING:
    from palettesmith.engine.placement import Placement
    from palettesmith.engine.texture import TextureRecord

logger = logging.getLogger(__name__)


@dataclass
class DestImage:
    """One generated standalone file and the signature of what went into it."""
    filename: str
    signature: str
    alpha_filename: Optional[str] = None

    @classmethod
    def from_placement(cls, placement: Placement, settings: Settings) -> "DestImage":
        texture = placement.texture
        path = settings.image_filename(placement.group.get_dirname(), texture.name).resolve()
        alpha = settings.alpha_filename(path)
        return cls(
            filename=str(path),
            signature=texture.content_signature(settings),
            alpha_filename=str(alpha) if alpha else None,
        )

    def exists(self) -> bool:
        return Path(self.filename).exists()

    def copy(self, texture: TextureRecord) -> None:
        """Write the texture, resized and channel-adjusted, to this file."""
        write_image(
            texture.get_dest_pixels(),
            Path(self.filename),
            Path(self.alpha_filename) if self.alpha_filename else None,
        )
        logger.info(f"Copying {texture.name} to {self.filename}")

    def unlink(self) -> None:
        unlink_image(Path(self.filename), Path(self.alpha_filename) if self.alpha_filename else None)


@dataclass
class DestinationDiff:
    delete: List[DestImage] = field(default_factory=list)
    copy: List[DestImage] = field(default_factory=list)
    restale: List[DestImage] = field(default_factory=list)
    unchanged: List[DestImage] = field(default_factory=list)


def diff_destinations(
    new: Dict[str, DestImage],
    old: Dict[str, DestImage],
    redo_all: bool = False,
) -> DestinationDiff:
    """
    Compare the required destination set against the previous session's.

    Both sets are walked in filename order in lock-step:
    - only in old: delete
    - only in new: copy
    - in both: restale if the signature changed, else unchanged

    With redo_all, everything old is deleted and everything new copied.

    Returns:
        DestinationDiff whose copy/restale/unchanged lists hold descriptors
        from `new` and whose delete list holds descriptors from `old`
    """
    diff = DestinationDiff()
    if redo_all:
        diff.delete = [old[k] for k in sorted(old)]
        diff.copy = [new[k] for k in sorted(new)]
        return diff

    new_keys = sorted(new)
    old_keys = sorted(old)
    ni = oi = 0
    while ni < len(new_keys) and oi < len(old_keys):
        nk, ok = new_keys[ni], old_keys[oi]
        if nk < ok:
            diff.copy.append(new[nk])
            ni += 1
        elif ok < nk:
            diff.delete.append(old[ok])
            oi += 1
        else:
            if new[nk].signature != old[ok].signature:
                diff.restale.append(new[nk])
            else:
                diff.unchanged.append(new[nk])
            ni += 1
            oi += 1

    diff.copy.extend(new[k] for k in new_keys[ni:])
    diff.delete.extend(old[k] for k in old_keys[oi:])
    return diff
