"""
Texture records and group-cover assignment.

A TextureRecord is one logical texture, keyed by name. It knows every
source file that has been seen for it, every model that references it,
and holds one Placement per group it is assigned to.

Assignment picks a small set of groups such that every referencing
model can reach at least one of them (see assign_groups).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Iterable, Optional, Set

import numpy as np

from palettesmith.config import Settings
from palettesmith.engine.dest_image import DestImage, diff_destinations
from palettesmith.engine.group import TextureGroup, group_sort_key
from palettesmith.engine.placement import OmitReason, Placement
from palettesmith.engine.request import TextureRequest
from palettesmith.engine.source_image import SourceImage, source_key
from palettesmith.exceptions import AssignmentInvariantError, PalettizeError, ReadError
from palettesmith.imaging import convert_channels, is_grayscale, is_opaque, nearest_power_of_2, resize_pixels
from palettesmith.schema.properties import UNSPECIFIED, TextureProperties

if TYPE_CHECKING:
    from palettesmith.engine.model import ModelRecord

logger = logging.getLogger(__name__)


class TextureRecord:
    def __init__(self, name: str):
        self.name = name
        self.sources: Dict[str, SourceImage] = {}
        self.models: Set[ModelRecord] = set()

        self.explicitly_assigned_groups: Set[TextureGroup] = set()
        self.actual_assigned_groups: Set[TextureGroup] = set()
        self.placements: Dict[str, Placement] = {}

        self.properties = TextureProperties()
        self.request = TextureRequest()
        self.is_surprise = True

        self.size_known = False
        self.x_size = 0
        self.y_size = 0

        # Remembered across sessions so pixels need not be re-probed.
        self.ever_read_image = False
        self.forced_grayscale = False
        self.forced_unalpha = False

        self.dests: Dict[str, DestImage] = {}

        self._preferred_source: Optional[SourceImage] = None
        self._pre_rules_properties: Optional[TextureProperties] = None
        self._read_source_image = False
        self._source_pixels: Optional[np.ndarray] = None
        self._dest_pixels: Optional[np.ndarray] = None

    def __repr__(self):
        return f"TextureRecord({self.name!r})"

    # -- models -----------------------------------------------------------

    def note_model(self, model: ModelRecord) -> None:
        """Record that a model references this texture."""
        if not model.complete_groups:
            raise AssignmentInvariantError(f"{model.name} has no groups; build_cross_links first")
        self.models.add(model)

    def clear_models(self) -> None:
        self.models.clear()

    # -- group assignment -------------------------------------------------

    def assign_groups(self) -> None:
        """
        Assign the texture to the groups its referencing models need.

        Models already satisfied by an explicit assignment contribute the
        first (by name) explicit group they can reach. The rest are covered
        greedily: repeatedly take the group reachable by the most remaining
        models, preferring lower dependency level, then fewer other
        textures already in the group, then the lexicographically first name.
        """
        if not self.models:
            self._assign_to_groups(set())
            return

        definitely_in: Set[TextureGroup] = set()
        models = sorted(self.models, key=lambda m: m.name)

        if not self.explicitly_assigned_groups:
            needed = models
        else:
            needed = []
            for model in models:
                intersect = self.explicitly_assigned_groups & model.complete_groups
                if intersect:
                    definitely_in.add(min(intersect, key=group_sort_key))
                else:
                    needed.append(model)

        while needed:
            total: Set[TextureGroup] = set()
            for model in needed:
                total |= model.complete_groups
            if not total:
                raise AssignmentInvariantError(
                    f"No candidate groups for {self.name}; models were not cross-linked"
                )

            best = None
            best_count = 0
            for group in sorted(total, key=group_sort_key):
                count = sum(1 for model in needed if group in model.complete_groups)
                if best is None or _prefer(self, group, count, best, best_count):
                    best, best_count = group, count

            definitely_in.add(best)
            needed = [model for model in needed if best not in model.complete_groups]

        self._assign_to_groups(definitely_in)

    def _assign_to_groups(self, groups: Iterable[TextureGroup]) -> None:
        """
        Reconcile the placement map with a new group set, walking both in
        name order. Placements for groups kept keep their identity.
        """
        wanted = sorted(groups, key=group_sort_key)
        current = sorted(self.placements.items())
        new_placements: Dict[str, Placement] = {}

        gi = pi = 0
        while gi < len(wanted) and pi < len(current):
            group = wanted[gi]
            name, placement = current[pi]
            if group.name < name:
                new_placements[group.name] = group.prepare(self)
                gi += 1
            elif name < group.name:
                placement.destroy()
                pi += 1
            else:
                new_placements[name] = placement
                gi += 1
                pi += 1

        for group in wanted[gi:]:
            new_placements[group.name] = group.prepare(self)
        for _, placement in current[pi:]:
            placement.destroy()

        self.placements = new_placements
        self.actual_assigned_groups = set(wanted)

    def get_placement(self, group: TextureGroup) -> Optional[Placement]:
        return self.placements.get(group.name)

    def force_replace(self) -> None:
        """Re-pack the texture in every group without leaving any group."""
        for placement in self.placements.values():
            placement.force_replace()

    # -- sources ----------------------------------------------------------

    def get_source(self, filename: str, alpha_filename: Optional[str] = None) -> SourceImage:
        """Get-or-create the source record for a (filename, alpha_filename) pair."""
        key = source_key(filename, alpha_filename)
        source = self.sources.get(key)
        if source is not None:
            return source

        source = SourceImage(self, filename, alpha_filename)
        self.sources[key] = source
        self._preferred_source = None
        self._read_source_image = False
        self._source_pixels = None
        self._dest_pixels = None
        return source

    def get_preferred_source(self) -> Optional[SourceImage]:
        """
        Choose the source to read size and pixels from.

        Only sources referenced by some model are eligible, unless no
        source is referenced at all. Among readable eligible sources the
        largest wins, then the most recently modified. If none is
        readable, the first source by key stands in.
        """
        if self._preferred_source is not None:
            return self._preferred_source
        if not self.sources:
            return None

        ordered = [self.sources[k] for k in sorted(self.sources)]
        any_referenced = any(s.model_count > 0 for s in ordered)

        best = None
        best_area = 0
        for source in ordered:
            if any_referenced and source.model_count == 0:
                continue
            if not (source.exists() and source.get_size()):
                continue
            area = source.x_size * source.y_size
            if (
                best is None
                or area > best_area
                or (area == best_area and (source.mtime or 0) > (best.mtime or 0))
            ):
                best, best_area = source, area

        self._preferred_source = best or ordered[0]
        return self._preferred_source

    # -- rules pass ---------------------------------------------------------

    def pre_rules(self, settings: Settings) -> None:
        """Snapshot properties and reset per-run state before matching."""
        self._pre_rules_properties = self.properties.model_copy()

        source = self.get_preferred_source()
        if source is not None and source.get_size():
            self.properties = TextureProperties(num_channels=source.num_channels)

        self.request = TextureRequest.from_settings(settings)
        self.explicitly_assigned_groups = set()
        self.is_surprise = True

    def post_rules(self, settings: Settings) -> None:
        """
        Finalize size and properties after matching. If the properties
        differ from before, every placement is re-packed.
        """
        request = self.request
        source = self.get_preferred_source()
        if source is not None and source.get_size():
            self.size_known = True
            self.x_size, self.y_size = source.x_size, source.y_size
            self.properties.num_channels = source.num_channels

        if request.got_size:
            self.size_known = True
            self.x_size, self.y_size = request.x_size, request.y_size
        elif request.scale is not None and self.size_known:
            self.x_size = max(1, int(round(self.x_size * request.scale / 100.0)))
            self.y_size = max(1, int(round(self.y_size * request.scale / 100.0)))
            if settings.force_power_2:
                self.x_size = nearest_power_of_2(self.x_size)
                self.y_size = nearest_power_of_2(self.y_size)

        if request.num_channels is not None:
            self.properties.num_channels = request.num_channels
        else:
            if self.properties.num_channels in (3, 4):
                self._consider_grayscale()
            if self.properties.num_channels in (2, 4):
                self._consider_unalpha()

        if request.format != UNSPECIFIED:
            self.properties.format = request.format
        if request.minfilter != UNSPECIFIED:
            self.properties.minfilter = request.minfilter
        if request.magfilter != UNSPECIFIED:
            self.properties.magfilter = request.magfilter

        self.properties.fully_define()
        self._dest_pixels = None

        if self.properties != self._pre_rules_properties:
            logger.debug(f"{self.name} properties changed; re-placing")
            self.force_replace()

    def determine_placement_size(self, settings: Settings) -> None:
        for placement in self.placements.values():
            placement.determine_size(settings)

    # -- pixels -----------------------------------------------------------

    def read_source_image(self) -> Optional[np.ndarray]:
        """Decode the preferred source once per session."""
        if not self._read_source_image:
            self._read_source_image = True
            source = self.get_preferred_source()
            if source is not None:
                try:
                    self._source_pixels = source.image_file.read()
                    self.ever_read_image = True
                except ReadError as e:
                    logger.warning(f"{e}")
                    source.read_error = True
        return self._source_pixels

    def _consider_grayscale(self) -> None:
        # Probing is skipped once any earlier session has read the pixels.
        if not self._read_source_image and self.ever_read_image:
            if self.forced_grayscale:
                self.properties.num_channels -= 2
            return

        pixels = self.read_source_image()
        if pixels is None:
            return
        self.forced_grayscale = is_grayscale(pixels)
        if self.forced_grayscale:
            self.properties.num_channels -= 2

    def _consider_unalpha(self) -> None:
        if not self._read_source_image and self.ever_read_image:
            if self.forced_unalpha:
                self.properties.num_channels -= 1
            return

        pixels = self.read_source_image()
        if pixels is None:
            return
        self.forced_unalpha = is_opaque(pixels)
        if self.forced_unalpha:
            self.properties.num_channels -= 1

    def get_dest_pixels(self) -> np.ndarray:
        """
        Source pixels resized to the texture size with the final channel count.

        Raises:
            ReadError: If no source could be decoded
        """
        if self._dest_pixels is None:
            pixels = self.read_source_image()
            if pixels is None or not self.size_known:
                raise ReadError(f"No readable source image for texture {self.name}")
            pixels = resize_pixels(pixels, self.x_size, self.y_size)
            self._dest_pixels = convert_channels(pixels, self.properties.num_channels)
        return self._dest_pixels

    def content_signature(self, settings: Settings) -> str:
        """What a destination copy of this texture depends on."""
        source = self.get_preferred_source()
        origin = f"{source.key}@{source.mtime}" if source is not None else "-"
        return (
            f"{origin}:{self.x_size}x{self.y_size}x{self.properties.num_channels}"
            f":{self.properties.format}:{settings.image_type}:{settings.alpha_type or ''}"
        )

    # -- destination images -------------------------------------------------

    def copy_unplaced(self, settings: Settings, redo_all: bool) -> bool:
        """
        Bring the standalone copies of this texture up to date.

        Every placement that is not packed (solitary ones included) needs a
        destination file. Files no longer needed are deleted, new ones
        written, and existing ones rewritten only if their signature changed.

        Returns:
            True if every delete and write succeeded
        """
        generate: Dict[str, DestImage] = {}
        for placement in self.placements.values():
            if placement.omit_reason == OmitReason.NONE:
                placement.dest = None
                continue
            dest = DestImage.from_placement(placement, settings)
            placement.dest = generate.setdefault(dest.filename, dest)

        diff = diff_destinations(generate, self.dests, redo_all)
        okflag = True

        for dest in diff.delete:
            try:
                dest.unlink()
            except PalettizeError as e:
                logger.error(f"{e}")
                okflag = False

        missing = [dest for dest in diff.unchanged if not dest.exists()]
        for dest in diff.copy + diff.restale + missing:
            try:
                dest.copy(self)
            except PalettizeError as e:
                logger.error(f"Failed to copy {self.name}: {e}")
                okflag = False

        self.dests = generate
        return okflag

    # -- reporting ----------------------------------------------------------

    def scale_info(self) -> str:
        groups = " ".join(sorted(self.placements)) or "not used"
        source = self.get_preferred_source()
        if source is None or not source.size_known:
            orig = "unknown"
        else:
            orig = f"{source.x_size} {source.y_size} {source.num_channels}"
        line = f"{self.name} ({groups}) orig {orig} new {self.x_size} {self.y_size} {self.properties.num_channels}"
        if source is not None and source.size_known and source.x_size and source.y_size:
            scale = 100.0 * (self.x_size / source.x_size + self.y_size / source.y_size) / 2.0
            line += f" scale {scale:g}%"
        return line


def _prefer(texture: TextureRecord, group: TextureGroup, count: int, best: TextureGroup, best_count: int) -> bool:
    if count != best_count:
        return count > best_count
    if group.dependency_level != best.dependency_level:
        return group.dependency_level < best.dependency_level
    return _others_in(texture, group) < _others_in(texture, best)


def _others_in(texture: TextureRecord, group: TextureGroup) -> int:
    """Textures in group besides this one."""
    return group.texture_count() - (1 if group.name in texture.placements else 0)
