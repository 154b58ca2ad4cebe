"""
The palettizer engine.

Owns every group, texture and model record (keyed by name) for a run and
drives them through the pipeline:

    read_rules -> add_model_file... -> process_command_line_models / process_all
    -> [reset_images] -> [optimal_resize] -> generate_images
    -> read_stale_models -> write_models

Record creation goes exclusively through the get-or-create accessors so
that a name never maps to two records.
"""

import logging
import os
from typing import Dict, Iterable, List, Optional, Set

from palettesmith.config import Settings
from palettesmith.engine.group import TextureGroup
from palettesmith.engine.model import ModelRecord
from palettesmith.engine.texture import TextureRecord
from palettesmith.exceptions import PalettizeError, ReadError
from palettesmith.matching import RulesFile

logger = logging.getLogger(__name__)


class Palettizer:
    """
    Main engine for building texture palettes.

    Example:
        >>> pal = Palettizer()
        >>> pal.read_rules("textures.txa")
        >>> pal.add_model_file("models/tree.json")
        >>> pal.process_command_line_models()
        >>> pal.generate_images()
        >>> pal.read_stale_models() and pal.write_models()
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.rules = RulesFile()

        self.groups: Dict[str, TextureGroup] = {}
        self.textures: Dict[str, TextureRecord] = {}
        self.models: Dict[str, ModelRecord] = {}

        # Session-only state
        self.command_line_models: List[ModelRecord] = []
        self.command_line_textures: Set[TextureRecord] = set()

    # -- get-or-create accessors ---------------------------------------------

    def get_group(self, name: str) -> TextureGroup:
        group = self.groups.get(name)
        if group is None:
            group = TextureGroup(name)
            self.groups[name] = group
        return group

    def test_group(self, name: str) -> Optional[TextureGroup]:
        return self.groups.get(name)

    def get_default_group(self) -> TextureGroup:
        return self.get_group(self.settings.default_group)

    def get_texture(self, name: str) -> TextureRecord:
        texture = self.textures.get(name)
        if texture is None:
            texture = TextureRecord(name)
            self.textures[name] = texture
        return texture

    def get_model(self, name: str, filename: Optional[str] = None) -> ModelRecord:
        model = self.models.get(name)
        if model is None:
            model = ModelRecord(name, filename)
            self.models[name] = model
        elif filename:
            model.filename = os.path.abspath(filename)
        return model

    # -- rules ---------------------------------------------------------------

    def read_rules(self, filename: str) -> None:
        """
        Read the rules file and recompute group dependency levels.

        Raises:
            ConfigError: If the rules are malformed or no usable image type results
        """
        for group in self.groups.values():
            group.clear_depends()

        self.rules.read(filename, self)
        self.settings.validate_image_types()

        for group in self.groups.values():
            group.dependency_level = 0
        for group in self.groups.values():
            group.set_dependency_level(1)

    # -- models from the command line ----------------------------------------

    def add_model_file(self, filename: str) -> bool:
        """
        Read a model named on the command line.

        Returns:
            False if the document could not be read
        """
        model = self.get_model(os.path.basename(filename), filename)
        try:
            model.read_model()
        except ReadError as e:
            logger.error(f"{e}")
            model.read_error = True
            return False
        if model not in self.command_line_models:
            self.command_line_models.append(model)
        return True

    # -- processing ------------------------------------------------------------

    def process_command_line_models(self, force_texture_read: bool = False) -> None:
        """Place the textures used by the command-line models."""
        self.command_line_textures = set()
        for model in self.command_line_models:
            model.scan_textures(self)
            self.command_line_textures |= model.get_textures()
            self._match_model(model)

        self._cross_link()
        textures = sorted(self.command_line_textures, key=lambda t: t.name)
        self._process_textures(textures, force_texture_read)

    def process_all(self, force_texture_read: bool = False) -> None:
        """Re-place every texture known to the session, not just the new ones."""
        for model in self.command_line_models:
            model.scan_textures(self)
            self.command_line_textures |= model.get_textures()
        for model in self._models_in_order():
            self._match_model(model)

        self._cross_link()
        textures = [self.textures[name] for name in sorted(self.textures)]
        self._process_textures(textures, force_texture_read)

    def _match_model(self, model: ModelRecord) -> None:
        model.pre_rules()
        self.rules.match_model(model)
        if not model.requested_groups:
            model.post_rules(self.get_default_group())

    def _cross_link(self) -> None:
        for texture in self.textures.values():
            texture.clear_models()
        for model in self._models_in_order():
            if not model.requested_groups:
                model.post_rules(self.get_default_group())
            model.build_cross_links()

    def _process_textures(self, textures: Iterable[TextureRecord], force_texture_read: bool) -> None:
        textures = list(textures)
        for texture in textures:
            if force_texture_read:
                texture.read_source_image()
            texture.pre_rules(self.settings)
            self.rules.match_texture(texture)
            texture.post_rules(self.settings)

        for texture in textures:
            texture.assign_groups()

        for model in self._models_in_order():
            model.choose_placements()

        for texture in textures:
            texture.determine_placement_size(self.settings)

        for name in sorted(self.groups):
            self.groups[name].place_all(self.settings)

    # -- images -------------------------------------------------------------

    def optimal_resize(self) -> None:
        for name in sorted(self.groups):
            self.groups[name].optimal_resize()

    def reset_images(self) -> None:
        """Discard all packing so the next placement pass lays everything out afresh."""
        for name in sorted(self.groups):
            self.groups[name].reset_images()
        for name in sorted(self.groups):
            self.groups[name].place_all(self.settings)

    def generate_images(self, redo_all: bool = False) -> bool:
        """
        Write palette images and standalone texture copies.

        Returns:
            True if every image was written (or was already fresh)
        """
        okflag = True
        for name in sorted(self.groups):
            if not self.groups[name].update_images(self.settings, redo_all):
                okflag = False
        for name in sorted(self.textures):
            if not self.textures[name].copy_unplaced(self.settings, redo_all):
                okflag = False
        return okflag

    # -- models --------------------------------------------------------------

    def read_stale_models(self, redo_all: bool = False) -> bool:
        """
        Load every model whose placements changed, so write_models() can
        update it even if it was not named this run.
        """
        okflag = True
        for model in self._models_in_order():
            if model.data_loaded or model.read_error or not (model.is_stale or redo_all):
                continue
            try:
                model.read_model()
            except ReadError as e:
                logger.error(f"{e}")
                model.read_error = True
                okflag = False
                continue
            model.scan_textures(self)
            model.build_cross_links()
            model.choose_placements()
        return okflag

    def write_models(self) -> bool:
        okflag = True
        for model in self._models_in_order():
            if not model.data_loaded:
                continue
            model.update_model(self.settings)
            try:
                model.write_model(self.settings)
            except PalettizeError as e:
                logger.error(f"{e}")
                okflag = False
        return okflag

    def _models_in_order(self) -> List[ModelRecord]:
        return [self.models[name] for name in sorted(self.models)]

    # -- reporting -------------------------------------------------------------

    def report(self) -> str:
        """Human-readable summary of everything the session knows."""
        s = self.settings
        out = [
            "params",
            f"  map directory: {s.map_dirname}",
            f"  palette size: {s.pal_x_size} by {s.pal_y_size}",
            f"  margin: {s.margin}",
            f"  repeat threshold: {s.repeat_threshold:g}%",
            f"  force textures to power of 2: {_yesno(s.force_power_2)}",
            f"  round UV area: {_yesno(s.round_uvs)}",
            f"  generate image files of type: {s.image_type}" + (f",{s.alpha_type}" if s.alpha_type else ""),
            "",
            "texture source pathnames and sizes",
        ]
        for name in sorted(self.textures):
            out.append(f"  {name}:")
            for key in sorted(self.textures[name].sources):
                source = self.textures[name].sources[key]
                size = f"{source.x_size} {source.y_size} {source.num_channels}" if source.size_known else "(unknown size)"
                out.append(f"    {source.filename} {size}")

        out += ["", "models and textures referenced"]
        for model in self._models_in_order():
            out.append(f"  {model.description()}")
            for reference in model.references:
                out.append(f"    {reference.entry_id}: {reference.texture.name}")

        out += ["", "texture groups"]
        for name in sorted(self.groups):
            group = self.groups[name]
            depends = " ".join(sorted(g.name for g in group.depends_on))
            out.append(f"  {name} (level {group.dependency_level}): {depends}")
            for image in group.all_images():
                out.append(f"    {image.basename} {image.x_size} {image.y_size}: {len(image.placements)} textures")

        out += ["", "textures"]
        for name in sorted(self.textures):
            out.append(f"  {self.textures[name].scale_info()}")

        out += ["", "surprises"]
        out += [f"  {name}" for name in sorted(self.textures) if self.textures[name].is_surprise]
        out += [f"  {m.name}" for m in self._models_in_order() if m.is_surprise]
        return "\n".join(out) + "\n"


def _yesno(flag: bool) -> str:
    return "yes" if flag else "no"
