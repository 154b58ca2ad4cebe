"""
Model records.

A model is one document that references textures. Its requested groups
come from the rules file (or the default group); its complete groups add
everything those groups transitively depend on. A model can use a
texture from any of its complete groups.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, List, Optional, Set

from palettesmith.config import Settings
from palettesmith.engine.group import TextureGroup, close_groups
from palettesmith.engine.reference import TextureReference
from palettesmith.schema.model_document import ModelDocument, load_model_document, save_model_document

if TYPE_CHECKING:
    from palettesmith.engine.palettizer import Palettizer
    from palettesmith.engine.texture import TextureRecord

logger = logging.getLogger(__name__)


class ModelRecord:
    def __init__(self, name: str, filename: Optional[str] = None):
        self.name = name
        self.filename = os.path.abspath(filename) if filename else None
        self.document: Optional[ModelDocument] = None
        self.references: List[TextureReference] = []

        self.requested_groups: Set[TextureGroup] = set()
        self.complete_groups: Set[TextureGroup] = set()
        self.is_surprise = True
        self.is_stale = True
        self.read_error = False

    def __repr__(self):
        return f"ModelRecord({self.name!r})"

    @property
    def data_loaded(self) -> bool:
        return self.document is not None

    def read_model(self) -> None:
        """
        Load the document from disk.

        Raises:
            ReadError: If the document is missing or invalid
        """
        self.document = load_model_document(self.filename)
        self.read_error = False
        logger.debug(f"Read model {self.filename} ({len(self.document.textures)} textures)")

    def scan_textures(self, palettizer: Palettizer) -> None:
        """Rebuild the texture references from the loaded document."""
        for reference in self.references:
            reference.release()
        self.references = []

        base_dir = os.path.dirname(self.filename)
        for entry in self.document.textures:
            texture = palettizer.get_texture(entry.texture_name())
            alpha = os.path.join(base_dir, entry.alpha_filename) if entry.alpha_filename else None
            source = texture.get_source(os.path.join(base_dir, entry.filename), alpha)
            source.increment_model_count()
            self.references.append(TextureReference(
                self,
                entry.id,
                texture,
                source,
                uv_min=tuple(entry.uv_min) if entry.uv_min is not None else None,
                uv_max=tuple(entry.uv_max) if entry.uv_max is not None else None,
                wrap_u=entry.wrap_u,
                wrap_v=entry.wrap_v,
            ))
        self.is_stale = True

    def get_textures(self) -> Set[TextureRecord]:
        return {reference.texture for reference in self.references}

    def pre_rules(self) -> None:
        self.requested_groups = set()
        self.is_surprise = True

    def post_rules(self, default_group: TextureGroup) -> None:
        if not self.requested_groups:
            self.requested_groups.add(default_group)

    def build_cross_links(self) -> None:
        """Close the requested groups over dependencies and register with textures."""
        self.complete_groups = close_groups(self.requested_groups)
        for reference in self.references:
            reference.texture.note_model(self)

    def choose_placements(self) -> None:
        """
        Pick, for each reference, the placement of its texture in one of
        our complete groups: most specific group first, then by name.
        """
        for reference in self.references:
            texture = reference.texture
            candidates = self.complete_groups & texture.actual_assigned_groups
            if not candidates:
                reference.clear_placement()
                continue
            group = min(candidates, key=lambda g: (g.dependency_level, g.name))
            reference.set_placement(texture.get_placement(group))

    def output_filename(self, settings: Settings) -> str:
        if settings.model_dir:
            return os.path.abspath(os.path.join(settings.model_dir, os.path.basename(self.filename)))
        return self.filename

    def update_model(self, settings: Settings) -> None:
        """Write each entry's atlas mapping into the loaded document."""
        out_dir = os.path.dirname(self.output_filename(settings))
        for reference in self.references:
            entry = self.document.entry(reference.entry_id)
            if entry is not None:
                reference.update_entry(entry, out_dir)

    def write_model(self, settings: Settings) -> None:
        """
        Raises:
            WriteError: If the document cannot be written
        """
        path = self.output_filename(settings)
        save_model_document(self.document, path)
        self.is_stale = False
        logger.info(f"Writing {path}")

    def description(self) -> str:
        groups = " ".join(sorted(g.name for g in self.requested_groups))
        return f"{self.name} in {groups}" if groups else self.name
