"""
Session persistence.

The session file carries everything one run learns into the next: the
settings, every group with its palette images, every texture with its
sources, placements and standalone copies, and every model with its
texture references. Records point at each other by name on disk; restore()
rebuilds the object graph in two passes (create every record, then link).
"""

import json
import logging
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from palettesmith.engine import (
    DestImage,
    OmitReason,
    PaletteImage,
    Palettizer,
    TextureRecord,
    TextureReference,
)
from palettesmith.exceptions import ReadError, WriteError
from palettesmith.schema.session_state import (
    SESSION_VERSION,
    DestState,
    GroupState,
    ModelState,
    PaletteImageState,
    PlacementState,
    ReferenceState,
    SessionState,
    SourceState,
    TextureState,
)

logger = logging.getLogger(__name__)

SESSION_SUFFIX = '.session.json'


def default_session_path(rules_filename: Union[str, Path]) -> Path:
    """Session file kept beside the rules file: ``textures.txa`` -> ``textures.session.json``."""
    path = Path(rules_filename)
    return path.with_name(path.stem + SESSION_SUFFIX)


class SessionStore:
    """Reads and writes the session file for one rules file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    # -- loading ----------------------------------------------------------

    def load_state(self) -> SessionState:
        """
        Raises:
            ReadError: If the file is unreadable, of another version, or malformed
        """
        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ReadError(f"Cannot read session file {self.path}: {e}") from e

        version = data.get('version') if isinstance(data, dict) else None
        if version != SESSION_VERSION:
            raise ReadError(
                f"Session file {self.path} has version {version}, expected {SESSION_VERSION}"
            )
        try:
            return SessionState.model_validate(data)
        except ValidationError as e:
            raise ReadError(f"Invalid session file {self.path}: {e}") from e

    def restore(self) -> Optional[Palettizer]:
        """
        Rebuild the palettizer saved by the previous run.

        Returns:
            The restored Palettizer, or None if there is no session file yet

        Raises:
            ReadError: If the file exists but cannot be restored
        """
        if not self.exists():
            logger.info(f"No session at {self.path}; starting fresh")
            return None

        state = self.load_state()
        palettizer = Palettizer(state.settings)

        # Pass 1: create every record so names resolve in pass 2.
        for group_state in state.groups:
            palettizer.get_group(group_state.name)
        for texture_state in state.textures:
            palettizer.get_texture(texture_state.name)

        # Pass 2: fill in and link.
        try:
            for group_state in state.groups:
                _restore_group(palettizer, group_state)
            for texture_state in state.textures:
                _restore_texture(palettizer, texture_state)
            for model_state in state.models:
                _restore_model(palettizer, model_state)
        except KeyError as e:
            raise ReadError(f"Session file {self.path} refers to unknown record {e}") from e

        logger.info(
            f"Restored session {self.path}: {len(palettizer.groups)} groups, "
            f"{len(palettizer.textures)} textures, {len(palettizer.models)} models"
        )
        return palettizer

    # -- saving -------------------------------------------------------------

    def persist(self, palettizer: Palettizer) -> None:
        """
        Raises:
            WriteError: If the session file cannot be written
        """
        state = SessionState(
            settings=palettizer.settings,
            groups=[_group_state(palettizer.groups[n]) for n in sorted(palettizer.groups)],
            textures=[_texture_state(palettizer.textures[n]) for n in sorted(palettizer.textures)],
            models=[_model_state(palettizer.models[n]) for n in sorted(palettizer.models)],
        )
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'w') as f:
                f.write(state.model_dump_json(indent=2))
        except OSError as e:
            raise WriteError(f"Cannot write session file {self.path}: {e}") from e
        logger.info(f"Wrote session {self.path}")


def _restore_group(palettizer: Palettizer, state: GroupState) -> None:
    group = palettizer.groups[state.name]
    group.dirname = state.dirname
    group.dependency_level = state.dependency_level
    for name in state.depends_on:
        group.add_depends(palettizer.get_group(name))
    for image_state in state.images:
        image = PaletteImage(group, image_state.page, image_state.index, image_state.x_size, image_state.y_size)
        image.generated_filename = image_state.generated_filename
        image.new_image = image_state.generated_filename is None
        group.images.setdefault(image.page, []).append(image)


def _restore_texture(palettizer: Palettizer, state: TextureState) -> None:
    texture = palettizer.textures[state.name]
    texture.is_surprise = state.is_surprise
    texture.ever_read_image = state.ever_read_image
    texture.forced_grayscale = state.forced_grayscale
    texture.forced_unalpha = state.forced_unalpha
    texture.size_known = state.size_known
    texture.x_size, texture.y_size = state.x_size, state.y_size
    texture.properties = state.properties.model_copy()

    for source_state in state.sources:
        source = texture.get_source(source_state.filename, source_state.alpha_filename)
        source.size_known = source_state.size_known
        source.x_size, source.y_size = source_state.x_size, source_state.y_size
        source.num_channels = source_state.num_channels
        source.mtime = source_state.mtime

    for placement_state in state.placements:
        group = palettizer.groups[placement_state.group]
        placement = group.prepare(texture)
        placement.omit_reason = OmitReason(placement_state.omit_reason)
        placement.size_known = placement_state.size_known
        placement.x_size, placement.y_size = placement_state.x_size, placement_state.y_size
        placement.margin = placement_state.margin
        placement.uv_min = tuple(placement_state.uv_min)
        placement.uv_max = tuple(placement_state.uv_max)
        placement.placed_margin = placement_state.placed_margin
        if placement_state.image is not None:
            image = group.find_image(placement_state.image)
            if image is None:
                raise KeyError(placement_state.image)
            placement.position = tuple(placement_state.position)
            image.restore(placement)
        texture.placements[group.name] = placement

    texture.actual_assigned_groups = {palettizer.groups[name] for name in state.assigned_groups}
    texture.dests = {
        d.filename: DestImage(filename=d.filename, signature=d.signature, alpha_filename=d.alpha_filename)
        for d in state.dests
    }


def _restore_model(palettizer: Palettizer, state: ModelState) -> None:
    model = palettizer.get_model(state.name, state.filename)
    model.requested_groups = {palettizer.groups[name] for name in state.requested_groups}
    model.is_surprise = state.is_surprise
    model.is_stale = state.is_stale

    for ref_state in state.references:
        texture: TextureRecord = palettizer.textures[ref_state.texture]
        source = texture.sources[ref_state.source]
        source.increment_model_count()
        reference = TextureReference(
            model,
            ref_state.entry_id,
            texture,
            source,
            uv_min=tuple(ref_state.uv_min) if ref_state.uv_min is not None else None,
            uv_max=tuple(ref_state.uv_max) if ref_state.uv_max is not None else None,
            wrap_u=ref_state.wrap_u,
            wrap_v=ref_state.wrap_v,
        )
        if ref_state.group is not None:
            placement = texture.placements[ref_state.group]
            reference.placement = placement
            placement.add_reference(reference)
        model.references.append(reference)


def _group_state(group) -> GroupState:
    return GroupState(
        name=group.name,
        dirname=group.dirname,
        dependency_level=group.dependency_level,
        depends_on=sorted(g.name for g in group.depends_on),
        images=[
            PaletteImageState(
                page=image.page,
                index=image.index,
                x_size=image.x_size,
                y_size=image.y_size,
                generated_filename=image.generated_filename,
            )
            for image in group.all_images()
        ],
    )


def _texture_state(texture: TextureRecord) -> TextureState:
    return TextureState(
        name=texture.name,
        is_surprise=texture.is_surprise,
        ever_read_image=texture.ever_read_image,
        forced_grayscale=texture.forced_grayscale,
        forced_unalpha=texture.forced_unalpha,
        size_known=texture.size_known,
        x_size=texture.x_size,
        y_size=texture.y_size,
        properties=texture.properties,
        assigned_groups=sorted(g.name for g in texture.actual_assigned_groups),
        placements=[
            PlacementState(
                group=name,
                omit_reason=p.omit_reason.value,
                size_known=p.size_known,
                x_size=p.x_size,
                y_size=p.y_size,
                margin=p.margin,
                uv_min=list(p.uv_min),
                uv_max=list(p.uv_max),
                image=p.image.basename if p.image is not None else None,
                position=list(p.position) if p.position is not None else None,
                placed_margin=p.placed_margin,
            )
            for name, p in sorted(texture.placements.items())
        ],
        sources=[
            SourceState(
                filename=s.filename,
                alpha_filename=s.alpha_filename,
                size_known=s.size_known,
                x_size=s.x_size,
                y_size=s.y_size,
                num_channels=s.num_channels,
                mtime=s.mtime,
            )
            for _, s in sorted(texture.sources.items())
        ],
        dests=[
            DestState(filename=d.filename, alpha_filename=d.alpha_filename, signature=d.signature)
            for _, d in sorted(texture.dests.items())
        ],
    )


def _model_state(model) -> ModelState:
    return ModelState(
        name=model.name,
        filename=model.filename,
        requested_groups=sorted(g.name for g in model.requested_groups),
        is_surprise=model.is_surprise,
        is_stale=model.is_stale,
        references=[
            ReferenceState(
                entry_id=r.entry_id,
                texture=r.texture.name,
                source=r.source.key,
                uv_min=list(r.uv_min) if r.uv_min is not None else None,
                uv_max=list(r.uv_max) if r.uv_max is not None else None,
                wrap_u=r.wrap_u,
                wrap_v=r.wrap_v,
                group=r.placement.group.name if r.placement is not None else None,
            )
            for r in model.references
        ],
    )
