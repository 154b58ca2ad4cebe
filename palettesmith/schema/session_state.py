"""
Session file schema.

Records are stored as name-keyed tables; every cross-record reference is
a name (group, texture, palette image filename, source key) resolved in
a second pass after all tables are read.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from palettesmith.config import Settings
from palettesmith.schema.properties import TextureProperties

SESSION_VERSION = 1

UV = List[float]


class SourceState(BaseModel):
    filename: str
    alpha_filename: Optional[str] = None
    size_known: bool = False
    x_size: int = 0
    y_size: int = 0
    num_channels: int = 0
    mtime: Optional[float] = None


class DestState(BaseModel):
    filename: str
    alpha_filename: Optional[str] = None
    signature: str


class PlacementState(BaseModel):
    group: str
    omit_reason: str
    size_known: bool = False
    x_size: int = 0
    y_size: int = 0
    margin: int = 0
    uv_min: UV = Field(default=[0.0, 0.0])
    uv_max: UV = Field(default=[1.0, 1.0])
    image: Optional[str] = Field(None, description="Basename of the palette image holding this placement.")
    position: Optional[List[int]] = Field(None, description="[x, y, width, height] of the packed rect, margin included.")
    placed_margin: int = 0


class TextureState(BaseModel):
    name: str
    is_surprise: bool = True
    ever_read_image: bool = False
    forced_grayscale: bool = False
    forced_unalpha: bool = False
    size_known: bool = False
    x_size: int = 0
    y_size: int = 0
    properties: TextureProperties = Field(default_factory=TextureProperties)
    assigned_groups: List[str] = Field(default_factory=list)
    placements: List[PlacementState] = Field(default_factory=list)
    sources: List[SourceState] = Field(default_factory=list)
    dests: List[DestState] = Field(default_factory=list)


class PaletteImageState(BaseModel):
    page: str
    index: int
    x_size: int
    y_size: int
    generated_filename: Optional[str] = None


class GroupState(BaseModel):
    name: str
    dirname: Optional[str] = None
    dependency_level: int = 1
    depends_on: List[str] = Field(default_factory=list)
    images: List[PaletteImageState] = Field(default_factory=list)


class ReferenceState(BaseModel):
    entry_id: str
    texture: str
    source: str = Field(..., description="Key of the source image within the texture.")
    uv_min: Optional[UV] = None
    uv_max: Optional[UV] = None
    wrap_u: str = 'repeat'
    wrap_v: str = 'repeat'
    group: Optional[str] = Field(None, description="Group of the placement this reference uses.")


class ModelState(BaseModel):
    name: str
    filename: str
    requested_groups: List[str] = Field(default_factory=list)
    is_surprise: bool = True
    is_stale: bool = True
    references: List[ReferenceState] = Field(default_factory=list)


class SessionState(BaseModel):
    version: int = SESSION_VERSION
    settings: Settings = Field(default_factory=Settings)
    groups: List[GroupState] = Field(default_factory=list)
    textures: List[TextureState] = Field(default_factory=list)
    models: List[ModelState] = Field(default_factory=list)
