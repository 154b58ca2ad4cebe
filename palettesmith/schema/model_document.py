"""
Model document format.

A model document is JSON. The palettizer only cares about the texture
entries; anything else in the document (geometry, animation, ...) is
preserved untouched when the document is rewritten.

Example:
    {
      "name": "tree",
      "textures": [
        {"id": "bark", "filename": "maps/bark.png",
         "uv_min": [0, 0], "uv_max": [1, 2], "wrap_v": "repeat"}
      ]
    }

Paths inside a document are relative to the document itself. After a run
every entry carries an ``atlas`` block mapping its original UVs into the
generated image:

    atlas_uv = uv * uv_scale + uv_offset
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from palettesmith.exceptions import ReadError, WriteError

logger = logging.getLogger(__name__)

UV = List[float]
WrapMode = Literal['repeat', 'clamp']


class AtlasMapping(BaseModel):
    image: str = Field(..., description="Generated image, relative to the document.")
    uv_offset: UV = Field(default=[0.0, 0.0], min_length=2, max_length=2)
    uv_scale: UV = Field(default=[1.0, 1.0], min_length=2, max_length=2)
    omitted: bool = Field(False, description="True if the texture was copied standalone instead of packed.")


class TextureEntry(BaseModel):
    model_config = ConfigDict(extra='allow')

    id: str = Field(..., description="Unique id of the entry within the document.")
    name: Optional[str] = Field(None, description="Texture name; defaults to the filename stem.")
    filename: str = Field(..., description="Source image path.")
    alpha_filename: Optional[str] = Field(None, description="Separate alpha image path.")
    uv_min: Optional[UV] = Field(None, min_length=2, max_length=2)
    uv_max: Optional[UV] = Field(None, min_length=2, max_length=2)
    wrap_u: WrapMode = 'repeat'
    wrap_v: WrapMode = 'repeat'
    atlas: Optional[AtlasMapping] = None

    @model_validator(mode='after')
    def validate_uv_range(self):
        if (self.uv_min is None) != (self.uv_max is None):
            raise ValueError("uv_min and uv_max must be given together")
        if self.uv_min is not None and any(self.uv_max[i] < self.uv_min[i] for i in range(2)):
            raise ValueError("uv_max must be >= uv_min")
        return self

    def texture_name(self) -> str:
        return self.name or Path(self.filename).stem


class ModelDocument(BaseModel):
    model_config = ConfigDict(extra='allow')

    name: Optional[str] = None
    textures: List[TextureEntry] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_unique_ids(self):
        ids = [entry.id for entry in self.textures]
        if len(ids) != len(set(ids)):
            raise ValueError("Texture entry ids must be unique")
        return self

    def entry(self, entry_id: str) -> Optional[TextureEntry]:
        return next((e for e in self.textures if e.id == entry_id), None)


def load_model_document(path: str) -> ModelDocument:
    """
    Read and validate a model document.

    Raises:
        ReadError: If the file is missing, is not JSON, or fails validation
    """
    try:
        with open(path, 'r') as f:
            data = json.load(f)
        return ModelDocument.model_validate(data)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        raise ReadError(f"Cannot read model {path}: {e}") from e


def save_model_document(document: ModelDocument, path: str) -> None:
    """
    Write a model document, creating its directory.

    Raises:
        WriteError: If the file cannot be written
    """
    try:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(document.model_dump(mode='json', exclude_none=True), f, indent=2)
    except OSError as e:
        raise WriteError(f"Cannot write model {path}: {e}") from e
