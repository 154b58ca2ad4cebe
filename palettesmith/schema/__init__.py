"""Schema definitions for model documents and session files."""
from .model_document import (
    AtlasMapping,
    ModelDocument,
    TextureEntry,
    load_model_document,
    save_model_document,
)
from .properties import TextureProperties
from .session_state import SESSION_VERSION, SessionState

__all__ = [
    "AtlasMapping",
    "ModelDocument",
    "TextureEntry",
    "load_model_document",
    "save_model_document",
    "TextureProperties",
    "SESSION_VERSION",
    "SessionState",
]
