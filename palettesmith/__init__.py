"""
PaletteSmith - Pack the textures of many model documents into shared palette images

Textures are assigned to named groups so that every model can reach each
texture it uses, packed into per-group palette images, and the models are
rewritten to point at the packed copies. State persists between runs so
that only what changed is regenerated.
"""

from palettesmith.config import Settings
from palettesmith.engine import Palettizer
from palettesmith.session import SessionStore

__version__ = "0.0.1"
__all__ = ["Palettizer", "SessionStore", "Settings"]
