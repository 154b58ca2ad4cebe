"""Assignment and placement engine."""
from .dest_image import DestImage, DestinationDiff, diff_destinations
from .group import TextureGroup, close_groups
from .model import ModelRecord
from .palette_image import PaletteImage
from .palettizer import Palettizer
from .placement import OmitReason, Placement
from .reference import TextureReference
from .request import TextureRequest
from .source_image import SourceImage, source_key
from .texture import TextureRecord

__all__ = [
    "DestImage",
    "DestinationDiff",
    "diff_destinations",
    "TextureGroup",
    "close_groups",
    "ModelRecord",
    "PaletteImage",
    "Palettizer",
    "OmitReason",
    "Placement",
    "TextureReference",
    "TextureRequest",
    "SourceImage",
    "source_key",
    "TextureRecord",
]
