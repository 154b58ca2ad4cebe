"""Per-run directives the rules file places on a texture."""

from dataclasses import dataclass
from typing import Optional

from palettesmith.config import Settings
from palettesmith.schema.properties import UNSPECIFIED


@dataclass
class TextureRequest:
    """What the matching rules asked for; rebuilt from scratch every run."""
    x_size: Optional[int] = None
    y_size: Optional[int] = None
    scale: Optional[float] = None  # percent of source size
    num_channels: Optional[int] = None
    format: str = UNSPECIFIED
    minfilter: str = UNSPECIFIED
    magfilter: str = UNSPECIFIED
    omit: bool = False
    margin: int = 2
    repeat_threshold: float = 250.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "TextureRequest":
        return cls(margin=settings.margin, repeat_threshold=settings.repeat_threshold)

    @property
    def got_size(self) -> bool:
        return self.x_size is not None and self.y_size is not None
