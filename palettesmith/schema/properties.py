"""Texture properties that decide whether two textures may share an image."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

FORMATS = ('rgba', 'rgb', 'alpha', 'luminance', 'luminance_alpha')
FILTERS = ('nearest', 'linear', 'mipmap')
UNSPECIFIED = 'unspecified'

DEFAULT_FORMAT_BY_CHANNELS = {
    1: 'luminance',
    2: 'luminance_alpha',
    3: 'rgb',
    4: 'rgba',
}


class TextureProperties(BaseModel):
    num_channels: Optional[int] = Field(None, ge=1, le=4)
    format: str = UNSPECIFIED
    minfilter: str = UNSPECIFIED
    magfilter: str = UNSPECIFIED

    def has_num_channels(self) -> bool:
        return self.num_channels is not None

    def uses_alpha(self) -> bool:
        return self.num_channels in (2, 4)

    def fully_define(self) -> None:
        """Fill in anything still unspecified from the channel count."""
        if self.num_channels is None:
            self.num_channels = 3
        if self.format == UNSPECIFIED:
            self.format = DEFAULT_FORMAT_BY_CHANNELS[self.num_channels]
        if self.minfilter == UNSPECIFIED:
            self.minfilter = 'linear'
        if self.magfilter == UNSPECIFIED:
            self.magfilter = 'linear'

    def page_key(self) -> str:
        """Short key naming the palette page textures with these properties share."""
        key = f"{self.format}_{self.num_channels}"
        if self.minfilter != 'linear' or self.magfilter != 'linear':
            key += f"_{self.minfilter}_{self.magfilter}"
        return key
