"""
Image I/O and layout helpers.

Includes Pillow/numpy pixel access and the palette hole finder.
"""
from .image_file import (
    ImageFile,
    convert_channels,
    is_grayscale,
    is_opaque,
    resize_pixels,
    unlink_image,
    write_image,
)
from .packer import bounding_size, find_hole, nearest_power_of_2, next_power_of_2

__all__ = [
    'ImageFile',
    'convert_channels',
    'is_grayscale',
    'is_opaque',
    'resize_pixels',
    'unlink_image',
    'write_image',
    'bounding_size',
    'find_hole',
    'nearest_power_of_2',
    'next_power_of_2',
]
