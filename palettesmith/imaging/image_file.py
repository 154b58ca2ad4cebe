"""
Pixel I/O for source, destination and palette images.

Pixels travel through the pipeline as uint8 numpy arrays shaped
(height, width, channels). Pillow does all decoding, encoding and
resampling.
"""

import logging
import os
from pathlib import Path
from typing import Optional, Tuple

import numpy as np
from PIL import Image, UnidentifiedImageError

from palettesmith.exceptions import ReadError, WriteError

logger = logging.getLogger(__name__)

MAXVAL = 255

# Pillow mode -> channel count as the palettizer sees it
CHANNELS_BY_MODE = {
    '1': 1, 'L': 1, 'I': 1, 'F': 1, 'I;16': 1,
    'LA': 2, 'La': 2, 'PA': 2,
    'RGB': 3, 'YCbCr': 3, 'LAB': 3, 'HSV': 3, 'CMYK': 3,
    'RGBA': 4, 'RGBa': 4,
}

MODE_BY_CHANNELS = {1: 'L', 2: 'LA', 3: 'RGB', 4: 'RGBA'}


def _mode_channels(img: Image.Image) -> int:
    if img.mode == 'P':
        return 4 if 'transparency' in img.info else 3
    return CHANNELS_BY_MODE.get(img.mode, 3)


class ImageFile:
    """
    One image on disk, optionally paired with a separate alpha image.

    Example:
        >>> image = ImageFile("maps/wood.png")
        >>> image.probe_size()
        (64, 64, 3)
    """

    def __init__(self, filename: str, alpha_filename: Optional[str] = None):
        self.filename = str(filename)
        self.alpha_filename = str(alpha_filename) if alpha_filename else None

    def exists(self) -> bool:
        if not os.path.exists(self.filename):
            return False
        return self.alpha_filename is None or os.path.exists(self.alpha_filename)

    def mtime(self) -> Optional[float]:
        """Most recent modification time of the color and alpha files."""
        stamps = []
        for name in filter(None, (self.filename, self.alpha_filename)):
            try:
                stamps.append(os.path.getmtime(name))
            except OSError:
                return None
        return max(stamps)

    def probe_size(self) -> Tuple[int, int, int]:
        """
        Read just enough of the file to learn its size and channel count.

        Returns:
            Tuple of (x_size, y_size, num_channels)

        Raises:
            ReadError: If the file is missing or not a readable image
        """
        try:
            with Image.open(self.filename) as img:
                x_size, y_size = img.size
                channels = _mode_channels(img)
        except (OSError, UnidentifiedImageError) as e:
            raise ReadError(f"Cannot read image header {self.filename}: {e}") from e

        if self.alpha_filename and channels in (1, 3):
            channels += 1
        return x_size, y_size, channels

    def read(self) -> np.ndarray:
        """
        Decode the full image, merging in the alpha file if there is one.

        Raises:
            ReadError: If either file cannot be decoded
        """
        try:
            with Image.open(self.filename) as img:
                img.load()
                channels = _mode_channels(img)
                if self.alpha_filename:
                    channels = channels + 1 if channels in (1, 3) else channels
                img = img.convert(MODE_BY_CHANNELS[channels])

            if self.alpha_filename:
                with Image.open(self.alpha_filename) as alpha:
                    alpha = alpha.convert('L')
                    if alpha.size != img.size:
                        logger.warning(f"Alpha image {self.alpha_filename} resized to match {self.filename}")
                        alpha = alpha.resize(img.size, Image.LANCZOS)
                    img.putalpha(alpha)
        except (OSError, UnidentifiedImageError) as e:
            raise ReadError(f"Cannot read image {self.filename}: {e}") from e

        return as_pixels(img)


def as_pixels(img: Image.Image) -> np.ndarray:
    pixels = np.asarray(img, dtype=np.uint8)
    if pixels.ndim == 2:
        pixels = pixels[:, :, np.newaxis]
    return pixels


def to_image(pixels: np.ndarray) -> Image.Image:
    channels = pixels.shape[2]
    if channels == 1:
        return Image.fromarray(pixels[:, :, 0], 'L')
    return Image.fromarray(np.ascontiguousarray(pixels), MODE_BY_CHANNELS[channels])


def convert_channels(pixels: np.ndarray, num_channels: int) -> np.ndarray:
    """Convert pixels to the given channel count (1-4) via Pillow."""
    if pixels.shape[2] == num_channels:
        return pixels
    return as_pixels(to_image(pixels).convert(MODE_BY_CHANNELS[num_channels]))


def resize_pixels(pixels: np.ndarray, x_size: int, y_size: int) -> np.ndarray:
    if pixels.shape[1] == x_size and pixels.shape[0] == y_size:
        return pixels
    return as_pixels(to_image(pixels).resize((x_size, y_size), Image.LANCZOS))


def is_grayscale(pixels: np.ndarray) -> bool:
    """True if every pixel has equal red, green and blue components."""
    if pixels.shape[2] < 3:
        return True
    r, g, b = pixels[:, :, 0], pixels[:, :, 1], pixels[:, :, 2]
    return bool(np.array_equal(r, g) and np.array_equal(r, b))


def is_opaque(pixels: np.ndarray) -> bool:
    """True if the image has an alpha channel and every alpha sample is MAXVAL."""
    if pixels.shape[2] not in (2, 4):
        return False
    return bool(np.all(pixels[:, :, -1] == MAXVAL))


def write_image(pixels: np.ndarray, filename: Path, alpha_filename: Optional[Path] = None) -> None:
    """
    Encode pixels to disk, creating parent directories.

    If alpha_filename is given and the pixels carry alpha, the alpha
    channel is written there and the color channels to filename.

    Raises:
        WriteError: If Pillow or the filesystem refuses the write
    """
    filename = Path(filename)
    img = to_image(pixels)
    try:
        filename.parent.mkdir(parents=True, exist_ok=True)
        if alpha_filename is not None and img.mode in ('LA', 'RGBA'):
            img.getchannel('A').save(alpha_filename)
            img = img.convert('L' if img.mode == 'LA' else 'RGB')
        if img.mode == 'LA' and filename.suffix.lower() in ('.jpg', '.jpeg', '.bmp'):
            img = img.convert('L')
        elif img.mode == 'RGBA' and filename.suffix.lower() in ('.jpg', '.jpeg', '.bmp'):
            img = img.convert('RGB')
        img.save(filename)
    except (OSError, ValueError, KeyError) as e:
        raise WriteError(f"Cannot write image {filename}: {e}") from e
    logger.debug(f"Wrote {img.size[0]}x{img.size[1]} {img.mode} image {filename}")


def unlink_image(filename: Path, alpha_filename: Optional[Path] = None) -> None:
    """Remove a generated image (and its alpha companion); missing files are fine."""
    for name in filter(None, (filename, alpha_filename)):
        try:
            Path(name).unlink()
            logger.info(f"Deleting {name}")
        except FileNotFoundError:
            pass
        except OSError as e:
            raise WriteError(f"Cannot remove {name}: {e}") from e
