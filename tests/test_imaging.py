"""
Tests for image I/O helpers and settings
"""

import numpy as np
import pytest
from pathlib import Path
from PIL import Image

from palettesmith.config import Settings
from palettesmith.exceptions import ConfigError, ReadError
from palettesmith.imaging import ImageFile, convert_channels, is_grayscale, is_opaque, resize_pixels, write_image


class TestImageFile:
    """Test ImageFile probing and reading"""

    @pytest.mark.parametrize('mode,color,channels', [
        ('L', 128, 1),
        ('LA', (128, 200), 2),
        ('RGB', (1, 2, 3), 3),
        ('RGBA', (1, 2, 3, 4), 4),
    ])
    def test_probe_channels(self, tmp_path, mode, color, channels):
        """Test channel counts by image mode"""
        path = tmp_path / 'img.png'
        Image.new(mode, (6, 4), color).save(path)

        assert ImageFile(path).probe_size() == (6, 4, channels)

    def test_separate_alpha_adds_channel(self, tmp_path):
        """Test that an alpha file turns RGB into RGBA"""
        color, alpha = tmp_path / 'c.png', tmp_path / 'a.png'
        Image.new('RGB', (4, 4), (10, 20, 30)).save(color)
        Image.new('L', (4, 4), 77).save(alpha)
        image = ImageFile(color, alpha)

        assert image.probe_size() == (4, 4, 4)
        pixels = image.read()
        assert pixels.shape == (4, 4, 4)
        assert tuple(pixels[0, 0]) == (10, 20, 30, 77)

    def test_missing_file(self, tmp_path):
        """Test that unreadable files raise ReadError"""
        image = ImageFile(tmp_path / 'nope.png')
        assert not image.exists()
        assert image.mtime() is None
        with pytest.raises(ReadError):
            image.probe_size()
        with pytest.raises(ReadError):
            image.read()

    def test_not_an_image(self, tmp_path):
        """Test that garbage is a read error"""
        path = tmp_path / 'junk.png'
        path.write_text('junk')
        with pytest.raises(ReadError):
            ImageFile(path).read()


class TestPixelHelpers:
    """Test pixel probes and conversions"""

    def test_grayscale(self):
        """Test the grayscale probe"""
        gray = np.full((2, 2, 3), 50, dtype=np.uint8)
        assert is_grayscale(gray)
        gray[0, 0, 1] = 51
        assert not is_grayscale(gray)

    def test_opaque(self):
        """Test the unalpha probe"""
        rgba = np.full((2, 2, 4), 255, dtype=np.uint8)
        assert is_opaque(rgba)
        rgba[1, 1, 3] = 254
        assert not is_opaque(rgba)
        assert not is_opaque(np.zeros((2, 2, 3), dtype=np.uint8))

    def test_convert_and_resize(self):
        """Test channel conversion and resampling shapes"""
        pixels = np.zeros((4, 8, 3), dtype=np.uint8)
        assert convert_channels(pixels, 4).shape == (4, 8, 4)
        assert convert_channels(pixels, 1).shape == (4, 8, 1)
        assert resize_pixels(pixels, 2, 2).shape == (2, 2, 3)

    def test_write_splits_alpha(self, tmp_path):
        """Test that alpha goes to its own file when asked"""
        pixels = np.zeros((2, 2, 4), dtype=np.uint8)
        pixels[:, :, 3] = 90
        color, alpha = tmp_path / 'out' / 'c.png', tmp_path / 'out' / 'c_a.png'

        write_image(pixels, color, alpha)

        with Image.open(color) as img:
            assert img.mode == 'RGB'
        with Image.open(alpha) as img:
            assert img.mode == 'L'
            assert img.getpixel((0, 0)) == 90


class TestSettings:
    """Test Settings paths and validation"""

    def test_defaults(self):
        """Test the documented defaults"""
        s = Settings()
        assert (s.pal_x_size, s.pal_y_size, s.margin) == (512, 512, 2)
        assert s.repeat_threshold == 250.0
        assert s.map_dirname == '%g'

    def test_image_paths(self):
        """Test group directory expansion and alpha companions"""
        s = Settings(install_dir='/out', map_dirname='maps/%g', alpha_type='png')
        path = s.image_filename('world', 'grass')
        assert path == Path('/out/maps/world/grass.png')
        assert s.alpha_filename(path) == Path('/out/maps/world/grass_a.png')
        assert Settings().alpha_filename(path) is None

    def test_validate_image_types(self):
        """Test that unusable image types are config errors"""
        Settings(image_type='png', alpha_type='jpg').validate_image_types()
        with pytest.raises(ConfigError):
            Settings(image_type=None).validate_image_types()
        with pytest.raises(ConfigError):
            Settings(image_type='nosuchtype').validate_image_types()

    def test_rejects_unknown_fields(self):
        """Test that typos in settings are caught"""
        with pytest.raises(ValueError):
            Settings(pal_size=3)
