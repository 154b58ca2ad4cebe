"""
Tests for the hole finder, placements and palette images
"""

import pytest
from palettesmith.config import Settings
from palettesmith.engine import ModelRecord, OmitReason, PaletteImage, TextureGroup, TextureRecord, TextureReference
from palettesmith.imaging import bounding_size, find_hole, nearest_power_of_2, next_power_of_2


def sized_texture(name, x_size, y_size):
    texture = TextureRecord(name)
    texture.size_known = True
    texture.x_size, texture.y_size = x_size, y_size
    texture.properties.fully_define()
    return texture


def prepared(group, name, size, margin=0):
    placement = group.prepare(sized_texture(name, size, size))
    placement.x_size = placement.y_size = size
    placement.margin = margin
    return placement


def add_reference(placement, uv_min, uv_max):
    texture = placement.texture
    reference = TextureReference(
        ModelRecord('m.json'), f"e{len(placement.references)}", texture,
        texture.get_source(f"{texture.name}.png"), uv_min=uv_min, uv_max=uv_max,
    )
    placement.add_reference(reference)
    return reference


class TestHoleFinder:
    """Test find_hole and size helpers"""

    def test_empty_canvas(self):
        """Test that the first rect goes to the origin"""
        assert find_hole([], 32, 32, 10, 10) == (0, 0)

    def test_too_big(self):
        """Test that an oversized rect has no hole"""
        assert find_hole([], 32, 32, 40, 10) is None

    def test_fills_row_then_next(self):
        """Test top-most then left-most placement"""
        placed = [(0, 0, 10, 10)]
        assert find_hole(placed, 20, 20, 10, 10) == (10, 0)
        placed.append((10, 0, 10, 10))
        assert find_hole(placed, 20, 20, 10, 10) == (0, 10)
        placed.append((0, 10, 10, 10))
        placed.append((10, 10, 10, 10))
        assert find_hole(placed, 20, 20, 10, 10) is None

    @pytest.mark.parametrize('n,expected', [(0, 1), (1, 1), (5, 8), (8, 8), (9, 16)])
    def test_next_power_of_2(self, n, expected):
        """Test rounding up to a power of two"""
        assert next_power_of_2(n) == expected

    @pytest.mark.parametrize('n,expected', [(1, 1), (5, 4), (6, 8), (7, 8), (50, 64), (40, 32)])
    def test_nearest_power_of_2(self, n, expected):
        """Test rounding to the closest power of two"""
        assert nearest_power_of_2(n) == expected

    def test_bounding_size(self):
        """Test the extent of placed rects"""
        assert bounding_size([]) == (0, 0)
        assert bounding_size([(0, 0, 12, 12), (12, 0, 12, 12)]) == (24, 12)


class TestPlacementSize:
    """Test Placement.determine_size"""

    def test_full_uv_range(self):
        """Test that references without UVs use the whole texture"""
        group = TextureGroup('g')
        placement = group.prepare(sized_texture('t', 64, 32))

        placement.determine_size(Settings())

        assert (placement.x_size, placement.y_size) == (64, 32)
        assert placement.margin == 2
        assert placement.omit_reason == OmitReason.WORKING

    def test_partial_uv_range(self):
        """Test that a UV subrange shrinks the placement"""
        group = TextureGroup('g')
        placement = group.prepare(sized_texture('t', 64, 64))
        add_reference(placement, (0.0, 0.0), (0.5, 0.5))

        placement.determine_size(Settings())

        assert (placement.x_size, placement.y_size) == (32, 32)

    def test_uv_union_over_references(self):
        """Test that the range covers every reference"""
        group = TextureGroup('g')
        placement = group.prepare(sized_texture('t', 64, 64))
        add_reference(placement, (0.0, 0.0), (0.5, 0.5))
        add_reference(placement, (0.5, 0.5), (1.0, 1.0))

        placement.determine_size(Settings())

        assert (placement.x_size, placement.y_size) == (64, 64)

    def test_point_uv_range_gets_one_texel(self):
        """Test that a zero-width UV range still maps into the palette"""
        group = TextureGroup('g')
        placement = group.prepare(sized_texture('t', 16, 16))
        add_reference(placement, (0.5, 0.5), (0.5, 0.5))

        placement.determine_size(Settings(round_uvs=False))

        assert placement.uv_min == (0.5, 0.5)
        assert placement.uv_max == pytest.approx((0.5625, 0.5625))
        assert (placement.x_size, placement.y_size) == (1, 1)

        assert PaletteImage(group, 'rgb_3', 1, 64, 64).place(placement)
        offset, scale = placement.uv_transform()
        assert scale == pytest.approx((0.25, 0.25))

    def test_repeating_uvs_are_omitted(self):
        """Test that UVs covering more than the threshold are not packed"""
        group = TextureGroup('g')
        placement = group.prepare(sized_texture('t', 16, 16))
        add_reference(placement, (0.0, 0.0), (2.0, 2.0))

        placement.determine_size(Settings())

        assert placement.omit_reason == OmitReason.REPEATS

    def test_too_big_is_omitted(self):
        """Test that a placement larger than the palette is not packed"""
        group = TextureGroup('g')
        placement = group.prepare(sized_texture('t', 128, 128))

        placement.determine_size(Settings(pal_x_size=64, pal_y_size=64))

        assert placement.omit_reason == OmitReason.SIZE

    def test_explicit_omit(self):
        """Test that an omit request wins"""
        group = TextureGroup('g')
        texture = sized_texture('t', 16, 16)
        texture.request.omit = True
        placement = group.prepare(texture)

        placement.determine_size(Settings())

        assert placement.omit_reason == OmitReason.OMITTED

    def test_unknown_size(self):
        """Test that a texture of unknown size cannot be packed"""
        group = TextureGroup('g')
        placement = group.prepare(TextureRecord('t'))

        placement.determine_size(Settings())

        assert placement.omit_reason == OmitReason.UNKNOWN

    def test_omission_lifted(self):
        """Test that a no-longer-omitted placement goes back to waiting"""
        group = TextureGroup('g')
        texture = sized_texture('t', 16, 16)
        texture.request.omit = True
        placement = group.prepare(texture)
        placement.determine_size(Settings())

        texture.request.omit = False
        placement.determine_size(Settings())

        assert placement.omit_reason == OmitReason.WORKING

    def test_wrap_modes(self):
        """Test that an axis clamps only when every reference clamps"""
        group = TextureGroup('g')
        placement = group.prepare(sized_texture('t', 16, 16))
        a = add_reference(placement, (0.0, 0.0), (1.0, 1.0))
        b = add_reference(placement, (0.0, 0.0), (1.0, 1.0))
        a.wrap_u = b.wrap_u = 'clamp'
        a.wrap_v = 'clamp'

        assert placement.wrap_modes() == ('clamp', 'repeat')


class TestPaletteImage:
    """Test PaletteImage packing and solitary handling"""

    def test_basename(self):
        """Test the generated image name"""
        image = PaletteImage(TextureGroup('world'), 'rgb_3', 1, 64, 64)
        assert image.basename == 'world_palette_rgb_3_1'

    def test_place_includes_margin(self):
        """Test that the packed rect includes the margin"""
        group = TextureGroup('g')
        image = PaletteImage(group, 'rgb_3', 1, 64, 64)
        placement = prepared(group, 't', 10, margin=1)

        assert image.place(placement)

        assert placement.position == (0, 0, 12, 12)
        assert placement.image is image
        assert placement.omit_reason == OmitReason.NONE

    def test_solitary(self):
        """Test that a lone placement is solitary until it gets company"""
        group = TextureGroup('g')
        image = PaletteImage(group, 'rgb_3', 1, 64, 64)
        first, second = prepared(group, 'a', 10), prepared(group, 'b', 10)

        image.place(first)
        image.check_solitary()
        assert first.omit_reason == OmitReason.SOLITARY

        image.place(second)
        image.check_solitary()
        assert first.omit_reason == OmitReason.NONE
        assert second.omit_reason == OmitReason.NONE

    def test_optimal_resize(self):
        """Test shrinking to the smallest power-of-two canvas"""
        group = TextureGroup('g')
        image = PaletteImage(group, 'rgb_3', 1, 128, 128)
        image.place(prepared(group, 'a', 12))
        image.place(prepared(group, 'b', 12))

        image.optimal_resize()

        assert (image.x_size, image.y_size) == (32, 16)

    def test_force_replace_unplaces(self):
        """Test that force_replace frees the spot"""
        group = TextureGroup('g')
        image = PaletteImage(group, 'rgb_3', 1, 64, 64)
        placement = prepared(group, 'a', 10)
        image.place(placement)

        placement.force_replace()

        assert image.is_empty()
        assert placement.image is None
        assert placement.omit_reason == OmitReason.WORKING

    def test_uv_transform(self):
        """Test the mapping of original UVs into the palette"""
        group = TextureGroup('g')
        image = PaletteImage(group, 'rgb_3', 1, 64, 64)
        placement = prepared(group, 'a', 32)
        image.place(placement)

        offset, scale = placement.uv_transform()

        assert offset == pytest.approx((0.0, 0.5))
        assert scale == pytest.approx((0.5, 0.5))


class TestGroupPlacement:
    """Test TextureGroup.place_all"""

    def test_shared_page(self):
        """Test that textures with equal properties share one image"""
        group = TextureGroup('g')
        placements = [prepared(group, name, 16) for name in ('a', 'b', 'c')]

        group.place_all(Settings(pal_x_size=64, pal_y_size=64))

        images = list(group.all_images())
        assert len(images) == 1
        assert all(p.image is images[0] for p in placements)
        assert all(p.omit_reason == OmitReason.NONE for p in placements)

    def test_overflow_opens_new_image(self):
        """Test that a full image spills into a second one"""
        group = TextureGroup('g')
        for name in ('a', 'b', 'c'):
            prepared(group, name, 32)

        group.place_all(Settings(pal_x_size=64, pal_y_size=32))

        images = list(group.all_images())
        assert [image.index for image in images] == [1, 2]
        assert images[1].is_solitary()

    def test_properties_split_pages(self):
        """Test that different page keys never share an image"""
        group = TextureGroup('g')
        a = prepared(group, 'a', 8)
        b = prepared(group, 'b', 8)
        b.texture.properties.num_channels = 4
        b.texture.properties.format = 'rgba'

        group.place_all(Settings())

        assert a.image is not b.image
        assert a.omit_reason == b.omit_reason == OmitReason.SOLITARY
