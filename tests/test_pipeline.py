"""
End-to-end tests: rules + model documents + real PNGs through the whole
palettizer pipeline
"""

import json
import pytest
from pathlib import Path
from unittest.mock import patch
from PIL import Image

from palettesmith import Palettizer, Settings
from palettesmith.engine import OmitReason
from palettesmith.exceptions import WriteError
from palettesmith.imaging import write_image

from conftest import write_model


def run_pipeline(scene, pal=None, models=None, redo=False, process_all=False):
    pal = pal or Palettizer(Settings(install_dir=str(scene.out)))
    pal.read_rules(str(scene.rules))
    for filename in models or scene.models:
        assert pal.add_model_file(filename)
    if process_all:
        pal.process_all()
    else:
        pal.process_command_line_models()
    ok = pal.generate_images(redo)
    ok = pal.read_stale_models(redo) and ok
    ok = pal.write_models() and ok
    assert ok
    return pal


def atlas_of(model_path, entry_id):
    data = json.loads(model_path.read_text())
    entry = next(e for e in data['textures'] if e['id'] == entry_id)
    return entry.get('atlas')


class TestAssignment:
    """Test group assignment across the scene"""

    def test_groups_follow_model_reach(self, scene):
        """Test that shared textures land in the shared group"""
        pal = run_pipeline(scene)

        def groups(name):
            return {g.name for g in pal.textures[name].actual_assigned_groups}

        assert groups('red') == {'shared'}
        assert groups('green') == {'shared'}
        assert groups('blue') == {'world'}
        assert groups('yellow') == {'world'}
        assert groups('sky') == {'world'}

    def test_every_model_reaches_its_textures(self, scene):
        """Test the coverage property on a full run"""
        pal = run_pipeline(scene)

        for texture in pal.textures.values():
            for model in texture.models:
                assert model.complete_groups & texture.actual_assigned_groups

    def test_unmatched_model_uses_default_group(self, scene):
        """Test that a model the rules skip falls back to the default group"""
        cave = scene.root / 'models' / 'cave.json'
        write_model(cave, ['green'])

        pal = run_pipeline(scene, models=scene.models + [str(cave)])

        assert pal.models['cave.json'].requested_groups == {pal.groups['default']}
        assert pal.models['cave.json'].is_surprise
        assert {g.name for g in pal.textures['green'].actual_assigned_groups} == {'default', 'shared'}
        placement = pal.textures['green'].placements['default']
        assert placement.omit_reason == OmitReason.SOLITARY
        assert (scene.out / 'default' / 'green.png').exists()

    def test_surprises(self, scene):
        """Test that only rule-claimed textures are not surprises"""
        pal = run_pipeline(scene)

        assert not pal.textures['sky'].is_surprise
        assert pal.textures['red'].is_surprise
        assert not pal.models['town.json'].is_surprise


class TestGeneratedImages:
    """Test palette images and standalone copies on disk"""

    def test_palette_images_written(self, scene):
        """Test that each group gets one palette image"""
        run_pipeline(scene)

        assert (scene.out / 'shared' / 'shared_palette_rgb_3_1.png').exists()
        assert (scene.out / 'world' / 'world_palette_rgb_3_1.png').exists()

    def test_palette_pixels(self, scene):
        """Test that textures are copied into their packed spots"""
        pal = run_pipeline(scene)

        green = pal.textures['green'].placements['shared']
        red = pal.textures['red'].placements['shared']
        assert green.position == (0, 0, 20, 20)
        assert red.position == (20, 0, 20, 20)

        with Image.open(scene.out / 'shared' / 'shared_palette_rgb_3_1.png') as img:
            assert img.size == (128, 128)
            rgb = img.convert('RGB')
            assert rgb.getpixel((10, 10)) == (0, 255, 0)
            assert rgb.getpixel((30, 10)) == (255, 0, 0)
            # margins bleed the edge color
            assert rgb.getpixel((20, 0)) == (255, 0, 0)
            assert rgb.getpixel((100, 100)) == (0, 0, 0)

    def test_omitted_texture_copied(self, scene):
        """Test that an omitted texture is written standalone"""
        run_pipeline(scene)

        path = scene.out / 'world' / 'sky.png'
        assert path.exists()
        with Image.open(path) as img:
            assert img.size == (32, 32)

    def test_optimal_resize_shrinks_palettes(self, scene):
        """Test that optimal resizing trims unused canvas"""
        pal = Palettizer(Settings(install_dir=str(scene.out)))
        pal.read_rules(str(scene.rules))
        for filename in scene.models:
            pal.add_model_file(filename)
        pal.process_command_line_models()
        pal.optimal_resize()
        assert pal.generate_images()

        with Image.open(scene.out / 'shared' / 'shared_palette_rgb_3_1.png') as img:
            assert img.size == (64, 32)

    def test_reset_images_repacks(self, scene):
        """Test that a reset lays out every placement again"""
        pal = run_pipeline(scene)
        red = pal.textures['red'].placements['shared']

        pal.reset_images()

        assert red.is_placed
        assert red.omit_reason == OmitReason.NONE


class TestModelRewrite:
    """Test the atlas blocks written into model documents"""

    def test_packed_entry_mapping(self, scene):
        """Test the UV transform written for a packed texture"""
        run_pipeline(scene)

        atlas = atlas_of(scene.forest, 'red_0')
        assert (scene.forest.parent / atlas['image']).resolve() == \
            (scene.out / 'shared' / 'shared_palette_rgb_3_1.png').resolve()
        assert atlas['omitted'] is False
        assert atlas['uv_scale'] == pytest.approx([16 / 128, 16 / 128])
        assert atlas['uv_offset'] == pytest.approx([22 / 128, 1 - 18 / 128])

    def test_omitted_entry_mapping(self, scene):
        """Test that an omitted texture points at its standalone copy"""
        run_pipeline(scene)

        atlas = atlas_of(scene.town, 'sky_0')
        assert atlas['omitted'] is True
        assert (scene.town.parent / atlas['image']).resolve() == (scene.out / 'world' / 'sky.png').resolve()

    def test_point_uv_range_without_rounding(self, scene):
        """Test that an entry whose UVs collapse to a point still gets a mapping"""
        scene.rules.write_text(":round no\n" + scene.rules.read_text())
        write_model(scene.forest, ['red', 'green'], uv_min=[0.5, 0.5], uv_max=[0.5, 0.5])

        pal = run_pipeline(scene)

        green = pal.textures['green'].placements['shared']
        assert (green.x_size, green.y_size) == (1, 1)
        atlas = atlas_of(scene.forest, 'green_0')
        assert atlas['omitted'] is False
        assert atlas['uv_scale'] == pytest.approx([16 / 128, 16 / 128])

    def test_unknown_fields_preserved(self, scene):
        """Test that the rewrite keeps everything else in the document"""
        data = json.loads(scene.town.read_text())
        data['meshes'] = [{'name': 'house', 'vertices': [0, 1, 2]}]
        data['textures'][0]['comment'] = 'keep me'
        scene.town.write_text(json.dumps(data))

        run_pipeline(scene)

        data = json.loads(scene.town.read_text())
        assert data['meshes'] == [{'name': 'house', 'vertices': [0, 1, 2]}]
        assert data['textures'][0]['comment'] == 'keep me'

    def test_model_dir_output(self, scene):
        """Test that models can be written elsewhere"""
        pal = Palettizer(Settings(install_dir=str(scene.out), model_dir=str(scene.root / 'built')))
        run_pipeline(scene, pal=pal)

        built = scene.root / 'built' / 'town.json'
        assert built.exists()
        assert 'atlas' not in json.loads(scene.town.read_text())['textures'][0]
        atlas = atlas_of(built, 'red_0')
        assert (built.parent / atlas['image']).resolve() == \
            (scene.out / 'shared' / 'shared_palette_rgb_3_1.png').resolve()

    def test_process_all(self, scene):
        """Test that process_all places everything the session knows"""
        pal = run_pipeline(scene, process_all=True)

        assert all(t.placements for t in pal.textures.values())
        assert pal.models['forest.json'].is_stale is False


class TestFailures:
    """Test per-record failure handling"""

    def test_unreadable_model(self, scene):
        """Test that a bad document is reported without stopping the batch"""
        bad = scene.root / 'models' / 'bad.json'
        bad.write_text('{not json')
        pal = Palettizer(Settings(install_dir=str(scene.out)))
        pal.read_rules(str(scene.rules))

        assert pal.add_model_file(str(bad)) is False
        assert pal.models['bad.json'].read_error
        assert pal.add_model_file(str(scene.town))
        pal.process_command_line_models()
        assert pal.generate_images()

    def test_missing_source_image(self, scene):
        """Test that a texture with no readable source is left unplaced"""
        write_model(scene.town, ['red', 'ghost'])
        pal = Palettizer(Settings(install_dir=str(scene.out)))
        pal.read_rules(str(scene.rules))
        pal.add_model_file(str(scene.town))
        pal.process_command_line_models()

        placement = pal.textures['ghost'].placements['world']
        assert placement.omit_reason == OmitReason.UNKNOWN
        assert pal.generate_images() is False

    def test_copy_write_failure(self, scene):
        """Test that a failed standalone copy is reported and palettes still land"""
        pal = Palettizer(Settings(install_dir=str(scene.out)))
        pal.read_rules(str(scene.rules))
        for filename in scene.models:
            pal.add_model_file(filename)
        pal.process_command_line_models()

        with patch('palettesmith.engine.dest_image.write_image', side_effect=WriteError('disk full')):
            assert pal.generate_images() is False

        assert not (scene.out / 'world' / 'sky.png').exists()
        assert (scene.out / 'shared' / 'shared_palette_rgb_3_1.png').exists()
        assert (scene.out / 'world' / 'world_palette_rgb_3_1.png').exists()

    def test_palette_write_failure(self, scene):
        """Test that one unwritable palette does not stop the others"""
        def refuse_world(pixels, filename, alpha_filename=None):
            if Path(filename).name.startswith('world_'):
                raise WriteError(f"Cannot write image {filename}")
            write_image(pixels, filename, alpha_filename)

        pal = Palettizer(Settings(install_dir=str(scene.out)))
        pal.read_rules(str(scene.rules))
        for filename in scene.models:
            pal.add_model_file(filename)
        pal.process_command_line_models()

        with patch('palettesmith.engine.palette_image.write_image', side_effect=refuse_world):
            assert pal.generate_images() is False

        assert (scene.out / 'shared' / 'shared_palette_rgb_3_1.png').exists()
        assert not (scene.out / 'world' / 'world_palette_rgb_3_1.png').exists()
        assert (scene.out / 'world' / 'sky.png').exists()
        world = pal.textures['blue'].placements['world'].image
        assert world.generated_filename is None

    def test_report_lists_everything(self, scene):
        """Test the human-readable report"""
        pal = run_pipeline(scene)
        report = pal.report()

        assert 'palette size: 128 by 128' in report
        assert 'town.json in world' in report
        assert 'shared_palette_rgb_3_1 128 128: 2 textures' in report
        assert 'sky (world)' in report
