"""
Shared fixtures: a small on-disk scene of source images, model documents
and a rules file.

    town.json   -> red, blue, yellow, sky     (group world, which uses shared)
    forest.json -> red, green                 (group shared)
"""

import json
from dataclasses import dataclass
from pathlib import Path

import pytest
from PIL import Image

RULES = """\
:palette 128 128
:group world with shared
:group shared

town.json : world
forest.json : shared

sky : omit
"""

COLORS = {
    'red': (255, 0, 0),
    'green': (0, 255, 0),
    'blue': (0, 0, 255),
    'yellow': (255, 255, 0),
    'sky': (100, 150, 250),
}


@dataclass
class Scene:
    root: Path
    rules: Path
    town: Path
    forest: Path
    out: Path

    @property
    def models(self):
        return [str(self.town), str(self.forest)]


def write_model(path, texture_names, **extra):
    entries = [{'id': f"{name}_0", 'filename': f"../maps/{name}.png", **extra} for name in texture_names]
    path.write_text(json.dumps({'name': path.stem, 'textures': entries}, indent=2))


@pytest.fixture
def scene(tmp_path):
    maps = tmp_path / 'maps'
    maps.mkdir()
    for name, color in COLORS.items():
        size = (32, 32) if name == 'sky' else (16, 16)
        Image.new('RGB', size, color).save(maps / f"{name}.png")

    models = tmp_path / 'models'
    models.mkdir()
    write_model(models / 'town.json', ['red', 'blue', 'yellow', 'sky'])
    write_model(models / 'forest.json', ['red', 'green'])

    rules = tmp_path / 'textures.txa'
    rules.write_text(RULES)

    return Scene(
        root=tmp_path,
        rules=rules,
        town=models / 'town.json',
        forest=models / 'forest.json',
        out=tmp_path / 'out',
    )
