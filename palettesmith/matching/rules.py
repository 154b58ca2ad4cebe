"""
Rules file: maps texture and model names to groups and directives.

Example:
    # program parameters
    :palette 1024 1024
    :imagetype png
    :group world with shared
    :group shared dir common

    # models
    town*.json : world

    # textures
    sky_* : 50% omit
    grass : 64 64 3 world cont
    *_alpha : rgba nearest

Patterns are shell globs. Patterns ending in ``.json`` match model names;
all others match texture names. The first matching line wins, unless it
says ``cont``, in which case later lines are consulted too.
"""

from __future__ import annotations

import fnmatch
import logging
import shlex
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional

from palettesmith.exceptions import ConfigError
from palettesmith.schema.properties import FILTERS, FORMATS, UNSPECIFIED

if TYPE_CHECKING:
    from palettesmith.engine.group import TextureGroup
    from palettesmith.engine.model import ModelRecord
    from palettesmith.engine.palettizer import Palettizer
    from palettesmith.engine.texture import TextureRecord

logger = logging.getLogger(__name__)

MODEL_SUFFIX = '.json'


@dataclass
class RuleLine:
    patterns: List[str]
    line_number: int
    groups: List[TextureGroup] = field(default_factory=list)
    x_size: Optional[int] = None
    y_size: Optional[int] = None
    num_channels: Optional[int] = None
    scale: Optional[float] = None
    format: str = UNSPECIFIED
    minfilter: str = UNSPECIFIED
    magfilter: str = UNSPECIFIED
    omit: bool = False
    margin: Optional[int] = None
    repeat_threshold: Optional[float] = None
    cont: bool = False

    @property
    def is_model_line(self) -> bool:
        return all(p.endswith(MODEL_SUFFIX) for p in self.patterns)

    def matches(self, name: str) -> bool:
        return any(fnmatch.fnmatchcase(name, pattern) for pattern in self.patterns)

    def apply_texture(self, texture: TextureRecord) -> None:
        request = texture.request
        if self.x_size is not None:
            request.x_size, request.y_size = self.x_size, self.y_size
        if self.scale is not None:
            request.scale = self.scale
        if self.num_channels is not None:
            request.num_channels = self.num_channels
        if self.format != UNSPECIFIED:
            request.format = self.format
        if self.minfilter != UNSPECIFIED:
            request.minfilter = self.minfilter
        if self.magfilter != UNSPECIFIED:
            request.magfilter = self.magfilter
        if self.omit:
            request.omit = True
        if self.margin is not None:
            request.margin = self.margin
        if self.repeat_threshold is not None:
            request.repeat_threshold = self.repeat_threshold
        texture.explicitly_assigned_groups.update(self.groups)
        if not self.cont:
            texture.is_surprise = False

    def apply_model(self, model: ModelRecord) -> None:
        model.requested_groups.update(self.groups)
        if not self.cont:
            model.is_surprise = False


class RulesFile:
    """Parsed rules; reading one also updates the palettizer's settings and groups."""

    def __init__(self):
        self.filename: Optional[str] = None
        self.lines: List[RuleLine] = []

    def read(self, filename: str, palettizer: Palettizer) -> None:
        """
        Raises:
            ConfigError: On unreadable files, unknown commands or malformed lines
        """
        self.filename = filename
        self.lines = []
        try:
            with open(filename, 'r') as f:
                text = f.read()
        except OSError as e:
            raise ConfigError(f"Cannot read rules file {filename}: {e}") from e

        for number, raw in enumerate(text.splitlines(), start=1):
            line = raw.split('#', 1)[0].strip()
            if not line:
                continue
            try:
                if line.startswith(':'):
                    self._parse_command(line[1:], palettizer)
                else:
                    self.lines.append(self._parse_rule(line, number, palettizer))
            except (ValueError, IndexError) as e:
                raise ConfigError(f"{filename}:{number}: {e}") from e

        logger.info(f"Read {len(self.lines)} rules from {filename}")

    def match_texture(self, texture: TextureRecord) -> None:
        for line in self.lines:
            if not line.is_model_line and line.matches(texture.name):
                line.apply_texture(texture)
                if not line.cont:
                    return

    def match_model(self, model: ModelRecord) -> None:
        for line in self.lines:
            if line.is_model_line and line.matches(model.name):
                line.apply_model(model)
                if not line.cont:
                    return

    def _parse_command(self, line: str, palettizer: Palettizer) -> None:
        words = shlex.split(line)
        command, args = words[0].lower(), words[1:]
        settings = palettizer.settings

        if command == 'palette':
            settings.pal_x_size, settings.pal_y_size = int(args[0]), int(args[1])
        elif command == 'margin':
            settings.margin = int(args[0])
        elif command == 'repeat':
            settings.repeat_threshold = float(args[0].rstrip('%'))
        elif command == 'imagetype':
            settings.image_type = args[0]
            settings.alpha_type = args[1] if len(args) > 1 else None
        elif command == 'powertwo':
            settings.force_power_2 = args[0] not in ('0', 'no', 'false')
        elif command == 'round':
            if args[0].lower() in ('no', '0', 'false'):
                settings.round_uvs = False
            else:
                settings.round_uvs = True
                settings.round_unit = float(args[0])
                settings.round_fuzz = float(args[1]) if len(args) > 1 else settings.round_fuzz
        elif command == 'group':
            self._parse_group(args, palettizer)
        else:
            raise ValueError(f"unknown command :{command}")

    def _parse_group(self, args: List[str], palettizer: Palettizer) -> None:
        if not args:
            raise ValueError(":group needs a name")
        group = palettizer.get_group(args[0])
        i = 1
        while i < len(args):
            word = args[i].lower()
            if word == 'dir':
                group.dirname = args[i + 1]
                i += 2
            elif word == 'with':
                for name in args[i + 1:]:
                    group.add_depends(palettizer.get_group(name))
                break
            else:
                raise ValueError(f"unexpected '{args[i]}' in :group")

    def _parse_rule(self, line: str, number: int, palettizer: Palettizer) -> RuleLine:
        if ':' not in line:
            raise ValueError("expected 'patterns : directives'")
        left, right = line.split(':', 1)
        patterns = left.split()
        if not patterns:
            raise ValueError("no patterns before ':'")

        rule = RuleLine(patterns=patterns, line_number=number)
        numbers: List[int] = []
        words = right.split()
        i = 0
        while i < len(words):
            word = words[i]
            lower = word.lower()
            if lower.endswith('%'):
                rule.scale = float(lower[:-1])
            elif lower.isdigit():
                numbers.append(int(lower))
            elif lower == 'omit':
                rule.omit = True
            elif lower == 'cont':
                rule.cont = True
            elif lower == 'margin':
                rule.margin = int(words[i + 1])
                i += 1
            elif lower == 'repeat':
                rule.repeat_threshold = float(words[i + 1].rstrip('%'))
                i += 1
            elif lower in FORMATS:
                rule.format = lower
            elif lower in FILTERS:
                rule.minfilter = lower
                rule.magfilter = 'linear' if lower == 'mipmap' else lower
            else:
                rule.groups.append(palettizer.get_group(word))
            i += 1

        if len(numbers) in (2, 3):
            rule.x_size, rule.y_size = numbers[0], numbers[1]
            if len(numbers) == 3:
                rule.num_channels = numbers[2]
        elif len(numbers) == 1 and rule.scale is not None:
            rule.num_channels = numbers[0]
        elif numbers:
            raise ValueError(f"cannot interpret numbers {numbers}")
        if rule.num_channels is not None and not 1 <= rule.num_channels <= 4:
            raise ValueError(f"channel count must be 1-4, not {rule.num_channels}")

        if rule.is_model_line and (numbers or rule.scale is not None or rule.omit
                                   or rule.format != UNSPECIFIED or rule.minfilter != UNSPECIFIED
                                   or rule.margin is not None or rule.repeat_threshold is not None):
            raise ValueError("model lines accept only group names and 'cont'")
        return rule
