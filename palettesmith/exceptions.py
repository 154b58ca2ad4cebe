"""Custom exceptions for palettization runs"""


class PalettizeError(Exception):
    """Base exception for palettization errors"""
    pass


class ConfigError(PalettizeError):
    """Unusable configuration (rules file, output image type)"""
    pass


class ReadError(PalettizeError):
    """A model document, source image or session file could not be read"""
    pass


class WriteError(PalettizeError):
    """A generated image or model document could not be written"""
    pass


class AssignmentInvariantError(PalettizeError, AssertionError):
    """Group cover ran out of candidate groups (cross-linking was skipped)"""
    pass
