"""Rules file parsing and matching."""
from .rules import MODEL_SUFFIX, RuleLine, RulesFile

__all__ = ["MODEL_SUFFIX", "RuleLine", "RulesFile"]
