"""Lexical matchers for material keywords."""

from .materials import MaterialMatch, MaterialMatcher, find_material_match, load_material_lexicon

__all__ = ["MaterialMatch", "MaterialMatcher", "find_material_match", "load_material_lexicon"]
