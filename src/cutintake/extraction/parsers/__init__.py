"""Parser primitives for deterministic part extraction."""

from .dimensions import DimensionMatch, extract_dimensions, parse_dimension_value
from .edges import detect_grooves, order_edges, parse_edges
from .grain import GrainSettings, detect_grain, resolve_rotation
from .labels import clean_label, extract_label
from .numbers import NumberSpan, coerce_number, extract_numbers, parse_number, parse_spoken_number
from .thickness import ThicknessMatch, extract_thickness
from .units import normalize_unit, to_millimeters

__all__ = [
    "DimensionMatch",
    "GrainSettings",
    "NumberSpan",
    "ThicknessMatch",
    "clean_label",
    "coerce_number",
    "detect_grain",
    "detect_grooves",
    "extract_dimensions",
    "extract_label",
    "extract_numbers",
    "extract_thickness",
    "normalize_unit",
    "order_edges",
    "parse_dimension_value",
    "parse_edges",
    "parse_number",
    "parse_spoken_number",
    "resolve_rotation",
    "to_millimeters",
]
