import math

import pytest

from cutintake.extraction.normalize import (
    ConfidenceFlags,
    are_dimensions_reasonable,
    calculate_confidence,
    mask_spans,
    normalize_confidence,
    normalize_text,
    split_lines,
)


def test_normalize_text_folds_whitespace_and_case() -> None:
    assert normalize_text("  Side\tPanel   720x560 ") == "side panel 720x560"
    assert normalize_text("Side  Panel", lowercase=False) == "Side Panel"
    assert normalize_text("") == ""


def test_normalize_text_unicode_forms() -> None:
    assert normalize_text("７２０×５６０") == "720×560"
    assert normalize_text("Shelf – oak") == "shelf - oak"
    assert normalize_text("“Door”") == '"door"'


def test_split_lines_drops_blank_lines() -> None:
    assert split_lines("a\r\n\n  b  \r c\n") == ["a", "b", "c"]
    assert split_lines("") == []


def test_mask_spans_keeps_offsets() -> None:
    masked = mask_spans("abc def", [(0, 3), None, (10, 12)])
    assert masked == "    def"
    assert len(masked) == len("abc def")


def test_confidence_requires_dimensions() -> None:
    assert calculate_confidence(ConfidenceFlags(dimensions=False, quantity=True, label=True)) == 0.0


@pytest.mark.parametrize(
    "flags, expected",
    [
        (ConfidenceFlags(dimensions=True), 0.30),
        (ConfidenceFlags(dimensions=True, reasonable=True), 0.40),
        (ConfidenceFlags(dimensions=True, reasonable=True, quantity=True), 0.55),
        (ConfidenceFlags(dimensions=True, reasonable=True, quantity=True, label=True), 0.75),
        (
            ConfidenceFlags(
                dimensions=True, reasonable=True, quantity=True, label=True, material=True, thickness=True
            ),
            1.0,
        ),
    ],
)
def test_confidence_is_additive(flags: ConfidenceFlags, expected: float) -> None:
    assert calculate_confidence(flags) == pytest.approx(expected)


def test_reasonable_dimension_band() -> None:
    assert are_dimensions_reasonable(720, 560)
    assert are_dimensions_reasonable(10, 5000)
    assert not are_dimensions_reasonable(5, 100)
    assert not are_dimensions_reasonable(720, 6000)


@pytest.mark.parametrize(
    "value, expected",
    [(0.5, 0.5), (1.5, 1.0), (-0.2, 0.0), (None, 0.0), (math.nan, 0.0), ("0.3", 0.3), ("bad", 0.0)],
)
def test_normalize_confidence(value, expected) -> None:
    assert normalize_confidence(value) == pytest.approx(expected)
