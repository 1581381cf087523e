import pytest

from cutintake.extraction.parsers.numbers import (
    NumberSpan,
    coerce_number,
    extract_numbers,
    parse_number,
    parse_spoken_number,
    spoken_token_value,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("720", 720.0),
        ("12.5", 12.5),
        ("12,5", 12.5),
        ("1,200", 1200.0),
        ("1,200.5", 1200.5),
        (" 18 ", 18.0),
        ("1 200", 1200.0),
        ("-3", -3.0),
    ],
)
def test_parse_number(raw: str, expected: float) -> None:
    assert parse_number(raw) == pytest.approx(expected)


@pytest.mark.parametrize("raw", ["abc", "", "1,2,3"])
def test_parse_number_invalid(raw: str) -> None:
    with pytest.raises(ValueError):
        parse_number(raw)


@pytest.mark.parametrize(
    "value, expected",
    [
        (720, 720.0),
        (12.5, 12.5),
        ("720mm", 720.0),
        ("  560 ", 560.0),
        ("1,5", 1.5),
        ("-5", -5.0),
        (None, None),
        (True, None),
        (float("nan"), None),
        (float("inf"), None),
        ("n/a", None),
        ("", None),
    ],
)
def test_coerce_number(value, expected) -> None:
    result = coerce_number(value)
    if expected is None:
        assert result is None
    else:
        assert result == pytest.approx(expected)


def test_extract_numbers_reports_offsets() -> None:
    spans = list(extract_numbers("720x560 qty 2"))
    assert [span.value for span in spans] == [720.0, 560.0, 2.0]
    assert spans[0] == NumberSpan(value=720.0, raw="720", start=0, end=3)
    assert spans[2].start == 12


@pytest.mark.parametrize(
    "text, expected",
    [
        ("720", 720.0),
        ("five sixty", 560.0),
        ("seven twenty", 720.0),
        ("twenty five", 25.0),
        ("twenty-five", 25.0),
        ("seven hundred twenty", 720.0),
        ("seven hundred and twenty", 720.0),
        ("twelve hundred", 1200.0),
        ("one thousand two hundred", 1200.0),
        ("eighteen", 18.0),
        ("1,200", 1200.0),
    ],
)
def test_parse_spoken_number(text: str, expected: float) -> None:
    assert parse_spoken_number(text) == pytest.approx(expected)


@pytest.mark.parametrize("text", ["banana", "", "0", "zero"])
def test_parse_spoken_number_rejects_non_positive(text: str) -> None:
    assert parse_spoken_number(text) is None


def test_spoken_token_value_accepts_numerals_with_suffix() -> None:
    assert spoken_token_value("720mm") == 720.0
    assert spoken_token_value("Sixty") == 60.0
    assert spoken_token_value("for") == 4.0
    assert spoken_token_value("shelf") is None


def test_spoken_number_uses_given_table() -> None:
    table = {"dozen": 12}
    assert parse_spoken_number("dozen", table) == 12.0
    assert parse_spoken_number("two", table) is None
    assert parse_spoken_number("2", table) == 2.0
