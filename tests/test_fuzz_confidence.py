import random
import string

import pytest

from cutintake.extraction.tabular_parser import parse_csv
from cutintake.extraction.text_parser import parse_text
from cutintake.extraction.validators import validate
from cutintake.extraction.vision_adapter import parse_vision_response
from cutintake.extraction.voice_parser import parse_voice_input

_ALPHABET = string.ascii_letters + string.digits + " xX*×,.;:-=()\"'\n\t{}[]#@/"
_WORDS = ["seven", "twenty", "by", "five", "sixty", "quantity", "two", "oak", "mil", "edges", "hundred", "x", "720", "560"]


def _noise(rng: random.Random, size: int) -> str:
    return "".join(rng.choice(_ALPHABET) for _ in range(size))


def _in_range(value: float) -> bool:
    return 0.0 <= value <= 1.0


@pytest.mark.parametrize("seed", range(25))
def test_text_parser_confidence_is_bounded(seed: int) -> None:
    rng = random.Random(seed)
    result = parse_text(_noise(rng, rng.randint(0, 200)))
    assert all(_in_range(part.audit.confidence) for part in result.parts)
    assert result.stats.parsed_lines + result.stats.failed_lines == result.stats.total_lines


@pytest.mark.parametrize("seed", range(25))
def test_voice_parser_confidence_is_bounded(seed: int) -> None:
    rng = random.Random(seed)
    phrase = " ".join(rng.choice(_WORDS) for _ in range(rng.randint(0, 12)))
    result = parse_voice_input(phrase)
    assert _in_range(result.confidence)
    if result.part is not None:
        assert _in_range(result.part.audit.confidence)


@pytest.mark.parametrize("seed", range(25))
def test_vision_response_confidence_is_bounded(seed: int) -> None:
    rng = random.Random(seed)
    result = parse_vision_response(_noise(rng, rng.randint(0, 120)))
    assert _in_range(result.confidence)
    assert all(_in_range(part.audit.confidence) for part in result.parts)


@pytest.mark.parametrize("seed", range(15))
def test_csv_confidence_is_bounded(seed: int) -> None:
    rng = random.Random(seed)
    cells = string.ascii_letters + string.digits + " .-"
    rows = ["Name,Length,Width,Qty"]
    for _ in range(rng.randint(1, 8)):
        rows.append(",".join("".join(rng.choice(cells) for _ in range(rng.randint(0, 6))) for _ in range(4)))
    result = parse_csv("\n".join(rows))
    assert all(_in_range(part.audit.confidence) for part in result.parts)


@pytest.mark.parametrize("seed", range(25))
def test_validation_confidence_is_bounded(seed: int) -> None:
    rng = random.Random(seed)
    candidate = {
        "L": rng.choice([rng.uniform(-100, 9000), _noise(rng, 4), None]),
        "W": rng.choice([rng.uniform(-100, 9000), _noise(rng, 4), None]),
        "qty": rng.choice([rng.randint(-5, 1000), _noise(rng, 3), None]),
        "material_id": rng.choice(["oak", "W", _noise(rng, 5), None]),
        "thickness_mm": rng.choice([rng.uniform(0, 200), None]),
    }
    result = validate(candidate)
    confidence = result.field_confidence
    assert all(_in_range(value) for value in confidence.as_dict().values())
    assert confidence.overall == min(value for key, value in confidence.as_dict().items() if key != "overall")
    assert _in_range(result.normalized_part.audit.confidence)
