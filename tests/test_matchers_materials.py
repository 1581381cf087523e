import json
from pathlib import Path

from cutintake.extraction.matchers.materials import (
    MaterialDefinition,
    MaterialMatcher,
    find_material_match,
    load_material_lexicon,
)


def test_longest_keyword_wins() -> None:
    match = find_material_match("Side panel white melamine")
    assert match is not None
    assert match.value == "white-melamine"
    assert match.surface == "white melamine"


def test_surface_keeps_original_casing() -> None:
    match = find_material_match("Shelf in MDF")
    assert match is not None
    assert match.value == "mdf"
    assert match.surface == "MDF"
    assert match.span == (9, 12)


def test_keywords_require_word_boundaries() -> None:
    assert find_material_match("Cashier desk") is None
    assert find_material_match("mdf-board") is None
    assert find_material_match("") is None


def test_accented_input_is_folded() -> None:
    matcher = MaterialMatcher({"beech": ("beech",)})
    match = matcher.best("BÉECH door")
    assert match is not None
    assert match.value == "beech"


def test_custom_table_and_matcher_instances() -> None:
    table = {"birch-ply": ("birch ply",)}
    assert find_material_match("Birch Ply door", table).value == "birch-ply"
    matcher = MaterialMatcher(table)
    assert find_material_match("Birch Ply door", matcher).surface == "Birch Ply"
    assert matcher.material_ids == ("birch-ply",)


def test_earliest_match_on_equal_length() -> None:
    matcher = MaterialMatcher([MaterialDefinition("a", ("oak",)), MaterialDefinition("b", ("ash",))])
    assert matcher.best("ash and oak").value == "b"
    assert len(matcher.find("ash and oak")) == 2


def test_load_material_lexicon_extends_builtin_table(tmp_path: Path) -> None:
    path = tmp_path / "materials.json"
    path.write_text(
        json.dumps(
            {
                "materials": [
                    {"id": "birch-ply", "keywords": ["birch ply", "bb ply"]},
                    {"id": "oak", "synonyms": ["quercus"]},
                    {"keywords": ["ignored"]},
                ]
            }
        ),
        encoding="utf-8",
    )
    definitions = {definition.id: definition for definition in load_material_lexicon(path)}
    assert definitions["birch-ply"].keywords == ("birch ply", "bb ply")
    assert "quercus" in definitions["oak"].keywords
    assert "oak" in definitions["oak"].keywords
    assert "mdf" in definitions

    matcher = MaterialMatcher(list(definitions.values()))
    assert matcher.best("Quercus top").value == "oak"
