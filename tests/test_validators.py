import pytest

from cutintake.config import IntakeSettings
from cutintake.extraction.part import GrainMode, Part, PartAudit, PartSize, SourceMethod
from cutintake.extraction.validators import (
    ValidationPolicy,
    accuracy_score,
    calculate_accuracy_score,
    review_queue,
    validate,
    validate_parts,
)


def _clean_part(**overrides) -> Part:
    values = {
        "label": "Side",
        "qty": 2,
        "size": PartSize(L=720, W=560),
        "material_id": "oak",
        "audit": PartAudit(source_method=SourceMethod.MANUAL, confidence=0.4, created_at="2024-01-01T00:00:00Z"),
    }
    values.update(overrides)
    return Part(**values)


def test_clean_part_scores_full_confidence() -> None:
    result = validate(_clean_part())
    assert result.is_valid
    assert result.warnings == []
    assert result.field_confidence.overall == 1.0
    assert result.normalized_part.audit.confidence == 1.0
    assert result.normalized_part.audit.created_at == "2024-01-01T00:00:00Z"


def test_validate_is_idempotent_on_clean_parts() -> None:
    first = validate(_clean_part())
    second = validate(first.normalized_part)
    assert second.normalized_part.model_dump() == first.normalized_part.model_dump()
    assert second.warnings == first.warnings == []
    assert second.field_confidence.as_dict() == first.field_confidence.as_dict()


def test_oversized_length_is_warned() -> None:
    result = validate(_clean_part(size=PartSize(L=5000, W=500)))
    assert result.is_valid
    assert result.warnings == [
        "Length 5000mm exceeds typical max 3000mm",
        "Dimensions may exceed standard sheet sizes",
        "Length 5000mm is a round number - verify",
    ]
    assert result.field_confidence.length < 1.0
    assert result.field_confidence.length == pytest.approx(0.7 * 0.85 * 0.9)
    assert result.field_confidence.overall == pytest.approx(result.field_confidence.length)
    assert accuracy_score(result) == pytest.approx(0.7 * 0.85 * 0.9 * 100 - 15)


def test_small_dimensions_are_warned() -> None:
    result = validate(_clean_part(size=PartSize(L=720, W=5)))
    assert result.warnings == ["Width 5mm is very small"]
    assert result.field_confidence.width == pytest.approx(0.8)


def test_loose_mapping_is_coerced() -> None:
    result = validate({"L": "720", "W": "abc"})
    assert not result.is_valid
    assert result.errors == ["Missing or invalid dimensions"]
    assert "Quantity defaulted to 1" in result.warnings
    assert result.field_confidence.overall == 0.0
    assert result.normalized_part.size.L == 720.0
    assert result.normalized_part.audit.source_method is SourceMethod.MANUAL


def test_non_mapping_input_does_not_raise() -> None:
    result = validate("garbage")  # type: ignore[arg-type]
    assert result.errors == ["Missing or invalid dimensions"]


def test_nested_size_and_aliases() -> None:
    result = validate({"size": {"length": 800, "width": "400mm"}, "quantity": "3", "material": "MDF", "thickness": 16})
    part = result.normalized_part
    assert (part.size.L, part.size.W) == (800.0, 400.0)
    assert part.qty == 3
    assert part.material_id == "MDF"
    assert part.thickness_mm == 16.0
    assert result.warnings == []


@pytest.mark.parametrize(
    "qty, warning, confidence",
    [
        (600, "Quantity 600 is unusually high", 0.6),
        (60, "High quantity (60) - verify", 0.85),
        (0, "Quantity defaulted to 1", 0.7),
        ("two", "Quantity defaulted to 1", 0.7),
    ],
)
def test_quantity_checks(qty, warning: str, confidence: float) -> None:
    result = validate({"L": 720, "W": 560, "qty": qty, "material_id": "oak"})
    assert result.warnings == [warning]
    assert result.field_confidence.quantity == pytest.approx(confidence)


def test_material_checks() -> None:
    unknown = validate({"L": 720, "W": 560, "qty": 1, "material_id": "unobtainium"})
    assert unknown.warnings == ['Material code "unobtainium" not in standard list']
    assert unknown.field_confidence.material == pytest.approx(0.75)

    missing = validate({"L": 720, "W": 560, "qty": 1})
    assert missing.warnings == []
    assert missing.field_confidence.material == 0.5

    defaulted = validate({"L": 720, "W": 560, "qty": 1}, ValidationPolicy(default_material_id="W"))
    assert defaulted.warnings == ["Material defaulted"]
    assert defaulted.normalized_part.material_id == "W"
    assert defaulted.field_confidence.material == 0.5

    shop_code = validate({"L": 720, "W": 560, "qty": 1, "material_id": "ply"})
    assert shop_code.warnings == []


def test_auto_swap_is_opt_in() -> None:
    candidate = {"L": 300, "W": 600, "qty": 1, "material_id": "oak"}
    kept = validate(candidate)
    assert (kept.normalized_part.size.L, kept.normalized_part.size.W) == (300.0, 600.0)

    swapped = validate(candidate, ValidationPolicy(auto_swap_dimensions=True))
    assert (swapped.normalized_part.size.L, swapped.normalized_part.size.W) == (600.0, 300.0)
    assert swapped.warnings == ["Swapped L/W (length must be >= width)"]
    assert swapped.field_confidence.length == pytest.approx(0.95)


def test_operation_checks() -> None:
    candidate = {
        "L": 720,
        "W": 560,
        "qty": 1,
        "material_id": "oak",
        "thickness_mm": 18,
        "ops": {
            "edging": {"edges": {"L1": {}, "X1": {}}},
            "grooves": [{"side": "L2", "depth_mm": 25, "width_mm": 30}],
        },
    }
    result = validate(candidate)
    assert result.warnings == [
        "Invalid edge codes: X1",
        "Groove width 30mm is unusual",
        "Groove depth 25mm may be invalid",
    ]
    assert result.field_confidence.edge_banding == pytest.approx(0.7)
    assert result.field_confidence.grooving == pytest.approx(0.64)


def test_malformed_operations_are_dropped() -> None:
    result = validate({"L": 720, "W": 560, "qty": 1, "material_id": "oak", "ops": "bogus"})
    assert result.warnings == ["Ignored malformed operations"]
    assert result.normalized_part.ops is None


def test_thickness_outside_range_is_reset() -> None:
    result = validate({"L": 720, "W": 560, "qty": 1, "material_id": "oak", "thickness_mm": 150})
    assert result.normalized_part.thickness_mm == 18.0
    assert result.warnings == []


def test_audit_mapping_and_transient_fields() -> None:
    result = validate({"L": 720, "W": 560, "audit": {"source_method": "voice", "confidence": 0.3}})
    assert result.normalized_part.audit.source_method is SourceMethod.VOICE
    assert result.normalized_part.audit.confidence == result.field_confidence.overall

    reset = validate({"L": 720, "W": 560, "audit": {"source_method": "fax"}})
    assert reset.normalized_part.audit.source_method is SourceMethod.MANUAL

    part = _clean_part(original_text="Side 720x560", parse_warnings=["check"])
    normalized = validate(part).normalized_part
    assert normalized.original_text == "Side 720x560"
    assert normalized.parse_warnings == ["check"]
    assert normalized.part_id == part.part_id


def test_validate_parts_summary() -> None:
    batch = validate_parts([_clean_part(), {"L": 0, "W": 0}])
    assert batch.summary.total == 2
    assert batch.summary.valid == 1
    assert batch.summary.with_warnings == 1
    assert batch.summary.needs_review == 1
    assert batch.summary.average_confidence == pytest.approx(0.5)
    assert len(batch.valid_parts) == 1


def test_accuracy_scores() -> None:
    clean = validate(_clean_part())
    oversized = validate(_clean_part(size=PartSize(L=5000, W=500)))
    invalid = validate({"L": 0, "W": 0})
    assert accuracy_score(clean) == 100.0
    assert accuracy_score(invalid) == 0.0
    assert calculate_accuracy_score([clean, oversized]) == 69
    assert calculate_accuracy_score([]) == 0


def test_review_queue_orders_by_confidence() -> None:
    results = [
        validate(_clean_part()),
        validate(_clean_part(size=PartSize(L=5000, W=500))),
        validate({"L": 0, "W": 0}),
    ]
    queue = review_queue(results)
    assert [item.index for item in queue] == [2, 1]
    assert [item.severity for item in queue] == ["high", "medium"]
    assert queue[0].issues[0] == "Missing or invalid dimensions"
    assert queue[1].as_dict()["part_id"] == results[1].normalized_part.part_id


def test_review_queue_includes_confident_parts_with_warnings() -> None:
    result = validate({"L": 720, "W": 560, "qty": 60, "material_id": "oak"})
    queue = review_queue([result])
    assert len(queue) == 1
    assert queue[0].severity == "low"


def test_policy_from_settings() -> None:
    settings = IntakeSettings(material_codes=("X",), max_dimension_mm=2000.0, default_material_id="X")
    policy = ValidationPolicy.from_settings(settings)
    assert "X" in policy.valid_material_codes
    assert "oak" in policy.valid_material_codes
    assert policy.max_dimension_mm == 2000.0
    result = validate({"L": 2500, "W": 500, "qty": 1, "material_id": "X"}, policy)
    assert result.warnings == ["Length 2500mm exceeds typical max 2000mm"]


def test_grain_disables_rotation() -> None:
    result = validate({"L": 720, "W": 560, "qty": 1, "material_id": "mdf", "grain": "along_L", "allow_rotation": True})
    assert result.normalized_part.grain is GrainMode.ALONG_L
    assert result.normalized_part.allow_rotation is False
    assert result.warnings == ["Rotation disabled: grain direction is set"]

    again = validate(result.normalized_part)
    assert again.normalized_part.allow_rotation is False
    assert again.warnings == []


def test_grain_without_rotation_flag_is_silent() -> None:
    result = validate({"L": 720, "W": 560, "qty": 1, "material_id": "mdf", "grain": "along_W"})
    assert result.normalized_part.allow_rotation is False
    assert result.warnings == []


def test_validate_parts_cutlist_checks() -> None:
    batch = validate_parts(
        [
            {"part_id": "P-1", "L": 720, "W": 560, "qty": 2, "material_id": "oak"},
            {"part_id": "P-1", "L": 600, "W": 300, "qty": 3, "material_id": "mdf"},
            {"part_id": "P-2", "L": 400, "W": 300, "qty": 1, "material_id": "oak"},
        ]
    )
    assert batch.results[0].warnings == []
    assert batch.results[1].warnings == ["Duplicate part_id P-1"]
    assert batch.results[2].warnings == []
    assert batch.summary.with_warnings == 1
    assert batch.summary.total_pieces == 6
    assert batch.summary.materials_used == ("oak", "mdf")
    assert batch.summary.issues == ()
    assert batch.summary.as_dict()["materials_used"] == ["oak", "mdf"]


def test_validate_parts_batch_issues() -> None:
    empty = validate_parts([])
    assert empty.summary.issues == ("Cutlist has no parts",)
    assert empty.summary.total_pieces == 0

    policy = ValidationPolicy(max_total_pieces=5)
    crowded = validate_parts([_clean_part(qty=4), _clean_part(qty=3)], policy)
    assert crowded.summary.total_pieces == 7
    assert crowded.summary.issues == ("Too many total pieces (7). Maximum is 5",)
