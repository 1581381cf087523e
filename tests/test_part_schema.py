import pytest
from pydantic import ValidationError

from cutintake.extraction.part import (
    EdgeSpec,
    EdgingOps,
    GrooveOp,
    Part,
    PartAudit,
    PartOps,
    PartSize,
    SourceMethod,
    build_edging,
    build_job_payload,
    truncate_label,
)
from cutintake.extraction.patterns import DIMENSION_PATTERNS, MATERIAL_KEYWORDS, QUANTITY_PATTERNS


def _part(**overrides) -> Part:
    values = {
        "label": "Side",
        "qty": 2,
        "size": PartSize(L=720, W=560),
        "material_id": "oak",
        "audit": PartAudit(source_method=SourceMethod.MANUAL),
    }
    values.update(overrides)
    return Part(**values)


def test_part_defaults() -> None:
    part = Part(size=PartSize(L=720, W=560), audit=PartAudit(source_method=SourceMethod.API))
    assert part.qty == 1
    assert part.thickness_mm == 18.0
    assert part.material_id == ""
    assert part.allow_rotation is True
    assert part.part_id.startswith("P-")
    assert part.audit.created_at.endswith("Z")


def test_long_label_is_truncated() -> None:
    part = _part(label="x" * 150)
    assert len(part.label) == 100
    assert part.label.endswith("...")
    assert truncate_label("   ") is None


@pytest.mark.parametrize("value, expected", [(1.5, 1.0), (-1, 0.0), ("0.4", 0.4), ("bad", 0.0), (float("nan"), 0.0)])
def test_audit_confidence_is_clamped(value, expected) -> None:
    assert PartAudit(source_method=SourceMethod.MANUAL, confidence=value).confidence == pytest.approx(expected)


def test_quantity_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        _part(qty=0)


def test_edges_follow_canonical_order() -> None:
    edging = EdgingOps(edges={"W2": EdgeSpec(), "L1": EdgeSpec(), "L2": EdgeSpec(apply=False)})
    part = _part(ops=PartOps(edging=edging))
    assert part.edges == ["L1", "W2"]
    assert _part().edges == []


def test_build_edging() -> None:
    edging = build_edging(["L1", "L1", "W1"], edgeband_id="EB-22")
    assert list(edging.edges) == ["L1", "W1"]
    assert edging.edges["L1"].edgeband_id == "EB-22"
    assert build_edging([]) is None


def test_transient_fields_are_not_serialised() -> None:
    part = _part(original_text="Side 720x560", parse_warnings=["check"])
    dumped = part.model_dump()
    assert "original_text" not in dumped
    assert "parse_warnings" not in dumped
    accepted = part.accepted()
    assert accepted.original_text is None
    assert accepted.parse_warnings == []
    assert part.parse_warnings == ["check"]


def test_job_dict_omits_empty_operations() -> None:
    payload = _part(ops=PartOps()).to_job_dict()
    assert "ops" not in payload
    assert payload["size"] == {"L": 720.0, "W": 560.0}
    assert payload["grain"] == "none"
    assert "group_id" not in payload


def test_job_payload_with_operations() -> None:
    groove = GrooveOp(side="L2", depth_mm=10, width_mm=4, offset_mm=10, groove_id="back")
    part = _part(ops=PartOps(edging=build_edging(["L1"]), grooves=[groove]), group_id="cab-1")
    payload = build_job_payload([part], job_name="Kitchen")
    assert payload["job_name"] == "Kitchen"
    job_part = payload["parts"][0]
    assert job_part["group_id"] == "cab-1"
    assert job_part["ops"]["edging"]["edges"]["L1"] == {"apply": True, "edgeband_id": None}
    assert job_part["ops"]["grooves"] == [{"side": "L2", "depth_mm": 10.0, "width_mm": 4.0, "offset_mm": 10.0}]
    assert "job_name" not in build_job_payload([part])


def test_recognizer_tables_are_read_only() -> None:
    with pytest.raises(TypeError):
        MATERIAL_KEYWORDS["teak"] = ("teak",)  # type: ignore[index]
    with pytest.raises(TypeError):
        DIMENSION_PATTERNS["extra"] = DIMENSION_PATTERNS["cross"]  # type: ignore[index]
    assert isinstance(QUANTITY_PATTERNS, tuple)
