"""Validation and confidence scoring applied to every part candidate.

All ingestion channels converge here. :func:`validate` re-derives the
per-field confidence from the part itself rather than trusting the score the
extractor produced, so running it twice on a clean part is a no-op.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..config import IntakeSettings, get_settings
from .part import EDGE_IDS, GrainMode, Part, PartAudit, PartOps, PartSize, SourceMethod, generate_part_id
from .parsers.numbers import coerce_number
from .patterns import COMMON_SHEET_SIZES, MATERIAL_KEYWORDS

__all__ = [
    "BatchSummary",
    "BatchValidation",
    "FieldConfidence",
    "ReviewItem",
    "ValidationPolicy",
    "ValidationResult",
    "accuracy_score",
    "calculate_accuracy_score",
    "review_queue",
    "validate",
    "validate_parts",
]

LOGGER = logging.getLogger(__name__)

SHOP_MATERIAL_CODES: Tuple[str, ...] = ("W", "Ply", "B", "M", "MDF", "OAK", "BK", "WH", "NAT")
DEFAULT_MATERIAL_CODES: Tuple[str, ...] = SHOP_MATERIAL_CODES + tuple(MATERIAL_KEYWORDS)

SHEET_CHECK_MIN_LENGTH_MM = 2500.0
THICKNESS_RANGE_MM = (1.0, 100.0)
GROOVE_WIDTH_RANGE_MM = (1.0, 20.0)
HIGH_SEVERITY_BELOW = 0.5
ERROR_PENALTY = 25
WARNING_PENALTY = 5

# Multipliers applied to a field confidence when the matching check fires.
SWAP_FACTOR = 0.95
ABOVE_MAX_FACTOR = 0.7
BELOW_MIN_FACTOR = 0.8
SHEET_FACTOR = 0.85
ROUND_NUMBER_FACTOR = 0.9
QTY_DEFAULTED_FACTOR = 0.7
QTY_CEILING_FACTOR = 0.6
QTY_HIGH_FACTOR = 0.85
MATERIAL_MISSING_CONFIDENCE = 0.5
MATERIAL_UNKNOWN_FACTOR = 0.75
EDGE_INVALID_FACTOR = 0.7
GROOVE_FACTOR = 0.8


class ValidationPolicy(BaseModel):
    """Thresholds used by :func:`validate`."""

    max_dimension_mm: float = Field(default=3000.0, gt=0)
    min_dimension_mm: float = Field(default=10.0, ge=0)
    max_quantity: int = Field(default=500, ge=1)
    high_quantity: int = Field(default=50, ge=1)
    max_total_pieces: int = Field(default=100_000, ge=1)
    auto_swap_dimensions: bool = Field(
        default=False, description="Force L >= W; off because L is the grain edge, not the longer one"
    )
    valid_material_codes: Tuple[str, ...] = DEFAULT_MATERIAL_CODES
    default_material_id: str = ""
    default_thickness_mm: float = Field(default=18.0, gt=0)
    review_threshold: float = Field(default=0.7, ge=0.0, le=1.0)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_settings(cls, settings: IntakeSettings | None = None, **overrides: Any) -> "ValidationPolicy":
        settings = settings or get_settings()
        codes = tuple(dict.fromkeys(settings.material_codes + tuple(MATERIAL_KEYWORDS)))
        values: Dict[str, Any] = {
            "max_dimension_mm": settings.max_dimension_mm,
            "min_dimension_mm": settings.min_dimension_mm,
            "max_quantity": settings.max_quantity,
            "auto_swap_dimensions": settings.auto_swap_dimensions,
            "valid_material_codes": codes,
            "default_material_id": settings.default_material_id,
            "default_thickness_mm": settings.default_thickness_mm,
            "review_threshold": settings.review_threshold,
        }
        values.update(overrides)
        return cls(**values)


@dataclass
class FieldConfidence:
    length: float = 1.0
    width: float = 1.0
    quantity: float = 1.0
    material: float = 1.0
    edge_banding: float = 1.0
    grooving: float = 1.0
    overall: float = 1.0

    def resolve(self) -> float:
        self.overall = min(self.length, self.width, self.quantity, self.material, self.edge_banding, self.grooving)
        return self.overall

    def as_dict(self) -> Dict[str, float]:
        return {
            "length": self.length,
            "width": self.width,
            "quantity": self.quantity,
            "material": self.material,
            "edge_banding": self.edge_banding,
            "grooving": self.grooving,
            "overall": self.overall,
        }


@dataclass
class ValidationResult:
    normalized_part: Part
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    field_confidence: FieldConfidence = field(default_factory=FieldConfidence)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def issues(self) -> List[str]:
        return [*self.errors, *self.warnings]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "field_confidence": self.field_confidence.as_dict(),
            "normalized_part": self.normalized_part.model_dump(mode="json"),
        }


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _size(data: Mapping[str, Any]) -> Tuple[float, float]:
    size = data.get("size")
    if isinstance(size, PartSize):
        length, width = coerce_number(size.L), coerce_number(size.W)
    elif isinstance(size, Mapping):
        length = coerce_number(size.get("L", size.get("length")))
        width = coerce_number(size.get("W", size.get("width")))
    else:
        length = coerce_number(data.get("L", data.get("length")))
        width = coerce_number(data.get("W", data.get("width")))
    return length or 0.0, width or 0.0


def _grain(value: Any) -> GrainMode:
    try:
        return GrainMode(value)
    except ValueError:
        return GrainMode.NONE


def _ops(value: Any, warnings: List[str]) -> Optional[PartOps]:
    if value is None or isinstance(value, PartOps):
        return value
    try:
        return PartOps.model_validate(value)
    except ValidationError:
        warnings.append("Ignored malformed operations")
        return None


def _audit(value: Any) -> PartAudit:
    if isinstance(value, PartAudit):
        return value
    if isinstance(value, Mapping):
        try:
            return PartAudit.model_validate(value)
        except ValidationError:
            LOGGER.debug("audit_reset", extra={"keys": sorted(str(key) for key in value)})
    return PartAudit(source_method=SourceMethod.MANUAL)


def _check_dimensions(
    length: float,
    width: float,
    policy: ValidationPolicy,
    scores: FieldConfidence,
    errors: List[str],
    warnings: List[str],
) -> Tuple[float, float]:
    if length <= 0 or width <= 0:
        errors.append("Missing or invalid dimensions")
        scores.length = 0.0
        scores.width = 0.0
        return length, width

    if policy.auto_swap_dimensions and length < width:
        length, width = width, length
        warnings.append("Swapped L/W (length must be >= width)")
        scores.length *= SWAP_FACTOR
        scores.width *= SWAP_FACTOR

    if length > policy.max_dimension_mm:
        warnings.append(f"Length {length:g}mm exceeds typical max {policy.max_dimension_mm:g}mm")
        scores.length *= ABOVE_MAX_FACTOR
    if width > policy.max_dimension_mm:
        warnings.append(f"Width {width:g}mm exceeds typical max {policy.max_dimension_mm:g}mm")
        scores.width *= ABOVE_MAX_FACTOR
    if length < policy.min_dimension_mm:
        warnings.append(f"Length {length:g}mm is very small")
        scores.length *= BELOW_MIN_FACTOR
    if width < policy.min_dimension_mm:
        warnings.append(f"Width {width:g}mm is very small")
        scores.width *= BELOW_MIN_FACTOR

    exceeds_sheets = all(length > sheet_l or width > sheet_w for sheet_l, sheet_w in COMMON_SHEET_SIZES)
    if exceeds_sheets and length > SHEET_CHECK_MIN_LENGTH_MM:
        warnings.append("Dimensions may exceed standard sheet sizes")
        scores.length *= SHEET_FACTOR
        scores.width *= SHEET_FACTOR

    if length >= 1000 and length % 1000 == 0:
        warnings.append(f"Length {length:g}mm is a round number - verify")
        scores.length *= ROUND_NUMBER_FACTOR
    return length, width


def _check_quantity(raw: Any, policy: ValidationPolicy, scores: FieldConfidence, warnings: List[str]) -> int:
    value = coerce_number(raw)
    if value is None or value < 1:
        warnings.append("Quantity defaulted to 1")
        scores.quantity *= QTY_DEFAULTED_FACTOR
        return 1
    qty = int(round(value))
    if qty > policy.max_quantity:
        warnings.append(f"Quantity {qty} is unusually high")
        scores.quantity *= QTY_CEILING_FACTOR
    elif qty > policy.high_quantity:
        warnings.append(f"High quantity ({qty}) - verify")
        scores.quantity *= QTY_HIGH_FACTOR
    return qty


def _check_material(material: str, policy: ValidationPolicy, scores: FieldConfidence, warnings: List[str]) -> str:
    if not material:
        if policy.default_material_id:
            material = policy.default_material_id
            warnings.append("Material defaulted")
        scores.material = MATERIAL_MISSING_CONFIDENCE
        return material
    known = {code.upper() for code in policy.valid_material_codes}
    if known and material.upper() not in known:
        warnings.append(f'Material code "{material}" not in standard list')
        scores.material *= MATERIAL_UNKNOWN_FACTOR
    return material


def _check_ops(ops: Optional[PartOps], thickness: float, scores: FieldConfidence, warnings: List[str]) -> None:
    if ops is None:
        return
    if ops.edging is not None:
        invalid = [code for code in ops.edging.edges if code not in EDGE_IDS]
        if invalid:
            warnings.append(f"Invalid edge codes: {', '.join(invalid)}")
            scores.edge_banding *= EDGE_INVALID_FACTOR
    low, high = GROOVE_WIDTH_RANGE_MM
    for groove in ops.grooves:
        if groove.width_mm and not low <= groove.width_mm <= high:
            warnings.append(f"Groove width {groove.width_mm:g}mm is unusual")
            scores.grooving *= GROOVE_FACTOR
        if groove.depth_mm and not 1 <= groove.depth_mm <= thickness:
            warnings.append(f"Groove depth {groove.depth_mm:g}mm may be invalid")
            scores.grooving *= GROOVE_FACTOR


def validate(part: Union[Part, Mapping[str, Any]], policy: ValidationPolicy | None = None) -> ValidationResult:
    """Normalise ``part`` and score each field.

    Accepts a :class:`Part` or a loosely shaped mapping (``size`` or
    ``L``/``W``, ``qty`` or ``quantity`` ...). Malformed values are coerced or
    flagged; the function does not raise. The overall confidence is the
    minimum field confidence and replaces ``audit.confidence`` on the
    normalised copy; audit timestamps are preserved.
    """

    policy = policy or ValidationPolicy()
    if isinstance(part, Part):
        data: Mapping[str, Any] = {**part.model_dump(), "size": part.size, "ops": part.ops, "audit": part.audit}
    elif isinstance(part, Mapping):
        data = part
    else:
        data = {}

    errors: List[str] = []
    warnings: List[str] = []
    scores = FieldConfidence()

    length, width = _check_dimensions(*_size(data), policy, scores, errors, warnings)
    qty = _check_quantity(data.get("qty", data.get("quantity")), policy, scores, warnings)
    material = _check_material(_text(data.get("material_id", data.get("material"))) or "", policy, scores, warnings)

    thickness = coerce_number(data.get("thickness_mm", data.get("thickness")))
    low, high = THICKNESS_RANGE_MM
    if thickness is None or not low <= thickness <= high:
        thickness = policy.default_thickness_mm

    ops = _ops(data.get("ops"), warnings)
    _check_ops(ops, thickness, scores, warnings)
    overall = scores.resolve()

    audit = _audit(data.get("audit")).model_copy(update={"confidence": overall})
    grain = _grain(data.get("grain", GrainMode.NONE))
    requested_rotation = data.get("allow_rotation")
    allow_rotation = requested_rotation if isinstance(requested_rotation, bool) else True
    if grain is not GrainMode.NONE:
        # Grained parts may never be rotated by the optimizer.
        if requested_rotation is True:
            warnings.append("Rotation disabled: grain direction is set")
        allow_rotation = False
    normalized = Part(
        part_id=_text(data.get("part_id")) or generate_part_id(),
        label=_text(data.get("label")),
        qty=qty,
        size=PartSize(L=length, W=width),
        thickness_mm=thickness,
        material_id=material,
        grain=grain,
        allow_rotation=allow_rotation,
        ops=ops,
        group_id=_text(data.get("group_id")),
        notes=_text(data.get("notes")),
        audit=audit,
    )
    if isinstance(part, Part):
        normalized.original_text = part.original_text
        normalized.parse_warnings = list(part.parse_warnings)

    return ValidationResult(normalized_part=normalized, errors=errors, warnings=warnings, field_confidence=scores)


@dataclass(frozen=True)
class BatchSummary:
    total: int
    valid: int
    with_warnings: int
    needs_review: int
    average_confidence: float
    total_pieces: int = 0
    materials_used: Tuple[str, ...] = ()
    issues: Tuple[str, ...] = ()

    def as_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "valid": self.valid,
            "with_warnings": self.with_warnings,
            "needs_review": self.needs_review,
            "average_confidence": self.average_confidence,
            "total_pieces": self.total_pieces,
            "materials_used": list(self.materials_used),
            "issues": list(self.issues),
        }


@dataclass
class BatchValidation:
    valid_parts: List[Part]
    results: List[ValidationResult]
    summary: BatchSummary


def validate_parts(parts: Sequence[Union[Part, Mapping[str, Any]]], policy: ValidationPolicy | None = None) -> BatchValidation:
    """Validate every part, then apply the cutlist-level checks.

    A ``part_id`` seen earlier in the batch warns on each later occurrence.
    An empty batch and a piece count above ``policy.max_total_pieces`` are
    reported in ``summary.issues``.
    """

    policy = policy or ValidationPolicy()
    results = [validate(part, policy) for part in parts]

    seen: set[str] = set()
    for result in results:
        part_id = result.normalized_part.part_id
        if part_id in seen:
            result.warnings.append(f"Duplicate part_id {part_id}")
        seen.add(part_id)

    normalized = [result.normalized_part for result in results]
    total_pieces = sum(part.qty for part in normalized)
    issues: List[str] = []
    if not results:
        issues.append("Cutlist has no parts")
    if total_pieces > policy.max_total_pieces:
        issues.append(f"Too many total pieces ({total_pieces}). Maximum is {policy.max_total_pieces}")

    total_confidence = sum(result.field_confidence.overall for result in results)
    summary = BatchSummary(
        total=len(results),
        valid=sum(1 for result in results if result.is_valid),
        with_warnings=sum(1 for result in results if result.warnings),
        needs_review=sum(1 for result in results if result.field_confidence.overall < policy.review_threshold),
        average_confidence=total_confidence / len(results) if results else 0.0,
        total_pieces=total_pieces,
        materials_used=tuple(dict.fromkeys(part.material_id for part in normalized if part.material_id)),
        issues=tuple(issues),
    )
    LOGGER.debug("batch_validated", extra=summary.as_dict())
    return BatchValidation(
        valid_parts=[result.normalized_part for result in results if result.is_valid],
        results=results,
        summary=summary,
    )


def accuracy_score(result: ValidationResult) -> float:
    """0-100 score: confidence-derived base minus fixed penalties per issue."""

    score = result.field_confidence.overall * 100
    score -= len(result.errors) * ERROR_PENALTY
    score -= len(result.warnings) * WARNING_PENALTY
    return max(0.0, min(100.0, score))


def calculate_accuracy_score(results: Sequence[ValidationResult]) -> int:
    if not results:
        return 0
    return round(sum(accuracy_score(result) for result in results) / len(results))


@dataclass(frozen=True)
class ReviewItem:
    index: int
    part: Part
    issues: Tuple[str, ...]
    confidence: float
    severity: str

    def as_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "part_id": self.part.part_id,
            "issues": list(self.issues),
            "confidence": self.confidence,
            "severity": self.severity,
        }


def _severity(confidence: float, threshold: float) -> str:
    if confidence < HIGH_SEVERITY_BELOW:
        return "high"
    if confidence < threshold:
        return "medium"
    return "low"


def review_queue(results: Sequence[ValidationResult], threshold: float = 0.7) -> List[ReviewItem]:
    """Parts needing a human look, least trustworthy first.

    A part is queued when its confidence is below ``threshold`` or when it
    carries any error or warning.
    """

    items = [
        ReviewItem(
            index=index,
            part=result.normalized_part,
            issues=tuple(result.issues),
            confidence=result.field_confidence.overall,
            severity=_severity(result.field_confidence.overall, threshold),
        )
        for index, result in enumerate(results)
        if result.field_confidence.overall < threshold or result.issues
    ]
    return sorted(items, key=lambda item: item.confidence)
