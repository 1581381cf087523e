"""Canonical part model shared by every ingestion channel."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = [
    "EDGE_IDS",
    "EdgeSpec",
    "EdgingOps",
    "GrainMode",
    "GrooveOp",
    "Part",
    "PartAudit",
    "PartOps",
    "PartSize",
    "SourceMethod",
    "build_edging",
    "build_job_payload",
    "generate_part_id",
    "truncate_label",
    "utc_now",
]

EDGE_IDS: tuple[str, ...] = ("L1", "L2", "W1", "W2")
LABEL_MAX_LENGTH = 100


class SourceMethod(str, Enum):
    """Ingestion channel that produced a part."""

    MANUAL = "manual"
    PASTE_PARSER = "paste_parser"
    EXCEL_TABLE = "excel_table"
    FILE_UPLOAD = "file_upload"
    OCR_TEMPLATE = "ocr_template"
    OCR_GENERIC = "ocr_generic"
    VOICE = "voice"
    API = "api"


class GrainMode(str, Enum):
    NONE = "none"
    ALONG_L = "along_L"
    ALONG_W = "along_W"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def generate_part_id() -> str:
    return f"P-{uuid4().hex[:12]}"


def truncate_label(label: Optional[str], limit: int = LABEL_MAX_LENGTH) -> Optional[str]:
    """Trim ``label`` and shorten it with an ellipsis when it exceeds ``limit``."""

    if label is None:
        return None
    cleaned = label.strip()
    if not cleaned:
        return None
    if len(cleaned) > limit:
        return cleaned[: limit - 3] + "..."
    return cleaned


class PartSize(BaseModel):
    """Cut size in millimetres. ``L`` is the grain reference edge."""

    L: float
    W: float

    model_config = ConfigDict(frozen=True)


class EdgeSpec(BaseModel):
    apply: bool = True
    edgeband_id: Optional[str] = None


class EdgingOps(BaseModel):
    edges: Dict[str, EdgeSpec] = Field(default_factory=dict)


class GrooveOp(BaseModel):
    side: str
    depth_mm: float
    width_mm: float
    offset_mm: float = 0.0
    groove_id: Optional[str] = None
    face: Optional[str] = None


class PartOps(BaseModel):
    edging: Optional[EdgingOps] = None
    grooves: List[GrooveOp] = Field(default_factory=list)

    def is_empty(self) -> bool:
        has_edges = self.edging is not None and any(spec.apply for spec in self.edging.edges.values())
        return not has_edges and not self.grooves


class PartAudit(BaseModel):
    """Provenance record; the only place the ingestion channel is stored."""

    source_method: SourceMethod
    source_ref: Optional[str] = None
    confidence: float = 1.0
    human_verified: bool = False
    created_at: str = Field(default_factory=utc_now)
    updated_at: str = Field(default_factory=utc_now)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        try:
            numeric = float(value)
        except (TypeError, ValueError):
            return 0.0
        if numeric != numeric:
            return 0.0
        return max(0.0, min(1.0, numeric))


class Part(BaseModel):
    """A single cut-panel specification.

    ``original_text`` and ``parse_warnings`` are transient diagnostics: they are
    excluded from serialisation and dropped by :meth:`accepted`.
    """

    part_id: str = Field(default_factory=generate_part_id)
    label: Optional[str] = None
    qty: int = Field(default=1, ge=1)
    size: PartSize
    thickness_mm: float = 18.0
    material_id: str = ""
    grain: GrainMode = GrainMode.NONE
    allow_rotation: bool = True
    ops: Optional[PartOps] = None
    group_id: Optional[str] = None
    notes: Optional[str] = None
    audit: PartAudit

    original_text: Optional[str] = Field(default=None, exclude=True)
    parse_warnings: List[str] = Field(default_factory=list, exclude=True)

    @field_validator("label", mode="before")
    @classmethod
    def _truncate_label(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        return truncate_label(str(value))

    @property
    def is_parseable(self) -> bool:
        return self.size.L > 0 and self.size.W > 0

    @property
    def edges(self) -> List[str]:
        """Edge codes with banding applied, in canonical order first."""

        if self.ops is None or self.ops.edging is None:
            return []
        applied = [code for code, spec in self.ops.edging.edges.items() if spec.apply]
        return sorted(applied, key=lambda code: (EDGE_IDS.index(code) if code in EDGE_IDS else len(EDGE_IDS), code))

    @property
    def confidence(self) -> float:
        return self.audit.confidence

    def accepted(self) -> "Part":
        """Return a copy without the transient parser diagnostics."""

        return self.model_copy(update={"original_text": None, "parse_warnings": []}, deep=True)

    def to_job_dict(self) -> Dict[str, Any]:
        """Serialise the part with the field names expected by the cutting service."""

        payload: Dict[str, Any] = {
            "part_id": self.part_id,
            "label": self.label,
            "qty": self.qty,
            "size": {"L": self.size.L, "W": self.size.W},
            "thickness_mm": self.thickness_mm,
            "material_id": self.material_id,
            "grain": self.grain.value,
            "allow_rotation": self.allow_rotation,
        }
        if self.ops is not None and not self.ops.is_empty():
            ops: Dict[str, Any] = {}
            if self.ops.edging is not None:
                ops["edging"] = {
                    "edges": {
                        code: {"apply": spec.apply, "edgeband_id": spec.edgeband_id}
                        for code, spec in self.ops.edging.edges.items()
                    }
                }
            if self.ops.grooves:
                ops["grooves"] = [
                    {
                        "side": groove.side,
                        "depth_mm": groove.depth_mm,
                        "width_mm": groove.width_mm,
                        "offset_mm": groove.offset_mm,
                    }
                    for groove in self.ops.grooves
                ]
            payload["ops"] = ops
        if self.group_id:
            payload["group_id"] = self.group_id
        return payload


def build_edging(edges: Iterable[str], edgeband_id: Optional[str] = None) -> Optional[EdgingOps]:
    """Turn a list of edge codes into an :class:`EdgingOps`, ``None`` when empty."""

    specs: Dict[str, EdgeSpec] = {}
    for code in edges:
        if code not in specs:
            specs[code] = EdgeSpec(apply=True, edgeband_id=edgeband_id)
    if not specs:
        return None
    return EdgingOps(edges=specs)


def build_job_payload(parts: Sequence[Part], *, job_name: Optional[str] = None) -> Dict[str, Any]:
    """Assemble the job document submitted to the external cutting optimizer."""

    payload: Dict[str, Any] = {"parts": [part.to_job_dict() for part in parts]}
    if job_name:
        payload["job_name"] = job_name
    return payload
