"""Spreadsheet and CSV ingestion built on pandas.

Every cell is read as a string so that the per-row rules (tolerant numeric
coercion, grain and rotation vocabularies) stay in one place regardless of
how the workbook typed its columns.
"""
from __future__ import annotations

import asyncio
import csv
import io
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import aiohttp
import pandas as pd
from pydantic import BaseModel, ConfigDict, Field

from ..config import IntakeSettings, get_settings
from .diagnostics import ParseIssue
from .part import EDGE_IDS, GrainMode, Part, PartAudit, PartOps, PartSize, SourceMethod, build_edging
from .parsers.dimensions import parse_dimension_value
from .parsers.edges import order_edges, parse_edges
from .parsers.numbers import coerce_number
from .patterns import EDGEBAND_PATTERNS, GRAIN_VALUE_PATTERNS, HEADER_PATTERNS, ROTATION_VALUE_PATTERNS, UNIT_HEADER_PATTERNS

__all__ = [
    "ColumnMapping",
    "MappingCheck",
    "SheetInfo",
    "TabularParseOptions",
    "TabularParseResult",
    "TabularStats",
    "detect_column_mapping",
    "fetch_table_bytes",
    "get_sheet_info",
    "parse_csv",
    "parse_excel",
    "parse_frame",
    "parse_remote_table",
    "preview_mapping",
    "validate_mapping",
]

LOGGER = logging.getLogger(__name__)

REQUIRED_COLUMNS: Tuple[str, ...] = ("length", "width")
TABULAR_CONFIDENCE = 0.9
HEADER_ROW_OFFSET = 2

_CSV_DELIMITERS = "\t;,"
_EDGE_CODE_LIST = re.compile(r"^\s*(?:[lw][12]\s*[,/+&\s]?\s*)+$", re.IGNORECASE)
_ALL_EDGES = re.compile(r"^(?:all|yes|y|4|true)$", re.IGNORECASE)


class ColumnMapping(BaseModel):
    """Spreadsheet header assigned to each part field."""

    label: Optional[str] = None
    length: Optional[str] = None
    width: Optional[str] = None
    thickness: Optional[str] = None
    qty: Optional[str] = None
    material: Optional[str] = None
    grain: Optional[str] = None
    rotation: Optional[str] = None
    group: Optional[str] = None
    notes: Optional[str] = None
    edging: Optional[str] = None

    def assigned(self) -> Dict[str, str]:
        return {name: column for name, column in self.model_dump().items() if column}


@dataclass(frozen=True)
class MappingCheck:
    valid: bool
    missing: Tuple[str, ...]


@dataclass(frozen=True)
class SheetInfo:
    name: str
    row_count: int
    column_count: int
    headers: Tuple[str, ...]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "row_count": self.row_count,
            "column_count": self.column_count,
            "headers": list(self.headers),
        }


class TabularParseOptions(BaseModel):
    mapping: Optional[ColumnMapping] = Field(default=None, description="Explicit mapping; detected from headers otherwise")
    sheet: Optional[Union[int, str]] = Field(default=None, description="Sheet name or index; first sheet by default")
    data_start_row: Optional[int] = Field(default=None, ge=1, description="1-based index of the first data row to read")
    default_material_id: str = ""
    default_thickness_mm: float = Field(default=18.0, gt=0)
    skip_empty: bool = True
    confidence: float = Field(default=TABULAR_CONFIDENCE, ge=0.0, le=1.0)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_settings(cls, settings: IntakeSettings | None = None, **overrides: Any) -> "TabularParseOptions":
        settings = settings or get_settings()
        values: Dict[str, Any] = {
            "default_material_id": settings.default_material_id,
            "default_thickness_mm": settings.default_thickness_mm,
        }
        values.update(overrides)
        return cls(**values)


@dataclass
class TabularStats:
    total_rows: int = 0
    parsed_rows: int = 0
    skipped_rows: int = 0
    errors: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "total_rows": self.total_rows,
            "parsed_rows": self.parsed_rows,
            "skipped_rows": self.skipped_rows,
            "errors": self.errors,
        }


@dataclass
class TabularParseResult:
    parts: List[Part] = field(default_factory=list)
    headers: List[str] = field(default_factory=list)
    detected_mapping: ColumnMapping = field(default_factory=ColumnMapping)
    stats: TabularStats = field(default_factory=TabularStats)
    errors: List[ParseIssue] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.parts)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "parts": [part.model_dump(mode="json") for part in self.parts],
            "headers": list(self.headers),
            "detected_mapping": self.detected_mapping.assigned(),
            "stats": self.stats.as_dict(),
            "errors": [error.as_dict() for error in self.errors],
            "warnings": list(self.warnings),
        }


def _failure(message: str, *, headers: Sequence[str] = (), mapping: ColumnMapping | None = None, total_rows: int = 0) -> TabularParseResult:
    return TabularParseResult(
        headers=list(headers),
        detected_mapping=mapping or ColumnMapping(),
        stats=TabularStats(total_rows=total_rows, errors=1),
        errors=[ParseIssue(0, "", message, location="row")],
    )


def detect_column_mapping(headers: Sequence[Any]) -> ColumnMapping:
    """Assign headers to part fields.

    Fields are visited in declaration order and take the first unclaimed
    header matching one of their patterns. Headers carrying a unit
    (``"L (mm)"``, ``"W[mm]"``) are considered afterwards for dimension fields
    still unassigned.
    """

    names = [str(header) for header in headers]
    assigned: Dict[str, str] = {}
    used: set[str] = set()

    for field_name, patterns in HEADER_PATTERNS.items():
        for header in names:
            if header in used:
                continue
            normalized = header.strip().lower()
            if any(pattern.match(normalized) for pattern in patterns):
                assigned[field_name] = header
                used.add(header)
                break

    for header in names:
        if header in used:
            continue
        normalized = header.strip().lower()
        for field_name, pattern in UNIT_HEADER_PATTERNS.items():
            if field_name not in assigned and pattern.match(normalized):
                assigned[field_name] = header
                used.add(header)
                break

    return ColumnMapping(**assigned)


def validate_mapping(mapping: ColumnMapping) -> MappingCheck:
    missing = tuple(name for name in REQUIRED_COLUMNS if not getattr(mapping, name))
    return MappingCheck(valid=not missing, missing=missing)


def _cell(row: pd.Series, column: Optional[str]) -> str:
    if not column or column not in row.index:
        return ""
    value = row[column]
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    return str(value).strip()


def _dimension(raw: str) -> Optional[float]:
    if not raw:
        return None
    value = parse_dimension_value(raw)
    if value is None:
        value = coerce_number(raw)
    return value


def _grain(raw: str) -> GrainMode:
    for mode, pattern in GRAIN_VALUE_PATTERNS.items():
        if pattern.match(raw):
            return GrainMode(mode)
    return GrainMode.NONE


def _rotation(raw: str) -> Optional[bool]:
    for value, pattern in ROTATION_VALUE_PATTERNS.items():
        if pattern.match(raw):
            return value
    return None


def _edges(raw: str) -> List[str]:
    if not raw:
        return []
    if _EDGE_CODE_LIST.match(raw):
        return order_edges(EDGEBAND_PATTERNS["code"].findall(raw))
    if _ALL_EDGES.match(raw):
        return list(EDGE_IDS)
    return parse_edges(raw, spoken=True)


def _row_part(row: pd.Series, row_number: int, mapping: ColumnMapping, options: TabularParseOptions) -> Part:
    label = _cell(row, mapping.label) or None
    thickness = coerce_number(_cell(row, mapping.thickness))
    if thickness is None or thickness <= 0:
        thickness = options.default_thickness_mm
    qty_value = coerce_number(_cell(row, mapping.qty))
    qty = max(1, int(round(qty_value))) if qty_value is not None else 1

    grain = _grain(_cell(row, mapping.grain))
    allow_rotation = grain is GrainMode.NONE
    rotation = _rotation(_cell(row, mapping.rotation))
    if rotation is not None:
        allow_rotation = rotation
    if grain is not GrainMode.NONE:
        allow_rotation = False

    edges = _edges(_cell(row, mapping.edging))
    return Part(
        label=label,
        qty=qty,
        size=PartSize(L=_dimension(_cell(row, mapping.length)), W=_dimension(_cell(row, mapping.width))),
        thickness_mm=thickness,
        material_id=_cell(row, mapping.material) or options.default_material_id,
        grain=grain,
        allow_rotation=allow_rotation,
        ops=PartOps(edging=build_edging(edges)) if edges else None,
        group_id=_cell(row, mapping.group) or None,
        notes=_cell(row, mapping.notes) or None,
        audit=PartAudit(
            source_method=SourceMethod.EXCEL_TABLE,
            source_ref=f"row:{row_number}",
            confidence=options.confidence,
        ),
    )


def parse_frame(frame: pd.DataFrame, options: TabularParseOptions | None = None) -> TabularParseResult:
    """Turn a header-indexed frame into parts, one row at a time."""

    options = options or TabularParseOptions()
    frame = frame.rename(columns=lambda column: str(column).strip())
    headers = [str(column) for column in frame.columns]
    if frame.empty:
        return _failure("No data found", headers=headers)

    mapping = options.mapping or detect_column_mapping(headers)
    check = validate_mapping(mapping)
    if not check.valid:
        return _failure(
            f"Missing required columns: {', '.join(check.missing)}",
            headers=headers,
            mapping=mapping,
            total_rows=len(frame),
        )

    result = TabularParseResult(headers=headers, detected_mapping=mapping)
    result.stats.total_rows = len(frame)
    start = options.data_start_row - 1 if options.data_start_row else 0

    for index in range(start, len(frame)):
        row = frame.iloc[index]
        row_number = index + HEADER_ROW_OFFSET
        raw_text = ", ".join(value for value in (_cell(row, column) for column in headers) if value)
        length = _dimension(_cell(row, mapping.length))
        width = _dimension(_cell(row, mapping.width))

        if not length and not width and options.skip_empty:
            result.stats.skipped_rows += 1
            continue
        if length is None or length <= 0:
            result.errors.append(ParseIssue(row_number, raw_text, "Invalid or missing length", location="row"))
            continue
        if width is None or width <= 0:
            result.errors.append(ParseIssue(row_number, raw_text, "Invalid or missing width", location="row"))
            continue

        try:
            part = _row_part(row, row_number, mapping, options)
        except (ValueError, TypeError) as exc:
            LOGGER.warning("table_row_failed", extra={"row": row_number, "error": str(exc)})
            result.errors.append(ParseIssue(row_number, raw_text, str(exc), location="row"))
            continue
        result.parts.append(part)

    result.stats.parsed_rows = len(result.parts)
    result.stats.errors = len(result.errors)
    LOGGER.debug("table_parse_completed", extra=result.stats.as_dict())
    return result


def _sniff_delimiter(content: str) -> str:
    sample = "\n".join(content.splitlines()[:5])
    try:
        return csv.Sniffer().sniff(sample, delimiters=_CSV_DELIMITERS).delimiter
    except csv.Error:
        first = sample.splitlines()[0] if sample else ""
        return max(_CSV_DELIMITERS, key=first.count)


def parse_csv(content: str | bytes, options: TabularParseOptions | None = None) -> TabularParseResult:
    """Parse delimited text; tab, semicolon and comma separators are detected."""

    options = options or TabularParseOptions()
    if isinstance(content, bytes):
        content = content.decode("utf-8-sig", errors="replace")
    if not content.strip():
        return _failure("No data found in CSV")
    try:
        frame = pd.read_csv(
            io.StringIO(content),
            sep=_sniff_delimiter(content),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        LOGGER.warning("csv_read_failed", extra={"error": str(exc)})
        return _failure(f"Could not read CSV: {exc}")
    if frame.empty:
        return _failure("No data found in CSV", headers=[str(column).strip() for column in frame.columns])
    return parse_frame(frame, options)


def _resolve_sheet(sheet_names: Sequence[str], sheet: Optional[Union[int, str]]) -> Optional[str]:
    if sheet is None:
        return sheet_names[0] if sheet_names else None
    if isinstance(sheet, int):
        return sheet_names[sheet] if 0 <= sheet < len(sheet_names) else (sheet_names[0] if sheet_names else None)
    return sheet if sheet in sheet_names else None


def parse_excel(buffer: bytes, options: TabularParseOptions | None = None) -> TabularParseResult:
    """Parse an ``.xlsx`` workbook through openpyxl."""

    options = options or TabularParseOptions()
    try:
        with pd.ExcelFile(io.BytesIO(buffer), engine="openpyxl") as workbook:
            sheet_name = _resolve_sheet(workbook.sheet_names, options.sheet)
            if sheet_name is None:
                return _failure(f'Sheet "{options.sheet}" not found')
            frame = workbook.parse(sheet_name, dtype=str).fillna("")
    except Exception as exc:  # openpyxl raises a wide range of errors on corrupt files
        LOGGER.warning("excel_read_failed", extra={"error": str(exc)})
        return _failure(f"Could not read workbook: {exc}")
    if frame.empty:
        return _failure("No data found in sheet", headers=[str(column).strip() for column in frame.columns])
    return parse_frame(frame, options)


def get_sheet_info(buffer: bytes) -> List[SheetInfo]:
    """Name, size and first-row headers of every sheet in a workbook."""

    infos: List[SheetInfo] = []
    with pd.ExcelFile(io.BytesIO(buffer), engine="openpyxl") as workbook:
        for name in workbook.sheet_names:
            raw = workbook.parse(name, header=None, dtype=str)
            headers = tuple(
                str(value) if isinstance(value, str) and value.strip() else f"Column {position + 1}"
                for position, value in enumerate(raw.iloc[0] if len(raw) else [])
            )
            infos.append(SheetInfo(name=name, row_count=len(raw), column_count=raw.shape[1], headers=headers))
    return infos


def preview_mapping(frame: pd.DataFrame, mapping: ColumnMapping, max_rows: int = 5) -> List[Dict[str, Any]]:
    """Show what the first ``max_rows`` rows look like under ``mapping``."""

    preview: List[Dict[str, Any]] = []
    for index in range(min(len(frame), max_rows)):
        row = frame.iloc[index]
        mapped = {name: (_cell(row, column) or None) for name, column in mapping.assigned().items()}
        preview.append({"row": index + HEADER_ROW_OFFSET, "preview": mapped})
    return preview


async def fetch_table_bytes(
    url: str,
    *,
    timeout: float = 30.0,
    session: Optional[aiohttp.ClientSession] = None,
) -> bytes:
    """Download a spreadsheet; ``session`` lets callers share a connection pool."""

    if session is not None:
        async with session.get(url) as response:
            response.raise_for_status()
            return await response.read()
    async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as owned:
        async with owned.get(url) as response:
            response.raise_for_status()
            return await response.read()


def _kind_from_url(url: str) -> str:
    path = url.split("?", 1)[0].lower()
    return "csv" if path.endswith((".csv", ".tsv", ".txt")) else "excel"


async def parse_remote_table(
    url: str,
    options: TabularParseOptions | None = None,
    *,
    kind: str = "auto",
    timeout: float = 30.0,
    session: Optional[aiohttp.ClientSession] = None,
) -> TabularParseResult:
    """Fetch and parse a remote CSV or workbook. Download failures are reported in ``errors``."""

    try:
        payload = await fetch_table_bytes(url, timeout=timeout, session=session)
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        LOGGER.warning("table_fetch_failed", extra={"url": url, "error": str(exc)})
        return _failure(f"Could not download table: {exc}")

    resolved = _kind_from_url(url) if kind == "auto" else kind
    if resolved == "csv":
        return parse_csv(payload, options)
    return parse_excel(payload, options)
