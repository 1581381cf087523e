"""Part extraction primitives.

Four channels (free text, dictation, spreadsheets, vision responses) produce
candidate :class:`Part` records; :func:`validate` re-scores every candidate
before it is accepted into a cutlist.
"""

from .diagnostics import ParseIssue, ParseStats
from .matchers.materials import MaterialMatcher, find_material_match, load_material_lexicon
from .normalize import calculate_confidence, normalize_confidence, normalize_text
from .part import (
    EDGE_IDS,
    EdgeSpec,
    EdgingOps,
    GrainMode,
    GrooveOp,
    Part,
    PartAudit,
    PartOps,
    PartSize,
    SourceMethod,
    build_job_payload,
)
from .parsers.dimensions import DimensionMatch, extract_dimensions
from .parsers.numbers import parse_spoken_number
from .tabular_parser import (
    ColumnMapping,
    TabularParseOptions,
    TabularParseResult,
    detect_column_mapping,
    parse_csv,
    parse_excel,
    parse_frame,
    parse_remote_table,
    validate_mapping,
)
from .text_parser import TextParseResult, TextParserOptions, detect_quantity, parse_line, parse_text
from .validators import (
    ValidationPolicy,
    ValidationResult,
    accuracy_score,
    calculate_accuracy_score,
    review_queue,
    validate,
    validate_parts,
)
from .vision_adapter import (
    AsyncVisionClient,
    VisionClientConfig,
    VisionParseOptions,
    VisionResult,
    extract_json_payload,
    parse_ocr_text,
    parse_vision_response,
)
from .voice_parser import (
    DictationStream,
    VoiceParseResult,
    VoiceParserOptions,
    parse_spoken_dimensions,
    parse_spoken_quantity,
    parse_voice_input,
)

__all__ = [
    "EDGE_IDS",
    "AsyncVisionClient",
    "ColumnMapping",
    "DictationStream",
    "DimensionMatch",
    "EdgeSpec",
    "EdgingOps",
    "GrainMode",
    "GrooveOp",
    "MaterialMatcher",
    "ParseIssue",
    "ParseStats",
    "Part",
    "PartAudit",
    "PartOps",
    "PartSize",
    "SourceMethod",
    "TabularParseOptions",
    "TabularParseResult",
    "TextParseResult",
    "TextParserOptions",
    "ValidationPolicy",
    "ValidationResult",
    "VisionClientConfig",
    "VisionParseOptions",
    "VisionResult",
    "VoiceParseResult",
    "VoiceParserOptions",
    "accuracy_score",
    "build_job_payload",
    "calculate_accuracy_score",
    "calculate_confidence",
    "detect_column_mapping",
    "detect_quantity",
    "extract_dimensions",
    "extract_json_payload",
    "find_material_match",
    "load_material_lexicon",
    "normalize_confidence",
    "normalize_text",
    "parse_csv",
    "parse_excel",
    "parse_frame",
    "parse_line",
    "parse_ocr_text",
    "parse_remote_table",
    "parse_spoken_dimensions",
    "parse_spoken_number",
    "parse_spoken_quantity",
    "parse_text",
    "parse_vision_response",
    "parse_voice_input",
    "review_queue",
    "validate",
    "validate_mapping",
    "validate_parts",
]
