"""Command line entry point for the cutintake pipeline."""
from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import typer

from .._version import __version__
from ..config import get_settings
from ..extraction.part import Part, build_job_payload
from ..extraction.tabular_parser import TabularParseOptions, parse_csv, parse_excel, parse_remote_table
from ..extraction.text_parser import TextParserOptions, parse_text
from ..extraction.validators import (
    BatchValidation,
    ValidationPolicy,
    calculate_accuracy_score,
    review_queue,
    validate_parts,
)
from ..extraction.vision_adapter import (
    AsyncVisionClient,
    VisionClientConfig,
    VisionParseOptions,
    VisionResult,
    detect_file_type,
    parse_vision_response,
)
from ..extraction.voice_parser import DictationStream, VoiceParserOptions, parse_voice_input
from ..utils.logging import configure_json_logger, flush_handlers, generate_trace_id, log_event, timed_event
from .config import app as config_app

__all__ = ["app", "run"]


app = typer.Typer(help="Normalise cutlists from text, dictation, spreadsheets and scans", add_completion=False)


@app.callback(invoke_without_command=True)
def version_callback(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show cutintake version and exit", is_eager=True),
) -> None:
    """Handle global options before any sub-command executes."""

    if version:
        typer.echo(f"cutintake {__version__}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


app.add_typer(config_app, name="config")


def _read_text(input_path: Optional[Path]) -> str:
    if input_path is None:
        return sys.stdin.read()
    return input_path.read_text(encoding="utf-8")


def _emit(payload: Dict[str, Any], output_path: Optional[Path]) -> None:
    document = json.dumps(payload, indent=2, ensure_ascii=False)
    if output_path is None:
        typer.echo(document)
        return
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(document + "\n", encoding="utf-8")
    typer.echo(json.dumps({"output": str(output_path)}, ensure_ascii=False))


def _validation_block(batch: BatchValidation, threshold: float) -> Dict[str, Any]:
    return {
        "summary": batch.summary.as_dict(),
        "accuracy_score": calculate_accuracy_score(batch.results),
        "results": [result.as_dict() for result in batch.results],
        "review": [item.as_dict() for item in review_queue(batch.results, threshold)],
    }


def _with_validation(payload: Dict[str, Any], parts: Sequence[Part], enabled: bool) -> Dict[str, Any]:
    if enabled:
        policy = ValidationPolicy.from_settings()
        payload["validation"] = _validation_block(validate_parts(parts, policy), policy.review_threshold)
    return payload


def _load_candidates(input_path: Optional[Path]) -> List[Any]:
    raw = _read_text(input_path).strip()
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        data = [json.loads(line) for line in raw.splitlines() if line.strip()]
    if isinstance(data, dict):
        data = data.get("parts", [data])
    if not isinstance(data, list):
        raise typer.BadParameter("Expected a JSON array, a {'parts': [...]} document or JSON lines")
    return data


@app.command("parse-text")
def parse_text_command(
    input_path: Optional[Path] = typer.Option(
        None, "--input", exists=True, dir_okay=False, help="Text file with one part per line (stdin when omitted)"
    ),
    output_path: Optional[Path] = typer.Option(None, "--output", dir_okay=False, help="Destination JSON file"),
    strict: Optional[bool] = typer.Option(None, "--strict/--lenient", help="Reject low-confidence lines"),
    default_material: Optional[str] = typer.Option(None, "--default-material", help="Material id for lines without one"),
    run_validation: bool = typer.Option(False, "--validate/--no-validate", help="Score the parts with the validator"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", dir_okay=False, help="Optional JSONL log path"),
) -> None:
    """Parse pasted free-text cutlists."""

    logger = configure_json_logger(log_file)
    overrides: Dict[str, Any] = {}
    if strict is not None:
        overrides["strict_mode"] = strict
    if default_material is not None:
        overrides["default_material_id"] = default_material

    with timed_event(logger, "parse.text") as event:
        result = parse_text(_read_text(input_path), TextParserOptions.from_settings(**overrides))
        payload = _with_validation(result.as_dict(), result.parts, run_validation)
        event.update(result.stats.as_dict())
    flush_handlers(logger)
    _emit(payload, output_path)


def _table_kind(path: Path, kind: str) -> str:
    if kind != "auto":
        return kind
    return "csv" if path.suffix.lower() in {".csv", ".tsv", ".txt"} else "excel"


@app.command("parse-table")
def parse_table_command(
    input_path: Optional[Path] = typer.Option(None, "--input", exists=True, dir_okay=False, help="CSV or XLSX file"),
    url: Optional[str] = typer.Option(None, "--url", help="Fetch the table from a URL instead of a file"),
    kind: str = typer.Option("auto", "--kind", help="auto, csv or excel"),
    sheet: Optional[str] = typer.Option(None, "--sheet", help="Sheet name (first sheet by default)"),
    data_start_row: Optional[int] = typer.Option(None, "--data-start-row", min=1, help="First data row (1-based)"),
    timeout: float = typer.Option(30.0, "--timeout", help="Download timeout in seconds"),
    output_path: Optional[Path] = typer.Option(None, "--output", dir_okay=False, help="Destination JSON file"),
    run_validation: bool = typer.Option(False, "--validate/--no-validate", help="Score the parts with the validator"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", dir_okay=False, help="Optional JSONL log path"),
) -> None:
    """Parse spreadsheet rows into parts."""

    if (input_path is None) == (url is None):
        raise typer.BadParameter("Provide exactly one of --input or --url")
    if kind not in {"auto", "csv", "excel"}:
        raise typer.BadParameter("--kind must be auto, csv or excel")

    logger = configure_json_logger(log_file)
    options = TabularParseOptions.from_settings(sheet=sheet, data_start_row=data_start_row)

    with timed_event(logger, "parse.table", source=url or str(input_path)) as event:
        if url is not None:
            result = asyncio.run(parse_remote_table(url, options, kind=kind, timeout=timeout))
        elif _table_kind(input_path, kind) == "csv":
            result = parse_csv(input_path.read_bytes(), options)
        else:
            result = parse_excel(input_path.read_bytes(), options)
        payload = _with_validation(result.as_dict(), result.parts, run_validation)
        event.update(result.stats.as_dict())
    flush_handlers(logger)
    _emit(payload, output_path)


@app.command("parse-voice")
def parse_voice_command(
    input_path: Optional[Path] = typer.Option(
        None, "--input", exists=True, dir_okay=False, help="Transcript file (stdin when omitted)"
    ),
    stream: bool = typer.Option(
        False, "--stream/--phrases", help="Treat lines as partial fragments of one dictation session"
    ),
    output_path: Optional[Path] = typer.Option(None, "--output", dir_okay=False, help="Destination JSON file"),
    run_validation: bool = typer.Option(False, "--validate/--no-validate", help="Score the parts with the validator"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", dir_okay=False, help="Optional JSONL log path"),
) -> None:
    """Parse dictated phrases, one per line, or a stream of transcript fragments."""

    logger = configure_json_logger(log_file)
    settings = get_settings()
    options = VoiceParserOptions.from_settings(settings)
    lines = [line.strip() for line in _read_text(input_path).splitlines() if line.strip()]

    with timed_event(logger, "parse.voice", stream=stream) as event:
        results = []
        if stream:
            session = DictationStream(options, flush_chars=settings.dictation_flush_chars)
            for line in lines:
                emitted = session.append(line)
                if emitted is not None:
                    results.append(emitted)
            tail = session.flush()
            if tail is not None:
                results.append(tail)
        else:
            results = [parse_voice_input(line, options) for line in lines]

        parts = [result.part for result in results if result.part is not None]
        payload = _with_validation({"results": [result.as_dict() for result in results]}, parts, run_validation)
        event.update(phrases=len(results), parts=len(parts))
    flush_handlers(logger)
    _emit(payload, output_path)


async def _extract_image(config: VisionClientConfig, options: VisionParseOptions, image: bytes, content_type: str) -> VisionResult:
    async with AsyncVisionClient(config, options) as client:
        return await client.extract(image, content_type)


@app.command("parse-vision")
def parse_vision_command(
    image_path: Optional[Path] = typer.Option(None, "--image", exists=True, dir_okay=False, help="Image to send"),
    response_path: Optional[Path] = typer.Option(
        None, "--response", exists=True, dir_okay=False, help="Saved raw model response to parse offline"
    ),
    endpoint: Optional[str] = typer.Option(None, "--endpoint", help="Chat completions endpoint"),
    model: Optional[str] = typer.Option(None, "--model", help="Vision model identifier"),
    output_path: Optional[Path] = typer.Option(None, "--output", dir_okay=False, help="Destination JSON file"),
    run_validation: bool = typer.Option(False, "--validate/--no-validate", help="Score the parts with the validator"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", dir_okay=False, help="Optional JSONL log path"),
) -> None:
    """Extract parts from an image through a vision model, or from a saved response."""

    if (image_path is None) == (response_path is None):
        raise typer.BadParameter("Provide exactly one of --image or --response")

    logger = configure_json_logger(log_file)
    options = VisionParseOptions.from_settings()

    if response_path is not None:
        source = str(response_path)
        config = None
    else:
        overrides: Dict[str, Any] = {}
        if endpoint:
            overrides["endpoint"] = endpoint
        if model:
            overrides["model"] = model
        config = VisionClientConfig.from_settings(**overrides)
        if not config.endpoint:
            raise typer.BadParameter("--endpoint (or CUTINTAKE_VISION_ENDPOINT) is required for images")
        source = str(image_path)

    with timed_event(logger, "parse.vision", source=source) as event:
        if config is None:
            result = parse_vision_response(response_path.read_text(encoding="utf-8"), options)
        else:
            image = image_path.read_bytes()
            file_type = detect_file_type(None, image[:8])
            if file_type != "image":
                raise typer.BadParameter(f"Unsupported upload type: {file_type}")
            content_type = "image/png" if image.startswith(b"\x89PNG") else "image/jpeg"
            result = asyncio.run(_extract_image(config, options, image, content_type))
        payload = _with_validation(result.as_dict(), result.parts, run_validation)
        event.update(parts=len(result.parts), errors=len(result.errors))
    flush_handlers(logger)
    _emit(payload, output_path)


@app.command("validate")
def validate_command(
    input_path: Optional[Path] = typer.Option(
        None, "--input", exists=True, dir_okay=False, help="JSON/JSONL part candidates (stdin when omitted)"
    ),
    output_path: Optional[Path] = typer.Option(None, "--output", dir_okay=False, help="Destination JSON file"),
    auto_swap: Optional[bool] = typer.Option(None, "--auto-swap/--no-auto-swap", help="Force L >= W"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", dir_okay=False, help="Optional JSONL log path"),
) -> None:
    """Validate and score part candidates from any channel."""

    logger = configure_json_logger(log_file)
    overrides = {"auto_swap_dimensions": auto_swap} if auto_swap is not None else {}
    policy = ValidationPolicy.from_settings(**overrides)
    with timed_event(logger, "validate") as event:
        batch = validate_parts(_load_candidates(input_path), policy)
        payload = _validation_block(batch, policy.review_threshold)
        payload["valid_parts"] = [part.model_dump(mode="json") for part in batch.valid_parts]
        event.update(batch.summary.as_dict())
    flush_handlers(logger)
    _emit(payload, output_path)


@app.command("job")
def job_command(
    input_path: Optional[Path] = typer.Option(
        None, "--input", exists=True, dir_okay=False, help="JSON/JSONL part candidates (stdin when omitted)"
    ),
    job_name: Optional[str] = typer.Option(None, "--job-name", help="Name recorded on the job document"),
    output_path: Optional[Path] = typer.Option(None, "--output", dir_okay=False, help="Destination JSON file"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", dir_okay=False, help="Optional JSONL log path"),
) -> None:
    """Validate candidates and build the optimizer job document from the valid ones."""

    logger = configure_json_logger(log_file)
    trace_id = generate_trace_id()
    batch = validate_parts(_load_candidates(input_path), ValidationPolicy.from_settings())
    accepted = [part.accepted() for part in batch.valid_parts]
    payload = build_job_payload(accepted, job_name=job_name)
    log_event(
        logger,
        "job.built",
        trace_id=trace_id,
        parts=len(accepted),
        rejected=batch.summary.total - batch.summary.valid,
    )
    flush_handlers(logger)
    _emit(payload, output_path)


def run() -> None:
    """Entry point compatible with ``python -m cutintake.cli.main`` and console scripts."""

    from typer.main import get_command

    cli = get_command(app)
    cli()


if __name__ == "__main__":
    run()
