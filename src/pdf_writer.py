"""
PDF Form Filling Module.

Writes model-proposed values into a PDF form. The process:
1. Sanitizes raw values against the extracted field schema
2. Applies each value to its live widget with pypdf, one field at a time
3. Verifies the filled document kept its form structure

A value that cannot be applied (unknown field, invalid option, unsupported
widget) becomes a warning; it never aborts the rest of the document.
"""

import io
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field
from pypdf import PageObject, PdfWriter
from pypdf.generic import DictionaryObject, NameObject

from form_fields import (
    OFF_STATE,
    FieldDescriptor,
    FieldKind,
    choice_options,
    classify_field,
    extract_pdf_fields,
    field_widgets,
    get_acroform_fields,
    iter_terminal_fields,
    on_state,
    open_pdf,
    read_pdf_field_values,
    widget_states,
)

# Logger Setup
logger = logging.getLogger("pdf_writer")
if not logger.handlers:
    logger.setLevel(logging.INFO)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    formatter = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s")
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

CHECKED_VALUES = {"true", "yes", "1", "on", "checked"}


class FormWriteError(Exception):
    """The document could not be loaded or serialized for filling."""


# ============================================================================
# Validation Schemas
# ============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue."""
    severity: str = Field(description="Severity level: 'error', 'warning', 'info'")
    field: Optional[str] = Field(default=None, description="Field name if applicable.")
    message: str = Field(description="Description of the issue.")


class ValidationStage(BaseModel):
    """Validation results for a single stage."""
    name: str = Field(description="Stage name: 'download', 'extract', 'llm_transform', 'pdf_write', 'upload'")
    passed: bool = Field(description="Whether this stage passed validation.")
    issues: List[ValidationIssue] = Field(default_factory=list)


@dataclass
class FillResult:
    """Outcome of writing values into a PDF."""
    pdf_bytes: bytes
    filled: Dict[str, str] = field(default_factory=dict)
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == "warning"]


# ============================================================================
# Sanitizing
# ============================================================================

def sanitize_field_values(raw_values: Any, fields: List[FieldDescriptor]) -> Dict[str, str]:
    """
    Keep only values that belong to the schema, trimmed and length-limited.

    Never raises: anything malformed is dropped.

    Args:
        raw_values: Decoded model output (expected: field name -> value)
        fields: Extracted field schema

    Returns:
        Dict of field_name -> cleaned string value
    """
    if not isinstance(raw_values, Mapping):
        logger.warning(f"Expected a mapping of field values, got {type(raw_values).__name__}")
        return {}

    by_name = {f.name: f for f in fields}
    sanitized: Dict[str, str] = {}

    for name, value in raw_values.items():
        descriptor = by_name.get(name) if isinstance(name, str) else None
        if descriptor is None:
            logger.info(f"Dropping unexpected field '{name}' from model output")
            continue
        if not value:
            continue

        text = str(value).strip()
        if descriptor.max_length and len(text) > descriptor.max_length:
            text = text[:descriptor.max_length].strip()
        if text:
            sanitized[name] = text

    return sanitized


def is_checked(value: Any) -> bool:
    """Permissive truth table for checkbox values."""
    return str(value).strip().lower() in CHECKED_VALUES


# ============================================================================
# Per-kind Writers
# ============================================================================
# Each writer returns None when the value was applied, or a warning message.

def _set_appearance_state(node: DictionaryObject, state: str) -> None:
    for widget in field_widgets(node):
        available = widget_states(widget)
        widget[NameObject("/AS")] = NameObject(state if state in available else OFF_STATE)


def _field_pages(writer: PdfWriter, node: DictionaryObject) -> List[PageObject]:
    """Pages whose annotations hold one of the field's widgets."""
    widget_ids = {id(w) for w in field_widgets(node)}
    pages = []
    for page in writer.pages:
        annots = page.get("/Annots")
        annots = annots.get_object() if annots is not None else []
        if any(id(a.get_object()) in widget_ids for a in annots):
            pages.append(page)
    return pages


def _update_with_appearance(writer: PdfWriter, name: str, node: DictionaryObject, value: str) -> None:
    """Set /V and regenerate the widget appearance through pypdf."""
    pages = _field_pages(writer, node)
    if not pages:
        raise KeyError(f"No page holds a widget for field '{name}'")
    for page in pages:
        writer.update_page_form_field_values(page, {name: value}, auto_regenerate=True)


def _write_text(writer: PdfWriter, name: str, node: DictionaryObject, value: str) -> Optional[str]:
    _update_with_appearance(writer, name, node, value)
    return None


def _write_checkbox(writer: PdfWriter, name: str, node: DictionaryObject, value: str) -> Optional[str]:
    state = on_state(node) if is_checked(value) else OFF_STATE
    node[NameObject("/V")] = NameObject(state)
    _set_appearance_state(node, state)
    return None


def _write_radio(writer: PdfWriter, name: str, node: DictionaryObject, value: str) -> Optional[str]:
    options = [s.lstrip("/") for s in widget_states(node) if s != OFF_STATE]
    if value not in options:
        return f"Radio field '{name}' does not have option '{value}'. Available options: {options}"

    state = f"/{value}"
    node[NameObject("/V")] = NameObject(state)
    _set_appearance_state(node, state)
    return None


def _write_dropdown(writer: PdfWriter, name: str, node: DictionaryObject, value: str) -> Optional[str]:
    options = choice_options(node)
    if value not in options:
        return f"Dropdown field '{name}' does not have option '{value}'. Available options: {options}"

    if "/I" in node:
        del node["/I"]
    _update_with_appearance(writer, name, node, value)
    return None


def _write_unknown(writer: PdfWriter, name: str, node: DictionaryObject, value: str) -> Optional[str]:
    return f"Unknown field type for '{name}', skipping"


FIELD_WRITERS: Dict[FieldKind, Callable[[PdfWriter, str, DictionaryObject, str], Optional[str]]] = {
    FieldKind.TEXT: _write_text,
    FieldKind.CHECKBOX: _write_checkbox,
    FieldKind.RADIO: _write_radio,
    FieldKind.DROPDOWN: _write_dropdown,
    FieldKind.UNKNOWN: _write_unknown,
}


# ============================================================================
# PDF Writing
# ============================================================================

def write_pdf(pdf_bytes: bytes, field_values: Dict[str, Any]) -> FillResult:
    """
    Write values to a PDF form using pypdf.

    Args:
        pdf_bytes: Source PDF content
        field_values: Dict of field_name -> value (normally sanitize_field_values output)

    Returns:
        FillResult with the new bytes, the values actually applied and per-field issues

    Raises:
        FormWriteError: If the PDF cannot be loaded or serialized
    """
    try:
        writer = PdfWriter(clone_from=open_pdf(pdf_bytes))
        live = {
            name: (node, inherited)
            for name, node, inherited in iter_terminal_fields(get_acroform_fields(writer.root_object))
        }
    except Exception as e:
        raise FormWriteError(f"Failed to load PDF for filling: {e}") from e

    logger.info(f"Writing {len(field_values)} fields to PDF...")
    result = FillResult(pdf_bytes=b"")

    for name, value in field_values.items():
        try:
            entry = live.get(name)
            if entry is None:
                raise KeyError(f"No field named '{name}' in PDF")

            node, inherited = entry
            kind = classify_field(node, inherited)
            text = "" if value is None else str(value)
            problem = FIELD_WRITERS[kind](writer, name, node, text)
        except Exception as e:
            problem = f"Could not fill field '{name}': {e}"

        if problem:
            logger.warning(problem)
            result.issues.append(ValidationIssue(severity="warning", field=name, message=problem))
            continue

        result.filled[name] = text
        logger.debug(f"Set field '{name}' ({kind.value})")

    try:
        if live:
            writer.set_need_appearances_writer(True)
        output = io.BytesIO()
        writer.write(output)
        result.pdf_bytes = output.getvalue()
    except Exception as e:
        raise FormWriteError(f"Failed to serialize filled PDF: {e}") from e

    logger.info(f"Filled {len(result.filled)}/{len(field_values)} fields ({len(result.issues)} skipped)")
    return result


def fill_pdf_fields(pdf_bytes: bytes, field_values: Dict[str, Any]) -> bytes:
    """Fill the form and return only the new document bytes."""
    return write_pdf(pdf_bytes, field_values).pdf_bytes


# ============================================================================
# Validation Functions
# ============================================================================

def validate_pdf_write(
    source_fields: List[FieldDescriptor],
    output_pdf: bytes,
    expected_values: Dict[str, str],
) -> Tuple[bool, List[ValidationIssue]]:
    """
    Validate a filled PDF.

    - Output is non-empty and re-opens as a form
    - Field names and kinds are unchanged
    - Text values read back as written

    Returns:
        Tuple of (passed, issues)
    """
    issues: List[ValidationIssue] = []

    if not output_pdf:
        issues.append(ValidationIssue(severity="error", message="Output file is empty"))
        return False, issues

    try:
        output_fields = extract_pdf_fields(output_pdf)
    except Exception as e:
        issues.append(ValidationIssue(severity="error", message=f"Filled PDF could not be re-opened: {e}"))
        return False, issues

    before = [(f.name, f.kind) for f in source_fields]
    after = [(f.name, f.kind) for f in output_fields]
    if before != after:
        issues.append(ValidationIssue(
            severity="warning",
            message=f"Form structure changed while filling ({len(before)} fields before, {len(after)} after)"
        ))

    kinds = {f.name: f.kind for f in source_fields}
    written = read_pdf_field_values(output_pdf)
    for name, value in expected_values.items():
        if kinds.get(name) == FieldKind.TEXT and written.get(name) != value:
            issues.append(ValidationIssue(
                severity="warning",
                field=name,
                message=f"Field '{name}' reads back as {written.get(name)!r}"
            ))

    # Cross-check with PyPDFForm's view of the form (best effort)
    try:
        from PyPDFForm import PdfWrapper
        filled_schema = PdfWrapper(output_pdf).schema or {}
        issues.append(ValidationIssue(
            severity="info",
            message=f"Output PDF has {len(filled_schema.get('properties', {}))} fields"
        ))
    except Exception as e:
        issues.append(ValidationIssue(
            severity="warning",
            message=f"Could not verify output PDF fields: {e}"
        ))

    has_errors = any(i.severity == "error" for i in issues)
    return not has_errors, issues


# ============================================================================
# CLI Entry Point
# ============================================================================

if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Fill a local PDF form with values from a JSON file")
    parser.add_argument("source", help="Source PDF path")
    parser.add_argument("values_file", help="JSON file mapping field names to values")
    parser.add_argument("output", help="Output PDF path")

    args = parser.parse_args()

    with open(args.source, "rb") as f:
        source_bytes = f.read()
    with open(args.values_file, "r") as f:
        raw_values = json.load(f)

    fields = extract_pdf_fields(source_bytes)
    values = sanitize_field_values(raw_values, fields)
    fill_result = write_pdf(source_bytes, values)

    with open(args.output, "wb") as f:
        f.write(fill_result.pdf_bytes)

    print(json.dumps({
        "filled": fill_result.filled,
        "issues": [i.model_dump() for i in fill_result.issues],
    }, indent=2))
