"""
PDF form field extraction.

Reads the AcroForm of a PDF with pypdf and turns its terminal fields into
FieldDescriptor records. Also provides best-effort text extraction used as
grounding context for the prompts.
"""

import io
import json
import logging
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pypdf import PdfReader
from pypdf.generic import DictionaryObject

# Logger Setup
logger = logging.getLogger("form_fields")
if not logger.handlers:
    logger.setLevel(logging.INFO)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    formatter = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s")
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

# Field flag bits (PDF 32000-1, table 226)
FF_RADIO = 1 << 15
FF_PUSHBUTTON = 1 << 16

OFF_STATE = "/Off"


class FieldExtractionError(Exception):
    """The document could not be parsed as a form."""


# ============================================================================
# Pydantic Schemas
# ============================================================================

class FieldKind(str, Enum):
    TEXT = "text"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    DROPDOWN = "dropdown"
    UNKNOWN = "unknown"


class FieldDescriptor(BaseModel):
    """A single fillable field of a PDF form."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(description="Fully qualified AcroForm field name, the join key for filling.")
    label: str = Field(default="", validate_default=True, description="Human-facing label; defaults to the name.")
    kind: FieldKind = Field(default=FieldKind.UNKNOWN, description="Widget kind.")
    max_length: Optional[int] = Field(default=None, alias="maxLength", description="Max characters for text fields.")
    options: Optional[Tuple[str, ...]] = Field(default=None, description="Valid options for radio/dropdown.")

    @field_validator("label")
    @classmethod
    def _default_label(cls, value: str, info: ValidationInfo) -> str:
        return value or info.data.get("name", "")

    def to_prompt_dict(self) -> Dict[str, Any]:
        """Shape used when the schema is shown to the model."""
        data: Dict[str, Any] = {"name": self.name, "label": self.label, "type": self.kind.value}
        if self.max_length:
            data["maxLength"] = self.max_length
        if self.options:
            data["options"] = list(self.options)
        return data


# ============================================================================
# AcroForm walking
# ============================================================================

def _get(node: DictionaryObject, key: str, default: Any = None) -> Any:
    """dict.get that also resolves indirect references."""
    value = node.get(key, default)
    return value.get_object() if hasattr(value, "get_object") else value


def _partial_name(node: DictionaryObject) -> Optional[str]:
    name = _get(node, "/T")
    return str(name) if name is not None else None


def iter_terminal_fields(
    fields: Any,
    parent_name: str = "",
    inherited: Optional[Dict[str, Any]] = None,
) -> Iterator[Tuple[str, DictionaryObject, Dict[str, Any]]]:
    """
    Walk an AcroForm /Fields array down to its terminal fields.

    Yields:
        (qualified_name, field_node, inherited) where inherited carries /FT and /Ff
        resolved from the node or its ancestors.
    """
    inherited = inherited or {}
    for ref in fields or []:
        node = ref.get_object()
        if not isinstance(node, DictionaryObject):
            continue

        partial = _partial_name(node)
        if partial and parent_name:
            name = f"{parent_name}.{partial}"
        else:
            name = partial or parent_name

        resolved = dict(inherited)
        for key in ("/FT", "/Ff"):
            if key in node:
                resolved[key] = _get(node, key)

        kids = [k.get_object() for k in _get(node, "/Kids", [])]
        # Kids carrying /T are child fields; kids without /T are just widgets.
        if any(isinstance(k, DictionaryObject) and "/T" in k for k in kids):
            yield from iter_terminal_fields(_get(node, "/Kids"), name, resolved)
            continue

        if not name:
            continue
        yield name, node, resolved


def field_widgets(node: DictionaryObject) -> List[DictionaryObject]:
    """Widget annotations for a terminal field (merged field/widget or its kids)."""
    kids = _get(node, "/Kids")
    if kids:
        return [k.get_object() for k in kids]
    return [node]


def widget_states(node: DictionaryObject) -> List[str]:
    """Appearance state names (e.g. '/Yes', '/Off') across a field's widgets."""
    states: List[str] = []
    for widget in field_widgets(node):
        try:
            normal = widget["/AP"]["/N"]
        except (KeyError, TypeError):
            continue
        if not isinstance(normal, DictionaryObject):
            continue
        for state in normal.keys():
            state = str(state)
            if state not in states:
                states.append(state)
    return states


def on_state(node: DictionaryObject) -> str:
    """The 'checked' appearance state of a checkbox."""
    for state in widget_states(node):
        if state != OFF_STATE:
            return state
    return "/Yes"


def choice_options(node: DictionaryObject) -> List[str]:
    options = []
    for entry in _get(node, "/Opt", []):
        entry = entry.get_object() if hasattr(entry, "get_object") else entry
        # Entries are either a text string or an [export, display] pair.
        if isinstance(entry, (list, tuple)) and entry:
            options.append(str(entry[0]))
        else:
            options.append(str(entry))
    return options


def classify_field(node: DictionaryObject, inherited: Dict[str, Any]) -> FieldKind:
    """Determine a field's kind from its structural type, never its name."""
    field_type = inherited.get("/FT")
    flags = int(inherited.get("/Ff", 0) or 0)

    if field_type == "/Tx":
        return FieldKind.TEXT
    if field_type == "/Btn":
        if flags & FF_PUSHBUTTON:
            return FieldKind.UNKNOWN
        if flags & FF_RADIO:
            return FieldKind.RADIO
        return FieldKind.CHECKBOX
    if field_type == "/Ch":
        return FieldKind.DROPDOWN
    return FieldKind.UNKNOWN


def describe_field(name: str, node: DictionaryObject, inherited: Dict[str, Any]) -> FieldDescriptor:
    """Build the FieldDescriptor for one terminal field."""
    kind = classify_field(node, inherited)

    max_length = None
    options = None
    if kind == FieldKind.TEXT:
        raw_max = _get(node, "/MaxLen")
        if raw_max is not None and int(raw_max) > 0:
            max_length = int(raw_max)
    elif kind == FieldKind.RADIO:
        options = tuple(s.lstrip("/") for s in widget_states(node) if s != OFF_STATE)
    elif kind == FieldKind.DROPDOWN:
        options = tuple(choice_options(node))

    return FieldDescriptor(
        name=name,
        label=name,  # PDF forms rarely carry a separate label
        kind=kind,
        max_length=max_length,
        options=options,
    )


# ============================================================================
# Core Functions
# ============================================================================

def open_pdf(pdf_bytes: bytes) -> PdfReader:
    """
    Open PDF bytes with pypdf, decrypting with an empty password if needed.

    Raises:
        FieldExtractionError: If the document cannot be parsed
    """
    try:
        reader = PdfReader(io.BytesIO(pdf_bytes))
        if reader.is_encrypted and not reader.decrypt(""):
            raise FieldExtractionError("PDF is encrypted and requires a password")
        return reader
    except FieldExtractionError:
        raise
    except Exception as e:
        raise FieldExtractionError(f"Failed to open PDF: {e}") from e


def get_acroform_fields(root: DictionaryObject) -> List[Any]:
    """The /Fields array of a document catalog, or [] when there is no form."""
    acroform = _get(root, "/AcroForm")
    if acroform is None:
        return []
    return list(_get(acroform, "/Fields", []))


def extract_pdf_fields(pdf_bytes: bytes) -> List[FieldDescriptor]:
    """
    Extract one FieldDescriptor per terminal form field.

    Args:
        pdf_bytes: Raw PDF content

    Returns:
        List of FieldDescriptor, in AcroForm order. Empty if the PDF has no form.

    Raises:
        FieldExtractionError: If the document cannot be parsed as a form
    """
    reader = open_pdf(pdf_bytes)

    try:
        root = reader.trailer["/Root"].get_object()
        descriptors = [
            describe_field(name, node, inherited)
            for name, node, inherited in iter_terminal_fields(get_acroform_fields(root))
        ]
    except Exception as e:
        raise FieldExtractionError(f"Failed to extract PDF fields: {e}") from e

    if not descriptors:
        logger.info("No form fields found in PDF")
    else:
        logger.info(f"Extracted {len(descriptors)} form fields")
    return descriptors


def validate_pdf_fields(fields: List[FieldDescriptor]) -> bool:
    """True if the schema is non-empty and every descriptor is well formed."""
    if not isinstance(fields, list) or not fields:
        return False
    for field in fields:
        if not isinstance(field, FieldDescriptor):
            return False
        if not isinstance(field.name, str) or not field.name:
            return False
        if not isinstance(field.kind, FieldKind):
            return False
    return True


def extract_pdf_text(pdf_bytes: bytes) -> str:
    """
    Best-effort plain text of the document. Returns "" on any failure.
    """
    try:
        reader = PdfReader(io.BytesIO(pdf_bytes))
        if reader.is_encrypted:
            reader.decrypt("")
        pages = [page.extract_text() or "" for page in reader.pages]
        return "\n".join(p for p in pages if p).strip()
    except Exception as e:
        logger.warning(f"PDF text extraction failed: {e}")
        return ""


def read_pdf_field_values(pdf_bytes: bytes) -> Dict[str, Any]:
    """
    Read the current value of every terminal field.

    Checkboxes map to bool, radio groups to the selected option (or None),
    everything else to its string value (or None).
    """
    reader = open_pdf(pdf_bytes)
    root = reader.trailer["/Root"].get_object()

    values: Dict[str, Any] = {}
    for name, node, inherited in iter_terminal_fields(get_acroform_fields(root)):
        kind = classify_field(node, inherited)
        raw = _get(node, "/V")

        if kind == FieldKind.CHECKBOX:
            values[name] = raw is not None and str(raw) != OFF_STATE
        elif kind == FieldKind.RADIO:
            values[name] = None if raw is None or str(raw) == OFF_STATE else str(raw).lstrip("/")
        else:
            values[name] = None if raw is None else str(raw)
    return values


# ============================================================================
# CLI Entry Point
# ============================================================================

if __name__ == "__main__":
    import sys

    if len(sys.argv) < 2:
        print("Usage: python form_fields.py <form.pdf>")
        sys.exit(1)

    with open(sys.argv[1], "rb") as f:
        data = f.read()

    fields = extract_pdf_fields(data)
    print(json.dumps([field.to_prompt_dict() for field in fields], indent=2))
