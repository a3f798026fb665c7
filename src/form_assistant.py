"""
Form assistant pipeline.

Two flows share the same front half (download, extract fields and text in
parallel, validate the schema) and differ after the model call:

- generate_question_spec: asks the model which questions to put to the user.
- fill_pdf_form: asks the model for field values, sanitizes them, writes them
  into the PDF and uploads the result.

Every fatal error is caught here and turned into a {success: false} response;
callers never see an exception.
"""

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from form_fields import (
    FieldDescriptor,
    extract_pdf_fields,
    extract_pdf_text,
    validate_pdf_fields,
)
from form_prompts import QuestionSpec, build_fill_values_prompt, build_question_spec_prompt
from gemini_client import GeminiError, generate_text
from pdf_download import download_pdf_bytes
from pdf_writer import (
    ValidationIssue,
    ValidationStage,
    sanitize_field_values,
    validate_pdf_write,
    write_pdf,
)
from response_parser import ResponseParseError, parse_json_object, parse_question_spec
from s3_storage import store_filled_pdf

# Logger Setup
logger = logging.getLogger("form_assistant")
if not logger.handlers:
    logger.setLevel(logging.INFO)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    formatter = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s")
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

RETRYABLE_ERRORS = (ResponseParseError, GeminiError)


class InvalidRequestError(Exception):
    """A required request parameter is missing."""


class InvalidFormSchemaError(Exception):
    """The PDF parsed, but its field schema is empty or malformed."""


# ============================================================================
# Request/Response Schemas
# ============================================================================

class FillPDFRequest(BaseModel):
    """Request body for the fill flow."""
    model_config = ConfigDict(populate_by_name=True)

    pdf_url: str = Field(alias="pdfUrl", description="Public URL of the source PDF.")
    user_info: str = Field(default="", alias="userInfo", description="Free-text user information.")
    form_type: Optional[str] = Field(default=None, alias="formType", description="Hint used for the output filename.")


class FillPDFResponse(BaseModel):
    """Response body for the fill flow."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = Field(description="Whether the form was filled and stored.")
    message: str = Field(description="Human-readable outcome.")
    filled_pdf_url: Optional[str] = Field(default=None, alias="filledPdfUrl")
    fields: Optional[Dict[str, str]] = Field(default=None, description="Values actually written to the PDF.")
    error_type: Optional[str] = Field(default=None, alias="errorType")
    retryable: bool = Field(default=False, description="True if rerunning the request may succeed.")
    stages: List[ValidationStage] = Field(default_factory=list)


class QuestionSpecRequest(BaseModel):
    """Request body for the question flow."""
    model_config = ConfigDict(populate_by_name=True)

    pdf_url: str = Field(alias="pdfUrl")
    user_info: str = Field(default="", alias="userInfo")


class QuestionSpecResponse(BaseModel):
    """Response body for the question flow."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str
    question_spec: Optional[QuestionSpec] = Field(default=None, alias="questionSpec")
    questions_text: Optional[str] = Field(default=None, alias="questionsText")
    error_type: Optional[str] = Field(default=None, alias="errorType")
    retryable: bool = False


# ============================================================================
# Shared Steps
# ============================================================================

def load_pdf_context(pdf_bytes: bytes) -> Tuple[str, List[FieldDescriptor]]:
    """
    Extract text and fields concurrently from the same bytes.

    Returns:
        Tuple of (pdf_text, fields)

    Raises:
        FieldExtractionError: If the fields cannot be extracted
        InvalidFormSchemaError: If the schema is empty or malformed
    """
    with ThreadPoolExecutor(max_workers=2) as executor:
        text_future = executor.submit(extract_pdf_text, pdf_bytes)
        fields_future = executor.submit(extract_pdf_fields, pdf_bytes)
        pdf_text = text_future.result()
        fields = fields_future.result()

    if not validate_pdf_fields(fields):
        raise InvalidFormSchemaError("Invalid or empty PDF fields extracted")

    logger.info(f"Loaded PDF context: {len(fields)} fields, {len(pdf_text):,} chars of text")
    return pdf_text, fields


def format_questions_text(spec: QuestionSpec) -> str:
    """Render the question spec as a bullet list for the chat UI."""
    lines = []
    for q in spec.questions:
        question = (q.question or "").strip()
        if not question:
            continue
        line = f"• {question}"
        if q.options:
            line += f" (Options: {', '.join(q.options)})"
        if q.prefill is not None and str(q.prefill) != "":
            line += f" [We have: {q.prefill}"
            line += " — please confirm]" if q.needs_confirmation else "]"
        lines.append(line)
    return "\n".join(lines)


def build_output_filename(form_type: Optional[str]) -> str:
    """filled-form-{type}-{timestamp}.pdf"""
    timestamp = datetime.now(timezone.utc).isoformat().replace(":", "-").replace(".", "-")
    slug = "".join(c if c.isalnum() or c in "-_" else "-" for c in (form_type or "").strip()) or "unknown"
    return f"filled-form-{slug}-{timestamp}.pdf"


def _failure_details(e: Exception) -> Dict[str, Any]:
    return {
        "error_type": type(e).__name__,
        "retryable": isinstance(e, RETRYABLE_ERRORS),
    }


def _issues_summary(issues: List[ValidationIssue]) -> str:
    warnings = sum(1 for i in issues if i.severity == "warning")
    return f" ({warnings} field(s) skipped)" if warnings else ""


# ============================================================================
# Main Entry Points
# ============================================================================

def generate_question_spec(request: QuestionSpecRequest) -> QuestionSpecResponse:
    """
    Download the form and ask the model which questions to put to the user.

    Args:
        request: QuestionSpecRequest with the PDF URL and optional user info

    Returns:
        QuestionSpecResponse; success=False with a message on any failure
    """
    try:
        if not request.pdf_url:
            raise InvalidRequestError("pdfUrl parameter is required but was not provided")

        pdf_bytes = download_pdf_bytes(request.pdf_url)
        pdf_text, fields = load_pdf_context(pdf_bytes)

        prompt = build_question_spec_prompt(pdf_text, fields, request.user_info)
        logger.info("Requesting JSON question spec from model...")
        raw_text = generate_text(prompt)
        spec = parse_question_spec(raw_text)

        known = {f.name for f in fields}
        unknown = [q.name for q in spec.questions if q.name not in known]
        if unknown:
            logger.warning(f"Dropping {len(unknown)} questions for unknown fields: {unknown}")
            spec = QuestionSpec(questions=[q for q in spec.questions if q.name in known])
        if not spec.questions:
            raise ResponseParseError("Model returned no questions for known fields", raw_text)

        logger.info(f"Question spec generated with {len(spec.questions)} entries")
        return QuestionSpecResponse(
            success=True,
            message="Question spec generated.",
            question_spec=spec,
            questions_text=format_questions_text(spec),
        )

    except Exception as e:
        logger.exception(f"Error generating question spec: {e}")
        return QuestionSpecResponse(
            success=False,
            message=f"Error generating question spec: {e}",
            **_failure_details(e),
        )


def fill_pdf_form(request: FillPDFRequest) -> FillPDFResponse:
    """
    Main entry point for form filling.

    1. Download the PDF and extract its fields and text
    2. Ask the model for field values (one call)
    3. Parse and sanitize the values against the schema
    4. Write the values into the PDF and verify the result
    5. Upload the filled PDF and return its URL

    Args:
        request: FillPDFRequest with the PDF URL, user info and optional form type

    Returns:
        FillPDFResponse; success=False with a message on any failure
    """
    stages: List[ValidationStage] = []

    try:
        if not request.pdf_url:
            raise InvalidRequestError("pdfUrl parameter is required but was not provided")
        if not request.user_info:
            raise InvalidRequestError("userInfo parameter is required but was not provided")

        # Stage 1: Download and extract
        logger.info("Stage 1: Downloading and extracting PDF...")
        pdf_bytes = download_pdf_bytes(request.pdf_url)
        pdf_text, fields = load_pdf_context(pdf_bytes)
        stages.append(ValidationStage(name="extract", passed=True, issues=[
            ValidationIssue(severity="info", message=f"Extracted {len(fields)} fields")
        ]))

        # Stage 2: LLM Transformation
        logger.info("Stage 2: Generating field values with the model...")
        prompt = build_fill_values_prompt(pdf_text, fields, request.user_info)
        raw_values = parse_json_object(generate_text(prompt))
        values = sanitize_field_values(raw_values, fields)

        dropped = sorted(set(raw_values) - set(values))
        stages.append(ValidationStage(name="llm_transform", passed=True, issues=[
            ValidationIssue(severity="info", field=name, message=f"Value for '{name}' dropped during sanitizing")
            for name in dropped
        ]))

        # Stage 3: PDF Writing
        logger.info("Stage 3: Writing PDF...")
        fill_result = write_pdf(pdf_bytes, values)
        write_passed, write_issues = validate_pdf_write(fields, fill_result.pdf_bytes, fill_result.filled)
        stages.append(ValidationStage(
            name="pdf_write",
            passed=write_passed,
            issues=fill_result.issues + write_issues,
        ))

        # Stage 4: Upload
        filename = build_output_filename(request.form_type)
        filled_pdf_url = store_filled_pdf(fill_result.pdf_bytes, filename)
        stages.append(ValidationStage(name="upload", passed=True, issues=[
            ValidationIssue(severity="info", message=f"Filled PDF stored as {filename}")
        ]))

        logger.info(f"PDF filled successfully: {filename}")
        return FillPDFResponse(
            success=True,
            message=(
                f"Form filled successfully{_issues_summary(fill_result.issues)}! "
                f"The filled PDF is available at: {filled_pdf_url}"
            ),
            filled_pdf_url=filled_pdf_url,
            fields=fill_result.filled,
            stages=stages,
        )

    except Exception as e:
        logger.exception(f"Error filling PDF form: {e}")
        return FillPDFResponse(
            success=False,
            message=f"Error filling PDF form: {e}",
            stages=stages,
            **_failure_details(e),
        )


# ============================================================================
# CLI Entry Point
# ============================================================================

if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Run the PDF form assistant flows")
    parser.add_argument("flow", choices=["questions", "fill"], help="Which flow to run")
    parser.add_argument("--url", required=True, help="URL of the source PDF")
    parser.add_argument("--user-info", default="", help="Free-text user information")
    parser.add_argument("--form-type", default=None, help="Form type hint, e.g. w9")

    args = parser.parse_args()

    if args.flow == "questions":
        response = generate_question_spec(QuestionSpecRequest(pdf_url=args.url, user_info=args.user_info))
    else:
        response = fill_pdf_form(FillPDFRequest(
            pdf_url=args.url,
            user_info=args.user_info,
            form_type=args.form_type,
        ))

    print(json.dumps(response.model_dump(by_alias=True, exclude_none=True), indent=2, ensure_ascii=False))
