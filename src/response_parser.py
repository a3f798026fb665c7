"""
Defensive parsing of model output.

The model is asked for bare JSON but routinely wraps it in code fences, adds
commentary around it, or writes Python-style True/False. These helpers repair
that and decode into typed objects, raising ResponseParseError instead of ever
returning an empty default.
"""

import json
import logging
import re
from typing import Any, Dict

from pydantic import ValidationError

from form_prompts import QuestionSpec

# Logger Setup
logger = logging.getLogger("response_parser")
if not logger.handlers:
    logger.setLevel(logging.INFO)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    formatter = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s")
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

LEADING_FENCE = re.compile(r"^```(?:json)?", re.IGNORECASE)
TRAILING_FENCE = re.compile(r"```$")
TRAILING_COMMA = re.compile(r",\s*([\}\]])")
STRING_LITERAL = re.compile(r'"(?:\\.|[^"\\])*"')


class ResponseParseError(ValueError):
    """Model output could not be decoded into the expected structure."""

    def __init__(self, message: str, text: str = ""):
        super().__init__(message)
        self.text = text


def clean_model_json(raw_text: str) -> str:
    """
    Repair near-JSON model output into a JSON object string.

    Steps: trim, strip code fences, slice from the first '{' to the last '}'.
    If that is not already valid JSON, normalize True/False and drop trailing
    commas outside string literals.

    Raises:
        ResponseParseError: If no JSON object can be located
    """
    text = (raw_text or "").strip()

    if text.startswith("```"):
        text = LEADING_FENCE.sub("", text, count=1)
        text = TRAILING_FENCE.sub("", text.rstrip()).strip()

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        raise ResponseParseError("No JSON object found in model output", text)

    text = text[start:end + 1]
    try:
        json.loads(text)
        return text
    except json.JSONDecodeError:
        pass

    # Repairs only touch the text between string literals.
    parts = []
    last = 0
    for match in STRING_LITERAL.finditer(text):
        parts.append(_repair_syntax(text[last:match.start()]))
        parts.append(match.group(0))
        last = match.end()
    parts.append(_repair_syntax(text[last:]))
    return "".join(parts)


def _repair_syntax(segment: str) -> str:
    segment = re.sub(r"\bTrue\b", "true", segment)
    segment = re.sub(r"\bFalse\b", "false", segment)
    return TRAILING_COMMA.sub(r"\1", segment)


def parse_json_object(raw_text: str) -> Dict[str, Any]:
    """
    Decode model output into a dict.

    Raises:
        ResponseParseError: If the cleaned text is not a JSON object
    """
    cleaned = clean_model_json(raw_text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse model response: {e}")
        logger.debug(f"Cleaned response: {cleaned[:500]}")
        raise ResponseParseError(f"Failed to parse model response as JSON: {e}", cleaned) from e

    if not isinstance(data, dict):
        raise ResponseParseError(f"Expected a JSON object, got {type(data).__name__}", cleaned)
    return data


def parse_question_spec(raw_text: str) -> QuestionSpec:
    """
    Decode and validate a question spec.

    Raises:
        ResponseParseError: On malformed JSON, schema mismatch or an empty question list
    """
    data = parse_json_object(raw_text)
    try:
        spec = QuestionSpec.model_validate(data)
    except ValidationError as e:
        raise ResponseParseError(f"Question spec does not match the expected shape: {e}", json.dumps(data)) from e

    if not spec.questions:
        raise ResponseParseError("Model returned no questions", json.dumps(data))
    return spec
