import json
import re

import pytest

import form_assistant
import pdf_download
from form_assistant import (
    FillPDFRequest,
    QuestionSpecRequest,
    build_output_filename,
    fill_pdf_form,
    format_questions_text,
    generate_question_spec,
    load_pdf_context,
)
from form_fields import read_pdf_field_values
from form_prompts import QuestionItem, QuestionSpec
from pdf_writer import ValidationIssue

PDF_URL = "https://example.com/w9.pdf"


@pytest.fixture
def pipeline(monkeypatch, form_pdf):
    """Patch the three outside calls and record what reaches them."""
    state = {"prompts": [], "stored": [], "reply": "{}"}

    def fake_download(url):
        return form_pdf

    def fake_generate(prompt, **kwargs):
        state["prompts"].append(prompt)
        return state["reply"]

    def fake_store(data, filename):
        state["stored"].append((data, filename))
        return f"https://storage.example.com/{filename}"

    monkeypatch.setattr(form_assistant, "download_pdf_bytes", fake_download)
    monkeypatch.setattr(form_assistant, "generate_text", fake_generate)
    monkeypatch.setattr(form_assistant, "store_filled_pdf", fake_store)
    return state


# ============================================================================
# Fill flow
# ============================================================================

def test_fill_scenario(pipeline):
    pipeline["reply"] = json.dumps({
        "full_name": "Jonathan Alexander Smithsonian",
        "is_llc": "yes",
        "ghost_field": "x",
    })

    response = fill_pdf_form(FillPDFRequest(pdf_url=PDF_URL, user_info="Jonathan, LLC", form_type="w9"))

    assert response.success
    assert response.fields == {"full_name": "Jonathan Alexander S", "is_llc": "yes"}
    assert len(pipeline["prompts"]) == 1
    assert len(pipeline["stored"]) == 1

    data, filename = pipeline["stored"][0]
    values = read_pdf_field_values(data)
    assert values["full_name"] == "Jonathan Alexander S"
    assert values["is_llc"] is True
    assert filename.startswith("filled-form-w9-")
    assert response.filled_pdf_url == f"https://storage.example.com/{filename}"
    assert [s.name for s in response.stages] == ["extract", "llm_transform", "pdf_write", "upload"]


def test_fill_with_fenced_reply(pipeline):
    pipeline["reply"] = '```json\n{"address": "12 Main St", "is_llc": True,}\n```'

    response = fill_pdf_form(FillPDFRequest(pdf_url=PDF_URL, user_info="12 Main St"))

    assert response.success
    assert response.fields == {"address": "12 Main St", "is_llc": "True"}


def test_fill_skips_invalid_option(pipeline):
    pipeline["reply"] = json.dumps({"entity": "LLC", "state": "NY"})

    response = fill_pdf_form(FillPDFRequest(pdf_url=PDF_URL, user_info="NY"))

    assert response.success
    assert response.fields == {"state": "NY"}
    assert "1 field(s) skipped" in response.message


def test_prose_reply_is_retryable(pipeline):
    pipeline["reply"] = "I'm sorry, I can't determine the values."

    response = fill_pdf_form(FillPDFRequest(pdf_url=PDF_URL, user_info="Jane"))

    assert not response.success
    assert response.error_type == "ResponseParseError"
    assert response.retryable
    assert pipeline["stored"] == []


def test_download_failure(monkeypatch, pipeline):
    class NotFound:
        status_code = 404
        reason = "Not Found"
        ok = False
        headers = {}

    monkeypatch.setattr(form_assistant, "download_pdf_bytes", pdf_download.download_pdf_bytes)
    monkeypatch.setattr(pdf_download.requests, "get", lambda url, **kwargs: NotFound())

    response = fill_pdf_form(FillPDFRequest(pdf_url=PDF_URL, user_info="Jane"))

    assert not response.success
    assert "404" in response.message
    assert response.fields is None
    assert response.filled_pdf_url is None
    assert response.error_type == "DownloadError"
    assert not response.retryable
    assert pipeline["prompts"] == []


def test_missing_user_info(pipeline):
    response = fill_pdf_form(FillPDFRequest(pdf_url=PDF_URL, user_info=""))

    assert not response.success
    assert response.error_type == "InvalidRequestError"
    assert not response.retryable
    assert pipeline["prompts"] == []


def test_pdf_without_fields(monkeypatch, pipeline, plain_pdf):
    monkeypatch.setattr(form_assistant, "download_pdf_bytes", lambda url: plain_pdf)

    response = fill_pdf_form(FillPDFRequest(pdf_url=PDF_URL, user_info="Jane"))

    assert not response.success
    assert response.error_type == "InvalidFormSchemaError"
    assert pipeline["prompts"] == []


def test_request_accepts_wire_names():
    request = FillPDFRequest.model_validate({"pdfUrl": PDF_URL, "userInfo": "Jane", "formType": "w9"})
    assert (request.pdf_url, request.user_info, request.form_type) == (PDF_URL, "Jane", "w9")


# ============================================================================
# Question flow
# ============================================================================

def test_question_flow_drops_unknown_fields(pipeline):
    pipeline["reply"] = json.dumps({"questions": [
        {"name": "full_name", "type": "text", "question": "What is your full name?", "required": True,
         "prefill": "Jane Doe", "needsConfirmation": True},
        {"name": "entity", "type": "radio", "question": "Which classification?", "options": ["C", "S", "P"]},
        {"name": "invented", "type": "text", "question": "Favorite color?"},
    ]})

    response = generate_question_spec(QuestionSpecRequest(pdf_url=PDF_URL, user_info="Jane Doe"))

    assert response.success
    assert [q.name for q in response.question_spec.questions] == ["full_name", "entity"]
    assert response.questions_text == (
        "• What is your full name? [We have: Jane Doe — please confirm]\n"
        "• Which classification? (Options: C, S, P)"
    )
    assert "Jane Doe" in pipeline["prompts"][0]


def test_question_flow_with_only_unknown_fields(pipeline):
    pipeline["reply"] = json.dumps({"questions": [{"name": "invented", "question": "?"}]})

    response = generate_question_spec(QuestionSpecRequest(pdf_url=PDF_URL))

    assert not response.success
    assert response.retryable


# ============================================================================
# Helpers
# ============================================================================

def test_format_questions_text_skips_empty_questions():
    spec = QuestionSpec(questions=[
        QuestionItem(name="a", question=""),
        QuestionItem(name="b", question="Country?", prefill="US"),
    ])

    assert format_questions_text(spec) == "• Country? [We have: US]"


@pytest.mark.parametrize("form_type,slug", [("w9", "w9"), (None, "unknown"), ("", "unknown"), ("i 9/a", "i-9-a")])
def test_output_filename(form_type, slug):
    filename = build_output_filename(form_type)

    assert filename.startswith(f"filled-form-{slug}-")
    assert filename.endswith(".pdf")
    assert not re.search(r"[:/ ]", filename)


def test_load_pdf_context(form_pdf):
    pdf_text, fields = load_pdf_context(form_pdf)

    assert "Taxpayer" in pdf_text
    assert len(fields) == 5


def test_pdf_write_stage_reports_failed_verification(monkeypatch, pipeline):
    pipeline["reply"] = json.dumps({"full_name": "Jane Doe"})
    failure = ValidationIssue(severity="error", message="Filled PDF could not be re-opened: boom")
    monkeypatch.setattr(form_assistant, "validate_pdf_write", lambda fields, data, values: (False, [failure]))

    response = fill_pdf_form(FillPDFRequest(pdf_url=PDF_URL, user_info="Jane Doe"))

    stage = next(s for s in response.stages if s.name == "pdf_write")
    assert not stage.passed
    assert failure in stage.issues
