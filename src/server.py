"""
Flask API Server for the PDF form assistant.

Endpoints:
- GET  /api/health - Liveness check
- POST /api/forms/questions - Build the question spec for a PDF form
- POST /api/forms/fill - Fill a PDF form from free-text user info
"""

import logging
import os
from datetime import datetime

from flask import Flask, jsonify, request
from flask_cors import CORS
from pydantic import ValidationError

from form_assistant import (
    FillPDFRequest,
    QuestionSpecRequest,
    fill_pdf_form,
    generate_question_spec,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] %(message)s"
)
logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)
CORS(app)  # Enable CORS for all routes

SERVER_START_TIME = datetime.now().isoformat()


def _read_json_body():
    """Return (data, error_response)."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None, (jsonify({"success": False, "message": "Request body must be a JSON object"}), 400)
    return data, None


def _status_for(response) -> int:
    if response.success:
        return 200
    if response.error_type == "DownloadError":
        return 502
    if response.error_type == "InvalidRequestError":
        return 400
    return 500


@app.route("/api/health", methods=["GET"])
def health_check():
    return jsonify({"status": "ok", "started_at": SERVER_START_TIME})


@app.route("/api/forms/questions", methods=["POST"])
def questions_endpoint():
    """
    Build the question spec for a PDF form.

    Request body:
    {
        "pdfUrl": "https://example.com/w9.pdf",
        "userInfo": "Jane Doe, 12 Main St"      // optional
    }

    Response:
    {
        "success": true,
        "message": "Question spec generated.",
        "questionSpec": {"questions": [...]},
        "questionsText": "• What is your full legal name? ..."
    }
    """
    data, error = _read_json_body()
    if error:
        return error

    if not data.get("pdfUrl"):
        return jsonify({"success": False, "message": "Missing required field: pdfUrl"}), 400

    try:
        spec_request = QuestionSpecRequest.model_validate(data)
    except ValidationError as e:
        return jsonify({"success": False, "message": f"Invalid request: {e}"}), 400

    logger.info(f"Generating question spec for {spec_request.pdf_url}")
    response = generate_question_spec(spec_request)
    return jsonify(response.model_dump(by_alias=True, exclude_none=True)), _status_for(response)


@app.route("/api/forms/fill", methods=["POST"])
def fill_form_endpoint():
    """
    Fill a PDF form from free-text user information.

    Request body:
    {
        "pdfUrl": "https://example.com/w9.pdf",
        "userInfo": "Name: Jane Doe. LLC: yes.",
        "formType": "w9"                          // optional
    }

    Response:
    {
        "success": true,
        "filledPdfUrl": "https://...",
        "message": "Form filled successfully! ...",
        "fields": {"full_name": "Jane Doe", "is_llc": "true"}
    }
    """
    data, error = _read_json_body()
    if error:
        return error

    # Validate required fields
    for required in ("pdfUrl", "userInfo"):
        if not data.get(required):
            return jsonify({
                "success": False,
                "message": "Missing required fields: pdfUrl and userInfo"
            }), 400

    try:
        fill_request = FillPDFRequest.model_validate(data)
    except ValidationError as e:
        return jsonify({"success": False, "message": f"Invalid request: {e}"}), 400

    logger.info(f"Filling form: url={fill_request.pdf_url}, form_type={fill_request.form_type}")
    response = fill_pdf_form(fill_request)
    return jsonify(response.model_dump(by_alias=True, exclude_none=True)), _status_for(response)


# ============================================================================
# Error Handlers
# ============================================================================

@app.errorhandler(404)
def not_found(e):
    return jsonify({"success": False, "message": "Endpoint not found"}), 404


@app.errorhandler(500)
def server_error(e):
    return jsonify({"success": False, "message": "Internal server error"}), 500


# ============================================================================
# Main Entry Point
# ============================================================================

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    debug = os.environ.get("FLASK_DEBUG", "false").lower() == "true"

    logger.info(f"Starting server on port {port}")
    logger.info(f"Server start time: {SERVER_START_TIME}")
    app.run(host="0.0.0.0", port=port, debug=debug)
