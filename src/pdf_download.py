"""
PDF download client for fetching source forms from URLs.
The caller is responsible for handing us a public or pre-authorized URL.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import requests
from dotenv import load_dotenv

load_dotenv(Path(__file__).parent / ".env")

# Logger Setup
logger = logging.getLogger("pdf_download")
if not logger.handlers:
    logger.setLevel(logging.INFO)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    formatter = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s")
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

# Configuration
CHUNK_SIZE = 8192
REQUEST_TIMEOUT = int(os.environ.get("REQUEST_TIMEOUT", 30))


class DownloadError(Exception):
    """The source PDF could not be retrieved."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class DownloadResult:
    """Result of a PDF download attempt."""
    url: str
    success: bool
    content: Optional[bytes] = None
    content_type: Optional[str] = None
    error: Optional[str] = None


def _validate_url(url: str) -> str:
    """Reject anything that is not an absolute http(s) URL."""
    url = (url or "").strip()
    if not url.startswith(("http://", "https://")):
        raise DownloadError(f"Invalid PDF URL (must be absolute http/https): {url!r}")
    return url


def download_pdf_bytes(url: str) -> bytes:
    """
    Download a PDF from a URL into memory.

    No retries are attempted; the caller decides whether to rerun the pipeline.

    Args:
        url: Absolute URL serving the PDF

    Returns:
        Raw PDF bytes

    Raises:
        DownloadError: On a non-2xx response or when the request cannot complete
    """
    url = _validate_url(url)
    logger.info(f"Downloading PDF from {url}")

    try:
        response = requests.get(url, stream=True, timeout=REQUEST_TIMEOUT, allow_redirects=True)
    except requests.RequestException as e:
        logger.error(f"Download failed for {url}: {e}")
        raise DownloadError(f"Error downloading PDF: {e}") from e

    if not response.ok:
        message = f"Failed to download PDF: {response.status_code} {response.reason}"
        logger.error(f"{message} ({url})")
        raise DownloadError(message, status_code=response.status_code)

    content_type = response.headers.get("Content-Type", "").lower()
    if content_type and "pdf" not in content_type:
        # Some servers report a generic type for PDFs, so keep going.
        logger.warning(f"Content-Type is not PDF for {url}: {content_type}")

    try:
        chunks = [chunk for chunk in response.iter_content(chunk_size=CHUNK_SIZE) if chunk]
    except requests.RequestException as e:
        logger.error(f"Download interrupted for {url}: {e}")
        raise DownloadError(f"Error downloading PDF: {e}") from e

    data = b"".join(chunks)
    logger.info(f"Downloaded {len(data):,} bytes")
    return data


def download_pdf(url: str) -> DownloadResult:
    """
    Non-raising variant of download_pdf_bytes.

    Args:
        url: Absolute URL serving the PDF

    Returns:
        DownloadResult with content on success, error message otherwise
    """
    try:
        content = download_pdf_bytes(url)
        return DownloadResult(url=url, success=True, content=content, content_type="application/pdf")
    except DownloadError as e:
        return DownloadResult(url=url, success=False, error=str(e))


# ============================================================================
# CLI Entry Point
# ============================================================================

if __name__ == "__main__":
    import sys

    if len(sys.argv) < 3:
        print("Usage: python pdf_download.py <url> <output.pdf>")
        sys.exit(1)

    result = download_pdf(sys.argv[1])
    if not result.success:
        print(f"Failed: {result.error}")
        sys.exit(1)

    with open(sys.argv[2], "wb") as f:
        f.write(result.content)
    print(f"Saved {len(result.content):,} bytes to {sys.argv[2]}")
