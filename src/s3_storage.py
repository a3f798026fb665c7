"""
S3 Storage Module for filled PDF files.
Uses AWS S3 via Heroku Bucketeer. All keys use the 'pfa_' prefix since the
bucket is shared with other apps.
"""

import logging
import os
from pathlib import Path
from typing import Optional

import boto3
from botocore.exceptions import ClientError
from dotenv import load_dotenv

# Load environment variables
load_dotenv(Path(__file__).parent / ".env")

# Logger setup
logger = logging.getLogger("s3_storage")
if not logger.handlers:
    logger.setLevel(logging.INFO)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    formatter = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s")
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

# S3 Configuration from Bucketeer
AWS_ACCESS_KEY_ID = os.environ.get("BUCKETEER_AWS_ACCESS_KEY_ID")
AWS_SECRET_ACCESS_KEY = os.environ.get("BUCKETEER_AWS_SECRET_ACCESS_KEY")
BUCKET_NAME = os.environ.get("BUCKETEER_BUCKET_NAME")
AWS_REGION = os.environ.get("BUCKETEER_AWS_REGION", "us-east-1")
FILLED_URL_EXPIRES_IN = int(os.environ.get("FILLED_URL_EXPIRES_IN", 3600))

# S3 key prefixes
PREFIX = "pfa_"
FILLED_PREFIX = f"{PREFIX}/filled/"

# Lazy-initialized S3 client
_s3_client = None


def get_s3_client():
    """
    Get or create boto3 S3 client.

    Returns:
        boto3.client: S3 client instance

    Raises:
        ValueError: If required environment variables are not set
    """
    global _s3_client

    if _s3_client is None:
        if not all([AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY, BUCKET_NAME]):
            raise ValueError(
                "Missing required S3 environment variables. "
                "Ensure BUCKETEER_AWS_ACCESS_KEY_ID, BUCKETEER_AWS_SECRET_ACCESS_KEY, "
                "and BUCKETEER_BUCKET_NAME are set."
            )

        _s3_client = boto3.client(
            "s3",
            aws_access_key_id=AWS_ACCESS_KEY_ID,
            aws_secret_access_key=AWS_SECRET_ACCESS_KEY,
            region_name=AWS_REGION
        )
        logger.info(f"S3 client initialized for bucket: {BUCKET_NAME}")

    return _s3_client


def get_filled_key(filename: str) -> str:
    """S3 key for a filled PDF."""
    return f"{FILLED_PREFIX}{filename}"


def upload_pdf_bytes(data: bytes, filename: str) -> str:
    """
    Upload filled PDF bytes to S3.

    Args:
        data: PDF content
        filename: Filename to store under the filled prefix

    Returns:
        S3 key of the uploaded file

    Raises:
        ClientError: If S3 upload fails
    """
    s3_key = get_filled_key(filename)
    client = get_s3_client()

    logger.info(f"Uploading {len(data):,} bytes to s3://{BUCKET_NAME}/{s3_key}")
    client.put_object(
        Bucket=BUCKET_NAME,
        Key=s3_key,
        Body=data,
        ContentType="application/pdf"
    )

    logger.info(f"Successfully uploaded to S3: {s3_key}")
    return s3_key


def generate_presigned_url(s3_key: str, expires_in: Optional[int] = None) -> str:
    """
    Generate a presigned URL for downloading a file from S3.

    Args:
        s3_key: S3 key of the file
        expires_in: URL expiration time in seconds (default: FILLED_URL_EXPIRES_IN)

    Returns:
        Presigned URL for downloading the file
    """
    client = get_s3_client()
    expires_in = expires_in or FILLED_URL_EXPIRES_IN

    url = client.generate_presigned_url(
        "get_object",
        Params={"Bucket": BUCKET_NAME, "Key": s3_key},
        ExpiresIn=expires_in
    )

    logger.info(f"Generated presigned URL for {s3_key} (expires in {expires_in}s)")
    return url


def store_filled_pdf(data: bytes, filename: str) -> str:
    """
    Upload a filled PDF and return a download URL for it.

    Args:
        data: Filled PDF content
        filename: Output filename

    Returns:
        Presigned download URL
    """
    s3_key = upload_pdf_bytes(data, filename)
    return generate_presigned_url(s3_key)


def test_connection() -> bool:
    """
    Test S3 connection by listing objects.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        client = get_s3_client()
        client.list_objects_v2(Bucket=BUCKET_NAME, MaxKeys=1)
        logger.info("S3 connection test successful")
        return True
    except (ClientError, ValueError) as e:
        logger.error(f"S3 connection test failed: {e}")
        return False


if __name__ == "__main__":
    # Test S3 connection when run directly
    print("Testing S3 connection...")

    if not all([AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY, BUCKET_NAME]):
        print("Error: Missing required environment variables")
        print(f"  BUCKETEER_AWS_ACCESS_KEY_ID: {'set' if AWS_ACCESS_KEY_ID else 'NOT SET'}")
        print(f"  BUCKETEER_AWS_SECRET_ACCESS_KEY: {'set' if AWS_SECRET_ACCESS_KEY else 'NOT SET'}")
        print(f"  BUCKETEER_BUCKET_NAME: {'set' if BUCKET_NAME else 'NOT SET'}")
        exit(1)

    print(f"Bucket: {BUCKET_NAME}")
    print(f"Region: {AWS_REGION}")
    print("Connection successful!" if test_connection() else "Connection failed!")
