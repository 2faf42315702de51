# S3-compatible storage for milestone proof artifacts
# The funding core only ever sees the returned object key.

import boto3
import os
import uuid
from botocore.client import Config
from botocore.exceptions import ClientError
from datetime import datetime
import logging

logger = logging.getLogger(__name__)

STORAGE_ENDPOINT = os.getenv("STORAGE_ENDPOINT", "http://minio:9000")
# Public endpoint is what the browser will reach
STORAGE_PUBLIC_ENDPOINT = os.getenv("STORAGE_PUBLIC_ENDPOINT", STORAGE_ENDPOINT)
STORAGE_ACCESS_KEY = os.getenv("STORAGE_ACCESS_KEY", "")
STORAGE_SECRET_KEY = os.getenv("STORAGE_SECRET_KEY", "")
STORAGE_BUCKET = os.getenv("STORAGE_BUCKET", "encore-uploads")
STORAGE_REGION = os.getenv("STORAGE_REGION", "us-east-1")
# Presigned URL expiry (seconds) - 24 hours default
VIEW_URL_EXPIRY = int(os.getenv("STORAGE_VIEW_URL_EXPIRY", "86400"))

PROOF_PREFIX = "milestone-proofs"


def _get_client(endpoint: str = STORAGE_ENDPOINT):
    return boto3.client(
        "s3",
        endpoint_url=endpoint,
        aws_access_key_id=STORAGE_ACCESS_KEY,
        aws_secret_access_key=STORAGE_SECRET_KEY,
        config=Config(signature_version="s3v4"),
        region_name=STORAGE_REGION,
    )


def ensure_bucket_exists(client=None):
    """Create the bucket if it doesn't already exist."""
    client = client or _get_client()
    try:
        client.head_bucket(Bucket=STORAGE_BUCKET)
    except ClientError as e:
        error_code = e.response["Error"]["Code"]
        if error_code in ("404", "NoSuchBucket"):
            client.create_bucket(Bucket=STORAGE_BUCKET)
            logger.info(f"Storage bucket '{STORAGE_BUCKET}' created")
        else:
            raise


def build_object_key(prefix: str, owner_id: str, original_filename: str) -> str:
    safe_name = original_filename.replace(" ", "_")
    unique_id = str(uuid.uuid4())[:8]
    timestamp = datetime.utcnow().strftime("%Y%m%d")
    return f"{prefix}/{owner_id}/{timestamp}-{unique_id}-{safe_name}"


def upload_file(prefix: str, owner_id: str, file_bytes: bytes, original_filename: str,
                content_type: str, client=None) -> dict:
    """
    Store a file and return its object key.

    Returns a dict with object_key, file_size, file_name and content_type.
    """
    client = client or _get_client()
    ensure_bucket_exists(client)

    object_key = build_object_key(prefix, owner_id, original_filename)
    client.put_object(
        Bucket=STORAGE_BUCKET,
        Key=object_key,
        Body=file_bytes,
        ContentType=content_type,
    )
    return {
        "object_key": object_key,
        "file_size": len(file_bytes),
        "file_name": original_filename,
        "content_type": content_type,
    }


def upload_proof_artifact(campaign_id: str, file_bytes: bytes, original_filename: str,
                          content_type: str, client=None) -> dict:
    return upload_file(PROOF_PREFIX, campaign_id, file_bytes, original_filename, content_type, client)


def generate_view_url(object_key: str, expiry_seconds: int = VIEW_URL_EXPIRY) -> str:
    """Presigned, time-limited URL using the browser-reachable endpoint."""
    client = _get_client(STORAGE_PUBLIC_ENDPOINT)
    return client.generate_presigned_url(
        "get_object",
        Params={"Bucket": STORAGE_BUCKET, "Key": object_key},
        ExpiresIn=expiry_seconds,
    )
