import io
import logging
import secrets
import time
from typing import Optional
from uuid import UUID

import boto3
from botocore.exceptions import ClientError

from photofeed.config_secrets import (
    ALLOWED_IMAGE_TYPES,
    AWS_ACCESS_KEY_ID,
    AWS_REGION,
    AWS_SECRET_ACCESS_KEY,
    STORAGE_BUCKET,
    STORAGE_ENDPOINT_URL,
    STORAGE_PUBLIC_BASE_URL,
)

logger = logging.getLogger(__name__)

# Initialize S3 client
s3_client = boto3.client(
    "s3",
    region_name=AWS_REGION,
    endpoint_url=STORAGE_ENDPOINT_URL,
    aws_access_key_id=AWS_ACCESS_KEY_ID,
    aws_secret_access_key=AWS_SECRET_ACCESS_KEY,
)


def get_public_base_url() -> str:
    """Base URL under which objects of the image bucket are publicly readable"""
    if STORAGE_PUBLIC_BASE_URL:
        return STORAGE_PUBLIC_BASE_URL.rstrip("/")
    if STORAGE_ENDPOINT_URL:
        return f"{STORAGE_ENDPOINT_URL.rstrip('/')}/{STORAGE_BUCKET}"
    return f"https://{STORAGE_BUCKET}.s3.{AWS_REGION}.amazonaws.com"


def get_image_key(user_id: UUID, filename: Optional[str], content_type: str) -> str:
    """
    Generate an object key for an uploaded post image

    Args:
        user_id: Internal id of the uploading user
        filename: Client-side file name, used for its extension
        content_type: MIME type of the upload

    Returns:
        A key of the form "{user_id}/{epoch_ms}-{random}.{ext}"
    """
    extension = ALLOWED_IMAGE_TYPES.get(content_type, "bin")
    if filename and "." in filename:
        candidate = filename.rsplit(".", 1)[1].lower()
        if candidate.isalnum() and len(candidate) <= 5:
            extension = candidate
    return f"{user_id}/{int(time.time() * 1000)}-{secrets.token_hex(4)}.{extension}"


def get_public_url(key: str) -> str:
    return f"{get_public_base_url()}/{key}"


def get_key_from_public_url(url: str) -> Optional[str]:
    """Recover the object key from a public URL, or None if the URL is not ours"""
    prefix = f"{get_public_base_url()}/"
    if not url.startswith(prefix):
        return None
    key = url[len(prefix):]
    return key or None


def upload_image(content: bytes, key: str, content_type: str) -> Optional[str]:
    """
    Upload an image to the post bucket

    Args:
        content: Raw image bytes
        key: Object key, see get_image_key
        content_type: MIME type stored with the object

    Returns:
        The public URL if successful, None otherwise
    """
    try:
        s3_client.upload_fileobj(
            io.BytesIO(content),
            STORAGE_BUCKET,
            key,
            ExtraArgs={"ContentType": content_type},
        )
    except ClientError:
        logger.exception("Failed to upload image %s to storage.", key)
        return None
    else:
        return get_public_url(key)


def delete_object(key: str) -> bool:
    """
    Delete one object from the post bucket

    Returns:
        True if successful, False otherwise
    """
    try:
        s3_client.delete_object(
            Bucket=STORAGE_BUCKET,
            Key=key,
        )
    except ClientError:
        logger.exception("Failed to delete %s from storage.", key)
        return False
    else:
        return True


def ensure_bucket() -> bool:
    """
    Create the post bucket if it does not exist yet

    Returns:
        True if the bucket was created, False if it already existed
    """
    try:
        s3_client.head_bucket(Bucket=STORAGE_BUCKET)
    except ClientError as e:
        error_code = e.response.get("Error", {}).get("Code", "")
        if error_code not in ("404", "NoSuchBucket", "NotFound"):
            raise
    else:
        return False

    create_args = {"Bucket": STORAGE_BUCKET}
    if AWS_REGION != "us-east-1" and not STORAGE_ENDPOINT_URL:
        create_args["CreateBucketConfiguration"] = {"LocationConstraint": AWS_REGION}
    s3_client.create_bucket(**create_args)
    logger.info("Created storage bucket %s", STORAGE_BUCKET)
    return True
