import logging

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import APIRouter, status
from fastapi.concurrency import run_in_threadpool

from photofeed.config_secrets import IS_PRODUCTION, STORAGE_BUCKET
from photofeed.core.errors import ApiError
from photofeed.schemas.schemas import BucketInfo, BucketResponse
from photofeed.services import storage_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.post("/storage/bucket", response_model=BucketResponse, status_code=status.HTTP_200_OK)
async def create_storage_bucket() -> BucketResponse:
    """
    Create the post image bucket if it is missing. Development only.

    Raises:
    - **403 Forbidden**: When running in production
    - **500 Internal Server Error**: If the storage service rejects the request
    """
    if IS_PRODUCTION:
        raise ApiError(status.HTTP_403_FORBIDDEN, "This endpoint is not available in production")

    try:
        created = await run_in_threadpool(storage_service.ensure_bucket)
    except (BotoCoreError, ClientError) as exc:
        logger.exception("Bucket bootstrap failed for %s", STORAGE_BUCKET)
        raise ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to create bucket", str(exc)) from exc

    message = f"Bucket '{STORAGE_BUCKET}' created" if created else f"Bucket '{STORAGE_BUCKET}' already exists"
    return BucketResponse(
        message=message,
        bucket=BucketInfo(
            name=STORAGE_BUCKET,
            created=created,
            public_base_url=storage_service.get_public_base_url(),
        ),
    )
