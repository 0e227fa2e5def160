import io
import logging
import os
import uuid
from typing import Optional
from PIL import Image
import boto3
from botocore.exceptions import BotoCoreError, ClientError


logger = logging.getLogger(__name__)

BUCKET = os.getenv("R2_BUCKET")
FOLDER = os.getenv("UPLOAD_FOLDER", "item-images")
URL = os.getenv("S3_ENDPOINT_URL") or f"https://{os.getenv('CLOUDFLARE_ACCOUNT_ID')}.r2.cloudflarestorage.com"

s3 = boto3.client(
    service_name="s3",
    endpoint_url=URL,
    aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
    aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
    region_name="auto",
)


def compress_image(data: bytes, max_width=1400, quality=80):
    img = Image.open(io.BytesIO(data))
    img = img.convert("RGB")

    # Resize while keeping aspect ratio
    w, h = img.size
    if w > max_width:
        img = img.resize((max_width, int(h * (max_width / w))), Image.LANCZOS)

    buffer = io.BytesIO()

    try:
        img.save(buffer, format="WEBP", quality=quality, method=6)
        ext = "webp"
    except (OSError, KeyError) as e:
        logger.warning("WebP encode failed, falling back to JPEG: %s", e)

        buffer = io.BytesIO()
        img.save(buffer, format="JPEG", quality=quality, optimize=True)
        ext = "jpg"

    buffer.seek(0)
    return buffer, ext


def upload_image(buffer: io.BytesIO, ext: str, owner_public_id: str) -> str:
    """Store the photo and return its key. Keys are grouped per owner."""
    key = f"{FOLDER}/{owner_public_id}/{uuid.uuid4().hex}.{ext}"

    s3.upload_fileobj(buffer, BUCKET, key)

    return key


def generate_signed_url(key: str, expires_in=3600) -> Optional[str]:
    try:
        return s3.generate_presigned_url(
            "get_object",
            Params={"Bucket": BUCKET, "Key": key},
            ExpiresIn=expires_in,
        )
    except (BotoCoreError, ClientError) as e:
        logger.warning("Could not sign URL for %s: %s", key, e)
        return None


def delete_s3_object(key: str):
    try:
        s3.delete_object(Bucket=BUCKET, Key=key)
    except (BotoCoreError, ClientError) as e:
        logger.warning("Could not delete S3 object %s: %s", key, e)


def with_image_url(item) -> dict:
    data = item.model_dump()
    data["image"] = generate_signed_url(item.image) if item.image else None
    return data
