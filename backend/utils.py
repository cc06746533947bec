import os
import uuid
import logging
from pathlib import Path
from typing import Optional, List, Dict
from urllib.parse import unquote, urlparse
from fastapi import HTTPException, status, UploadFile
from sqlalchemy.orm import Session
from models import AuditLog, Profile
import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

AWS_REGION = os.environ.get("AWS_REGION")
S3_BUCKET_NAME = os.environ.get("S3_BUCKET_NAME")
S3_ACCESS_KEY = os.environ.get("S3_ACCESS_KEY") or os.environ.get("AWS_ACCESS_KEY_ID")
S3_SECRET_KEY = os.environ.get("S3_SECRET_KEY") or os.environ.get("AWS_SECRET_ACCESS_KEY")

# Bucket key prefixes; the owning profile or event id is appended per upload.
PAYMENT_PROOF_PREFIX = "payment_proofs"
EVENT_COVER_PREFIX = "event_images"
EVENT_QR_PREFIX = "event_qr_codes"
IMAGE_CONTENT_TYPES = ["image/png", "image/jpeg", "image/jpg", "image/webp"]

S3_CLIENT = None
if AWS_REGION and S3_BUCKET_NAME and S3_ACCESS_KEY and S3_SECRET_KEY:
    S3_CLIENT = boto3.client(
        "s3",
        region_name=AWS_REGION,
        aws_access_key_id=S3_ACCESS_KEY,
        aws_secret_access_key=S3_SECRET_KEY,
        endpoint_url=f"https://s3.{AWS_REGION}.amazonaws.com",
        config=Config(signature_version="s3v4", s3={"addressing_style": "virtual"}),
    )


def log_admin_action(
    db: Session,
    actor: Optional[Profile],
    action: str,
    method: Optional[str] = None,
    path: Optional[str] = None,
    event_id: Optional[int] = None,
    meta: Optional[dict] = None,
):
    """Append an audit row for a staff mutation and commit it."""
    db.add(AuditLog(
        actor_id=actor.id if actor else None,
        actor_name=actor.full_name if actor else "",
        actor_email=actor.college_email if actor else None,
        action=action,
        method=method,
        path=path,
        event_id=event_id,
        meta=meta
    ))
    db.commit()


def _require_s3() -> None:
    if not S3_CLIENT or not S3_BUCKET_NAME or not AWS_REGION:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="S3 not configured")


def _check_content_type(content_type: Optional[str], allowed_types: Optional[List[str]]) -> None:
    if not content_type:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing content type")
    if allowed_types and content_type not in allowed_types:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid file type")


def _new_object_key(key_prefix: str, filename: Optional[str]) -> str:
    extension = Path(filename or "").suffix.lower()
    return f"{key_prefix.rstrip('/')}/{uuid.uuid4().hex}{extension}"


def _build_s3_url(key: str) -> str:
    if not S3_BUCKET_NAME or not AWS_REGION:
        raise RuntimeError("S3 configuration missing")
    return f"https://{S3_BUCKET_NAME}.s3.{AWS_REGION}.amazonaws.com/{key}"


def public_url_for_path(path: Optional[str]) -> Optional[str]:
    """Stored paths are bucket keys; full URLs pass through untouched."""
    if not path:
        return None
    if path.startswith(("http://", "https://")):
        return path
    if not S3_BUCKET_NAME or not AWS_REGION:
        return path
    return _build_s3_url(path.lstrip("/"))


def _extract_s3_key_from_url(url: Optional[str]) -> Optional[str]:
    if not url or not S3_BUCKET_NAME:
        return None
    parsed = urlparse(url)
    host = (parsed.netloc or "").lower()
    path = (parsed.path or "").lstrip("/")
    if not host or not path:
        return None
    bucket = S3_BUCKET_NAME.lower()
    if host == f"{bucket}.s3.amazonaws.com" or host.startswith(f"{bucket}.s3."):
        return unquote(path)
    return None


def _upload_to_s3(file: UploadFile, key_prefix: str, allowed_types: Optional[List[str]] = None) -> str:
    _require_s3()
    _check_content_type(file.content_type, allowed_types)
    key = _new_object_key(key_prefix, file.filename)

    try:
        S3_CLIENT.upload_fileobj(
            file.file,
            S3_BUCKET_NAME,
            key,
            ExtraArgs={"ContentType": file.content_type}
        )
    except (BotoCoreError, ClientError) as exc:
        logger.error(f"S3 upload failed for key {key}: {exc}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Upload failed") from exc

    return key


def _delete_s3_object(path: Optional[str]) -> None:
    if not S3_CLIENT or not S3_BUCKET_NAME or not path:
        return
    key = _extract_s3_key_from_url(path) or path.lstrip("/")
    try:
        S3_CLIENT.delete_object(Bucket=S3_BUCKET_NAME, Key=key)
    except (BotoCoreError, ClientError) as exc:
        # orphaned objects are tolerated; the row change already happened
        logger.warning(f"Could not delete S3 object {key}: {exc}")


def _generate_presigned_put_url(
    key_prefix: str,
    filename: str,
    content_type: str,
    allowed_types: Optional[List[str]] = None,
    expires_in: int = 600
) -> Dict[str, str]:
    _require_s3()
    if not filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing filename")
    _check_content_type(content_type, allowed_types)
    key = _new_object_key(key_prefix, filename)

    try:
        upload_url = S3_CLIENT.generate_presigned_url(
            "put_object",
            Params={"Bucket": S3_BUCKET_NAME, "Key": key, "ContentType": content_type},
            ExpiresIn=expires_in
        )
    except (BotoCoreError, ClientError) as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create presigned URL") from exc

    return {
        "upload_url": upload_url,
        "public_url": _build_s3_url(key),
        "key": key,
        "content_type": content_type
    }
