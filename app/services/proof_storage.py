import logging
import uuid
from datetime import datetime
from functools import lru_cache
from pathlib import Path

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.config import settings
from app.services.errors import ProofStorageError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_TYPES = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "application/pdf": ".pdf",
}

SIGNATURES = {
    ".jpg": (b"\xff\xd8\xff",),
    ".png": (b"\x89PNG\r\n\x1a\n",),
    ".gif": (b"GIF87a", b"GIF89a"),
    ".pdf": (b"%PDF",),
}

DANGEROUS_MARKERS = (b"<?php", b"<?=", b"<script")


@lru_cache(maxsize=1)
def _spaces_client():
    session = boto3.session.Session()
    return session.client(
        "s3",
        region_name=settings.SPACES_REGION,
        endpoint_url=settings.SPACES_ENDPOINT,
        aws_access_key_id=settings.SPACES_KEY,
        aws_secret_access_key=settings.SPACES_SECRET,
    )


def _join_path(*segments: str) -> str:
    cleaned = [segment.strip("/") for segment in segments if segment and segment.strip("/")]
    return "/".join(cleaned)


def _uses_spaces() -> bool:
    return bool(settings.SPACES_NAME)


def validate_proof(data: bytes, filename: str | None, content_type: str | None) -> str:
    """Check an uploaded proof and return the extension it will be stored under."""
    if not data:
        raise ValidationError("Empty file upload")
    if len(data) > settings.PROOF_MAX_BYTES:
        raise ValidationError("File size exceeds maximum allowed size")

    extension = ALLOWED_TYPES.get((content_type or "").lower())
    if not extension:
        raise ValidationError("Invalid file type. Allowed: JPG, PNG, GIF, PDF")

    name = Path(filename or "")
    if len(name.suffixes) > 1:
        raise ValidationError("Multiple file extensions not allowed")

    if not data.startswith(SIGNATURES[extension]):
        raise ValidationError("File content does not match its type")

    lowered = data.lower()
    if any(marker in lowered for marker in DANGEROUS_MARKERS):
        raise ValidationError("File contains potentially malicious code")
    return extension


def store_proof(data: bytes, filename: str | None, content_type: str | None, owner_id: int) -> str:
    """Persist a payment proof and return a durable reference to it.

    Must complete before the payment row is written so that a rolled back
    transaction never has a half-written file behind it.
    """
    extension = validate_proof(data, filename, content_type)
    timestamp = int(datetime.utcnow().timestamp())
    stored_name = f"payment_{owner_id}_{timestamp}_{uuid.uuid4().hex[:8]}{extension}"

    if _uses_spaces():
        key = _join_path(settings.SPACES_BASE_PATH, settings.PROOF_SUBDIR, stored_name)
        try:
            _spaces_client().put_object(
                Bucket=settings.SPACES_NAME,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.exception("Spaces upload failed for key=%s", key)
            raise ProofStorageError() from exc
        return f"{settings.SPACES_CDN_URL}/{key}" if settings.SPACES_CDN_URL else key

    target_dir = settings.UPLOAD_DIR / settings.PROOF_SUBDIR
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
        (target_dir / stored_name).write_bytes(data)
    except OSError as exc:
        logger.exception("Local proof upload failed for %s", stored_name)
        raise ProofStorageError() from exc
    return _join_path(settings.PROOF_SUBDIR, stored_name)


def discard_proof(proof_ref: str | None) -> None:
    """Remove a stored proof whose payment row was never committed."""
    if not proof_ref:
        return
    try:
        if _uses_spaces():
            key = proof_ref
            if settings.SPACES_CDN_URL and key.startswith(settings.SPACES_CDN_URL):
                key = key[len(settings.SPACES_CDN_URL):].lstrip("/")
            _spaces_client().delete_object(Bucket=settings.SPACES_NAME, Key=key)
        else:
            (settings.UPLOAD_DIR / proof_ref).unlink(missing_ok=True)
    except (BotoCoreError, ClientError, OSError):
        logger.warning("Could not discard orphaned proof %s", proof_ref, exc_info=True)
