"""Attachment storage for chat uploads (local disk under UPLOAD_DIR)."""

import os
import random
import re
import shutil
import time
from typing import BinaryIO

from swasthya.core.config import Settings
from swasthya.db.enums import MessageType


# =============================================================================
# Configuration
# =============================================================================

# MIME type -> accepted extensions. Type is taken from the declared
# content type and extension only; file bytes are not sniffed.
ALLOWED_TYPES: dict[str, set[str]] = {
    "image/jpeg": {"jpg", "jpeg"},
    "image/png": {"png"},
    "application/pdf": {"pdf"},
}

ATTACHMENT_SUBDIR = "messages"
ATTACHMENT_URL_PREFIX = "/api/messages/attachments/"

_STORED_NAME_RE = re.compile(r"^attachment-\d+-\d+\.(jpg|jpeg|png|pdf)$")

# Allowance for the multipart framing and form fields around the file
FORM_OVERHEAD_BYTES = 64 * 1024


class AttachmentValidationError(Exception):
    """Wrong file type or size (client-fixable)."""
    pass


class AttachmentStorageError(Exception):
    """The file could not be written to storage."""
    pass


# =============================================================================
# Validation
# =============================================================================

def _extension(filename: str) -> str:
    return filename.rsplit(".", 1)[-1].lower() if "." in filename else ""


def validate_file(
    filename: str,
    content_type: str | None,
    file_size: int,
    max_size_bytes: int,
) -> tuple[bool, str | None]:
    """
    Validate an upload against the type allowlist and size limit.

    Returns (is_valid, error_message)
    """
    content_type = (content_type or "").split(";", 1)[0].strip().lower()
    if content_type not in ALLOWED_TYPES:
        return False, "Only JPEG, PNG, and PDF files are allowed"

    ext = _extension(filename)
    if ext not in ALLOWED_TYPES[content_type]:
        return False, f"File extension '.{ext}' does not match content type '{content_type}'"

    if file_size <= 0:
        return False, "Attachment is empty"

    if file_size > max_size_bytes:
        max_mb = max_size_bytes / (1024 * 1024)
        return False, f"File size exceeds {max_mb:.0f} MB limit"

    return True, None


def request_too_large(content_length: str | None, max_size_bytes: int) -> bool:
    """
    Early rejection from the Content-Length header, before the body is parsed.

    A missing or non-numeric header is not an error here; the measured
    file size is checked again in validate_file.
    """
    if not content_length or not content_length.isdigit():
        return False
    return int(content_length) > max_size_bytes + FORM_OVERHEAD_BYTES


def spooled_size(file: BinaryIO) -> int:
    """Size of an already-spooled upload. Leaves the read position where it was."""
    position = file.tell()
    size = file.seek(0, os.SEEK_END)
    file.seek(position)
    return size


def classify_message_type(content_type: str) -> MessageType:
    """Collapse an allowed MIME type to the coarse message type."""
    if content_type.startswith("image/"):
        return MessageType.IMAGE
    return MessageType.PDF


# =============================================================================
# Storage
# =============================================================================

def storage_dir(config: Settings) -> str:
    return os.path.join(config.UPLOAD_DIR, ATTACHMENT_SUBDIR)


def generate_filename(original_filename: str) -> str:
    """attachment-<epoch ms>-<random><ext>; the client's name is never reused."""
    millis = int(time.time() * 1000)
    suffix = random.randint(0, 10**9)
    return f"attachment-{millis}-{suffix}.{_extension(original_filename)}"


def store_file(config: Settings, filename: str, file: BinaryIO) -> str:
    """
    Write an upload under the attachment directory and return its path.

    Raises:
        AttachmentStorageError: the directory or file could not be written
    """
    directory = storage_dir(config)
    path = os.path.join(directory, filename)
    try:
        os.makedirs(directory, exist_ok=True)
        file.seek(0)
        with open(path, "wb") as out:
            shutil.copyfileobj(file, out)
    except OSError as exc:
        if os.path.exists(path):
            os.remove(path)
        raise AttachmentStorageError("Failed to store attachment") from exc
    return path


def delete_file(config: Settings, filename: str) -> None:
    path = os.path.join(storage_dir(config), filename)
    if os.path.exists(path):
        os.remove(path)


def build_attachment_url(filename: str) -> str:
    return f"{ATTACHMENT_URL_PREFIX}{filename}"


def resolve_stored_path(config: Settings, filename: str) -> str | None:
    """
    Map a stored attachment name to its on-disk path.

    Returns None for names this service could not have generated, which also
    rules out path traversal, and for files that no longer exist.
    """
    if not _STORED_NAME_RE.match(filename):
        return None
    path = os.path.join(storage_dir(config), filename)
    if not os.path.isfile(path):
        return None
    return path
