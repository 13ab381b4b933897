"""Tests for attachment validation, naming and storage helpers."""

import io
import os

import pytest

from swasthya.db.enums import MessageType
from swasthya.services import attachment_service

MAX = 5 * 1024 * 1024


@pytest.mark.parametrize(
    "filename,content_type",
    [
        ("photo.jpg", "image/jpeg"),
        ("photo.JPEG", "image/jpeg"),
        ("scan.png", "image/png"),
        ("report.pdf", "application/pdf"),
        ("report.pdf", "application/pdf; charset=binary"),
    ],
)
def test_allowed_files(filename, content_type):
    assert attachment_service.validate_file(filename, content_type, 1024, MAX) == (True, None)


@pytest.mark.parametrize(
    "filename,content_type",
    [
        ("notes.txt", "text/plain"),
        ("clip.mp4", "video/mp4"),
        ("photo.gif", "image/gif"),
        ("scan.png", None),
    ],
)
def test_disallowed_types(filename, content_type):
    is_valid, error = attachment_service.validate_file(filename, content_type, 1024, MAX)

    assert is_valid is False
    assert error == "Only JPEG, PNG, and PDF files are allowed"


def test_extension_must_match_type():
    is_valid, error = attachment_service.validate_file("report.exe", "application/pdf", 10, MAX)

    assert is_valid is False
    assert ".exe" in error


def test_size_limit_is_inclusive():
    assert attachment_service.validate_file("a.png", "image/png", MAX, MAX)[0] is True

    is_valid, error = attachment_service.validate_file("a.png", "image/png", MAX + 1, MAX)
    assert is_valid is False
    assert error == "File size exceeds 5 MB limit"


def test_empty_file_rejected():
    assert attachment_service.validate_file("a.png", "image/png", 0, MAX)[0] is False


def test_classify_message_type():
    assert attachment_service.classify_message_type("image/png") == MessageType.IMAGE
    assert attachment_service.classify_message_type("image/jpeg") == MessageType.IMAGE
    assert attachment_service.classify_message_type("application/pdf") == MessageType.PDF


def test_generated_names_are_unique_and_keep_extension():
    names = {attachment_service.generate_filename("My Scan.PNG") for _ in range(20)}

    assert len(names) == 20
    for name in names:
        assert name.startswith("attachment-")
        assert name.endswith(".png")
        assert "My Scan" not in name


def test_store_and_resolve(test_settings):
    name = attachment_service.generate_filename("scan.png")

    path = attachment_service.store_file(test_settings, name, io.BytesIO(b"png-bytes"))

    assert os.path.isfile(path)
    assert attachment_service.resolve_stored_path(test_settings, name) == path
    with open(path, "rb") as f:
        assert f.read() == b"png-bytes"

    attachment_service.delete_file(test_settings, name)
    assert attachment_service.resolve_stored_path(test_settings, name) is None


@pytest.mark.parametrize(
    "filename",
    ["..", "../secret.png", "passwd", "attachment-1-2.exe", "scan.png"],
)
def test_resolve_refuses_foreign_names(test_settings, filename):
    assert attachment_service.resolve_stored_path(test_settings, filename) is None


def test_store_failure_raises_storage_error(test_settings, tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")
    config = test_settings.model_copy(update={"UPLOAD_DIR": str(blocker)})

    with pytest.raises(attachment_service.AttachmentStorageError):
        attachment_service.store_file(config, "attachment-1-1.png", io.BytesIO(b"x"))


@pytest.mark.parametrize(
    "header,expected",
    [
        (None, False),
        ("", False),
        ("not-a-number", False),
        (str(MAX), False),
        (str(MAX + 1024), False),
        (str(6 * 1024 * 1024), True),
    ],
)
def test_request_too_large(header, expected):
    assert attachment_service.request_too_large(header, MAX) is expected


def test_spooled_size_keeps_read_position():
    file = io.BytesIO(b"0123456789")
    file.seek(3)

    assert attachment_service.spooled_size(file) == 10
    assert file.tell() == 3
