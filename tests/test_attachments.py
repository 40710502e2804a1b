"""Tests for attachment payload resolution."""

from __future__ import annotations

import base64
from pathlib import Path

import pytest

from mail_scheduler.core.models import Attachment
from mail_scheduler.mail import (
    AttachmentError,
    guess_content_type,
    resolve_attachment,
    store_upload,
)


@pytest.mark.parametrize(
    ("filename", "expected"),
    [
        ("report.PDF", "application/pdf"),
        ("photo.jpeg", "image/jpeg"),
        ("data.xlsx", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"),
        ("archive.unknown", "application/octet-stream"),
        ("no_extension", "application/octet-stream"),
    ],
)
def test_guess_content_type(filename: str, expected: str) -> None:
    assert guess_content_type(filename) == expected


def test_inline_bytes_used_as_is() -> None:
    resolved = resolve_attachment(Attachment(filename="a.txt", content=b"hello"))
    assert resolved.content == b"hello"
    assert resolved.content_type == "text/plain"


def test_base64_content_decoded_with_missing_padding() -> None:
    encoded = base64.b64encode(b"hello!!").decode("ascii").rstrip("=")
    resolved = resolve_attachment(Attachment(filename="a.bin", content=encoded))
    assert resolved.content == b"hello!!"
    assert resolved.content_type == "application/octet-stream"


def test_data_url_prefix_stripped() -> None:
    encoded = "data:text/plain;base64," + base64.b64encode(b"hi").decode("ascii")
    resolved = resolve_attachment(Attachment(filename="note.txt", content=encoded))
    assert resolved.content == b"hi"


def test_invalid_base64_rejected() -> None:
    with pytest.raises(AttachmentError):
        resolve_attachment(Attachment(filename="a.bin", content="***not base64***"))


def test_path_read_relative_to_base_dir(tmp_path: Path) -> None:
    (tmp_path / "files").mkdir()
    (tmp_path / "files" / "report.csv").write_bytes(b"a,b\n1,2\n")

    resolved = resolve_attachment(
        Attachment(filename="report.csv", path="files/report.csv"), base_dir=tmp_path
    )
    assert resolved.content == b"a,b\n1,2\n"
    assert resolved.content_type == "text/csv"


def test_explicit_content_type_wins(tmp_path: Path) -> None:
    target = tmp_path / "blob.dat"
    target.write_bytes(b"\x00\x01")
    resolved = resolve_attachment(
        Attachment(filename="blob.dat", path=str(target), content_type="image/png")
    )
    assert resolved.content_type == "image/png"


def test_missing_file_rejected(tmp_path: Path) -> None:
    with pytest.raises(AttachmentError, match="Cannot read attachment"):
        resolve_attachment(Attachment(filename="x.pdf", path=str(tmp_path / "x.pdf")))


def test_attachment_without_payload_rejected() -> None:
    with pytest.raises(AttachmentError, match="has no content"):
        resolve_attachment(Attachment(filename="empty.txt"))


def test_store_upload_sanitises_name(tmp_path: Path) -> None:
    stored = store_upload(tmp_path, "../évil name.txt", base64.b64encode(b"hi").decode())

    assert stored.parent == (tmp_path / "temp_attachments").resolve()
    assert stored.name.split("_", 1)[1] == "_vil_name.txt"
    assert stored.read_bytes() == b"hi"


def test_store_upload_rejects_invalid_base64(tmp_path: Path) -> None:
    with pytest.raises(AttachmentError, match="Invalid base64"):
        store_upload(tmp_path, "a.txt", "not base64!")
    assert not (tmp_path / "temp_attachments").exists()
