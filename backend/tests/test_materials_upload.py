"""
Material upload tests: category/extension checks in storage and the API route.
"""
from __future__ import annotations

import re

import httpx
import pytest
from httpx import ASGITransport

from storage.uploads import IncomingFile, InvalidCategory, LocalUploadStorage, check_category
from web.main import app


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.parametrize(
    "filename, category",
    [
        ("notes.pdf", "document"),
        ("NOTES.DOCX", "document"),
        ("clip.mp4", "video"),
        ("photo.jpeg", "image"),
        ("song.ogg", "audio"),
        ("archive.zip", "other"),
    ],
)
def test_allowed_extensions(filename, category):
    check_category(filename, category)


@pytest.mark.parametrize(
    "filename, category",
    [
        ("movie.mp4", "document"),
        ("notes.pdf", "image"),
        ("noext", "audio"),
        ("notes.pdf", "spreadsheet"),
    ],
)
def test_rejected_extensions(filename, category):
    with pytest.raises(InvalidCategory) as excinfo:
        check_category(filename, category)
    assert str(excinfo.value) == f"Invalid file type for {category}"


def test_store_writes_file_under_root_with_timestamp_prefix(tmp_path):
    storage = LocalUploadStorage(tmp_path, clock=lambda: 1700000000.5)
    stored = storage.store(IncomingFile(name="../../etc/Week 1.pdf", body=b"%PDF-1.4"), "document")
    match = re.fullmatch(r"/uploads/(1700000000500_[0-9a-f]{32}_Week_1\.pdf)", stored.url)
    assert match is not None
    assert stored.original_name == "../../etc/Week 1.pdf"
    assert stored.size == 8
    assert (tmp_path / match.group(1)).read_bytes() == b"%PDF-1.4"
    assert [p.name for p in tmp_path.iterdir()] == [match.group(1)]


def test_same_name_in_same_millisecond_keeps_both_files(tmp_path):
    storage = LocalUploadStorage(tmp_path, clock=lambda: 1000.0)
    first = storage.store(IncomingFile(name="notes.pdf", body=b"first-version"), "document")
    second = storage.store(IncomingFile(name="notes.pdf", body=b"second-version"), "document")
    assert first.url != second.url
    assert (tmp_path / first.url.rsplit("/", 1)[1]).read_bytes() == b"first-version"
    assert (tmp_path / second.url.rsplit("/", 1)[1]).read_bytes() == b"second-version"
    assert len(list(tmp_path.iterdir())) == 2


def test_rejected_file_is_not_written(tmp_path):
    storage = LocalUploadStorage(tmp_path / "up")
    with pytest.raises(InvalidCategory):
        storage.store(IncomingFile(name="x.exe", body=b"MZ"), "document")
    assert not (tmp_path / "up").exists()


@pytest.mark.anyio
async def test_teacher_uploads_material(auth_header):
    async with _client() as c:
        r = await c.put(
            "/api/materials/upload",
            params={"category": "document", "filename": "syllabus.pdf"},
            content=b"%PDF-1.7 test",
            headers=auth_header("teacher-1"),
        )
    assert r.status_code == 201
    data = r.json()["data"]
    assert data["fileName"] == "syllabus.pdf"
    assert data["fileSize"] == len(b"%PDF-1.7 test")
    assert data["url"].startswith("/uploads/") and data["url"].endswith("_syllabus.pdf")


@pytest.mark.anyio
async def test_upload_with_mismatched_category_is_400(auth_header):
    async with _client() as c:
        r = await c.put(
            "/api/materials/upload",
            params={"category": "image", "filename": "syllabus.pdf"},
            content=b"data",
            headers=auth_header("admin-1"),
        )
    assert r.status_code == 400
    assert r.json() == {"status": "error", "error": "invalid_category", "message": "Invalid file type for image"}


@pytest.mark.anyio
async def test_student_cannot_upload(auth_header):
    async with _client() as c:
        r = await c.put(
            "/api/materials/upload",
            params={"category": "other", "filename": "a.txt"},
            content=b"data",
            headers=auth_header("s1"),
        )
    assert r.status_code == 403
