from __future__ import annotations

import io
import logging
import re
import time
from collections.abc import Generator
from functools import partial
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from university_service.app import create_app
from university_service.config import get_settings

AUTH = {"Authorization": "Bearer test-token"}


@pytest.fixture
def client(monkeypatch, tmp_path) -> Generator[TestClient, None, None]:
    """Fixture providing a test client with two seeded universities."""
    monkeypatch.setenv("UNIVERSITY_DATABASE_PATH", str(tmp_path / "universities.db"))
    monkeypatch.setenv("UPLOADS_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("API_TOKENS", '["test-token"]')
    get_settings.cache_clear()

    app = create_app()

    with TestClient(app) as test_client:
        repository = app.state.university_repository
        test_client.portal.call(
            partial(repository.add_university, "Universidad Nacional", university_id=42)
        )
        test_client.portal.call(
            partial(repository.add_university, "Universidad Catolica", university_id=7)
        )
        test_client.portal.call(
            partial(repository.add_career, 42, "Medicina", categories=["Salud"])
        )
        yield test_client

    get_settings.cache_clear()


def _photos_dir(tmp_path: Path) -> Path:
    return tmp_path / "uploads" / "universities"


def test_requests_without_token_are_rejected(client: TestClient) -> None:
    assert client.get("/api/universities").status_code == 401

    response = client.get("/api/universities", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401
    assert response.json()["success"] is False


def test_list_and_get_universities(client: TestClient) -> None:
    listing = client.get("/api/universities", headers=AUTH)
    assert listing.status_code == 200
    assert listing.json()["success"] is True
    assert [u["id"] for u in listing.json()["data"]] == [7, 42]

    single = client.get("/api/universities/42", headers=AUTH)
    assert single.status_code == 200
    assert single.json()["data"]["name"] == "Universidad Nacional"

    missing = client.get("/api/universities/999", headers=AUTH)
    assert missing.status_code == 404
    assert missing.json() == {"success": False, "message": "University not found"}


def test_carreras_endpoints(client: TestClient) -> None:
    carreras = client.get("/api/universities/42/carreras", headers=AUTH)
    assert carreras.status_code == 200
    assert [c["name"] for c in carreras.json()["data"]] == ["Medicina"]

    nested = client.get("/api/universities/42/carreras-with-categorias", headers=AUTH)
    assert nested.status_code == 200
    assert nested.json()["data"][0]["categorias"][0]["name"] == "Salud"

    assert client.get("/api/universities/7/carreras", headers=AUTH).json()["data"] == []
    assert client.get("/api/universities/999/carreras", headers=AUTH).status_code == 404
    assert (
        client.get("/api/universities/999/carreras-with-categorias", headers=AUTH).status_code
        == 404
    )


def test_upload_photo_links_record(client: TestClient, tmp_path: Path, tiny_png: bytes) -> None:
    response = client.post(
        "/api/universities/42/photo",
        headers=AUTH,
        files={"image": ("campus.png", tiny_png, "image/png")},
    )

    assert response.status_code == 201
    payload = response.json()
    assert payload["success"] is True
    assert payload["id"] == 42
    assert re.fullmatch(r"000042-\d{17}-.*\.png", payload["filename"])
    assert payload["url"] == f"/static/universities/{payload['filename']}"
    assert (_photos_dir(tmp_path) / payload["filename"]).read_bytes() == tiny_png

    fetched = client.get("/api/universities/42", headers=AUTH)
    assert fetched.json()["data"]["image"] == payload["url"]

    served = client.get(payload["url"])
    assert served.status_code == 200
    assert served.content == tiny_png


def test_upload_photo_for_missing_university(client: TestClient, tmp_path: Path, tiny_png: bytes) -> None:
    response = client.post(
        "/api/universities/999/photo",
        headers=AUTH,
        files={"image": ("campus.png", tiny_png, "image/png")},
    )

    assert response.status_code == 404
    assert list(_photos_dir(tmp_path).iterdir()) == []


def test_upload_photo_without_image_field(client: TestClient, tmp_path: Path) -> None:
    response = client.post(
        "/api/universities/42/photo",
        headers=AUTH,
        files={"document": ("notes.txt", io.BytesIO(b"hello"), "text/plain")},
    )

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert list(_photos_dir(tmp_path).iterdir()) == []


def test_upload_photo_rejects_non_images(client: TestClient, tmp_path: Path) -> None:
    response = client.post(
        "/api/universities/42/photo",
        headers=AUTH,
        files={"image": ("notes.txt", io.BytesIO(b"hello"), "text/plain")},
    )

    assert response.status_code == 400
    assert list(_photos_dir(tmp_path).iterdir()) == []


def test_upload_photo_rejects_oversized_files(client: TestClient, tmp_path: Path) -> None:
    too_big = b"\0" * (5 * 1024 * 1024 + 1)

    response = client.post(
        "/api/universities/42/photo",
        headers=AUTH,
        files={"image": ("huge.png", too_big, "image/png")},
    )

    assert response.status_code == 400
    assert list(_photos_dir(tmp_path).iterdir()) == []


def test_upload_photo_compensates_when_update_fails(
    client: TestClient, tmp_path: Path, tiny_png: bytes
) -> None:
    repository = client.app.state.university_repository
    repository.update = AsyncMock(return_value=0)

    response = client.post(
        "/api/universities/42/photo",
        headers=AUTH,
        files={"image": ("campus.png", tiny_png, "image/png")},
    )

    assert response.status_code == 500
    assert response.json() == {"success": False, "message": "Internal server error"}
    repository.update.assert_awaited_once()
    assert list(_photos_dir(tmp_path).iterdir()) == []


def test_repeated_uploads_get_new_names(client: TestClient, tmp_path: Path, tiny_png: bytes) -> None:
    names = []
    for _ in range(2):
        response = client.post(
            "/api/universities/42/photo",
            headers=AUTH,
            files={"image": ("campus.png", tiny_png, "image/png")},
        )
        assert response.status_code == 201
        names.append(response.json()["filename"])
        time.sleep(0.002)

    assert names[0] != names[1]
    assert len(list(_photos_dir(tmp_path).iterdir())) == 2
    fetched = client.get("/api/universities/42", headers=AUTH)
    assert fetched.json()["data"]["image"].endswith(names[1])


def test_non_ascii_token_is_rejected(client: TestClient) -> None:
    response = client.get(
        "/api/universities",
        headers={"Authorization": "Bearer café".encode("latin-1")},
    )

    assert response.status_code == 401
    assert response.json()["success"] is False


def test_oversized_upload_to_missing_university_is_not_found(
    client: TestClient, tmp_path: Path
) -> None:
    too_big = b"\0" * (5 * 1024 * 1024 + 1)

    response = client.post(
        "/api/universities/999/photo",
        headers=AUTH,
        files={"image": ("huge.png", too_big, "image/png")},
    )

    assert response.status_code == 404
    assert list(_photos_dir(tmp_path).iterdir()) == []


def test_unexpected_upload_failure_is_logged_once(
    client: TestClient, tmp_path: Path, tiny_png: bytes, caplog
) -> None:
    repository = client.app.state.university_repository
    repository.update = AsyncMock(side_effect=RuntimeError("database is locked"))

    with caplog.at_level(logging.ERROR, logger="university_service"):
        response = client.post(
            "/api/universities/42/photo",
            headers=AUTH,
            files={"image": ("campus.png", tiny_png, "image/png")},
        )

    assert response.status_code == 500
    errors = [
        record
        for record in caplog.records
        if record.levelno >= logging.ERROR and record.name.startswith("university_service")
    ]
    assert len(errors) == 1
    assert errors[0].exc_info is not None
    assert list(_photos_dir(tmp_path).iterdir()) == []
