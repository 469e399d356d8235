"""
Tests for the watermark HTTP endpoints.
"""

import fitz
import pytest
from fastapi.testclient import TestClient

from app.core.config import get_settings
from app.main import app

PREFIX = "/pdf/watermark"


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def file_id(client, sample_pdf):
    response = client.post(f"{PREFIX}/upload", files={"file": ("report.pdf", sample_pdf, "application/pdf")})
    assert response.status_code == 200
    card = response.json()["file"]
    assert card["page_count"] == 3
    assert card["pages"][0] == {"page": 1, "width": 612, "height": 792}
    return card["file_id"]


def create_text(client, file_id, **payload):
    payload.setdefault("text", "DRAFT")
    response = client.post(f"{PREFIX}/{file_id}/watermarks/text", json=payload)
    assert response.status_code == 200, response.text
    return response.json()["watermark"]


class TestUpload:
    def test_rejects_non_pdf(self, client):
        response = client.post(f"{PREFIX}/upload", files={"file": ("notes.txt", b"hello", "text/plain")})
        assert response.status_code == 400

    def test_unknown_file(self, client):
        assert client.get(f"{PREFIX}/missing/watermarks").status_code == 404

    def test_page_raster(self, client, file_id):
        response = client.get(f"{PREFIX}/{file_id}/pages/2", params={"width": 306})
        body = response.json()
        assert body["raster_width"] == 306
        assert body["render_scale"] == pytest.approx(0.5)
        assert body["preview"].startswith("data:image/png;base64,")

    def test_page_out_of_range(self, client, file_id):
        assert client.get(f"{PREFIX}/{file_id}/pages/9").status_code == 400


class TestWatermarkCrud:
    def test_create_defaults(self, client, file_id):
        watermark = create_text(client, file_id)
        assert watermark["position"] == "diagonal"
        assert watermark["rotation"] == -45
        assert watermark["pages"] is None

    def test_page_range_and_canonical_all(self, client, file_id):
        assert create_text(client, file_id, page_range="2")["pages"] == [2]
        assert create_text(client, file_id, pages=[1, 2, 3])["pages"] is None

    def test_malformed_page_range(self, client, file_id):
        response = client.post(f"{PREFIX}/{file_id}/watermarks/text", json={"text": "X", "page_range": "3-1"})
        assert response.status_code == 400
        assert response.json()["error"] == "ParseError"
        assert "3-1" in response.json()["detail"]

    def test_rotation_limited_at_edit_surface(self, client, file_id):
        response = client.post(f"{PREFIX}/{file_id}/watermarks/text", json={"text": "X", "rotation": 120})
        assert response.status_code == 422

    def test_update_duplicate_delete(self, client, file_id):
        watermark = create_text(client, file_id)
        url = f"{PREFIX}/{file_id}/watermarks/{watermark['id']}"

        updated = client.patch(url, json={"position": {"x": 0.2, "y": 0.7}, "opacity": 60}).json()["watermark"]
        assert updated["position"] == {"x": 0.2, "y": 0.7}
        assert updated["opacity"] == 60

        copy = client.post(f"{url}/duplicate").json()["watermark"]
        assert copy["id"] != watermark["id"]
        assert {**copy, "id": watermark["id"]} == updated

        remaining = client.delete(url).json()["watermarks"]
        assert [w["id"] for w in remaining] == [copy["id"]]
        assert client.patch(url, json={"opacity": 10}).status_code == 404

    def test_image_watermark(self, client, file_id, png_bytes):
        response = client.post(
            f"{PREFIX}/{file_id}/watermarks/image",
            files={"file": ("logo.png", png_bytes, "image/png")},
            data={"scale": "2", "position": "bottom-right"},
        )
        watermark = response.json()["watermark"]
        assert watermark["kind"] == "image"
        assert (watermark["pixel_width"], watermark["pixel_height"], watermark["scale"]) == (40, 20, 2)

    def test_undecodable_image(self, client, file_id):
        response = client.post(
            f"{PREFIX}/{file_id}/watermarks/image",
            files={"file": ("logo.png", b"garbage", "image/png")},
        )
        assert response.status_code == 415
        assert response.json()["error"] == "UnsupportedFormatError"


class TestLayoutAndCommit:
    def test_layout_uses_display_transform(self, client, file_id):
        watermark = create_text(client, file_id, position="center", rotation=10)
        response = client.post(
            f"{PREFIX}/{file_id}/layout",
            json={"page": 1, "raster_width": 1200, "raster_height": 1553, "container_width": 2000, "container_height": 1553},
        )
        body = response.json()
        (overlay,) = body["overlays"]
        assert overlay["watermark_id"] == watermark["id"]
        assert body["display"]["offset_x"] == pytest.approx(400)
        assert overlay["left"] == pytest.approx(1000)
        assert overlay["top"] == pytest.approx(776.5, abs=0.5)
        assert overlay["rotation"] == -10

    def test_layout_before_raster_loads_is_a_conflict(self, client, file_id):
        create_text(client, file_id)
        response = client.post(f"{PREFIX}/{file_id}/layout", json={"page": 1})
        assert response.status_code == 409
        assert response.json()["error"] == "TransformUnavailable"

    def test_commit_requires_watermarks(self, client, file_id):
        assert client.post(f"{PREFIX}/commit", json={"file_id": file_id}).status_code == 400

    def test_commit_publishes_download(self, client, file_id):
        create_text(client, file_id, text="SECRET", page_range="2", rotation=0)
        response = client.post(f"{PREFIX}/commit", json={"file_id": file_id, "output_filename": "stamped.pdf"})
        assert response.status_code == 200
        result = response.json()["result"]
        assert result["download_url"].startswith("/downloads/")

        published = get_settings().public_dir / "downloads" / result["download_url"].rsplit("/", 1)[-1]
        with fitz.open(published) as document:
            assert [bool(page.search_for("SECRET")) for page in document] == [False, True, False]

    def test_rendered_preview(self, client, file_id):
        create_text(client, file_id)
        response = client.post(f"{PREFIX}/{file_id}/preview", params={"page": 1})
        assert response.json()["preview"].startswith("data:image/png;base64,")
