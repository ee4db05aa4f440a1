"""Tests for image upload decoding and local media storage."""

import base64

import pytest

from app.core.errors import InvalidUpload
from app.infra.media_storage import LocalMediaStorage, decode_image_upload

DATA = b"GIF89a" + b"\x01" * 20


class TestDecodeImageUpload:
    def test_accepts_allowed_extension(self) -> None:
        extension, data = decode_image_upload(base64.b64encode(DATA).decode(), "foto.GIF", 1000, 1000)

        assert extension == ".gif"
        assert data == DATA

    @pytest.mark.parametrize("filename", ["foto.bmp", "foto", "foto.png.exe"])
    def test_rejects_other_extensions(self, filename: str) -> None:
        with pytest.raises(InvalidUpload) as exc_info:
            decode_image_upload(base64.b64encode(DATA).decode(), filename, 1000, 1000)

        assert not exc_info.value.too_large

    def test_character_limit_checked_before_decoding(self) -> None:
        with pytest.raises(InvalidUpload) as exc_info:
            decode_image_upload("não é base64" * 10, "foto.png", 10, 1000)

        assert exc_info.value.too_large

    def test_byte_limit_checked_after_decoding(self) -> None:
        with pytest.raises(InvalidUpload) as exc_info:
            decode_image_upload(base64.b64encode(DATA).decode(), "foto.png", 1000, 5)

        assert exc_info.value.too_large

    def test_invalid_base64(self) -> None:
        with pytest.raises(InvalidUpload, match="decodificar base64"):
            decode_image_upload("@@@", "foto.png", 1000, 1000)

    def test_empty_image(self) -> None:
        with pytest.raises(InvalidUpload, match="vazia"):
            decode_image_upload("", "foto.png", 1000, 1000)


class TestLocalMediaStorage:
    def test_upload_returns_public_url(self, tmp_path) -> None:
        storage = LocalMediaStorage(str(tmp_path), "http://cdn.campus.edu/media/")

        url = storage.upload("events/e-1/capa.png", DATA)

        assert url == "http://cdn.campus.edu/media/events/e-1/capa.png"
        assert (tmp_path / "events" / "e-1" / "capa.png").read_bytes() == DATA

    def test_rejects_path_traversal(self, tmp_path) -> None:
        storage = LocalMediaStorage(str(tmp_path / "media"), "http://cdn.campus.edu/media")

        with pytest.raises(InvalidUpload):
            storage.upload("../fora.png", DATA)

    def test_delete_by_public_url(self, tmp_path) -> None:
        storage = LocalMediaStorage(str(tmp_path), "http://cdn.campus.edu/media")
        url = storage.upload("events/e-1/capa.png", DATA)

        path = storage.path_for_url(url)

        assert path == "events/e-1/capa.png"
        assert storage.delete(path) is True
        assert not (tmp_path / "events" / "e-1" / "capa.png").exists()
        assert storage.delete(path) is False

    def test_foreign_url_has_no_path(self, tmp_path) -> None:
        storage = LocalMediaStorage(str(tmp_path), "http://cdn.campus.edu/media")

        assert storage.path_for_url("https://outro.site/capa.png") is None
        assert storage.path_for_url(None) is None
