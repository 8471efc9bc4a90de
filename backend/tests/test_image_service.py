"""
Image pipeline tests (Pillow).

Uploads are resized to fit 800x800, get a 200x200 thumbnail and are stored
as WebP under UPLOAD_FOLDER/products/<id>/.
"""

import io
import os

import pytest
from PIL import Image

from uniform_palace.services import image_service, product_service
from uniform_palace.services.image_service import ImageProcessingError, UploadedImage


def _png(width: int, height: int, color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


class TestProcessImage:

    def test_large_image_fits_inside_bounds(self):
        processed = image_service.process_image(_png(1600, 1200))

        assert (processed.width, processed.height) == (800, 600)
        with Image.open(io.BytesIO(processed.main)) as main:
            assert main.format == "WEBP"
            assert main.size == (800, 600)
        with Image.open(io.BytesIO(processed.thumbnail)) as thumb:
            assert thumb.size == (200, 200)

    def test_small_image_not_enlarged(self):
        processed = image_service.process_image(_png(120, 90))
        assert (processed.width, processed.height) == (120, 90)

    def test_garbage_rejected(self):
        with pytest.raises(ImageProcessingError):
            image_service.process_image(b"definitely not an image")


class TestValidateUploads:

    def test_non_image_mimetype(self, app):
        with pytest.raises(ImageProcessingError, match="only image files"):
            image_service.validate_uploads([UploadedImage("notes.txt", "text/plain", b"hello")])

    def test_too_many_files(self, app):
        uploads = [UploadedImage(f"{n}.png", "image/png", b"x") for n in range(6)]
        with pytest.raises(ImageProcessingError, match="Too many files"):
            image_service.validate_uploads(uploads)

    def test_too_large(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "MAX_IMAGE_BYTES", 10)
        with pytest.raises(ImageProcessingError, match="too large"):
            image_service.validate_uploads([UploadedImage("big.png", "image/png", b"x" * 11)])

    def test_empty_batch(self, app):
        with pytest.raises(ImageProcessingError):
            image_service.validate_uploads([])


class TestUpload:

    def test_upload_stores_files_and_links_images(self, apron):
        uploads = [
            UploadedImage("front.png", "image/png", _png(900, 900)),
            UploadedImage("back.png", "image/png", _png(300, 300, (0, 0, 200))),
        ]
        images = product_service.upload_images(apron, uploads)

        assert len(images) == 2
        assert images[0].is_primary is True
        assert images[1].is_primary is False
        for image in images:
            assert image.url.startswith(f"/uploads/products/{apron.id}/")
            assert image.url.endswith(".webp")
            assert os.path.exists(os.path.join(image_service.upload_root(), image.storage_path))

    def test_removing_image_deletes_files(self, apron):
        [image] = product_service.upload_images(apron, [UploadedImage("a.png", "image/png", _png(50, 50))])
        main_path = os.path.join(image_service.upload_root(), image.storage_path)
        thumb_path = os.path.join(os.path.dirname(main_path), "thumb_" + os.path.basename(main_path))
        assert os.path.exists(thumb_path)

        product_service.remove_image(apron, image.id)

        assert not os.path.exists(main_path)
        assert not os.path.exists(thumb_path)

    def test_invalid_batch_stores_nothing(self, apron):
        uploads = [
            UploadedImage("ok.png", "image/png", _png(50, 50)),
            UploadedImage("bad.png", "image/png", b"broken"),
        ]
        with pytest.raises(ImageProcessingError):
            product_service.upload_images(apron, uploads)

        assert apron.images == []
        assert not os.path.exists(os.path.join(image_service.upload_root(), "products", str(apron.id)))

    def test_failed_commit_removes_written_files(self, apron, monkeypatch):
        from sqlalchemy.exc import OperationalError

        from uniform_palace.extensions import db

        def failing_commit():
            raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(db.session, "commit", failing_commit)
        uploads = [
            UploadedImage("front.png", "image/png", _png(60, 60)),
            UploadedImage("back.png", "image/png", _png(40, 40)),
        ]
        with pytest.raises(OperationalError):
            product_service.upload_images(apron, uploads)
        monkeypatch.undo()

        folder = os.path.join(image_service.upload_root(), "products", str(apron.id))
        assert not os.path.exists(folder) or os.listdir(folder) == []
        assert apron.images == []

    def test_multipart_endpoint(self, client, staff_headers, apron):
        data = {"images": (io.BytesIO(_png(400, 300)), "front.png", "image/png")}
        resp = client.post(
            f"/api/products/{apron.id}/images",
            data=data,
            content_type="multipart/form-data",
            headers=staff_headers,
        )
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["product"]["primary_image"]["thumbnail_url"].split("/")[-1].startswith("thumb_")

        served = client.get(body["images"][0]["url"])
        assert served.status_code == 200
        served.close()

    def test_multipart_rejects_text(self, client, staff_headers, apron):
        data = {"images": (io.BytesIO(b"hello"), "notes.txt", "text/plain")}
        resp = client.post(
            f"/api/products/{apron.id}/images",
            data=data,
            content_type="multipart/form-data",
            headers=staff_headers,
        )
        assert resp.status_code == 400
