import os

import pytest
from PIL import Image

from app.core.exceptions import StorageError, ValidationError
from app.services.file_service import PHOTO_URL_PREFIX, PhotoStore

from conftest import make_upload, png_bytes


async def test_valid_photo_is_saved_as_jpeg(photo_store):
    photo = await photo_store.read_and_validate(make_upload())

    ref = await photo_store.save(photo, user_id=7)

    assert ref.startswith(f"{PHOTO_URL_PREFIX}user_7_")
    assert ref.endswith(".jpg")
    with Image.open(photo_store.full_path(ref)) as image:
        assert image.format == "JPEG"
        assert image.mode == "RGB"


async def test_large_photo_is_downscaled(photo_store):
    upload = make_upload(png_bytes(size=(2000, 1000), fmt="JPEG"), filename="wide.jpg", content_type="image/jpeg")
    photo = await photo_store.read_and_validate(upload)

    ref = await photo_store.save(photo, user_id=1)

    with Image.open(photo_store.full_path(ref)) as image:
        assert max(image.size) == 1280


async def test_missing_photo(photo_store):
    with pytest.raises(ValidationError) as exc_info:
        await photo_store.read_and_validate(None)
    assert exc_info.value.message == "Please upload an image"


async def test_non_image_content_type(photo_store):
    upload = make_upload(b"%PDF-1.4", filename="doc.pdf", content_type="application/pdf")

    with pytest.raises(ValidationError) as exc_info:
        await photo_store.read_and_validate(upload)
    assert exc_info.value.fields == {"photo": "Only image files are allowed"}


async def test_disallowed_extension(photo_store):
    upload = make_upload(png_bytes(), filename="selfie.bmp", content_type="image/bmp")

    with pytest.raises(ValidationError):
        await photo_store.read_and_validate(upload)


async def test_oversize_photo(tmp_path):
    store = PhotoStore(upload_path=str(tmp_path), max_file_size=1024)
    upload = make_upload(b"\x89PNG" + b"0" * 2048)

    with pytest.raises(ValidationError) as exc_info:
        await store.read_and_validate(upload)
    assert exc_info.value.message == "File size too large"


async def test_corrupt_image(photo_store):
    with pytest.raises(ValidationError) as exc_info:
        await photo_store.read_and_validate(make_upload(b"definitely not a png"))
    assert exc_info.value.fields == {"photo": "Uploaded file is not a valid image"}


async def test_unwritable_directory_raises_storage_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file where the upload directory should be")
    store = PhotoStore(upload_path=str(blocker))
    photo = await store.read_and_validate(make_upload())

    with pytest.raises(StorageError):
        await store.save(photo, user_id=1)


async def test_delete_removes_file_and_tolerates_unknown_refs(photo_store):
    ref = await photo_store.save(await photo_store.read_and_validate(make_upload()), user_id=2)

    assert await photo_store.delete(ref) is True
    assert not os.listdir(photo_store.directory)
    assert await photo_store.delete(ref) is False
    assert await photo_store.delete("/elsewhere/photo.jpg") is False


async def test_decompression_bomb_is_rejected(photo_store, monkeypatch):
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)

    with pytest.raises(ValidationError) as exc_info:
        await photo_store.read_and_validate(make_upload(png_bytes(size=(64, 64))))
    assert exc_info.value.fields == {"photo": "Image dimensions are too large"}


async def test_pixel_ceiling_is_checked_before_decoding(tmp_path):
    store = PhotoStore(upload_path=str(tmp_path), max_image_pixels=100 * 100)
    upload = make_upload(png_bytes(size=(200, 120)))

    with pytest.raises(ValidationError) as exc_info:
        await store.read_and_validate(upload)
    assert exc_info.value.fields == {"photo": "Image dimensions are too large"}
    assert not os.path.isdir(store.directory)
