from io import BytesIO

import pytest
from PIL import Image

from mosaic_studio.core.errors import ImageDecodeError, ImageNotFound
from mosaic_studio.services.image_store import ImageStore, normalize_reference


def _png_bytes(size=(30, 20), color="orange") -> bytes:
    buf = BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


@pytest.mark.parametrize(
    "raw",
    [
        "user_1/project_2/main.png",
        "/user_1/project_2/main.png",
        "uploads/user_1/project_2/main.png",
        "/uploads/user_1/project_2/main.png",
        "./user_1/project_2/main.png",
        "user_1\\project_2\\main.png",
        "user_1//project_2/./main.png",
    ],
)
def test_normalize_reference_accepts_legacy_shapes(raw):
    assert normalize_reference(raw) == "user_1/project_2/main.png"


@pytest.mark.parametrize("raw", ["", "/", "../secret.png", "user_1/../../etc/passwd"])
def test_normalize_reference_rejects_escapes(raw):
    with pytest.raises(ValueError):
        normalize_reference(raw)


def test_open_resolves_prefixed_reference(store: ImageStore):
    target = store.root / "user_1" / "main.png"
    target.parent.mkdir(parents=True)
    target.write_bytes(_png_bytes())
    im = store.open("/uploads/user_1/main.png")
    assert im.size == (30, 20)
    assert im.mode == "RGBA"


def test_open_missing_file(store: ImageStore):
    with pytest.raises(ImageNotFound):
        store.open("user_1/nothing.png")


def test_open_rejects_path_outside_root(store: ImageStore):
    with pytest.raises(ImageNotFound):
        store.open("../outside.png")


def test_open_garbage_bytes_is_decode_error(store: ImageStore):
    (store.root / "bad.jpg").write_bytes(b"definitely not a jpeg")
    with pytest.raises(ImageDecodeError):
        store.open("bad.jpg")


def test_open_truncated_image_is_decode_error(store: ImageStore):
    buf = BytesIO()
    Image.effect_noise((200, 200), 64).convert("RGB").save(buf, format="JPEG")
    data = buf.getvalue()
    (store.root / "cut.jpg").write_bytes(data[: len(data) // 2])
    with pytest.raises(ImageDecodeError):
        store.open("cut.jpg")


def test_open_oversized_image_is_decode_error(store: ImageStore, monkeypatch):
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 20000)
    (store.root / "big.png").write_bytes(_png_bytes((300, 300)))
    with pytest.raises(ImageDecodeError):
        store.open("big.png")


def test_save_upload_writes_normalized_path(store: ImageStore):
    stored = store.save_upload(3, 9, "tile", "Holiday.PNG", _png_bytes((64, 48)))
    assert stored.path.startswith("user_3/project_9/tile_")
    assert stored.path.endswith(".png")
    assert (stored.width, stored.height, stored.format) == (64, 48, "png")
    assert store.open(stored.path).size == (64, 48)


def test_save_upload_without_project(store: ImageStore):
    stored = store.save_upload(3, None, "main", "a.png", _png_bytes())
    assert stored.path.startswith("user_3/main_")


def test_save_upload_rejects_unknown_extension(store: ImageStore):
    with pytest.raises(ImageDecodeError):
        store.save_upload(1, 1, "tile", "notes.txt", _png_bytes())


def test_save_upload_rejects_undecodable_bytes(store: ImageStore):
    with pytest.raises(ImageDecodeError):
        store.save_upload(1, 1, "tile", "photo.jpg", b"\x00\x01garbage")
    assert not any(store.root.rglob("*.jpg"))
