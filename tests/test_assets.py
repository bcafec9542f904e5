import pytest
from PIL import Image

from synthesizer.assets import find_images, image_to_bytes, load_source_image
from synthesizer.errors import SynthesisError


def test_load_source_image_from_bytes_and_path(tmp_path, source_image):
    data = image_to_bytes(source_image, "PNG")
    path = tmp_path / "product.png"
    path.write_bytes(data)

    from_bytes = load_source_image(data)
    from_path = load_source_image(path)

    assert from_bytes.mode == from_path.mode == "RGBA"
    assert from_bytes.size == from_path.size == (80, 60)


def test_undecodable_source_is_a_synthesis_error():
    with pytest.raises(SynthesisError):
        load_source_image(b"definitely not an image")


def test_find_images_filters_by_extension(tmp_path):
    (tmp_path / "nested").mkdir()
    Image.new("RGB", (4, 4)).save(tmp_path / "b.jpg")
    Image.new("RGB", (4, 4)).save(tmp_path / "nested" / "a.PNG")
    (tmp_path / "notes.txt").write_text("skip me")

    assert [p.name for p in find_images(tmp_path)] == ["b.jpg", "a.PNG"]
    assert find_images(tmp_path / "missing") == []
