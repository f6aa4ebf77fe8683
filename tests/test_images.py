import asyncio
import base64
import io

from PIL import Image

from snapsolve.images import load_images, read_image_b64, shrink_image_b64

from conftest import PNG_B64, make_png_b64

def test_small_image_is_untouched():
    assert shrink_image_b64(PNG_B64, max_dimension=64) == PNG_B64

def test_large_image_is_downsized_to_jpeg():
    big = make_png_b64(size=(2048, 1024), mode="RGBA", color=(0, 0, 255, 128))
    out = shrink_image_b64(big, max_dimension=1024)

    image = Image.open(io.BytesIO(base64.b64decode(out)))
    assert image.format == "JPEG"
    assert image.size == (1024, 512)

def test_undecodable_image_is_passed_through():
    junk = base64.b64encode(b"definitely not an image").decode("ascii")
    assert shrink_image_b64(junk) == junk

def test_load_images_keeps_order(tmp_path):
    paths = []
    for i, color in enumerate([(255, 0, 0), (0, 255, 0)]):
        p = tmp_path / f"{i}.png"
        p.write_bytes(base64.b64decode(make_png_b64(color=color)))
        paths.append(p)

    images = asyncio.run(load_images(paths))
    assert images == [read_image_b64(p) for p in paths]
    assert images[0] != images[1]
