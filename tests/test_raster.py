from __future__ import annotations

import numpy as np
import pytest
from PIL import Image

from composition_editor.errors import InputError
from composition_editor.raster import RasterSurface, decode_image


def _solid(w, h, color):
    return RasterSurface(Image.new("RGBA", (w, h), color))


def test_clear_rect_makes_region_transparent_and_bumps_revision():
    s = _solid(10, 10, (255, 0, 0, 255))
    rev = s.revision
    s.clear_rect(2, 2, 3, 3)
    px = s.to_array()
    assert px[3, 3].tolist() == [0, 0, 0, 0]
    assert px[0, 0].tolist() == [255, 0, 0, 255]
    assert s.revision > rev


def test_crop_outside_bounds_is_transparent():
    s = _solid(10, 10, (255, 0, 0, 255))
    part = s.crop(8, 8, 4, 4)
    assert part.size == (4, 4)
    px = part.to_array()
    assert px[0, 0, 3] == 255
    assert px[3, 3, 3] == 0


def test_composite_opaque_source_replaces_and_transparent_keeps():
    dst = _solid(4, 4, (0, 0, 255, 255))
    src = RasterSurface.blank(2, 2)
    src.draw_with(lambda im: im.putpixel((0, 0), (255, 0, 0, 255)))
    dst.composite(src, 1, 1)
    px = dst.to_array()
    assert px[1, 1].tolist() == [255, 0, 0, 255]
    assert px[2, 2].tolist() == [0, 0, 255, 255]


def test_composite_clips_at_surface_edges():
    dst = RasterSurface.blank(4, 4)
    dst.composite(_solid(3, 3, (255, 0, 0, 255)), 2, -1)
    alpha = dst.to_array()[..., 3]
    assert np.count_nonzero(alpha) == 4


def test_data_url_round_trip():
    s = _solid(5, 3, (1, 2, 3, 255))
    back = RasterSurface.from_data_url(s.to_data_url())
    assert back.pixel_equal(s)


@pytest.mark.parametrize("bad", [b"not an image", "data:image/png;base64,AAAA", "http://example.com/x.png", 42])
def test_decode_image_rejects_bad_input(bad):
    with pytest.raises(InputError):
        decode_image(bad)


def test_erase_mask_at_offset_only_touches_its_box():
    surface = RasterSurface(Image.new("RGBA", (20, 10), (255, 0, 0, 255)))
    mask = Image.new("L", (4, 3), 255)
    surface.erase_mask(mask, 10, 5)

    alpha = surface.to_array()[..., 3]
    assert (alpha[5:8, 10:14] == 0).all()
    assert alpha.sum() == 255 * (200 - 12)
    with pytest.raises(ValueError):
        surface.erase_mask(mask, 18, 0)
