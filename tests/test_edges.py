from __future__ import annotations

import io

import numpy as np
import pytest

from composition_editor.edges import CannyEdgeExtractor, edge_reference, order_thresholds
from composition_editor.errors import ExtractionError
from composition_editor.raster import image_to_data_url

from conftest import square_image


@pytest.mark.parametrize("low,high", [(0, 0), (50, 150), (100, 200), (255, 255), (200, 100)])
def test_edge_map_matches_source_dimensions(low, high):
    img = square_image(73, 41)
    edges = CannyEdgeExtractor().extract(img, low, high)
    assert edges.size == img.size


def test_edge_map_is_binary_red_on_transparent():
    edges = CannyEdgeExtractor().extract(square_image(), 100, 200)
    px = edges.to_array().reshape(-1, 4)
    values = {tuple(p) for p in px.tolist()}
    assert values <= {(255, 0, 0, 255), (0, 0, 0, 0)}
    assert (255, 0, 0, 255) in values


def test_edges_follow_the_square_outline():
    alpha = CannyEdgeExtractor().extract(square_image(), 100, 200).to_array()[..., 3]
    ys, xs = np.nonzero(alpha)
    # Square spans x 16..40, y 12..32; dilation widens by a couple of pixels.
    assert xs.min() >= 12 and xs.max() <= 44
    assert ys.min() >= 8 and ys.max() <= 36
    # Flat interior stays empty.
    assert alpha[22, 28] == 0


def test_inverted_thresholds_are_swapped():
    assert order_thresholds(200, 100) == (100, 200)
    assert order_thresholds(-5, 300) == (0, 255)
    img = square_image()
    a = CannyEdgeExtractor().extract(img, 200, 100)
    b = CannyEdgeExtractor().extract(img, 100, 200)
    assert a.pixel_equal(b)


def test_accepts_data_url_and_bytes():
    img = square_image()
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    ex = CannyEdgeExtractor()
    assert ex.extract(image_to_data_url(img), 100, 200).size == img.size
    assert ex.extract(buf.getvalue(), 100, 200).size == img.size


def test_corrupt_image_raises_extraction_error():
    with pytest.raises(ExtractionError):
        CannyEdgeExtractor().extract(b"\x89PNG garbage", 100, 200)


def test_edge_reference_is_white_on_black():
    edges = CannyEdgeExtractor().extract(square_image(), 100, 200)
    ref = edge_reference(edges)
    assert ref.mode == "RGB"
    assert ref.size == edges.size
    arr = np.asarray(ref)
    alpha = edges.to_array()[..., 3]
    assert (arr[alpha > 0] == 255).all()
    assert (arr[alpha == 0] == 0).all()
