import numpy as np
import pytest

pyvips = pytest.importorskip("pyvips")

import colors  # noqa: E402
from errors import RampLoadError  # noqa: E402


def _write_strip(path, pixels, vertical=False, bands=4, lines=1):
    """Save a gradient strip n pixels long and `lines` pixels thick."""
    arr = np.asarray(pixels, np.uint8)[:, :bands]
    line = arr[None, :, :] if not vertical else arr[:, None, :]
    img = np.repeat(line, lines, axis=0 if not vertical else 1)
    img = np.ascontiguousarray(img)
    H, W, B = img.shape
    pyvips.Image.new_from_memory(img.data, W, H, B, "uchar").write_to_file(str(path))


def test_parse_color_spec_forms():
    assert colors.parse_color_spec("FF8000", None) == (255, 128, 0, 255)
    assert colors.parse_color_spec("#ff800080", None) == (255, 128, 0, 128)
    assert colors.parse_color_spec("  Red ", None) == (255, 0, 0, 255)
    assert colors.parse_color_spec("transparent", None) == (0, 0, 0, 0)


def test_parse_color_spec_default():
    d = (1, 2, 3, 4)
    assert colors.parse_color_spec("", d) == d
    assert colors.parse_color_spec("#12345", d) == d
    assert colors.parse_color_spec("zzzzzz", d) == d
    assert colors.parse_color_spec(None, d) == d


def test_ramp_from_spec():
    ramp = colors.ramp_from_spec("black:#FFFFFF")
    assert ramp.shape == (2, 4)
    assert ramp.dtype == np.uint8
    np.testing.assert_array_equal(ramp, [[0, 0, 0, 255], [255, 255, 255, 255]])
    assert not ramp.flags.writeable


def test_ramp_from_spec_bad_color():
    with pytest.raises(RampLoadError, match="bad color"):
        colors.ramp_from_spec("black:notacolor")
    with pytest.raises(RampLoadError):
        colors.ramp_from_spec(" : ")


def test_single_entry_ramp():
    assert colors.load_heatmap("gold").shape == (1, 4)


@pytest.mark.parametrize("vertical", [False, True])
def test_ramp_from_image(tmp_path, vertical):
    px = [(0, 0, 0, 255), (128, 0, 0, 255), (255, 255, 0, 255), (255, 255, 255, 255)]
    path = tmp_path / "grad.png"
    _write_strip(path, px, vertical=vertical, lines=3)
    ramp = colors.load_heatmap(path, 1.0)
    np.testing.assert_array_equal(ramp, px)
    assert not ramp.flags.writeable


def test_ramp_from_rgb_image_gets_opaque_alpha(tmp_path):
    px = [(10, 20, 30, 0), (40, 50, 60, 0)]
    path = tmp_path / "rgb.png"
    _write_strip(path, px, bands=3)
    ramp = colors.load_heatmap(str(path))
    np.testing.assert_array_equal(ramp, [(10, 20, 30, 255), (40, 50, 60, 255)])


def test_ramp_from_gray_image(tmp_path):
    path = tmp_path / "gray.png"
    _write_strip(path, [(0, 0, 0, 0), (200, 0, 0, 0)], bands=1)
    ramp = colors.load_heatmap(path)
    np.testing.assert_array_equal(ramp, [(0, 0, 0, 255), (200, 200, 200, 255)])


def test_missing_heatmap_file(tmp_path):
    with pytest.raises(RampLoadError, match="not found"):
        colors.load_heatmap(tmp_path / "missing.png")


def test_corrupt_heatmap_file(tmp_path):
    path = tmp_path / "broken.png"
    path.write_bytes(b"\x89PNG this is not an image")
    with pytest.raises(RampLoadError, match="broken.png"):
        colors.load_heatmap(path)


def test_empty_source():
    with pytest.raises(RampLoadError):
        colors.load_heatmap("   ")


@pytest.mark.parametrize("gamma", [0.0, -1.0, float("nan"), float("inf"), "abc"])
def test_invalid_gamma(gamma):
    with pytest.raises(RampLoadError, match="gamma"):
        colors.load_heatmap("black:white", gamma)


def test_gamma_one_is_identity():
    ramp = colors.ramp_from_spec("black:808080:white")
    assert colors.apply_gamma(ramp, 1.0) is ramp


def test_gamma_brightens_midtones_keeps_ends_and_alpha():
    ramp = colors.ramp_from_spec("000000:808080:FFFFFF80")
    out = colors.apply_gamma(ramp, 2.2)
    assert tuple(out[0]) == (0, 0, 0, 255)
    assert tuple(out[2]) == (255, 255, 255, 128)
    expected = round(255 * (128 / 255) ** (1 / 2.2))
    assert tuple(out[1]) == (expected, expected, expected, 255)
    assert out[1, 0] > 128
    assert not out.flags.writeable


def test_gamma_deterministic():
    a = colors.load_heatmap("black:firebrick:gold:white", 0.7)
    b = colors.load_heatmap("black:firebrick:gold:white", 0.7)
    np.testing.assert_array_equal(a, b)
