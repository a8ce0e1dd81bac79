import numpy as np
import pytest

import memory_image_viewer.convert as convert
from memory_image_viewer.errors import PreconditionViolation
from memory_image_viewer.formats import (
    CanonicalLayout,
    ChannelOrder,
    PixelFormat,
    SampleDepth,
)

RGB = ChannelOrder.RGB
BGR = ChannelOrder.BGR


@pytest.mark.parametrize("fmt", list(PixelFormat))
def test_all_zero_buffer(fmt: PixelFormat) -> None:
    width, height = 3, 2
    raw = bytes(convert.expected_length(fmt, width, height))

    out = convert.convert_buffer(raw, fmt, RGB, width, height)

    assert len(out) == width * height * fmt.channels
    # zero takes the 255 special case of the 16-bit rescale
    expected = 255 if fmt.depth is SampleDepth.U16 else 0
    assert set(out) == {expected}


def test_eight_bit_passes_through() -> None:
    raw = bytes([10, 20, 30, 40, 50, 60])

    assert convert.convert_buffer(raw, PixelFormat.CV_8UC3, RGB, 2, 1) == raw


def test_eight_bit_bgr_swaps_red_and_blue() -> None:
    raw = bytes([10, 20, 30, 40, 50, 60])

    out = convert.convert_buffer(raw, PixelFormat.CV_8UC3, BGR, 2, 1)

    assert list(out) == [30, 20, 10, 60, 50, 40]


def test_bgr_keeps_alpha_in_place() -> None:
    raw = bytes([1, 2, 3, 4, 5, 6, 7, 8])

    out = convert.convert_buffer(raw, PixelFormat.CV_8UC4, BGR, 2, 1)

    assert list(out) == [3, 2, 1, 4, 7, 6, 5, 8]


@pytest.mark.parametrize("channels", [1, 2])
def test_gray_formats_ignore_channel_order(channels: int) -> None:
    fmt = PixelFormat.parse(f"8UC{channels}")
    raw = bytes(range(24))
    width = 24 // channels

    assert convert.convert_buffer(raw, fmt, BGR, width, 1) == raw
    assert convert.convert_buffer(raw, fmt, RGB, width, 1) == raw


@pytest.mark.parametrize("channels", [3, 4])
def test_channel_swap_is_its_own_inverse(channels: int) -> None:
    fmt = PixelFormat.parse(f"8UC{channels}")
    raw = bytes(range(24))
    width = 24 // channels

    swapped = convert.convert_buffer(raw, fmt, BGR, width, 1)

    assert swapped != raw
    assert convert.swap_red_blue(swapped, channels) == raw


def test_swap_red_blue_leaves_gray_untouched() -> None:
    data = bytes(range(8))

    assert convert.swap_red_blue(data, 1) == data
    assert convert.swap_red_blue(data, 2) == data


def test_float32_one_maps_to_255() -> None:
    raw = np.ones(4 * 2, dtype=np.float32).tobytes()

    out = convert.convert_buffer(raw, PixelFormat.CV_32FC4, RGB, 2, 1)

    assert list(out) == [255] * 8


def test_float32_half_rounds_away_from_zero() -> None:
    raw = np.array([0.5], dtype=np.float32).tobytes()

    assert list(convert.convert_buffer(raw, PixelFormat.CV_32FC1, RGB, 1, 1)) == [128]


def test_float64_saturates_out_of_range_samples() -> None:
    raw = np.array([-0.5, 2.0, np.nan, 0.25], dtype=np.float64).tobytes()

    out = convert.convert_buffer(raw, PixelFormat.CV_64FC1, RGB, 4, 1)

    assert list(out) == [0, 255, 0, 64]


def test_float32_infinities_saturate() -> None:
    raw = np.array([np.inf, -np.inf], dtype=np.float32).tobytes()

    assert list(convert.convert_buffer(raw, PixelFormat.CV_32FC2, RGB, 1, 1)) == [255, 0]


def test_sixteen_bit_inverse_rescale() -> None:
    raw = np.array([65535, 0, 1, 30000], dtype=np.uint16).tobytes()

    out = convert.convert_buffer(raw, PixelFormat.CV_16UC1, RGB, 4, 1)

    assert list(out) == [255, 255, 255, 255]


def test_float_bgr_swaps_after_rescale() -> None:
    raw = np.array([0.0, 0.5, 1.0], dtype=np.float64).tobytes()

    out = convert.convert_buffer(raw, PixelFormat.CV_64FC3, BGR, 1, 1)

    assert list(out) == [255, 128, 0]


@pytest.mark.parametrize("length", [5, 7, 0])
def test_length_mismatch_is_a_precondition_violation(length: int) -> None:
    with pytest.raises(PreconditionViolation):
        convert.convert_buffer(bytes(length), PixelFormat.CV_8UC3, RGB, 2, 1)


def test_negative_dimensions_are_rejected() -> None:
    with pytest.raises(PreconditionViolation):
        convert.expected_length(PixelFormat.CV_8UC1, -1, 4)


def test_empty_image_converts_to_empty_buffer() -> None:
    assert convert.convert_buffer(b"", PixelFormat.CV_32FC3, RGB, 0, 5) == b""


def test_convert_to_asset_records_canonical_layout() -> None:
    raw = np.array([0.0, 1.0] * 2, dtype=np.float32).tobytes()

    asset = convert.convert_to_asset(raw, PixelFormat.CV_32FC2, BGR, 2, 1)

    assert asset.layout is CanonicalLayout.GRAY_ALPHA8
    assert asset.size == (2, 1)
    assert list(asset.data) == [0, 255, 0, 255]
