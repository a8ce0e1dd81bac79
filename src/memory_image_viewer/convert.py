"""Decode raw sample buffers into canonical 8-bit pixel data."""

from __future__ import annotations

import collections.abc as cabc
import logging
from typing import TYPE_CHECKING, Any, TypeAlias

import numpy as np

from .errors import PreconditionViolation
from .formats import ChannelOrder, PixelFormat, SampleDepth
from .image import ImageAsset

logger = logging.getLogger(__name__)

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from numpy import ndarray as NDArray
else:
    NDArray: TypeAlias = Any

U16_MAX = 65535.0
U8_MAX = 255.0


def expected_length(fmt: PixelFormat, width: int, height: int) -> int:
    """Return the byte length of a ``width`` x ``height`` buffer in ``fmt``."""
    if width < 0 or height < 0:
        msg = f"image dimensions must not be negative, got {width}x{height}"
        raise PreconditionViolation(msg)
    return width * height * fmt.bytes_per_pixel


def _round_half_away(values: NDArray) -> NDArray:
    return np.copysign(np.floor(np.abs(values) + 0.5), values)


def _saturate_u8(values: NDArray) -> NDArray:
    """Cast to ``uint8`` the way a saturating float-to-int cast does."""
    finite = np.nan_to_num(values, nan=0.0, posinf=U8_MAX, neginf=0.0)
    return np.clip(finite, 0.0, U8_MAX).astype(np.uint8)


def _rescale_u8(samples: NDArray) -> NDArray:
    return samples


def _rescale_u16(samples: NDArray) -> NDArray:
    # Inverse-proportion rescale, not u / 257: every non-zero sample lands at
    # or above 255 and saturates.  Zero maps to 255 as well.
    wide = samples.astype(np.float64)
    with np.errstate(divide="ignore"):
        scaled = U16_MAX / wide * U8_MAX
    scaled[wide == 0] = U8_MAX
    return _saturate_u8(_round_half_away(scaled))


def _rescale_float(samples: NDArray) -> NDArray:
    # Multiply in the sample's own precision; out-of-range values are not
    # clamped before the multiply, only saturated by the final cast.
    with np.errstate(over="ignore", invalid="ignore"):
        scaled = samples * samples.dtype.type(U8_MAX)
        return _saturate_u8(_round_half_away(scaled))


_RESCALERS: dict[SampleDepth, cabc.Callable[[NDArray], NDArray]] = {
    SampleDepth.U8: _rescale_u8,
    SampleDepth.U16: _rescale_u16,
    SampleDepth.F32: _rescale_float,
    SampleDepth.F64: _rescale_float,
}


def _swap_pixels(pixels: NDArray) -> NDArray:
    channels = pixels.shape[1]
    if channels not in (3, 4):
        return pixels
    order = [2, 1, 0, *range(3, channels)]
    return pixels[:, order]


def swap_red_blue(data: bytes, channels: int) -> bytes:
    """Swap channel 0 and 2 of every 8-bit pixel; other layouts pass through."""
    if channels not in (3, 4):
        return bytes(data)
    pixels = np.frombuffer(data, dtype=np.uint8).reshape(-1, channels)
    return _swap_pixels(pixels).tobytes()


def convert_buffer(
    raw: bytes, fmt: PixelFormat, order: ChannelOrder, width: int, height: int,
) -> bytes:
    """Turn ``raw`` samples in ``fmt`` into ``fmt.canonical_layout`` bytes.

    ``raw`` must be exactly ``width * height * fmt.bytes_per_pixel`` bytes long;
    anything else raises :class:`PreconditionViolation`.  The output always has
    one byte per channel, with red and blue swapped when ``order`` is BGR and
    the format carries colour.
    """
    expected = expected_length(fmt, width, height)
    if len(raw) != expected:
        msg = (
            f"{fmt.name} {width}x{height} needs {expected} bytes, "
            f"got {len(raw)}"
        )
        raise PreconditionViolation(msg)

    samples = np.frombuffer(raw, dtype=fmt.dtype)
    pixels = _RESCALERS[fmt.depth](samples).reshape(-1, fmt.channels)
    if order is ChannelOrder.BGR:
        pixels = _swap_pixels(pixels)
    logger.debug(
        "Converted %d bytes of %s (%dx%d, %s) to %s",
        len(raw), fmt.name, width, height, order.name, fmt.canonical_layout.name,
    )
    return np.ascontiguousarray(pixels, dtype=np.uint8).tobytes()


def convert_to_asset(
    raw: bytes, fmt: PixelFormat, order: ChannelOrder, width: int, height: int,
) -> ImageAsset:
    """Convert ``raw`` and wrap the result in an :class:`ImageAsset`."""
    data = convert_buffer(raw, fmt, order, width, height)
    return ImageAsset(
        data=data, width=width, height=height, layout=fmt.canonical_layout,
    )
