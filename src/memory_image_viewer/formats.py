"""Closed catalog of source pixel encodings and the canonical output layouts.

Every other module asks this catalog for channel counts and sample widths;
nothing else hard-codes format knowledge.  Names follow the OpenCV ``cv::Mat``
type constants because buffers pulled out of a process are usually matrices.
"""

from __future__ import annotations

from enum import Enum

import numpy as np


class SampleDepth(Enum):
    """Encoding of a single channel sample."""

    U8 = ("8U", 1, "uint8")
    U16 = ("16U", 2, "uint16")
    F32 = ("32F", 4, "float32")
    F64 = ("64F", 8, "float64")

    def __init__(self, tag: str, byte_width: int, dtype_name: str) -> None:
        self.tag = tag
        self.byte_width = byte_width
        self.dtype_name = dtype_name

    @property
    def dtype(self) -> np.dtype:
        """Native-endian numpy dtype for one sample."""
        return np.dtype(self.dtype_name)

    @property
    def is_float(self) -> bool:
        return self in (SampleDepth.F32, SampleDepth.F64)


class CanonicalLayout(Enum):
    """8-bit-per-channel layouts the codec understands; values are Pillow modes."""

    GRAY8 = "L"
    GRAY_ALPHA8 = "LA"
    RGB8 = "RGB"
    RGBA8 = "RGBA"

    @property
    def channels(self) -> int:
        return len(self.value)

    @classmethod
    def for_channels(cls, channels: int) -> CanonicalLayout:
        """Return the layout holding ``channels`` 8-bit samples per pixel."""
        for layout in cls:
            if layout.channels == channels:
                return layout
        raise ValueError(f"no canonical layout with {channels} channels")


class ChannelOrder(Enum):
    """Byte order of colour channels inside a 3- or 4-channel pixel."""

    RGB = "rgb"
    BGR = "bgr"

    @classmethod
    def parse(cls, text: str) -> ChannelOrder:
        try:
            return cls(text.strip().lower())
        except ValueError:
            msg = f"unknown channel order {text!r}; expected 'rgb' or 'bgr'"
            raise ValueError(msg) from None


class PixelFormat(Enum):
    """Source pixel encoding: a sample depth and a channel count."""

    CV_8UC1 = (SampleDepth.U8, 1)
    CV_8UC2 = (SampleDepth.U8, 2)
    CV_8UC3 = (SampleDepth.U8, 3)
    CV_8UC4 = (SampleDepth.U8, 4)
    CV_16UC1 = (SampleDepth.U16, 1)
    CV_16UC2 = (SampleDepth.U16, 2)
    CV_16UC3 = (SampleDepth.U16, 3)
    CV_16UC4 = (SampleDepth.U16, 4)
    CV_32FC1 = (SampleDepth.F32, 1)
    CV_32FC2 = (SampleDepth.F32, 2)
    CV_32FC3 = (SampleDepth.F32, 3)
    CV_32FC4 = (SampleDepth.F32, 4)
    CV_64FC1 = (SampleDepth.F64, 1)
    CV_64FC2 = (SampleDepth.F64, 2)
    CV_64FC3 = (SampleDepth.F64, 3)
    CV_64FC4 = (SampleDepth.F64, 4)

    def __init__(self, depth: SampleDepth, channels: int) -> None:
        self.depth = depth
        self.channels = channels

    @property
    def bytes_per_channel(self) -> int:
        return self.depth.byte_width

    @property
    def bytes_per_pixel(self) -> int:
        return self.channels * self.depth.byte_width

    @property
    def dtype(self) -> np.dtype:
        return self.depth.dtype

    @property
    def short_name(self) -> str:
        """Alias without the ``CV_`` prefix, e.g. ``8UC3``."""
        return f"{self.depth.tag}C{self.channels}"

    @property
    def canonical_layout(self) -> CanonicalLayout:
        """Layout produced by conversion; depends only on the channel count."""
        return CanonicalLayout.for_channels(self.channels)

    @classmethod
    def choices(cls) -> list[str]:
        return [fmt.name for fmt in cls]

    @classmethod
    def parse(cls, text: str) -> PixelFormat:
        """Look up a format by name (``CV_8UC3``) or short alias (``8uc3``)."""
        key = text.strip().upper()
        if not key.startswith("CV_"):
            key = f"CV_{key}"
        try:
            return cls[key]
        except KeyError:
            valid = ", ".join(fmt.short_name for fmt in cls)
            msg = f"unknown pixel format {text!r}; expected one of: {valid}"
            raise ValueError(msg) from None


DEFAULT_PIXEL_FORMAT = PixelFormat.CV_8UC3
DEFAULT_CHANNEL_ORDER = ChannelOrder.RGB
