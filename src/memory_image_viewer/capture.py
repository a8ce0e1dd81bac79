"""Read-convert-wrap pipeline shared by the CLI and the session."""

from __future__ import annotations

import logging

from .convert import convert_to_asset, expected_length
from .formats import ChannelOrder, PixelFormat
from .image import ImageAsset
from .memory import MemorySource, read_image_bytes

logger = logging.getLogger(__name__)


def capture_image(
    source: MemorySource,
    pid: int,
    address: int,
    width: int,
    height: int,
    fmt: PixelFormat,
    order: ChannelOrder,
) -> ImageAsset | None:
    """Read a ``width`` x ``height`` image in ``fmt`` from ``pid`` at ``address``.

    Returns ``None`` when the image has no pixels (nothing is read).
    """
    length = expected_length(fmt, width, height)
    raw = read_image_bytes(source, pid, address, length)
    if not raw:
        logger.debug("Nothing to read for a %dx%d image", width, height)
        return None
    return convert_to_asset(raw, fmt, order, width, height)
