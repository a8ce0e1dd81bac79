"""Normalized image container and the Pillow codec boundary."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeAlias

import numpy as np

from .errors import CodecFailure, IoFailure, PreconditionViolation
from .formats import CanonicalLayout

logger = logging.getLogger(__name__)

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from numpy import ndarray as NDArray
    from PIL import Image as PILImage
else:
    NDArray: TypeAlias = Any
    PILImage: TypeAlias = Any

DEFAULT_EXTENSION = ".png"


def with_default_suffix(path: str | os.PathLike[str]) -> Path:
    """Append ``.png`` to ``path`` unless it already names an extension."""
    target = Path(path)
    if target.suffix:
        return target
    return target.with_name(target.name + DEFAULT_EXTENSION)


@dataclass(frozen=True)
class ImageAsset:
    """An 8-bit-per-channel image that owns its pixel buffer.

    The buffer is immutable and its length always equals
    ``width * height * layout.channels``; a new read produces a new asset
    rather than updating this one.
    """

    data: bytes
    width: int
    height: int
    layout: CanonicalLayout

    def __post_init__(self) -> None:
        if not isinstance(self.data, bytes):
            object.__setattr__(self, "data", bytes(self.data))
        if self.width < 0 or self.height < 0:
            msg = f"image dimensions must not be negative, got {self.width}x{self.height}"
            raise PreconditionViolation(msg)
        expected = self.width * self.height * self.layout.channels
        if len(self.data) != expected:
            msg = (
                f"{self.layout.name} {self.width}x{self.height} needs {expected} "
                f"bytes, got {len(self.data)}"
            )
            raise PreconditionViolation(msg)

    @property
    def channels(self) -> int:
        return self.layout.channels

    @property
    def mode(self) -> str:
        """Pillow mode string of the buffer."""
        return self.layout.value

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0

    def to_array(self) -> NDArray:
        """Return a read-only ``uint8`` view shaped ``(height, width[, channels])``."""
        flat = np.frombuffer(self.data, dtype=np.uint8)
        if self.channels == 1:
            return flat.reshape(self.height, self.width)
        return flat.reshape(self.height, self.width, self.channels)

    def to_display_array(self) -> NDArray:
        """Return an array ``matplotlib.imshow`` can draw directly.

        Gray+alpha has no matplotlib equivalent, so it is expanded to RGBA.
        """
        arr = self.to_array()
        if self.layout is CanonicalLayout.GRAY_ALPHA8:
            gray = arr[..., 0]
            return np.stack([gray, gray, gray, arr[..., 1]], axis=-1)
        return arr

    def to_pil(self) -> PILImage.Image:
        """Build a Pillow image in the canonical mode."""
        try:
            from PIL import Image
        except ModuleNotFoundError as exc:  # pragma: no cover
            raise RuntimeError("Encoding images requires Pillow") from exc

        return Image.frombytes(self.mode, self.size, self.data)

    def save(self, path: str | os.PathLike[str]) -> Path:
        """Encode the image to ``path``; the format follows the file extension.

        Missing parent directories are created.  Filesystem problems raise
        :class:`IoFailure`, encoder problems raise :class:`CodecFailure`.
        """
        target = Path(path)
        if self.is_empty:
            raise CodecFailure(target, "cannot encode an image with no pixels")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise IoFailure(target, f"cannot create directory: {exc}") from exc

        image = self.to_pil()
        try:
            image.save(target)
        except (ValueError, KeyError) as exc:
            raise CodecFailure(target, str(exc)) from exc
        except OSError as exc:
            # Pillow reports encoder problems as OSError without an errno
            if exc.errno is None:
                raise CodecFailure(target, str(exc)) from exc
            raise IoFailure(target, str(exc)) from exc
        logger.info("Saved %dx%d %s image to %s", self.width, self.height, self.mode, target)
        return target
