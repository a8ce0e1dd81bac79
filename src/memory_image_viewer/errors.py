"""Exception types raised while reading, converting and saving images."""

from __future__ import annotations

from pathlib import Path


class MemoryImageError(Exception):
    """Base class for every user-facing failure of the pipeline."""


class MalformedAddress(MemoryImageError, ValueError):
    """The address string is not a hexadecimal number."""

    def __init__(self, text: str) -> None:
        super().__init__(f"malformed address: {text!r}")
        self.text = text


class ReadFailure(MemoryImageError):
    """The memory source could not deliver the requested bytes."""

    def __init__(self, pid: int, address: int, length: int, reason: str) -> None:
        super().__init__(
            f"could not read {length} bytes at 0x{address:X} from pid {pid}: {reason}"
        )
        self.pid = pid
        self.address = address
        self.length = length


class PreconditionViolation(AssertionError):
    """A caller broke a size contract (buffer length, dimensions)."""


class _PathError(MemoryImageError):
    def __init__(self, path: Path | str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = Path(path)


class CodecFailure(_PathError):
    """The image encoder rejected the data or the target format."""


class IoFailure(_PathError):
    """A filesystem operation failed while writing an image."""
