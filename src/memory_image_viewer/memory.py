"""Memory sources and the guarded read used by the conversion pipeline."""

from __future__ import annotations

import collections.abc as cabc
import errno
import json
import logging
import os
import re
import socket
import sys
from pathlib import Path
from typing import Protocol, cast

import numpy as np

from .errors import PreconditionViolation, ReadFailure

logger = logging.getLogger(__name__)

READ_CHUNK = 1 << 20
QMP_READ_CHUNK = 256

HEX_BYTE = re.compile(r"(?<![0-9a-fA-F])([0-9a-fA-F]{2})(?![0-9a-fA-F])")
QMP_LINE_ADDRESS = re.compile(r"^\s*(?:0x)?[0-9a-fA-F]+:")


class MemorySource(Protocol):
    """Anything able to copy bytes out of a process address space."""

    def read(self, pid: int, address: int, length: int) -> bytes:
        """Return ``length`` bytes at ``address`` or raise :class:`OSError`."""


def read_image_bytes(
    source: MemorySource, pid: int, address: int, length: int,
) -> bytes:
    """Read ``length`` bytes through ``source`` with the pipeline's guards.

    A non-positive ``length`` returns ``b""`` without touching ``source``.  A
    length the platform cannot address is a :class:`PreconditionViolation`.
    Source errors and incomplete reads surface as :class:`ReadFailure`.
    """
    if length <= 0:
        return b""
    if length > sys.maxsize:
        msg = f"requested {length} bytes, more than this platform can address"
        raise PreconditionViolation(msg)

    logger.debug("Reading %d bytes at 0x%X from pid %s", length, address, pid)
    try:
        data = source.read(pid, address, length)
    except OSError as exc:
        raise ReadFailure(pid, address, length, exc.strerror or str(exc)) from exc
    if len(data) != length:
        raise ReadFailure(pid, address, length, f"source returned {len(data)} bytes")
    return bytes(data)


def _read_exact(handle: cabc.Callable[[int], bytes], length: int, chunk_size: int) -> bytes:
    buf = bytearray()
    while len(buf) < length:
        chunk = handle(min(chunk_size, length - len(buf)))
        if not chunk:
            raise OSError(errno.EIO, f"short read after {len(buf)} of {length} bytes")
        buf += chunk
    return bytes(buf)


class ProcMemSource:
    """Read another process's memory through Linux ``/proc/<pid>/mem``.

    Requires ptrace permission on the target (same user with
    ``kernel.yama.ptrace_scope`` 0, or ``CAP_SYS_PTRACE``).
    """

    def __init__(self, proc_root: str | os.PathLike[str] = "/proc", chunk_size: int = READ_CHUNK) -> None:
        self.proc_root = Path(proc_root)
        self.chunk_size = max(1, int(chunk_size))

    def read(self, pid: int, address: int, length: int) -> bytes:
        path = self.proc_root / str(pid) / "mem"
        with open(path, "rb", buffering=0) as mem:
            try:
                mem.seek(address)
            except OverflowError as exc:
                raise OSError(
                    errno.EFAULT, f"address 0x{address:X} is beyond the seekable range",
                ) from exc
            return _read_exact(mem.read, length, self.chunk_size)


class DumpFileSource:
    """Read from a raw memory dump; ``address`` is an offset into the file."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)

    def read(self, pid: int, address: int, length: int) -> bytes:
        size = os.path.getsize(self.path)
        if address + length > size:
            raise OSError(
                errno.EFAULT,
                f"dump is {size} bytes, cannot read {length} bytes at 0x{address:X}",
            )
        mm = np.memmap(self.path, dtype=np.uint8, mode="r")
        return mm[address:address + length].tobytes()


# -------- QMP minimal client --------


class QMPClient(Protocol):
    """Protocol describing the subset of QMP used by :class:`QMPMemorySource`."""

    def hmp(self, cmd: str) -> str:
        """Execute a human-monitor command and return its response."""


class QMP(QMPClient):
    """Tiny client for the QEMU machine protocol over a UNIX socket."""

    def __init__(self, path: str) -> None:
        self.path = path
        self.sock: socket.socket | None = None
        self.buf = b""

    def connect(self) -> None:
        """Establish the QMP connection and negotiate capabilities."""
        s = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        self.sock = s
        try:
            s.connect(self.path)
            self._recv_json()  # greeting
            self._send_json({"execute": "qmp_capabilities"})
            self._recv_json()
        except OSError:
            self.close()
            raise

    def close(self) -> None:
        if self.sock is not None:
            self.sock.close()
            self.sock = None
        self.buf = b""

    def __enter__(self) -> QMP:
        self.connect()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _send_json(self, obj: dict[str, object]) -> None:
        if self.sock is None:
            raise ConnectionError("QMP socket has not been connected")
        self.sock.sendall((json.dumps(obj) + "\r\n").encode("utf-8"))

    def _recv_json(self) -> dict[str, object]:
        if self.sock is None:
            raise ConnectionError("QMP socket has not been connected")
        while True:
            while b"\r\n" in self.buf:
                line, self.buf = self.buf.split(b"\r\n", 1)
                if not line.strip():
                    continue
                try:
                    msg = json.loads(line.decode("utf-8"))
                except ValueError as exc:
                    raise ConnectionError(f"malformed QMP message: {line[:80]!r}") from exc
                if not isinstance(msg, dict):
                    raise ConnectionError(f"unexpected QMP message: {line[:80]!r}")
                msg = cast("dict[str, object]", msg)
                if "event" in msg:
                    continue
                return msg
            chunk = self.sock.recv(65536)
            if not chunk:
                raise ConnectionError("QMP socket closed")
            self.buf += chunk

    def hmp(self, cmd: str) -> str:
        """Execute a human-monitor command and return its textual result."""
        self._send_json(
            {
                "execute": "human-monitor-command",
                "arguments": {"command-line": cmd},
            }
        )
        resp = self._recv_json()
        if "return" in resp:
            return str(resp["return"])
        raise OSError(errno.EIO, f"HMP error: {resp.get('error', resp)}")


def _extract_hex_bytes(text: str, limit: int) -> list[int]:
    """Return up to ``limit`` byte values from ``xp /Nbx`` output."""
    vals: list[int] = []
    for line in text.splitlines():
        addr_match = QMP_LINE_ADDRESS.match(line)
        if not addr_match:
            continue
        for match in HEX_BYTE.finditer(line, addr_match.end()):
            vals.append(int(match.group(1), 16))
            if len(vals) >= limit:
                return vals
    return vals


class QMPMemorySource:
    """Read guest-physical memory of a QEMU VM; ``pid`` is ignored."""

    def __init__(self, client: QMPClient, chunk_size: int = QMP_READ_CHUNK) -> None:
        self.client = client
        self.chunk_size = max(1, int(chunk_size))

    def close(self) -> None:
        """Close the underlying client when it owns a connection."""
        close = getattr(self.client, "close", None)
        if close is not None:
            close()

    def read(self, pid: int, address: int, length: int) -> bytes:
        buf = bytearray()
        while len(buf) < length:
            step = min(self.chunk_size, length - len(buf))
            addr = address + len(buf)
            vals = _extract_hex_bytes(self.client.hmp(f"xp /{step}bx 0x{addr:X}"), step)
            if len(vals) < step:
                raise OSError(
                    errno.EFAULT,
                    f"monitor returned {len(vals)} of {step} bytes at 0x{addr:X}",
                )
            buf += bytes(vals)
        return bytes(buf)
