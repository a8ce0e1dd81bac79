"""Hexadecimal address parsing."""

from __future__ import annotations

import re

from .errors import MalformedAddress

HEX_DIGITS = re.compile(r"[0-9A-Fa-f]+")


def parse_address(text: str) -> int:
    """Decode ``text`` (optionally ``0x``-prefixed) as a base-16 address."""
    stripped = text.strip()
    if stripped[:2] in ("0x", "0X"):
        stripped = stripped[2:]
    # int(..., 16) would also accept signs, underscores and a second prefix
    if not HEX_DIGITS.fullmatch(stripped):
        raise MalformedAddress(text)
    return int(stripped, 16)
