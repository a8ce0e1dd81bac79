"""Interactive session state: persisted settings, current image, messages.

The state lives in one :class:`Session` object handed to whatever front end
drives it; nothing here is module-global.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any

from .address import parse_address
from .capture import capture_image
from .errors import MemoryImageError
from .formats import (
    DEFAULT_CHANNEL_ORDER,
    DEFAULT_PIXEL_FORMAT,
    ChannelOrder,
    PixelFormat,
)
from .image import ImageAsset
from .memory import MemorySource
from .save import SaveOutcome, SaveTask, dump_path

logger = logging.getLogger(__name__)

APP_NAME = "memory-image-viewer"
SESSION_FILE = "session.json"


def default_config_path() -> Path:
    """Return ``$XDG_CONFIG_HOME/memory-image-viewer/session.json``."""
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(
        os.path.expanduser("~"), ".config",
    )
    return Path(base) / APP_NAME / SESSION_FILE


@dataclass(frozen=True)
class SessionConfig:
    """Last-used read settings, reloaded at the next launch."""

    pid: int | None = None
    address: str = ""
    width: int = 0
    height: int = 0
    pixel_format: PixelFormat = DEFAULT_PIXEL_FORMAT
    channel_order: ChannelOrder = DEFAULT_CHANNEL_ORDER
    dump_folder: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["pixel_format"] = self.pixel_format.name
        data["channel_order"] = self.channel_order.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionConfig:
        """Build a config from saved JSON; unknown keys are ignored."""
        pid = data.get("pid")
        dump_folder = data.get("dump_folder")
        return cls(
            pid=None if pid is None else int(pid),
            address=str(data.get("address", "")),
            width=max(0, int(data.get("width", 0))),
            height=max(0, int(data.get("height", 0))),
            pixel_format=PixelFormat.parse(
                str(data.get("pixel_format", DEFAULT_PIXEL_FORMAT.name))
            ),
            channel_order=ChannelOrder.parse(
                str(data.get("channel_order", DEFAULT_CHANNEL_ORDER.value))
            ),
            dump_folder=None if dump_folder is None else str(dump_folder),
        )

    @classmethod
    def load(cls, path: str | os.PathLike[str] | None = None) -> SessionConfig:
        """Load settings from ``path``, falling back to defaults."""
        target = Path(path) if path is not None else default_config_path()
        try:
            raw = json.loads(target.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return cls()
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable session file %s: %s", target, exc)
            return cls()
        if not isinstance(raw, dict):
            logger.warning("Ignoring session file %s: not a JSON object", target)
            return cls()
        try:
            return cls.from_dict(raw)
        except (TypeError, ValueError) as exc:
            logger.warning("Ignoring invalid session file %s: %s", target, exc)
            return cls()

    def save(self, path: str | os.PathLike[str] | None = None) -> Path:
        target = Path(path) if path is not None else default_config_path()
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        return target


@dataclass(frozen=True)
class Message:
    """One entry of the user-visible message feed."""

    level: int
    text: str


@dataclass
class Session:
    """Mutable state of an interactive front end."""

    source: MemorySource
    config: SessionConfig = field(default_factory=SessionConfig)
    image: ImageAsset | None = None
    save_task: SaveTask | None = None
    messages: list[Message] = field(default_factory=list)

    def _notify(self, level: int, text: str) -> None:
        logger.log(level, text)
        self.messages.append(Message(level, text))

    def info(self, text: str) -> None:
        self._notify(logging.INFO, text)

    def warn(self, text: str) -> None:
        self._notify(logging.WARNING, text)

    def error(self, text: str) -> None:
        self._notify(logging.ERROR, text)

    @property
    def last_message(self) -> Message | None:
        return self.messages[-1] if self.messages else None

    @property
    def saving(self) -> bool:
        return self.save_task is not None

    def update_config(self, **changes: Any) -> SessionConfig:
        self.config = replace(self.config, **changes)
        return self.config

    def fetch(self) -> ImageAsset | None:
        """Read a new image with the current config, replacing the old one."""
        cfg = self.config
        if cfg.pid is None:
            self.warn("No process selected")
            return None
        try:
            address = parse_address(cfg.address)
            asset = capture_image(
                self.source,
                cfg.pid,
                address,
                cfg.width,
                cfg.height,
                cfg.pixel_format,
                cfg.channel_order,
            )
        except MemoryImageError as exc:
            self.error(str(exc))
            return None
        if asset is None:
            self.warn("Image was not loaded!")
            return None
        self.image = asset
        self.info("Image loaded!")
        return asset

    def save(self, path: str | os.PathLike[str]) -> SaveTask | None:
        """Start saving the current image to ``path`` in the background."""
        if self.image is None:
            self.warn("Nothing to save, load an image first")
            return None
        if self.save_task is not None:
            self.warn(f"Still saving to {self.save_task.path}")
            return None
        self.save_task = SaveTask.start(self.image, path)
        return self.save_task

    def dump(self) -> SaveTask | None:
        """Save the current image under a timestamped name in the dump folder."""
        if self.config.dump_folder is None:
            self.warn("Dump folder not set")
            return None
        return self.save(dump_path(self.config.dump_folder))

    def poll_save(self) -> SaveOutcome | None:
        """Report a finished background save exactly once."""
        if self.save_task is None:
            return None
        outcome = self.save_task.poll()
        if outcome is None:
            return None
        self.save_task = None
        if outcome.ok:
            self.info(f"Image saved to {outcome.path}")
        else:
            self.error(f"Image not saved: {outcome.error}")
        return outcome
