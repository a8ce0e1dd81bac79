"""Background image saving and dump file naming."""

from __future__ import annotations

import datetime as dt
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path

from .image import DEFAULT_EXTENSION, ImageAsset

logger = logging.getLogger(__name__)

DUMP_NAME_FORMAT = "%d_%m__%H_%M_%S"


def dump_path(
    folder: str | os.PathLike[str], now: dt.datetime | None = None,
) -> Path:
    """Return a timestamped, not yet existing ``.png`` path inside ``folder``.

    Collisions get ``(1)``, ``(2)`` ... appended to the timestamp.
    """
    base = Path(folder)
    stamp = (now or dt.datetime.now()).strftime(DUMP_NAME_FORMAT)
    candidate = base / f"{stamp}{DEFAULT_EXTENSION}"
    counter = 1
    while candidate.exists():
        candidate = base / f"{stamp}({counter}){DEFAULT_EXTENSION}"
        counter += 1
    return candidate


@dataclass(frozen=True)
class SaveOutcome:
    """Result of a finished save: the written path or the failure."""

    path: Path
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SaveTask:
    """Handle for one image save running on a worker thread.

    The worker only sees the asset it was started with; the caller polls
    :meth:`poll` (or blocks in :meth:`result`) to learn the outcome once.
    """

    def __init__(self, asset: ImageAsset, path: Path) -> None:
        self.asset = asset
        self.path = path
        self._outcome: SaveOutcome | None = None
        self._thread = threading.Thread(
            target=self._run, name=f"save-{path.name}", daemon=True,
        )

    @classmethod
    def start(cls, asset: ImageAsset, path: str | os.PathLike[str]) -> SaveTask:
        task = cls(asset, Path(path))
        logger.debug("Starting background save to %s", task.path)
        task._thread.start()
        return task

    def _run(self) -> None:
        try:
            written = self.asset.save(self.path)
        except Exception as exc:
            # handed to the caller through poll()/result()
            logger.debug("Background save to %s failed: %s", self.path, exc)
            self._outcome = SaveOutcome(self.path, exc)
        else:
            self._outcome = SaveOutcome(written)

    def done(self) -> bool:
        return not self._thread.is_alive() and self._outcome is not None

    def poll(self) -> SaveOutcome | None:
        """Return the outcome if the save finished, else ``None``."""
        if self._thread.is_alive():
            return None
        return self._outcome

    def wait(self, timeout: float | None = None) -> SaveOutcome | None:
        self._thread.join(timeout)
        return self.poll()

    def result(self, timeout: float | None = None) -> Path:
        """Block until the save finishes; return the path or raise its error."""
        outcome = self.wait(timeout)
        if outcome is None:
            raise TimeoutError(f"save to {self.path} still running")
        if outcome.error is not None:
            raise outcome.error
        return outcome.path
