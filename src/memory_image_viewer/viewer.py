"""Matplotlib window showing a captured image with zoom, pan and dump keys."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .image import ImageAsset
from .session import Session

logger = logging.getLogger(__name__)

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from matplotlib.backend_bases import KeyEvent, MouseEvent

MIN_WINDOW = 8
POLL_INTERVAL_MS = 200


def clamp(v: int, lo: int, hi: int) -> int:
    """Clamp ``v`` to the inclusive ``[lo, hi]`` range."""
    return lo if v < lo else hi if v > hi else v


@dataclass(frozen=True)
class View:
    """Visible window of the image, in image pixels."""

    x0: int
    y0: int
    width: int
    height: int

    @classmethod
    def full(cls, width: int, height: int) -> View:
        return cls(0, 0, width, height)

    @property
    def center(self) -> tuple[int, int]:
        return self.x0 + self.width // 2, self.y0 + self.height // 2

    def zoom(
        self,
        center: tuple[int, int],
        scale: float,
        full_size: tuple[int, int],
        min_window: int = MIN_WINDOW,
    ) -> View:
        """Scale the window around ``center``, keeping it inside the image."""
        full_w, full_h = full_size
        cx, cy = center
        new_w = clamp(round(self.width * scale), min(min_window, full_w), full_w)
        new_h = clamp(round(self.height * scale), min(min_window, full_h), full_h)
        x0 = clamp(round(cx - new_w / 2), 0, full_w - new_w)
        y0 = clamp(round(cy - new_h / 2), 0, full_h - new_h)
        return View(x0, y0, new_w, new_h)

    def pan(self, dx: int, dy: int, full_size: tuple[int, int]) -> View:
        full_w, full_h = full_size
        return View(
            clamp(self.x0 + dx, 0, full_w - self.width),
            clamp(self.y0 + dy, 0, full_h - self.height),
            self.width,
            self.height,
        )


def describe_pixel(asset: ImageAsset, x: int, y: int) -> str:
    """Format the channel values under ``(x, y)`` for the hover readout."""
    values = asset.to_array()[y, x]
    if asset.channels == 1:
        channel_text = str(int(values))
    else:
        channel_text = ", ".join(
            f"{name}={int(v)}" for name, v in zip(asset.mode, values)
        )
    return f"({x}, {y}) {channel_text}"


def show_image(
    asset: ImageAsset, session: Session | None = None, title: str | None = None,
) -> None:  # pragma: no cover - interactive only
    """Open a blocking matplotlib window for ``asset``.

    Keys: ``+``/``-`` zoom, arrows pan, ``0`` resets the view, ``d`` dumps the
    image into the session's dump folder.
    """
    try:
        import matplotlib.pyplot as plt
    except ModuleNotFoundError as exc:
        raise RuntimeError("Matplotlib is required to display images") from exc

    full_size = asset.size
    view = View.full(*full_size)
    pixels = asset.to_display_array()

    fig, ax = plt.subplots(figsize=(8, 6))
    im_kwargs: dict[str, Any] = {"interpolation": "nearest", "origin": "upper"}
    if asset.channels == 1:
        im_kwargs.update(cmap="gray", vmin=0, vmax=255)
    im = ax.imshow(pixels, **im_kwargs)
    ax.set_title(title or f"{asset.width}x{asset.height} {asset.mode}")
    ax.set_axis_off()
    status = fig.text(0.01, 0.01, "", fontsize=9, ha="left", va="bottom")

    def redraw() -> None:
        im.set_data(pixels[view.y0:view.y0 + view.height, view.x0:view.x0 + view.width])
        im.set_extent((-0.5, view.width - 0.5, view.height - 0.5, -0.5))
        fig.canvas.draw_idle()

    def show_status() -> None:
        if session is not None and session.last_message is not None:
            status.set_text(session.last_message.text)
            fig.canvas.draw_idle()

    def on_key(event: KeyEvent) -> None:
        nonlocal view
        step_x = max(1, view.width // 10)
        step_y = max(1, view.height // 10)
        if event.key in ("+", "=", "kp_add"):
            view = view.zoom(view.center, 0.5, full_size)
        elif event.key in ("-", "_", "kp_subtract"):
            view = view.zoom(view.center, 2.0, full_size)
        elif event.key == "left":
            view = view.pan(-step_x, 0, full_size)
        elif event.key == "right":
            view = view.pan(step_x, 0, full_size)
        elif event.key == "up":
            view = view.pan(0, -step_y, full_size)
        elif event.key == "down":
            view = view.pan(0, step_y, full_size)
        elif event.key == "0":
            view = View.full(*full_size)
        elif event.key == "d" and session is not None:
            session.dump()
            show_status()
            return
        else:
            return
        redraw()

    def on_move(event: MouseEvent) -> None:
        if event.inaxes != ax or event.xdata is None or event.ydata is None:
            return
        x = clamp(view.x0 + round(event.xdata), 0, asset.width - 1)
        y = clamp(view.y0 + round(event.ydata), 0, asset.height - 1)
        status.set_text(describe_pixel(asset, x, y))
        fig.canvas.draw_idle()

    def poll_save() -> None:
        if session is not None and session.poll_save() is not None:
            show_status()

    fig.canvas.mpl_connect("key_press_event", on_key)
    fig.canvas.mpl_connect("motion_notify_event", on_move)
    timer = fig.canvas.new_timer(interval=POLL_INTERVAL_MS)
    timer.add_callback(poll_save)
    timer.start()
    plt.show()
    timer.stop()
