"""Command-line tool saving an image found in another process's memory."""

from __future__ import annotations

import argparse
import collections.abc as cabc
import logging

from .address import parse_address
from .capture import capture_image
from .errors import MemoryImageError, PreconditionViolation
from .formats import DEFAULT_CHANNEL_ORDER, ChannelOrder, PixelFormat
from .image import ImageAsset, with_default_suffix
from .memory import QMP, DumpFileSource, MemorySource, ProcMemSource, QMPMemorySource
from .save import SaveTask
from .session import Session, SessionConfig

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
SOURCES = ("proc", "qmp", "dump")


def _non_negative_int(text: str) -> int:
    value = int(text)
    if value < 0:
        raise argparse.ArgumentTypeError(f"must not be negative: {value}")
    return value


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="memory-image-viewer",
        description="Save an image buffer (e.g. a cv::Mat) found in process memory",
    )
    p.add_argument("pid", type=_non_negative_int, help="PID of the target process")
    p.add_argument("address", help="buffer address in hex, e.g. 0x7f3a5c000000")
    p.add_argument("width", type=_non_negative_int, help="image width in pixels")
    p.add_argument("height", type=_non_negative_int, help="image height in pixels")
    p.add_argument(
        "format",
        type=PixelFormat.parse,
        metavar="FORMAT",
        help="buffer type, e.g. CV_8UC3 or 8UC3 ("
        + ", ".join(PixelFormat.choices())
        + ")",
    )
    p.add_argument(
        "-o", "--out", default="out",
        help="output file name; .png is appended when no extension is given",
    )
    p.add_argument(
        "--order",
        type=ChannelOrder.parse,
        default=DEFAULT_CHANNEL_ORDER,
        help="channel order of 3/4 channel buffers: rgb (default) or bgr",
    )
    p.add_argument(
        "--source", choices=SOURCES, default="proc",
        help="where to read from: /proc/<pid>/mem, a QEMU monitor, or a dump file",
    )
    p.add_argument("--qmp-sock", help="QMP UNIX socket path for --source qmp")
    p.add_argument("--dump-file", help="raw memory dump for --source dump")
    p.add_argument(
        "--show", action="store_true",
        help="display the image while saving; d dumps it to the session dump folder",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    return p


def build_source(args: argparse.Namespace, parser: argparse.ArgumentParser) -> MemorySource:
    """Create the memory source selected on the command line."""
    if args.source == "qmp":
        if not args.qmp_sock:
            parser.error("--source qmp requires --qmp-sock")
        qmp = QMP(args.qmp_sock)
        qmp.connect()
        return QMPMemorySource(qmp)
    if args.source == "dump":
        if not args.dump_file:
            parser.error("--source dump requires --dump-file")
        return DumpFileSource(args.dump_file)
    return ProcMemSource()


def main(
    argv: cabc.Sequence[str] | None = None, source: MemorySource | None = None,
) -> int:
    """Run the tool and return the process exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO, format=LOG_FORMAT,
    )

    owned = source is None
    try:
        address = parse_address(args.address)
        if source is None:
            try:
                source = build_source(args, parser)
            except OSError as exc:
                logger.error("Could not connect to the memory source: %s", exc)
                return 1
        asset = capture_image(
            source, args.pid, address, args.width, args.height, args.format, args.order,
        )
        if asset is None:
            logger.error("Image has no pixels, nothing to save")
            return 1
        task = SaveTask.start(asset, with_default_suffix(args.out))
        if args.show:
            show(asset, source, f"pid {args.pid} @ 0x{address:X} {args.format.name}")
        path = task.result()
    except (MemoryImageError, PreconditionViolation) as exc:
        logger.error("%s", exc)
        return 1
    finally:
        if owned and source is not None:
            close_source(source)

    logger.info("Image saved to %s", path)
    return 0


def close_source(source: MemorySource) -> None:
    """Release connections held by ``source``, if it has any."""
    close = getattr(source, "close", None)
    if close is not None:
        close()


def show(asset: ImageAsset, source: MemorySource, title: str) -> None:
    """Display ``asset`` with a session so dumps work from the viewer."""
    from .viewer import show_image

    session = Session(source=source, config=SessionConfig.load(), image=asset)
    try:
        show_image(asset, session=session, title=title)
    except RuntimeError as exc:
        logger.error("Cannot display the image: %s", exc)
    if session.save_task is not None:
        session.save_task.wait()
        session.poll_save()


if __name__ == "__main__":
    raise SystemExit(main())
