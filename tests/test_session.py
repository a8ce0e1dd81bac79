import logging
from pathlib import Path

import pytest

import memory_image_viewer.session as session_mod
from memory_image_viewer.formats import CanonicalLayout, ChannelOrder, PixelFormat
from memory_image_viewer.session import Session, SessionConfig


class DummySource:
    def __init__(self, data: bytes = b"") -> None:
        self.data = data
        self.calls: list[tuple[int, int, int]] = []

    def read(self, pid: int, address: int, length: int) -> bytes:
        self.calls.append((pid, address, length))
        return self.data


def test_load_missing_file_gives_defaults(tmp_path: Path) -> None:
    cfg = SessionConfig.load(tmp_path / "missing.json")

    assert cfg == SessionConfig()
    assert cfg.pid is None
    assert cfg.address == ""
    assert (cfg.width, cfg.height) == (0, 0)
    assert cfg.pixel_format is PixelFormat.CV_8UC3
    assert cfg.channel_order is ChannelOrder.RGB


def test_config_round_trips_through_json(tmp_path: Path) -> None:
    path = tmp_path / "cfg" / "session.json"
    cfg = SessionConfig(
        pid=1234,
        address="0x7f00",
        width=640,
        height=480,
        pixel_format=PixelFormat.CV_32FC1,
        channel_order=ChannelOrder.BGR,
        dump_folder=str(tmp_path / "dumps"),
    )

    cfg.save(path)

    assert SessionConfig.load(path) == cfg


def test_load_ignores_corrupt_file(tmp_path: Path) -> None:
    path = tmp_path / "session.json"
    path.write_text("{not json")

    assert SessionConfig.load(path) == SessionConfig()


def test_load_ignores_invalid_values(tmp_path: Path) -> None:
    path = tmp_path / "session.json"
    path.write_text('{"pixel_format": "CV_99UC9", "width": 10}')

    assert SessionConfig.load(path) == SessionConfig()


def test_default_config_path_honours_xdg(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))

    assert session_mod.default_config_path() == tmp_path / "memory-image-viewer" / "session.json"


def _loaded_session(order: ChannelOrder = ChannelOrder.BGR) -> Session:
    session = Session(source=DummySource(bytes([10, 20, 30, 40, 50, 60])))
    session.update_config(
        pid=5, address="0x10", width=2, height=1,
        pixel_format=PixelFormat.CV_8UC3, channel_order=order,
    )
    return session


def test_fetch_without_pid_warns() -> None:
    session = Session(source=DummySource())

    assert session.fetch() is None
    assert session.last_message is not None
    assert session.last_message.level == logging.WARNING


def test_fetch_converts_and_replaces_image() -> None:
    session = _loaded_session()

    asset = session.fetch()

    assert asset is not None
    assert session.image is asset
    assert asset.layout is CanonicalLayout.RGB8
    assert list(asset.data) == [30, 20, 10, 60, 50, 40]
    assert session.last_message is not None
    assert session.last_message.text == "Image loaded!"


def test_fetch_reports_malformed_address_and_keeps_image() -> None:
    session = _loaded_session()
    previous = session.fetch()
    session.update_config(address="zz")

    assert session.fetch() is None
    assert session.image is previous
    assert session.last_message is not None
    assert session.last_message.level == logging.ERROR
    assert "malformed address" in session.last_message.text


def test_fetch_zero_sized_image_warns_without_reading() -> None:
    session = _loaded_session()
    session.update_config(width=0)

    assert session.fetch() is None
    assert session.source.calls == []  # type: ignore[attr-defined]
    assert session.last_message is not None
    assert session.last_message.text == "Image was not loaded!"


def test_only_one_save_in_flight(tmp_path: Path) -> None:
    session = _loaded_session()
    session.fetch()

    task = session.save(tmp_path / "first.png")
    assert task is not None
    assert session.save(tmp_path / "second.png") is None
    assert session.last_message is not None
    assert session.last_message.level == logging.WARNING

    task.wait(timeout=10)
    outcome = session.poll_save()
    assert outcome is not None and outcome.ok
    assert session.save_task is None
    assert session.poll_save() is None
    assert (tmp_path / "first.png").exists()
    assert not (tmp_path / "second.png").exists()


def test_save_without_image_warns(tmp_path: Path) -> None:
    session = Session(source=DummySource())

    assert session.save(tmp_path / "x.png") is None
    assert session.saving is False


def test_dump_requires_folder_then_writes_timestamped_file(tmp_path: Path) -> None:
    session = _loaded_session()
    session.fetch()

    assert session.dump() is None

    session.update_config(dump_folder=str(tmp_path / "dumps"))
    task = session.dump()
    assert task is not None
    path = task.result(timeout=10)
    assert path.parent == tmp_path / "dumps"
    assert path.suffix == ".png"
    assert path.exists()
