from pathlib import Path

from vidshelf.studio.range import _parse_range_header, resolve_media_path


def test_parse_range_basic() -> None:
    assert _parse_range_header("bytes=0-99", 1000) == (0, 99)


def test_parse_range_open_end() -> None:
    assert _parse_range_header("bytes=100-", 1000) == (100, 999)


def test_parse_range_suffix() -> None:
    assert _parse_range_header("bytes=-200", 1000) == (800, 999)


def test_parse_range_invalid() -> None:
    assert _parse_range_header("nope", 1000) is None
    assert _parse_range_header("bytes=999-100", 1000) is None


def test_parse_range_clamps_end_to_file() -> None:
    assert _parse_range_header("bytes=900-5000", 1000) == (900, 999)


def test_resolve_media_path(tmp_path: Path) -> None:
    (tmp_path / "clip.mp4").write_bytes(b"x")
    (tmp_path / "error.log").write_text("x", encoding="utf-8")
    (tmp_path / "metadata").mkdir()

    assert resolve_media_path(tmp_path, "clip.mp4") == (tmp_path / "clip.mp4").resolve()
    assert resolve_media_path(tmp_path, "missing.mp4") is None
    assert resolve_media_path(tmp_path, "../clip.mp4") is None
    assert resolve_media_path(tmp_path, "error.log") is None
    assert resolve_media_path(tmp_path, "metadata") is None
    assert resolve_media_path(tmp_path, "..") is None


def test_resolve_media_path_allows_dotted_names(tmp_path: Path) -> None:
    (tmp_path / "Beach.party.mp4").write_bytes(b"x")
    assert resolve_media_path(tmp_path, "Beach.party.mp4") == (tmp_path / "Beach.party.mp4").resolve()
