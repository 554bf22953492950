"""Tests for the yt-dlp ingest layer."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from vidshelf.errors import ExternalToolFailure
from vidshelf.ingest import (
    YtDlpTool,
    build_filename,
    get_format_selector,
    info_from_dict,
    pick_thumbnail,
    sanitize_component,
)


def _ydl_mock(instance: MagicMock) -> MagicMock:
    """YoutubeDL class mock whose context manager yields ``instance``."""
    cls = MagicMock()
    cls.return_value.__enter__.return_value = instance
    cls.return_value.__exit__.return_value = False
    return cls


class TestFormatSelector:
    def test_highest_aliases(self):
        expected = "bestvideo[ext=mp4]+bestaudio[ext=m4a]/bestvideo+bestaudio/best"
        assert get_format_selector("highest") == expected
        assert get_format_selector("source") == expected
        assert get_format_selector("BEST") == expected

    def test_height_limited(self):
        selector = get_format_selector("720p")
        assert "bestvideo[height<=720][ext=mp4]" in selector
        assert selector.endswith("/best")
        assert get_format_selector("720") == selector

    def test_unknown_quality(self):
        with pytest.raises(ValueError):
            get_format_selector("ultra")


class TestPickThumbnail:
    def test_tallest_wins(self):
        info = {
            "thumbnails": [
                {"url": "small", "height": 90},
                {"url": "large", "height": 720},
                {"url": "medium", "height": 360},
            ]
        }
        assert pick_thumbnail(info) == "large"

    def test_first_wins_ties(self):
        info = {"thumbnails": [{"url": "a", "height": 480}, {"url": "b", "height": 480}]}
        assert pick_thumbnail(info) == "a"

    def test_missing_heights_rank_last(self):
        info = {"thumbnails": [{"url": "nohight"}, {"url": "sized", "height": 10}]}
        assert pick_thumbnail(info) == "sized"

    def test_falls_back_to_single_thumbnail(self):
        assert pick_thumbnail({"thumbnails": [], "thumbnail": "single"}) == "single"
        assert pick_thumbnail({}) is None


class TestFilenames:
    def test_sanitize_component(self):
        assert sanitize_component('Hello: "World"!  2024') == "Hello World 2024"

    def test_build_filename(self):
        assert build_filename("Acme", "Demo Clip") == "Acme-Demo Clip.mp4"

    def test_unsafe_only_title(self):
        assert build_filename("", "???") == "video.mp4"

    def test_truncates_stem_keeps_extension(self):
        name = build_filename("A", "b" * 400, max_length=50)
        assert name.endswith(".mp4")
        assert len(name) <= 54

    def test_no_path_separators(self):
        name = build_filename("../../etc", "passwd/x")
        assert "/" not in name
        assert ".." not in name


class TestInfoFromDict:
    def test_prefers_channel_and_normalizes(self):
        info = info_from_dict(
            "https://example.test/v",
            {
                "title": "Demo Clip",
                "channel": "Acme",
                "uploader": "acme-user",
                "duration": 125,
                "upload_date": "20240115",
                "thumbnails": [{"url": "t1", "height": 360}],
                "id": "abc",
            },
        )
        assert info.uploader == "Acme"
        assert info.duration_seconds == 125.0
        assert info.upload_date == "20240115"
        assert info.thumbnail_url == "t1"
        assert info.video_id == "abc"
        assert info.to_dict()["webpage_url"] == "https://example.test/v"

    def test_missing_optional_fields(self):
        info = info_from_dict("https://example.test/v", {"title": "T", "uploader": "U", "duration": "n/a"})
        assert info.uploader == "U"
        assert info.duration_seconds is None
        assert info.upload_date is None
        assert info.thumbnail_url is None


class TestYtDlpTool:
    def test_fetch_info(self):
        ydl = MagicMock()
        ydl.extract_info.return_value = {"title": "Demo Clip", "channel": "Acme", "duration": 125}
        with patch("vidshelf.ingest.ytdlp_runner.YoutubeDL", _ydl_mock(ydl)) as cls:
            info = YtDlpTool().fetch_info("https://example.test/v")

        assert info.title == "Demo Clip"
        ydl.extract_info.assert_called_once_with("https://example.test/v", download=False)
        opts = cls.call_args[0][0]
        assert opts["skip_download"] is True

    def test_fetch_info_error(self):
        ydl = MagicMock()
        ydl.extract_info.side_effect = RuntimeError("Unsupported URL")
        with patch("vidshelf.ingest.ytdlp_runner.YoutubeDL", _ydl_mock(ydl)):
            with pytest.raises(ExternalToolFailure, match="Unsupported URL"):
                YtDlpTool().fetch_info("https://example.test/v")

    def test_fetch_info_empty(self):
        ydl = MagicMock()
        ydl.extract_info.return_value = None
        with patch("vidshelf.ingest.ytdlp_runner.YoutubeDL", _ydl_mock(ydl)):
            with pytest.raises(ExternalToolFailure):
                YtDlpTool().fetch_info("https://example.test/v")

    def test_download_writes_exact_path_and_reports_progress(self, tmp_path: Path):
        out = tmp_path / "Acme-Demo Clip.mp4"
        seen = []
        ydl = MagicMock()

        def fake_download(urls):
            hook = cls.call_args[0][0]["progress_hooks"][0]
            hook({"status": "downloading", "downloaded_bytes": 50, "total_bytes": 200})
            hook({"status": "downloading", "downloaded_bytes": 10})
            hook({"status": "finished"})
            out.write_bytes(b"media")
            return 0

        ydl.download.side_effect = fake_download
        cls = _ydl_mock(ydl)
        with patch("vidshelf.ingest.ytdlp_runner.YoutubeDL", cls):
            result = YtDlpTool(quality="720p").download("https://example.test/v", out, on_progress=seen.append)

        assert result == out
        assert seen == [0.25]
        opts = cls.call_args[0][0]
        assert opts["outtmpl"] == str(out)
        assert opts["merge_output_format"] == "mp4"
        assert "height<=720" in opts["format"]
        ydl.download.assert_called_once_with(["https://example.test/v"])

    def test_download_failure(self, tmp_path: Path):
        ydl = MagicMock()
        ydl.download.side_effect = RuntimeError("HTTP Error 403")
        with patch("vidshelf.ingest.ytdlp_runner.YoutubeDL", _ydl_mock(ydl)):
            with pytest.raises(ExternalToolFailure, match="403"):
                YtDlpTool().download("https://example.test/v", tmp_path / "x.mp4")

    def test_download_missing_output(self, tmp_path: Path):
        ydl = MagicMock()
        ydl.download.return_value = 0
        with patch("vidshelf.ingest.ytdlp_runner.YoutubeDL", _ydl_mock(ydl)):
            with pytest.raises(ExternalToolFailure, match="No file found"):
                YtDlpTool().download("https://example.test/v", tmp_path / "x.mp4")

    def test_download_timeout(self, tmp_path: Path):
        ydl = MagicMock()
        cls = _ydl_mock(ydl)

        def fake_download(urls):
            hook = cls.call_args[0][0]["progress_hooks"][0]
            hook({"status": "downloading", "downloaded_bytes": 1, "total_bytes": 10})

        ydl.download.side_effect = fake_download
        tool = YtDlpTool(timeout_seconds=1.0)
        with patch("vidshelf.ingest.ytdlp_runner.YoutubeDL", cls), patch(
            "vidshelf.ingest.ytdlp_runner.time.monotonic", side_effect=[0.0, 5.0]
        ):
            with pytest.raises(ExternalToolFailure, match="timed out"):
                tool.download("https://example.test/v", tmp_path / "x.mp4")
