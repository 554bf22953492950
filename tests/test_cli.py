import argparse
import json
from pathlib import Path

from vidshelf.cli import _fmt_duration, _fmt_size, _load_config, cmd_list
from vidshelf.library.store import MetadataStore, VideoMetadataRecord


def test_fmt_duration():
    assert _fmt_duration(None) == "-"
    assert _fmt_duration(125) == "2:05"
    assert _fmt_duration(3725.4) == "1:02:05"


def test_fmt_size():
    assert _fmt_size(1024 * 1024 * 3) == "3.0 MB"


def test_list_json(tmp_path: Path, capsys):
    store = MetadataStore.for_storage_dir(tmp_path)
    store.load()
    (tmp_path / "Acme-Demo Clip.mp4").write_bytes(b"12345")
    store.upsert("Acme-Demo Clip.mp4", VideoMetadataRecord(filename="Acme-Demo Clip.mp4", uploader="Acme", title="Demo Clip"))

    args = argparse.Namespace(config=None, storage=tmp_path, json=True)
    cmd_list(args, _load_config(args))

    listed = json.loads(capsys.readouterr().out)
    assert [v["filename"] for v in listed] == ["Acme-Demo Clip.mp4"]
    assert listed[0]["title"] == "Demo Clip"


def test_list_empty_table(tmp_path: Path, capsys):
    args = argparse.Namespace(config=None, storage=tmp_path, json=False)
    cmd_list(args, _load_config(args))
    assert "No videos" in capsys.readouterr().out


def test_storage_flag_anchors_relative_log_file(tmp_path: Path):
    cfg_path = tmp_path / "vidshelf.yaml"
    cfg_path.write_text("logging:\n  file: logs/vidshelf.log\n", encoding="utf-8")
    args = argparse.Namespace(config=cfg_path, storage=tmp_path / "media")
    config = _load_config(args)
    assert config.storage_dir == tmp_path / "media"
    assert config.log_file == tmp_path / "media" / "logs" / "vidshelf.log"
