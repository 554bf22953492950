from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
import webbrowser
from pathlib import Path
from typing import List, Optional

from .config import AppConfig, load_config
from .errors import VidshelfError
from .logging_config import setup_logging


def _fmt_duration(seconds: Optional[float]) -> str:
    if seconds is None:
        return "-"
    seconds = max(0, int(seconds))
    h, rem = divmod(seconds, 3600)
    m, s = divmod(rem, 60)
    if h > 0:
        return f"{h:d}:{m:02d}:{s:02d}"
    return f"{m:d}:{s:02d}"


def _fmt_size(size_bytes: int) -> str:
    return f"{size_bytes / (1024 * 1024):.1f} MB"


def _load_config(args: argparse.Namespace) -> AppConfig:
    data = load_config(args.config)
    if getattr(args, "storage", None) is not None:
        data["storage"]["path"] = str(args.storage)
    return AppConfig.from_dict(data)


class _ConsoleConnection:
    """Hub client that renders one job's events on the terminal."""

    def __init__(self, job_id: int) -> None:
        self.job_id = job_id
        self.success: Optional[bool] = None
        self.error_message: Optional[str] = None

    def is_open(self) -> bool:
        return self.success is None

    def send(self, message: str) -> None:
        event = json.loads(message)
        if event.get("job_id") != self.job_id:
            return
        if event["type"] == "progress":
            print(f"\r{event['percent']:3d}%", end="", flush=True)
        elif event["type"] == "completion":
            self.success = bool(event["success"])
            self.error_message = event.get("error_message")
            print()


def cmd_serve(args: argparse.Namespace, config: AppConfig) -> None:
    from .studio.app import create_app

    host = args.host or config.host
    port = args.port or config.port
    app = create_app(config)

    if args.open:
        try:
            webbrowser.open(f"http://{host}:{port}")
        except Exception as exc:
            logging.getLogger(__name__).warning("Failed to open browser: %s", exc)

    import uvicorn

    uvicorn.run(app, host=host, port=port, log_level="warning")


def cmd_download(args: argparse.Namespace, config: AppConfig) -> None:
    from .studio.app import LibraryContext

    ctx = LibraryContext(config)
    job_id = int(time.time() * 1000)
    # Registered before submit so no event for this job is missed
    console = _ConsoleConnection(job_id)
    handle = ctx.hub.register(console)
    try:
        video = ctx.orchestrator.submit(args.url, job_id)
        print(f"{video.uploader} - {video.title} ({_fmt_duration(video.duration_seconds)})")
        print(f"-> {ctx.storage_dir / video.filename}")
        ctx.orchestrator.join(video.job_id)
    finally:
        ctx.hub.unregister(handle)
        ctx.close()

    if not console.success:
        raise SystemExit(f"Download failed: {console.error_message or 'unknown error'}")
    print("Done:", video.filename)


def cmd_list(args: argparse.Namespace, config: AppConfig) -> None:
    from .library import MetadataStore, list_library

    store = MetadataStore.for_storage_dir(config.storage_dir)
    store.load()
    entries = list_library(config.storage_dir, store)

    if args.json:
        print(json.dumps([e.to_dict() for e in entries], indent=2))
        return

    if not entries:
        print(f"No videos in {config.storage_dir}")
        return

    print(f"{'Duration':>8}  {'Size':>10}  {'Uploader':<20}  Title / file")
    for entry in entries:
        meta = entry.metadata
        title = meta.title if meta and meta.title else entry.filename
        uploader = meta.uploader if meta else ""
        duration = meta.duration_seconds if meta else None
        print(f"{_fmt_duration(duration):>8}  {_fmt_size(entry.size_bytes):>10}  {uploader[:20]:<20}  {title}")


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="vidshelf", description="Download videos into a local library.")
    parser.add_argument("--config", type=Path, default=None, help="Path to a YAML config file")
    parser.add_argument("--storage", type=Path, default=None, help="Override the storage directory")
    parser.add_argument("--log-level", type=str, default=os.getenv("VS_LOG_LEVEL"), help="Overrides logging.level from the config")
    sub = parser.add_subparsers(dest="cmd", required=True)

    s = sub.add_parser("serve", help="Run the web server (HTTP API + WebSocket events).")
    s.add_argument("--host", type=str, default=None)
    s.add_argument("--port", type=int, default=None)
    s.add_argument("--open", action="store_true", help="Open a browser once started")
    s.set_defaults(func=cmd_serve)

    d = sub.add_parser("download", help="Download one URL into the library and wait for it.")
    d.add_argument("url", type=str)
    d.set_defaults(func=cmd_download)

    ls = sub.add_parser("list", help="List the library.")
    ls.add_argument("--json", action="store_true", help="Print JSON instead of a table")
    ls.set_defaults(func=cmd_list)

    args = parser.parse_args(argv)

    try:
        config = _load_config(args)
        setup_logging(
            level=args.log_level or config.log_level,
            log_file=config.log_file,
            module_levels=config.log_module_levels,
        )
        args.func(args, config)
    except (VidshelfError, ValueError, FileNotFoundError) as e:
        print(f"error: {e}", file=sys.stderr)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
