from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import Body, FastAPI, HTTPException, Request, WebSocket
from fastapi.responses import FileResponse, JSONResponse

from .. import __version__
from ..config import AppConfig
from ..downloads import DownloadOrchestrator, ExternalTool
from ..errorlog import ErrorLog
from ..errors import ExternalToolFailure, InvalidRequest, ServiceUnavailable
from ..ingest import YtDlpTool
from ..library import MetadataStore, list_library
from .jobs import JobTracker, SimulatedProgress
from .notify import NotificationHub, WebSocketConnection
from .range import ranged_file_response, resolve_media_path

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).parent / "static"


class LibraryContext:
    """Every long-lived component of a running server, built from config.

    Construction loads the metadata document, so a corrupt store stops
    startup with PersistenceFailure.
    """

    def __init__(self, config: AppConfig, *, tool: Optional[ExternalTool] = None) -> None:
        self.config = config
        self.storage_dir = config.storage_dir
        self.storage_dir.mkdir(parents=True, exist_ok=True)

        self.error_log = ErrorLog.for_storage_dir(self.storage_dir)
        self.store = MetadataStore.for_storage_dir(self.storage_dir)
        self.store.load()

        self.hub = NotificationHub()
        self.tracker = JobTracker(
            self.hub,
            interval_seconds=config.progress_interval_seconds,
            progress_factory=lambda: SimulatedProgress(step=config.progress_step, cap=config.progress_cap),
        )
        self.tool = tool or YtDlpTool(
            quality=config.quality,
            media_format=config.media_format,
            timeout_seconds=config.timeout_seconds,
        )
        self.orchestrator = DownloadOrchestrator(
            tool=self.tool,
            tracker=self.tracker,
            hub=self.hub,
            store=self.store,
            error_log=self.error_log,
            storage_dir=self.storage_dir,
            max_concurrent=config.max_concurrent,
            media_extension=config.media_format,
            progress_source=config.progress_source,
            progress_cap=config.progress_cap,
        )

    def close(self) -> None:
        self.orchestrator.shutdown(wait=False)


def create_app(
    config: Optional[AppConfig] = None,
    *,
    tool: Optional[ExternalTool] = None,
) -> FastAPI:
    ctx = LibraryContext(config or AppConfig.load(), tool=tool)
    logger.info("Using storage directory %s (%d videos in metadata)", ctx.storage_dir, len(ctx.store))

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        ctx.close()

    app = FastAPI(title="vidshelf", version=__version__, lifespan=lifespan)
    app.state.ctx = ctx

    @app.get("/")
    def index() -> FileResponse:
        return FileResponse(str(STATIC_DIR / "index.html"))

    @app.get("/api/health")
    def api_health() -> JSONResponse:
        return JSONResponse({"ok": True})

    @app.post("/api/download")
    def api_download(body: Dict[str, Any] = Body(...)):  # type: ignore[valid-type]
        """Start a download.

        Body:
            url: str - The URL to download
            job_id: str | int - Optional client-chosen id used in events

        Responds once metadata is known; the media transfer continues in the
        background and reports over the /ws channel.
        """
        try:
            video = ctx.orchestrator.submit(body.get("url"), body.get("job_id"))
        except InvalidRequest as e:
            raise HTTPException(status_code=400, detail=str(e))
        except ExternalToolFailure as e:
            raise HTTPException(status_code=502, detail=str(e))
        except ServiceUnavailable as e:
            raise HTTPException(status_code=503, detail=str(e))

        return JSONResponse({"message": "Starting download", "video": video.to_dict()})

    @app.get("/api/videos")
    def api_videos() -> JSONResponse:
        try:
            entries = list_library(ctx.storage_dir, ctx.store)
        except OSError as e:
            ctx.error_log.record("Video listing failed", e)
            raise HTTPException(status_code=500, detail=f"Video listing failed: {e}")
        return JSONResponse([entry.to_dict() for entry in entries])

    @app.get("/api/jobs")
    def api_jobs() -> JSONResponse:
        return JSONResponse({"jobs": ctx.tracker.snapshot()})

    @app.get("/videos/{filename}")
    def video_file(filename: str, request: Request):
        path = resolve_media_path(ctx.storage_dir, filename)
        if path is None:
            raise HTTPException(status_code=404, detail="video_not_found")
        return ranged_file_response(request, path)

    @app.websocket("/ws")
    async def ws_events(websocket: WebSocket) -> None:
        await websocket.accept()
        connection = WebSocketConnection(websocket, asyncio.get_running_loop())
        handle = ctx.hub.register(connection)
        pump = asyncio.create_task(connection.pump())
        try:
            # Inbound messages are ignored; we only wait for the disconnect
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
        finally:
            ctx.hub.unregister(handle)
            connection.close()
            pump.cancel()
            await asyncio.gather(pump, return_exceptions=True)

    return app
