"""HTTP surface for the capture service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, HTTPException, Query, Request, status
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse

from snapdiff.baseline.manager import BaselineManager
from snapdiff.capture.acquirer import RenderAcquirer
from snapdiff.capture.session import BrowserSessionFactory, PlaywrightSessionFactory
from snapdiff.errors import CaptureJobError, InvalidInputError, QueueFullError, StorageError
from snapdiff.models.capture import CaptureRequest
from snapdiff.models.config import ServiceConfig
from snapdiff.pipeline import JobPipeline
from snapdiff.storage.local import LocalArtifactStore

logger = logging.getLogger(__name__)


def create_app(
    config: ServiceConfig,
    session_factory: BrowserSessionFactory | None = None,
    store: LocalArtifactStore | None = None,
) -> FastAPI:
    """Build the app; the pipeline is created and drained by the lifespan."""
    store = store or LocalArtifactStore.from_config(config.storage)
    session_factory = session_factory or PlaywrightSessionFactory(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        pipeline = JobPipeline(
            acquirer=RenderAcquirer(session_factory, config),
            baseline_manager=BaselineManager(store),
            store=store,
            config=config,
        )
        app.state.pipeline = pipeline
        async with pipeline:
            yield

    app = FastAPI(title="snapdiff", lifespan=lifespan)
    app.state.store = store

    @app.get("/health", tags=["health"])
    async def health(request: Request) -> dict:
        pipeline: JobPipeline = request.app.state.pipeline
        return {"status": "ok", "pending_jobs": pipeline.pending}

    @app.get("/capture")
    async def capture(
        request: Request,
        url: str | None = Query(default=None),
        ignore: str | None = Query(default=None),
    ):
        if not url:
            return PlainTextResponse("Missing url parameter", status_code=status.HTTP_400_BAD_REQUEST)
        try:
            capture_request = CaptureRequest.from_query(url, ignore)
        except InvalidInputError as e:
            return PlainTextResponse(str(e), status_code=status.HTTP_400_BAD_REQUEST)

        pipeline: JobPipeline = request.app.state.pipeline
        try:
            response = await pipeline.submit(capture_request)
        except QueueFullError:
            return PlainTextResponse("Capture queue is full", status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
        except CaptureJobError as e:
            logger.error("Capture Error for %s: %s: %s", url, type(e).__name__, e)
            return PlainTextResponse("Capture Error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
        return JSONResponse(response.to_payload())

    @app.get("/artifacts/{key:path}")
    async def artifact(key: str, expires: int = Query(...), signature: str = Query(...)) -> FileResponse:
        artifact_store: LocalArtifactStore = app.state.store
        try:
            valid = artifact_store.verify_url(key, expires, signature)
            path: Path = artifact_store.path_for(key)
        except StorageError:
            raise HTTPException(status_code=404, detail="Artifact not found") from None
        if not valid:
            raise HTTPException(status_code=403, detail="Invalid or expired link")
        if not path.is_file():
            raise HTTPException(status_code=404, detail="Artifact not found")
        return FileResponse(path, media_type=artifact_store.content_type(key))

    return app
