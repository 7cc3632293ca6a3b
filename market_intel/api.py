"""HTTP surface: trigger a report run and read the history log.

    POST /api/agent   {"mode": "daily"|"weekly"}  → {"success": true, "data": record}
    GET  /api/agent                               → {"success": true, "history": [...]}

Degraded runs (placeholder chart, fallback analysis, unpersisted record) still
answer ``success: true``; only an unexpected exception yields a 500 envelope.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from market_intel.core.logger import logger
from market_intel.models.datatypes import Mode
from market_intel.pipeline.engine import ReportPipeline


class GenerateRequest(BaseModel):
    mode: Mode = Mode.DAILY


def create_app(pipeline: ReportPipeline) -> FastAPI:
    """Build the FastAPI app around an already-wired pipeline.

    The pipeline's store serves both endpoints; it is opened at startup and closed
    at shutdown.
    """
    store = pipeline.store

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store.open()
        try:
            yield
        finally:
            store.close()

    app = FastAPI(title="Market Intelligence Agent", lifespan=lifespan)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": f"Invalid request: {exc.errors()}"},
        )

    @app.post("/api/agent")
    async def generate(payload: Optional[GenerateRequest] = None) -> JSONResponse:
        mode = payload.mode if payload else Mode.DAILY
        try:
            record = await run_in_threadpool(pipeline.run, mode)
        except Exception as exc:
            logger.error(f"api: report generation failed: {exc}", exc_info=True)
            return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})
        return JSONResponse(content={"success": True, "data": record.to_dict()})

    @app.get("/api/agent")
    async def history() -> JSONResponse:
        records = await run_in_threadpool(pipeline.history)
        return JSONResponse(
            content={"success": True, "history": [record.to_dict() for record in records]}
        )

    return app
