import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from pydantic import BaseModel

from equicheck import analyzer, llm
from equicheck.config import settings
from equicheck.db import open_remote_backend
from equicheck.errors import (
    AnalysisError,
    AuthError,
    ConfigurationError,
    EmptyDocument,
    EmptyResponse,
    MalformedResponse,
    PersistenceFailed,
    RateLimited,
    ServiceUnavailable,
)
from equicheck.local_store import LocalStore
from equicheck.prompts import PDF_MIME_TYPE
from equicheck.storage import RecordStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger(__name__)

_ERROR_STATUS: dict[type[AnalysisError], int] = {
    AuthError: 403,
    RateLimited: 429,
    ServiceUnavailable: 503,
    EmptyResponse: 502,
    MalformedResponse: 502,
    EmptyDocument: 400,
    ConfigurationError: 500,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    remote = await open_remote_backend(settings.db)
    app.state.store = RecordStore(LocalStore(settings.local.path), remote)
    if remote is None:
        log.info("History is stored locally at %s", settings.local.path)

    yield

    # Shutdown
    if remote is not None:
        await remote.close()


app = FastAPI(title="equicheck", version="0.1.0", lifespan=lifespan)


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


async def _read_pdf(upload: UploadFile) -> bytes:
    name = upload.filename or "document.pdf"
    if upload.content_type != PDF_MIME_TYPE:
        raise HTTPException(
            status_code=415,
            detail=f"Invalid file type: {name}. Please upload a PDF document.",
        )
    data = await upload.read()
    max_bytes = settings.max_upload_mb * 1024 * 1024
    if len(data) > max_bytes:
        raise HTTPException(
            status_code=413,
            detail=(
                f"File is too large: {name} ({len(data) / 1024 / 1024:.1f}MB). "
                f"Max size is {settings.max_upload_mb}MB."
            ),
        )
    return data


@app.get("/api/health")
async def health(store: RecordStore = Depends(get_store)):
    return {"status": "ok", "remote_connected": store.remote_enabled}


@app.post("/api/analyses")
async def create_analysis(
    buy_side: UploadFile = File(...),
    sell_side: UploadFile = File(...),
    store: RecordStore = Depends(get_store),
):
    buy_doc = await _read_pdf(buy_side)
    sell_doc = await _read_pdf(sell_side)

    try:
        result = await analyzer.analyze(
            buy_doc, sell_doc, buy_side.filename or "buy_side.pdf", sell_side.filename or "sell_side.pdf"
        )
    except AnalysisError as e:
        log.warning("Analysis failed (%s): %s", e.kind, e)
        raise HTTPException(status_code=_ERROR_STATUS.get(type(e), 500), detail=str(e))

    try:
        await store.save(result)
    except PersistenceFailed as e:
        log.error("Analysis %s could not be saved: %s", result.id, e)
        raise HTTPException(status_code=500, detail=f"Analysis completed but could not be saved: {e}")

    return result.to_json_dict()


@app.get("/api/analyses")
async def list_analyses(store: RecordStore = Depends(get_store)):
    return [r.to_json_dict() for r in await store.list_all()]


@app.delete("/api/analyses")
async def clear_analyses(store: RecordStore = Depends(get_store)):
    try:
        result = await store.clear()
    except PersistenceFailed as e:
        raise HTTPException(status_code=500, detail=str(e))
    return result.model_dump()


@app.get("/api/settings")
async def get_settings():
    return {
        "current_model": llm.get_deployment(),
        "available_models": llm.AVAILABLE_MODELS,
    }


class SetModelRequest(BaseModel):
    model: str


@app.put("/api/settings/model")
async def set_model(req: SetModelRequest):
    if req.model not in llm.AVAILABLE_MODELS:
        raise HTTPException(status_code=400, detail=f"Unknown model: {req.model}")
    llm.set_deployment(req.model)
    return {"current_model": llm.get_deployment()}
