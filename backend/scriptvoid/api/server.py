"""FastAPI server exposing the cron routes, leaderboard and presence ping."""

import hmac
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from scriptvoid import __version__
from scriptvoid.batch.exceptions import BatchJobError, UnknownJobError
from scriptvoid.config import Settings, get_settings
from scriptvoid.jobs import JobRegistry, default_registry, read_leaderboard, record_ping
from scriptvoid.orchestrator import run_all
from scriptvoid.storage.collections import DocumentStore, MongoStore
from scriptvoid.storage.connection import check_db_connection, create_client

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    client = create_client(settings.mongo)
    app.state.client = client
    app.state.store = MongoStore(client, settings.mongo)
    app.state.registry = default_registry(settings)
    logger.info("API started")
    try:
        yield
    finally:
        client.close()
        logger.info("API stopped")


app = FastAPI(title="ScriptVoid Batch API", version=__version__, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:3001"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def get_registry(request: Request) -> JobRegistry:
    return request.app.state.registry


def verify_cron_secret(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Reject the call unless it carries ``Bearer <cron_secret>``."""
    secret = settings.cron_secret
    if not secret or not authorization:
        raise HTTPException(status_code=401, detail="Unauthorized")
    expected = f"Bearer {secret}"
    if not hmac.compare_digest(authorization.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Unauthorized")


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number


def parse_batch_params(
    raw: dict[str, Any], default_batch_size: int, max_batch_size: int
) -> tuple[int, int]:
    """Coerce ``batch`` / ``batchSize``; bad values fall back to defaults."""
    batch = _as_int(raw.get("batch"))
    if batch is None or batch < 0:
        batch = 0

    batch_size = _as_int(raw.get("batchSize"))
    if batch_size is None or batch_size <= 0:
        batch_size = default_batch_size
    return batch, min(batch_size, max_batch_size)


async def _request_params(request: Request) -> dict[str, Any]:
    params: dict[str, Any] = dict(request.query_params)
    if request.method == "POST":
        try:
            body = await request.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            params.update(body)
    return params


@app.api_route(
    "/api/cron/run-all",
    methods=["GET", "POST"],
    dependencies=[Depends(verify_cron_secret)],
)
async def cron_run_all(
    store: DocumentStore = Depends(get_store),
    registry: JobRegistry = Depends(get_registry),
    settings: Settings = Depends(get_settings),
):
    try:
        summary = await run_all(
            store, registry, inter_job_delay_ms=settings.orchestrator.inter_job_delay_ms
        )
    except Exception as e:
        logger.error(f"Run-all failed: {e}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to execute cron jobs", "details": str(e)},
        )
    return JSONResponse(content=jsonable_encoder(summary.to_response()))


@app.api_route(
    "/api/cron/{job_name}",
    methods=["GET", "POST"],
    dependencies=[Depends(verify_cron_secret)],
)
async def cron_job(
    job_name: str,
    request: Request,
    store: DocumentStore = Depends(get_store),
    registry: JobRegistry = Depends(get_registry),
    settings: Settings = Depends(get_settings),
):
    try:
        job = registry.get(job_name)
    except UnknownJobError as e:
        raise HTTPException(status_code=404, detail=str(e))

    batch, batch_size = parse_batch_params(
        await _request_params(request),
        job.default_batch_size,
        settings.batch.max_batch_size,
    )

    try:
        result = await job.run(store, batch=batch, batch_size=batch_size)
    except BatchJobError as e:
        logger.error(f"{job_name} failed: {e}")
        return JSONResponse(
            status_code=500,
            content={
                "error": f"Failed to process {job_name}",
                "details": str(e),
                "batch": batch,
            },
        )

    status_code = 200 if result.success else 500
    return JSONResponse(status_code=status_code, content=jsonable_encoder(result.to_response()))


@app.get("/api/leaderboard")
async def leaderboard(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    page_number = _as_int(page)
    limit_number = _as_int(limit)
    data = await read_leaderboard(
        store,
        settings,
        page=page_number if page_number is not None else 0,
        limit=limit_number,
    )
    return JSONResponse(content=jsonable_encoder({"success": True, "data": data}))


class PingRequest(BaseModel):
    username: Optional[str] = None
    userId: Optional[str] = None
    sessionId: Optional[str] = None
    action: str = "active"


@app.post("/api/users/ping")
async def ping(body: PingRequest, store: DocumentStore = Depends(get_store)):
    try:
        entry = await record_ping(
            store,
            username=body.username,
            user_id=body.userId,
            session_id=body.sessionId,
            action=body.action,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return JSONResponse(content=jsonable_encoder({"success": True, "type": entry["type"]}))


@app.get("/health")
async def health(request: Request):
    client = getattr(request.app.state, "client", None)
    database = await check_db_connection(client) if client is not None else False
    return {"status": "ok" if database else "degraded", "database": database}
