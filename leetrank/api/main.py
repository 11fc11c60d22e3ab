"""FastAPI application for sync control and user lookups."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from functools import lru_cache
from typing import Any, AsyncIterator

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from leetrank.db.session import create_engine_from_env
from leetrank.db.users import UserRepository
from leetrank.ingest.errors import IdentityNotAvailable, LeetCodeError
from leetrank.ingest.identity import IdentityStatsClient
from leetrank.jobs.sync import SyncAlreadyRunning, SyncController, SyncOptions, SyncStatus, create_controller

logger = logging.getLogger(__name__)


@lru_cache
def get_engine() -> Engine:
    load_dotenv()
    return create_engine_from_env()


@lru_cache
def get_controller() -> SyncController:
    return create_controller(get_engine())


def get_repository(engine: Engine = Depends(get_engine)) -> UserRepository:
    return UserRepository(engine)


def get_identity_client(controller: SyncController = Depends(get_controller)) -> IdentityStatsClient:
    return IdentityStatsClient(controller.transport)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    if get_controller.cache_info().currsize:
        await get_controller().close()


app = FastAPI(title="LeetCode Ranking API", lifespan=lifespan)


class StartSyncRequest(BaseModel):
    page: int = 1
    pages: int | None = None
    workers: int | None = None
    delay_ms: int | None = None


class SyncStatusResponse(BaseModel):
    active: bool
    phase: str
    current_page: int
    start_page: int
    end_page: int | None
    processed: int
    persisted: int
    failed_pages: int
    started_at: datetime | None
    finished_at: datetime | None


class StartSyncResponse(SyncStatusResponse):
    status: str


class StopSyncResponse(SyncStatusResponse):
    stopped: bool


class CreateUserRequest(BaseModel):
    username: str


class UpdateUserRequest(BaseModel):
    user_slug: str | None = None
    user_avatar: str | None = None
    country_code: str | None = None
    country_name: str | None = None
    real_name: str | None = None
    typename: str | None = None
    total_problems_solved: int | None = Field(default=None, ge=0)
    total_submissions: int | None = Field(default=None, ge=0)


class UsersByCountryResponse(BaseModel):
    users: list[dict[str, Any]]
    total_count: int
    page: int
    limit: int


def _status_payload(status: SyncStatus) -> dict[str, Any]:
    return status.as_dict()


@app.post("/sync-leaderboard", response_model=StartSyncResponse, status_code=202)
async def start_sync(
    payload: StartSyncRequest,
    controller: SyncController = Depends(get_controller),
) -> StartSyncResponse:
    options = SyncOptions(start_page=payload.page, pages=payload.pages)
    if payload.workers is not None:
        options.workers = payload.workers
    if payload.delay_ms is not None:
        options.delay = payload.delay_ms / 1000
    try:
        controller.start(options)
    except SyncAlreadyRunning as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return StartSyncResponse(status="started", **_status_payload(controller.status()))


@app.post("/stop-syncing", response_model=StopSyncResponse)
async def stop_sync(controller: SyncController = Depends(get_controller)) -> StopSyncResponse:
    stopped = controller.stop()
    return StopSyncResponse(stopped=stopped, **_status_payload(controller.status()))


@app.get("/sync-status", response_model=SyncStatusResponse)
async def sync_status(controller: SyncController = Depends(get_controller)) -> SyncStatusResponse:
    return SyncStatusResponse(**_status_payload(controller.status()))


@app.post("/users", status_code=201)
async def create_user(
    payload: CreateUserRequest,
    client: IdentityStatsClient = Depends(get_identity_client),
    repo: UserRepository = Depends(get_repository),
) -> dict[str, Any]:
    username = payload.username.strip()
    if not username:
        raise HTTPException(status_code=400, detail="username is required")
    try:
        record = await client.fetch_record(username)
    except IdentityNotAvailable as exc:
        raise HTTPException(status_code=404, detail="user not available") from exc
    except LeetCodeError as exc:
        logger.warning("Could not fetch %s: %s", username, exc)
        raise HTTPException(status_code=502, detail="upstream fetch failed") from exc
    try:
        user = repo.upsert(record)
    except SQLAlchemyError as exc:
        logger.error("Could not store %s: %s", username, exc)
        raise HTTPException(status_code=500, detail="internal server error") from exc
    return {"data": user}


@app.get("/users", response_model=UsersByCountryResponse)
async def users_by_country(
    country: str = Query(..., min_length=1),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    repo: UserRepository = Depends(get_repository),
) -> UsersByCountryResponse:
    offset = (page - 1) * limit
    users = repo.list_by_country(country, limit=limit, offset=offset)
    total = repo.count_by_country(country)
    return UsersByCountryResponse(users=users, total_count=total, page=page, limit=limit)


@app.get("/users/{username}")
async def get_user(username: str, repo: UserRepository = Depends(get_repository)) -> dict[str, Any]:
    try:
        user = repo.get_by_username(username)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if user is None:
        raise HTTPException(status_code=404, detail="user not found")
    return {"data": user}


@app.patch("/users/{username}")
async def update_user(
    username: str,
    payload: UpdateUserRequest,
    repo: UserRepository = Depends(get_repository),
) -> dict[str, Any]:
    try:
        user = repo.update_by_username(username, **payload.model_dump(exclude_none=True))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if user is None:
        raise HTTPException(status_code=404, detail="user not found")
    return {"data": user}


@app.delete("/users/{username}")
async def delete_user(username: str, repo: UserRepository = Depends(get_repository)) -> dict[str, str]:
    try:
        deleted = repo.delete_by_username(username)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not deleted:
        raise HTTPException(status_code=404, detail="user not found")
    return {"status": "ok"}
