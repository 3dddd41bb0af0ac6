"""Shared FastAPI app for end-to-end scenarios."""

import asyncio
import uuid
from typing import Optional

import pytest
from fastapi import FastAPI, Header, Response
from fastapi.testclient import TestClient
from pydantic import BaseModel, Field

from api_conventions.adapters.fastapi_app import create_app
from api_conventions.config import GatewayConfig
from api_conventions.core.etag import check_if_match, compute_etag
from api_conventions.core.health import HealthRegistry
from api_conventions.core.pagination import build_page, validate_page_params
from api_conventions.exceptions import NotFoundError, UnauthenticatedError
from api_conventions.storage.base import StorageAdapter
from api_conventions.storage.memory import MemoryStorageAdapter


class NewUser(BaseModel):
    display_name: str = Field(..., alias="displayName", min_length=1)
    email: Optional[str] = Field(default=None, pattern=r"^[^@\s]+@[^@\s]+$")


class UsersService:
    """Users resource used by the scenarios; counts creations."""

    def __init__(self, create_delay: float = 0.0) -> None:
        self.users: dict[str, dict] = {}
        self.versions: dict[str, int] = {}
        self.create_calls = 0
        self.create_delay = create_delay


def build_users_app(
    config: GatewayConfig | None = None,
    storage: StorageAdapter | None = None,
    health: HealthRegistry | None = None,
    service: UsersService | None = None,
) -> FastAPI:
    service = service or UsersService()
    app = create_app(config, storage=storage, health=health)
    app.state.service = service

    @app.post("/users", status_code=201)
    async def create_user(new_user: NewUser, response: Response) -> dict:
        service.create_calls += 1
        if service.create_delay:
            await asyncio.sleep(service.create_delay)
        user_id = str(uuid.uuid4())
        service.users[user_id] = {"id": user_id, "displayName": new_user.display_name}
        service.versions[user_id] = 1
        response.headers["Location"] = f"/users/{user_id}"
        return service.users[user_id]

    @app.get("/users")
    async def list_users(limit: Optional[int] = None, offset: Optional[int] = None) -> dict:
        limit, offset = validate_page_params(limit, offset)
        everything = list(service.users.values())
        page = build_page(everything[offset : offset + limit], limit, offset, total=len(everything))
        return page.model_dump(by_alias=True)

    @app.get("/users/{user_id}")
    async def get_user(user_id: str, response: Response) -> dict:
        if user_id not in service.users:
            raise NotFoundError(f"User {user_id} does not exist")
        response.headers["ETag"] = compute_etag(service.versions[user_id])
        return service.users[user_id]

    @app.put("/users/{user_id}")
    async def replace_user(
        user_id: str,
        new_user: NewUser,
        response: Response,
        if_match: Optional[str] = Header(None, alias="If-Match"),
    ) -> dict:
        if user_id not in service.users:
            raise NotFoundError(f"User {user_id} does not exist")
        check_if_match(if_match, compute_etag(service.versions[user_id]))
        service.versions[user_id] += 1
        service.users[user_id]["displayName"] = new_user.display_name
        response.headers["ETag"] = compute_etag(service.versions[user_id])
        return service.users[user_id]

    @app.get("/me")
    async def me() -> dict:
        raise UnauthenticatedError("A bearer token is required")

    @app.get("/boom")
    async def boom() -> dict:
        raise RuntimeError("password=hunter2")

    return app


@pytest.fixture
def service() -> UsersService:
    return UsersService()


@pytest.fixture
def app(service: UsersService) -> FastAPI:
    return build_users_app(service=service)


@pytest.fixture
def client(app: FastAPI):
    with TestClient(app) as test_client:
        yield test_client
