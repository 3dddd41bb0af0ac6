"""Demo FastAPI application following the API conventions.

A tiny users service showing correlation ids, idempotent creation, problem
details, ETag/If-Match updates, paged listing and health checks.

Run with: python demo_app.py

Try:
    curl -i -X POST localhost:8000/users \
        -H 'Idempotency-Key: 7f41dba9-4c8e-4f7b-9d8a-3c2e1b0a9f87' \
        -H 'Content-Type: application/json' \
        -d '{"displayName": "Ada Lovelace"}'
"""

import uuid
from typing import Optional

import uvicorn
from fastapi import Header, Response
from pydantic import BaseModel, Field

from api_conventions.adapters.fastapi_app import create_app
from api_conventions.config import GatewayConfig
from api_conventions.core.etag import check_if_match, compute_etag
from api_conventions.core.health import HealthRegistry
from api_conventions.core.pagination import build_page, validate_page_params
from api_conventions.exceptions import NotFoundError
from api_conventions.observability.logging import get_logger

logger = get_logger("demo_app")

config = GatewayConfig.from_env()
health = HealthRegistry()
app = create_app(
    config,
    health=health,
    configure_logs=True,
    title="API Conventions Demo",
    version="0.1.0",
)


class NewUser(BaseModel):
    display_name: str = Field(..., alias="displayName", min_length=1, max_length=200)


class User(BaseModel):
    id: str
    display_name: str = Field(..., alias="displayName")
    version: int = 1

    model_config = {"populate_by_name": True}


# In-process stand-in for a repository
users: dict[str, User] = {}
health.register("user-store", lambda: users is not None)


def _load(user_id: str) -> User:
    user = users.get(user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} does not exist")
    return user


@app.post("/users", status_code=201)
async def create_user(new_user: NewUser, response: Response) -> dict:
    user = User(id=str(uuid.uuid4()), display_name=new_user.display_name)
    users[user.id] = user
    logger.info("user.created", user_id=user.id)
    response.headers["Location"] = f"/users/{user.id}"
    response.headers["ETag"] = compute_etag(user.version)
    return user.model_dump(by_alias=True, exclude={"version"})


@app.get("/users")
async def list_users(limit: Optional[int] = None, offset: Optional[int] = None) -> dict:
    limit, offset = validate_page_params(limit, offset)
    all_users = list(users.values())
    items = [u.model_dump(by_alias=True, exclude={"version"}) for u in all_users[offset : offset + limit]]
    return build_page(items, limit, offset, total=len(all_users)).model_dump(by_alias=True)


@app.get("/users/{user_id}")
async def get_user(user_id: str, response: Response) -> dict:
    user = _load(user_id)
    response.headers["ETag"] = compute_etag(user.version)
    return user.model_dump(by_alias=True, exclude={"version"})


@app.put("/users/{user_id}")
async def replace_user(
    user_id: str,
    new_user: NewUser,
    response: Response,
    if_match: Optional[str] = Header(None, alias="If-Match"),
) -> dict:
    user = _load(user_id)
    check_if_match(if_match, compute_etag(user.version))
    updated = user.model_copy(
        update={"display_name": new_user.display_name, "version": user.version + 1}
    )
    users[user_id] = updated
    response.headers["ETag"] = compute_etag(updated.version)
    return updated.model_dump(by_alias=True, exclude={"version"})


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="info")
