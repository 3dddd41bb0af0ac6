"""Health endpoints, paged listing and optimistic concurrency."""

from fastapi.testclient import TestClient

from api_conventions.core.health import HealthRegistry

from .conftest import build_users_app


def test_liveness(client: TestClient) -> None:
    response = client.get("/health/live")

    assert response.status_code == 200
    assert response.json()["status"] == "pass"
    assert "x-correlation-id" in response.headers


def test_readiness_reports_failing_dependency() -> None:
    health = HealthRegistry()
    state = {"database": True}
    health.register("database", lambda: state["database"])

    with TestClient(build_users_app(health=health)) as client:
        ready = client.get("/health/ready")
        state["database"] = False
        not_ready = client.get("/health/ready")
        live = client.get("/health/live")

    assert ready.status_code == 200
    assert not_ready.status_code == 503
    assert not_ready.json() == {
        "status": "fail",
        "checks": [{"name": "database", "healthy": False, "error": None}],
    }
    assert live.status_code == 200


def test_paged_listing(client: TestClient) -> None:
    for name in ["Ada", "Grace", "Barbara"]:
        client.post("/users", json={"displayName": name})

    response = client.get("/users", params={"limit": 2, "offset": 1})

    assert response.status_code == 200
    body = response.json()
    assert [user["displayName"] for user in body["items"]] == ["Grace", "Barbara"]
    assert body["page"] == {"limit": 2, "offset": 1, "total": 3}
    assert body["continuationToken"] is None


def test_if_match_guards_updates(client: TestClient) -> None:
    created = client.post("/users", json={"displayName": "Ada"}).json()
    path = f"/users/{created['id']}"
    etag = client.get(path).headers["etag"]

    updated = client.put(path, json={"displayName": "Ada King"}, headers={"If-Match": etag})
    assert updated.status_code == 200
    assert updated.headers["etag"] != etag

    stale = client.put(path, json={"displayName": "Ada Byron"}, headers={"If-Match": etag})
    assert stale.status_code == 412
    assert stale.json()["type"] == "https://api.example.com/problems/precondition-failed"
    assert client.get(path).json()["displayName"] == "Ada King"
