from __future__ import annotations

from fastapi.testclient import TestClient

from app.services.repository import RepositoryUnavailableError

USER_A_ID = "6f1c1a52-3f4e-4b8a-9d2e-0a1b2c3d4e5f"


def test_available_and_taken(client: TestClient, fake_repo) -> None:
    response = client.post("/api/check-email", json={"email": "alice@example.com"})
    assert response.status_code == 200
    assert response.json() == {"exists": False, "message": "Email available"}

    fake_repo.users[USER_A_ID] = {"id": USER_A_ID, "email": "alice@example.com"}
    response = client.post("/api/check-email", json={"email": "  alice@example.com "})
    assert response.status_code == 200
    assert response.json() == {"exists": True, "message": "Email already exists"}


def test_missing_email(client: TestClient) -> None:
    response = client.post("/api/check-email", json={})
    assert response.status_code == 400
    assert response.json() == {"error": "Email is required"}


def test_invalid_email(client: TestClient) -> None:
    response = client.post("/api/check-email", json={"email": "nope"})
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid email format"}


def test_unparseable_body(client: TestClient) -> None:
    response = client.post(
        "/api/check-email",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid request body"}


def test_store_failure_is_internal_error(client: TestClient, fake_repo) -> None:
    fake_repo.fail_with = RepositoryUnavailableError("CD_DATABASE_URL is required")
    response = client.post("/api/check-email", json={"email": "alice@example.com"})
    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}


def test_non_object_body(client: TestClient) -> None:
    response = client.post("/api/check-email", json=["alice@example.com"])
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid email format"}
